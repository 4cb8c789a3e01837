"""AI recommendation worker for fitness activities."""

__version__ = "0.1.0"
