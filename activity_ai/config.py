"""Configuration for the activity recommendation service."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ACTIVITY_AI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Service configuration
    service_name: str = "activity-ai"
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    environment: str = "development"

    # Kafka configuration
    kafka_bootstrap_servers: str = "kafka:29092"
    kafka_input_topic: str = "fitness.activities.created"
    kafka_dlq_topic: str = "fitness.activities.dlq"
    kafka_consumer_group: str = "activity-ai-recommendations"
    kafka_auto_offset_reset: str = "earliest"
    kafka_session_timeout_ms: int = 30000
    kafka_heartbeat_interval_ms: int = 3000
    # Must exceed the worst-case retry time of a single event
    kafka_max_poll_interval_ms: int = 300000
    consumer_concurrency: int = Field(default=1, ge=1)

    # Gemini configuration
    gemini_api_url: str = (
        "https://generativelanguage.googleapis.com/v1beta/models/"
        "gemini-2.0-flash:generateContent"
    )
    gemini_api_key: str = ""
    gemini_timeout_seconds: float = 30.0

    # Retry configuration
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0.0)
    retry_multiplier: float = Field(default=2.0, ge=1.0)
    retry_max_delay_seconds: float = 30.0
    generation_attempt_timeout_seconds: float = 45.0

    # Store configuration
    store_backend: str = "postgres"  # postgres or memory
    database_url: Optional[str] = None
    database_pool_min_size: int = 1
    database_pool_max_size: int = 5

    # Shutdown
    shutdown_grace_seconds: float = 60.0


# Global settings instance
settings = Settings()
