"""Prometheus metrics for recommendation processing"""
from prometheus_client import Counter, Histogram

# Counters
events_processed = Counter(
    'activity_ai_events_processed_total',
    'Activity events processed by the dispatcher',
    ['outcome'],
)

generation_attempts = Counter(
    'activity_ai_generation_attempts_total',
    'Calls made to the generative backend'
)

generation_failures = Counter(
    'activity_ai_generation_failures_total',
    'Activities for which every generation attempt failed'
)

parse_fallbacks = Counter(
    'activity_ai_parse_fallbacks_total',
    'Backend replies replaced by the default recommendation'
)

persistence_failures = Counter(
    'activity_ai_persistence_failures_total',
    'Recommendation store writes that failed'
)

# Histograms
processing_duration = Histogram(
    'activity_ai_processing_duration_seconds',
    'Time spent processing one activity event'
)
