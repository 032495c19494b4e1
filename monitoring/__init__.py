"""
Operations monitoring
Unified log formats and metrics collection
"""

from monitoring.metrics import (
    MetricsCollector,
    get_metrics_collector,
    log_source_switch,
    log_cache_event,
    log_model_fallback,
)

__all__ = [
    "MetricsCollector",
    "get_metrics_collector",
    "log_source_switch",
    "log_cache_event",
    "log_model_fallback",
]
