"""
Operations monitoring
Unified log formats and pipeline counters
"""

import logging
import time
from typing import Dict, Optional, Any
from dataclasses import dataclass, field
from threading import Lock


logger = logging.getLogger(__name__)


@dataclass
class MetricsCollector:
    """
    Metrics collector

    Tracks the key operational signals of the chat pipeline:
    - cache hit rates (response/query)
    - intent classification source (model vs regex fallback)
    - data source usage (storage vs remote API) and failures
    - model failures, profile fallbacks, template replies
    - request latency
    """

    response_cache_hits: int = 0
    response_cache_misses: int = 0
    query_cache_hits: int = 0
    query_cache_misses: int = 0

    intent_model: int = 0
    intent_fallback: int = 0

    storage_success: int = 0
    storage_failure: int = 0
    remote_success: int = 0
    remote_failure: int = 0

    model_failures: int = 0
    model_profile_fallbacks: int = 0
    generation_fallbacks: int = 0

    requests: int = 0
    pipeline_errors: int = 0

    # Seconds
    response_times: list = field(default_factory=list)

    _lock: Lock = field(default_factory=Lock, repr=False)

    start_time: float = field(default_factory=time.time)

    def record_cache_hit(self, namespace: str):
        """Record a cache hit for a namespace"""
        with self._lock:
            if namespace == "response":
                self.response_cache_hits += 1
            else:
                self.query_cache_hits += 1

    def record_cache_miss(self, namespace: str):
        """Record a cache miss for a namespace"""
        with self._lock:
            if namespace == "response":
                self.response_cache_misses += 1
            else:
                self.query_cache_misses += 1

    def record_intent_source(self, from_model: bool):
        with self._lock:
            if from_model:
                self.intent_model += 1
            else:
                self.intent_fallback += 1

    def record_source(self, source: str, success: bool):
        """
        Record a data-source attempt

        Args:
            source: "storage" or "remote"
            success: whether it returned usable data
        """
        with self._lock:
            if source == "storage":
                if success:
                    self.storage_success += 1
                else:
                    self.storage_failure += 1
            else:
                if success:
                    self.remote_success += 1
                else:
                    self.remote_failure += 1

    def record_model_failure(self):
        with self._lock:
            self.model_failures += 1

    def record_model_profile_fallback(self):
        with self._lock:
            self.model_profile_fallbacks += 1

    def record_generation_fallback(self):
        with self._lock:
            self.generation_fallbacks += 1

    def record_request(self, duration: float, error: bool = False):
        """
        Record one pipeline request

        Args:
            duration: elapsed seconds
            error: whether it ended in the generic apology
        """
        with self._lock:
            self.requests += 1
            if error:
                self.pipeline_errors += 1
            self.response_times.append(duration)
            # Keep the latest 1000 samples
            if len(self.response_times) > 1000:
                self.response_times = self.response_times[-1000:]

    @property
    def response_cache_hit_rate(self) -> float:
        total = self.response_cache_hits + self.response_cache_misses
        return self.response_cache_hits / total if total > 0 else 0.0

    @property
    def query_cache_hit_rate(self) -> float:
        total = self.query_cache_hits + self.query_cache_misses
        return self.query_cache_hits / total if total > 0 else 0.0

    @property
    def intent_fallback_rate(self) -> float:
        total = self.intent_model + self.intent_fallback
        return self.intent_fallback / total if total > 0 else 0.0

    @property
    def remote_fallback_rate(self) -> float:
        """Share of successful lookups served by the remote API"""
        total_success = self.storage_success + self.remote_success
        return self.remote_success / total_success if total_success > 0 else 0.0

    @property
    def avg_response_time(self) -> float:
        return sum(self.response_times) / len(self.response_times) if self.response_times else 0.0

    @property
    def p95_response_time(self) -> float:
        if not self.response_times:
            return 0.0
        sorted_times = sorted(self.response_times)
        idx = int(len(sorted_times) * 0.95)
        return sorted_times[idx] if idx < len(sorted_times) else sorted_times[-1]

    @property
    def uptime_seconds(self) -> float:
        return time.time() - self.start_time

    def get_summary(self) -> Dict[str, Any]:
        """
        Summary of all counters

        Returns:
            Nested dictionary suitable for logging or a status endpoint
        """
        with self._lock:
            return {
                "uptime_seconds": self.uptime_seconds,
                "cache": {
                    "response_hit_rate": f"{self.response_cache_hit_rate:.2%}",
                    "response_hits": self.response_cache_hits,
                    "response_misses": self.response_cache_misses,
                    "query_hit_rate": f"{self.query_cache_hit_rate:.2%}",
                    "query_hits": self.query_cache_hits,
                    "query_misses": self.query_cache_misses,
                },
                "intent": {
                    "model": self.intent_model,
                    "fallback": self.intent_fallback,
                    "fallback_rate": f"{self.intent_fallback_rate:.2%}",
                },
                "sources": {
                    "remote_fallback_rate": f"{self.remote_fallback_rate:.2%}",
                    "storage_success": self.storage_success,
                    "storage_failure": self.storage_failure,
                    "remote_success": self.remote_success,
                    "remote_failure": self.remote_failure,
                },
                "model": {
                    "failures": self.model_failures,
                    "profile_fallbacks": self.model_profile_fallbacks,
                    "generation_fallbacks": self.generation_fallbacks,
                },
                "pipeline": {
                    "requests": self.requests,
                    "errors": self.pipeline_errors,
                    "avg_response_time": f"{self.avg_response_time:.3f}s",
                    "p95_response_time": f"{self.p95_response_time:.3f}s",
                    "sample_count": len(self.response_times),
                },
            }

    def reset(self):
        """Reset all counters"""
        with self._lock:
            self.response_cache_hits = 0
            self.response_cache_misses = 0
            self.query_cache_hits = 0
            self.query_cache_misses = 0
            self.intent_model = 0
            self.intent_fallback = 0
            self.storage_success = 0
            self.storage_failure = 0
            self.remote_success = 0
            self.remote_failure = 0
            self.model_failures = 0
            self.model_profile_fallbacks = 0
            self.generation_fallbacks = 0
            self.requests = 0
            self.pipeline_errors = 0
            self.response_times.clear()
            self.start_time = time.time()


_global_metrics: Optional[MetricsCollector] = None
_metrics_lock = Lock()


def get_metrics_collector() -> MetricsCollector:
    """
    Process-wide metrics collector (singleton)

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        with _metrics_lock:
            if _global_metrics is None:
                _global_metrics = MetricsCollector()
                logger.info("✓ MetricsCollector initialised")
    return _global_metrics


def log_source_switch(
    from_source: str,
    to_source: str,
    reason: str,
    query: Optional[str] = None
):
    """
    Log a data-source switch (unified format)

    Args:
        from_source: source that failed (storage/remote)
        to_source: source tried next
        reason: why the switch happened
        query: query name (optional)
    """
    logger.warning(
        "[Source switch] %s → %s | reason: %s%s",
        from_source,
        to_source,
        reason,
        f" | query: {query}" if query else "",
    )


def log_cache_event(
    namespace: str,
    event_type: str,
    key: str,
):
    """
    Log a cache event (unified format)

    Args:
        namespace: response/query
        event_type: hit/miss/set/invalidate/clear
        key: cache key (truncated to 50 characters)
    """
    level = logging.DEBUG if event_type in ("hit", "miss", "set") else logging.INFO
    shown = f"{key[:50]}..." if len(key) > 50 else key
    logger.log(level, "[Cache] namespace: %s | event: %s | key: %s", namespace, event_type, shown)


def log_model_fallback(task_category: str, reason: str):
    """
    Log a model profile fallback (unified format)

    Args:
        task_category: profile that failed
        reason: failure description
    """
    logger.warning("[Model fallback] %s → queries | reason: %s", task_category, reason)
