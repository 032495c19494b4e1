"""MetricsCollector and log helper tests"""

import logging

import pytest

from monitoring.metrics import (
    MetricsCollector,
    get_metrics_collector,
    log_cache_event,
    log_model_fallback,
    log_source_switch,
)


class TestCounters:
    def test_cache_counters_per_namespace(self):
        metrics = MetricsCollector()
        metrics.record_cache_hit("response")
        metrics.record_cache_miss("response")
        metrics.record_cache_hit("query")

        assert metrics.response_cache_hit_rate == pytest.approx(0.5)
        assert metrics.query_cache_hit_rate == pytest.approx(1.0)

    def test_intent_sources(self):
        metrics = MetricsCollector()
        metrics.record_intent_source(from_model=True)
        metrics.record_intent_source(from_model=False)
        metrics.record_intent_source(from_model=False)

        assert metrics.intent_model == 1
        assert metrics.intent_fallback == 2
        assert metrics.intent_fallback_rate == pytest.approx(2 / 3)

    def test_data_sources(self):
        metrics = MetricsCollector()
        metrics.record_source("storage", success=True)
        metrics.record_source("storage", success=False)
        metrics.record_source("remote_api", success=True)

        assert metrics.storage_failure == 1
        assert metrics.remote_fallback_rate == pytest.approx(0.5)

    def test_request_timings(self):
        metrics = MetricsCollector()
        for duration in (0.1, 0.2, 0.3):
            metrics.record_request(duration)
        metrics.record_request(1.0, error=True)

        assert metrics.requests == 4
        assert metrics.pipeline_errors == 1
        assert metrics.avg_response_time == pytest.approx(0.4)
        assert metrics.p95_response_time == pytest.approx(1.0)

    def test_response_times_are_bounded(self):
        metrics = MetricsCollector()
        for _ in range(1005):
            metrics.record_request(0.01)

        assert len(metrics.response_times) == 1000

    def test_summary_and_reset(self):
        metrics = MetricsCollector()
        metrics.record_model_failure()
        metrics.record_model_profile_fallback()
        metrics.record_generation_fallback()

        summary = metrics.get_summary()
        assert summary["model"] == {"failures": 1, "profile_fallbacks": 1, "generation_fallbacks": 1}
        assert summary["pipeline"]["requests"] == 0

        metrics.reset()
        assert metrics.model_failures == 0
        assert metrics.response_times == []


def test_collector_is_process_wide():
    assert get_metrics_collector() is get_metrics_collector()


def test_log_helpers_use_unified_format(caplog):
    with caplog.at_level(logging.DEBUG, logger="monitoring.metrics"):
        log_source_switch("storage", "remote_api", "no results", "get_catalog")
        log_model_fallback("conversation", "timeout")
        log_cache_event("query", "invalidate", "product:7")

    messages = [record.getMessage() for record in caplog.records]
    assert "[Source switch] storage → remote_api | reason: no results | query: get_catalog" in messages
    assert "[Model fallback] conversation → queries | reason: timeout" in messages
    assert "[Cache] namespace: query | event: invalidate | key: product:7" in messages
