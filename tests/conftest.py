"""Shared fixtures for the pipeline tests."""

import pytest

from monitoring.metrics import get_metrics_collector


class FakeTimer:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def timer():
    return FakeTimer()


@pytest.fixture(autouse=True)
def reset_metrics():
    """Every test starts from zeroed process-wide counters."""
    get_metrics_collector().reset()
    yield
    get_metrics_collector().reset()
