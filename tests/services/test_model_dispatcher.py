"""
ModelDispatcher tests
Covers:
1. Profile resolution and override merging
2. One-level fallback to the queries profile
3. Timeouts
4. JSON completions
"""

import threading

import pytest

from llm.llm_client import LLMClient
from monitoring.metrics import get_metrics_collector
from services.errors import InvalidModelResponseError, ModelError, ModelTimeoutError
from services.model_dispatcher import ModelDispatcher, default_profiles
from services.models import TaskCategory


class _StubLLM(LLMClient):
    """Replays scripted outcomes; an Exception instance is raised instead of returned."""

    def __init__(self, *outcomes, available=True):
        self.outcomes = list(outcomes)
        self.calls = []
        self.available = available

    def generate(self, prompt, system_prompt=None, **kwargs):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, **kwargs})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def is_available(self):
        if isinstance(self.available, Exception):
            raise self.available
        return self.available


class _BlockingLLM(LLMClient):
    def __init__(self):
        self.release = threading.Event()

    def generate(self, prompt, system_prompt=None, **kwargs):
        self.release.wait(5)
        return "late answer"


@pytest.fixture
def profiles():
    return default_profiles("test-model")


def _dispatcher(llm, profiles):
    return ModelDispatcher(llm, profiles=profiles, max_workers=2)


class TestProfiles:
    def test_default_table(self, profiles):
        queries = profiles[TaskCategory.QUERIES]
        orders = profiles[TaskCategory.ORDERS]
        conversation = profiles[TaskCategory.CONVERSATION]

        assert (queries.temperature, queries.top_p, queries.top_k, queries.timeout_ms) == (0.2, 0.9, 40, 8000)
        assert (orders.temperature, orders.timeout_ms) == (0.3, 10000)
        assert (conversation.temperature, conversation.top_p, conversation.top_k) == (0.5, 0.95, 50)
        assert {p.model_id for p in profiles.values()} == {"test-model"}

    def test_unknown_category_uses_queries(self, profiles):
        dispatcher = _dispatcher(_StubLLM("x"), profiles)

        assert dispatcher.profile_for("poetry") is profiles[TaskCategory.QUERIES]

    @pytest.mark.parametrize("task", list(TaskCategory))
    def test_enum_members_select_their_profile(self, profiles, task):
        dispatcher = _dispatcher(_StubLLM("x"), profiles)

        assert dispatcher.profile_for(task) is profiles[task]
        assert dispatcher.profile_for(task.value) is profiles[task]

    def test_overrides_reach_the_client(self, profiles):
        llm = _StubLLM("hola")
        dispatcher = _dispatcher(llm, profiles)

        dispatcher.complete("p", "s", "conversation", {"temperature": 0.9, "top_k": 10})

        call = llm.calls[0]
        assert call["temperature"] == 0.9
        assert call["top_k"] == 10
        assert call["top_p"] == 0.95, "non-overridden values come from the profile"
        assert call["system_prompt"] == "s"


class TestFallback:
    def test_non_queries_failure_retries_once_on_queries(self, profiles):
        llm = _StubLLM(RuntimeError("overloaded"), "respuesta")
        dispatcher = _dispatcher(llm, profiles)

        text = dispatcher.complete("p", None, TaskCategory.CONVERSATION)

        assert text == "respuesta"
        assert len(llm.calls) == 2
        assert llm.calls[1]["temperature"] == 0.2, "retry uses the queries profile"
        assert get_metrics_collector().model_profile_fallbacks == 1

    def test_queries_failure_is_not_retried(self, profiles):
        llm = _StubLLM(RuntimeError("down"))
        dispatcher = _dispatcher(llm, profiles)

        with pytest.raises(ModelError):
            dispatcher.complete("p", None, TaskCategory.QUERIES)
        assert len(llm.calls) == 1

    def test_double_failure_raises_original_error(self, profiles):
        llm = _StubLLM(RuntimeError("first"), RuntimeError("second"))
        dispatcher = _dispatcher(llm, profiles)

        with pytest.raises(ModelError) as excinfo:
            dispatcher.complete("p", None, TaskCategory.ORDERS)

        assert "first" in str(excinfo.value)
        assert excinfo.value.task_category == "orders"
        assert len(llm.calls) == 2

    def test_blank_completion_is_a_failure(self, profiles):
        dispatcher = _dispatcher(_StubLLM("   "), profiles)

        with pytest.raises(ModelError):
            dispatcher.complete("p")


class TestTimeout:
    def test_slow_call_raises_timeout(self, profiles):
        llm = _BlockingLLM()
        dispatcher = _dispatcher(llm, profiles)
        try:
            with pytest.raises(ModelTimeoutError):
                dispatcher.complete("p", None, TaskCategory.QUERIES, {"timeout_ms": 50})
        finally:
            llm.release.set()
            dispatcher.close()


class TestCompleteJson:
    def test_parses_first_object(self, profiles):
        llm = _StubLLM('Resultado: {"category": "greeting", "confidence": 0.9} fin')
        dispatcher = _dispatcher(llm, profiles)

        data = dispatcher.complete_json("clasifica", "sys", "queries", {"temperature": 0.2})

        assert data == {"category": "greeting", "confidence": 0.9}
        assert llm.calls[0]["prompt"].endswith(ModelDispatcher.JSON_INSTRUCTION)

    def test_invalid_json_raises_distinct_error(self, profiles):
        dispatcher = _dispatcher(_StubLLM("no tengo idea"), profiles)

        with pytest.raises(InvalidModelResponseError):
            dispatcher.complete_json("clasifica")

    def test_array_is_not_an_object(self, profiles):
        dispatcher = _dispatcher(_StubLLM('["greeting"]'), profiles)

        with pytest.raises(InvalidModelResponseError):
            dispatcher.complete_json("clasifica")


class TestHealth:
    def test_is_available_delegates(self, profiles):
        assert _dispatcher(_StubLLM("x", available=True), profiles).is_available() is True
        assert _dispatcher(_StubLLM("x", available=False), profiles).is_available() is False

    def test_probe_errors_mean_unavailable(self, profiles):
        dispatcher = _dispatcher(_StubLLM("x", available=ConnectionError("down")), profiles)

        assert dispatcher.is_available() is False
