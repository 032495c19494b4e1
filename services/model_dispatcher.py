"""
Model dispatcher
Responsibilities:
1. Map a task category to a sampling/timeout profile
2. Run completions with a per-profile timeout
3. Retry once on the queries profile when another profile fails
4. JSON completions with strict object extraction
"""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional

from llm import config as llm_config
from llm.json_utils import parse_json_payload
from llm.llm_client import LLMClient
from monitoring.metrics import MetricsCollector, get_metrics_collector, log_model_fallback
from services.errors import InvalidModelResponseError, ModelError, ModelTimeoutError
from services.models import TaskCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelProfile:
    """Sampling and timeout settings for one task category."""
    task_category: TaskCategory
    model_id: str
    temperature: float
    top_p: float
    top_k: int
    timeout_ms: int


def default_profiles(model_id: Optional[str] = None) -> Dict[TaskCategory, ModelProfile]:
    """
    Profile table: queries are near-deterministic, orders get more time,
    conversation samples more freely.
    """
    model_id = model_id or llm_config.llm_settings.active_model()
    return {
        TaskCategory.QUERIES: ModelProfile(TaskCategory.QUERIES, model_id, 0.2, 0.9, 40, 8000),
        TaskCategory.ORDERS: ModelProfile(TaskCategory.ORDERS, model_id, 0.3, 0.9, 40, 10000),
        TaskCategory.CONVERSATION: ModelProfile(TaskCategory.CONVERSATION, model_id, 0.5, 0.95, 50, 8000),
    }


_OVERRIDE_KEYS = ("temperature", "top_p", "top_k", "timeout_ms")


def _discard_late_result(future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is None:
        logger.debug("Discarded completion that arrived after its timeout")
    else:
        logger.debug("Abandoned completion finished with error: %s", exc)


class ModelDispatcher:
    """
    Task-aware front door to the completion client

    Usage:
        dispatcher = ModelDispatcher(create_llm_client())
        text = dispatcher.complete(prompt, system_prompt, "conversation")
        data = dispatcher.complete_json(prompt, system_prompt, "queries", {"temperature": 0.2})
    """

    JSON_INSTRUCTION = "\n\nRespond ONLY with a valid JSON object, no additional text."

    def __init__(
        self,
        llm_client: LLMClient,
        profiles: Optional[Mapping[TaskCategory, ModelProfile]] = None,
        max_workers: int = 4,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Args:
            llm_client: completion client
            profiles: profile table (defaults to default_profiles())
            max_workers: threads available for in-flight completions
            metrics: metrics collector (defaults to the process-wide one)
        """
        self.llm_client = llm_client
        self.profiles: Dict[TaskCategory, ModelProfile] = dict(profiles or default_profiles())
        self.metrics = metrics or get_metrics_collector()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="model-call")

        logger.info(
            "ModelDispatcher ready (%s)",
            ", ".join(f"{p.task_category.value}={p.model_id}" for p in self.profiles.values()),
        )

    def profile_for(self, task_category: Any) -> ModelProfile:
        """Profile for a task category; unknown categories use the queries profile."""
        task = TaskCategory.parse(task_category)
        return self.profiles.get(task) or self.profiles[TaskCategory.QUERIES]

    @staticmethod
    def _merge(profile: ModelProfile, overrides: Optional[Mapping[str, Any]]) -> ModelProfile:
        if not overrides:
            return profile
        changes = {key: overrides[key] for key in _OVERRIDE_KEYS if overrides.get(key) is not None}
        if overrides.get("timeout") is not None and "timeout_ms" not in changes:
            changes["timeout_ms"] = overrides["timeout"]
        return replace(profile, **changes)

    def _call(self, prompt: str, system_prompt: Optional[str], profile: ModelProfile) -> str:
        logger.debug(
            "Completing with profile %s (model=%s, temperature=%s, prompt=%d chars)",
            profile.task_category.value, profile.model_id, profile.temperature, len(prompt),
        )
        future = self._executor.submit(
            self.llm_client.generate,
            prompt,
            system_prompt,
            temperature=profile.temperature,
            top_p=profile.top_p,
            top_k=profile.top_k,
        )
        try:
            text = future.result(timeout=profile.timeout_ms / 1000)
        except FutureTimeoutError as exc:
            # The request keeps running in its worker; its result is dropped
            future.cancel()
            future.add_done_callback(_discard_late_result)
            raise ModelTimeoutError(
                f"completion exceeded {profile.timeout_ms}ms",
                profile.task_category.value,
            ) from exc
        except Exception as exc:
            raise ModelError(
                f"completion failed: {type(exc).__name__}: {exc}",
                profile.task_category.value,
            ) from exc

        if not text or not str(text).strip():
            raise ModelError("completion returned no text", profile.task_category.value)
        return str(text)

    def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        task_category: Any = TaskCategory.QUERIES,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Text completion with one-level profile fallback

        Args:
            prompt: user prompt
            system_prompt: system instructions
            task_category: queries / orders / conversation (unknown → queries)
            overrides: temperature, top_p, top_k, timeout_ms

        Returns:
            Completion text

        Raises:
            ModelError: the call failed (and, for non-queries profiles, the
                queries retry failed too); the original error is raised
        """
        profile = self._merge(self.profile_for(task_category), overrides)

        try:
            return self._call(prompt, system_prompt, profile)
        except ModelError as exc:
            self.metrics.record_model_failure()
            logger.error("Completion failed on profile %s: %s", profile.task_category.value, exc)
            if profile.task_category == TaskCategory.QUERIES:
                raise

            log_model_fallback(profile.task_category.value, str(exc))
            self.metrics.record_model_profile_fallback()
            try:
                return self._call(prompt, system_prompt, self.profiles[TaskCategory.QUERIES])
            except ModelError as fallback_exc:
                self.metrics.record_model_failure()
                logger.error("Queries-profile retry failed: %s", fallback_exc)
                raise exc

    def complete_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        task_category: Any = TaskCategory.QUERIES,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        JSON completion

        Returns:
            The first balanced JSON object in the completion

        Raises:
            ModelError: the completion itself failed
            InvalidModelResponseError: no parsable JSON object in the completion
        """
        text = self.complete(prompt + self.JSON_INSTRUCTION, system_prompt, task_category, overrides)
        try:
            return parse_json_payload(text)
        except json.JSONDecodeError as exc:
            logger.warning("Model returned invalid JSON: %s", text[:200])
            raise InvalidModelResponseError(
                "model did not return a valid JSON object",
                TaskCategory.parse(task_category).value,
            ) from exc

    def is_available(self) -> bool:
        try:
            return bool(self.llm_client.is_available())
        except Exception as exc:
            logger.warning("Availability probe failed: %s", exc)
            return False

    def has_model(self) -> bool:
        try:
            return bool(self.llm_client.has_model())
        except Exception as exc:
            logger.warning("Model probe failed: %s", exc)
            return False

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
