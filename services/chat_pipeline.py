"""
Chat pipeline
Responsibilities: one request/response call composing intent resolution,
query execution and reply generation, with order delegation and uniform
degradation on failure.
"""

import logging
import time
from dataclasses import replace
from typing import Any, Optional

from integration.cache_service import CacheService
from monitoring.metrics import MetricsCollector, get_metrics_collector
from services.config import PipelineConfig, get_pipeline_config
from services.fallback_classifier import FallbackIntentClassifier
from services.intent_resolver import IntentResolver
from services.model_dispatcher import ModelDispatcher
from services.models import (
    ERROR_CATEGORY,
    Action,
    ChatContext,
    Intent,
    IntentCategory,
    PipelineResult,
)
from services.protocols import CatalogAPI, CatalogStorage, OrderProcessor, SessionStore
from services.query_executor import QueryExecutor
from services.response_generator import ResponseGenerator
from services.response_templates import APOLOGY_MESSAGE, EMPTY_MESSAGE_REPLY, ORDER_FAILED_MESSAGE

logger = logging.getLogger(__name__)


def _value(member: Any) -> Optional[str]:
    if member is None:
        return None
    return getattr(member, "value", member)


class ChatPipeline:
    """
    Intent → query → reply pipeline

    Flow:
    1. blank input → fixed low-confidence OTHER reply
    2. resolve the intent
    3. place_order → order processor (success / alternative intent / failure)
    4. action-only intents carrying an action return immediately
    5. run the declared query (errors ignored)
    6. generate the reply (template on failure)
    7. action + data without text → action and data only
    8. full structured result

    Nothing raises out of ``process``; unexpected failures become a single
    apology reply with category "error" and confidence 0.1.

    Usage:
        pipeline = ChatPipeline.create(llm_client=create_llm_client())
        result = pipeline.process("cuanto cuesta el mouse", ChatContext(session_state=state))
    """

    def __init__(
        self,
        resolver: IntentResolver,
        executor: QueryExecutor,
        generator: ResponseGenerator,
        dispatcher: ModelDispatcher,
        order_processor: Optional[OrderProcessor] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.resolver = resolver
        self.executor = executor
        self.generator = generator
        self.dispatcher = dispatcher
        self.order_processor = order_processor
        self.metrics = metrics or get_metrics_collector()

    @classmethod
    def create(
        cls,
        llm_client,
        storage: Optional[CatalogStorage] = None,
        remote_api: Optional[CatalogAPI] = None,
        session_store: Optional[SessionStore] = None,
        order_processor: Optional[OrderProcessor] = None,
        config: Optional[PipelineConfig] = None,
        cache: Optional[CacheService] = None,
    ) -> "ChatPipeline":
        """
        Wire every stage around one shared cache service

        Args:
            llm_client: completion client (see llm.create_llm_client)
            storage: structured storage, optional
            remote_api: remote catalog API, optional
            session_store: session store for pending-order lookups
            order_processor: order-processing collaborator
            config: pipeline settings (defaults to get_pipeline_config())
            cache: cache service to share (a new one is built from config otherwise)
        """
        config = config or get_pipeline_config()
        cache = cache or CacheService(
            response_ttl=config.response_cache_ttl,
            response_maxsize=config.response_cache_maxsize,
            query_ttl=config.query_cache_ttl,
            query_maxsize=config.query_cache_maxsize,
            eviction_ratio=config.eviction_ratio,
        )
        dispatcher = ModelDispatcher(llm_client, max_workers=config.model_worker_threads)
        resolver = IntentResolver(
            dispatcher,
            cache,
            FallbackIntentClassifier(catalog_limit=config.catalog_default_limit),
            cache_key_length=config.intent_cache_key_length,
            history_turns=config.history_turns,
            history_turn_chars=config.history_turn_chars,
        )
        executor = QueryExecutor(
            storage,
            remote_api,
            cache,
            session_store=session_store,
            catalog_limit=config.catalog_default_limit,
            search_limit=config.search_default_limit,
        )
        generator = ResponseGenerator(dispatcher, cache)
        return cls(resolver, executor, generator, dispatcher, order_processor)

    def process(self, text: str, context: Optional[ChatContext] = None) -> PipelineResult:
        """
        Handle one inbound message

        Args:
            text: message text (already transcribed when it came from voice)
            context: session state, recent history and voice flag

        Returns:
            PipelineResult
        """
        context = context or ChatContext()

        if not text or not isinstance(text, str) or not text.strip():
            return PipelineResult(
                intent=IntentCategory.OTHER.value,
                confidence=0.1,
                message=EMPTY_MESSAGE_REPLY,
            )

        started = time.perf_counter()
        try:
            result = self._run(text, context)
        except Exception as exc:
            logger.error("Pipeline failed: %s", exc, exc_info=True)
            self.metrics.record_request(time.perf_counter() - started, error=True)
            return PipelineResult(intent=ERROR_CATEGORY, confidence=0.1, message=APOLOGY_MESSAGE)

        self.metrics.record_request(time.perf_counter() - started)
        logger.info(
            "Message processed: intent=%s confidence=%.2f action=%s has_message=%s",
            result.intent, result.confidence, result.action, result.message is not None,
        )
        return result

    def _run(self, text: str, context: ChatContext) -> PipelineResult:
        session_state = context.session_state or {}
        history = context.conversation_history or []

        logger.info(
            "Processing message (%d chars, voice=%s, history=%d, state=%s)",
            len(text), context.is_from_voice, len(history), session_state.get("state"),
        )

        intent = self.resolver.resolve(text, session_state, history)

        if intent.category == IntentCategory.PLACE_ORDER and self.order_processor is not None:
            delegated = self._delegate_order(text, history, intent)
            if isinstance(delegated, PipelineResult):
                return delegated
            intent = delegated

        if intent.is_action_only and intent.action:
            logger.info("Action-only intent %s, skipping query and reply", intent.category.value)
            return PipelineResult(
                intent=intent.category.value,
                confidence=intent.confidence,
                action=intent.action.value,
            )

        query_data = None
        if intent.required_query:
            query_result = self.executor.execute(intent, session_state)
            if query_result.error:
                logger.warning("Query %s reported: %s", _value(intent.required_query), query_result.error)
            else:
                query_data = query_result.data

        try:
            response = self.generator.generate(intent, query_data, context)
        except Exception as exc:
            logger.error("Reply generation raised: %s", exc, exc_info=True)
            response = self.generator.fallback_response(intent, query_data)

        if intent.action and query_data and not response.text:
            return PipelineResult(
                intent=intent.category.value,
                confidence=intent.confidence,
                action=intent.action.value,
                data=query_data,
            )

        return PipelineResult(
            intent=intent.category.value,
            confidence=intent.confidence,
            action=_value(intent.action),
            message=response.text,
            data=response.data if response.data is not None else query_data,
            buttons=response.buttons,
        )

    def _delegate_order(self, text: str, history, intent: Intent):
        """
        Hand an order message to the order processor

        Returns:
            PipelineResult to return as-is, or the (possibly re-categorized)
            intent to continue with
        """
        logger.info("Delegating order message to the order processor")
        try:
            outcome = self.order_processor.process_order(text, history)
        except Exception as exc:
            logger.error("Order processor failed, continuing with the pipeline: %s", exc, exc_info=True)
            return intent

        if outcome.success:
            return PipelineResult(
                intent=IntentCategory.PLACE_ORDER.value,
                confidence=0.9,
                action=outcome.action or Action.ADD_PRODUCTS_TO_ORDER.value,
                data=outcome.data,
            )

        if outcome.intent:
            category = IntentCategory.parse(outcome.intent)
            if category is not None:
                logger.info("Order processor detected another intent: %s", category.value)
                return replace(intent, category=category)
            logger.warning("Order processor reported an unknown intent: %s", outcome.intent)
            return intent

        return PipelineResult(
            intent=IntentCategory.PLACE_ORDER.value,
            confidence=0.5,
            message=outcome.message or ORDER_FAILED_MESSAGE,
        )

    def is_available(self) -> bool:
        """Whether the completion collaborator answers its health probe."""
        try:
            return self.dispatcher.is_available()
        except Exception as exc:
            logger.error("Availability check failed: %s", exc)
            return False

    def close(self) -> None:
        self.dispatcher.close()
