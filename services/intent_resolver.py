"""
Intent resolver
Responsibilities: turn a raw chat message into a structured Intent using the
model (queries profile), falling back to the rule-based classifier, with
short-lived caching of model results.
"""

import logging
from copy import deepcopy
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from integration.cache_service import CacheService
from monitoring.metrics import MetricsCollector, get_metrics_collector
from services.errors import ModelError
from services.fallback_classifier import FallbackIntentClassifier
from services.model_dispatcher import ModelDispatcher
from services.models import (
    Action,
    Intent,
    IntentCategory,
    IntentPayload,
    QueryName,
    TaskCategory,
    session_facts,
)

logger = logging.getLogger(__name__)


def _enum_values(enum_cls) -> str:
    return " | ".join(member.value for member in enum_cls)


def _copy_intent(intent: Intent) -> Intent:
    """Per-request copy; nested filter maps must not be shared either."""
    return deepcopy(intent)


class IntentResolver:
    """
    Model-backed intent resolution

    Flow:
    1. blank text → OTHER (0.1), no model call
    2. response-cache lookup keyed by the lower-cased message prefix
    3. JSON completion validated against IntentPayload
    4. any failure → FallbackIntentClassifier (not cached)
    """

    SYSTEM_PROMPT = f"""You are the intent classifier of a sales chatbot for a product catalog (KARDEX).
Users write in Spanish, casually, sometimes through voice transcription.

IMPORTANT:
- Ignore filler sounds such as "mm", "ehh", "um" (voice pauses).
- Understand misspellings and mispronunciations ("lapto" = "laptop", "maus" = "mouse").

INTENT CATEGORIES:
- catalog_browse: wants to see available products ("catálogo", "productos", "lista", "muéstrame")
- price_inquiry: asks the price of a product ("cuánto cuesta", "precio", "a cuánto")
- stock_inquiry: asks whether a product is available ("tienes", "hay", "disponible", "stock")
- product_search: searches with terms or filters ("buscar", "menos de X", "solo disponibles")
- place_order: wants to buy or add products ("quiero", "necesito", "dame", "comprar", "agregar")
- view_order: wants to see the current order ("mi pedido", "pedido actual", "estado")
- cancel_order: wants to cancel ("cancelar", "no quiero", "olvídalo")
- confirm_order: confirms the order ("confirmo", "sí", "ok", "acepto")
- register: wants to sign up
- login: wants to sign in ("ingresar", "iniciar sesión", "mi cuenta")
- update_profile: wants to change personal data
- help: asks for help ("ayuda", "qué puedo hacer", "comandos")
- greeting: greets ("hola", "buenos días", "qué tal")
- other: none of the above

AVAILABLE QUERIES:
- get_catalog: product catalog (query_params: filters, limit)
- product_search: search products by term (query_params: term, limit)
- get_one: one product (query_params: name or id)
- check_stock: stock for several products (query_params: products)
- get_customer: customer data (query_params: phone)
- get_order: order status (query_params: order_id or phone)

Answer ONLY with a JSON object of this shape (no markdown, no extra text):
{{
  "category": "{_enum_values(IntentCategory)}",
  "confidence": 0.0-1.0,
  "parameters": {{
    "product": "product name if any",
    "products": [{{"name": "exact text", "quantity": number}}],
    "quantity": number if any,
    "term": "search term if any",
    "filters": {{"price_max": number or null, "price_min": number or null, "in_stock_only": boolean, "category": "string or null"}},
    "order_id": number or null,
    "phone": "string or null"
  }},
  "required_query": "{_enum_values(QueryName)} | null",
  "query_params": {{"filters": {{}}, "term": "", "limit": 0, "name": "", "id": null, "products": [], "phone": "", "order_id": null}},
  "action": "{_enum_values(Action)} | null",
  "notes": "optional remarks"
}}"""

    def __init__(
        self,
        dispatcher: ModelDispatcher,
        cache: CacheService,
        fallback: Optional[FallbackIntentClassifier] = None,
        cache_key_length: int = 50,
        history_turns: int = 3,
        history_turn_chars: int = 100,
        metrics: Optional[MetricsCollector] = None,
    ):
        """
        Args:
            dispatcher: model dispatcher
            cache: shared cache service (response namespace)
            fallback: rule-based classifier
            cache_key_length: message characters used in the cache key
            history_turns: most recent turns included in the prompt
            history_turn_chars: characters kept per turn
        """
        self.dispatcher = dispatcher
        self.cache = cache
        self.fallback = fallback or FallbackIntentClassifier()
        self.cache_key_length = cache_key_length
        self.history_turns = history_turns
        self.history_turn_chars = history_turn_chars
        self.metrics = metrics or get_metrics_collector()

    def cache_key(self, text: str) -> str:
        return f"intent:{text.lower().strip()[: self.cache_key_length]}"

    def build_prompt(
        self,
        text: str,
        session_state: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> str:
        """Classifier prompt: message, recent turns (oldest first), session facts."""
        lines = [f'User says: "{text}"', ""]

        recent = (history or [])[-self.history_turns:] if self.history_turns > 0 else []
        if recent:
            lines.append("Previous conversation:")
            for idx, turn in enumerate(recent, start=1):
                speaker = "User" if turn.get("role") == "user" else "Bot"
                content = str(turn.get("content") or "")[: self.history_turn_chars]
                lines.append(f"{idx}. {speaker}: {content}")
            lines.append("")

        facts = session_facts(session_state)
        lines.append("Current user state:")
        lines.append(f"- State: {facts['state']}")
        lines.append(f"- Authenticated: {'yes' if facts['authenticated'] else 'no'}")
        if facts["name"]:
            lines.append(f"- Name: {facts['name']}")
        lines.append("")

        lines.append("Analyse the user's message and determine the main intent with every parameter it needs.")
        return "\n".join(lines)

    def resolve(
        self,
        text: str,
        session_state: Optional[Dict[str, Any]] = None,
        history: Optional[List[Dict[str, Any]]] = None,
    ) -> Intent:
        """
        Resolve the intent of a message

        Args:
            text: raw message
            session_state: conversation state
            history: previous turns ({"role", "content"}), oldest first

        Returns:
            Intent (never raises)
        """
        if not text or not isinstance(text, str) or not text.strip():
            return Intent(category=IntentCategory.OTHER, confidence=0.1, source="fallback")

        session_state = session_state or {}

        try:
            normalized = text.lower().strip()
            key = self.cache_key(text)
            cached = self.cache.get_response(key)
            # The key is a prefix; only reuse an entry produced by this exact text
            if cached is not None and cached.get("text") == normalized:
                logger.debug("Intent cache hit: %s", key)
                return _copy_intent(cached["intent"])

            prompt = self.build_prompt(text, session_state, history)
            try:
                payload = self.dispatcher.complete_json(
                    prompt,
                    self.SYSTEM_PROMPT,
                    TaskCategory.QUERIES,
                    {"temperature": 0.2},
                )
                intent = IntentPayload.model_validate(payload).to_intent()
            except (ModelError, ValidationError) as exc:
                logger.warning("Model classification unusable, using rule fallback: %s", exc)
                self.metrics.record_intent_source(from_model=False)
                return self.fallback.classify(text, session_state)

            self.metrics.record_intent_source(from_model=True)
            logger.info(
                "Intent resolved: %s (confidence %.2f, query=%s, action=%s)",
                intent.category.value,
                intent.confidence,
                getattr(intent.required_query, "value", intent.required_query),
                intent.action.value if intent.action else None,
            )

            self.cache.set_response(key, {"text": normalized, "intent": _copy_intent(intent)})
            return intent

        except Exception as exc:
            logger.error("Intent resolution failed unexpectedly: %s", exc, exc_info=True)
            self.metrics.record_intent_source(from_model=False)
            return self.fallback.classify(text, session_state)

    def clear_cache(self) -> int:
        """Drop cached intents produced by this resolver."""
        removed = self.cache.invalidate_by_tag("response", "intent:")
        logger.info("IntentResolver cache cleared (%d entries)", removed)
        return removed
