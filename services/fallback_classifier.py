"""
Rule-based intent classifier
Used when the model is unreachable or answers with something unusable.
Rules are evaluated in a fixed priority order against normalized text.
"""

import logging
import re
import unicodedata
from typing import Any, Dict, Optional

from services.models import Action, Intent, IntentCategory, QueryName

logger = logging.getLogger(__name__)


def normalize_text(text: str) -> str:
    """
    Lower-case, strip diacritics, collapse punctuation to single spaces.

    "¿Cuánto cuesta el MOUSE?" → "cuanto cuesta el mouse"
    """
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = re.sub(r"[^\w\s]", " ", stripped)
    return re.sub(r"\s+", " ", stripped).strip()


# Query and connector words removed before taking the remainder as a product name
PRODUCT_STOPWORDS = (
    "cuanto cuesta", "a cuanto", "precio", "valor", "vale", "cuesta", "cuanto",
    "stock", "disponible", "disponibles", "hay", "tienes", "tiene", "tienen",
    "de", "del", "la", "el", "los", "las", "un", "una", "unos", "unas", "a",
    "me", "que", "por", "favor",
)

_STOPWORD_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(w) for w in PRODUCT_STOPWORDS) + r")\b"
)


def extract_product_name(text: str) -> Optional[str]:
    """
    Best-effort product name from a price/stock question

    Args:
        text: raw message

    Returns:
        The message minus query/connector words when at least 3 characters
        remain; otherwise the last (up to) 3 tokens of length ≥ 3; else None
    """
    normalized = normalize_text(text)
    cleaned = re.sub(r"\s+", " ", _STOPWORD_PATTERN.sub(" ", normalized)).strip()
    if len(cleaned) >= 3:
        return cleaned

    tokens = [t for t in normalized.split(" ") if len(t) >= 3]
    return " ".join(tokens[-3:]) if tokens else None


CATALOG_PATTERN = re.compile(r"\b(catalogo|productos|lista|muestrame|mostrar)\b")
PRICE_PATTERN = re.compile(r"\b(cuanto cuesta|precio|vale|a cuanto)\b")
STOCK_PATTERN = re.compile(r"\b(tienes|hay|disponible|stock)\b")
ORDER_PATTERN = re.compile(r"\b(quiero|necesito|dame|comprar|pedir|agregar)\b")
VIEW_ORDER_PATTERN = re.compile(r"\b(mi pedido|pedido actual|estado|ver pedido)\b")
CONFIRM_PATTERN = re.compile(r"\b(confirmar|confirmo|si|ok|okey|okay|acepto)\b")
CANCEL_PATTERN = re.compile(r"\b(cancelar|salir|no quiero|olvidalo|olvidate)\b")
GREETING_PATTERN = re.compile(r"\b(hola|hi|buenos dias|buenas tardes|buenas noches|que tal)\b")
HELP_PATTERN = re.compile(r"\b(ayuda|help|que puedo hacer|comandos)\b")

# Session states in which a bare "si"/"ok" means "confirm the order"
CONFIRMABLE_STATES = ("awaiting_confirmation", "in_progress")


class FallbackIntentClassifier:
    """
    Deterministic regex classifier

    Priority: catalog → price → stock → order → view order → confirmation
    (only while an order awaits confirmation) → cancellation → greeting →
    help → other (confidence 0.3).

    Example:
        classifier = FallbackIntentClassifier()
        intent = classifier.classify("cuanto cuesta el mouse")
        # intent.category == IntentCategory.PRICE_INQUIRY
        # intent.parameters == {"product": "mouse"}
    """

    def __init__(self, catalog_limit: int = 20, lookup_limit: int = 3):
        self.catalog_limit = catalog_limit
        self.lookup_limit = lookup_limit

    def _intent(self, category: IntentCategory, confidence: float, **kwargs) -> Intent:
        return Intent(category=category, confidence=confidence, source="fallback", **kwargs)

    def _product_lookup(self, category: IntentCategory, text: str) -> Intent:
        product = extract_product_name(text)
        return self._intent(
            category,
            0.7,
            parameters={"product": product},
            required_query=QueryName.PRODUCT_SEARCH if product else None,
            query_params={"term": product, "limit": self.lookup_limit} if product else {},
        )

    def classify(self, text: str, session_state: Optional[Dict[str, Any]] = None) -> Intent:
        """
        Classify a message without the model

        Args:
            text: raw message
            session_state: conversation state (``state`` gates confirmations)

        Returns:
            Intent tagged with source="fallback"
        """
        session_state = session_state or {}
        normalized = normalize_text(text)

        if CATALOG_PATTERN.search(normalized):
            return self._intent(
                IntentCategory.CATALOG_BROWSE,
                0.7,
                required_query=QueryName.GET_CATALOG,
                query_params={"filters": {"active": True}, "limit": self.catalog_limit},
            )

        if PRICE_PATTERN.search(normalized):
            return self._product_lookup(IntentCategory.PRICE_INQUIRY, text)

        if STOCK_PATTERN.search(normalized):
            return self._product_lookup(IntentCategory.STOCK_INQUIRY, text)

        if ORDER_PATTERN.search(normalized):
            return self._intent(
                IntentCategory.PLACE_ORDER,
                0.7,
                parameters={"products": []},
                action=Action.INIT_ORDER,
            )

        if VIEW_ORDER_PATTERN.search(normalized):
            return self._intent(
                IntentCategory.VIEW_ORDER,
                0.7,
                required_query=QueryName.GET_ORDER,
                query_params={"phone": session_state.get("phone")},
                action=Action.VIEW_ORDER,
            )

        if CONFIRM_PATTERN.search(normalized):
            if session_state.get("state", "idle") in CONFIRMABLE_STATES:
                return self._intent(
                    IntentCategory.CONFIRM_ORDER,
                    0.8,
                    action=Action.CONFIRM_ORDER,
                )

        if CANCEL_PATTERN.search(normalized):
            return self._intent(
                IntentCategory.CANCEL_ORDER,
                0.7,
                action=Action.CANCEL_ORDER,
            )

        if GREETING_PATTERN.search(normalized):
            return self._intent(IntentCategory.GREETING, 0.8)

        if HELP_PATTERN.search(normalized):
            return self._intent(IntentCategory.HELP, 0.8)

        logger.debug("No fallback rule matched: %s", normalized[:50])
        return self._intent(IntentCategory.OTHER, 0.3)
