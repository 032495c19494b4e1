"""
Pipeline data models

Closed enumerations for intent categories, query names, actions and task
categories, the request-scoped value objects passed between stages, and the
pydantic schema used to validate model-produced intents.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def normalize_label(value: Any) -> str:
    """Normalize an enum-ish label: camelCase, hyphens and spaces become snake_case."""
    if isinstance(value, Enum):
        value = value.value
    text = str(value or "").strip()
    text = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", text)
    return re.sub(r"[\s\-]+", "_", text).lower()


class IntentCategory(str, Enum):
    CATALOG_BROWSE = "catalog_browse"
    PRICE_INQUIRY = "price_inquiry"
    STOCK_INQUIRY = "stock_inquiry"
    PRODUCT_SEARCH = "product_search"
    PLACE_ORDER = "place_order"
    VIEW_ORDER = "view_order"
    CANCEL_ORDER = "cancel_order"
    CONFIRM_ORDER = "confirm_order"
    REGISTER = "register"
    LOGIN = "login"
    UPDATE_PROFILE = "update_profile"
    HELP = "help"
    GREETING = "greeting"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Any) -> Optional["IntentCategory"]:
        label = normalize_label(value)
        try:
            return cls(label)
        except ValueError:
            return _LEGACY_CATEGORIES.get(label)


# Labels the Spanish-prompted models of the first deployment answered with
_LEGACY_CATEGORIES = {
    "ver_catalogo": IntentCategory.CATALOG_BROWSE,
    "consultar_precio": IntentCategory.PRICE_INQUIRY,
    "consultar_stock": IntentCategory.STOCK_INQUIRY,
    "buscar_productos": IntentCategory.PRODUCT_SEARCH,
    "hacer_pedido": IntentCategory.PLACE_ORDER,
    "ver_pedido": IntentCategory.VIEW_ORDER,
    "cancelar_pedido": IntentCategory.CANCEL_ORDER,
    "confirmar_pedido": IntentCategory.CONFIRM_ORDER,
    "registrar": IntentCategory.REGISTER,
    "modificar_perfil": IntentCategory.UPDATE_PROFILE,
    "ayuda": IntentCategory.HELP,
    "saludo": IntentCategory.GREETING,
    "otro": IntentCategory.OTHER,
}

ACTION_ONLY_CATEGORIES = frozenset({IntentCategory.CONFIRM_ORDER, IntentCategory.CANCEL_ORDER})

# Category reported by the pipeline when it had to give up
ERROR_CATEGORY = "error"


class QueryName(str, Enum):
    GET_CATALOG = "get_catalog"
    PRODUCT_SEARCH = "product_search"
    GET_ONE = "get_one"
    CHECK_STOCK = "check_stock"
    GET_CUSTOMER = "get_customer"
    GET_ORDER = "get_order"

    @classmethod
    def parse(cls, value: Any) -> Optional["QueryName"]:
        label = normalize_label(value)
        try:
            return cls(label)
        except ValueError:
            return _LEGACY_QUERIES.get(label)


_LEGACY_QUERIES = {
    "get_productos": QueryName.GET_CATALOG,
    "buscar_productos": QueryName.PRODUCT_SEARCH,
    "get_producto": QueryName.GET_ONE,
    "verificar_stock": QueryName.CHECK_STOCK,
    "get_cliente": QueryName.GET_CUSTOMER,
    "get_pedido": QueryName.GET_ORDER,
}


class Action(str, Enum):
    ADD_PRODUCTS_TO_ORDER = "add_products_to_order"
    VIEW_ORDER = "view_order"
    CANCEL_ORDER = "cancel_order"
    INIT_ORDER = "init_order"
    CONFIRM_ORDER = "confirm_order"
    SHOW_YAPE_PAYMENT = "show_yape_payment"
    SHOW_PLIN_PAYMENT = "show_plin_payment"
    REMOVE_PRODUCT = "remove_product"
    UPDATE_PRODUCT_QUANTITY = "update_product_quantity"
    VIEW_ORDER_HISTORY = "view_order_history"
    MODIFY_PROFILE = "modify_profile"

    @classmethod
    def parse(cls, value: Any) -> Optional["Action"]:
        try:
            return cls(normalize_label(value))
        except ValueError:
            return None


class TaskCategory(str, Enum):
    QUERIES = "queries"
    ORDERS = "orders"
    CONVERSATION = "conversation"

    @classmethod
    def parse(cls, value: Any) -> "TaskCategory":
        """Unknown or missing task categories resolve to QUERIES."""
        try:
            return cls(normalize_label(value))
        except ValueError:
            return cls.QUERIES


@dataclass
class Intent:
    """
    Structured interpretation of one inbound message

    Attributes:
        category: one of the 14 intent categories
        confidence: classification certainty in [0, 1]
        parameters: open map of extracted entities (product, products, term, ...)
        required_query: query to run before generating; an unrecognized name is
            kept verbatim so the executor can report it
        query_params: arguments for that query
        action: caller-side directive (confirm/cancel order, ...)
        notes: free-text remarks from the classifier
        source: "model" or "fallback"
    """
    category: IntentCategory
    confidence: float
    parameters: Dict[str, Any] = field(default_factory=dict)
    required_query: Optional[Union[QueryName, str]] = None
    query_params: Dict[str, Any] = field(default_factory=dict)
    action: Optional[Action] = None
    notes: Optional[str] = None
    source: str = "model"

    @property
    def is_action_only(self) -> bool:
        return self.category in ACTION_ONLY_CATEGORIES


class IntentPayload(BaseModel):
    """Schema for the JSON object the classifier model must return."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    category: IntentCategory = Field(
        validation_alias=AliasChoices("category", "intent", "intencion")
    )
    confidence: float = Field(
        default=0.5, validation_alias=AliasChoices("confidence", "confianza")
    )
    parameters: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("parameters", "parametros")
    )
    required_query: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("required_query", "requiredQuery", "query", "queryNecesaria"),
    )
    query_params: Dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("query_params", "queryParams")
    )
    action: Optional[Action] = None
    notes: Optional[str] = Field(default=None, validation_alias=AliasChoices("notes", "notas"))

    @field_validator("category", mode="before")
    @classmethod
    def _parse_category(cls, value):
        category = IntentCategory.parse(value)
        if category is None:
            raise ValueError(f"unknown intent category: {value!r}")
        return category

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        try:
            number = float(value)
        except (TypeError, ValueError):
            return 0.5
        return max(0.0, min(1.0, number))

    @field_validator("parameters", "query_params", mode="before")
    @classmethod
    def _coerce_mapping(cls, value):
        return value if isinstance(value, dict) else {}

    @field_validator("required_query", mode="before")
    @classmethod
    def _parse_query(cls, value):
        if value is None or str(value).strip().lower() in ("", "null", "none"):
            return None
        query = QueryName.parse(value)
        return query.value if query else str(value)

    @field_validator("action", mode="before")
    @classmethod
    def _parse_action(cls, value):
        if value is None:
            return None
        return Action.parse(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _stringify_notes(cls, value):
        return None if value is None else str(value)

    def to_intent(self) -> Intent:
        query = QueryName.parse(self.required_query) if self.required_query else None
        return Intent(
            category=self.category,
            confidence=self.confidence,
            parameters=dict(self.parameters),
            required_query=query or self.required_query,
            query_params=dict(self.query_params),
            action=self.action,
            notes=self.notes,
            source="model",
        )


@dataclass
class QueryResult:
    """Outcome of one query: data or an error label, never both."""
    data: Any = None
    error: Optional[str] = None


@dataclass
class ResponsePayload:
    text: Optional[str]
    data: Any = None
    buttons: Optional[List[Dict[str, str]]] = None


@dataclass
class ChatContext:
    """Per-request facts supplied by the transport layer."""
    session_state: Dict[str, Any] = field(default_factory=dict)
    conversation_history: List[Dict[str, Any]] = field(default_factory=list)
    is_from_voice: bool = False


@dataclass
class PipelineResult:
    """Structured reply handed back to the transport layer."""
    intent: str
    confidence: float
    action: Optional[str] = None
    message: Optional[str] = None
    data: Any = None
    buttons: Optional[List[Dict[str, str]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def session_facts(session_state: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Conversation state, authentication flag and display name from a session.

    Accepts both ``authenticated``/``client_name`` and the underscored keys
    written by the messaging layer.
    """
    session_state = session_state or {}
    return {
        "state": session_state.get("state") or "idle",
        "authenticated": bool(
            session_state.get("authenticated", session_state.get("_authenticated", False))
        ),
        "name": session_state.get("client_name") or session_state.get("_client_name") or "",
    }
