"""
Response generator
Responsibilities:
1. Build an intent-specific prompt from fetched data and session context
2. Compose the reply with the conversation profile
3. Cache replies for the common, data-light categories
4. Fixed templates when the model cannot answer
"""

import hashlib
import json
import logging
from typing import Any, Dict, List, Optional

from integration.cache_service import CacheService
from monitoring.metrics import MetricsCollector, get_metrics_collector
from services.model_dispatcher import ModelDispatcher
from services.models import (
    ChatContext,
    Intent,
    IntentCategory,
    ResponsePayload,
    TaskCategory,
    session_facts,
)
from services.response_templates import fallback_text

logger = logging.getLogger(__name__)

CACHEABLE_CATEGORIES = frozenset({
    IntentCategory.CATALOG_BROWSE,
    IntentCategory.HELP,
    IntentCategory.GREETING,
})

CATALOG_MAX_ROWS = 20
SEARCH_MAX_ROWS = 15
SIMILAR_MAX_ROWS = 3

ORDER_STATES = ("in_progress", "awaiting_confirmation")
PAYMENT_STATES = ("awaiting_payment",)


def _money(value: Any) -> str:
    try:
        return f"{float(value or 0):.2f}"
    except (TypeError, ValueError):
        return "0.00"


def _stock(product: Dict[str, Any]) -> int:
    try:
        return int(product.get("stock") or 0)
    except (TypeError, ValueError):
        return 0


def _product_rows(products: List[Dict[str, Any]], max_rows: int) -> List[str]:
    rows = []
    for idx, product in enumerate(products[:max_rows], start=1):
        mark = "✅" if _stock(product) > 0 else "❌"
        rows.append(f"{idx}. {product.get('name', 'Producto')} - S/ {_money(product.get('price'))} {mark}")
    return rows


def _as_products(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        return [item for item in data if isinstance(item, dict)]
    if isinstance(data, dict) and data.get("name"):
        return [data]
    return []


class ResponseGenerator:
    """
    Model-composed replies

    Usage:
        generator = ResponseGenerator(dispatcher, cache)
        payload = generator.generate(intent, products, ChatContext(session_state=state))
    """

    BASE_SYSTEM_PROMPT = """You are a friendly, professional and genuinely helpful sales assistant for KARDEX.
Write natural, conversational replies in Spanish.

FORMAT:
- WhatsApp-flavored Markdown (bold with *, lists with •, fitting emojis)
- Clear, concise and friendly
- Personalize using the user's context
- Add a useful suggestion when it fits
- Use emojis in moderation

STYLE:
- Conversational and warm
- Professional but close
- Oriented to helping

Answer ONLY with the reply text: no JSON, no explanations."""

    def __init__(
        self,
        dispatcher: ModelDispatcher,
        cache: CacheService,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.dispatcher = dispatcher
        self.cache = cache
        self.metrics = metrics or get_metrics_collector()

    # ==================== Entry point ====================

    def generate(self, intent: Intent, data: Any = None, context: Optional[ChatContext] = None) -> ResponsePayload:
        """
        Compose the reply for a resolved intent

        Args:
            intent: resolved intent
            data: query result data (list, dict or None)
            context: session state, history and voice flag

        Returns:
            ResponsePayload; text is None for action-only categories
        """
        context = context or ChatContext()

        if intent.is_action_only:
            logger.info("Action-only intent %s, no reply composed", intent.category.value)
            return ResponsePayload(text=None, data=data, buttons=None)

        try:
            prompt = self.build_prompt(intent, data, context)
            system_prompt = self.build_system_prompt(context)

            logger.info(
                "Generating reply for %s (data items: %d)",
                intent.category.value,
                len(data) if isinstance(data, (list, dict)) else (1 if data else 0),
            )

            cache_key = None
            if intent.category in CACHEABLE_CATEGORIES:
                cache_key = self.cache_key(intent.category, prompt)
                cached = self.cache.get_response(cache_key)
                if cached is not None:
                    return ResponsePayload(text=cached["text"], data=data, buttons=cached["buttons"])

            text = self.dispatcher.complete(
                prompt, system_prompt, TaskCategory.CONVERSATION, {"temperature": 0.5}
            ).strip()

            payload = ResponsePayload(text=text, data=data, buttons=self.build_buttons(intent, data))
            if cache_key and payload.text:
                self.cache.set_response(cache_key, {"text": payload.text, "buttons": payload.buttons})
            return payload

        except Exception as exc:
            logger.error("Reply generation failed, using template: %s", exc)
            return self.fallback_response(intent, data)

    def fallback_response(self, intent: Intent, data: Any = None) -> ResponsePayload:
        """Fixed template for the intent category, no buttons."""
        self.metrics.record_generation_fallback()
        return ResponsePayload(text=fallback_text(intent.category), data=data, buttons=None)

    @staticmethod
    def cache_key(category: IntentCategory, prompt: str) -> str:
        digest = hashlib.md5(prompt[:200].encode("utf-8")).hexdigest()[:16]
        return f"response:{category.value}:{digest}"

    # ==================== Prompts ====================

    def build_system_prompt(self, context: ChatContext) -> str:
        session_state = context.session_state or {}
        facts = session_facts(session_state)
        lines = []
        if session_state.get("state"):
            lines.append(f"- Current state: {facts['state']}")
        if facts["authenticated"]:
            lines.append("- Registered customer: yes")
            if facts["name"]:
                lines.append(f"- Customer name: {facts['name']}")
        if context.conversation_history:
            lines.append("- Previous conversation available")
        if context.is_from_voice:
            lines.append("- The message was transcribed from a voice note")

        user_context = "\n".join(lines) if lines else "- No additional context"
        return f"{self.BASE_SYSTEM_PROMPT}\n\nUSER CONTEXT:\n{user_context}"

    def build_prompt(self, intent: Intent, data: Any, context: ChatContext) -> str:
        builders = {
            IntentCategory.CATALOG_BROWSE: lambda: self._catalog_prompt(_as_products(data)),
            IntentCategory.PRICE_INQUIRY: lambda: self._price_prompt(intent, _as_products(data)),
            IntentCategory.STOCK_INQUIRY: lambda: self._stock_prompt(intent, data),
            IntentCategory.PRODUCT_SEARCH: lambda: self._search_prompt(intent, _as_products(data)),
            IntentCategory.VIEW_ORDER: lambda: self._order_prompt(data),
            IntentCategory.HELP: lambda: self._help_prompt(context.session_state),
            IntentCategory.GREETING: lambda: self._greeting_prompt(context.session_state),
            IntentCategory.PLACE_ORDER: self._order_intent_prompt,
        }
        builder = builders.get(intent.category)
        if builder is None:
            return self._generic_prompt(intent, data)
        return builder()

    def _catalog_prompt(self, products: List[Dict[str, Any]]) -> str:
        lines = ["Write a reply showing the KARDEX product catalog.", ""]
        if not products:
            lines.append("There are no products available right now.")
            lines.append("")
            lines.append("Write a friendly reply saying so and suggesting to check back later.")
            return "\n".join(lines)

        lines.append(f"AVAILABLE PRODUCTS ({len(products)} products):")
        lines.append("")
        lines.extend(_product_rows(products, CATALOG_MAX_ROWS))
        if len(products) > CATALOG_MAX_ROWS:
            lines.append("")
            lines.append(f"... and {len(products) - CATALOG_MAX_ROWS} more products")
        lines.append("")
        lines.append("Write an attractive WhatsApp Markdown reply including:")
        lines.append("- A highlighted title with an emoji")
        lines.append("- The product list with prices and availability")
        lines.append("- How to order or see more details")
        lines.append("- Useful suggestions (filters, search)")
        return "\n".join(lines)

    def _price_prompt(self, intent: Intent, products: List[Dict[str, Any]]) -> str:
        name = intent.parameters.get("product") or "producto"
        lines = [f'The user asks for the price of: "{name}"', ""]
        if not products:
            lines.append(f'No product matched "{name}".')
            lines.append("")
            lines.append("Write a friendly reply saying so and suggesting to:")
            lines.append("- Check the product name")
            lines.append("- See the full catalog")
            lines.append("- Search with other words")
            return "\n".join(lines)

        primary = products[0]
        stock = _stock(primary)
        lines.append("PRODUCT FOUND:")
        lines.append(f"- Name: {primary.get('name')}")
        lines.append(f"- Price: S/ {_money(primary.get('price'))}")
        lines.append(f"- Stock: {f'{stock} units' if stock > 0 else 'sold out'}")

        similar = products[1:1 + SIMILAR_MAX_ROWS]
        if similar:
            lines.append("")
            lines.append(f"SIMILAR PRODUCTS FOUND ({len(products) - 1} more):")
            for idx, product in enumerate(similar, start=2):
                lines.append(f"{idx}. {product.get('name')} - S/ {_money(product.get('price'))}")

        lines.append("")
        lines.append("Write a clear, friendly reply with:")
        lines.append("- The price highlighted")
        lines.append("- Stock information")
        lines.append("- How to place an order")
        if similar:
            lines.append("- A mention of the similar products available")
        return "\n".join(lines)

    def _stock_prompt(self, intent: Intent, data: Any) -> str:
        if isinstance(data, dict) and ("available" in data or "insufficient" in data):
            lines = ["The user asks whether several products are available.", "", "AVAILABLE:"]
            for item in data.get("available") or []:
                lines.append(f"- {item.get('name')}: {item.get('stock')} units, S/ {_money(item.get('price'))}")
            lines.append("")
            lines.append("NOT ENOUGH STOCK OR NOT FOUND:")
            for item in data.get("insufficient") or []:
                if item.get("reason") == "product_not_found":
                    lines.append(f"- {item.get('name')}: not found")
                else:
                    lines.append(f"- {item.get('name')}: requested {item.get('requested')}, in stock {item.get('stock')}")
            lines.append("")
            lines.append("Write a clear reply listing what can be ordered and suggesting alternatives for the rest.")
            return "\n".join(lines)

        products = _as_products(data)
        name = intent.parameters.get("product") or "producto"
        lines = [f'The user asks about the availability of: "{name}"', ""]
        if not products:
            lines.append(f'No product matched "{name}".')
            lines.append("")
            lines.append("Write a friendly reply saying so and suggesting to see the catalog.")
            return "\n".join(lines)

        primary = products[0]
        stock = _stock(primary)
        lines.append("PRODUCT FOUND:")
        lines.append(f"- Name: {primary.get('name')}")
        lines.append(f"- Stock available: {stock} units")
        lines.append(f"- Price: S/ {_money(primary.get('price'))}")
        lines.append("")
        lines.append("Write a clear reply stating:")
        if stock > 0:
            lines.append("- Availability confirmed")
            lines.append("- Quantity available")
            lines.append("- How to place an order")
        else:
            lines.append("- The product is sold out")
            lines.append("- Similar products that are available")
        return "\n".join(lines)

    def _search_prompt(self, intent: Intent, products: List[Dict[str, Any]]) -> str:
        term = intent.parameters.get("term") or intent.query_params.get("term") or ""
        filters = intent.parameters.get("filters") or {}
        lines = [f'The user searches products with: "{term}"', ""]

        price_max = filters.get("price_max", filters.get("priceMax"))
        if price_max:
            lines.append(f"Filter: maximum price S/ {price_max}")
        if filters.get("in_stock_only", filters.get("inStockOnly")):
            lines.append("Filter: available products only")
        lines.append("")

        if not products:
            lines.append("No products matched those criteria.")
            lines.append("")
            lines.append("Write a friendly reply suggesting to:")
            lines.append("- Change the search words")
            lines.append("- See the full catalog")
            lines.append("- Try other filters")
            return "\n".join(lines)

        lines.append(f"PRODUCTS FOUND ({len(products)}):")
        lines.append("")
        lines.extend(_product_rows(products, SEARCH_MAX_ROWS))
        lines.append("")
        lines.append("Write a reply with:")
        lines.append("- The number of results")
        lines.append("- The list of products found")
        lines.append("- How to order or see more details")
        return "\n".join(lines)

    def _order_prompt(self, order: Any) -> str:
        lines = ["The user wants to see their current order.", ""]
        order = order if isinstance(order, dict) else {}

        order_lines = order.get("lines") or []
        flat_products = order.get("products") or []

        if order_lines:
            lines.append("CURRENT ORDER:")
            lines.append(f"- Number: {order.get('order_number') or 'in progress'}")
            lines.append(f"- Total: S/ {_money(order.get('total'))}")
            lines.append("")
            lines.append("PRODUCTS:")
            for idx, line in enumerate(order_lines, start=1):
                product = line.get("product") or {}
                name = product.get("name") or line.get("name") or "Producto"
                lines.append(f"{idx}. {name} x{line.get('quantity', 1)} = S/ {_money(line.get('subtotal'))}")
            lines.append("")
            lines.append("Write a reply with:")
            lines.append("- A clear order summary")
            lines.append("- The total highlighted")
            lines.append("- Options: confirm, modify or cancel")
        elif flat_products:
            lines.append("CURRENT ORDER:")
            lines.append(f"- Total: S/ {_money(order.get('total'))}")
            lines.append("")
            lines.append("PRODUCTS:")
            for idx, product in enumerate(flat_products, start=1):
                quantity = product.get("quantity") or 1
                try:
                    subtotal = float(product.get("unit_price") or 0) * float(quantity)
                except (TypeError, ValueError):
                    subtotal = 0.0
                lines.append(f"{idx}. {product.get('name', 'Producto')} x{quantity} = S/ {_money(subtotal)}")
            lines.append("")
            lines.append("Write a reply with a clear summary, the total highlighted and the options confirm, modify or cancel.")
        else:
            lines.append("The user has no current order.")
            lines.append("")
            lines.append("Write a friendly reply saying so and suggesting to place an order.")
        return "\n".join(lines)

    def _help_prompt(self, session_state: Dict[str, Any]) -> str:
        facts = session_facts(session_state)
        lines = [
            "The user asks for help.",
            "",
            "CONTEXT:",
            f"- State: {facts['state']}",
            f"- Authenticated: {'yes' if facts['authenticated'] else 'no'}",
            "",
            "Write a contextual help reply with:",
            "- The general commands available",
        ]
        if facts["state"] in ORDER_STATES:
            lines.append("- Order commands (view, modify, confirm, cancel)")
        if facts["state"] in PAYMENT_STATES:
            lines.append("- Payment commands (Yape, Plin, confirm payment)")
        lines.append("- Usage examples")
        lines.append("- Useful tips")
        return "\n".join(lines)

    def _greeting_prompt(self, session_state: Dict[str, Any]) -> str:
        facts = session_facts(session_state)
        lines = ["The user says hello.", "", "CONTEXT:"]
        if facts["authenticated"] and facts["name"]:
            lines.append("- Registered customer")
            lines.append(f"- Name: {facts['name']}")
            lines.append("")
            lines.append(f"Write a warm, personalized greeting for {facts['name']}, including:")
        else:
            lines.append("- New or unauthenticated user")
            lines.append("")
            lines.append("Write a friendly welcome greeting, including:")
        lines.append("- Welcome to KARDEX")
        lines.append("- The main options (catalog, orders)")
        lines.append("- How to get started")
        lines.append("- An invitation to ask questions")
        return "\n".join(lines)

    @staticmethod
    def _order_intent_prompt() -> str:
        return "The user wants to place an order. The products will be handled by the order system; acknowledge it briefly."

    @staticmethod
    def _generic_prompt(intent: Intent, data: Any) -> str:
        lines = [f"The user's intent is: {intent.category.value}", ""]
        if intent.parameters:
            lines.append("Detected parameters:")
            lines.append(json.dumps(intent.parameters, indent=2, ensure_ascii=False, default=str))
            lines.append("")
        if data:
            lines.append("Available data:")
            lines.append(json.dumps(data, indent=2, ensure_ascii=False, default=str))
            lines.append("")
        lines.append("Write an appropriate reply for the user's intent.")
        return "\n".join(lines)

    # ==================== Buttons ====================

    @staticmethod
    def build_buttons(intent: Intent, data: Any) -> Optional[List[Dict[str, str]]]:
        """Quick replies derived from the intent category alone."""
        category = intent.category
        if category == IntentCategory.CATALOG_BROWSE:
            return [
                {"label": "🔍 Buscar", "id": "search"},
                {"label": "🛒 Hacer Pedido", "id": "order"},
            ]
        if category in (IntentCategory.PRICE_INQUIRY, IntentCategory.STOCK_INQUIRY):
            if data:
                return [
                    {"label": "🛒 Agregar al Pedido", "id": "add_to_order"},
                    {"label": "📋 Ver Catálogo", "id": "catalog"},
                ]
            return None
        if category == IntentCategory.VIEW_ORDER:
            return [
                {"label": "✅ Confirmar", "id": "confirm_order"},
                {"label": "✏️ Modificar", "id": "modify_order"},
                {"label": "❌ Cancelar", "id": "cancel_order"},
            ]
        return None
