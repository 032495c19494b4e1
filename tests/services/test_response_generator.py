"""
ResponseGenerator tests
Covers action-only short circuit, prompt building, reply caching, templates
and quick-reply buttons.
"""

import pytest

from integration.cache_service import CacheService
from monitoring.metrics import get_metrics_collector
from services.errors import ModelError
from services.models import Action, ChatContext, Intent, IntentCategory, TaskCategory
from services.response_generator import ResponseGenerator
from services.response_templates import FALLBACK_TEMPLATES, fallback_text

PRODUCTS = [
    {"id": i, "name": f"Producto {i}", "price": 10 + i, "stock": i % 2} for i in range(1, 26)
]


class _StubDispatcher:
    def __init__(self, outcome="¡Claro! Aquí tienes 😊"):
        self.outcome = outcome
        self.calls = []

    def complete(self, prompt, system_prompt=None, task_category=TaskCategory.QUERIES, overrides=None):
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "task_category": task_category,
            "overrides": overrides,
        })
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def cache(timer):
    return CacheService(timer=timer)


def _generator(cache, outcome="¡Claro! Aquí tienes 😊"):
    dispatcher = _StubDispatcher(outcome)
    return ResponseGenerator(dispatcher, cache), dispatcher


class TestGenerate:
    @pytest.mark.parametrize("category", [IntentCategory.CONFIRM_ORDER, IntentCategory.CANCEL_ORDER])
    def test_action_only_returns_no_text(self, cache, category):
        generator, dispatcher = _generator(cache)

        payload = generator.generate(Intent(category, 0.9, action=Action.CONFIRM_ORDER), {"x": 1})

        assert payload.text is None
        assert payload.buttons is None
        assert payload.data == {"x": 1}
        assert dispatcher.calls == []

    def test_uses_conversation_profile(self, cache):
        generator, dispatcher = _generator(cache, "  Precio: S/ 25.00  ")

        payload = generator.generate(
            Intent(IntentCategory.PRICE_INQUIRY, 0.9, parameters={"product": "mouse"}),
            [{"id": 1, "name": "Mouse", "price": 25, "stock": 3}],
        )

        assert payload.text == "Precio: S/ 25.00"
        assert dispatcher.calls[0]["task_category"] is TaskCategory.CONVERSATION
        assert dispatcher.calls[0]["overrides"] == {"temperature": 0.5}

    def test_model_failure_uses_template(self, cache):
        generator, _ = _generator(cache, ModelError("timeout"))

        payload = generator.generate(Intent(IntentCategory.HELP, 0.8), None)

        assert payload.text == FALLBACK_TEMPLATES[IntentCategory.HELP]
        assert payload.buttons is None
        assert get_metrics_collector().generation_fallbacks == 1

    def test_unrecognized_category_template(self, cache):
        generator, _ = _generator(cache, ModelError("down"))

        payload = generator.generate(Intent(IntentCategory.REGISTER, 0.8), None)

        assert payload.text == FALLBACK_TEMPLATES[IntentCategory.OTHER]


class TestCaching:
    def test_greeting_reply_is_cached(self, cache):
        generator, dispatcher = _generator(cache)
        intent = Intent(IntentCategory.GREETING, 0.8)

        first = generator.generate(intent, None, ChatContext())
        second = generator.generate(intent, None, ChatContext())

        assert first.text == second.text
        assert len(dispatcher.calls) == 1

    def test_cache_key_shape(self):
        key = ResponseGenerator.cache_key(IntentCategory.HELP, "prompt")

        assert key.startswith("response:help:")
        assert len(key.split(":")[-1]) == 16

    def test_price_replies_are_not_cached(self, cache):
        generator, dispatcher = _generator(cache)
        intent = Intent(IntentCategory.PRICE_INQUIRY, 0.9, parameters={"product": "mouse"})

        generator.generate(intent, [])
        generator.generate(intent, [])

        assert len(dispatcher.calls) == 2

    def test_failures_are_not_cached(self, cache):
        generator, dispatcher = _generator(cache, ModelError("down"))
        intent = Intent(IntentCategory.GREETING, 0.8)

        generator.generate(intent, None)
        generator.generate(intent, None)

        assert len(dispatcher.calls) == 2


class TestPrompts:
    def test_catalog_lists_twenty_rows_and_counts_rest(self, cache):
        generator, _ = _generator(cache)

        prompt = generator.build_prompt(Intent(IntentCategory.CATALOG_BROWSE, 0.9), PRODUCTS, ChatContext())

        assert "AVAILABLE PRODUCTS (25 products)" in prompt
        assert "20. Producto 20" in prompt
        assert "21. Producto 21" not in prompt
        assert "... and 5 more products" in prompt

    def test_price_includes_up_to_three_similar(self, cache):
        generator, _ = _generator(cache)
        intent = Intent(IntentCategory.PRICE_INQUIRY, 0.9, parameters={"product": "producto"})

        prompt = generator.build_prompt(intent, PRODUCTS[:6], ChatContext())

        assert "- Name: Producto 1" in prompt
        assert "- Price: S/ 11.00" in prompt
        assert "SIMILAR PRODUCTS FOUND (5 more)" in prompt
        assert "4. Producto 4" in prompt
        assert "5. Producto 5" not in prompt

    def test_search_caps_at_fifteen_rows(self, cache):
        generator, _ = _generator(cache)
        intent = Intent(IntentCategory.PRODUCT_SEARCH, 0.9, parameters={"term": "producto", "filters": {"price_max": 40}})

        prompt = generator.build_prompt(intent, PRODUCTS, ChatContext())

        assert "15. Producto 15" in prompt
        assert "16. Producto 16" not in prompt
        assert "Filter: maximum price S/ 40" in prompt

    def test_stock_sold_out(self, cache):
        generator, _ = _generator(cache)
        intent = Intent(IntentCategory.STOCK_INQUIRY, 0.9, parameters={"product": "teclado"})

        prompt = generator.build_prompt(intent, [{"name": "Teclado", "price": 80, "stock": 0}], ChatContext())

        assert "- Stock available: 0 units" in prompt
        assert "The product is sold out" in prompt

    def test_order_summary_from_lines(self, cache):
        generator, _ = _generator(cache)
        order = {
            "order_number": "P-0015",
            "total": 51,
            "lines": [{"product": {"name": "Mouse"}, "quantity": 2, "subtotal": 51}],
        }

        prompt = generator.build_prompt(Intent(IntentCategory.VIEW_ORDER, 0.9), order, ChatContext())

        assert "- Number: P-0015" in prompt
        assert "1. Mouse x2 = S/ 51.00" in prompt
        assert "- Total: S/ 51.00" in prompt

    def test_order_summary_from_flat_products(self, cache):
        generator, _ = _generator(cache)
        order = {"total": 50, "products": [{"name": "Mouse", "quantity": 2, "unit_price": 25}]}

        prompt = generator.build_prompt(Intent(IntentCategory.VIEW_ORDER, 0.9), order, ChatContext())

        assert "1. Mouse x2 = S/ 50.00" in prompt

    def test_no_order(self, cache):
        generator, _ = _generator(cache)

        prompt = generator.build_prompt(Intent(IntentCategory.VIEW_ORDER, 0.9), None, ChatContext())

        assert "no current order" in prompt

    def test_help_adds_order_commands_during_an_order(self, cache):
        generator, _ = _generator(cache)
        help_intent = Intent(IntentCategory.HELP, 0.8)

        in_order = generator.build_prompt(help_intent, None, ChatContext(session_state={"state": "awaiting_confirmation"}))
        paying = generator.build_prompt(help_intent, None, ChatContext(session_state={"state": "awaiting_payment"}))
        idle = generator.build_prompt(help_intent, None, ChatContext())

        assert "Order commands" in in_order
        assert "Payment commands" in paying
        assert "Order commands" not in idle and "Payment commands" not in idle

    def test_greeting_personalized_when_authenticated(self, cache):
        generator, _ = _generator(cache)
        context = ChatContext(session_state={"_authenticated": True, "_client_name": "Ana"})

        prompt = generator.build_prompt(Intent(IntentCategory.GREETING, 0.8), None, context)

        assert "personalized greeting for Ana" in prompt

    def test_generic_prompt_echoes_parameters(self, cache):
        generator, _ = _generator(cache)
        intent = Intent(IntentCategory.UPDATE_PROFILE, 0.7, parameters={"email": "ana@example.com"})

        prompt = generator.build_prompt(intent, None, ChatContext())

        assert "update_profile" in prompt
        assert "ana@example.com" in prompt

    def test_system_prompt_context(self, cache):
        generator, _ = _generator(cache)
        context = ChatContext(
            session_state={"state": "in_progress", "_authenticated": True, "_client_name": "Ana"},
            conversation_history=[{"role": "user", "content": "hola"}],
            is_from_voice=True,
        )

        system_prompt = generator.build_system_prompt(context)

        assert system_prompt.startswith(ResponseGenerator.BASE_SYSTEM_PROMPT)
        assert "- Current state: in_progress" in system_prompt
        assert "- Customer name: Ana" in system_prompt
        assert "- Previous conversation available" in system_prompt
        assert "voice note" in system_prompt

    def test_system_prompt_without_context(self, cache):
        generator, _ = _generator(cache)

        assert "- No additional context" in generator.build_system_prompt(ChatContext())


class TestButtons:
    def test_catalog(self):
        buttons = ResponseGenerator.build_buttons(Intent(IntentCategory.CATALOG_BROWSE, 0.9), [])

        assert [b["id"] for b in buttons] == ["search", "order"]
        assert all(set(b) == {"label", "id"} for b in buttons)

    def test_price_with_and_without_data(self):
        intent = Intent(IntentCategory.PRICE_INQUIRY, 0.9)

        assert [b["id"] for b in ResponseGenerator.build_buttons(intent, [{"name": "Mouse"}])] == ["add_to_order", "catalog"]
        assert ResponseGenerator.build_buttons(intent, []) is None

    def test_view_order(self):
        buttons = ResponseGenerator.build_buttons(Intent(IntentCategory.VIEW_ORDER, 0.9), None)

        assert [b["id"] for b in buttons] == ["confirm_order", "modify_order", "cancel_order"]

    def test_others_have_none(self):
        assert ResponseGenerator.build_buttons(Intent(IntentCategory.GREETING, 0.9), None) is None


def test_fallback_text_accepts_strings():
    assert fallback_text("greeting") == FALLBACK_TEMPLATES[IntentCategory.GREETING]
    assert fallback_text("error") == FALLBACK_TEMPLATES[IntentCategory.OTHER]
