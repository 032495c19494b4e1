"""Fixed user-facing replies used when the model cannot compose one."""

from typing import Any, Dict

from services.models import IntentCategory

FALLBACK_TEMPLATES: Dict[IntentCategory, str] = {
    IntentCategory.CATALOG_BROWSE: (
        "🛍️ *CATÁLOGO DE PRODUCTOS*\n\n"
        "Aquí están nuestros productos disponibles.\n\n"
        '💬 Para ver más detalles, escribe el nombre del producto o di *"AYUDA"* para ver opciones.'
    ),
    IntentCategory.PRICE_INQUIRY: (
        "💰 *CONSULTA DE PRECIO*\n\n"
        "Por favor, menciona el nombre específico del producto que te interesa.\n\n"
        '💡 Ejemplo: *"¿Cuánto cuesta una laptop?"*'
    ),
    IntentCategory.STOCK_INQUIRY: (
        "📦 *CONSULTA DE STOCK*\n\n"
        "Por favor, menciona el nombre del producto.\n\n"
        '💡 Ejemplo: *"¿Tienes laptops disponibles?"*'
    ),
    IntentCategory.HELP: (
        "🤖 *AYUDA*\n\n"
        "Puedo ayudarte con:\n"
        "• Ver catálogo de productos\n"
        "• Consultar precios y stock\n"
        "• Hacer pedidos\n"
        "• Ver estado de pedidos\n\n"
        '💬 Di *"CATALOGO"* para empezar.'
    ),
    IntentCategory.GREETING: (
        "👋 *¡Hola! Bienvenido a KARDEX* 👋\n\n"
        "¿En qué puedo ayudarte hoy?\n\n"
        '💡 Di *"CATALOGO"* para ver productos o *"AYUDA"* para más opciones.'
    ),
    IntentCategory.OTHER: (
        "👋 *¡Hola!* 👋\n\n"
        "No estoy seguro de entenderte completamente.\n\n"
        '💡 Di *"AYUDA"* para ver qué puedo hacer por ti.'
    ),
}

APOLOGY_MESSAGE = (
    "😅 Lo siento, hubo un error al procesar tu mensaje.\n\n"
    "💡 Por favor intenta:\n"
    "• Reformular tu mensaje\n"
    "• Escribir *AYUDA* para ver opciones\n"
    "• Intentar de nuevo en unos momentos"
)

EMPTY_MESSAGE_REPLY = "No pude entender tu mensaje. Por favor, intenta de nuevo."

ORDER_FAILED_MESSAGE = "No pude procesar tu pedido. Por favor, intenta de nuevo."


def fallback_text(category: Any) -> str:
    """Template for a category; unrecognized categories get the generic one."""
    parsed = category if isinstance(category, IntentCategory) else IntentCategory.parse(category)
    return FALLBACK_TEMPLATES.get(parsed, FALLBACK_TEMPLATES[IntentCategory.OTHER])
