"""
Message classification and prompt assembly for the chat assistant.

The assistant answers in Spanish and only from the retrieved catalog
context; every value is passed through template variables so catalog text
containing braces never breaks the template.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.prompts import ChatPromptTemplate

from catalog_assistant.core.config import settings
from catalog_assistant.models.schemas import ChatTurn, ProductAttributes
from catalog_assistant.services.json_visitor import MarkdownJsonRenderer
from catalog_assistant.services.keywords import fold_accents

NO_PRODUCTS_SENTENCE = (
    "NO DISPONEMOS de productos para esta aplicación específica en nuestro catálogo actual."
)
APOLOGY = (
    "Lo siento, ocurrió un error técnico. Por favor intenta nuevamente "
    "o contacta al administrador del sistema."
)
EMPTY_PRODUCTS_TEXT = "No se encontraron productos específicos en nuestro catálogo para esta consulta."


class MessageKind(str, Enum):
    GREETING = "greeting"
    GENERAL = "general"
    RECOMMENDATION = "recommendation"
    COMPARISON = "comparison"
    CONTEXTUAL = "contextual"
    SPECIFIC = "specific"


@dataclass(frozen=True)
class ResponseProfile:
    max_tokens: int
    temperature: float
    template: str


PROFILES: Dict[MessageKind, ResponseProfile] = {
    MessageKind.GREETING: ResponseProfile(
        max_tokens=150,
        temperature=0.3,
        template=(
            "SALUDO:\n"
            "Responde al saludo de forma breve y cordial (máximo 2 frases) y ofrece "
            "ayuda para encontrar equipos del catálogo. No menciones productos concretos."
        ),
    ),
    MessageKind.GENERAL: ResponseProfile(
        max_tokens=200,
        temperature=0.1,
        template=(
            "CONSULTA GENERAL:\n"
            "1. [Producto] - [Aplicación] - [Nivel técnico]\n"
            "2. [Producto] - [Aplicación] - [Nivel técnico]\n"
            "Termina con: \"¿Para qué aplicación específica necesitas el equipo?\""
        ),
    ),
    MessageKind.RECOMMENDATION: ResponseProfile(
        max_tokens=300,
        temperature=0.2,
        template=(
            "RECOMENDACIÓN DE PRODUCTOS:\n"
            "1. Usa el historial de conversación para entender el contexto\n"
            "2. No repitas toda la información técnica ya proporcionada\n"
            "3. Da una recomendación directa y clara\n"
            "**RECOMENDACIÓN: [Producto]**\n"
            "**JUSTIFICACIÓN:**\n"
            "• [Razón técnica 1]\n"
            "• [Razón técnica 2]\n"
            "• [Razón técnica 3]\n"
            "**APLICACIÓN IDEAL:** [Para qué es mejor]\n"
            "Máximo 150 palabras."
        ),
    ),
    MessageKind.COMPARISON: ResponseProfile(
        max_tokens=500,
        temperature=0.2,
        template=(
            "COMPARACIÓN DE PRODUCTOS:\n"
            "Identifica exactamente qué productos menciona el usuario y compáralos:\n"
            "**PRODUCTO A: [Nombre]**\n"
            "• Característica: valor\n"
            "• Aplicación: uso específico\n"
            "**PRODUCTO B: [Nombre]**\n"
            "• Característica: valor\n"
            "• Aplicación: uso específico\n"
            "**DIFERENCIAS TÉCNICAS:** [análisis objetivo]\n"
            "Máximo 200 palabras."
        ),
    ),
    MessageKind.CONTEXTUAL: ResponseProfile(
        max_tokens=500,
        temperature=0.2,
        template=(
            "CONSULTA CONTEXTUAL (uso específico):\n"
            "**ANÁLISIS TÉCNICO:**\n"
            "• Aplicación: [tipo de uso identificado]\n"
            "• Requisitos: [precisión, durabilidad, conectividad]\n"
            "• Entorno: [condiciones de operación]\n"
            "**RECOMENDACIÓN: [Producto específico]**\n"
            "**JUSTIFICACIÓN:**\n"
            "• [Criterio técnico con datos específicos]\n"
            "**APLICACIÓN IDEAL:** [Uso específico recomendado]"
        ),
    ),
    MessageKind.SPECIFIC: ResponseProfile(
        max_tokens=800,
        temperature=0.2,
        template=(
            "CONSULTA ESPECÍFICA:\n"
            "**PRODUCTO: [Nombre]**\n"
            "**ESPECIFICACIONES:**\n"
            "• [Especificación con valores]\n"
            "**APLICACIONES:**\n"
            "• [Aplicación] - [Por qué es adecuado]\n"
            "**REQUERIMIENTOS:**\n"
            "• Obligatorios: [Lista con justificación]\n"
            "• Opcionales: [Lista con beneficios]"
        ),
    ),
}

_GREETING_WORDS = {
    "hola", "buenas", "buenos", "gracias", "saludos", "adios", "chao",
    "hello", "hi", "hey", "thanks", "thank",
}
_GREETING_FILLER = _GREETING_WORDS | {
    "dias", "tardes", "noches", "muchas", "que", "tal", "como", "estas", "esta",
    "good", "morning", "afternoon", "evening", "you", "ok", "vale", "perfecto",
}

# entries with a space or "-" match as substrings, a trailing "*" marks a
# word prefix, everything else must be a whole word
_COMPARISON = ("compar*", "vs", "versus", "diferencia", "diferencias")
_GENERAL = (
    "equipos", "productos", "catalogo", "listar*", "mostrar*", "todos", "tipos",
    "opciones", "disponibles", "que tienen",
)
_RECOMMENDATION = ("recomiend*", "recomend*", "mejor", "mejores", "cual", "cuales", "sugier*", "opcion")
_SPECIFIC = (
    "especific*", "detalle*", "caracteristica*", "modelo", "modelos",
    "marca", "marcas", "ws-", "ambient weather", "hobo", "u30*",
)
_CONTEXT = (
    "para", "uso", "usos", "industrial", "residencial", "comercial", "agricola",
    "laboratorio*", "granja*", "oficina*", "campo", "interior", "exterior",
)


def _words(folded: str) -> List[str]:
    return re.findall(r"\w+", folded)


def _mentions(folded: str, vocabulary: Sequence[str]) -> bool:
    words = _words(folded)
    for entry in vocabulary:
        if " " in entry or "-" in entry:
            if entry in folded:
                return True
        elif entry.endswith("*"):
            if any(word.startswith(entry[:-1]) for word in words):
                return True
        elif entry in words:
            return True
    return False


def is_greeting(message: str) -> bool:
    """A short message made only of greeting/courtesy words."""
    words = _words(fold_accents(message))
    return (
        bool(words)
        and all(word in _GREETING_FILLER for word in words)
        and any(word in _GREETING_WORDS for word in words)
    )


def classify_message(message: str, product_count: int) -> MessageKind:
    if is_greeting(message):
        return MessageKind.GREETING
    folded = fold_accents(message)
    if _mentions(folded, _COMPARISON):
        return MessageKind.COMPARISON
    if _mentions(folded, _GENERAL):
        return MessageKind.GENERAL
    if _mentions(folded, _RECOMMENDATION):
        return MessageKind.RECOMMENDATION
    if _mentions(folded, _SPECIFIC) or product_count <= 2:
        return MessageKind.SPECIFIC
    if _mentions(folded, _CONTEXT):
        return MessageKind.CONTEXTUAL
    return MessageKind.SPECIFIC


def _or_default(value: Any, default: str = "Sin especificar") -> str:
    return str(value) if value else default


def _list_preview(values: List[str], limit: int = 3) -> str:
    if not values:
        return "Ninguno"
    preview = ", ".join(values[:limit])
    return preview + ("..." if len(values) > limit else "")


def format_products(products: Sequence[Dict[str, Any]], kind: MessageKind) -> str:
    if not products:
        return EMPTY_PRODUCTS_TEXT

    if kind == MessageKind.GENERAL:
        lines = []
        for index, product in enumerate(products[:5], start=1):
            attrs = ProductAttributes.from_product(product)
            description = (product.get("description") or "Sin descripción")[:100]
            lines.append(
                f"{index}. {product.get('name')} "
                f"({_or_default(attrs.marca)} {_or_default(attrs.modelo)}) - {description}..."
            )
        return "\n".join(lines)

    blocks = []
    for product in products:
        attrs = ProductAttributes.from_product(product)
        tags = product.get("tags") or []
        blocks.append(
            "\n".join(
                [
                    f"- Producto: {product.get('name')}",
                    f"- Título: {attrs.titulo or product.get('name')}",
                    f"- Marca: {_or_default(attrs.marca)}",
                    f"- Modelo: {_or_default(attrs.modelo)}",
                    f"- Categoría: {_or_default(product.get('categoria'))}",
                    f"- Tipo: {_or_default(product.get('type'))}",
                    f"- Descripción: {_or_default(product.get('description'))}",
                    f"- Tags: {', '.join(tags) if tags else 'Ninguno'}",
                    f"- Características: {_list_preview(attrs.caracteristicas)}",
                    f"- Artículos Requeridos: {_list_preview(attrs.articulos_requeridos, limit=10)}",
                    f"- Artículos Opcionales: {_list_preview(attrs.articulos_opcionales)}",
                ]
            )
        )
    return "\n\n".join(blocks)


def format_brands(brands: Sequence[Dict[str, Any]]) -> str:
    if not brands:
        return "Sin información de marcas para esta consulta."

    blocks = []
    for brand in brands:
        content = brand.get("content") or ""
        if brand.get("json_data"):
            details = MarkdownJsonRenderer.render(brand["json_data"])
            if details.strip():
                content += f"\n**Información técnica detallada:**\n{details}"
        tags = brand.get("tags") or []
        blocks.append(
            f"**INFORMACIÓN DE MARCA: {str(brand.get('brand_name', '')).upper()}**\n"
            f"{brand.get('title') or ''}\n\n"
            f"{content}\n\n"
            f"Categoría: {brand.get('category') or 'No especificada'}\n"
            f"Tags: {', '.join(tags) if tags else 'Ninguno'}"
        )
    return "\n\n".join(blocks)


def format_history(history: Sequence[ChatTurn], turns: int | None = None) -> str:
    turns = settings.CHAT_HISTORY_TURNS if turns is None else turns
    if turns <= 0:
        return "(sin historial)"
    recent = list(history)[-turns:]
    if not recent:
        return "(sin historial)"
    return "\n".join(
        f"{'Usuario' if turn.role == 'user' else 'Sistema'}: {turn.content}" for turn in recent
    )


SYSTEM_RULES = """Eres un EXPERTO EN PRODUCTOS CIENTÍFICOS Y TÉCNICOS especializado en instrumentación y equipos de medición.

PRINCIPIOS FUNDAMENTALES:
1. NUNCA inventes productos, marcas, modelos, especificaciones o precios que no estén en el catálogo
2. NUNCA menciones precios, costos, valores monetarios o cualquier información económica
3. La información de marcas representa productos que SÍ están disponibles en nuestro inventario
4. Da recomendaciones SOLO de productos que están en el catálogo o en la información de marcas
5. Responde únicamente a partir del contexto proporcionado
6. Si NO hay productos en el catálogo para la consulta, responde EXACTAMENTE: "NO DISPONEMOS de productos para esta aplicación específica en nuestro catálogo actual."
7. Si hay productos similares pero no exactos, indica: "No disponemos de productos que cumplan exactamente estos requisitos. Los más cercanos son: [lista con limitaciones]"
"""

HUMAN_TEMPLATE = """CATÁLOGO DE PRODUCTOS DISPONIBLES:
{products}

INFORMACIÓN TÉCNICA DE MARCAS (TAMBIÉN DISPONIBLES EN INVENTARIO):
{brands}

HISTORIAL:
{history}

CONSULTA: "{query}"
{translation_note}
{instructions}
{empty_context_rule}
Responde como experto técnico:"""

CHAT_PROMPT = ChatPromptTemplate.from_messages(
    [("system", SYSTEM_RULES), ("human", HUMAN_TEMPLATE)]
)


def build_prompt_values(
    message: str,
    products: Sequence[Dict[str, Any]],
    brands: Sequence[Dict[str, Any]],
    history: Sequence[ChatTurn],
    kind: MessageKind,
    translated_from: Optional[str] = None,
) -> Dict[str, str]:
    empty_context = kind != MessageKind.GREETING and not products and not brands
    empty_rule = (
        "\nIMPORTANTE: no hay productos ni marcas en el contexto para esta consulta. "
        f'Responde EXACTAMENTE: "{NO_PRODUCTS_SENTENCE}"\n'
        if empty_context
        else ""
    )
    return {
        "products": format_products(products, kind),
        "brands": format_brands(brands),
        "history": format_history(history),
        "query": message,
        "translation_note": (
            f"NOTA: La consulta fue traducida del {translated_from} al español.\n"
            if translated_from
            else ""
        ),
        "instructions": PROFILES[kind].template,
        "empty_context_rule": empty_rule,
    }
