import pytest

from catalog_assistant.models.schemas import ChatTurn
from catalog_assistant.services.prompt_builder import (
    CHAT_PROMPT,
    EMPTY_PRODUCTS_TEXT,
    NO_PRODUCTS_SENTENCE,
    PROFILES,
    MessageKind,
    build_prompt_values,
    classify_message,
    format_brands,
    format_history,
    format_products,
    is_greeting,
)
from catalog_assistant.services.response_cache import ChatResponseCache, chat_cache_key

from conftest import MutableClock

PRODUCT = {
    "id": 1,
    "name": "Estación WS-2902",
    "description": "Estación meteorológica WiFi {con llaves}",
    "categoria": "Estaciones",
    "type": "equipo",
    "tags": ["wifi"],
    "product_data": {
        "marca": "Ambient Weather",
        "modelo": "WS-2902",
        "caracteristicas": ["Pantalla", "WiFi", "Solar", "Alertas"],
        "articulos_requeridos": ["Consola"],
    },
}


class TestClassification:
    @pytest.mark.parametrize("message", ["Hola", "¡Buenas tardes!", "muchas gracias", "hello"])
    def test_greetings(self, message):
        assert is_greeting(message)
        assert classify_message(message, 0) == MessageKind.GREETING

    def test_greeting_with_a_question_is_not_a_greeting(self):
        assert not is_greeting("hola, busco un pluviómetro")

    @pytest.mark.parametrize(
        "message, count, kind",
        [
            ("compara la WS-2902 vs la Vantage", 5, MessageKind.COMPARISON),
            ("¿qué productos tienen disponibles?", 5, MessageKind.GENERAL),
            ("¿cuál me recomiendas?", 5, MessageKind.RECOMMENDATION),
            ("especificaciones del modelo", 5, MessageKind.SPECIFIC),
            ("estación meteorológica para exterior", 1, MessageKind.SPECIFIC),
            ("estación meteorológica para exterior", 4, MessageKind.CONTEXTUAL),
            ("sensor de radiación solar", 4, MessageKind.SPECIFIC),
            ("¿sirve cualquier sensor para exterior?", 4, MessageKind.CONTEXTUAL),
            ("antena vsat para campo", 4, MessageKind.CONTEXTUAL),
            ("¿cuáles son las diferencias?", 4, MessageKind.COMPARISON),
        ],
    )
    def test_kinds(self, message, count, kind):
        assert classify_message(message, count) == kind

    def test_token_budgets(self):
        budgets = {kind: profile.max_tokens for kind, profile in PROFILES.items()}
        assert budgets == {
            MessageKind.GREETING: 150,
            MessageKind.GENERAL: 200,
            MessageKind.RECOMMENDATION: 300,
            MessageKind.COMPARISON: 500,
            MessageKind.CONTEXTUAL: 500,
            MessageKind.SPECIFIC: 800,
        }


class TestFormatting:
    def test_detailed_product_block(self):
        text = format_products([PRODUCT], MessageKind.SPECIFIC)

        assert "- Marca: Ambient Weather" in text
        assert "- Descripción: Estación meteorológica WiFi {con llaves}" in text
        assert "- Características: Pantalla, WiFi, Solar..." in text
        assert "- Artículos Requeridos: Consola" in text
        assert "- Artículos Opcionales: Ninguno" in text

    def test_compact_list_for_general_queries(self):
        text = format_products([PRODUCT] * 7, MessageKind.GENERAL)

        lines = text.splitlines()
        assert len(lines) == 5
        assert lines[0].startswith("1. Estación WS-2902 (Ambient Weather WS-2902) - ")

    def test_empty_products(self):
        assert format_products([], MessageKind.SPECIFIC) == EMPTY_PRODUCTS_TEXT

    def test_brand_json_is_rendered(self):
        text = format_brands(
            [{"brand_name": "Davis", "title": "Estaciones", "content": "Precisión",
              "json_data": {"modelos": ["Vantage Pro2"]}}]
        )

        assert "**INFORMACIÓN DE MARCA: DAVIS**" in text
        assert "- **modelos**: Vantage Pro2" in text

    def test_history_keeps_last_turns(self):
        history = [ChatTurn(role="user" if i % 2 == 0 else "assistant", content=f"m{i}") for i in range(6)]

        text = format_history(history, turns=4)

        assert text.splitlines() == ["Usuario: m2", "Sistema: m3", "Usuario: m4", "Sistema: m5"]


class TestPrompt:
    def test_braces_in_catalog_text_are_safe(self):
        values = build_prompt_values("¿detalle?", [PRODUCT], [], [], MessageKind.SPECIFIC)

        messages = CHAT_PROMPT.format_messages(**values)

        assert "{con llaves}" in messages[1].content
        assert NO_PRODUCTS_SENTENCE in messages[0].content

    def test_empty_context_adds_exact_answer_rule(self):
        values = build_prompt_values("pluviómetro", [], [], [], MessageKind.SPECIFIC)

        assert "no hay productos ni marcas en el contexto" in values["empty_context_rule"]
        assert NO_PRODUCTS_SENTENCE in values["empty_context_rule"]

    def test_greeting_never_gets_empty_context_rule(self):
        values = build_prompt_values("hola", [], [], [], MessageKind.GREETING)

        assert values["empty_context_rule"] == ""

    def test_translated_query_carries_a_note(self):
        translated = build_prompt_values(
            "estación para exterior", [], [], [], MessageKind.CONTEXTUAL, translated_from="inglés"
        )
        original = build_prompt_values("estación para exterior", [], [], [], MessageKind.CONTEXTUAL)

        human = CHAT_PROMPT.format_messages(**translated)[1].content
        assert "NOTA: La consulta fue traducida del inglés al español." in human
        assert original["translation_note"] == ""


class TestChatResponseCache:
    def test_key_depends_on_history(self):
        base = chat_cache_key("Hola", [])

        assert chat_cache_key("  hola ", []) == base
        assert chat_cache_key("hola", [ChatTurn(role="user", content="x")]) != base

    def test_entries_expire_after_ttl(self):
        clock = MutableClock()
        cache = ChatResponseCache(ttl_seconds=120, clock=clock)
        cache.put("k", "respuesta")

        clock.advance(119)
        assert cache.get("k") == "respuesta"
        clock.advance(1)
        assert cache.get("k") is None

    def test_oldest_entries_are_evicted_past_capacity(self):
        cache = ChatResponseCache(ttl_seconds=120, max_entries=2, clock=MutableClock())
        for key in ("a", "b", "c"):
            cache.put(key, key.upper())

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c") == "C"
