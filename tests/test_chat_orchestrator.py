import pytest

from catalog_assistant.core.exceptions import InvalidRequestError
from catalog_assistant.models.schemas import ChatTurn
from catalog_assistant.services.cascade import build_default_cascade
from catalog_assistant.services.chat_orchestrator import ChatOrchestrator
from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.embedding_store import EntityEmbeddingStore
from catalog_assistant.services.prompt_builder import APOLOGY, NO_PRODUCTS_SENTENCE
from catalog_assistant.services.response_cache import ChatResponseCache
from catalog_assistant.services.result_cache import InMemoryResultCache
from catalog_assistant.services.semantic_search import SemanticSearchService
from catalog_assistant.services.similarity import SimilarityRanker
from catalog_assistant.services.translation import TRANSLATION_PROFILE

from conftest import (
    QUERY_AXIS,
    PromptRecordingChatModel,
    add_embedding,
    add_product,
    vector_with_similarity,
)

OUTDOOR_QUERY = "estación meteorológica para exterior"
ENGLISH_QUERY = "I need a weather station for outdoor use"


@pytest.fixture
def orchestrator_factory(fake_embeddings, chat_model):
    profiles = []

    def factory(db, response_cache=None, translation_model=None):
        provider = EmbeddingProvider(fake_embeddings)
        search = SemanticSearchService(
            db, provider, SimilarityRanker(EntityEmbeddingStore(db, provider)), InMemoryResultCache()
        )

        def llm_provider(profile):
            if profile is TRANSLATION_PROFILE and translation_model is not None:
                return translation_model
            profiles.append(profile)
            return chat_model

        return ChatOrchestrator(
            build_default_cascade(db, search),
            response_cache or ChatResponseCache(),
            llm_provider,
        )

    factory.profiles = profiles
    return factory


class TestChatOrchestrator:
    @pytest.mark.asyncio
    async def test_answers_from_a_semantically_matched_product(
        self, db, fake_embeddings, chat_model, orchestrator_factory
    ):
        fake_embeddings.vectors[OUTDOOR_QUERY] = QUERY_AXIS
        station = await add_product(
            db, name="Estación Meteorológica WS-2902", description="Estación WiFi para exterior"
        )
        await add_embedding(db, "product", station.id, vector_with_similarity(0.82), "name", station.name)
        chat_model.reply = "Te recomendamos la Estación Meteorológica WS-2902."

        answer = await orchestrator_factory(db).answer(OUTDOOR_QUERY)

        assert answer.text
        assert "NO DISPONEMOS" not in answer.text
        assert answer.meta["product_tier"] == "semantic"
        assert answer.meta["products"] == 1
        assert answer.meta["empty_context"] is False
        assert "Estación Meteorológica WS-2902" in chat_model.prompts[0]

    @pytest.mark.asyncio
    async def test_empty_catalog_answers_with_no_products_sentence(
        self, db, chat_model, orchestrator_factory
    ):
        answer = await orchestrator_factory(db).answer(OUTDOOR_QUERY)

        assert NO_PRODUCTS_SENTENCE in answer.text
        assert answer.meta["empty_context"] is True
        assert answer.meta["product_tier"] is None

    @pytest.mark.asyncio
    async def test_greeting_skips_retrieval(self, db, fake_embeddings, orchestrator_factory):
        await add_product(db, name="Pluviómetro")

        answer = await orchestrator_factory(db).answer("¡Hola!")

        assert answer.meta["kind"] == "greeting"
        assert fake_embeddings.calls == []
        assert orchestrator_factory.profiles[0].max_tokens == 150

    @pytest.mark.asyncio
    async def test_second_identical_message_is_served_from_cache(
        self, db, chat_model, orchestrator_factory
    ):
        await add_product(db, name="Pluviómetro digital")
        orchestrator = orchestrator_factory(db)
        history = [ChatTurn(role="user", content="hola")]

        first = await orchestrator.answer("pluviómetro", history)
        second = await orchestrator.answer("  Pluviómetro ", history)

        assert second.text == first.text
        assert second.meta["cached"] is True
        assert len(chat_model.prompts) == 1

    @pytest.mark.asyncio
    async def test_generation_failure_returns_apology_and_is_not_cached(
        self, db, chat_model, orchestrator_factory
    ):
        response_cache = ChatResponseCache()
        orchestrator = orchestrator_factory(db, response_cache)
        chat_model.fail = True

        answer = await orchestrator.answer("anemómetro")

        assert answer.text == APOLOGY
        assert answer.meta["fallback"] is True
        assert len(response_cache) == 0

    @pytest.mark.asyncio
    async def test_empty_model_output_is_a_failure(self, db, chat_model, orchestrator_factory):
        await add_product(db, name="Anemómetro")
        chat_model.reply = "   "

        answer = await orchestrator_factory(db).answer("anemómetro")

        assert answer.text == APOLOGY

    @pytest.mark.asyncio
    async def test_blank_message_is_rejected(self, db, orchestrator_factory):
        with pytest.raises(InvalidRequestError):
            await orchestrator_factory(db).answer("   ")

    @pytest.mark.asyncio
    async def test_query_is_embedded_once_for_products_and_brands(
        self, db, fake_embeddings, orchestrator_factory
    ):
        fake_embeddings.vectors[OUTDOOR_QUERY] = QUERY_AXIS
        station = await add_product(db, name="Estación Meteorológica WS-2902")
        await add_embedding(db, "product", station.id, vector_with_similarity(0.82), "name", station.name)

        answer = await orchestrator_factory(db).answer(OUTDOOR_QUERY)

        assert answer.meta["product_tier"] == "semantic"
        assert fake_embeddings.calls.count(OUTDOOR_QUERY) == 1

    @pytest.mark.asyncio
    async def test_spanish_message_reports_no_translation(self, db, orchestrator_factory):
        answer = await orchestrator_factory(db).answer(OUTDOOR_QUERY)

        assert answer.translation.was_translated is False
        assert answer.translation.detected_language == "es"
        assert answer.meta["translated"] is False


class TestChatTranslation:
    TRANSLATED = "Necesito una estación meteorológica para uso exterior"

    @pytest.mark.asyncio
    async def test_english_message_is_translated_before_retrieval(
        self, db, fake_embeddings, chat_model, orchestrator_factory
    ):
        fake_embeddings.vectors[self.TRANSLATED] = QUERY_AXIS
        station = await add_product(db, name="Estación Meteorológica WS-2902")
        await add_embedding(db, "product", station.id, vector_with_similarity(0.82), "name", station.name)
        translator = PromptRecordingChatModel(reply=self.TRANSLATED)

        answer = await orchestrator_factory(db, translation_model=translator).answer(ENGLISH_QUERY)

        assert answer.translation.was_translated is True
        assert answer.translation.detected_language == "en"
        assert answer.meta["translated"] is True
        assert answer.meta["products"] == 1
        assert ENGLISH_QUERY not in fake_embeddings.calls
        assert self.TRANSLATED in chat_model.prompts[0]
        assert "NOTA: La consulta fue traducida del inglés al español." in chat_model.prompts[0]

    @pytest.mark.asyncio
    async def test_cached_answer_keeps_its_translation_info(self, db, chat_model, orchestrator_factory):
        translator = PromptRecordingChatModel(reply=self.TRANSLATED)
        orchestrator = orchestrator_factory(db, translation_model=translator)

        await orchestrator.answer(ENGLISH_QUERY)
        second = await orchestrator.answer(ENGLISH_QUERY)

        assert second.meta["cached"] is True
        assert second.translation.was_translated is True
        assert len(translator.prompts) == 1
        assert len(chat_model.prompts) == 1

    @pytest.mark.asyncio
    async def test_failed_translation_answers_with_the_original_message(
        self, db, chat_model, orchestrator_factory
    ):
        translator = PromptRecordingChatModel(fail=True)

        answer = await orchestrator_factory(db, translation_model=translator).answer(ENGLISH_QUERY)

        assert answer.translation.was_translated is False
        assert answer.translation.detected_language == "en"
        assert ENGLISH_QUERY in chat_model.prompts[0]
        assert "NOTA:" not in chat_model.prompts[0]
