import pytest

from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.embedding_store import EntityEmbeddingStore
from catalog_assistant.services.image_lookup import ImageMatchService, MatchScenario
from catalog_assistant.services.result_cache import NullResultCache
from catalog_assistant.services.semantic_search import SemanticSearchService
from catalog_assistant.services.similarity import SimilarityRanker

from conftest import QUERY_AXIS, add_embedding, add_product, vector_with_similarity


def build_service(db, fake_embeddings):
    provider = EmbeddingProvider(fake_embeddings)
    search = SemanticSearchService(
        db, provider, SimilarityRanker(EntityEmbeddingStore(db, provider)), NullResultCache()
    )
    return ImageMatchService(search)


async def seed(db, *similarities):
    for index, similarity in enumerate(similarities, start=1):
        product = await add_product(db, name=f"Producto {index}")
        await add_embedding(db, "product", product.id, vector_with_similarity(similarity), "name")


class TestImageMatchService:
    @pytest.mark.asyncio
    async def test_exact_match(self, db, fake_embeddings):
        fake_embeddings.vectors["WS-2902"] = QUERY_AXIS
        await seed(db, 0.95, 0.65)

        outcome = await build_service(db, fake_embeddings).match("WS-2902")

        assert outcome.scenario == MatchScenario.EXACT_MATCH
        assert outcome.product["name"] == "Producto 1"

    @pytest.mark.asyncio
    async def test_similar_products(self, db, fake_embeddings):
        fake_embeddings.vectors["WS-2902"] = QUERY_AXIS
        await seed(db, 0.68, 0.65, 0.62)

        outcome = await build_service(db, fake_embeddings).match("WS-2902")

        assert outcome.scenario == MatchScenario.SIMILAR_PRODUCTS
        assert [p["name"] for p in outcome.similar_products] == ["Producto 1", "Producto 2"]

    @pytest.mark.asyncio
    async def test_no_match(self, db, fake_embeddings):
        fake_embeddings.vectors["WS-2902"] = QUERY_AXIS
        await seed(db, 0.55)

        outcome = await build_service(db, fake_embeddings).match("WS-2902")

        assert outcome.scenario == MatchScenario.NO_MATCH
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_blank_name_means_recognition_failed(self, db, fake_embeddings):
        outcome = await build_service(db, fake_embeddings).match("  ")

        assert outcome.scenario == MatchScenario.RECOGNITION_FAILED
        assert outcome.success is False
        assert fake_embeddings.calls == []

    @pytest.mark.asyncio
    async def test_provider_failure_means_recognition_failed(self, db, fake_embeddings):
        fake_embeddings.fail_first = 1

        outcome = await build_service(db, fake_embeddings).match("WS-2902")

        assert outcome.scenario == MatchScenario.RECOGNITION_FAILED
