import pytest
from sqlalchemy import select

from catalog_assistant.core.rabbitmq import handle_catalog_event, parse_routing_key
from catalog_assistant.models.embedding import EntityEmbedding
from catalog_assistant.models.schemas import EntityType
from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.embedding_store import EntityEmbeddingStore

from conftest import add_brand, add_embedding, add_product


async def stored_facets(db, entity_type, entity_id):
    result = await db.execute(
        select(EntityEmbedding.content_type)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(EntityEmbedding.content_type)
    )
    return list(result.scalars().all())


class TestCatalogEvents:
    def test_parse_routing_key(self):
        assert parse_routing_key("brand.deactivated") == (EntityType.BRAND, "deactivated")

    def test_unknown_entity_is_rejected(self):
        with pytest.raises(ValueError):
            parse_routing_key("order.created")

    @pytest.mark.asyncio
    async def test_product_update_embeds_every_facet(self, db, fake_embeddings):
        product = await add_product(db, name="Termómetro", description="Digital", categoria="Temperatura")
        product_id = product.id
        store = EntityEmbeddingStore(db, EmbeddingProvider(fake_embeddings), chunk_delay=0)

        written = await handle_catalog_event(store, "product.updated", {"id": product_id})

        assert written == 3
        assert await stored_facets(db, "product", product_id) == ["category", "description", "name"]

    @pytest.mark.asyncio
    async def test_brand_deactivation_removes_embeddings(self, db, fake_embeddings):
        brand = await add_brand(db, brand_name="Hobo")
        brand_id = brand.id
        await add_embedding(db, "brand", brand_id, [1, 0, 0, 0], content_type="brand_name")
        await add_embedding(db, "brand", brand_id, [0, 1, 0, 0], content_type="title")
        store = EntityEmbeddingStore(db, EmbeddingProvider(fake_embeddings))

        removed = await handle_catalog_event(store, "brand.deactivated", {"id": brand_id})

        assert removed == 2
        assert await stored_facets(db, "brand", brand_id) == []
