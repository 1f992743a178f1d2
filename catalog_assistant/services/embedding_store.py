import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.core.config import settings
from catalog_assistant.core.exceptions import InvalidRequestError
from catalog_assistant.models.embedding import EntityEmbedding
from catalog_assistant.models.schemas import (
    BatchItemResult,
    EmbeddingRequest,
    EntityType,
    StoredVector,
)
from catalog_assistant.repositories.catalog import CatalogRepository
from catalog_assistant.repositories.embedding import EntityEmbeddingRepository
from catalog_assistant.repositories.query_log import QueryEmbeddingRepository
from catalog_assistant.repositories.search_cache import SearchCacheRepository
from catalog_assistant.services.embedding_provider import EmbeddingProvider

logger = logging.getLogger(__name__)


def build_product_requests(product: Dict[str, Any]) -> List[EmbeddingRequest]:
    """One request per searchable facet of a product."""
    facets = {
        "name": product.get("name"),
        "description": product.get("description"),
        "category": product.get("categoria"),
    }
    return [
        EmbeddingRequest(
            text=text,
            type=EntityType.PRODUCT.value,
            entity_id=product["id"],
            content_type=content_type,
        )
        for content_type, text in facets.items()
        if text and str(text).strip()
    ]


def build_brand_requests(brand: Dict[str, Any]) -> List[EmbeddingRequest]:
    facets = {
        "brand_name": brand.get("brand_name"),
        "title": brand.get("title"),
        "content": brand.get("content"),
    }
    if brand.get("json_data"):
        facets["json_data"] = json.dumps(brand["json_data"], ensure_ascii=False)
    return [
        EmbeddingRequest(
            text=text,
            type=EntityType.BRAND.value,
            entity_id=brand["id"],
            content_type=content_type,
        )
        for content_type, text in facets.items()
        if text and str(text).strip()
    ]


REQUEST_BUILDERS = {
    EntityType.PRODUCT: build_product_requests,
    EntityType.BRAND: build_brand_requests,
}


class EntityEmbeddingStore:
    def __init__(
        self,
        db: AsyncSession,
        provider: EmbeddingProvider,
        *,
        chunk_size: Optional[int] = None,
        chunk_delay: Optional[float] = None,
    ):
        self.db = db
        self.provider = provider
        self.repo = EntityEmbeddingRepository(db)
        self.query_log = QueryEmbeddingRepository(db)
        self.chunk_size = chunk_size or settings.EMBEDDING_BATCH_CHUNK_SIZE
        self.chunk_delay = (
            settings.EMBEDDING_BATCH_DELAY_SECONDS if chunk_delay is None else chunk_delay
        )

    async def upsert(
        self, entity_type: EntityType, entity_id: int, content_type: str, text: str
    ) -> EntityEmbedding:
        vector = await self.provider.embed(text)
        return await self.repo.upsert(entity_type, entity_id, content_type, vector, text)

    async def generate(self, request: EmbeddingRequest) -> BatchItemResult:
        """Embeds and stores a single request. Errors propagate to the caller."""
        self._validate(request)
        vector = await self.provider.embed(request.text)
        return await self._save(request, vector)

    async def upsert_batch(self, requests: List[EmbeddingRequest]) -> List[BatchItemResult]:
        """
        Processes requests in chunks. Embedding calls inside a chunk run
        concurrently; writes are sequential on the shared session. A failed
        item is reported and never aborts the remaining ones.
        """
        results: List[BatchItemResult] = []
        for start in range(0, len(requests), self.chunk_size):
            chunk = requests[start : start + self.chunk_size]
            vectors = await asyncio.gather(
                *(self._embed_for(request) for request in chunk),
                return_exceptions=True,
            )
            for request, vector in zip(chunk, vectors):
                if isinstance(vector, BaseException):
                    logger.warning(f"⚠️ Embedding falhou para {self._describe(request)}: {vector}")
                    results.append(BatchItemResult(success=False, error=str(vector)))
                    continue
                try:
                    results.append(await self._save(request, vector))
                except Exception as e:
                    await self.db.rollback()
                    logger.error(
                        f"❌ Erro ao salvar embedding {self._describe(request)}: {e}",
                        exc_info=True,
                    )
                    results.append(BatchItemResult(success=False, error=str(e)))

            # Pequena pausa entre lotes para respeitar o rate limit do provedor
            if start + self.chunk_size < len(requests):
                await asyncio.sleep(self.chunk_delay)

        successful = sum(1 for r in results if r.success)
        logger.info(f"Batch de embeddings: {successful}/{len(results)} com sucesso")
        return results

    async def _embed_for(self, request: EmbeddingRequest) -> List[float]:
        self._validate(request)
        return await self.provider.embed(request.text)

    def _validate(self, request: EmbeddingRequest) -> None:
        if request.type == "query":
            return
        if request.type not in {t.value for t in EntityType}:
            raise InvalidRequestError(f"Unknown embedding type '{request.type}'")
        if request.entity_id is None:
            raise InvalidRequestError(f"entity_id is required for type '{request.type}'")

    async def _save(self, request: EmbeddingRequest, vector: List[float]) -> BatchItemResult:
        if request.type == "query":
            row = await self.query_log.record(
                query_text=request.text,
                vector=vector,
                user_id=request.user_id,
                source=request.source or "api",
            )
        else:
            entity_type = EntityType(request.type)
            row = await self.repo.upsert(
                entity_type,
                request.entity_id,
                request.content_type or entity_type.value,
                vector,
                request.text,
            )
        return BatchItemResult(success=True, embedding=vector, id=row.id)

    @staticmethod
    def _describe(request: EmbeddingRequest) -> str:
        return f"{request.type}:{request.entity_id}:{request.content_type}"

    async def all_vectors_for(self, entity_type: EntityType) -> List[StoredVector]:
        return await self.repo.all_vectors_for(entity_type)

    async def purge_for_inactive_entities(self, entity_type: EntityType) -> int:
        """Best-effort: removes embeddings of deactivated entities; never raises."""
        try:
            removed = await self.repo.delete_inactive(entity_type)
            logger.info(f"🧹 {removed} embeddings removidos de {entity_type.value}s inativos")
            return removed
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Erro limpando embeddings de {entity_type.value}: {e}", exc_info=True)
            return 0

    async def delete_for_entity(self, entity_type: EntityType, entity_id: int) -> int:
        return await self.repo.delete_for_entity(entity_type, entity_id)

    async def refresh_entity(self, entity_type: EntityType, entity_id: int) -> List[BatchItemResult]:
        """
        Re-embeds every facet of one entity. If the entity is gone or
        inactive, its embeddings are deleted instead.
        """
        entity = await CatalogRepository(self.db, entity_type).get_active(entity_id)
        if entity is None:
            removed = await self.delete_for_entity(entity_type, entity_id)
            logger.info(f"🗑️ {entity_type.value} {entity_id} inativo: {removed} embeddings removidos")
            return []
        requests = REQUEST_BUILDERS[entity_type](entity.to_dict())
        return await self.upsert_batch(requests)

    async def regenerate(self, entity_type: EntityType) -> Dict[str, int]:
        """Admin job: (re)embeds every active entity of one type."""
        catalog = CatalogRepository(self.db, entity_type)
        entities = await catalog.list_active(limit=await catalog.count_active() or 1)
        requests: List[EmbeddingRequest] = []
        for entity in entities:
            requests.extend(REQUEST_BUILDERS[entity_type](entity.to_dict()))

        if not requests:
            return {"success": 0, "failed": 0}

        results = await self.upsert_batch(requests)
        success = sum(1 for r in results if r.success)
        return {"success": success, "failed": len(results) - success}

    async def stats(self) -> Dict[str, int]:
        by_type = await self.repo.count_by_type()
        return {
            "products": by_type[EntityType.PRODUCT.value],
            "brands": by_type[EntityType.BRAND.value],
            "queries": await self.query_log.count(),
            "cache_entries": await SearchCacheRepository(self.db).count(),
        }
