import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from catalog_assistant.api.deps import get_embedding_store
from catalog_assistant.core.exceptions import CatalogAssistantError, InvalidRequestError
from catalog_assistant.models.schemas import BatchItemResult, EmbeddingRequest, EntityType
from catalog_assistant.services.embedding_store import EntityEmbeddingStore
from catalog_assistant.services.result_cache import DatabaseResultCache

logger = logging.getLogger(__name__)

router = APIRouter()


class GenerateRequest(BaseModel):
    text: Optional[str] = None
    type: Optional[str] = None
    entity_id: Optional[int] = None
    content_type: Optional[str] = None
    user_id: Optional[str] = None
    source: Optional[str] = None
    batch: Optional[List[EmbeddingRequest]] = None


class GenerateResponse(BaseModel):
    success: bool
    embedding: Optional[List[float]] = None
    id: Optional[int] = None
    dimensions: Optional[int] = None
    error: Optional[str] = None


class BatchResponse(BaseModel):
    success: bool
    results: List[BatchItemResult]
    processed: int
    successful: int


@router.post("/generate")
async def generate_embeddings(
    request: GenerateRequest,
    store: EntityEmbeddingStore = Depends(get_embedding_store),
):
    """Gera embeddings para um texto ou para um lote (`batch`)."""
    if request.batch:
        results = await store.upsert_batch(request.batch)
        successful = sum(1 for r in results if r.success)
        return BatchResponse(
            success=True, results=results, processed=len(results), successful=successful
        )

    if not (request.text or "").strip():
        raise InvalidRequestError("Either 'text' or 'batch' is required")

    single = EmbeddingRequest(
        text=request.text,
        type=request.type or "query",
        entity_id=request.entity_id,
        content_type=request.content_type,
        user_id=request.user_id,
        source=request.source,
    )
    try:
        item = await store.generate(single)
    except InvalidRequestError:
        raise
    except CatalogAssistantError as e:
        logger.error(f"❌ Erro gerando embedding: {e}")
        return GenerateResponse(success=False, error=str(e))

    return GenerateResponse(
        success=True,
        embedding=item.embedding,
        id=item.id,
        dimensions=len(item.embedding or []),
    )


@router.post("/regenerate/{entity_type}")
async def regenerate_embeddings(
    entity_type: EntityType,
    store: EntityEmbeddingStore = Depends(get_embedding_store),
):
    """Job administrativo: (re)gera os embeddings de todos os registros ativos."""
    counts = await store.regenerate(entity_type)
    logger.info(f"🔁 Regeneração de {entity_type.value}: {counts}")
    return {"status": "success", "entity_type": entity_type.value, **counts}


@router.post("/cleanup")
async def cleanup(
    store: EntityEmbeddingStore = Depends(get_embedding_store),
):
    try:
        expired = await DatabaseResultCache(store.db).sweep_expired()
    except Exception as e:
        await store.db.rollback()
        logger.error(f"Erro limpando cache semântico: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Cache cleanup failed")

    purged = {
        entity_type.value: await store.purge_for_inactive_entities(entity_type)
        for entity_type in EntityType
    }
    return {"status": "success", "expired_cache_entries": expired, "purged_embeddings": purged}


@router.get("/stats")
async def stats(store: EntityEmbeddingStore = Depends(get_embedding_store)):
    return await store.stats()
