import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from catalog_assistant.api.deps import get_image_match_service, get_search_service
from catalog_assistant.core.exceptions import ProviderUnavailableError
from catalog_assistant.services.image_lookup import ImageMatchOutcome, ImageMatchService
from catalog_assistant.services.semantic_search import SearchParams, SemanticSearchService

logger = logging.getLogger(__name__)

router = APIRouter()


class SemanticSearchRequest(BaseModel):
    query: Optional[str] = None
    type: str = "both"
    similarity_threshold: Optional[float] = None
    max_results: Optional[int] = None
    use_cache: bool = True
    user_id: Optional[str] = None
    source: Optional[str] = None


class SearchHit(BaseModel):
    id: int
    similarity: float
    content: str
    metadata: Dict[str, Any]
    type: str


class SemanticSearchResponse(BaseModel):
    success: bool
    results: List[SearchHit] = []
    cached: bool = False
    processing_time_ms: int = 0
    error: Optional[str] = None


class ImageMatchRequest(BaseModel):
    product_name: Optional[str] = None


@router.post("/semantic", response_model=SemanticSearchResponse)
async def semantic_search(
    request: SemanticSearchRequest,
    service: SemanticSearchService = Depends(get_search_service),
):
    try:
        outcome = await service.search(
            SearchParams(
                query=request.query or "",
                scope=request.type,
                threshold=request.similarity_threshold,
                max_results=request.max_results,
                use_cache=request.use_cache,
                user_id=request.user_id,
                source=request.source or "api",
            )
        )
    except ProviderUnavailableError as e:
        logger.error(f"❌ Busca semântica indisponível: {e}")
        return SemanticSearchResponse(success=False, error=str(e))

    return SemanticSearchResponse(
        success=True,
        results=[
            SearchHit(
                id=r.id,
                similarity=r.similarity,
                content=r.content,
                metadata=r.metadata,
                type=r.type.value,
            )
            for r in outcome.results
        ],
        cached=outcome.cached,
        processing_time_ms=outcome.processing_time_ms,
    )


@router.post("/image-match", response_model=ImageMatchOutcome)
async def image_match(
    request: ImageMatchRequest,
    service: ImageMatchService = Depends(get_image_match_service),
):
    return await service.match(request.product_name)
