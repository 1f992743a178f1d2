import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.core.config import settings
from catalog_assistant.core.exceptions import InvalidRequestError
from catalog_assistant.models.schemas import SEARCH_SCOPES, EntityType, RankedResult
from catalog_assistant.repositories.catalog import CatalogRepository
from catalog_assistant.repositories.query_log import QueryEmbeddingRepository
from catalog_assistant.services.embedding_cache import QueryEmbeddingCache
from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.result_cache import ResultCache
from catalog_assistant.services.side_effects import run_non_critical
from catalog_assistant.services.similarity import SimilarityRanker

logger = logging.getLogger(__name__)


@dataclass
class SearchParams:
    query: str
    scope: str = "both"
    threshold: Optional[float] = None
    max_results: Optional[int] = None
    use_cache: bool = True
    user_id: Optional[str] = None
    source: str = "api"


@dataclass
class SearchOutcome:
    results: List[RankedResult]
    cached: bool
    processing_time_ms: int
    query_embedding: Optional[List[float]] = field(default=None, repr=False)


class SemanticSearchService:
    """
    Embeds a query, ranks stored entity vectors and hydrates the hits with
    their catalog payload. Full rankings (up to ``SEARCH_MAX_RESULTS_CAP``)
    are cached so that ``max_results`` only slices the cached list.
    """

    def __init__(
        self,
        db: AsyncSession,
        provider: EmbeddingProvider,
        ranker: SimilarityRanker,
        cache: ResultCache,
        embedding_cache: Optional[QueryEmbeddingCache] = None,
    ):
        self.db = db
        self.provider = provider
        self.ranker = ranker
        self.cache = cache
        self.embedding_cache = embedding_cache if embedding_cache is not None else QueryEmbeddingCache()
        self.query_log = QueryEmbeddingRepository(db)

    async def search(self, params: SearchParams) -> SearchOutcome:
        started = time.perf_counter()
        query = (params.query or "").strip()
        if not query:
            raise InvalidRequestError("A search query is required")
        if params.scope not in SEARCH_SCOPES:
            raise InvalidRequestError(f"Unknown search type '{params.scope}'")
        if params.max_results is not None and params.max_results < 1:
            raise InvalidRequestError("max_results must be a positive integer")
        if params.threshold is not None and not -1.0 <= params.threshold <= 1.0:
            raise InvalidRequestError("similarity_threshold must be between -1 and 1")

        threshold = (
            settings.SEARCH_DEFAULT_THRESHOLD if params.threshold is None else params.threshold
        )
        max_results = min(
            settings.SEARCH_DEFAULT_MAX_RESULTS if params.max_results is None else params.max_results,
            settings.SEARCH_MAX_RESULTS_CAP,
        )

        if params.use_cache:
            cached = await self.cache.get(query, params.scope, threshold)
            if cached is not None:
                logger.info(f"📦 Resultados obtidos do cache para '{query[:40]}'")
                # entities deactivated since the entry was written are dropped here
                current = await self._hydrate(cached)
                return SearchOutcome(
                    results=current[:max_results],
                    cached=True,
                    processing_time_ms=self._elapsed_ms(started),
                )

        query_vector = await self.embedding_cache.embed(self.provider, query)
        ranking = await self._rank(query_vector, SEARCH_SCOPES[params.scope], threshold)

        if params.use_cache and ranking:
            await run_non_critical(
                "semantic cache write",
                lambda: self.cache.put(query, params.scope, threshold, query_vector, ranking),
                recover=self.db.rollback,
            )

        await run_non_critical(
            "query embedding log",
            lambda: self.query_log.record(
                query_text=query,
                vector=query_vector,
                user_id=params.user_id,
                source=params.source,
                results_count=len(ranking[:max_results]),
            ),
            recover=self.db.rollback,
        )

        return SearchOutcome(
            results=ranking[:max_results],
            cached=False,
            processing_time_ms=self._elapsed_ms(started),
            query_embedding=query_vector,
        )

    async def _rank(
        self, query_vector: List[float], entity_types: List[EntityType], threshold: float
    ) -> List[RankedResult]:
        cap = settings.SEARCH_MAX_RESULTS_CAP
        merged: List[RankedResult] = []
        for entity_type in entity_types:
            ranked = await self.ranker.rank(query_vector, entity_type, threshold, cap)
            merged.extend(await self._hydrate(ranked))

        order = {entity_type: i for i, entity_type in enumerate(EntityType)}
        merged.sort(key=lambda r: (-r.similarity, r.id, order[r.type]))
        return merged[:cap]

    async def _hydrate(self, ranked: List[RankedResult]) -> List[RankedResult]:
        """Attaches the current catalog payload and drops inactive entities, keeping order."""
        ids_by_type: Dict[EntityType, List[int]] = {}
        for result in ranked:
            ids_by_type.setdefault(result.type, []).append(result.id)
        active = {
            entity_type: await CatalogRepository(self.db, entity_type).get_active_by_ids(ids)
            for entity_type, ids in ids_by_type.items()
        }
        hydrated = []
        for result in ranked:
            entity = active[result.type].get(result.id)
            if entity is None:
                continue
            hydrated.append(result.model_copy(update={"metadata": entity.to_dict()}))
        return hydrated

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.perf_counter() - started) * 1000)
