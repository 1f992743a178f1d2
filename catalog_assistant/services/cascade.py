"""
Tiered retrieval: semantic -> keyword -> domain-term -> broad scan.

Each tier is a ``RetrievalStrategy``; ``FallbackCascade`` runs them in order
and stops at the first one that returns entities. A tier that raises is
logged and treated as empty.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.core.config import settings
from catalog_assistant.models.schemas import EntityType
from catalog_assistant.repositories.catalog import CatalogRepository
from catalog_assistant.services.keywords import (
    DOMAIN_TERMS,
    extract_keywords,
    fold_accents,
    headline_text,
    matched_domain_terms,
    searchable_text,
)
from catalog_assistant.services.result_cache import normalize_query
from catalog_assistant.services.semantic_search import SearchParams, SemanticSearchService
from catalog_assistant.services.similarity import dedupe_by_entity

logger = logging.getLogger(__name__)

Entity = Dict[str, Any]


@dataclass
class CascadeOptions:
    threshold: Optional[float] = None
    limit: int = 5
    use_cache: bool = True
    user_id: Optional[str] = None
    source: str = "chat"


@dataclass
class CascadeResult:
    entities: List[Entity] = field(default_factory=list)
    # name of the tier that answered, None when every tier came back empty
    tier: Optional[str] = None


class RetrievalStrategy(ABC):
    name: str = "strategy"

    @abstractmethod
    async def attempt(
        self, query: str, entity_type: EntityType, options: CascadeOptions
    ) -> Optional[List[Entity]]:
        """Entities for ``query``; None or [] lets the next tier run."""


class SemanticStrategy(RetrievalStrategy):
    name = "semantic"

    def __init__(self, search: SemanticSearchService):
        self.search = search

    async def attempt(self, query, entity_type, options):
        threshold = (
            settings.PRIMARY_SIMILARITY_THRESHOLD
            if options.threshold is None
            else options.threshold
        )
        outcome = await self.search.search(
            SearchParams(
                query=query,
                scope=entity_type.search_scope,
                threshold=threshold,
                max_results=settings.SEARCH_MAX_RESULTS_CAP,
                use_cache=options.use_cache,
                user_id=options.user_id,
                source=options.source,
            )
        )
        best = dedupe_by_entity(outcome.results)[: options.limit]
        return [{**result.metadata, "similarity": result.similarity} for result in best]


class _CatalogScanStrategy(RetrievalStrategy):
    def __init__(self, db: AsyncSession, scan_limit: Optional[int] = None):
        self.db = db
        self.scan_limit = scan_limit or settings.KEYWORD_SCAN_LIMIT

    async def _matching(
        self, entity_type: EntityType, needles: Sequence[str]
    ) -> List[Entity]:
        """
        Active entities whose folded text contains any of ``needles``, in
        catalog order and at most ``scan_limit`` of them. SQL narrows the rows
        page by page; the folded-text check decides.
        """
        repo = CatalogRepository(self.db, entity_type)
        words = {word for needle in needles for word in needle.split()}
        found: List[Entity] = []
        offset = 0
        while len(found) < self.scan_limit:
            rows = await repo.list_active_matching(words, limit=self.scan_limit, offset=offset)
            for row in rows:
                entity = row.to_dict()
                text = searchable_text(entity, entity_type)
                if any(needle in text for needle in needles):
                    found.append(entity)
            if len(rows) < self.scan_limit:
                break
            offset += len(rows)
        return found[: self.scan_limit]


class KeywordStrategy(_CatalogScanStrategy):
    name = "keyword"

    async def attempt(self, query, entity_type, options):
        terms = [fold_accents(k) for k in extract_keywords(query)]
        whole = fold_accents(normalize_query(query))
        if whole and whole not in terms:
            terms.append(whole)
        if not terms:
            return None

        scored = []
        for entity in await self._matching(entity_type, terms):
            headline = headline_text(entity, entity_type)
            scored.append((sum(1 for term in terms if term in headline), entity))

        # stable: equal hit counts keep catalog order
        scored.sort(key=lambda item: -item[0])
        return [entity for _, entity in scored]


class DomainTermStrategy(_CatalogScanStrategy):
    name = "domain_term"

    async def attempt(self, query, entity_type, options):
        terms = matched_domain_terms(query)
        if not terms:
            return None
        stems = sorted({stem for term in terms for stem in DOMAIN_TERMS[term]})
        logger.info(f"🔎 Termos de domínio detectados: {', '.join(terms)}")
        return await self._matching(entity_type, stems)


class BroadScanStrategy(RetrievalStrategy):
    name = "broad"

    def __init__(self, db: AsyncSession, scan_limit: Optional[int] = None):
        self.db = db
        self.scan_limit = scan_limit or settings.BROAD_SCAN_LIMIT

    async def attempt(self, query, entity_type, options):
        rows = await CatalogRepository(self.db, entity_type).list_active(
            limit=self.scan_limit, newest_first=True
        )
        return [row.to_dict() for row in rows]


class FallbackCascade:
    def __init__(
        self,
        strategies: Sequence[RetrievalStrategy],
        recover: Optional[Callable[[], Awaitable[None]]] = None,
    ):
        self.strategies = list(strategies)
        self.recover = recover

    async def find_relevant(
        self,
        query: str,
        entity_type: EntityType,
        options: Optional[CascadeOptions] = None,
    ) -> CascadeResult:
        options = options or CascadeOptions()
        for strategy in self.strategies:
            try:
                entities = await strategy.attempt(query, entity_type, options)
            except Exception:
                logger.warning(
                    "Tier '%s' failed for %s, falling through",
                    strategy.name, entity_type.value, exc_info=True,
                )
                await self._recover()
                continue

            if entities:
                found = self._unique_by_id(entities)[: options.limit]
                logger.info(
                    f"✅ {len(found)} {entity_type.value}(s) encontrados via '{strategy.name}'"
                )
                return CascadeResult(entities=found, tier=strategy.name)

        logger.info(f"Nenhum {entity_type.value} encontrado para '{query[:40]}'")
        return CascadeResult()

    async def _recover(self) -> None:
        if self.recover is None:
            return
        try:
            await self.recover()
        except Exception:
            logger.warning("Rollback after failed tier did not succeed", exc_info=True)

    @staticmethod
    def _unique_by_id(entities: List[Entity]) -> List[Entity]:
        seen = set()
        unique = []
        for entity in entities:
            if entity.get("id") in seen:
                continue
            seen.add(entity.get("id"))
            unique.append(entity)
        return unique


def build_default_cascade(
    db: AsyncSession, search: SemanticSearchService
) -> FallbackCascade:
    return FallbackCascade(
        [
            SemanticStrategy(search),
            KeywordStrategy(db),
            DomainTermStrategy(db),
            BroadScanStrategy(db),
        ],
        recover=db.rollback,
    )
