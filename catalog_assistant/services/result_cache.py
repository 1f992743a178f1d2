"""
Content-addressed cache of semantic search results.

Entries are keyed by a hash of (normalized query, search scope, threshold)
and expire strictly at ``expires_at``. The cache is an optimization only:
swapping any implementation for ``NullResultCache`` must not change results.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.core.config import settings
from catalog_assistant.core.exceptions import MalformedCacheEntryError
from catalog_assistant.models.schemas import RankedResult
from catalog_assistant.models.timeutils import utcnow
from catalog_assistant.repositories.search_cache import SearchCacheRepository

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def normalize_query(query_text: str) -> str:
    return " ".join((query_text or "").lower().split())


def query_hash(query_text: str, scope: str, threshold: float) -> str:
    key = f"{normalize_query(query_text)}|{scope}|{threshold:.4f}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def cache_ttl_for_query(query_text: str) -> int:
    """Longest matching topic override, or the default TTL (seconds)."""
    normalized = normalize_query(query_text)
    ttl = settings.SEARCH_CACHE_TTL_SECONDS
    matches = [
        seconds
        for topic, seconds in settings.SEARCH_CACHE_TTL_OVERRIDES.items()
        if topic in normalized
    ]
    return max(matches) if matches else ttl


def decode_results(raw) -> List[RankedResult]:
    if not isinstance(raw, list):
        raise MalformedCacheEntryError(f"Cached results are {type(raw).__name__}, not a list")
    try:
        return [RankedResult.model_validate(item) for item in raw]
    except ValidationError as e:
        raise MalformedCacheEntryError(str(e)) from e


def encode_results(results: Sequence[RankedResult]) -> List[dict]:
    return [result.model_dump(mode="json") for result in results]


class ResultCache(Protocol):
    async def get(
        self, query_text: str, scope: str, threshold: float
    ) -> Optional[List[RankedResult]]: ...

    async def put(
        self,
        query_text: str,
        scope: str,
        threshold: float,
        query_embedding: Optional[Sequence[float]],
        results: Sequence[RankedResult],
        ttl: Optional[int] = None,
    ) -> None: ...

    async def sweep_expired(self) -> int: ...


class NullResultCache:
    """Disabled cache: always misses, stores nothing."""

    async def get(self, query_text, scope, threshold):
        return None

    async def put(self, query_text, scope, threshold, query_embedding, results, ttl=None):
        return None

    async def sweep_expired(self) -> int:
        return 0


@dataclass
class _MemoryEntry:
    query_text: str
    query_embedding: Optional[List[float]]
    results: list
    created_at: datetime
    expires_at: datetime
    last_accessed_at: datetime
    access_count: int = 0


@dataclass
class InMemoryResultCache:
    """Dict-backed cache for a single process (and for tests)."""

    clock: Clock = utcnow
    entries: Dict[str, _MemoryEntry] = field(default_factory=dict)

    async def get(self, query_text, scope, threshold):
        key = query_hash(query_text, scope, threshold)
        entry = self.entries.get(key)
        if entry is None:
            return None
        now = self.clock()
        if entry.expires_at <= now:
            return None
        try:
            results = decode_results(entry.results)
        except MalformedCacheEntryError:
            logger.warning("Evicting malformed cache entry %s", key[:16])
            self.entries.pop(key, None)
            return None
        entry.access_count += 1
        entry.last_accessed_at = now
        return results

    async def put(self, query_text, scope, threshold, query_embedding, results, ttl=None):
        now = self.clock()
        seconds = ttl if ttl is not None else cache_ttl_for_query(query_text)
        self.entries[query_hash(query_text, scope, threshold)] = _MemoryEntry(
            query_text=query_text,
            query_embedding=list(query_embedding) if query_embedding is not None else None,
            results=encode_results(results),
            created_at=now,
            expires_at=now + timedelta(seconds=seconds),
            last_accessed_at=now,
        )

    async def sweep_expired(self) -> int:
        now = self.clock()
        expired = [key for key, entry in self.entries.items() if entry.expires_at < now]
        for key in expired:
            del self.entries[key]
        return len(expired)


class DatabaseResultCache:
    """Cache backed by the ``semantic_search_cache`` table."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.repo = SearchCacheRepository(db)
        self.clock = clock

    async def get(self, query_text, scope, threshold):
        key = query_hash(query_text, scope, threshold)
        now = self.clock()
        try:
            entry = await self.repo.get_valid(key, now)
            if entry is None:
                return None
            try:
                results = decode_results(entry.results)
            except MalformedCacheEntryError:
                logger.warning("Evicting malformed cache entry %s", key[:16])
                await self.repo.delete_by_hash(key)
                return None
            await self.repo.touch(entry, now)
            return results
        except SQLAlchemyError:
            await self.db.rollback()
            logger.warning("Cache read failed for %s, treating as miss", key[:16], exc_info=True)
            return None

    async def put(self, query_text, scope, threshold, query_embedding, results, ttl=None):
        now = self.clock()
        seconds = ttl if ttl is not None else cache_ttl_for_query(query_text)
        await self.repo.upsert(
            query_hash=query_hash(query_text, scope, threshold),
            query_text=query_text,
            query_embedding=query_embedding,
            results=encode_results(results),
            now=now,
            expires_at=now + timedelta(seconds=seconds),
        )

    async def sweep_expired(self) -> int:
        removed = await self.repo.delete_expired(self.clock())
        logger.info(f"🧹 {removed} entradas expiradas removidas do cache semântico")
        return removed
