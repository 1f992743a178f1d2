import logging
from datetime import datetime
from typing import Any, List, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.models.embedding import SemanticSearchCache
from catalog_assistant.repositories.base import BaseRepository

logger = logging.getLogger(__name__)


class SearchCacheRepository(BaseRepository[SemanticSearchCache]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, SemanticSearchCache)

    async def get_by_hash(self, query_hash: str) -> Optional[SemanticSearchCache]:
        result = await self.db.execute(
            select(self.model).filter(self.model.query_hash == query_hash)
        )
        return result.scalars().first()

    async def get_valid(self, query_hash: str, now: datetime) -> Optional[SemanticSearchCache]:
        """Returns the entry for ``query_hash`` only if it has not expired at ``now``."""
        result = await self.db.execute(
            select(self.model).filter(
                self.model.query_hash == query_hash, self.model.expires_at > now
            )
        )
        return result.scalars().first()

    async def touch(self, entry: SemanticSearchCache, now: datetime) -> None:
        entry.access_count = (entry.access_count or 0) + 1
        entry.last_accessed_at = now
        await self.db.commit()

    async def upsert(
        self,
        query_hash: str,
        query_text: str,
        query_embedding: Optional[Sequence[float]],
        results: List[Any],
        now: datetime,
        expires_at: datetime,
    ) -> SemanticSearchCache:
        """Writes the entry for ``query_hash``; the last writer wins."""
        values = dict(
            query_text=query_text,
            query_embedding=list(query_embedding) if query_embedding is not None else None,
            results=results,
            result_count=len(results),
            created_at=now,
            last_accessed_at=now,
            expires_at=expires_at,
        )
        try:
            entry = await self._write(query_hash, values)
            await self.db.commit()
        except IntegrityError:
            # Another request cached the same query between our lookup and insert.
            await self.db.rollback()
            logger.info("Cache entry %s inserted concurrently, overwriting", query_hash[:12])
            entry = await self._write(query_hash, values)
            await self.db.commit()
        return entry

    async def _write(self, query_hash: str, values: dict) -> SemanticSearchCache:
        entry = await self.get_by_hash(query_hash)
        if entry:
            for name, value in values.items():
                setattr(entry, name, value)
        else:
            entry = SemanticSearchCache(query_hash=query_hash, access_count=0, **values)
            self.db.add(entry)
        await self.db.flush()
        return entry

    async def delete_by_hash(self, query_hash: str) -> None:
        await self.db.execute(delete(self.model).where(self.model.query_hash == query_hash))
        await self.db.commit()

    async def delete_expired(self, now: datetime) -> int:
        result = await self.db.execute(
            delete(self.model)
            .where(self.model.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0
