from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.models.embedding import QueryEmbedding
from catalog_assistant.models.timeutils import utcnow
from catalog_assistant.repositories.base import BaseRepository


class QueryEmbeddingRepository(BaseRepository[QueryEmbedding]):
    """Analytics log of executed search queries, one row per (query, user, source)."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, QueryEmbedding)

    async def get_by_actor(
        self, query_text: str, user_id: Optional[str], source: str
    ) -> Optional[QueryEmbedding]:
        stmt = select(self.model).filter(
            self.model.query_text == query_text, self.model.source == source
        )
        if user_id is None:
            stmt = stmt.filter(self.model.user_id.is_(None))
        else:
            stmt = stmt.filter(self.model.user_id == user_id)
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def record(
        self,
        query_text: str,
        vector: Sequence[float],
        user_id: Optional[str] = None,
        source: str = "api",
        results_count: int = 0,
    ) -> QueryEmbedding:
        row = await self.get_by_actor(query_text, user_id, source)
        if row:
            row.embedding = list(vector)
            row.results_count = results_count
            row.created_at = utcnow()
        else:
            row = QueryEmbedding(
                query_text=query_text,
                embedding=list(vector),
                user_id=user_id,
                source=source,
                results_count=results_count,
            )
            self.db.add(row)
        await self.db.commit()
        await self.db.refresh(row)
        return row
