import logging
from typing import Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.models.embedding import EntityEmbedding
from catalog_assistant.models.schemas import EntityType, StoredVector
from catalog_assistant.models.timeutils import utcnow
from catalog_assistant.repositories.base import BaseRepository
from catalog_assistant.repositories.catalog import CATALOG_MODELS

logger = logging.getLogger(__name__)


def as_float_list(vector) -> List[float]:
    # pgvector hands back numpy arrays, the SQLite JSON variant plain lists
    return [float(x) for x in vector]


class EntityEmbeddingRepository(BaseRepository[EntityEmbedding]):
    def __init__(self, db: AsyncSession):
        super().__init__(db, EntityEmbedding)

    async def get_by_key(
        self, entity_type: EntityType, entity_id: int, content_type: str
    ) -> Optional[EntityEmbedding]:
        result = await self.db.execute(
            select(self.model).filter_by(
                entity_type=entity_type.value,
                entity_id=entity_id,
                content_type=content_type,
            )
        )
        return result.scalars().first()

    async def upsert(
        self,
        entity_type: EntityType,
        entity_id: int,
        content_type: str,
        vector: Sequence[float],
        source_text: str,
    ) -> EntityEmbedding:
        """
        Writes the embedding for (entity_type, entity_id, content_type),
        replacing the stored vector when the key already exists.
        """
        try:
            row = await self._write(entity_type, entity_id, content_type, vector, source_text)
            await self.db.commit()
        except IntegrityError:
            # A concurrent writer inserted the same key first: last writer wins.
            await self.db.rollback()
            logger.info(
                "Embedding key (%s, %s, %s) inserted concurrently, overwriting",
                entity_type.value, entity_id, content_type,
            )
            row = await self._write(entity_type, entity_id, content_type, vector, source_text)
            await self.db.commit()
        await self.db.refresh(row)
        return row

    async def _write(self, entity_type, entity_id, content_type, vector, source_text):
        row = await self.get_by_key(entity_type, entity_id, content_type)
        if row:
            row.embedding = list(vector)
            row.source_text = source_text
            row.updated_at = utcnow()
        else:
            row = EntityEmbedding(
                entity_type=entity_type.value,
                entity_id=entity_id,
                content_type=content_type,
                embedding=list(vector),
                source_text=source_text,
            )
            self.db.add(row)
        await self.db.flush()
        return row

    async def all_vectors_for(self, entity_type: EntityType) -> List[StoredVector]:
        """
        Full scan of the vectors of one entity type, restricted to entities
        that are still active in the catalog.
        """
        catalog = CATALOG_MODELS[entity_type]
        stmt = (
            select(
                self.model.entity_id,
                self.model.content_type,
                self.model.embedding,
                self.model.source_text,
            )
            .join(catalog, catalog.id == self.model.entity_id)
            .filter(
                self.model.entity_type == entity_type.value,
                catalog.is_active.is_(True),
            )
            .order_by(self.model.entity_id, self.model.content_type)
        )
        result = await self.db.execute(stmt)
        return [
            StoredVector(
                entity_id=row.entity_id,
                content_type=row.content_type,
                vector=as_float_list(row.embedding),
                source_text=row.source_text or "",
            )
            for row in result.all()
        ]

    async def delete_for_entity(self, entity_type: EntityType, entity_id: int) -> int:
        result = await self.db.execute(
            delete(self.model).where(
                self.model.entity_type == entity_type.value,
                self.model.entity_id == entity_id,
            )
        )
        await self.db.commit()
        return result.rowcount or 0

    async def delete_inactive(self, entity_type: EntityType) -> int:
        catalog = CATALOG_MODELS[entity_type]
        inactive_ids = select(catalog.id).where(catalog.is_active.is_(False))
        result = await self.db.execute(
            delete(self.model)
            .where(
                self.model.entity_type == entity_type.value,
                self.model.entity_id.in_(inactive_ids),
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def count_by_type(self) -> Dict[str, int]:
        result = await self.db.execute(
            select(self.model.entity_type, func.count(self.model.id)).group_by(
                self.model.entity_type
            )
        )
        counts = {entity_type.value: 0 for entity_type in EntityType}
        counts.update({row[0]: row[1] for row in result.all()})
        return counts
