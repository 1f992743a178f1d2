from typing import Dict, Iterable, List, Union

from sqlalchemy import Text, cast, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.models.catalog import BrandInfo, Product
from catalog_assistant.models.schemas import EntityType
from catalog_assistant.repositories.base import BaseRepository

CatalogEntity = Union[Product, BrandInfo]

CATALOG_MODELS = {
    EntityType.PRODUCT: Product,
    EntityType.BRAND: BrandInfo,
}

# columns the keyword tiers read, split by storage: plain text and JSON documents
TEXT_COLUMNS = {
    EntityType.PRODUCT: ("name", "categoria", "description", "type", "marca", "modelo", "titulo"),
    EntityType.BRAND: ("brand_name", "title", "category", "content"),
}
JSON_COLUMNS = {
    EntityType.PRODUCT: ("tags", "product_data"),
    EntityType.BRAND: ("tags", "json_data"),
}

# letters that carry Spanish accents (á é í ó ú ü ñ) in stored text but not in folded words
_ACCENTABLE = frozenset("aeioun")


def like_pattern(word: str, accent_wildcard: str) -> str:
    """
    Substring LIKE pattern for an accent-folded word. Accentable letters
    become ``accent_wildcard``: "_" for plain text, "%" for JSON text where
    non-ASCII characters are stored as escape sequences.
    """
    escaped = []
    for ch in word:
        if ch in _ACCENTABLE:
            escaped.append(accent_wildcard)
        elif ch in "\\%_":
            escaped.append("\\" + ch)
        else:
            escaped.append(ch)
    return "%" + "".join(escaped) + "%"


class CatalogRepository(BaseRepository[CatalogEntity]):
    """Read access to one catalog table (products or brand documents)."""

    def __init__(self, db: AsyncSession, entity_type: EntityType):
        super().__init__(db, CATALOG_MODELS[entity_type])
        self.entity_type = entity_type

    async def get_active(self, entity_id: int):
        result = await self.db.execute(
            select(self.model).filter(
                self.model.id == entity_id, self.model.is_active.is_(True)
            )
        )
        return result.scalars().first()

    async def get_active_by_ids(self, ids: List[int]) -> Dict[int, CatalogEntity]:
        """
        Fetches active entities by id. Inactive or unknown ids are simply absent.
        """
        if not ids:
            return {}
        result = await self.db.execute(
            select(self.model).filter(
                self.model.id.in_(set(ids)), self.model.is_active.is_(True)
            )
        )
        return {row.id: row for row in result.scalars().all()}

    async def list_active(self, limit: int = 50, newest_first: bool = False) -> List[CatalogEntity]:
        """
        Lists active entities. Catalog order is id ascending; the broad scan
        asks for the newest rows first.
        """
        stmt = select(self.model).filter(self.model.is_active.is_(True))
        if newest_first:
            stmt = stmt.order_by(self.model.created_at.desc(), self.model.id.desc())
        else:
            stmt = stmt.order_by(self.model.id)
        result = await self.db.execute(stmt.limit(limit))
        return list(result.scalars().all())

    async def count_active(self) -> int:
        result = await self.db.execute(
            select(func.count(self.model.id)).filter(self.model.is_active.is_(True))
        )
        return result.scalar() or 0

    async def list_active_matching(
        self, words: Iterable[str], limit: int = 50, offset: int = 0
    ) -> List[CatalogEntity]:
        """
        Active entities where any of ``words`` (accent-folded, lowercase) may
        appear in a text or JSON column, in catalog order. The filter is a
        superset: callers refine the rows against the folded entity text.
        """
        conditions = []
        for word in {w for w in words if w}:
            text_pattern = like_pattern(word, "_")
            json_pattern = like_pattern(word, "%")
            for name in TEXT_COLUMNS[self.entity_type]:
                conditions.append(getattr(self.model, name).ilike(text_pattern, escape="\\"))
            for name in JSON_COLUMNS[self.entity_type]:
                conditions.append(
                    cast(getattr(self.model, name), Text).ilike(json_pattern, escape="\\")
                )
        if not conditions:
            return []

        stmt = (
            select(self.model)
            .filter(self.model.is_active.is_(True), or_(*conditions))
            .order_by(self.model.id)
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
