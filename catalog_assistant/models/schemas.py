import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import BaseModel, Field, field_validator

Primitive = Union[str, int, float, bool]


class EntityType(str, Enum):
    PRODUCT = "product"
    BRAND = "brand"

    @property
    def search_scope(self) -> str:
        """Name used by the semantic search API (``products`` / ``brands``)."""
        return f"{self.value}s"


SEARCH_SCOPES: Dict[str, List[EntityType]] = {
    "products": [EntityType.PRODUCT],
    "brands": [EntityType.BRAND],
    "both": [EntityType.PRODUCT, EntityType.BRAND],
}


@dataclass(frozen=True)
class StoredVector:
    """One embedding row as seen by the ranker."""

    entity_id: int
    content_type: str
    vector: Sequence[float]
    source_text: str = ""


class RankedResult(BaseModel):
    id: int
    similarity: float
    content: str = ""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    type: EntityType
    content_type: Optional[str] = None


class EmbeddingRequest(BaseModel):
    text: str
    type: str  # product | brand | query
    entity_id: Optional[int] = None
    content_type: Optional[str] = None
    user_id: Optional[str] = None
    source: Optional[str] = None


class BatchItemResult(BaseModel):
    success: bool
    embedding: Optional[List[float]] = None
    id: Optional[int] = None
    error: Optional[str] = None


class ChatTurn(BaseModel):
    role: str
    content: str


def _text_item(item: Any) -> Optional[str]:
    if item is None:
        return None
    if isinstance(item, str):
        return item.strip() or None
    if isinstance(item, dict):
        label = item.get("name") or item.get("title") or item.get("id")
        if label is not None:
            return str(label)
        return json.dumps(item, ensure_ascii=False, sort_keys=True)
    return str(item)


def _primitive_bag(value: Any) -> Dict[str, Primitive]:
    if not isinstance(value, dict):
        return {}
    bag: Dict[str, Primitive] = {}
    for key, item in value.items():
        if item is None:
            continue
        if isinstance(item, (str, int, float, bool)):
            bag[str(key)] = item
        else:
            bag[str(key)] = json.dumps(item, ensure_ascii=False, sort_keys=True)
    return bag


class ProductAttributes(BaseModel):
    """
    Typed view over a product's attributes.

    Known keys come from the product columns first and ``product_data``
    second; every other primitive in ``product_data`` lands in ``extra``.
    """

    marca: Optional[str] = None
    modelo: Optional[str] = None
    titulo: Optional[str] = None
    caracteristicas: List[str] = Field(default_factory=list)
    articulos_requeridos: List[str] = Field(default_factory=list)
    articulos_opcionales: List[str] = Field(default_factory=list)
    imagenes: List[str] = Field(default_factory=list)
    especificaciones: Dict[str, Primitive] = Field(default_factory=dict)
    extra: Dict[str, Primitive] = Field(default_factory=dict)

    @field_validator(
        "caracteristicas",
        "articulos_requeridos",
        "articulos_opcionales",
        "imagenes",
        mode="before",
    )
    @classmethod
    def _coerce_text_list(cls, value):
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            value = [value]
        return [text for text in (_text_item(item) for item in value) if text]

    @field_validator("especificaciones", mode="before")
    @classmethod
    def _coerce_specs(cls, value):
        return _primitive_bag(value)

    @field_validator("marca", "modelo", "titulo", mode="before")
    @classmethod
    def _coerce_label(cls, value):
        return _text_item(value)

    @classmethod
    def from_product(cls, product: Dict[str, Any]) -> "ProductAttributes":
        data = product.get("product_data")
        data = dict(data) if isinstance(data, dict) else {}
        known = set(cls.model_fields) - {"extra"}

        values: Dict[str, Any] = {
            key: data[key] for key in known if data.get(key) is not None
        }
        for column in ("marca", "modelo", "titulo"):
            if product.get(column):
                values[column] = product[column]

        extra = {
            key: item
            for key, item in data.items()
            if key not in known and isinstance(item, (str, int, float, bool))
        }
        return cls(**values, extra=extra)

    def searchable_values(self) -> List[str]:
        values: List[str] = [v for v in (self.marca, self.modelo, self.titulo) if v]
        values.extend(self.caracteristicas)
        values.extend(self.articulos_requeridos)
        values.extend(self.articulos_opcionales)
        values.extend(f"{k} {v}" for k, v in self.especificaciones.items())
        values.extend(f"{k} {v}" for k, v in self.extra.items())
        return values
