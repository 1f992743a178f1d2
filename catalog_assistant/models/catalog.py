"""
Catalog tables owned by the admin CRUD. This service only reads them
(plus the ``is_active`` flag used to filter stale embeddings).
"""

from typing import Any, Dict

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text

from catalog_assistant.core.database import Base
from catalog_assistant.models.timeutils import utcnow


def _iso(value):
    return value.isoformat() if value is not None else None


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    description = Column(Text)
    categoria = Column(String)
    type = Column(String)  # equipo | accesorio | suministro
    tags = Column(JSON)
    marca = Column(String)
    modelo = Column(String)
    titulo = Column(String)
    product_data = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "categoria": self.categoria,
            "type": self.type,
            "tags": list(self.tags or []),
            "marca": self.marca,
            "modelo": self.modelo,
            "titulo": self.titulo,
            "product_data": self.product_data or {},
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class BrandInfo(Base):
    __tablename__ = "brand_info"

    id = Column(Integer, primary_key=True)
    brand_name = Column(String, nullable=False)
    title = Column(String, nullable=False)
    content = Column(Text)
    category = Column(String)
    tags = Column(JSON)
    json_data = Column(JSON)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "brand_name": self.brand_name,
            "title": self.title,
            "content": self.content,
            "category": self.category,
            "tags": list(self.tags or []),
            "json_data": self.json_data,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
