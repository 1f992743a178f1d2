from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from pgvector.sqlalchemy import Vector

from catalog_assistant.core.config import settings
from catalog_assistant.core.database import Base
from catalog_assistant.models.timeutils import utcnow


def vector_column_type():
    # pgvector on PostgreSQL, plain JSON arrays on SQLite
    return Vector(settings.EMBEDDING_DIMENSION).with_variant(JSON(), "sqlite")


class EntityEmbedding(Base):
    __tablename__ = "entity_embeddings"
    __table_args__ = (
        UniqueConstraint(
            "entity_type", "entity_id", "content_type", name="uq_entity_embedding_key"
        ),
    )

    id = Column(Integer, primary_key=True)
    entity_type = Column(String(16), nullable=False, index=True)
    entity_id = Column(Integer, nullable=False, index=True)
    content_type = Column(String(32), nullable=False)
    embedding = Column(vector_column_type(), nullable=False)
    source_text = Column(Text)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class QueryEmbedding(Base):
    __tablename__ = "query_embeddings"
    __table_args__ = (
        UniqueConstraint(
            "query_text", "user_id", "source", name="uq_query_embedding_actor"
        ),
    )

    id = Column(Integer, primary_key=True)
    query_text = Column(Text, nullable=False)
    embedding = Column(vector_column_type(), nullable=False)
    user_id = Column(String(64))
    source = Column(String(32), nullable=False, default="api")
    results_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)


class SemanticSearchCache(Base):
    __tablename__ = "semantic_search_cache"

    id = Column(Integer, primary_key=True)
    query_hash = Column(String(64), nullable=False, unique=True, index=True)
    query_text = Column(Text, nullable=False)
    query_embedding = Column(JSON)
    results = Column(JSON, nullable=False)
    result_count = Column(Integer, nullable=False, default=0)
    access_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
    last_accessed_at = Column(DateTime, default=utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)
