"""
Shared fixtures: an in-memory SQLite database, fake embedding and chat
models, and small helpers to seed catalog rows and stored vectors.
"""

import os
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

# Settings are read at import time, so the environment must be ready first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["EMBEDDING_DIMENSION"] = "4"
os.environ["EMBEDDING_RETRY_ATTEMPTS"] = "3"
os.environ["EMBEDDING_BATCH_DELAY_SECONDS"] = "0"
os.environ["GROQ_API_KEY"] = "test-groq-key"
os.environ["GOOGLE_API_KEY"] = "test-google-key"
os.environ.pop("RABBITMQ_URL", None)

import pytest
import pytest_asyncio
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage
from langchain_core.outputs import ChatGeneration, ChatResult
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_assistant.core.database import Base
from catalog_assistant.models.catalog import BrandInfo, Product
from catalog_assistant.models.embedding import EntityEmbedding, QueryEmbedding, SemanticSearchCache  # noqa: F401
from catalog_assistant.services.prompt_builder import NO_PRODUCTS_SENTENCE

DIM = 4

QUERY_AXIS = [1.0, 0.0, 0.0, 0.0]
ORTHOGONAL = [0.0, 0.0, 0.0, 1.0]


def vector_with_similarity(similarity: float) -> List[float]:
    """A unit vector whose cosine against ``QUERY_AXIS`` is ``similarity``."""
    return [similarity, (1.0 - similarity**2) ** 0.5, 0.0, 0.0]


class FakeEmbeddings(Embeddings):
    """Maps known texts to fixed vectors; everything else gets ``default``."""

    def __init__(
        self,
        vectors: Optional[Dict[str, Sequence[float]]] = None,
        default: Optional[Sequence[float]] = None,
    ):
        self.vectors = dict(vectors or {})
        self.default = list(default or ORTHOGONAL)
        self.calls: List[str] = []
        self.fail_first = 0
        self.fail_with: Optional[BaseException] = None
        self.fail_texts: set = set()

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        return [self.embed_query(text) for text in texts]

    def embed_query(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_first > 0:
            self.fail_first -= 1
            raise self.fail_with or RuntimeError("embedding provider unavailable")
        if text in self.fail_texts:
            raise RuntimeError(f"cannot embed {text!r}")
        return list(self.vectors.get(text, self.default))

    async def aembed_query(self, text: str) -> List[float]:
        return self.embed_query(text)


class PromptRecordingChatModel(BaseChatModel):
    """
    Chat model double: records every prompt and follows the empty-context
    instruction the way a well-behaved model would.
    """

    reply: str = "Te recomendamos revisar el equipo del catálogo."
    fail: bool = False
    prompts: List[str] = Field(default_factory=list)

    @property
    def _llm_type(self) -> str:
        return "prompt-recording"

    def _generate(self, messages, stop=None, run_manager=None, **kwargs) -> ChatResult:
        prompt = "\n".join(str(message.content) for message in messages)
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("llm unavailable")
        text = self.reply
        if "no hay productos ni marcas en el contexto" in prompt:
            text = NO_PRODUCTS_SENTENCE
        return ChatResult(generations=[ChatGeneration(message=AIMessage(content=text))])


class MutableClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine):
    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session


@pytest.fixture
def fake_embeddings():
    return FakeEmbeddings()


@pytest.fixture
def chat_model():
    return PromptRecordingChatModel()


@pytest.fixture
def clock():
    return MutableClock()


async def add_product(db: AsyncSession, **fields) -> Product:
    values = {"name": "Producto", "is_active": True}
    values.update(fields)
    product = Product(**values)
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


async def add_brand(db: AsyncSession, **fields) -> BrandInfo:
    values = {"brand_name": "Marca", "title": "Información", "is_active": True}
    values.update(fields)
    brand = BrandInfo(**values)
    db.add(brand)
    await db.commit()
    await db.refresh(brand)
    return brand


async def add_embedding(
    db: AsyncSession,
    entity_type: str,
    entity_id: int,
    vector: Sequence[float],
    content_type: str = "name",
    source_text: str = "",
) -> EntityEmbedding:
    row = EntityEmbedding(
        entity_type=entity_type,
        entity_id=entity_id,
        content_type=content_type,
        embedding=list(vector),
        source_text=source_text,
    )
    db.add(row)
    await db.commit()
    return row
