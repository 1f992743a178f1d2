from functools import lru_cache
from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_assistant.core.database import SessionLocal
from catalog_assistant.services.cascade import FallbackCascade, build_default_cascade
from catalog_assistant.services.chat_orchestrator import (
    ChatOrchestrator,
    LLMProvider,
    default_llm_provider,
)
from catalog_assistant.services.embedding_cache import QueryEmbeddingCache
from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.embedding_store import EntityEmbeddingStore
from catalog_assistant.services.image_lookup import ImageMatchService
from catalog_assistant.services.response_cache import ChatResponseCache
from catalog_assistant.services.result_cache import DatabaseResultCache
from catalog_assistant.services.semantic_search import SemanticSearchService
from catalog_assistant.services.similarity import SimilarityRanker
from catalog_assistant.services.translation import MessageTranslator, TranslationCache


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Cria uma sessão de banco de dados para cada requisição
    e a fecha automaticamente quando a requisição termina.
    """
    async with SessionLocal() as db:
        yield db


@lru_cache
def get_embedding_provider() -> EmbeddingProvider:
    return EmbeddingProvider()


def get_llm_provider() -> LLMProvider:
    return default_llm_provider


@lru_cache
def get_chat_response_cache() -> ChatResponseCache:
    return ChatResponseCache()


@lru_cache
def get_query_embedding_cache() -> QueryEmbeddingCache:
    return QueryEmbeddingCache()


@lru_cache
def get_translation_cache() -> TranslationCache:
    return TranslationCache()


def get_embedding_store(
    db: AsyncSession = Depends(get_db),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
) -> EntityEmbeddingStore:
    return EntityEmbeddingStore(db, provider)


def get_search_service(
    db: AsyncSession = Depends(get_db),
    provider: EmbeddingProvider = Depends(get_embedding_provider),
    store: EntityEmbeddingStore = Depends(get_embedding_store),
    embedding_cache: QueryEmbeddingCache = Depends(get_query_embedding_cache),
) -> SemanticSearchService:
    return SemanticSearchService(
        db, provider, SimilarityRanker(store), DatabaseResultCache(db), embedding_cache
    )


def get_cascade(
    db: AsyncSession = Depends(get_db),
    search: SemanticSearchService = Depends(get_search_service),
) -> FallbackCascade:
    return build_default_cascade(db, search)


def get_chat_orchestrator(
    cascade: FallbackCascade = Depends(get_cascade),
    response_cache: ChatResponseCache = Depends(get_chat_response_cache),
    llm_provider: LLMProvider = Depends(get_llm_provider),
    translation_cache: TranslationCache = Depends(get_translation_cache),
) -> ChatOrchestrator:
    return ChatOrchestrator(
        cascade, response_cache, llm_provider, MessageTranslator(llm_provider, translation_cache)
    )


def get_image_match_service(
    search: SemanticSearchService = Depends(get_search_service),
) -> ImageMatchService:
    return ImageMatchService(search)
