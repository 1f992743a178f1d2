import hashlib
from datetime import datetime
from typing import Callable, List, Optional

from catalog_assistant.core.config import settings
from catalog_assistant.models.timeutils import utcnow
from catalog_assistant.services.embedding_provider import EmbeddingProvider
from catalog_assistant.services.result_cache import normalize_query
from catalog_assistant.services.ttl_cache import TimedCache


def embedding_cache_key(text: str) -> str:
    return hashlib.sha256(normalize_query(text).encode("utf-8")).hexdigest()


class QueryEmbeddingCache(TimedCache):
    """
    Query vectors keyed by the normalized query text, so the same question
    is embedded once across search scopes, cascades and requests.
    """

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(
            settings.QUERY_EMBEDDING_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds,
            max_entries or settings.QUERY_EMBEDDING_CACHE_MAX_ENTRIES,
            clock,
        )

    async def embed(self, provider: EmbeddingProvider, text: str) -> List[float]:
        key = embedding_cache_key(text)
        vector = self.get(key)
        if vector is None:
            vector = await provider.embed(text)
            self.put(key, vector)
        return list(vector)
