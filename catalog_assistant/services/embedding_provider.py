import logging
import math
from typing import List, Optional

from google.api_core.exceptions import ResourceExhausted
from langchain_core.embeddings import Embeddings
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from catalog_assistant.core.config import settings
from catalog_assistant.core.exceptions import EmbeddingProviderError, InvalidRequestError
from catalog_assistant.services.llm_factory import get_embeddings

logger = logging.getLogger(__name__)


def _is_quota_error(exc: BaseException) -> bool:
    if isinstance(exc, ResourceExhausted):
        return True
    # google-genai surfaces 429s as ClientError(code=429)
    return getattr(exc, "code", None) == 429


def prepare_text(text: Optional[str], max_chars: int) -> str:
    """Strips and truncates ``text`` to ``max_chars``; blank input is rejected."""
    clean = (text or "").strip()
    if not clean:
        raise InvalidRequestError("Cannot embed an empty text")
    return clean[:max_chars]


class EmbeddingProvider:
    """Turns text into fixed-length vectors through the configured embedding model."""

    def __init__(
        self,
        embeddings: Optional[Embeddings] = None,
        *,
        dimension: Optional[int] = None,
        max_chars: Optional[int] = None,
    ):
        self.embeddings = embeddings if embeddings is not None else get_embeddings()
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.max_chars = max_chars or settings.EMBEDDING_MAX_INPUT_CHARS

    @retry(
        retry=retry_if_exception(_is_quota_error),
        wait=wait_exponential(multiplier=1, min=2, max=60),
        stop=stop_after_attempt(settings.EMBEDDING_RETRY_ATTEMPTS),
        reraise=True,
    )
    async def _embed_with_retry(self, text: str):
        return await self.embeddings.aembed_query(text)

    async def embed(self, text: str) -> List[float]:
        clean = prepare_text(text, self.max_chars)
        try:
            raw = await self._embed_with_retry(clean)
        except Exception as e:
            logger.error(f"❌ Embedding provider failed: {e}")
            raise EmbeddingProviderError(str(e) or e.__class__.__name__) from e
        return self._validate(raw)

    def _validate(self, raw) -> List[float]:
        try:
            vector = [float(x) for x in raw]
        except (TypeError, ValueError) as e:
            raise EmbeddingProviderError("Malformed embedding returned by provider") from e

        if len(vector) != self.dimension:
            raise EmbeddingProviderError(
                f"Embedding has {len(vector)} dimensions, expected {self.dimension}"
            )
        if not all(math.isfinite(x) for x in vector):
            raise EmbeddingProviderError("Embedding contains non-finite values")
        return vector
