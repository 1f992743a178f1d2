import hashlib
import json
from datetime import datetime
from typing import Callable, Optional, Sequence

from catalog_assistant.core.config import settings
from catalog_assistant.models.schemas import ChatTurn
from catalog_assistant.models.timeutils import utcnow
from catalog_assistant.services.result_cache import normalize_query
from catalog_assistant.services.ttl_cache import TimedCache


def chat_cache_key(message: str, history: Sequence[ChatTurn]) -> str:
    payload = json.dumps(
        [turn.model_dump() for turn in history], ensure_ascii=False, sort_keys=True
    )
    raw = f"{normalize_query(message)}|{payload}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class ChatResponseCache(TimedCache):
    """Short-lived cache of generated chat answers, keyed by ``chat_cache_key``."""

    def __init__(
        self,
        ttl_seconds: Optional[int] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(
            settings.CHAT_CACHE_TTL_SECONDS if ttl_seconds is None else ttl_seconds,
            max_entries or settings.CHAT_CACHE_MAX_ENTRIES,
            clock,
        )
