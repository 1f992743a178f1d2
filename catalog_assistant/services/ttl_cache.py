import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Tuple

from catalog_assistant.models.timeutils import utcnow

logger = logging.getLogger(__name__)


class TimedCache:
    """
    Process-local key/value store with a fixed TTL and a size bound.

    Entries expire once they are ``ttl_seconds`` old. Past ``max_entries``,
    expired entries are dropped first and then the oldest ones.
    """

    def __init__(
        self,
        ttl_seconds: int,
        max_entries: int,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_entries = max_entries
        self.clock = clock
        self._entries: "OrderedDict[str, Tuple[Any, datetime]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self.clock() - stored_at >= self.ttl:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self.clock())
        self._entries.move_to_end(key)
        if len(self._entries) > self.max_entries:
            self._evict()

    def clear(self) -> None:
        self._entries.clear()

    def _evict(self) -> None:
        now = self.clock()
        for key in [k for k, (_, at) in self._entries.items() if now - at >= self.ttl]:
            del self._entries[key]
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
        logger.debug("%s trimmed to %d entries", type(self).__name__, len(self._entries))
