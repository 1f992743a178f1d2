"""
Non-critical side effects (analytics writes, cache writes).

Anything wrapped in ``NonCritical`` may fail without affecting the caller:
the exception is logged and the configured default is returned instead.
Calls whose failure must propagate are simply awaited directly.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class NonCritical(Generic[T]):
    label: str
    action: Callable[[], Awaitable[T]]
    # Runs after a failure, e.g. to roll back a shared session
    recover: Optional[Callable[[], Awaitable[None]]] = None
    default: Optional[T] = None

    async def run(self) -> Optional[T]:
        try:
            return await self.action()
        except Exception:
            logger.warning("Non-critical step '%s' failed", self.label, exc_info=True)
            if self.recover is not None:
                try:
                    await self.recover()
                except Exception:
                    logger.warning("Recovery after '%s' failed", self.label, exc_info=True)
            return self.default


async def run_non_critical(
    label: str,
    action: Callable[[], Awaitable[T]],
    recover: Optional[Callable[[], Awaitable[None]]] = None,
    default: Optional[T] = None,
) -> Optional[T]:
    return await NonCritical(label, action, recover, default).run()
