"""
Single-flight and quota guard for outbound fetches.

Concurrent requests for the same key share one in-flight coroutine, and a
429 from an upstream API blocks further calls for a cooldown period.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Optional, Set, TypeVar

from src.common.error_handling import QuotaBlockedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BLOCK_SECONDS = 60 * 60


class FetchGuard:
    """
    Args:
        clock: Returns the current time in seconds (time.monotonic by default)
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self.clock = clock or time.monotonic
        self._inflight: Dict[str, asyncio.Task] = {}
        self._blocked_until = 0.0

    def is_blocked(self) -> bool:
        return self.clock() < self._blocked_until

    def block_quota(self, seconds: float = DEFAULT_BLOCK_SECONDS) -> None:
        self._blocked_until = self.clock() + seconds
        logger.warning(f"Quota blocked for {seconds:.0f}s")

    def ensure_not_blocked(self) -> None:
        if self.is_blocked():
            raise QuotaBlockedError()

    async def once(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``fn`` unless a call for ``key`` is already in flight, in which
        case wait for that call's result instead. The key is released when
        the call finishes, successfully or not.
        """
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(fn())
            self._inflight[key] = task
            task.add_done_callback(lambda _: self._inflight.pop(key, None))
        else:
            logger.debug(f"Joining in-flight fetch for '{key}'")
        return await asyncio.shield(task)

    @property
    def inflight_keys(self) -> Set[str]:
        return set(self._inflight)


# Shared guard for the process
_guard: Optional[FetchGuard] = None


def get_fetch_guard() -> FetchGuard:
    global _guard
    if _guard is None:
        _guard = FetchGuard()
    return _guard


def reset_fetch_guard() -> None:
    global _guard
    _guard = None
