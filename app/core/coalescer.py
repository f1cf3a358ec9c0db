from __future__ import annotations

import asyncio
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, TypeVar
from uuid import UUID

from loguru import logger

from app.core.config import get_settings
from app.core.error_classifier import ErrorKind, ResolutionError

T = TypeVar("T")


class CoalescingTimeoutError(ResolutionError):
    """Raised to every waiter when an in-flight call outlives the ceiling."""

    def __init__(self, key: str, seconds: float):
        self.key = key
        self.seconds = seconds
        super().__init__(
            ErrorKind.TRANSIENT,
            f"Request {key} auto-released after {seconds}s without completing",
        )


def pair_key(user_a: UUID | str, user_b: UUID | str) -> str:
    """Order-independent key for a pair of users, so (A, B) and (B, A) collide."""
    first, second = sorted([str(user_a), str(user_b)])
    return f"{first}:{second}"


class RequestCoalescer:
    """Collapses concurrent identical calls into one in-flight operation.

    The first call for a key runs the work as a task and registers it; calls
    arriving for the same key while it is pending await that same task. The
    key is released as soon as the task settles, or force-released when the
    ceiling expires, so a stuck call never wedges later attempts.
    """

    def __init__(self, ceiling_seconds: float = 45.0):
        self.ceiling_seconds = ceiling_seconds
        self._in_flight: Dict[str, asyncio.Task[Any]] = {}

    async def with_coalescing(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run fn for key, or join the call already in flight for it.

        Args:
            key: Coalescing key, see pair_key
            fn: Zero-argument coroutine function performing the work

        Returns:
            The shared result. Failures are raised to every waiter.
        """
        task = self._in_flight.get(key)
        if task is not None:
            logger.info(f"Request {key} already in flight, awaiting existing call")
        else:
            # Lookup and insert happen without an await in between
            task = asyncio.create_task(self._run(key, fn))
            self._in_flight[key] = task
            logger.debug(f"Request {key} started")
        # A cancelled waiter must not cancel the work shared with other waiters
        return await asyncio.shield(task)

    async def _run(self, key: str, fn: Callable[[], Awaitable[T]]) -> T:
        ceiling = asyncio.timeout(self.ceiling_seconds)
        try:
            async with ceiling:
                return await fn()
        except TimeoutError as e:
            if not ceiling.expired():
                raise
            logger.warning(
                f"Request {key} did not settle within {self.ceiling_seconds}s, auto-releasing"
            )
            raise CoalescingTimeoutError(key, self.ceiling_seconds) from e
        finally:
            self._release(key)

    def _release(self, key: str) -> None:
        task = self._in_flight.get(key)
        if task is asyncio.current_task():
            del self._in_flight[key]
            logger.debug(f"Request {key} released")

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def in_flight_keys(self) -> list[str]:
        return list(self._in_flight)

    def clear(self) -> None:
        """Cancel every pending call and release all keys."""
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()
        logger.info("Cleared all in-flight requests")


@lru_cache
def get_request_coalescer() -> RequestCoalescer:
    """Process-wide coalescer shared by all requests."""
    return RequestCoalescer(ceiling_seconds=get_settings().COALESCE_CEILING_SECONDS)
