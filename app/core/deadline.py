import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class OperationTimeoutError(TimeoutError):
    """Raised when a guarded remote operation misses its deadline."""

    def __init__(self, label: str, seconds: float):
        self.label = label
        self.seconds = seconds
        super().__init__(f"{label} timed out after {seconds}s")


async def with_deadline(operation: Awaitable[T], seconds: float, label: str) -> T:
    """Await an operation, failing with OperationTimeoutError once the deadline passes.

    Args:
        operation: The coroutine or future to await
        seconds: Deadline in seconds
        label: Human readable name of the operation, used in the error message

    Returns:
        The operation's result if it completes in time. A late result is
        discarded; the underlying task is cancelled.
    """
    timer = asyncio.timeout(seconds)
    try:
        async with timer:
            return await operation
    except TimeoutError as e:
        if not timer.expired():
            # The operation raised its own TimeoutError
            raise
        raise OperationTimeoutError(label, seconds) from e
