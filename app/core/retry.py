"""Bounded exponential-backoff retry and cooperative cancellation.

Every executor that talks to an external system wraps its calls in
:func:`with_retry`.  Classification of failures is isolated in
:func:`is_retryable` so the string heuristic can later be replaced by typed
error codes without touching call sites.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from app.core.errors import AbortError, TransientError
from app.core.logging import get_logger

logger = get_logger("core.retry")

T = TypeVar("T")

# Message fragments that mark a failure as transient (matched case-insensitively).
RETRYABLE_SIGNATURES: tuple[str, ...] = (
    "rate limit",
    "timeout",
    "timed out",
    "503",
    "econnreset",
    "etimedout",
    "connection reset",
)


class CancellationToken:
    """Cooperative abort signal passed into the retry primitive and executors.

    Cancellation is only observed at step boundaries; a step that is already
    in flight always runs to completion.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def check_cancelled(token: CancellationToken | None) -> None:
    """Raise :class:`AbortError` if *token* has been cancelled."""
    if token is not None and token.cancelled:
        raise AbortError()


def is_retryable(exc: BaseException) -> bool:
    """Return True if *exc* looks transient.

    ``AbortError`` is never retryable, ``TransientError`` always is.  Anything
    else is matched against :data:`RETRYABLE_SIGNATURES`.
    """
    if isinstance(exc, AbortError):
        return False
    if isinstance(exc, TransientError):
        return True
    message = str(exc).lower()
    return any(signature in message for signature in RETRYABLE_SIGNATURES)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    cancel: CancellationToken | None = None,
    label: str = "operation",
) -> T:
    """Run *operation* with up to *max_attempts* tries.

    Retryable failures sleep ``base_delay * 2**attempt`` seconds before the
    next attempt.  Fatal failures, and the failure of the last attempt, are
    re-raised unchanged.

    Raises:
        AbortError: if *cancel* is set before an attempt starts.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(max_attempts):
        check_cancelled(cancel)
        try:
            return await operation()
        except Exception as exc:
            last = attempt == max_attempts - 1
            if last or not is_retryable(exc):
                raise
            delay = base_delay * (2 ** attempt)
            logger.warning(
                "retry      | %s | attempt %d/%d failed: %s | sleeping %.2fs",
                label, attempt + 1, max_attempts, exc, delay,
            )
            await asyncio.sleep(delay)

    # Unreachable: the loop either returns or raises.
    raise RuntimeError("max retries exceeded")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry bound, base delay and cancellation token shared by one task's executors."""

    max_attempts: int = 3
    base_delay: float = 1.0
    cancel: CancellationToken | None = None

    @classmethod
    def from_settings(cls, cancel: CancellationToken | None = None) -> RetryPolicy:
        from app.core.config import get_settings

        settings = get_settings()
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            cancel=cancel,
        )

    def check(self) -> None:
        """Step-boundary cancellation check."""
        check_cancelled(self.cancel)

    async def run(self, operation: Callable[[], Awaitable[T]], label: str = "operation") -> T:
        return await with_retry(
            operation,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            cancel=self.cancel,
            label=label,
        )
