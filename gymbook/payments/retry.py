"""Bounded retry with exponential backoff for processor calls."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from gymbook.errors import ProcessorError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def retry_processor_call(
    call: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    backoff_sec: float = 0.5,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """
    Await ``call()`` until it succeeds, retrying retryable ProcessorErrors.

    ``call`` must reuse the same idempotency key on every attempt, so a
    retry after a lost response replays the processor's first outcome.
    Non-retryable errors, and the last error once attempts run out, are
    re-raised unchanged.
    """
    attempt = 1
    while True:
        try:
            return await call()
        except ProcessorError as exc:
            if not exc.retryable or attempt >= max_attempts:
                logger.error(
                    "Processor call failed after %d attempt(s) (key %s): %s",
                    attempt, exc.idempotency_key, exc,
                )
                raise
            wait = backoff_sec * (2 ** (attempt - 1))
            logger.warning(
                "Attempt %d/%d failed (key %s): %s. Retrying in %.2fs",
                attempt, max_attempts, exc.idempotency_key, exc, wait,
            )
        await sleep(wait)
        attempt += 1
