"""
Fire-and-forget notification dispatcher.

``dispatch()`` only enqueues and returns immediately, so booking
transitions never wait on e-mail. A background task delivers messages
at least once, retrying failures with exponential backoff. A message is
enqueued at most once per dedupe key while the key is remembered: the
most recent ``dedupe_capacity`` keys are kept, and a message that gave
up is forgotten so it can be dispatched again.

Usage:
    dispatcher = NotificationDispatcher(LoggingSender())
    dispatcher.dispatch(notification)
    await dispatcher.drain()
"""

import asyncio
import logging
from collections import Counter, OrderedDict
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from gymbook.notifications.schema import Notification
from gymbook.notifications.senders import NotificationSender

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

DEFAULT_DEDUPE_CAPACITY = 10_000


@dataclass
class _Delivery:
    notification: Notification
    attempt: int = 1


class NotificationDispatcher:
    """Queues notifications and delivers them on a background task."""

    def __init__(
        self,
        sender: NotificationSender,
        max_attempts: int = 5,
        backoff_sec: float = 1.0,
        max_backoff_sec: float = 60.0,
        sleep: Sleep = asyncio.sleep,
        dedupe_capacity: int = DEFAULT_DEDUPE_CAPACITY,
    ) -> None:
        self._sender = sender
        self._max_attempts = max_attempts
        self._backoff_sec = backoff_sec
        self._max_backoff_sec = max_backoff_sec
        self._sleep = sleep
        self._queue: asyncio.Queue[_Delivery] = asyncio.Queue()
        self._dedupe_capacity = dedupe_capacity
        # Insertion-ordered so the oldest keys are forgotten first.
        self._seen: OrderedDict[str, None] = OrderedDict()
        self._worker: Optional[asyncio.Task] = None
        self._retries: set[asyncio.Task] = set()
        self.stats: Counter[str] = Counter()

    def dispatch(self, notification: Optional[Notification]) -> bool:
        """Enqueue ``notification`` unless its dedupe key was already seen.

        Returns True if it was enqueued.
        """
        if notification is None:
            return False
        key = notification.dedupe_key
        if key in self._seen:
            logger.debug("Skipping duplicate notification %s", key)
            self.stats["duplicate"] += 1
            return False
        self._seen[key] = None
        while len(self._seen) > self._dedupe_capacity:
            self._seen.popitem(last=False)
        self._queue.put_nowait(_Delivery(notification))
        self.stats["enqueued"] += 1
        self._ensure_worker()
        return True

    def has_dispatched(self, dedupe_key: str) -> bool:
        return dedupe_key in self._seen

    async def drain(self) -> None:
        """Wait until every enqueued message is delivered or has given up."""
        await self._queue.join()

    async def close(self) -> None:
        """Drain, stop the worker and close the sender."""
        await self.drain()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self._sender.aclose()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            delivery = await self._queue.get()
            if await self._deliver(delivery):
                self._queue.task_done()

    async def _deliver(self, delivery: _Delivery) -> bool:
        """Attempt one delivery. Returns False if a retry was scheduled."""
        notification = delivery.notification
        try:
            await self._sender.send(notification)
        except Exception as exc:
            if delivery.attempt >= self._max_attempts:
                self.stats["failed"] += 1
                logger.error(
                    "Giving up on notification %s after %d attempts: %s",
                    notification.dedupe_key, delivery.attempt, exc,
                )
                # Forget the key so the same message can be dispatched again.
                self._seen.pop(notification.dedupe_key, None)
                return True
            wait = min(
                self._backoff_sec * (2 ** (delivery.attempt - 1)), self._max_backoff_sec
            )
            logger.warning(
                "Notification %s attempt %d/%d failed: %s. Retrying in %.1fs",
                notification.dedupe_key, delivery.attempt, self._max_attempts, exc, wait,
            )
            task = asyncio.get_running_loop().create_task(self._requeue_later(delivery, wait))
            self._retries.add(task)
            task.add_done_callback(self._retries.discard)
            return False
        self.stats["delivered"] += 1
        return True

    async def _requeue_later(self, delivery: _Delivery, wait: float) -> None:
        try:
            await self._sleep(wait)
            self._queue.put_nowait(_Delivery(delivery.notification, delivery.attempt + 1))
        finally:
            # Closes out the failed attempt; the requeued one keeps join() waiting.
            self._queue.task_done()
