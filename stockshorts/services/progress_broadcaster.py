"""Progress Broadcaster - fans pipeline progress events out to connected observers."""

import asyncio
from typing import Any, AsyncIterator, Optional

from stockshorts.core.logging_config import get_logger
from stockshorts.models.schemas import ProgressEvent, ProgressUpdate, RunDone, RunFailed

_CLOSED = object()


class Subscription:
    """One observer's view of the broadcast channel."""

    def __init__(self, broadcaster: "ProgressBroadcaster", max_queue: int):
        self._broadcaster = broadcaster
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self.dropped = 0
        self.closed = False

    def offer(self, event: ProgressEvent) -> bool:
        """Queue an event without blocking. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            return False

    async def get(self, timeout: Optional[float] = None) -> Optional[ProgressEvent]:
        """
        Wait for the next event.

        Returns None when the subscription was closed, or when ``timeout``
        elapses without an event.
        """
        if self.closed and self._queue.empty():
            return None
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        return None if item is _CLOSED else item

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._broadcaster.unsubscribe(self)
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self

    async def __anext__(self) -> ProgressEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


class ProgressBroadcaster:
    """
    Process-wide fan-out of progress, done and error events.

    Observers subscribe and receive every event published afterwards. A
    broadcast iterates over a snapshot of the observer set, so observers may
    join or leave while an event is being delivered. A full observer queue
    drops the event for that observer only.
    """

    def __init__(self, logger: Any = None, max_queue: int = 256):
        self.logger = logger or get_logger(__name__)
        self.max_queue = max_queue
        self._subscribers: set[Subscription] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        subscription = Subscription(self, self.max_queue)
        self._subscribers.add(subscription)
        self.logger.debug(f"Observer connected ({len(self._subscribers)} total)")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscribers.discard(subscription)
        self.logger.debug(f"Observer disconnected ({len(self._subscribers)} total)")

    def publish(self, event: ProgressEvent) -> int:
        """
        Deliver an event to every current observer.

        Returns:
            Number of observers that accepted the event.
        """
        delivered = 0
        for subscription in list(self._subscribers):
            if subscription.offer(event):
                delivered += 1
            elif not subscription.closed:
                self.logger.warning(f"Observer queue full, dropped {event.type} event")
        return delivered

    def progress(self, step_id: str, label: str, percent: int) -> None:
        self.logger.info(f"[{step_id}] {label}: {percent}%")
        self.publish(ProgressUpdate(step_id=step_id, label=label, percent=percent))

    def done(self, url: str) -> None:
        self.publish(RunDone(url=url))

    def error(self, message: str) -> None:
        self.publish(RunFailed(message=message))
