"""
Per-run event bus for generation progress.

The pipeline publishes; subscribers read. publish() never waits: each
subscriber has a bounded buffer and, when it is full, the oldest
buffered event is dropped so the newest (including the terminal event)
always lands. A slow or absent consumer can never stall the pipeline.
"""

import asyncio
from collections import deque
from typing import Deque, List, Optional

from briefing.config import config
from briefing.models.events import GenerationEvent, is_terminal
from briefing.utils.logging import pipeline_logger


class Subscription:
    """Async iterator over the events of one run."""

    def __init__(self, maxsize: int):
        if maxsize < 1:
            raise ValueError("subscription buffer must hold at least one event")
        self.maxsize = maxsize
        self.dropped = 0
        self._buffer: Deque[GenerationEvent] = deque()
        self._closed = False
        self._wakeup = asyncio.Event()

    def _offer(self, event: GenerationEvent) -> None:
        if len(self._buffer) >= self.maxsize:
            self._buffer.popleft()
            self.dropped += 1
        self._buffer.append(event)
        self._wakeup.set()

    def _close(self) -> None:
        self._closed = True
        self._wakeup.set()

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return len(self._buffer)

    def __aiter__(self):
        return self

    async def __anext__(self) -> GenerationEvent:
        while True:
            if self._buffer:
                return self._buffer.popleft()
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()

    async def get(self, timeout: Optional[float] = None) -> Optional[GenerationEvent]:
        """Next event, or None once the bus is closed and drained."""
        try:
            return await asyncio.wait_for(self.__anext__(), timeout)
        except StopAsyncIteration:
            return None


class EventBus:
    """
    Fan-out of GenerationEvents to any number of subscribers.

    One bus per run; there is no global instance.
    """

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or config.EVENT_QUEUE_SIZE
        self._subscribers: List[Subscription] = []
        self._closed = False
        self.published = 0
        self.terminal_published = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, maxsize: Optional[int] = None) -> Subscription:
        subscription = Subscription(maxsize or self.queue_size)
        if self._closed:
            subscription._close()
        else:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
        subscription._close()

    def publish(self, event: GenerationEvent) -> bool:
        """Deliver to every subscriber. Returns False (and does nothing) after close."""
        if self._closed:
            pipeline_logger.debug("Event dropped after bus close", event_type=event.type)
            return False
        self.published += 1
        if is_terminal(event):
            self.terminal_published += 1
        for subscription in list(self._subscribers):
            subscription._offer(event)
        return True

    def close(self) -> None:
        """Idempotent. Wakes every subscriber; later publishes are no-ops."""
        if self._closed:
            return
        self._closed = True
        for subscription in self._subscribers:
            subscription._close()
        dropped = sum(s.dropped for s in self._subscribers)
        if dropped:
            pipeline_logger.warning("Slow subscribers missed events", dropped=dropped)
        self._subscribers.clear()
