"""Abstract interface for blockchain event sources."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .errors import SubscriptionError
from .models import LogEvent


class Subscription:
    """Ordered delivery channel for one pool's live logs.

    The event source pushes logs with ``put_event`` and transport problems
    with ``put_error``; both travel on the same queue, so an error is seen
    exactly where it happened in the stream. ``next()`` returns the next log
    or raises the queued SubscriptionError. The channel stays usable after
    an error has been raised.
    """

    def __init__(
        self,
        pool_address: str,
        topic: bytes,
        on_close: Callable[[Subscription], Awaitable[None]] | None = None,
    ) -> None:
        self.pool_address = pool_address
        self.topic = topic
        self.id: str | None = None  # Source-specific subscription id
        self._queue: asyncio.Queue[LogEvent | SubscriptionError] = asyncio.Queue()
        self._on_close = on_close
        self._closed = False

    def put_event(self, log: LogEvent) -> None:
        if not self._closed:
            self._queue.put_nowait(log)

    def put_error(self, reason: str | BaseException) -> None:
        if not self._closed:
            self._queue.put_nowait(SubscriptionError(self.pool_address, str(reason)))

    async def next(self) -> LogEvent:
        """Wait for the next log. Raises SubscriptionError for a queued transport error."""
        item = await self._queue.get()
        if isinstance(item, SubscriptionError):
            raise item
        return item

    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Detach from the source. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close(self)


class EventSource(ABC):
    """Contract for providers of contract logs.

    Implementations deliver logs for (pool address, event topic) filters.
    The subscription manager is the only caller; decoding and caching happen
    downstream of the source.

    Lifecycle:
        source = create_event_source(pools)
        await source.connect()
        recent = await source.filter_recent_events(address, topic)
        sub = await source.subscribe(address, topic)
        log = await sub.next()
        ...
        await source.close()
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection.

        Raises ConfigError if the source cannot be reached at startup.
        """

    @abstractmethod
    async def filter_recent_events(self, pool_address: str, topic: bytes) -> list[LogEvent]:
        """Return recent matching logs, oldest first. The last one is the most recent."""

    @abstractmethod
    async def subscribe(self, pool_address: str, topic: bytes) -> Subscription:
        """Open a live subscription for one pool.

        Raises SubscribeEstablishError if the subscription cannot be created.
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the connection. Safe to call multiple times."""
