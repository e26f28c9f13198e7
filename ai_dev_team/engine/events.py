"""Publish/subscribe channels for workflow notifications.

Each notification category (state changes, progress updates, lifecycle
events) gets its own ``EventChannel``. A channel fans every published item out
to all of its consumers, which come in two forms:

- Subscriptions: an unbounded queue per subscriber. Publishing only enqueues,
  so it never waits on the consumer, and each subscriber sees items in publish
  order. Subscriptions are async-iterable and end when the channel is
  disposed or the subscription is closed.
- Listeners: plain callables invoked synchronously during ``publish``. A
  listener that raises is logged and skipped; it cannot break the publisher
  or other listeners. Listeners must not block.

Example:
    >>> channel: EventChannel[str] = EventChannel("demo")
    >>> sub = channel.subscribe()
    >>> channel.publish("hello")
    >>> sub.get_nowait()
    'hello'
    >>> channel.dispose()
"""

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any, Generic, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """Queue-backed consumer of one channel."""

    def __init__(self, channel: "EventChannel[T]") -> None:
        self._channel = channel
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def _deliver(self, item: T) -> None:
        if not self.closed:
            self._queue.put_nowait(item)

    def _finish(self) -> None:
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    async def get(self) -> T:
        """Wait for the next item.

        Raises:
            StopAsyncIteration: If the subscription was closed and drained.
        """
        item = await self._queue.get()
        if item is _CLOSED:
            # Keep the sentinel so later calls also stop
            self._queue.put_nowait(_CLOSED)
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> T:
        """Return the next queued item without waiting.

        Raises:
            asyncio.QueueEmpty: If nothing is queued (or the subscription is
                closed and drained).
        """
        item = self._queue.get_nowait()
        if item is _CLOSED:
            self._queue.put_nowait(_CLOSED)
            raise asyncio.QueueEmpty
        return item

    def drain(self) -> list[T]:
        """Return every item queued so far, in publish order."""
        items: list[T] = []
        while True:
            try:
                items.append(self.get_nowait())
            except asyncio.QueueEmpty:
                return items

    def close(self) -> None:
        """Stop receiving items and detach from the channel."""
        self._channel.unsubscribe(self)

    def __aiter__(self) -> AsyncIterator[T]:
        return self

    async def __anext__(self) -> T:
        return await self.get()


class EventChannel(Generic[T]):
    """Fan-out channel for one category of notifications."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscriptions: list[Subscription[T]] = []
        self._listeners: list[Callable[[T], Any]] = []
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def subscribe(self) -> Subscription[T]:
        """Create a queue-backed subscription.

        Raises:
            RuntimeError: If the channel has been disposed.
        """
        if self._disposed:
            raise RuntimeError(f"Event channel '{self.name}' is disposed")
        subscription: Subscription[T] = Subscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def add_listener(self, listener: Callable[[T], Any]) -> Callable[[], None]:
        """Register a synchronous listener.

        Returns:
            A callable that removes the listener again.
        """
        if self._disposed:
            raise RuntimeError(f"Event channel '{self.name}' is disposed")
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def unsubscribe(self, subscription: Subscription[T]) -> None:
        """Detach a subscription and end its iteration."""
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
        subscription._finish()

    def publish(self, item: T) -> None:
        """Deliver ``item`` to every subscription and listener.

        Publishing on a disposed channel is a no-op.
        """
        if self._disposed:
            return
        for subscription in list(self._subscriptions):
            subscription._deliver(item)
        for listener in list(self._listeners):
            self._safe_notify(listener, item)

    def _safe_notify(self, listener: Callable[[T], Any], item: T) -> None:
        try:
            listener(item)
        except Exception as e:
            log.warning("event_listener_failed", channel=self.name, listener=repr(listener), error=str(e))

    def dispose(self) -> None:
        """Close every subscription and drop all listeners."""
        if self._disposed:
            return
        self._disposed = True
        for subscription in list(self._subscriptions):
            subscription._finish()
        self._subscriptions.clear()
        self._listeners.clear()
        log.debug("event_channel_disposed", channel=self.name)
