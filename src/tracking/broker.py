"""Notification Broker: fans tracking events out to every open stream.

Publishing is synchronous and best-effort. It is called after a unit of
work has committed, and a broker failure is logged and swallowed so that
the committed write still succeeds; viewers fall back to polling.

Delivery is at-most-once. A viewer that connects late, or whose stream
drops, does not get missed events replayed. Each viewer has a bounded
mailbox, and events for a viewer that falls that far behind are dropped.

Adapters:
- ``InMemoryBroker``: single process, used in development and tests.
- ``RedisBroker``: Redis pub/sub, so every app instance sees every event.
  Each instance keeps one Redis subscription and fans out to its own
  viewers locally.
"""

import asyncio
import threading
from abc import ABC, abstractmethod
from contextlib import suppress

import redis
import redis.asyncio as aioredis
import structlog

from shared.config import Settings
from shared.events import TrackingEvent

logger = structlog.get_logger(__name__)

_CLOSED = object()


class SubscriptionClosed(Exception):
    """The broker shut down; the stream should end."""


class Subscription:
    """One viewer's mailbox. Messages are raw JSON strings."""

    def __init__(self, broker: "NotificationBroker", loop: asyncio.AbstractEventLoop, maxsize: int = 0) -> None:
        self._broker = broker
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize)
        self.closed = False
        self.dropped = 0

    def deliver(self, message) -> None:
        """Thread-safe; raises RuntimeError once the owning loop has closed."""
        self._loop.call_soon_threadsafe(self._offer, message)

    def _offer(self, message) -> None:
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            if message is _CLOSED:
                # Shutdown must reach the viewer even when its mailbox is full
                self._queue.get_nowait()
                self._queue.put_nowait(message)
                return
            self.dropped += 1
            logger.warning("broker_viewer_lagging", broker=self._broker.name, dropped=self.dropped)

    async def get(self, timeout: float | None = None) -> str | None:
        """Next message, or ``None`` if nothing arrived within ``timeout``."""
        if self.closed:
            raise SubscriptionClosed()
        try:
            message = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if message is _CLOSED:
            self.closed = True
            raise SubscriptionClosed()
        return message

    async def close(self) -> None:
        self.closed = True
        self._broker.unsubscribe(self)


class NotificationBroker(ABC):
    name = "abstract"

    def __init__(self, topic: str = "orders", queue_size: int = 100) -> None:
        self.topic = topic
        self.queue_size = queue_size
        self._subscriptions: set[Subscription] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @abstractmethod
    def publish(self, event: TrackingEvent) -> None:
        """Send ``event`` to every current subscriber. Never raises."""

    async def subscribe(self) -> Subscription:
        subscription = Subscription(self, asyncio.get_running_loop(), self.queue_size)
        if self._closed:
            subscription.deliver(_CLOSED)
            return subscription

        with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            self._subscriptions.discard(subscription)

    async def close(self) -> None:
        """End every open subscription."""
        self._closed = True
        with self._lock:
            subscriptions = list(self._subscriptions)
            self._subscriptions.clear()
        for subscription in subscriptions:
            with suppress(RuntimeError):
                subscription.deliver(_CLOSED)

    def _fan_out(self, message: str) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)

        for subscription in subscriptions:
            try:
                subscription.deliver(message)
            except RuntimeError:
                # Event loop behind this subscription is gone
                self.unsubscribe(subscription)


class InMemoryBroker(NotificationBroker):
    name = "memory"

    def publish(self, event: TrackingEvent) -> None:
        if self._closed:
            return
        self._fan_out(event.to_message())


class RedisBroker(NotificationBroker):
    name = "redis"

    def __init__(
        self,
        redis_url: str,
        topic: str = "orders",
        queue_size: int = 100,
        client: redis.Redis | None = None,
        async_client: aioredis.Redis | None = None,
    ) -> None:
        super().__init__(topic, queue_size)
        self._client = client or redis.Redis.from_url(redis_url, decode_responses=True)
        self._async_client = async_client or aioredis.from_url(redis_url, decode_responses=True)
        self._pubsub = None
        self._listener: asyncio.Task | None = None
        self._listener_lock: asyncio.Lock | None = None

    def publish(self, event: TrackingEvent) -> None:
        if self._closed:
            return
        try:
            self._client.publish(self.topic, event.to_message())
        except redis.RedisError as exc:
            logger.warning(
                "broker_publish_failed",
                broker=self.name,
                event_type=event.type,
                order_id=event.order_id,
                error=str(exc),
            )

    async def subscribe(self) -> Subscription:
        subscription = await super().subscribe()
        if not self._closed:
            await self._ensure_listener()
        return subscription

    async def _ensure_listener(self) -> None:
        if self._listener_lock is None:
            self._listener_lock = asyncio.Lock()

        async with self._listener_lock:
            if self._listener is not None and not self._listener.done():
                return
            try:
                self._pubsub = self._async_client.pubsub()
                await self._pubsub.subscribe(self.topic)
            except redis.RedisError as exc:
                # Streams stay open on keep-alives; clients fall back to polling
                logger.warning("broker_subscribe_failed", broker=self.name, topic=self.topic, error=str(exc))
                self._pubsub = None
                return
            self._listener = asyncio.create_task(self._listen())
            logger.info("broker_listener_started", broker=self.name, topic=self.topic)

    async def _listen(self) -> None:
        try:
            async for message in self._pubsub.listen():
                if message["type"] == "message":
                    self._fan_out(message["data"])
        except redis.RedisError as exc:
            logger.warning("broker_listener_stopped", broker=self.name, topic=self.topic, error=str(exc))

    async def close(self) -> None:
        await super().close()

        if self._listener is not None:
            self._listener.cancel()
            with suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None

        try:
            if self._pubsub is not None:
                await self._pubsub.unsubscribe(self.topic)
                await self._pubsub.aclose()
            await self._async_client.aclose()
            self._client.close()
        except redis.RedisError as exc:
            logger.warning("broker_close_failed", broker=self.name, error=str(exc))


def build_broker(settings: Settings) -> NotificationBroker:
    if settings.redis_url:
        return RedisBroker(settings.redis_url, topic=settings.tracking_topic, queue_size=settings.stream_queue_size)
    return InMemoryBroker(topic=settings.tracking_topic, queue_size=settings.stream_queue_size)
