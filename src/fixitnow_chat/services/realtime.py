"""Real-time delivery of chat events.

Pushes are best effort: no acknowledgement, no retry and no persistence of
the push itself. The message log stays the durable source of truth, and a
client that misses a push recovers by re-fetching history.

Two brokers are provided:

- ``InMemoryBroker`` fans out to subscribers in the current process.
- ``RedisBroker`` publishes through Redis pub/sub so that every worker
  process delivers to its own local subscribers.

Presence ("who is looking at which conversation") is tracked per
connection through an explicit ``SessionContext`` passed to
``PresenceRegistry``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Protocol

import redis.asyncio as aioredis

from fixitnow_chat.core.errors import ChatValidationError
from fixitnow_chat.core.settings import settings
from fixitnow_chat.utils.ids import parse_conversation_id

# Configure logger for this module
logger = logging.getLogger(__name__)

REDIS_CHANNEL_PREFIX = "chat:"


def conversation_topic(conversation_id: str) -> str:
    """Return the topic every viewer of a conversation subscribes to."""
    return f"conversation/{conversation_id}"


def notification_queue(user_id: int) -> str:
    """Return the personal notification destination of a user."""
    return f"user/{user_id}/notifications"


def validate_destination(destination: str) -> str:
    """Return ``destination`` if it names a known topic or queue.

    Raises:
        ChatValidationError: For anything else.
    """
    if destination.startswith("conversation/"):
        parse_conversation_id(destination.removeprefix("conversation/"))
        return destination
    parts = destination.split("/")
    if (
        len(parts) == 3
        and parts[0] == "user"
        and parts[2] == "notifications"
        and parts[1].isascii()
        and parts[1].isdigit()
    ):
        return destination
    raise ChatValidationError(f"Unknown destination '{destination}'")


@dataclass(frozen=True)
class Delivery:
    """A single push headed for one subscriber."""

    destination: str
    kind: str
    payload: dict[str, Any]

    def as_frame(self) -> dict[str, Any]:
        return {"type": self.kind, "destination": self.destination, "payload": self.payload}


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Subscriber:
    """One connection's inbox of pending deliveries.

    The queue is bounded; when it is full, new deliveries are dropped.
    """

    def __init__(self, maxsize: int) -> None:
        self.queue: asyncio.Queue[Delivery] = asyncio.Queue(maxsize=maxsize)
        self.destinations: set[str] = set()
        self._loop = _running_loop()

    def offer(self, delivery: Delivery) -> bool:
        """Enqueue ``delivery`` without blocking. Returns False if dropped."""
        loop = self._loop
        if loop is not None and _running_loop() is not loop:
            try:
                loop.call_soon_threadsafe(self._put, delivery)
            except RuntimeError:
                logger.warning("Dropping push to %s: subscriber loop is closed", delivery.destination)
                return False
            return True
        return self._put(delivery)

    def _put(self, delivery: Delivery) -> bool:
        try:
            self.queue.put_nowait(delivery)
        except asyncio.QueueFull:
            logger.warning("Dropping push to %s: subscriber queue is full", delivery.destination)
            return False
        return True

    async def get(self) -> Delivery:
        return await self.queue.get()

    def get_nowait(self) -> Delivery:
        return self.queue.get_nowait()

    def __aiter__(self) -> Subscriber:
        return self

    async def __anext__(self) -> Delivery:
        return await self.get()


class MessageBroker(Protocol):
    """Publish/subscribe transport used by the chat service."""

    def publish(self, destination: str, payload: dict[str, Any], kind: str = "message") -> None:
        """Hand a push to the transport. Must never block or raise."""

    def connect(self) -> Subscriber:
        """Register a new subscriber with no destinations."""

    async def subscribe(self, subscriber: Subscriber, destination: str) -> None: ...

    async def unsubscribe(self, subscriber: Subscriber, destination: str) -> None: ...

    async def disconnect(self, subscriber: Subscriber) -> None: ...

    async def close(self) -> None: ...


class InMemoryBroker:
    """Fan-out to subscribers living in this process."""

    def __init__(self, queue_size: int | None = None) -> None:
        self.queue_size = queue_size or settings.realtime_queue_size
        self._routes: dict[str, set[Subscriber]] = defaultdict(set)
        self._lock = threading.Lock()

    def connect(self) -> Subscriber:
        return Subscriber(self.queue_size)

    async def subscribe(self, subscriber: Subscriber, destination: str) -> None:
        with self._lock:
            self._routes[destination].add(subscriber)
            subscriber.destinations.add(destination)

    async def unsubscribe(self, subscriber: Subscriber, destination: str) -> None:
        with self._lock:
            self._detach(subscriber, destination)

    async def disconnect(self, subscriber: Subscriber) -> None:
        with self._lock:
            for destination in list(subscriber.destinations):
                self._detach(subscriber, destination)

    def _detach(self, subscriber: Subscriber, destination: str) -> bool:
        """Remove a route. Returns True if the destination has no subscribers left."""
        subscriber.destinations.discard(destination)
        members = self._routes.get(destination)
        if members is None:
            return True
        members.discard(subscriber)
        if not members:
            del self._routes[destination]
            return True
        return False

    def subscriber_count(self, destination: str) -> int:
        with self._lock:
            return len(self._routes.get(destination, ()))

    def deliver_local(self, delivery: Delivery) -> int:
        """Offer ``delivery`` to every local subscriber of its destination."""
        with self._lock:
            targets = list(self._routes.get(delivery.destination, ()))
        return sum(1 for subscriber in targets if subscriber.offer(delivery))

    def publish(self, destination: str, payload: dict[str, Any], kind: str = "message") -> None:
        try:
            delivered = self.deliver_local(Delivery(destination, kind, payload))
        except Exception:
            logger.exception("Failed to publish %s to %s", kind, destination)
            return
        logger.debug("Published %s to %s (%d subscribers)", kind, destination, delivered)

    async def close(self) -> None:
        with self._lock:
            self._routes.clear()


class RedisBroker(InMemoryBroker):
    """Fan-out through Redis pub/sub.

    Publishing goes to Redis only; each process runs one listener per
    destination that has local subscribers and hands received pushes to
    them, so a push reaches subscribers on every worker exactly once.
    """

    def __init__(self, url: str | None = None, queue_size: int | None = None, client: Any = None) -> None:
        super().__init__(queue_size)
        self._redis = client if client is not None else aioredis.from_url(url or settings.redis_url)
        self._listeners: dict[str, asyncio.Task[None]] = {}
        self._pending: set[asyncio.Task[Any]] = set()
        self._listener_lock = asyncio.Lock()

    @staticmethod
    def channel_for(destination: str) -> str:
        return f"{REDIS_CHANNEL_PREFIX}{destination}"

    def publish(self, destination: str, payload: dict[str, Any], kind: str = "message") -> None:
        loop = _running_loop()
        if loop is None:
            logger.warning("Dropping %s to %s: no running event loop", kind, destination)
            return
        try:
            body = json.dumps({"kind": kind, "payload": payload}, default=str)
            task = loop.create_task(self._redis.publish(self.channel_for(destination), body))
        except Exception:
            logger.exception("Failed to schedule Redis publish to %s", destination)
            return
        self._pending.add(task)
        task.add_done_callback(self._publish_done)

    def _publish_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Redis publish failed: %s", exc)

    async def subscribe(self, subscriber: Subscriber, destination: str) -> None:
        await super().subscribe(subscriber, destination)
        # One listener per destination; the lock spans the await on Redis.
        async with self._listener_lock:
            task = self._listeners.get(destination)
            if task is not None and not task.done():
                return
            pubsub = self._redis.pubsub()
            try:
                await pubsub.subscribe(self.channel_for(destination))
            except Exception:
                with contextlib.suppress(Exception):
                    await pubsub.aclose()
                raise
            self._listeners[destination] = asyncio.create_task(self._listen(destination, pubsub))

    async def unsubscribe(self, subscriber: Subscriber, destination: str) -> None:
        with self._lock:
            empty = self._detach(subscriber, destination)
        if empty:
            await self._release_listener(destination)

    async def disconnect(self, subscriber: Subscriber) -> None:
        emptied: list[str] = []
        with self._lock:
            for destination in list(subscriber.destinations):
                if self._detach(subscriber, destination):
                    emptied.append(destination)
        for destination in emptied:
            await self._release_listener(destination)

    async def _release_listener(self, destination: str) -> None:
        async with self._listener_lock:
            if self.subscriber_count(destination) == 0:
                await self._stop_listener(destination)

    async def _listen(self, destination: str, pubsub: Any) -> None:
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                data = message.get("data")
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                try:
                    body = json.loads(data)
                except (TypeError, ValueError):
                    logger.warning("Ignoring malformed push on %s", destination)
                    continue
                self.deliver_local(Delivery(destination, body.get("kind", "message"), body.get("payload", {})))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Redis listener for %s stopped: %s", destination, exc)
        finally:
            if self._listeners.get(destination) is asyncio.current_task():
                del self._listeners[destination]
            with contextlib.suppress(Exception):
                await pubsub.unsubscribe(self.channel_for(destination))
                await pubsub.aclose()

    async def _stop_listener(self, destination: str) -> None:
        task = self._listeners.pop(destination, None)
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def close(self) -> None:
        for destination in list(self._listeners):
            await self._stop_listener(destination)
        await super().close()
        await self._redis.aclose()


@dataclass
class SessionContext:
    """Key-value state attached to one real-time connection."""

    session_id: str
    attributes: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def pop(self, key: str, default: Any = None) -> Any:
        return self.attributes.pop(key, default)


class PresenceRegistry:
    """Best-effort record of which usernames are viewing which conversation.

    Nothing reconciles this state when a connection drops without running
    its cleanup; treat it as a hint, never as authorization.
    """

    def __init__(self) -> None:
        self._members: dict[str, dict[str, str]] = defaultdict(dict)
        self._lock = threading.Lock()

    def join(self, context: SessionContext, username: str, conversation_id: str) -> list[str]:
        """Attach ``username`` to ``conversation_id`` for this connection."""
        self.leave(context)
        context.set("username", username)
        context.set("conversation_id", conversation_id)
        with self._lock:
            self._members[conversation_id][context.session_id] = username
        return self.members(conversation_id)

    def leave(self, context: SessionContext) -> None:
        conversation_id = context.pop("conversation_id")
        context.pop("username")
        if conversation_id is None:
            return
        with self._lock:
            members = self._members.get(conversation_id)
            if members is None:
                return
            members.pop(context.session_id, None)
            if not members:
                del self._members[conversation_id]

    def members(self, conversation_id: str) -> list[str]:
        with self._lock:
            return sorted(set(self._members.get(conversation_id, {}).values()))


_broker: MessageBroker | None = None
_presence: PresenceRegistry | None = None


def get_broker() -> MessageBroker:
    """Return the process-wide broker selected by ``REALTIME_BACKEND``."""
    global _broker
    if _broker is None:
        if settings.uses_redis:
            _broker = RedisBroker(settings.redis_url)
        else:
            _broker = InMemoryBroker(settings.realtime_queue_size)
    return _broker


def get_presence_registry() -> PresenceRegistry:
    """Return the process-wide presence registry."""
    global _presence
    if _presence is None:
        _presence = PresenceRegistry()
    return _presence


async def close_broker() -> None:
    """Close the process-wide broker, if one was created."""
    global _broker
    if _broker is not None:
        await _broker.close()
        _broker = None
