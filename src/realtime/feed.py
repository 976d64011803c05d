"""In-process change feed with a Redis pub/sub relay.

Stores publish committed mutations; every subscription owns a queue and a
filter predicate evaluated on publish. Events are dispatched to all local
subscriptions before the publisher yields, so every subscriber observes the
same order. Events are also relayed over Redis so subscribers connected to
other processes receive them.

Snapshots that carry an entity version are delivered in version order: one
older than the last delivered for the same entity is dropped, so observers
converge on the stored state even when publishers race.

Usage:
    async with feed.subscribe(enrollments_for_student(user_id)) as subscription:
        async for event in subscription:
            await websocket.send_json(event.to_message())
"""

import asyncio
import contextlib
import itertools
from collections import OrderedDict
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import orjson
from redis.exceptions import RedisError

from src.core.errors import SubscriptionError
from src.core.logging import get_logger
from src.realtime.models import ChangeEvent, ChangeKind, EntityType, SubscriptionState
from src.utils.dates import utc_now


if TYPE_CHECKING:
    from redis.asyncio import Redis


logger = get_logger(__name__)

EventPredicate = Callable[[ChangeEvent], bool]

# Redis pub/sub channel shared by every API process
DEFAULT_CHANNEL = "enrollgate:changes"

# Entities whose last delivered version is remembered
VERSION_CACHE_SIZE = 10_000

# Queue markers
_CLOSED = object()
_FAILED = object()


def _accept_all(_event: ChangeEvent) -> bool:
    return True


class Subscription:
    """One observer's view of the feed.

    Holds at most ``capacity`` undelivered events. An observer that falls
    further behind is moved to ``error``: it receives everything queued so
    far, then ``SubscriptionError``.
    """

    def __init__(
        self,
        feed: "ChangeFeed",
        predicate: EventPredicate,
        capacity: int,
    ) -> None:
        self.id = uuid4().hex
        self.state = SubscriptionState.CONNECTING
        self._feed = feed
        self._predicate = predicate
        self._capacity = capacity
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._pending = 0

    @property
    def pending(self) -> int:
        """Number of events queued but not yet consumed."""
        return self._pending

    def open(self) -> "Subscription":
        """Register with the feed and start receiving events."""
        if self.state is SubscriptionState.CONNECTING:
            self._feed._register(self)
            self.state = SubscriptionState.ACTIVE
            logger.debug("subscription_opened", subscription_id=self.id)
        return self

    def close(self) -> None:
        """Release the subscription. Closing is terminal and idempotent."""
        if self.state is SubscriptionState.CLOSED:
            return
        self.state = SubscriptionState.CLOSED
        self._feed._unregister(self)
        while not self._queue.empty():
            self._queue.get_nowait()
        self._pending = 0
        self._queue.put_nowait(_CLOSED)
        logger.debug("subscription_closed", subscription_id=self.id)

    def offer(self, event: ChangeEvent) -> None:
        """Queue an event if it matches this subscription's filter."""
        if self.state is not SubscriptionState.ACTIVE:
            return
        if not self._predicate(event):
            return
        if self._pending >= self._capacity:
            self._fail()
            return
        self._pending += 1
        self._queue.put_nowait(event)

    def _fail(self) -> None:
        self.state = SubscriptionState.ERROR
        self._feed._unregister(self)
        self._queue.put_nowait(_FAILED)
        logger.warning(
            "subscription_overflow",
            subscription_id=self.id,
            capacity=self._capacity,
        )

    async def get(self) -> ChangeEvent:
        """Wait for the next event.

        Raises:
            StopAsyncIteration: If the subscription is closed
            SubscriptionError: If the subscription failed
        """
        if self._queue.empty():
            if self.state is SubscriptionState.CLOSED:
                raise StopAsyncIteration
            if self.state is SubscriptionState.ERROR:
                raise SubscriptionError
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _FAILED:
            raise SubscriptionError
        self._pending -= 1
        return item

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ChangeEvent:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self.open()

    async def __aexit__(self, *_: object) -> None:
        self.close()


class ChangeFeed:
    """Publisher side of the real-time layer."""

    def __init__(
        self,
        redis: "Redis | None" = None,
        *,
        queue_size: int = 256,
        channel: str = DEFAULT_CHANNEL,
    ) -> None:
        self.redis = redis
        self.queue_size = queue_size
        self.channel = channel
        self.origin = uuid4().hex
        self._subscriptions: dict[str, Subscription] = {}
        self._sequence = itertools.count(1)
        self._listener: asyncio.Task[None] | None = None
        self._versions: OrderedDict[tuple[EntityType, str], int] = OrderedDict()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(
        self,
        predicate: EventPredicate | None = None,
        *,
        queue_size: int | None = None,
    ) -> Subscription:
        """Create a subscription in the ``connecting`` state."""
        return Subscription(
            self,
            predicate or _accept_all,
            queue_size or self.queue_size,
        )

    def _register(self, subscription: Subscription) -> None:
        self._subscriptions[subscription.id] = subscription

    def _unregister(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)

    # ==========================================================================
    # Publishing
    # ==========================================================================

    async def publish(
        self,
        entity_type: EntityType,
        entity_key: str,
        kind: ChangeKind,
        data: Mapping[str, Any],
        *,
        version: int | None = None,
    ) -> ChangeEvent:
        """Publish a committed mutation to local and remote subscribers.

        A versioned snapshot older than one already delivered for the same
        entity reaches no subscriber.
        """
        event = ChangeEvent(
            sequence=next(self._sequence),
            entity_type=entity_type,
            entity_key=entity_key,
            kind=kind,
            data=data,
            origin=self.origin,
            committed_at=utc_now(),
            version=version,
        )
        if self._dispatch(event):
            await self._relay(event)
        return event

    def _is_stale(self, event: ChangeEvent) -> bool:
        """Track the entity version, reporting snapshots that arrive too late."""
        if event.version is None:
            return False

        entity = (event.entity_type, event.entity_key)
        if event.kind is ChangeKind.DELETED:
            # A re-created entity starts its versions over
            self._versions.pop(entity, None)
            return False

        last = self._versions.get(entity)
        if last is not None and event.version <= last:
            logger.debug(
                "change_event_stale",
                entity_type=event.entity_type.value,
                entity_key=event.entity_key,
                version=event.version,
                delivered_version=last,
            )
            return True

        self._versions[entity] = event.version
        self._versions.move_to_end(entity)
        if len(self._versions) > VERSION_CACHE_SIZE:
            self._versions.popitem(last=False)
        return False

    def _dispatch(self, event: ChangeEvent) -> bool:
        if self._is_stale(event):
            return False
        for subscription in list(self._subscriptions.values()):
            subscription.offer(event)
        return True

    async def _relay(self, event: ChangeEvent) -> None:
        if not self.redis:
            return

        # Non-critical: local subscribers already have the event
        try:
            await self.redis.publish(self.channel, orjson.dumps(event.to_message()))
        except RedisError as e:
            logger.warning(
                "change_feed_relay_failed",
                entity_type=event.entity_type.value,
                sequence=event.sequence,
                error=str(e),
            )

    # ==========================================================================
    # Relay listener
    # ==========================================================================

    def receive(self, raw: str | bytes) -> ChangeEvent | None:
        """Dispatch an event relayed from another process.

        Events this process published itself, and stale snapshots, are
        ignored.
        """
        try:
            event = ChangeEvent.from_message(orjson.loads(raw))
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("change_feed_message_invalid", error=str(e))
            return None

        if event.origin == self.origin:
            return None

        if not self._dispatch(event):
            return None
        return event

    async def listen(self) -> None:
        """Forward relayed events to local subscribers until cancelled."""
        if not self.redis:
            return

        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            logger.info("change_feed_listening", channel=self.channel)

            while True:
                message = await pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=1.0
                )
                if message and message["type"] == "message":
                    self.receive(message["data"])
        except RedisError as e:
            logger.error("change_feed_listener_failed", error=str(e))
        finally:
            await pubsub.unsubscribe(self.channel)
            await pubsub.aclose()
            logger.info("change_feed_stopped", channel=self.channel)

    def start(self) -> None:
        """Start the relay listener task when Redis is configured."""
        if self.redis and self._listener is None:
            self._listener = asyncio.create_task(self.listen())

    async def stop(self) -> None:
        """Stop the relay listener and close every open subscription."""
        if self._listener and not self._listener.done():
            self._listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener
        self._listener = None

        for subscription in list(self._subscriptions.values()):
            subscription.close()
