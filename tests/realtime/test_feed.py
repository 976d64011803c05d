"""Tests for the change feed and subscription filters."""

from unittest.mock import AsyncMock, Mock

import orjson
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from src.auth.permissions import UserRole
from src.auth.schemas import Principal
from src.core.errors import SubscriptionError
from src.realtime.feed import ChangeFeed
from src.realtime.filters import (
    all_enrollments,
    audit_entries,
    enrollments_for_course,
    enrollments_for_student,
)
from src.realtime.models import ChangeEvent, ChangeKind, EntityType, SubscriptionState
from src.realtime.websocket_router import enrollment_predicate
from src.utils.dates import utc_now


async def publish_enrollment(feed: ChangeFeed, student_id: str, course_id: str):
    return await feed.publish(
        EntityType.ENROLLMENT,
        f"{student_id}:{course_id}",
        ChangeKind.UPDATED,
        {"student_id": student_id, "course_id": course_id, "verified": True},
    )


class TestSubscription:
    """Tests for subscription lifecycle and delivery."""

    @pytest.mark.asyncio
    async def test_events_delivered_in_publish_order(self, feed) -> None:
        async with feed.subscribe() as first, feed.subscribe() as second:
            for course in ("C1", "C2", "C3"):
                await publish_enrollment(feed, "S1", course)

            first_seen = [(await first.get()).sequence for _ in range(3)]
            second_seen = [(await second.get()).sequence for _ in range(3)]

        assert first_seen == second_seen
        assert first_seen == sorted(first_seen)

    @pytest.mark.asyncio
    async def test_unopened_subscription_receives_nothing(self, feed) -> None:
        subscription = feed.subscribe()
        await publish_enrollment(feed, "S1", "C1")

        assert subscription.state is SubscriptionState.CONNECTING
        assert subscription.pending == 0

    @pytest.mark.asyncio
    async def test_filter_applied(self, feed) -> None:
        async with feed.subscribe(enrollments_for_student("S1")) as subscription:
            await publish_enrollment(feed, "S2", "C1")
            await publish_enrollment(feed, "S1", "C1")

            event = await subscription.get()

        assert event.data["student_id"] == "S1"
        assert subscription.pending == 0

    @pytest.mark.asyncio
    async def test_event_data_is_read_only(self, feed) -> None:
        event = await publish_enrollment(feed, "S1", "C1")

        with pytest.raises(TypeError):
            event.data["verified"] = False

    @pytest.mark.asyncio
    async def test_overflow_drains_then_fails(self, feed) -> None:
        subscription = feed.subscribe(queue_size=2).open()
        for course in ("C1", "C2", "C3"):
            await publish_enrollment(feed, "S1", course)

        assert subscription.state is SubscriptionState.ERROR
        assert feed.subscriber_count == 0
        assert (await subscription.get()).data["course_id"] == "C1"
        assert (await subscription.get()).data["course_id"] == "C2"
        with pytest.raises(SubscriptionError):
            await subscription.get()

    @pytest.mark.asyncio
    async def test_close_is_idempotent_and_ends_iteration(self, feed) -> None:
        subscription = feed.subscribe().open()
        await publish_enrollment(feed, "S1", "C1")

        subscription.close()
        subscription.close()

        assert subscription.state is SubscriptionState.CLOSED
        assert feed.subscriber_count == 0
        assert [event async for event in subscription] == []

    @pytest.mark.asyncio
    async def test_stop_closes_subscriptions(self, feed) -> None:
        subscription = feed.subscribe().open()

        await feed.stop()

        assert subscription.state is SubscriptionState.CLOSED


class TestRelay:
    """Tests for the Redis pub/sub relay."""

    @pytest.mark.asyncio
    async def test_publish_relays_message(self) -> None:
        redis = Mock()
        redis.publish = AsyncMock()
        feed = ChangeFeed(redis, channel="test:changes")

        event = await publish_enrollment(feed, "S1", "C1")

        redis.publish.assert_awaited_once()
        channel, payload = redis.publish.await_args.args
        assert channel == "test:changes"
        assert orjson.loads(payload)["sequence"] == event.sequence

    @pytest.mark.asyncio
    async def test_relay_failure_does_not_fail_publish(self) -> None:
        redis = Mock()
        redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))
        feed = ChangeFeed(redis)

        async with feed.subscribe() as subscription:
            await publish_enrollment(feed, "S1", "C1")
            assert subscription.pending == 1

    @pytest.mark.asyncio
    async def test_receive_dispatches_remote_events(self, feed) -> None:
        remote = ChangeFeed()
        event = await publish_enrollment(remote, "S1", "C1")

        async with feed.subscribe() as subscription:
            received = feed.receive(orjson.dumps(event.to_message()))
            delivered = await subscription.get()

        assert received.sequence == event.sequence
        assert received.origin == remote.origin
        assert delivered.entity_key == "S1:C1"

    @pytest.mark.asyncio
    async def test_receive_ignores_own_events(self, feed) -> None:
        async with feed.subscribe() as subscription:
            event = await publish_enrollment(feed, "S1", "C1")
            assert feed.receive(orjson.dumps(event.to_message())) is None
            assert subscription.pending == 1

    def test_receive_ignores_malformed_messages(self, feed) -> None:
        assert feed.receive(b"not json") is None
        assert feed.receive(b'{"sequence": 1}') is None


class TestVersionOrdering:
    """Tests for dropping snapshots older than one already delivered."""

    @pytest.mark.asyncio
    async def test_older_snapshot_not_delivered(self, feed) -> None:
        async with feed.subscribe() as subscription:
            await feed.publish(
                EntityType.ENROLLMENT, "S1:C1", ChangeKind.UPDATED, {"v": 3}, version=3
            )
            await feed.publish(
                EntityType.ENROLLMENT, "S1:C1", ChangeKind.UPDATED, {"v": 2}, version=2
            )
            await feed.publish(
                EntityType.ENROLLMENT, "S2:C1", ChangeKind.UPDATED, {"v": 1}, version=1
            )

            delivered = [await subscription.get() for _ in range(subscription.pending)]

        assert [(e.entity_key, e.version) for e in delivered] == [
            ("S1:C1", 3),
            ("S2:C1", 1),
        ]

    @pytest.mark.asyncio
    async def test_stale_remote_snapshot_ignored(self, feed) -> None:
        remote = ChangeFeed()
        stale = await remote.publish(
            EntityType.ENROLLMENT, "S1:C1", ChangeKind.UPDATED, {}, version=2
        )

        async with feed.subscribe() as subscription:
            await feed.publish(
                EntityType.ENROLLMENT, "S1:C1", ChangeKind.UPDATED, {}, version=3
            )
            assert feed.receive(orjson.dumps(stale.to_message())) is None
            assert subscription.pending == 1

    @pytest.mark.asyncio
    async def test_recreated_entity_starts_over(self, feed) -> None:
        async with feed.subscribe() as subscription:
            for kind, version in (
                (ChangeKind.UPDATED, 4),
                (ChangeKind.DELETED, 4),
                (ChangeKind.CREATED, 1),
            ):
                await feed.publish(
                    EntityType.ENROLLMENT, "S1:C1", kind, {}, version=version
                )

            assert subscription.pending == 3

    @pytest.mark.asyncio
    async def test_unversioned_events_always_delivered(self, feed) -> None:
        async with feed.subscribe() as subscription:
            await publish_enrollment(feed, "S1", "C1")
            await publish_enrollment(feed, "S1", "C1")

            assert subscription.pending == 2


class TestFilters:
    """Tests for subscription predicates."""

    def make_event(self, entity_type: EntityType, **data) -> ChangeEvent:
        return ChangeEvent(
            sequence=1,
            entity_type=entity_type,
            entity_key="key",
            kind=ChangeKind.CREATED,
            data=data,
            origin="test",
            committed_at=utc_now(),
        )

    def test_enrollment_filters(self) -> None:
        event = self.make_event(EntityType.ENROLLMENT, student_id="S1", course_id="C1")

        assert all_enrollments()(event)
        assert enrollments_for_student("S1")(event)
        assert not enrollments_for_student("S2")(event)
        assert enrollments_for_course("C1")(event)
        assert not audit_entries()(event)

    def test_audit_filter(self) -> None:
        event = self.make_event(EntityType.AUDIT_ENTRY, action="generate_code")

        assert audit_entries()(event)
        assert not all_enrollments()(event)

    def test_student_sees_only_own_records(self, student) -> None:
        own = self.make_event(EntityType.ENROLLMENT, student_id="S1", course_id="C1")
        other = self.make_event(EntityType.ENROLLMENT, student_id="S2", course_id="C1")

        predicate = enrollment_predicate(student, None)

        assert predicate(own)
        assert not predicate(other)

    def test_coordinator_course_filter(self, coordinator) -> None:
        in_course = self.make_event(EntityType.ENROLLMENT, student_id="S2", course_id="C1")
        elsewhere = self.make_event(EntityType.ENROLLMENT, student_id="S2", course_id="C2")

        predicate = enrollment_predicate(coordinator, "C1")

        assert predicate(in_course)
        assert not predicate(elsewhere)

    def test_teacher_treated_as_student(self) -> None:
        teacher = Principal(id="T1", role=UserRole.TEACHER)
        other = self.make_event(EntityType.ENROLLMENT, student_id="S1", course_id="C1")

        assert not enrollment_predicate(teacher, None)(other)
