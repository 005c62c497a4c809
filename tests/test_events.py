import asyncio
import json
import uuid

import pytest

from classboard.api.v1.public import leaderboard_events
from classboard.core.events import BrokerClosed, LeaderboardBroker
from classboard.services import points_service


async def drain() -> None:
    # let call_soon_threadsafe callbacks run
    await asyncio.sleep(0)
    await asyncio.sleep(0)


async def test_publish_reaches_only_that_class(broker):
    physics, chemistry = uuid.uuid4(), uuid.uuid4()
    first = broker.subscribe(physics)
    second = broker.subscribe(physics)
    other = broker.subscribe(chemistry)

    assert broker.publish(physics) == 2
    await drain()

    assert await first.wait(timeout=0.1) == physics
    assert await second.wait(timeout=0.1) == physics
    assert await other.wait(timeout=0.01) is None


async def test_pending_notifications_coalesce(broker):
    class_id = uuid.uuid4()
    subscription = broker.subscribe(class_id)
    for _ in range(5):
        broker.publish(class_id)
    await drain()

    assert await subscription.wait(timeout=0.1) == class_id
    assert await subscription.wait(timeout=0.01) is None


async def test_publish_from_worker_thread(broker):
    class_id = uuid.uuid4()
    subscription = broker.subscribe(class_id)
    delivered = await asyncio.to_thread(broker.publish, class_id)

    assert delivered == 1
    assert await subscription.wait(timeout=1) == class_id


async def test_unsubscribe_removes_empty_buckets(broker):
    class_id = uuid.uuid4()
    subscription = broker.subscribe(class_id)
    assert broker.subscriber_count(class_id) == 1

    broker.unsubscribe(subscription)
    broker.unsubscribe(subscription)

    assert broker.subscriber_count() == 0
    assert broker.publish(class_id) == 0


async def test_close_ends_every_stream(broker):
    subscription = broker.subscribe(uuid.uuid4())
    broker.close()
    await drain()

    with pytest.raises(BrokerClosed):
        await subscription.wait(timeout=1)
    with pytest.raises(BrokerClosed):
        broker.subscribe(uuid.uuid4())
    assert broker.subscriber_count() == 0


async def test_adjustment_publishes_after_commit(session, classroom, owner, enroll, broker):
    student = enroll("Dewi Lestari")
    subscription = broker.subscribe(classroom.class_id)

    points_service.adjust_points(
        session,
        class_id=classroom.class_id,
        student_id=student.student_id,
        delta=3,
        actor_id=owner.user_id,
        reason="Answered first",
        broker=broker,
    )

    assert await subscription.wait(timeout=1) == classroom.class_id


async def test_bulk_adjustment_publishes_once(session, classroom, owner, enroll, monkeypatch):
    students = [enroll(name) for name in ("Dewi Lestari", "Budi Santoso")]
    published = []
    broker = LeaderboardBroker()
    monkeypatch.setattr(broker, "publish", lambda class_id: published.append(class_id) or 0)

    points_service.bulk_adjust_points(
        session,
        class_id=classroom.class_id,
        student_ids=[s.student_id for s in students],
        delta=1,
        actor_id=owner.user_id,
        reason="Attendance",
        broker=broker,
    )

    assert published == [classroom.class_id]


class FakeRequest:
    def __init__(self, disconnect_after: int) -> None:
        self.checks = 0
        self.disconnect_after = disconnect_after

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.disconnect_after


async def test_event_stream_frames(broker):
    class_id = uuid.uuid4()
    stream = leaderboard_events(class_id, FakeRequest(disconnect_after=2), broker, keepalive=0.01)

    assert json.loads((await stream.__anext__())[len("data: "):]) == {"status": "connected"}
    assert await stream.__anext__() == ": keepalive\n\n"

    broker.publish(class_id)
    frame = await stream.__anext__()
    assert frame == f'data: {{"class_id": "{class_id}"}}\n\n'

    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert broker.subscriber_count(class_id) == 0


async def test_event_stream_stops_on_shutdown(broker):
    stream = leaderboard_events(uuid.uuid4(), FakeRequest(disconnect_after=100), broker, keepalive=5)
    await stream.__anext__()

    broker.close()
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()


async def test_unstarted_stream_holds_no_subscription(broker):
    class_id = uuid.uuid4()
    stream = leaderboard_events(class_id, FakeRequest(disconnect_after=0), broker, keepalive=5)
    assert broker.subscriber_count(class_id) == 0

    await stream.__anext__()
    assert broker.subscriber_count(class_id) == 1
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
    assert broker.subscriber_count(class_id) == 0


async def test_stream_after_shutdown_is_empty(broker):
    broker.close()
    stream = leaderboard_events(uuid.uuid4(), FakeRequest(disconnect_after=100), broker, keepalive=5)
    with pytest.raises(StopAsyncIteration):
        await stream.__anext__()
