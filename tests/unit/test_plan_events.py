import pytest
from decimal import Decimal

from app.events.plan_events import (
    PLAN_APPLIED,
    PLAN_CANCELED,
    PlanEvent,
    PlanEventQueue,
    PlanEventWorker,
    log_event,
    plan_applied,
    plan_canceled,
)


def test_applied_payload_shape():
    event = plan_applied("u1", "plan_0001", 3, Decimal("250000"))

    assert event.event_type == PLAN_APPLIED
    assert event.payload == {
        "userId": "u1",
        "planId": "plan_0001",
        "positionsCount": 3,
        "totalUSD": "250000",
    }


def test_full_queue_drops_without_raising():
    queue = PlanEventQueue(maxsize=1)

    assert queue.publish(plan_canceled("u1", "plan_0001")) is True
    assert queue.publish(plan_canceled("u1", "plan_0002")) is False

    assert queue.size() == 1
    assert queue.dropped == 1


@pytest.mark.asyncio
async def test_worker_fans_out_to_subscribers():
    queue = PlanEventQueue()
    first, second = [], []

    async def record_first(event: PlanEvent):
        first.append(event.event_type)

    async def record_second(event: PlanEvent):
        second.append(event.payload["planId"])

    worker = PlanEventWorker(queue, [record_first])
    worker.subscribe(record_second)
    worker.start()

    queue.publish(plan_canceled("u1", "plan_0001"))
    queue.publish(plan_applied("u1", "plan_0002", 1, Decimal("10")))

    await queue.join()
    await worker.stop()

    assert first == [PLAN_CANCELED, PLAN_APPLIED]
    assert second == ["plan_0001", "plan_0002"]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_stop_others():
    queue = PlanEventQueue()
    seen = []

    async def broken(event: PlanEvent):
        raise RuntimeError("subscriber down")

    async def healthy(event: PlanEvent):
        seen.append(event.user_id)

    worker = PlanEventWorker(queue, [broken, healthy, log_event])
    worker.start()

    queue.publish(plan_canceled("u1", "plan_0001"))
    queue.publish(plan_canceled("u2", "plan_0002"))

    await queue.join()
    await worker.stop()

    assert seen == ["u1", "u2"]
