"""
Plan lifecycle events.

Fire-and-forget: publishing never blocks and never fails the caller.
A bounded queue is drained by a worker that fans out to subscribers.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Awaitable, Callable, List, Optional

from app.domain.models import DeploymentPlan
from app.utils.time import utc_now

logger = logging.getLogger(__name__)

PLAN_PROPOSED = "plan.proposed"
PLAN_APPLIED = "plan.applied"
PLAN_CANCELED = "plan.canceled"


@dataclass
class PlanEvent:
    event_type: str
    user_id: str
    payload: dict
    ts: datetime = field(default_factory=utc_now)


def plan_proposed(plan: DeploymentPlan) -> PlanEvent:
    return PlanEvent(
        event_type=PLAN_PROPOSED,
        user_id=plan.user_id,
        payload={"plan": plan.model_dump(mode="json")},
    )


def plan_applied(user_id: str, plan_id: str, positions_count: int, total_usd: Decimal) -> PlanEvent:
    return PlanEvent(
        event_type=PLAN_APPLIED,
        user_id=user_id,
        payload={
            "userId": user_id,
            "planId": plan_id,
            "positionsCount": positions_count,
            "totalUSD": str(total_usd),
        },
    )


def plan_canceled(user_id: str, plan_id: str) -> PlanEvent:
    return PlanEvent(
        event_type=PLAN_CANCELED,
        user_id=user_id,
        payload={"userId": user_id, "planId": plan_id},
    )


EventHandler = Callable[[PlanEvent], Awaitable[None]]


class PlanEventQueue:
    def __init__(self, maxsize: int = 1000):
        self._queue: asyncio.Queue[PlanEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def publish(self, event: PlanEvent) -> bool:
        """Enqueue without waiting; a full queue drops the event"""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Event queue full, dropped %s for %s", event.event_type, event.user_id
            )
            return False
        return True

    async def get(self) -> PlanEvent:
        return await self._queue.get()

    def size(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        await self._queue.join()

    def task_done(self) -> None:
        self._queue.task_done()


class PlanEventWorker:
    def __init__(self, queue: PlanEventQueue, subscribers: Optional[List[EventHandler]] = None):
        self._queue = queue
        self._subscribers: List[EventHandler] = list(subscribers or [])
        self._task: Optional[asyncio.Task] = None
        self._stop = asyncio.Event()

    def subscribe(self, handler: EventHandler) -> None:
        self._subscribers.append(handler)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._stop.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        self._stop.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                return

    async def _run(self) -> None:
        while not self._stop.is_set():
            event = await self._queue.get()
            try:
                await self._dispatch(event)
            finally:
                self._queue.task_done()

    async def _dispatch(self, event: PlanEvent) -> None:
        for handler in self._subscribers:
            try:
                await handler(event)
            except Exception:
                logger.exception("Event subscriber failed on %s", event.event_type)


async def log_event(event: PlanEvent) -> None:
    """Default subscriber"""
    plan_id = event.payload.get("planId") or event.payload.get("plan", {}).get("id")
    logger.info("event %s user=%s plan=%s", event.event_type, event.user_id, plan_id)
