"""
Outbound task events and the notification outbox.

Workflow operations publish events after their transaction commits. A single
consumer task drains the bounded queue and hands each event to the
``NotificationDispatcher``, so notification latency and failures never touch
the request path.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

import structlog

from app.services.notifications import NotificationDispatcher
from workforce_shared.schemas.tasks import TaskRead
from workforce_shared.schemas.users import UserContact

log = structlog.get_logger()


@dataclass(frozen=True)
class TaskAssigned:
    task: TaskRead
    assignee: UserContact
    assigned_by: Optional[str]


@dataclass(frozen=True)
class TaskCompleted:
    task: TaskRead
    completed_by: Optional[str]
    completed_at: Optional[datetime] = None


@dataclass(frozen=True)
class VerificationRequested:
    email: str
    code: str
    requested_by: Optional[str]
    ttl_minutes: int = 15


TaskEvent = Union[TaskAssigned, TaskCompleted, VerificationRequested]


async def deliver(dispatcher: NotificationDispatcher, event: TaskEvent) -> bool:
    """Send the notification for one event."""
    if isinstance(event, TaskAssigned):
        return await dispatcher.notify_assignment(event.task, event.assignee, event.assigned_by)
    if isinstance(event, TaskCompleted):
        return await dispatcher.notify_completion(event.task, event.completed_by, event.completed_at)
    if isinstance(event, VerificationRequested):
        return await dispatcher.notify_verification_code(
            event.email, event.code, event.requested_by, event.ttl_minutes
        )
    raise TypeError(f"Unknown event type: {type(event).__name__}")


class NotificationOutbox:
    """Bounded in-process queue of task events with one consumer task."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        max_size: int = 1000,
        stop_timeout: float = 10.0,
    ):
        self.dispatcher = dispatcher
        self.stop_timeout = stop_timeout
        self._queue: asyncio.Queue[TaskEvent] = asyncio.Queue(maxsize=max_size)
        self._task: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def publish(self, event: TaskEvent) -> bool:
        """Enqueue an event. A full queue drops it; never blocks."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            log.warning("outbox.dropped", event_type=type(event).__name__, size=self._queue.qsize())
            return False
        return True

    async def start(self) -> None:
        self._task = asyncio.create_task(self._consume())
        log.info("outbox.started")

    async def stop(self) -> None:
        """Let the consumer finish queued and in-flight events, then stop it.

        Anything still queued after ``stop_timeout`` is delivered inline.
        """
        if self._task:
            if self.running:
                try:
                    await asyncio.wait_for(self._queue.join(), self.stop_timeout)
                except asyncio.TimeoutError:
                    log.warning("outbox.stop_timeout", pending=self._queue.qsize())
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        delivered = await self.drain()
        log.info("outbox.stopped", drained=delivered)

    async def drain(self) -> int:
        """Deliver every queued event now. Returns the number processed."""
        processed = 0
        while not self._queue.empty():
            event = self._queue.get_nowait()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    async def _consume(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            except asyncio.CancelledError:
                log.warning("outbox.in_flight_dropped", event_type=type(event).__name__)
                raise
            finally:
                self._queue.task_done()

    async def _deliver(self, event: TaskEvent) -> None:
        try:
            await deliver(self.dispatcher, event)
        except Exception as exc:
            log.error("outbox.delivery_error", event_type=type(event).__name__, error=str(exc))
