"""
Task workflow: lifecycle, permissions and the email verification gate.

Rules:
- Admins see and modify every task. Employees only see and modify tasks
  assigned to them; for anything else they get ``Forbidden``, whether or not
  the task exists.
- Any status may move to any other. Entering ``completed`` stamps
  ``completed_at``/``completed_by`` in the same statement as the status;
  leaving it clears neither.
- Writes to an existing task are compare-and-swap on ``Task.version``.
- Each operation commits its own transaction. Notifications are published to
  the outbox only after the commit succeeds.
"""

from __future__ import annotations

import calendar as _calendar
import functools
import posixpath
import uuid
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Callable, Optional, Sequence
from urllib.parse import urlparse
from zoneinfo import ZoneInfo

import structlog
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser
from app.core.config import Settings, get_settings
from app.core.errors import (
    ConflictError,
    DependencyFailure,
    Forbidden,
    NotFound,
    ValidationError,
    VerificationRequired,
)
from app.core.events import NotificationOutbox, TaskAssigned, TaskCompleted, TaskEvent, VerificationRequested
from app.models.attachment import TaskAttachment
from app.models.comment import TaskComment
from app.models.task import Task
from app.models.user import User
from app.repositories.tasks import TaskRepository
from app.services.verification import ChallengeStore, normalize_email
from workforce_shared.schemas.common import TaskStatus
from workforce_shared.schemas.tasks import (
    AttachmentCreate,
    AttachmentRead,
    CommentRead,
    CustomerRead,
    DashboardRead,
    TaskCreate,
    TaskDetail,
    TaskFilters,
    TaskRead,
    TaskSummary,
    TaskUpdate,
)
from workforce_shared.schemas.users import UserContact

log = structlog.get_logger()

Clock = Callable[[], datetime]

# Fields a patch may not null out
_REQUIRED_FIELDS = ("title", "priority", "send_completion_email")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _storage_guard(fn):
    """Turn storage and cache errors into ``DependencyFailure``; cause is logged only."""

    @functools.wraps(fn)
    async def wrapper(self: "TaskWorkflow", *args, **kwargs):
        try:
            return await fn(self, *args, **kwargs)
        except (SQLAlchemyError, RedisError) as exc:
            log.error("task.storage_error", operation=fn.__name__, error=repr(exc))
            await self.session.rollback()
            raise DependencyFailure() from exc

    return wrapper


def _attachment_name(meta: AttachmentCreate) -> str:
    if meta.file_name:
        return meta.file_name
    if meta.file_url:
        return posixpath.basename(urlparse(meta.file_url).path) or "Attachment"
    return "Drive Link"


class TaskWorkflow:
    def __init__(
        self,
        session: AsyncSession,
        challenges: ChallengeStore,
        outbox: Optional[NotificationOutbox] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.session = session
        self.repo = TaskRepository(session)
        self.challenges = challenges
        self.outbox = outbox
        self.settings = settings or get_settings()
        self.clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _local_now(self) -> datetime:
        return self.clock().astimezone(ZoneInfo(self.settings.timezone))

    def _publish(self, event: TaskEvent) -> None:
        if self.outbox is not None:
            self.outbox.publish(event)

    @staticmethod
    def _scope(caller: AuthenticatedUser) -> Optional[uuid.UUID]:
        return None if caller.is_admin else caller.id

    async def _load(self, caller: AuthenticatedUser, task_id: uuid.UUID) -> Task:
        task = await self.repo.get(task_id, refresh=True)
        if caller.is_admin:
            if task is None:
                raise NotFound("Task not found")
        elif task is None or task.assigned_to != caller.id:
            raise Forbidden()
        return task

    async def _require_user(self, user_id: uuid.UUID) -> User:
        user = await self.repo.get_user(user_id)
        if user is None:
            raise NotFound("Assigned user not found")
        return user

    async def _write(
        self,
        caller: AuthenticatedUser,
        task: Task,
        values_for: Callable[[Task], dict[str, Any]],
    ) -> Task:
        """Apply ``values_for(task)`` with compare-and-swap, re-reading on conflict.

        Returns the task state the successful write was based on.
        """
        attempts = max(1, self.settings.status_update_max_attempts)
        for attempt in range(1, attempts + 1):
            if await self.repo.update_fields(task.id, task.version, values_for(task)):
                return task
            log.info("task.write_conflict", task_id=str(task.id), attempt=attempt)
            task = await self._load(caller, task.id)
        raise ConflictError()

    def _build_attachment(
        self, task_id: uuid.UUID, meta: AttachmentCreate, uploader: uuid.UUID
    ) -> TaskAttachment:
        return TaskAttachment(
            task_id=task_id,
            file_name=_attachment_name(meta),
            file_type=meta.file_type,
            file_size=meta.file_size,
            file_url=meta.file_url,
            drive_link=meta.drive_link,
            uploaded_by=uploader,
        )

    @staticmethod
    def _check_attachment(meta: AttachmentCreate) -> None:
        if not meta.file_url and not meta.drive_link:
            raise ValidationError("Either a file URL or a drive link is required")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @_storage_guard
    async def list_tasks(
        self, caller: AuthenticatedUser, filters: Optional[TaskFilters] = None
    ) -> Sequence[Task]:
        return await self.repo.list(filters or TaskFilters(), assignee_scope=self._scope(caller))

    @_storage_guard
    async def get_task(self, caller: AuthenticatedUser, task_id: uuid.UUID) -> TaskDetail:
        task = await self._load(caller, task_id)
        comments = await self.repo.list_comments(task.id)
        attachments = await self.repo.list_attachments(task.id)
        return TaskDetail(
            **TaskRead.model_validate(task).model_dump(),
            comments=[CommentRead.model_validate(c) for c in comments],
            attachments=[AttachmentRead.model_validate(a) for a in attachments],
        )

    # ------------------------------------------------------------------
    # Create / update / delete
    # ------------------------------------------------------------------

    @_storage_guard
    async def create_task(self, caller: AuthenticatedUser, payload: TaskCreate) -> Task:
        title = (payload.title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        for meta in payload.attachments:
            self._check_attachment(meta)

        if payload.verify_email and payload.customer_email:
            if not await self.challenges.is_verified(payload.customer_email):
                raise VerificationRequired()

        assignee = None
        if payload.assigned_to is not None:
            assignee = await self._require_user(payload.assigned_to)

        task = Task(
            title=title,
            description=payload.description,
            category=payload.category,
            priority=payload.priority.value,
            status=TaskStatus.OPEN.value,
            assigned_to=payload.assigned_to,
            created_by=caller.id,
            customer_name=payload.customer_name,
            customer_email=payload.customer_email,
            customer_phone=payload.customer_phone,
            company_name=payload.company_name,
            due_date=payload.due_date,
            due_time=payload.due_time,
            reminder_date=payload.reminder_date,
            reminder_time=payload.reminder_time,
            send_completion_email=payload.send_completion_email is not False,
        )
        await self.repo.add(task)
        await self.repo.add_comment(task.id, "Task created", user_id=caller.id, system=True)
        for meta in payload.attachments:
            await self.repo.add_attachment(self._build_attachment(task.id, meta, caller.id))
        await self.repo.log_activity(caller.id, "create_task", f"Created task: {title}")
        await self.session.commit()

        log.info(
            "task.created",
            task_id=str(task.id),
            created_by=str(caller.id),
            assigned_to=str(task.assigned_to) if task.assigned_to else None,
        )
        if assignee is not None:
            self._publish(
                TaskAssigned(
                    task=TaskRead.model_validate(task),
                    assignee=UserContact.model_validate(assignee),
                    assigned_by=caller.full_name,
                )
            )
        return task

    @_storage_guard
    async def update_task(
        self, caller: AuthenticatedUser, task_id: uuid.UUID, patch: TaskUpdate
    ) -> Task:
        """Partial update: only fields set on ``patch`` are written."""
        data = patch.model_dump(exclude_unset=True)
        for key in _REQUIRED_FIELDS:
            if key in data and data[key] is None:
                raise ValidationError(f"{key} cannot be empty")
        if "title" in data:
            data["title"] = data["title"].strip()
            if not data["title"]:
                raise ValidationError("Title is required")
        data = {k: v.value if isinstance(v, Enum) else v for k, v in data.items()}

        task = await self._load(caller, task_id)
        if not data:
            return task

        new_assignee = None
        if data.get("assigned_to") is not None and data["assigned_to"] != task.assigned_to:
            new_assignee = await self._require_user(data["assigned_to"])

        before = await self._write(caller, task, lambda _: data)
        reassigned = "assigned_to" in data and data["assigned_to"] != before.assigned_to
        if reassigned:
            await self.repo.add_comment(task_id, "Task reassigned", user_id=caller.id, system=True)
        await self.session.commit()

        task = await self.repo.get(task_id, refresh=True)
        log.info("task.updated", task_id=str(task_id), fields=sorted(data), updated_by=str(caller.id))
        if reassigned and new_assignee is not None:
            self._publish(
                TaskAssigned(
                    task=TaskRead.model_validate(task),
                    assignee=UserContact.model_validate(new_assignee),
                    assigned_by=caller.full_name,
                )
            )
        return task

    @_storage_guard
    async def set_status(
        self,
        caller: AuthenticatedUser,
        task_id: uuid.UUID,
        status: TaskStatus,
        resolution_notes: Optional[str] = None,
    ) -> Task:
        task = await self._load(caller, task_id)
        completing = status == TaskStatus.COMPLETED
        completed_at = self.clock()

        def values_for(_: Task) -> dict[str, Any]:
            values: dict[str, Any] = {"status": status.value}
            if completing:
                values["completed_at"] = completed_at
                values["completed_by"] = caller.id
                if resolution_notes is not None:
                    values["resolution_notes"] = resolution_notes
            return values

        before = await self._write(caller, task, values_for)
        previous = before.status
        if previous != status.value:
            await self.repo.add_comment(
                task_id,
                f"Status changed from {previous} to {status.value}",
                user_id=caller.id,
                system=True,
            )
        await self.session.commit()

        task = await self.repo.get(task_id, refresh=True)
        log.info(
            "task.status_changed",
            task_id=str(task_id),
            from_status=previous,
            to_status=status.value,
            changed_by=str(caller.id),
        )
        if completing:
            self._publish(
                TaskCompleted(
                    task=TaskRead.model_validate(task),
                    completed_by=caller.full_name,
                    completed_at=completed_at,
                )
            )
        return task

    @_storage_guard
    async def add_comment(
        self, caller: AuthenticatedUser, task_id: uuid.UUID, text: Optional[str]
    ) -> TaskComment:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Comment text is required")
        await self._load(caller, task_id)
        comment = await self.repo.add_comment(task_id, text, user_id=caller.id)
        await self.session.commit()
        return comment

    @_storage_guard
    async def add_attachment(
        self, caller: AuthenticatedUser, task_id: uuid.UUID, meta: AttachmentCreate
    ) -> TaskAttachment:
        self._check_attachment(meta)
        await self._load(caller, task_id)
        attachment = await self.repo.add_attachment(
            self._build_attachment(task_id, meta, caller.id)
        )
        await self.session.commit()
        return attachment

    @_storage_guard
    async def delete_task(self, caller: AuthenticatedUser, task_id: uuid.UUID) -> None:
        if not caller.is_admin:
            raise Forbidden("Only administrators can delete tasks")
        task = await self._load(caller, task_id)
        title = task.title
        await self.repo.delete(task_id)
        await self.repo.log_activity(caller.id, "delete_task", f"Deleted task: {title}")
        await self.session.commit()
        log.info("task.deleted", task_id=str(task_id), deleted_by=str(caller.id))

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    @_storage_guard
    async def request_email_verification(
        self, caller: AuthenticatedUser, email: Optional[str]
    ) -> str:
        """Issue a code for ``email`` and send it to the operations channel."""
        email = (email or "").strip()
        if "@" not in email:
            raise ValidationError("Valid email is required")
        code = await self.challenges.issue(email)
        self._publish(
            VerificationRequested(
                email=normalize_email(email),
                code=code,
                requested_by=caller.full_name,
                ttl_minutes=self.settings.verification_ttl_minutes,
            )
        )
        return code

    @_storage_guard
    async def confirm_email_verification(self, email: Optional[str], code: Optional[str]) -> None:
        if not email or not code:
            raise ValidationError("Email and code are required")
        await self.challenges.confirm(email, code)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    @_storage_guard
    async def list_customers(self, caller: AuthenticatedUser) -> list[CustomerRead]:
        return await self.repo.distinct_customers()

    @_storage_guard
    async def dashboard(self, caller: AuthenticatedUser) -> DashboardRead:
        local_now = self._local_now()
        today = local_now.date()
        day_start = datetime.combine(today, time.min, tzinfo=local_now.tzinfo).astimezone(timezone.utc)
        scope = self._scope(caller)

        stats = await self.repo.dashboard_stats(today, day_start, assignee_scope=scope)
        recent = await self.repo.recent_tasks(assignee_scope=scope)
        upcoming = await self.repo.upcoming_tasks(today, assignee_scope=scope)
        return DashboardRead(
            stats=stats,
            recent_tasks=[TaskSummary.model_validate(t) for t in recent],
            upcoming_tasks=[TaskSummary.model_validate(t) for t in upcoming],
        )

    @_storage_guard
    async def calendar(
        self,
        caller: AuthenticatedUser,
        month: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> Sequence[Task]:
        """Tasks due in ``month`` (YYYY-MM) or in ``[from_date, to_date]``.

        With neither given, the current month is used.
        """
        if month:
            try:
                first = datetime.strptime(month, "%Y-%m").date()
            except ValueError:
                raise ValidationError("Month must be formatted as YYYY-MM")
            start = first
            end = first.replace(day=_calendar.monthrange(first.year, first.month)[1])
        elif from_date and to_date:
            if from_date > to_date:
                raise ValidationError("from must not be after to")
            start, end = from_date, to_date
        else:
            today = self._local_now().date()
            start = today.replace(day=1)
            end = today.replace(day=_calendar.monthrange(today.year, today.month)[1])

        return await self.repo.calendar(start, end, assignee_scope=self._scope(caller))
