"""
Task persistence: tasks, their comments and attachments, and the activity log.

The repository is bound to one ``AsyncSession`` and never commits; the caller
owns the transaction. Filtering, ordering and aggregation are pushed to the
database.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import Any, Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.activity_log import ActivityLog
from app.models.attachment import TaskAttachment
from app.models.base import _utcnow
from app.models.comment import TaskComment
from app.models.task import Task
from app.models.user import User
from workforce_shared.schemas.common import (
    CLOSED_STATUSES,
    DEFAULT_PRIORITY_RANK,
    PRIORITY_RANK,
    TaskPriority,
    TaskStatus,
)
from workforce_shared.schemas.tasks import CustomerRead, DashboardStats, TaskFilters

# urgent=1, high=2, medium=3, anything else=4
priority_rank = sa.case(
    *[(Task.priority == name, rank) for name, rank in PRIORITY_RANK.items()],
    else_=DEFAULT_PRIORITY_RANK,
)


def _not_closed():
    return Task.status.not_in(sorted(CLOSED_STATUSES))


def _contains(text: str) -> str:
    """ILIKE pattern matching ``text`` literally, wildcards included."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class TaskRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, task_id: uuid.UUID, *, refresh: bool = False) -> Optional[Task]:
        return await self.session.get(Task, task_id, populate_existing=refresh)

    async def get_user(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.session.get(User, user_id)

    def _scoped(self, stmt, assignee_id: Optional[uuid.UUID]):
        if assignee_id is not None:
            stmt = stmt.where(Task.assigned_to == assignee_id)
        return stmt

    async def list(
        self,
        filters: TaskFilters,
        *,
        assignee_scope: Optional[uuid.UUID] = None,
    ) -> Sequence[Task]:
        """Filtered task listing.

        ``assignee_scope`` restricts results to one assignee and takes
        precedence over any ``assigned_to`` filter.
        """
        stmt = self._scoped(select(Task), assignee_scope)

        if filters.status:
            stmt = stmt.where(Task.status == filters.status.value)
        if filters.priority:
            stmt = stmt.where(Task.priority == filters.priority.value)
        if filters.assigned_to and assignee_scope is None:
            stmt = stmt.where(Task.assigned_to == filters.assigned_to)
        if filters.customer:
            pattern = _contains(filters.customer)
            stmt = stmt.where(
                sa.or_(
                    Task.customer_name.ilike(pattern, escape="\\"),
                    Task.company_name.ilike(pattern, escape="\\"),
                )
            )
        if filters.from_date:
            stmt = stmt.where(Task.due_date >= filters.from_date)
        if filters.to_date:
            stmt = stmt.where(Task.due_date <= filters.to_date)
        if filters.search:
            pattern = _contains(filters.search)
            stmt = stmt.where(
                sa.or_(
                    Task.title.ilike(pattern, escape="\\"),
                    Task.description.ilike(pattern, escape="\\"),
                )
            )

        stmt = stmt.order_by(
            priority_rank,
            sa.nulls_last(Task.due_date.asc()),
            Task.created_at.desc(),
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_comments(self, task_id: uuid.UUID) -> Sequence[TaskComment]:
        result = await self.session.execute(
            select(TaskComment)
            .where(TaskComment.task_id == task_id)
            .order_by(TaskComment.created_at.asc())
        )
        return result.scalars().all()

    async def list_attachments(self, task_id: uuid.UUID) -> Sequence[TaskAttachment]:
        result = await self.session.execute(
            select(TaskAttachment)
            .where(TaskAttachment.task_id == task_id)
            .order_by(TaskAttachment.created_at.desc())
        )
        return result.scalars().all()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, task: Task) -> Task:
        self.session.add(task)
        await self.session.flush()
        return task

    async def add_comment(
        self,
        task_id: uuid.UUID,
        text: str,
        *,
        user_id: Optional[uuid.UUID],
        system: bool = False,
    ) -> TaskComment:
        comment = TaskComment(
            task_id=task_id,
            user_id=user_id,
            comment=text,
            is_system_message=system,
        )
        self.session.add(comment)
        await self.session.flush()
        return comment

    async def add_attachment(self, attachment: TaskAttachment) -> TaskAttachment:
        self.session.add(attachment)
        await self.session.flush()
        return attachment

    async def update_fields(
        self,
        task_id: uuid.UUID,
        expected_version: int,
        values: dict[str, Any],
    ) -> bool:
        """Compare-and-swap update on the task's ``version``.

        All values are written in a single statement that also bumps the
        version. Returns False when another writer got there first.
        """
        stmt = (
            sa.update(Task)
            .where(Task.id == task_id, Task.version == expected_version)
            .values(**values, version=expected_version + 1, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete(self, task_id: uuid.UUID) -> bool:
        await self.session.execute(
            sa.delete(TaskComment).where(TaskComment.task_id == task_id)
        )
        await self.session.execute(
            sa.delete(TaskAttachment).where(TaskAttachment.task_id == task_id)
        )
        result = await self.session.execute(
            sa.delete(Task)
            .where(Task.id == task_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def log_activity(
        self, user_id: Optional[uuid.UUID], action_type: str, details: str
    ) -> None:
        self.session.add(
            ActivityLog(user_id=user_id, action_type=action_type, action_details=details)
        )
        await self.session.flush()

    # ------------------------------------------------------------------
    # Reminders
    # ------------------------------------------------------------------

    async def due_reminders(
        self, today: date, now_time: time
    ) -> list[tuple[Task, Optional[User]]]:
        """Tasks whose reminder is due and not yet delivered, with their assignee.

        A reminder without a time is due from the start of its date.
        """
        due = sa.or_(
            Task.reminder_date < today,
            sa.and_(
                Task.reminder_date == today,
                sa.or_(Task.reminder_time.is_(None), Task.reminder_time <= now_time),
            ),
        )
        stmt = (
            select(Task, User)
            .outerjoin(User, Task.assigned_to == User.id)
            .where(
                Task.reminder_sent.is_(False),
                _not_closed(),
                Task.reminder_date.is_not(None),
                due,
            )
            .order_by(Task.reminder_date, Task.reminder_time)
        )
        result = await self.session.execute(stmt)
        return [(task, user) for task, user in result.all()]

    async def mark_reminder_sent(self, task_id: uuid.UUID) -> bool:
        """Flip ``reminder_sent`` false -> true. True only for the call that flipped it."""
        result = await self.session.execute(
            sa.update(Task)
            .where(Task.id == task_id, Task.reminder_sent.is_(False))
            .values(reminder_sent=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    async def distinct_customers(self) -> list[CustomerRead]:
        """One entry per customer email; the most recent task's details win."""
        result = await self.session.execute(
            select(
                Task.customer_name,
                Task.customer_email,
                Task.customer_phone,
                Task.company_name,
            )
            .where(Task.customer_email.is_not(None), Task.customer_email != "")
            .order_by(Task.created_at.desc())
        )
        seen: dict[str, CustomerRead] = {}
        for name, email, phone, company in result.all():
            key = email.lower()
            if key in seen:
                continue
            seen[key] = CustomerRead(
                customer_name=name,
                customer_email=email,
                customer_phone=phone,
                company_name=company,
            )
        return sorted(seen.values(), key=lambda c: (c.customer_name or "").lower())

    async def dashboard_stats(
        self,
        today: date,
        day_start: datetime,
        *,
        assignee_scope: Optional[uuid.UUID] = None,
    ) -> DashboardStats:
        count = sa.func.count(Task.id)
        stmt = self._scoped(
            select(
                count.filter(Task.status == TaskStatus.OPEN.value),
                count.filter(Task.status == TaskStatus.IN_PROGRESS.value),
                count.filter(Task.status == TaskStatus.PENDING.value),
                count.filter(
                    Task.status == TaskStatus.COMPLETED.value,
                    Task.completed_at >= day_start,
                ),
                count.filter(_not_closed(), Task.due_date < today),
                count.filter(_not_closed(), Task.due_date == today),
                count.filter(_not_closed(), Task.priority == TaskPriority.URGENT.value),
                count,
            ),
            assignee_scope,
        )
        row = (await self.session.execute(stmt)).one()
        return DashboardStats(
            open_count=row[0],
            in_progress_count=row[1],
            pending_count=row[2],
            completed_today=row[3],
            overdue_count=row[4],
            due_today=row[5],
            urgent_count=row[6],
            total_tasks=row[7],
        )

    async def recent_tasks(
        self, *, assignee_scope: Optional[uuid.UUID] = None, limit: int = 5
    ) -> Sequence[Task]:
        stmt = self._scoped(select(Task), assignee_scope)
        result = await self.session.execute(
            stmt.order_by(Task.created_at.desc()).limit(limit)
        )
        return result.scalars().all()

    async def upcoming_tasks(
        self,
        today: date,
        *,
        assignee_scope: Optional[uuid.UUID] = None,
        limit: int = 5,
    ) -> Sequence[Task]:
        stmt = self._scoped(select(Task), assignee_scope).where(
            Task.due_date >= today, _not_closed()
        )
        result = await self.session.execute(
            stmt.order_by(
                Task.due_date.asc(), sa.nulls_last(Task.due_time.asc())
            ).limit(limit)
        )
        return result.scalars().all()

    async def calendar(
        self,
        start: date,
        end: date,
        *,
        assignee_scope: Optional[uuid.UUID] = None,
    ) -> Sequence[Task]:
        stmt = self._scoped(select(Task), assignee_scope).where(
            Task.due_date >= start,
            Task.due_date <= end,
            Task.status != TaskStatus.CANCELLED.value,
        )
        result = await self.session.execute(
            stmt.order_by(Task.due_date.asc(), priority_rank)
        )
        return result.scalars().all()
