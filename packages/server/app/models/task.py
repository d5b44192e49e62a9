"""Task model."""

from datetime import date, datetime, time
from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        sa.Index("idx_tasks_reminder", "reminder_date", "reminder_sent"),
    )

    title: str = Field(nullable=False)
    description: Optional[str] = None
    category: Optional[str] = None
    priority: str = Field(nullable=False, default="medium", index=True)  # low | medium | high | urgent
    status: str = Field(nullable=False, default="open", index=True)  # open | in_progress | pending | completed | cancelled

    assigned_to: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    created_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    completed_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    completed_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))

    customer_name: Optional[str] = None
    customer_email: Optional[str] = Field(default=None, index=True)
    customer_phone: Optional[str] = None
    company_name: Optional[str] = None

    due_date: Optional[date] = Field(default=None, index=True)
    due_time: Optional[time] = None
    reminder_date: Optional[date] = None
    reminder_time: Optional[time] = None
    reminder_sent: bool = Field(default=False, nullable=False)

    resolution_notes: Optional[str] = None
    send_completion_email: bool = Field(default=True, nullable=False)

    # Revision counter for compare-and-swap writes
    version: int = Field(default=1, nullable=False)
