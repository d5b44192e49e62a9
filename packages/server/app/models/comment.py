"""Task comment model. System messages record lifecycle changes."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class TaskComment(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "task_comments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
    comment: str = Field(nullable=False)
    is_system_message: bool = Field(default=False, nullable=False)
