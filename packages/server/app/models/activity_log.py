"""Activity log model (append-only audit trail of task actions)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class ActivityLog(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "activity_log"

    user_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)
    action_type: str = Field(nullable=False)  # create_task | delete_task
    action_details: Optional[str] = None
