"""Task attachment model: an uploaded file URL or an external drive link."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class TaskAttachment(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "task_attachments"

    task_id: uuid.UUID = Field(foreign_key="tasks.id", nullable=False, index=True)
    file_name: str = Field(nullable=False)
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    file_url: Optional[str] = None
    drive_link: Optional[str] = None
    uploaded_by: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id")
