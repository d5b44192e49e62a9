"""Shared columns for the task tables: UUID keys and UTC timestamps."""

from datetime import datetime, timezone
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp(**column_kwargs) -> datetime:
    return Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now(), **column_kwargs},
        sa_type=sa.DateTime(timezone=True),
    )


class UUIDMixin(SQLModel):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True, nullable=False)


class CreatedAtMixin(SQLModel):
    """Append-only rows (comments, attachments, audit entries) only record creation."""

    created_at: datetime = _timestamp()


class TimestampMixin(CreatedAtMixin):
    updated_at: datetime = _timestamp(onupdate=_utcnow)
