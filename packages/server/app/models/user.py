"""User model. Only the fields the task workflow reads are mapped."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, UUIDMixin


class User(UUIDMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: Optional[str] = Field(default=None, unique=True, index=True)
    full_name: str = Field(nullable=False)
    employee_id: Optional[str] = Field(default=None, index=True)
    role: str = Field(nullable=False, default="employee")  # admin | employee
    telegram_id: Optional[str] = Field(default=None)  # chat id; None = unreachable
