"""User schemas used by notifications and task views."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, UUID4

from .common import Role


class UserContact(BaseModel):
    """The parts of a user a notification needs: who they are and where to reach them."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    full_name: str
    role: Role = Role.EMPLOYEE
    telegram_id: Optional[str] = None
