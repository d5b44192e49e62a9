"""Email verification challenge schemas."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class EmailVerificationRequest(BaseModel):
    """Request body for POST /tasks/verify-email."""
    email: str = ""


class EmailVerificationConfirm(BaseModel):
    """Request body for POST /tasks/confirm-email."""
    email: str = ""
    code: str = ""


class EmailVerificationResponse(BaseModel):
    success: bool = True
    message: str
    # Only populated in development deployments
    code: Optional[str] = None
