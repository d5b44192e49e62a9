"""
Task endpoints: CRUD, status changes, comments, attachments, email
verification, and the customer, dashboard and calendar views.

Static paths are registered before ``/{task_id}`` so they are not captured by it.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import AuthenticatedUser, get_authenticated_user, require_admin
from app.core.config import get_settings
from app.core.database import get_session
from app.core.events import NotificationOutbox
from app.services.tasks import TaskWorkflow
from app.services.verification import ChallengeStore
from workforce_shared.schemas.common import ErrorResponse, TaskPriority, TaskStatus
from workforce_shared.schemas.tasks import (
    AttachmentCreate,
    AttachmentRead,
    CommentCreate,
    CommentRead,
    CustomerRead,
    DashboardRead,
    TaskCreate,
    TaskDetail,
    TaskFilters,
    TaskRead,
    TaskStatusUpdate,
    TaskUpdate,
)
from workforce_shared.schemas.verification import (
    EmailVerificationConfirm,
    EmailVerificationRequest,
    EmailVerificationResponse,
)

router = APIRouter(
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    }
)


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_challenge_store(request: Request) -> ChallengeStore:
    return request.app.state.challenge_store


def get_outbox(request: Request) -> Optional[NotificationOutbox]:
    return getattr(request.app.state, "outbox", None)


async def get_workflow(
    session: AsyncSession = Depends(get_session),
    challenges: ChallengeStore = Depends(get_challenge_store),
    outbox: Optional[NotificationOutbox] = Depends(get_outbox),
) -> TaskWorkflow:
    return TaskWorkflow(session, challenges, outbox)


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@router.get("/", response_model=List[TaskRead])
async def list_tasks_endpoint(
    status: Optional[TaskStatus] = None,
    priority: Optional[TaskPriority] = None,
    assigned_to: Optional[uuid.UUID] = None,
    customer: Optional[str] = None,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    search: Optional[str] = None,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    """List tasks. Employees only ever see tasks assigned to them."""
    filters = TaskFilters(
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        customer=customer,
        from_date=from_date,
        to_date=to_date,
        search=search,
    )
    return await workflow.list_tasks(auth, filters)


@router.get("/calendar", response_model=List[TaskRead])
async def calendar_endpoint(
    month: Optional[str] = None,
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    """Tasks due in a month (``YYYY-MM``) or a from/to range, cancelled excluded."""
    return await workflow.calendar(auth, month=month, from_date=from_date, to_date=to_date)


@router.get("/dashboard", response_model=DashboardRead)
async def dashboard_endpoint(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    return await workflow.dashboard(auth)


@router.get("/customers", response_model=List[CustomerRead])
async def customers_endpoint(
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    """Distinct customers from previous tasks, for autocomplete."""
    return await workflow.list_customers(auth)


# ---------------------------------------------------------------------------
# Email verification
# ---------------------------------------------------------------------------


@router.post("/verify-email", response_model=EmailVerificationResponse)
async def request_verification_endpoint(
    body: EmailVerificationRequest,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    code = await workflow.request_email_verification(auth, body.email)
    return EmailVerificationResponse(
        message="Verification code sent to Telegram",
        code=code if get_settings().environment == "development" else None,
    )


@router.post("/confirm-email", response_model=EmailVerificationResponse)
async def confirm_verification_endpoint(
    body: EmailVerificationConfirm,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    await workflow.confirm_email_verification(body.email, body.code)
    return EmailVerificationResponse(message="Email verified successfully")


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------


@router.post("/", response_model=TaskRead, status_code=201)
async def create_task_endpoint(
    body: TaskCreate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    return await workflow.create_task(auth, body)


@router.get("/{task_id}", response_model=TaskDetail)
async def get_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    return await workflow.get_task(auth, task_id)


@router.put("/{task_id}", response_model=TaskRead)
async def update_task_endpoint(
    task_id: uuid.UUID,
    body: TaskUpdate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    """Partial update. Fields left out of the body keep their stored values."""
    return await workflow.update_task(auth, task_id, body)


@router.put("/{task_id}/status", response_model=TaskRead)
async def set_status_endpoint(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    return await workflow.set_status(auth, task_id, body.status, body.resolution_notes)


@router.post("/{task_id}/comments", response_model=CommentRead, status_code=201)
async def add_comment_endpoint(
    task_id: uuid.UUID,
    body: CommentCreate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    return await workflow.add_comment(auth, task_id, body.comment)


@router.post("/{task_id}/attachments", response_model=AttachmentRead, status_code=201)
async def add_attachment_endpoint(
    task_id: uuid.UUID,
    body: AttachmentCreate,
    auth: AuthenticatedUser = Depends(get_authenticated_user),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    return await workflow.add_attachment(auth, task_id, body)


@router.delete("/{task_id}", status_code=204)
async def delete_task_endpoint(
    task_id: uuid.UUID,
    auth: AuthenticatedUser = Depends(require_admin),
    workflow: TaskWorkflow = Depends(get_workflow),
):
    await workflow.delete_task(auth, task_id)
    return Response(status_code=204)
