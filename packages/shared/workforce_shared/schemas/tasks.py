"""Task-related Pydantic schemas for shared use across server and frontend codegen."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic import UUID4

from .common import TaskPriority, TaskStatus


# ---------------------------------------------------------------------------
# Attachments & comments
# ---------------------------------------------------------------------------

class AttachmentCreate(BaseModel):
    """A file reference or external drive link. One of the two is required."""
    file_name: Optional[str] = None
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    file_url: Optional[str] = None
    drive_link: Optional[str] = None


class AttachmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    task_id: UUID4
    file_name: str
    file_type: Optional[str] = None
    file_size: Optional[int] = None
    file_url: Optional[str] = None
    drive_link: Optional[str] = None
    uploaded_by: Optional[UUID4] = None
    created_at: datetime


class CommentCreate(BaseModel):
    comment: str = ""


class CommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    task_id: UUID4
    user_id: Optional[UUID4] = None
    comment: str
    is_system_message: bool = False
    created_at: datetime


# ---------------------------------------------------------------------------
# Task CRUD
# ---------------------------------------------------------------------------

class TaskCreate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_to: Optional[UUID4] = None

    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    company_name: Optional[str] = None

    due_date: Optional[date] = None
    due_time: Optional[time] = None
    reminder_date: Optional[date] = None
    reminder_time: Optional[time] = None

    # None means "not specified" and is stored as True
    send_completion_email: Optional[bool] = None
    attachments: List[AttachmentCreate] = Field(default_factory=list)
    verify_email: bool = False


class TaskUpdate(BaseModel):
    """Partial update: only fields that are set in the request are written.

    Status, completion stamps and the reminder flag are lifecycle-managed and
    are changed through the status endpoint and the reminder sweep only.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[UUID4] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    company_name: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[time] = None
    reminder_date: Optional[date] = None
    reminder_time: Optional[time] = None
    resolution_notes: Optional[str] = None
    send_completion_email: Optional[bool] = None


class TaskStatusUpdate(BaseModel):
    """Request body for PUT /tasks/{taskId}/status."""
    status: TaskStatus
    resolution_notes: Optional[str] = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    priority: str
    status: str
    assigned_to: Optional[UUID4] = None
    created_by: Optional[UUID4] = None
    completed_by: Optional[UUID4] = None
    completed_at: Optional[datetime] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    company_name: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[time] = None
    reminder_date: Optional[date] = None
    reminder_time: Optional[time] = None
    reminder_sent: bool = False
    resolution_notes: Optional[str] = None
    send_completion_email: bool = True
    version: int = 1
    created_at: datetime
    updated_at: datetime


class TaskDetail(TaskRead):
    """A task with its comment thread (oldest first) and attachments (newest first)."""
    comments: List[CommentRead] = Field(default_factory=list)
    attachments: List[AttachmentRead] = Field(default_factory=list)


class TaskFilters(BaseModel):
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    assigned_to: Optional[UUID4] = None
    customer: Optional[str] = None  # customer or company name substring
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    search: Optional[str] = None  # title or description substring


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

class CustomerRead(BaseModel):
    customer_name: Optional[str] = None
    customer_email: str
    customer_phone: Optional[str] = None
    company_name: Optional[str] = None


class TaskSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    title: str
    status: str
    priority: str
    due_date: Optional[date] = None
    due_time: Optional[time] = None
    customer_name: Optional[str] = None
    company_name: Optional[str] = None
    assigned_to: Optional[UUID4] = None


class DashboardStats(BaseModel):
    open_count: int = 0
    in_progress_count: int = 0
    pending_count: int = 0
    completed_today: int = 0
    overdue_count: int = 0
    due_today: int = 0
    urgent_count: int = 0
    total_tasks: int = 0


class DashboardRead(BaseModel):
    stats: DashboardStats
    recent_tasks: List[TaskSummary] = Field(default_factory=list)
    upcoming_tasks: List[TaskSummary] = Field(default_factory=list)
