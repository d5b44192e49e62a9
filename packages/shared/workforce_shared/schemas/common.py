from enum import Enum
from typing import Optional
from pydantic import BaseModel

class TaskStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

# Sort rank used by task listings: lower sorts first, unknown priorities last
PRIORITY_RANK: dict[str, int] = {
    TaskPriority.URGENT.value: 1,
    TaskPriority.HIGH.value: 2,
    TaskPriority.MEDIUM.value: 3,
}
DEFAULT_PRIORITY_RANK = 4

# Statuses that take a task out of reminder, overdue and upcoming views
CLOSED_STATUSES: frozenset[str] = frozenset(
    {TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value}
)

class Role(str, Enum):
    ADMIN = "admin"
    EMPLOYEE = "employee"

class ErrorBody(BaseModel):
    code: str
    message: str
    status: int
    details: Optional[dict] = None

class ErrorResponse(BaseModel):
    error: ErrorBody
