# SQLModel definitions, imported so the metadata is populated for create_all.
from .base import CreatedAtMixin, TimestampMixin, UUIDMixin  # noqa: F401
from .user import User  # noqa: F401
from .task import Task  # noqa: F401
from .comment import TaskComment  # noqa: F401
from .attachment import TaskAttachment  # noqa: F401
from .activity_log import ActivityLog  # noqa: F401
