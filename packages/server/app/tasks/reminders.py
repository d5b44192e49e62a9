"""
ARQ background task: deliver due task reminders.

Scheduled every minute. A reminder is sent at most once per task: the
``reminder_sent`` flag is flipped only after the channel confirms delivery,
and each flip is committed before the next task is handled.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

import structlog
from arq import cron
from arq.connections import RedisSettings
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.database import get_session_context
from app.core.logging_setup import configure_logging
from app.core.messaging import TelegramChannel
from app.repositories.tasks import TaskRepository
from app.services.notifications import NotificationDispatcher
from workforce_shared.schemas.users import UserContact

log = structlog.get_logger()


@dataclass
class SweepResult:
    due: int = 0
    sent: int = 0
    skipped: int = 0  # no assignee, or assignee has no channel identity
    failed: int = 0


async def sweep_due_reminders(
    session: AsyncSession,
    dispatcher: NotificationDispatcher,
    now: datetime,
) -> SweepResult:
    """Send every due reminder once. ``now`` is wall-clock time in the deployment zone."""
    repo = TaskRepository(session)
    due = await repo.due_reminders(now.date(), now.time().replace(tzinfo=None))
    result = SweepResult(due=len(due))

    for task, assignee in due:
        if assignee is None or not assignee.telegram_id:
            result.skipped += 1
            continue

        sent = await dispatcher.notify_reminder(task, UserContact.model_validate(assignee))
        if not sent:
            result.failed += 1
            continue

        if await repo.mark_reminder_sent(task.id):
            result.sent += 1
        await session.commit()

    if result.due:
        log.info(
            "reminders.sweep_complete",
            due=result.due,
            sent=result.sent,
            skipped=result.skipped,
            failed=result.failed,
        )
    return result


async def process_task_reminders(ctx: dict) -> Optional[SweepResult]:
    """Cron entry point. Failures are logged; the next run retries."""
    settings = get_settings()
    now = datetime.now(timezone.utc).astimezone(ZoneInfo(settings.timezone))
    try:
        async with get_session_context() as session:
            return await sweep_due_reminders(session, ctx["dispatcher"], now)
    except Exception as exc:
        log.error("reminders.sweep_failed", error=repr(exc))
        return None


async def startup(ctx: dict) -> None:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    channel = None
    if settings.telegram_enabled and settings.telegram_bot_token:
        channel = TelegramChannel(
            settings.telegram_bot_token,
            api_url=settings.telegram_api_url,
            request_timeout=settings.telegram_timeout_seconds,
        )
        await channel.open()
    else:
        log.info("reminders.channel_disabled")

    ctx["channel"] = channel
    ctx["dispatcher"] = NotificationDispatcher(
        channel,
        ops_chat_id=settings.telegram_ops_chat_id,
        send_timeout=settings.telegram_timeout_seconds,
    )
    log.info("reminders.worker_started", timezone=settings.timezone)


async def shutdown(ctx: dict) -> None:
    channel = ctx.get("channel")
    if channel is not None:
        await channel.close()
    log.info("reminders.worker_stopped")


# ARQ worker settings
class WorkerSettings:
    """ARQ worker configuration."""

    functions = [process_task_reminders]
    cron_jobs = [
        # Run every minute
        cron(process_task_reminders, second=0, run_at_startup=True),
    ]
    on_startup = startup
    on_shutdown = shutdown
    redis_settings = RedisSettings.from_dsn(get_settings().redis_url)
