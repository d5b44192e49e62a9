"""
Task notifications over the messaging channel.

Every ``notify_*`` method returns True only when the channel confirmed
delivery. Failures of any kind are logged and reported as False; nothing is
retried and nothing is raised to the caller.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, time
from html import escape
from typing import Any, Optional

import structlog

from app.core.messaging import MessagingChannel
from workforce_shared.schemas.users import UserContact

log = structlog.get_logger()

DIVIDER = "━━━━━━━━━━━━━━━━━━"


def _text(value: Any, default: str = "N/A") -> str:
    if value is None or value == "":
        return default
    return escape(str(value))


def _format_due(due_date: Optional[date], due_time: Optional[time] = None) -> str:
    if due_date is None:
        return "No due date"
    label = due_date.strftime("%a, %b %d")
    if due_time is not None:
        label += due_time.strftime(" %H:%M")
    return label


class NotificationDispatcher:
    """Formats task messages and sends them through a ``MessagingChannel``.

    ``channel`` is None when messaging is disabled; every notification is
    then a no-op returning False. ``ops_chat_id`` is the fixed operations
    channel for completion and verification messages.
    """

    def __init__(
        self,
        channel: Optional[MessagingChannel],
        ops_chat_id: Optional[str] = None,
        send_timeout: Optional[float] = None,
    ):
        self.channel = channel
        self.ops_chat_id = ops_chat_id or None
        self.send_timeout = send_timeout

    async def _send(self, kind: str, recipient: str, message: str) -> bool:
        if self.channel is None:
            log.info("notifications.channel_disabled", kind=kind)
            return False
        try:
            if self.send_timeout:
                sent = await asyncio.wait_for(
                    self.channel.send(recipient, message), self.send_timeout
                )
            else:
                sent = await self.channel.send(recipient, message)
        except asyncio.TimeoutError:
            log.warning("notifications.send_timeout", kind=kind, recipient=recipient)
            return False
        except Exception as e:
            log.warning("notifications.send_failed", kind=kind, recipient=recipient, error=str(e))
            return False

        if sent:
            log.info("notifications.sent", kind=kind, recipient=recipient)
        else:
            log.warning("notifications.not_delivered", kind=kind, recipient=recipient)
        return bool(sent)

    # ------------------------------------------------------------------
    # Assignee messages
    # ------------------------------------------------------------------

    async def notify_assignment(
        self, task: Any, assignee: UserContact, assigner: Optional[str]
    ) -> bool:
        if not assignee.telegram_id:
            log.info("notifications.assignee_unreachable", kind="assignment", user_id=str(assignee.id))
            return False

        message = (
            "📋 <b>NEW TASK ASSIGNED</b>\n\n"
            f"📌 <b>{_text(task.title)}</b>\n"
            f"{DIVIDER}\n"
            f"👤 Customer: {_text(task.customer_name)}\n"
            f"🏢 Company: {_text(task.company_name)}\n"
            f"📅 Due: {_format_due(task.due_date, task.due_time)}\n"
            f"⚡ Priority: {_text(task.priority).upper()}\n"
            f"👨‍💼 Assigned by: {_text(assigner, 'System')}\n\n"
            f"📝 {_text(task.description, 'No description')}"
        )
        return await self._send("assignment", assignee.telegram_id, message)

    async def notify_reminder(self, task: Any, assignee: UserContact) -> bool:
        if not assignee.telegram_id:
            log.info("notifications.assignee_unreachable", kind="reminder", user_id=str(assignee.id))
            return False

        message = (
            "🔔 <b>TASK REMINDER</b>\n\n"
            f"📋 <b>{_text(task.title)}</b>\n"
            f"{DIVIDER}\n"
            f"👤 Customer: {_text(task.customer_name)}\n"
            f"🏢 Company: {_text(task.company_name)}\n"
            f"📧 Email: {_text(task.customer_email)}\n"
            f"📅 Due: {_format_due(task.due_date, task.due_time)}\n"
            f"⚡ Priority: {_text(task.priority).upper()}\n\n"
            f"📝 {_text(task.description, 'No description')}\n\n"
            "<i>Please complete this task on time.</i>"
        )
        return await self._send("reminder", assignee.telegram_id, message)

    # ------------------------------------------------------------------
    # Operations channel messages
    # ------------------------------------------------------------------

    async def notify_completion(
        self, task: Any, completer: Optional[str], completed_at: Optional[datetime] = None
    ) -> bool:
        if not self.ops_chat_id:
            log.info("notifications.ops_channel_unconfigured", kind="completion")
            return False

        completed_at = completed_at or task.completed_at
        when = completed_at.strftime("%b %d, %Y %H:%M") if completed_at else "N/A"
        email_line = (
            "📨 Customer completion email requested"
            if task.send_completion_email
            else "📭 No customer completion email"
        )
        message = (
            "✅ <b>TASK COMPLETED</b>\n\n"
            f"📋 <b>{_text(task.title)}</b>\n"
            f"{DIVIDER}\n"
            f"👤 Customer: {_text(task.customer_name)}\n"
            f"🏢 Company: {_text(task.company_name)}\n"
            f"📧 Email: {_text(task.customer_email)}\n"
            f"✔️ Completed by: {_text(completer, 'Unknown')}\n"
            f"📅 Completed: {when}\n"
            f"{email_line}\n\n"
            f"📝 Resolution: {_text(task.resolution_notes, 'No notes added')}"
        )
        return await self._send("completion", self.ops_chat_id, message)

    async def notify_verification_code(
        self, email: str, code: str, requested_by: Optional[str], ttl_minutes: int = 15
    ) -> bool:
        if not self.ops_chat_id:
            log.info("notifications.ops_channel_unconfigured", kind="verification")
            return False

        message = (
            "📧 <b>EMAIL VERIFICATION</b>\n\n"
            f"Email: <code>{_text(email)}</code>\n"
            f"Verification Code: <code>{escape(code)}</code>\n\n"
            f"<i>Code expires in {ttl_minutes} minutes</i>\n"
            f"<i>Requested by: {_text(requested_by, 'Unknown')}</i>"
        )
        return await self._send("verification", self.ops_chat_id, message)
