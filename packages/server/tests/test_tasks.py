"""
Tests for the task workflow service.

Tests cover:
- Creation defaults, the email verification gate and atomic multi-step create
- Access rules: employees only reach tasks assigned to them
- Listing filters and ordering
- Partial updates, status changes and completion stamps
- Optimistic concurrency on task writes
- Comments, attachments, deletion and the customer/dashboard/calendar views
"""

from __future__ import annotations

import uuid
from datetime import date, time

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from app.core.errors import (
    ConflictError,
    DependencyFailure,
    Forbidden,
    NotFound,
    ValidationError,
    VerificationRequired,
)
from app.core.events import NotificationOutbox
from app.models.activity_log import ActivityLog
from app.models.comment import TaskComment
from app.services.tasks import TaskWorkflow
from workforce_shared.schemas.common import TaskPriority, TaskStatus
from workforce_shared.schemas.tasks import AttachmentCreate, TaskCreate, TaskFilters, TaskUpdate

from .conftest import OPS_CHAT


async def make_task(workflow, caller, title="Fix printer", **fields):
    return await workflow.create_task(caller, TaskCreate(title=title, **fields))


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateTask:
    async def test_defaults(self, workflow, admin):
        task = await make_task(workflow, admin)
        assert task.status == TaskStatus.OPEN.value
        assert task.priority == TaskPriority.MEDIUM.value
        assert task.send_completion_email is True
        assert task.reminder_sent is False
        assert task.created_by == admin.id

        detail = await workflow.get_task(admin, task.id)
        assert [c.comment for c in detail.comments] == ["Task created"]
        assert detail.comments[0].is_system_message is True

    async def test_explicit_false_completion_email_is_kept(self, workflow, admin):
        task = await make_task(workflow, admin, send_completion_email=False)
        assert task.send_completion_email is False

    @pytest.mark.parametrize("title", [None, "", "   "])
    async def test_title_required(self, workflow, admin, title):
        with pytest.raises(ValidationError):
            await workflow.create_task(admin, TaskCreate(title=title))

    async def test_unknown_assignee(self, workflow, admin):
        with pytest.raises(NotFound):
            await make_task(workflow, admin, assigned_to=uuid.uuid4())

    async def test_writes_activity_log(self, workflow, admin, session):
        await make_task(workflow, admin, title="Replace toner")
        rows = (await session.execute(select(ActivityLog))).scalars().all()
        assert [(r.action_type, r.action_details) for r in rows] == [
            ("create_task", "Created task: Replace toner")
        ]

    async def test_attachments_persisted_with_default_names(self, workflow, admin):
        task = await make_task(
            workflow,
            admin,
            attachments=[
                AttachmentCreate(drive_link="https://drive.example.com/f/1"),
                AttachmentCreate(file_url="https://files.example.com/docs/quote.pdf"),
            ],
        )
        detail = await workflow.get_task(admin, task.id)
        assert sorted(a.file_name for a in detail.attachments) == ["Drive Link", "quote.pdf"]

    async def test_invalid_attachment_rejects_whole_create(self, workflow, admin):
        with pytest.raises(ValidationError):
            await make_task(workflow, admin, attachments=[AttachmentCreate(file_name="x")])
        assert await workflow.list_tasks(admin) == []

    async def test_assignment_notification_sent_after_commit(
        self, workflow, admin, employee, outbox, channel
    ):
        await make_task(workflow, admin, title="Visit <Acme>", assigned_to=employee.id)
        assert channel.sent == []
        assert await outbox.drain() == 1
        [message] = channel.to("1001")
        assert "NEW TASK ASSIGNED" in message
        assert "Visit &lt;Acme&gt;" in message
        assert "Ada Admin" in message

    async def test_notification_failure_does_not_fail_create(
        self, workflow, admin, employee, outbox, channel
    ):
        channel.error = RuntimeError("telegram down")
        task = await make_task(workflow, admin, assigned_to=employee.id)
        assert await outbox.drain() == 1
        assert (await workflow.get_task(admin, task.id)).id == task.id

    async def test_full_outbox_does_not_fail_create(
        self, session, challenges, dispatcher, settings, clock, admin, employee
    ):
        outbox = NotificationOutbox(dispatcher, max_size=1)
        workflow = TaskWorkflow(session, challenges, outbox, settings=settings, clock=clock)
        await make_task(workflow, admin, title="first", assigned_to=employee.id)
        await make_task(workflow, admin, title="second", assigned_to=employee.id)
        assert outbox.pending == 1
        assert sorted(t.title for t in await workflow.list_tasks(admin)) == ["first", "second"]


class TestVerificationGate:
    async def test_unverified_email_blocks_create(self, workflow, admin):
        with pytest.raises(VerificationRequired) as exc:
            await make_task(workflow, admin, customer_email="cust@acme.com", verify_email=True)
        assert exc.value.details == {"requires_verification": True}
        assert await workflow.list_tasks(admin) == []

    async def test_no_email_skips_gate(self, workflow, admin):
        task = await make_task(workflow, admin, verify_email=True)
        assert task.id

    async def test_gate_not_requested(self, workflow, admin):
        task = await make_task(workflow, admin, customer_email="cust@acme.com")
        assert task.customer_email == "cust@acme.com"

    async def test_issue_confirm_create_scenario(self, workflow, admin):
        code = await workflow.request_email_verification(admin, "cust@acme.com")
        await workflow.confirm_email_verification("cust@acme.com", code)

        task = await make_task(workflow, admin, customer_email="cust@acme.com", verify_email=True)
        assert task.status == "open"
        assert task.reminder_sent is False
        detail = await workflow.get_task(admin, task.id)
        assert any(c.comment == "Task created" and c.is_system_message for c in detail.comments)

    async def test_verification_expires_for_create(self, workflow, admin, clock):
        code = await workflow.request_email_verification(admin, "cust@acme.com")
        await workflow.confirm_email_verification("cust@acme.com", code)
        clock.advance(minutes=16)
        with pytest.raises(VerificationRequired):
            await make_task(workflow, admin, customer_email="cust@acme.com", verify_email=True)

    async def test_request_sends_code_to_ops_channel(self, workflow, admin, outbox, channel):
        code = await workflow.request_email_verification(admin, "Cust@Acme.com")
        await outbox.drain()
        [message] = channel.to(OPS_CHAT)
        assert "EMAIL VERIFICATION" in message
        assert code in message
        assert "cust@acme.com" in message

    @pytest.mark.parametrize("email", [None, "", "not-an-email"])
    async def test_request_requires_email(self, workflow, admin, email):
        with pytest.raises(ValidationError):
            await workflow.request_email_verification(admin, email)

    async def test_confirm_requires_code(self, workflow):
        with pytest.raises(ValidationError):
            await workflow.confirm_email_verification("cust@acme.com", "")


# ---------------------------------------------------------------------------
# Access and listing
# ---------------------------------------------------------------------------


class TestAccess:
    async def test_employee_only_lists_own_tasks(
        self, workflow, admin, worker, employee, unreachable_employee
    ):
        mine = await make_task(workflow, admin, title="Mine", assigned_to=employee.id)
        await make_task(workflow, admin, title="Theirs", assigned_to=unreachable_employee.id)
        await make_task(workflow, admin, title="Nobody's")

        tasks = await workflow.list_tasks(worker)
        assert [t.id for t in tasks] == [mine.id]

        # an assignee filter cannot widen the scope
        tasks = await workflow.list_tasks(
            worker, TaskFilters(assigned_to=unreachable_employee.id)
        )
        assert [t.id for t in tasks] == [mine.id]

    async def test_admin_lists_everything(self, workflow, admin, employee):
        await make_task(workflow, admin, assigned_to=employee.id)
        await make_task(workflow, admin)
        assert len(await workflow.list_tasks(admin)) == 2

    async def test_employee_cannot_read_other_task(self, workflow, admin, worker):
        task = await make_task(workflow, admin)
        with pytest.raises(Forbidden):
            await workflow.get_task(worker, task.id)

    async def test_missing_task(self, workflow, admin, worker):
        with pytest.raises(NotFound):
            await workflow.get_task(admin, uuid.uuid4())
        # employees cannot tell missing from not theirs
        with pytest.raises(Forbidden):
            await workflow.get_task(worker, uuid.uuid4())

    async def test_employee_cannot_modify_other_task(self, workflow, admin, worker):
        task = await make_task(workflow, admin)
        with pytest.raises(Forbidden):
            await workflow.update_task(worker, task.id, TaskUpdate(title="Mine now"))
        with pytest.raises(Forbidden):
            await workflow.set_status(worker, task.id, TaskStatus.COMPLETED)
        with pytest.raises(Forbidden):
            await workflow.add_comment(worker, task.id, "hello")


class TestListing:
    async def test_ordering(self, workflow, admin):
        await make_task(workflow, admin, title="low", priority=TaskPriority.LOW)
        await make_task(workflow, admin, title="medium-12", due_date=date(2026, 3, 12))
        await make_task(
            workflow, admin, title="urgent", priority=TaskPriority.URGENT, due_date=date(2026, 3, 15)
        )
        await make_task(workflow, admin, title="high", priority=TaskPriority.HIGH)
        await make_task(workflow, admin, title="medium-none")
        await make_task(workflow, admin, title="medium-11", due_date=date(2026, 3, 11))

        titles = [t.title for t in await workflow.list_tasks(admin)]
        assert titles == ["urgent", "high", "medium-11", "medium-12", "medium-none", "low"]

    async def test_newest_first_within_same_priority_and_due(self, workflow, admin):
        await make_task(workflow, admin, title="older")
        await make_task(workflow, admin, title="newer")
        titles = [t.title for t in await workflow.list_tasks(admin)]
        assert titles == ["newer", "older"]

    async def test_filters(self, workflow, admin):
        await make_task(
            workflow, admin, title="Printer jam", customer_name="Jane", company_name="ACME Corp",
            due_date=date(2026, 3, 5),
        )
        await make_task(
            workflow, admin, title="Router reset", description="printer in hallway",
            company_name="Globex", priority=TaskPriority.HIGH, due_date=date(2026, 3, 20),
        )

        by_customer = await workflow.list_tasks(admin, TaskFilters(customer="acme"))
        assert [t.title for t in by_customer] == ["Printer jam"]

        by_search = await workflow.list_tasks(admin, TaskFilters(search="PRINTER"))
        assert {t.title for t in by_search} == {"Printer jam", "Router reset"}

        by_priority = await workflow.list_tasks(admin, TaskFilters(priority=TaskPriority.HIGH))
        assert [t.title for t in by_priority] == ["Router reset"]

        by_range = await workflow.list_tasks(
            admin, TaskFilters(from_date=date(2026, 3, 1), to_date=date(2026, 3, 10))
        )
        assert [t.title for t in by_range] == ["Printer jam"]

        by_status = await workflow.list_tasks(admin, TaskFilters(status=TaskStatus.COMPLETED))
        assert by_status == []

    async def test_substring_filters_match_wildcards_literally(self, workflow, admin):
        await make_task(workflow, admin, title="50% off promo", company_name="Acme_Ltd")
        await make_task(workflow, admin, title="500 units", company_name="AcmeXLtd")
        await make_task(workflow, admin, title="Path C:\\temp", company_name="Other")

        by_search = await workflow.list_tasks(admin, TaskFilters(search="50%"))
        assert [t.title for t in by_search] == ["50% off promo"]

        by_customer = await workflow.list_tasks(admin, TaskFilters(customer="acme_"))
        assert [t.title for t in by_customer] == ["50% off promo"]

        by_backslash = await workflow.list_tasks(admin, TaskFilters(search="c:\\t"))
        assert [t.title for t in by_backslash] == ["Path C:\\temp"]


# ---------------------------------------------------------------------------
# Update and status
# ---------------------------------------------------------------------------


class TestUpdateTask:
    async def test_partial_update_keeps_absent_fields(self, workflow, admin):
        task = await make_task(workflow, admin, description="Paper tray", category="hardware")
        updated = await workflow.update_task(admin, task.id, TaskUpdate(title="Fix printer 2"))
        assert updated.title == "Fix printer 2"
        assert updated.description == "Paper tray"
        assert updated.category == "hardware"
        assert updated.version == 2

    async def test_explicit_null_clears_optional_field(self, workflow, admin):
        task = await make_task(workflow, admin, description="Paper tray")
        updated = await workflow.update_task(admin, task.id, TaskUpdate(description=None))
        assert updated.description is None

    async def test_required_fields_cannot_be_nulled(self, workflow, admin):
        task = await make_task(workflow, admin)
        with pytest.raises(ValidationError):
            await workflow.update_task(admin, task.id, TaskUpdate(title=None))
        with pytest.raises(ValidationError):
            await workflow.update_task(admin, task.id, TaskUpdate(priority=None))

    async def test_assignee_can_update_own_task(self, workflow, admin, worker, employee):
        task = await make_task(workflow, admin, assigned_to=employee.id)
        updated = await workflow.update_task(
            worker, task.id, TaskUpdate(resolution_notes="waiting on parts")
        )
        assert updated.resolution_notes == "waiting on parts"

    async def test_reassignment_comments_and_notifies(
        self, workflow, admin, employee, unreachable_employee, outbox, channel
    ):
        task = await make_task(workflow, admin, assigned_to=unreachable_employee.id)
        await outbox.drain()

        await workflow.update_task(admin, task.id, TaskUpdate(assigned_to=employee.id))
        detail = await workflow.get_task(admin, task.id)
        assert [c.comment for c in detail.comments] == ["Task created", "Task reassigned"]

        await outbox.drain()
        assert len(channel.to("1001")) == 1

    async def test_reassign_to_unknown_user(self, workflow, admin):
        task = await make_task(workflow, admin)
        with pytest.raises(NotFound):
            await workflow.update_task(admin, task.id, TaskUpdate(assigned_to=uuid.uuid4()))


class TestSetStatus:
    async def test_completion_stamps_and_notifies(
        self, workflow, admin, worker, employee, outbox, channel
    ):
        task = await make_task(workflow, admin, assigned_to=employee.id)
        await outbox.drain()

        done = await workflow.set_status(worker, task.id, TaskStatus.COMPLETED, "Replaced fuser")
        assert done.status == "completed"
        assert done.completed_at is not None
        assert done.completed_by == worker.id
        assert done.resolution_notes == "Replaced fuser"

        detail = await workflow.get_task(worker, task.id)
        assert detail.comments[-1].comment == "Status changed from open to completed"
        assert detail.comments[-1].is_system_message

        await outbox.drain()
        [message] = channel.to(OPS_CHAT)
        assert "TASK COMPLETED" in message
        assert "Eve Employee" in message
        assert "Replaced fuser" in message

    async def test_other_status_leaves_completion_fields(self, workflow, admin):
        task = await make_task(workflow, admin)
        await workflow.set_status(admin, task.id, TaskStatus.COMPLETED)
        reopened = await workflow.set_status(admin, task.id, TaskStatus.IN_PROGRESS)
        assert reopened.status == "in_progress"
        assert reopened.completed_at is not None
        assert reopened.completed_by == admin.id

    async def test_status_never_completed_has_no_stamps(self, workflow, admin):
        task = await make_task(workflow, admin)
        pending = await workflow.set_status(admin, task.id, TaskStatus.PENDING)
        assert pending.completed_at is None
        assert pending.completed_by is None

    async def test_any_transition_allowed(self, workflow, admin):
        task = await make_task(workflow, admin)
        for status in (TaskStatus.CANCELLED, TaskStatus.OPEN, TaskStatus.PENDING, TaskStatus.OPEN):
            task = await workflow.set_status(admin, task.id, status)
            assert task.status == status.value

    async def test_same_status_adds_no_comment(self, workflow, admin):
        task = await make_task(workflow, admin)
        await workflow.set_status(admin, task.id, TaskStatus.OPEN)
        detail = await workflow.get_task(admin, task.id)
        assert [c.comment for c in detail.comments] == ["Task created"]

    async def test_lost_race_retries_then_conflicts(self, workflow, admin, monkeypatch):
        task = await make_task(workflow, admin)
        calls = []

        async def always_stale(task_id, version, values):
            calls.append(version)
            return False

        monkeypatch.setattr(workflow.repo, "update_fields", always_stale)
        with pytest.raises(ConflictError):
            await workflow.set_status(admin, task.id, TaskStatus.COMPLETED)
        assert len(calls) == 3

    async def test_lost_race_recovers(self, workflow, admin, monkeypatch):
        task = await make_task(workflow, admin)
        real = workflow.repo.update_fields
        calls = []

        async def stale_once(task_id, version, values):
            calls.append(version)
            if len(calls) == 1:
                return False
            return await real(task_id, version, values)

        monkeypatch.setattr(workflow.repo, "update_fields", stale_once)
        done = await workflow.set_status(admin, task.id, TaskStatus.COMPLETED)
        assert done.status == "completed"
        assert done.version == 2
        assert len(calls) == 2

    async def test_version_guards_stale_writes(self, workflow, admin):
        task = await make_task(workflow, admin)
        assert await workflow.repo.update_fields(task.id, 1, {"status": "pending"})
        assert not await workflow.repo.update_fields(task.id, 1, {"status": "completed"})


# ---------------------------------------------------------------------------
# Comments, attachments, delete
# ---------------------------------------------------------------------------


class TestCommentsAndAttachments:
    @pytest.mark.parametrize("text", [None, "", "  \n "])
    async def test_empty_comment_rejected(self, workflow, admin, text):
        task = await make_task(workflow, admin)
        with pytest.raises(ValidationError):
            await workflow.add_comment(admin, task.id, text)

    async def test_comment_is_trimmed_user_message(self, workflow, admin, worker, employee):
        task = await make_task(workflow, admin, assigned_to=employee.id)
        comment = await workflow.add_comment(worker, task.id, "  On my way  ")
        assert comment.comment == "On my way"
        assert comment.is_system_message is False
        assert comment.user_id == worker.id

    async def test_comments_oldest_first_attachments_newest_first(self, workflow, admin):
        task = await make_task(workflow, admin)
        await workflow.add_comment(admin, task.id, "first")
        await workflow.add_comment(admin, task.id, "second")
        await workflow.add_attachment(admin, task.id, AttachmentCreate(file_name="a.png", file_url="https://f/a.png"))
        await workflow.add_attachment(admin, task.id, AttachmentCreate(file_name="b.png", file_url="https://f/b.png"))

        detail = await workflow.get_task(admin, task.id)
        assert [c.comment for c in detail.comments] == ["Task created", "first", "second"]
        assert [a.file_name for a in detail.attachments] == ["b.png", "a.png"]

    async def test_attachment_needs_url_or_link(self, workflow, admin):
        task = await make_task(workflow, admin)
        with pytest.raises(ValidationError):
            await workflow.add_attachment(admin, task.id, AttachmentCreate(file_name="orphan.pdf"))

    async def test_link_only_attachment_name(self, workflow, admin):
        task = await make_task(workflow, admin)
        attachment = await workflow.add_attachment(
            admin, task.id, AttachmentCreate(drive_link="https://drive.example.com/x")
        )
        assert attachment.file_name == "Drive Link"
        assert attachment.uploaded_by == admin.id


class TestDeleteTask:
    async def test_employee_cannot_delete(self, workflow, admin, worker, employee):
        task = await make_task(workflow, admin, assigned_to=employee.id)
        with pytest.raises(Forbidden):
            await workflow.delete_task(worker, task.id)

    async def test_delete_cascades(self, workflow, admin, session):
        task = await make_task(workflow, admin)
        await workflow.add_comment(admin, task.id, "note")
        await workflow.add_attachment(admin, task.id, AttachmentCreate(drive_link="https://d/1"))

        await workflow.delete_task(admin, task.id)

        with pytest.raises(NotFound):
            await workflow.get_task(admin, task.id)
        comments = (await session.execute(select(TaskComment))).scalars().all()
        assert comments == []
        actions = (await session.execute(select(ActivityLog.action_type))).scalars().all()
        assert sorted(actions) == ["create_task", "delete_task"]

    async def test_delete_missing(self, workflow, admin):
        with pytest.raises(NotFound):
            await workflow.delete_task(admin, uuid.uuid4())


class TestStorageFailure:
    async def test_storage_error_becomes_dependency_failure(self, workflow, admin, monkeypatch):
        async def broken(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(workflow.repo, "list", broken)
        with pytest.raises(DependencyFailure) as exc:
            await workflow.list_tasks(admin)
        assert "connection refused" not in exc.value.message


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


class TestViews:
    async def test_customers_distinct_latest_wins(self, workflow, admin):
        await make_task(workflow, admin, customer_name="Jane", customer_email="jane@acme.com")
        await make_task(
            workflow, admin, customer_name="Jane Doe", customer_email="jane@acme.com",
            company_name="ACME",
        )
        await make_task(workflow, admin, customer_name="Bob", customer_email="bob@globex.com")
        await make_task(workflow, admin, customer_name="No email")

        customers = await workflow.list_customers(admin)
        assert [(c.customer_name, c.company_name) for c in customers] == [
            ("Bob", None),
            ("Jane Doe", "ACME"),
        ]

    async def test_dashboard(self, workflow, admin, worker, employee):
        # clock is 2026-03-10 09:00 UTC
        await make_task(workflow, admin, title="overdue", due_date=date(2026, 3, 9), assigned_to=employee.id)
        today = await make_task(workflow, admin, title="today", due_date=date(2026, 3, 10))
        await workflow.set_status(admin, today.id, TaskStatus.IN_PROGRESS)
        urgent = await make_task(workflow, admin, title="urgent", priority=TaskPriority.URGENT, due_date=date(2026, 3, 12))
        await workflow.set_status(admin, urgent.id, TaskStatus.PENDING)
        done = await make_task(workflow, admin, title="done", due_date=date(2026, 3, 1))
        await workflow.set_status(admin, done.id, TaskStatus.COMPLETED)
        cancelled = await make_task(workflow, admin, title="cancelled", due_date=date(2026, 3, 11))
        await workflow.set_status(admin, cancelled.id, TaskStatus.CANCELLED)

        board = await workflow.dashboard(admin)
        stats = board.stats
        assert stats.open_count == 1
        assert stats.in_progress_count == 1
        assert stats.pending_count == 1
        assert stats.completed_today == 1
        assert stats.overdue_count == 1
        assert stats.due_today == 1
        assert stats.urgent_count == 1
        assert stats.total_tasks == 5
        assert len(board.recent_tasks) == 5
        assert [t.title for t in board.upcoming_tasks] == ["today", "urgent"]

        mine = await workflow.dashboard(worker)
        assert mine.stats.total_tasks == 1
        assert mine.stats.overdue_count == 1
        assert [t.title for t in mine.recent_tasks] == ["overdue"]
        assert mine.upcoming_tasks == []

    async def test_calendar_month(self, workflow, admin):
        await make_task(workflow, admin, title="early", due_date=date(2026, 3, 1))
        await make_task(workflow, admin, title="late", due_date=date(2026, 3, 31), priority=TaskPriority.HIGH)
        await make_task(workflow, admin, title="april", due_date=date(2026, 4, 1))
        gone = await make_task(workflow, admin, title="gone", due_date=date(2026, 3, 15))
        await workflow.set_status(admin, gone.id, TaskStatus.CANCELLED)

        tasks = await workflow.calendar(admin, month="2026-03")
        assert [t.title for t in tasks] == ["early", "late"]

    async def test_calendar_range_and_scope(self, workflow, admin, worker, employee):
        await make_task(workflow, admin, title="mine", due_date=date(2026, 3, 5), assigned_to=employee.id)
        await make_task(workflow, admin, title="other", due_date=date(2026, 3, 6))

        tasks = await workflow.calendar(worker, from_date=date(2026, 3, 1), to_date=date(2026, 3, 31))
        assert [t.title for t in tasks] == ["mine"]

    async def test_calendar_defaults_to_current_month(self, workflow, admin):
        await make_task(workflow, admin, title="this month", due_date=date(2026, 3, 20))
        await make_task(workflow, admin, title="next month", due_date=date(2026, 4, 2))
        assert [t.title for t in await workflow.calendar(admin)] == ["this month"]

    @pytest.mark.parametrize("month", ["2026-13", "March", "2026/03"])
    async def test_calendar_bad_month(self, workflow, admin, month):
        with pytest.raises(ValidationError):
            await workflow.calendar(admin, month=month)

    async def test_reminder_fields_round_trip(self, workflow, admin):
        task = await make_task(
            workflow, admin, reminder_date=date(2026, 3, 10), reminder_time=time(8, 30)
        )
        detail = await workflow.get_task(admin, task.id)
        assert detail.reminder_date == date(2026, 3, 10)
        assert detail.reminder_time == time(8, 30)
        assert detail.reminder_sent is False
