"""
Tests for the SQL-backed collaborators and the production wiring.

Covers SqlUserDirectory, SqlScheduleAdjuster (return-to-work, leave days
off, day swaps), StoredNotificationSender,
LoggingNotificationSender and create_workflow().
"""

from datetime import date, datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from hr_kernel.domain.approval import DaySwapPair, DesiredStep, SubmissionStatus
from hr_kernel.exceptions import UnresolvedApproversError
from hr_kernel.models.employee import EmployeeModel
from hr_kernel.models.notification import NotificationModel
from hr_kernel.models.schedule import ShiftModel, ShiftStatus
from hr_services import create_workflow
from hr_services.notifications import LoggingNotificationSender, StoredNotificationSender
from hr_services.schedule_adjuster import SqlScheduleAdjuster
from hr_services.user_directory import SqlUserDirectory


def _add_employee(session_factory, role="SUPERVISOR", is_active=True, deleted=False):
    session = session_factory()
    try:
        employee = EmployeeModel(
            full_name="Test Employee",
            role=role,
            is_active=is_active,
            deleted_at=datetime.now(timezone.utc) if deleted else None,
        )
        session.add(employee)
        session.commit()
        return employee.id
    finally:
        session.close()


def _rows(session_factory, model, *criteria):
    session = session_factory()
    try:
        return list(session.scalars(select(model).where(*criteria)).all())
    finally:
        session.close()


def _add_shift(session_factory, user_id, day, status, pattern_ref=None, deleted_at=None):
    session = session_factory()
    try:
        session.add(ShiftModel(
            user_id=user_id,
            shift_date=day,
            status=status.value,
            pattern_ref=pattern_ref,
            deleted_at=deleted_at,
        ))
        session.commit()
    finally:
        session.close()


def _by_date(shifts):
    return {s.shift_date: s.status for s in shifts}


class TestSqlUserDirectory:
    def test_only_active_live_employees_resolve(self, session_factory):
        active = _add_employee(session_factory)
        inactive = _add_employee(session_factory, is_active=False)
        deleted = _add_employee(session_factory, deleted=True)
        unknown = uuid4()

        session = session_factory()
        try:
            found = SqlUserDirectory(session).resolve_existing(
                {active, inactive, deleted, unknown},
            )
        finally:
            session.close()

        assert found == {active}

    def test_empty_input(self, session_factory):
        session = session_factory()
        try:
            assert SqlUserDirectory(session).resolve_existing(set()) == set()
        finally:
            session.close()


class TestSqlScheduleAdjuster:
    def test_creates_work_entry(self, session_factory, captured_logs):
        user_id = uuid4()

        adjustment = SqlScheduleAdjuster(session_factory).upsert_return_to_work_entry(
            user_id, date(2024, 7, 1), "day-shift",
        )

        assert adjustment.action == "created"
        (shift,) = _rows(session_factory, ShiftModel, ShiftModel.user_id == user_id)
        assert shift.id == adjustment.shift_id
        assert shift.status == ShiftStatus.WORK.value
        assert shift.pattern_ref == "day-shift"
        assert any(r["message"] == "return_to_work_scheduled" for r in captured_logs())

    def test_updates_existing_off_day(self, session_factory):
        user_id = uuid4()
        session = session_factory()
        session.add(ShiftModel(
            user_id=user_id,
            shift_date=date(2024, 7, 1),
            status=ShiftStatus.OFF.value,
            pattern_ref="weekend",
        ))
        session.commit()
        session.close()

        adjustment = SqlScheduleAdjuster(session_factory).upsert_return_to_work_entry(
            user_id, date(2024, 7, 1),
        )

        assert adjustment.action == "updated"
        assert adjustment.pattern_ref == "weekend"
        (shift,) = _rows(session_factory, ShiftModel, ShiftModel.user_id == user_id)
        assert shift.status == ShiftStatus.WORK.value

    def test_pattern_replaced_when_given(self, session_factory):
        user_id = uuid4()
        adjuster = SqlScheduleAdjuster(session_factory)
        adjuster.upsert_return_to_work_entry(user_id, date(2024, 7, 1), "early")

        adjustment = adjuster.upsert_return_to_work_entry(user_id, date(2024, 7, 1), "late")

        assert adjustment.pattern_ref == "late"
        assert len(_rows(session_factory, ShiftModel, ShiftModel.user_id == user_id)) == 1

    def test_leave_days_marked_off(self, session_factory, captured_logs):
        user_id = uuid4()
        _add_shift(session_factory, user_id, date(2024, 7, 1), ShiftStatus.WORK, "day-shift")
        _add_shift(session_factory, user_id, date(2024, 7, 2), ShiftStatus.OFF)
        days = [date(2024, 7, 1), date(2024, 7, 2), date(2024, 7, 3)]

        sync = SqlScheduleAdjuster(session_factory).mark_days_off(user_id, days)

        assert (sync.effect, sync.created, sync.updated) == ("leave_days_off", 1, 1)
        assert sync.affected_dates == tuple(days)
        shifts = _rows(session_factory, ShiftModel, ShiftModel.user_id == user_id)
        assert _by_date(shifts) == {d: ShiftStatus.OFF.value for d in days}
        record = next(r for r in captured_logs() if r["message"] == "leave_days_marked_off")
        assert record["created"] == 1
        assert record["updated"] == 1

    def test_marking_off_twice_changes_nothing(self, session_factory):
        user_id = uuid4()
        adjuster = SqlScheduleAdjuster(session_factory)
        adjuster.mark_days_off(user_id, [date(2024, 7, 1), date(2024, 7, 2)])

        again = adjuster.mark_days_off(user_id, [date(2024, 7, 1), date(2024, 7, 2)])

        assert again.changed is False
        assert len(_rows(session_factory, ShiftModel, ShiftModel.user_id == user_id)) == 2

    def test_soft_deleted_shift_ignored(self, session_factory):
        user_id = uuid4()
        _add_shift(
            session_factory, user_id, date(2024, 7, 1), ShiftStatus.WORK,
            deleted_at=datetime(2024, 6, 1, tzinfo=timezone.utc),
        )

        sync = SqlScheduleAdjuster(session_factory).mark_days_off(user_id, [date(2024, 7, 1)])

        assert sync.created == 1
        live = _rows(
            session_factory, ShiftModel,
            ShiftModel.user_id == user_id, ShiftModel.deleted_at.is_(None),
        )
        assert [s.status for s in live] == [ShiftStatus.OFF.value]

    def test_day_swap_applied(self, session_factory, captured_logs):
        user_id = uuid4()
        _add_shift(session_factory, user_id, date(2024, 7, 1), ShiftStatus.WORK, "night")
        _add_shift(session_factory, user_id, date(2024, 7, 2), ShiftStatus.WORK, "early")
        _add_shift(session_factory, user_id, date(2024, 7, 6), ShiftStatus.OFF)
        pairs = [
            DaySwapPair(off_date=date(2024, 7, 2), work_date=date(2024, 7, 6)),
            DaySwapPair(off_date=date(2024, 7, 3), work_date=date(2024, 7, 7)),
        ]

        sync = SqlScheduleAdjuster(session_factory).apply_day_swap(user_id, pairs)

        assert (sync.effect, sync.created, sync.updated) == ("day_swap", 2, 2)
        shifts = {
            s.shift_date: s
            for s in _rows(session_factory, ShiftModel, ShiftModel.user_id == user_id)
        }
        assert shifts[date(2024, 7, 2)].status == ShiftStatus.OFF.value
        assert shifts[date(2024, 7, 2)].pattern_ref is None
        assert shifts[date(2024, 7, 3)].status == ShiftStatus.OFF.value
        assert shifts[date(2024, 7, 6)].status == ShiftStatus.WORK.value
        # The new work day copies the latest earlier work pattern.
        assert shifts[date(2024, 7, 7)].status == ShiftStatus.WORK.value
        assert shifts[date(2024, 7, 7)].pattern_ref == "night"
        assert any(r["message"] == "day_swap_applied" for r in captured_logs())

    def test_swap_already_applied_changes_nothing(self, session_factory):
        user_id = uuid4()
        pair = DaySwapPair(off_date=date(2024, 7, 2), work_date=date(2024, 7, 6))
        adjuster = SqlScheduleAdjuster(session_factory)
        adjuster.apply_day_swap(user_id, [pair])

        again = adjuster.apply_day_swap(user_id, [pair])

        assert again.changed is False

    def test_failure_rolls_back(self, session_factory):
        user_id = uuid4()

        def failing_commit():
            raise RuntimeError("disk full")

        def broken_factory():
            session = session_factory()
            session.commit = failing_commit
            return session

        with pytest.raises(RuntimeError):
            SqlScheduleAdjuster(broken_factory).mark_days_off(user_id, [date(2024, 7, 1)])

        assert _rows(session_factory, ShiftModel, ShiftModel.user_id == user_id) == []


class TestNotificationSenders:
    def test_stored_sender_writes_inbox_row(self, session_factory):
        recipient = uuid4()

        StoredNotificationSender(session_factory).send(
            "LEAVE_APPROVAL_DECIDED",
            recipient,
            {"title": "Leave request approved", "body": "Approved.", "decision": "approved"},
            {"deeplink": "/leave-requests/1"},
        )

        (row,) = _rows(
            session_factory, NotificationModel, NotificationModel.recipient_id == recipient,
        )
        assert row.title == "Leave request approved"
        assert row.payload["decision"] == "approved"
        assert row.deeplink == "/leave-requests/1"
        assert row.read_at is None

    def test_stored_sender_defaults_title(self, session_factory):
        recipient = uuid4()

        StoredNotificationSender(session_factory).send("DAY_SWAP_DECIDED", recipient, {})

        (row,) = _rows(
            session_factory, NotificationModel, NotificationModel.recipient_id == recipient,
        )
        assert row.title == "DAY_SWAP_DECIDED"
        assert row.deeplink is None

    def test_logging_sender(self, captured_logs):
        LoggingNotificationSender().send("DAY_SWAP_DECIDED", uuid4(), {"decision": "x"})

        record = next(r for r in captured_logs() if r["message"] == "notification_logged")
        assert record["event_type"] == "DAY_SWAP_DECIDED"


class TestCreateWorkflow:
    def test_end_to_end_with_sql_collaborators(self, session_factory, hr_config):
        supervisor = _add_employee(session_factory)
        requester = uuid4()
        workflow, notifier = create_workflow(hr_config, session_factory)
        try:
            with pytest.raises(UnresolvedApproversError):
                workflow.create_submission(
                    "leave", requester, [DesiredStep(level=1, approver_user_id=uuid4())],
                )

            submission = workflow.create_submission(
                "leave",
                requester,
                [DesiredStep(level=1, approver_user_id=supervisor)],
                leave_start_date=date(2024, 8, 5),
                leave_end_date=date(2024, 8, 9),
            )
            response = workflow.decide(
                submission.steps[0].step_id, supervisor, "SUPERVISOR", "approved",
            )
            assert notifier.flush(timeout=5.0)
        finally:
            notifier.stop(timeout=5.0)

        assert response.submission.status == SubmissionStatus.APPROVED
        assert response.schedule_adjustment.action == "created"

        assert response.shift_sync.created == 5
        shifts = _rows(session_factory, ShiftModel, ShiftModel.user_id == requester)
        assert _by_date(shifts) == {
            **{date(2024, 8, d): ShiftStatus.OFF.value for d in range(5, 10)},
            date(2024, 8, 10): ShiftStatus.WORK.value,
        }

        notes = _rows(
            session_factory, NotificationModel, NotificationModel.recipient_id == requester,
        )
        by_event = {n.event_type: n for n in notes}
        assert set(by_event) == {"LEAVE_APPROVAL_DECIDED", "SHIFT_LEAVE_ADJUSTMENT"}
        assert by_event["LEAVE_APPROVAL_DECIDED"].deeplink == (
            f"/leave-requests/{submission.submission_id}"
        )
        assert by_event["SHIFT_LEAVE_ADJUSTMENT"].deeplink == "/shifts"

    def test_day_swap_end_to_end(self, session_factory, hr_config):
        requester = uuid4()
        _add_shift(session_factory, requester, date(2024, 8, 1), ShiftStatus.WORK, "early")
        _add_shift(session_factory, requester, date(2024, 8, 5), ShiftStatus.WORK, "early")
        workflow, notifier = create_workflow(hr_config, session_factory)
        try:
            submission = workflow.create_submission(
                "day_swap",
                requester,
                [DesiredStep(level=1, approver_role="HR")],
                swap_pairs=[DaySwapPair(off_date=date(2024, 8, 5), work_date=date(2024, 8, 10))],
            )
            response = workflow.decide(submission.steps[0].step_id, uuid4(), "HR", "approved")
            assert notifier.flush(timeout=5.0)
        finally:
            notifier.stop(timeout=5.0)

        assert response.warnings == ()
        shifts = _rows(session_factory, ShiftModel, ShiftModel.user_id == requester)
        assert _by_date(shifts) == {
            date(2024, 8, 1): ShiftStatus.WORK.value,
            date(2024, 8, 5): ShiftStatus.OFF.value,
            date(2024, 8, 10): ShiftStatus.WORK.value,
        }
        notes = _rows(
            session_factory, NotificationModel, NotificationModel.recipient_id == requester,
        )
        assert {n.event_type for n in notes} == {"DAY_SWAP_DECIDED", "SHIFT_SWAP_ADJUSTMENT"}
