"""
hr_services.side_effects -- Post-commit reactions to final decisions.

Responsibility:
    When a decision moves a submission from pending to approved or
    rejected, notify the requester.  On approval, also rewrite the
    requester's schedule as the kind is configured to:

    - ``leave_days_off``: every leave day becomes an OFF day;
    - ``day_swap``: each off date becomes OFF, each replacement date WORK;
    - ``return_to_work``: the day after the leave becomes a WORK day.

    A schedule rewrite that changed anything is reported to the requester
    with a second notification.

Architecture position:
    Services layer.  Runs strictly after the decision transaction has
    committed; nothing here can roll a decision back.

Failure modes:
    - Never raises for collaborator failures.  Each failure is logged and
      returned as a ``SideEffectWarning``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from hr_config.schema import HRConfig, KindConfig, ScheduleSync
from hr_engines.approval import leave_days, return_to_work_date
from hr_kernel.domain.approval import (
    DecisionOutcome,
    ReturnShiftRequest,
    ScheduleAdjuster,
    ScheduleAdjustment,
    ShiftSync,
    SideEffectWarning,
    Submission,
    SubmissionStatus,
)
from hr_kernel.logging_config import get_logger
from hr_services.notification_dispatch import NotificationDispatcher, NotificationMessage

logger = get_logger("services.side_effects")

EFFECT_NOTIFICATION = "notification"
EFFECT_RETURN_TO_WORK = "return_to_work"


@dataclass(frozen=True)
class SideEffectReport:
    """What the post-commit side effects did for one decision."""

    schedule_adjustment: ScheduleAdjustment | None = None
    shift_sync: ShiftSync | None = None
    warnings: tuple[SideEffectWarning, ...] = ()


def build_notification(outcome: DecisionOutcome, kind: KindConfig) -> NotificationMessage:
    """Requester notification for a final decision."""
    event = outcome.event
    decision = event.decision.value
    payload: dict[str, Any] = {
        "decision": decision,
        "note": event.note,
        "approval_level": event.level,
        "submission_status": event.submission_status.value,
        "related_table": kind.related_table,
        "related_id": str(event.submission_id),
        "title": f"{kind.title} {decision}",
        "body": f"Your {kind.title.lower()} has been {decision}.",
    }
    return NotificationMessage(
        event_type=kind.notification_event,
        recipient_user_id=event.requester_id,
        payload=payload,
        options={"deeplink": kind.deeplink(event.submission_id)},
    )


def build_shift_notification(
    submission: Submission,
    sync: ShiftSync,
    kind: KindConfig,
    deeplink: str,
) -> NotificationMessage:
    """Requester notification for a schedule rewrite."""
    first = min(sync.affected_dates)
    last = max(sync.affected_dates)
    period = first.isoformat() if first == last else f"{first.isoformat()} - {last.isoformat()}"
    return NotificationMessage(
        event_type=kind.schedule_notification_event,
        recipient_user_id=submission.requester_id,
        payload={
            "period_start": first.isoformat(),
            "period_end": last.isoformat(),
            "created_shifts": sync.created,
            "updated_shifts": sync.updated,
            "related_table": kind.related_table,
            "related_id": str(submission.submission_id),
            "title": "Work schedule updated",
            "body": f"Your schedule for {period} was adjusted for your {kind.title.lower()}.",
        },
        options={"deeplink": deeplink},
    )


class SideEffectDispatcher:
    """Runs notification and schedule side effects for one decision."""

    def __init__(
        self,
        config: HRConfig,
        notifier: NotificationDispatcher,
        schedule_adjuster: ScheduleAdjuster | None = None,
    ):
        self._config = config
        self._notifier = notifier
        self._schedule = schedule_adjuster

    def dispatch(
        self,
        outcome: DecisionOutcome,
        return_shift: ReturnShiftRequest | None = None,
    ) -> SideEffectReport:
        """Run side effects for ``outcome``.

        Nothing happens unless the decision moved the submission to a
        final status.
        """
        if not outcome.reached_terminal:
            return SideEffectReport()

        kind = self._config.kind(outcome.submission.kind)
        warnings: list[SideEffectWarning] = []

        self._notify(build_notification(outcome, kind), warnings)

        approved = outcome.submission.status == SubmissionStatus.APPROVED
        if not approved or self._schedule is None:
            return SideEffectReport(warnings=tuple(warnings))

        sync = None
        if kind.schedule_sync is not None:
            sync = self._sync_schedule(outcome.submission, kind, warnings)
            if sync is not None and sync.changed:
                self._notify(
                    build_shift_notification(
                        outcome.submission,
                        sync,
                        kind,
                        self._config.notifications.schedule_deeplink,
                    ),
                    warnings,
                )

        adjustment = None
        if kind.return_to_work:
            adjustment = self._schedule_return(outcome.submission, return_shift, warnings)

        return SideEffectReport(
            schedule_adjustment=adjustment,
            shift_sync=sync,
            warnings=tuple(warnings),
        )

    def _notify(self, message: NotificationMessage, warnings: list[SideEffectWarning]) -> None:
        if not self._notifier.submit(message):
            warnings.append(
                SideEffectWarning(
                    effect=EFFECT_NOTIFICATION,
                    code="NOTIFICATION_DROPPED",
                    message=f"{message.event_type} was not queued; requester was not notified",
                )
            )

    def _sync_schedule(
        self,
        submission: Submission,
        kind: KindConfig,
        warnings: list[SideEffectWarning],
    ) -> ShiftSync | None:
        effect = kind.schedule_sync.value
        try:
            if kind.schedule_sync == ScheduleSync.DAY_SWAP:
                if not submission.swap_pairs:
                    return None
                return self._schedule.apply_day_swap(
                    submission.requester_id, submission.swap_pairs,
                )
            days = leave_days(submission.leave_start_date, submission.leave_end_date)
            if not days:
                logger.warning(
                    "leave_days_unknown",
                    extra={"submission_id": str(submission.submission_id)},
                )
                warnings.append(
                    SideEffectWarning(
                        effect=effect,
                        code="LEAVE_DATES_UNKNOWN",
                        message="Leave start date is not set; no day was marked off",
                    )
                )
                return None
            return self._schedule.mark_days_off(submission.requester_id, days)
        except Exception as exc:
            logger.exception(
                "shift_sync_failed",
                extra={
                    "submission_id": str(submission.submission_id),
                    "requester_id": str(submission.requester_id),
                    "effect": effect,
                },
            )
            warnings.append(
                SideEffectWarning(
                    effect=effect,
                    code="SHIFT_SYNC_FAILED",
                    message=f"Schedule was not updated: {exc}",
                )
            )
            return None

    def _schedule_return(
        self,
        submission: Submission,
        return_shift: ReturnShiftRequest | None,
        warnings: list[SideEffectWarning],
    ) -> ScheduleAdjustment | None:
        override = return_shift.date if return_shift else None
        pattern_ref = return_shift.pattern_ref if return_shift else None
        shift_date = return_to_work_date(submission.leave_end_date, override)

        if shift_date is None:
            logger.warning(
                "return_to_work_date_unknown",
                extra={"submission_id": str(submission.submission_id)},
            )
            warnings.append(
                SideEffectWarning(
                    effect=EFFECT_RETURN_TO_WORK,
                    code="RETURN_DATE_UNKNOWN",
                    message="Leave end date is not set and no return shift date was given",
                )
            )
            return None

        try:
            return self._schedule.upsert_return_to_work_entry(
                submission.requester_id, shift_date, pattern_ref,
            )
        except Exception as exc:
            logger.exception(
                "return_to_work_adjustment_failed",
                extra={
                    "submission_id": str(submission.submission_id),
                    "requester_id": str(submission.requester_id),
                    "shift_date": shift_date.isoformat(),
                },
            )
            warnings.append(
                SideEffectWarning(
                    effect=EFFECT_RETURN_TO_WORK,
                    code="SCHEDULE_ADJUSTMENT_FAILED",
                    message=f"Return-to-work schedule was not updated: {exc}",
                )
            )
            return None
