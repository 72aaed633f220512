"""
hr_services.schedule_adjuster -- Schedule writes that follow an approval.

Responsibility:
    - Upsert the requester's work entry for the day they return from leave.
    - Mark every day of an approved leave as an OFF day.
    - Apply an approved day swap: OFF on each off date, WORK on each
      replacement date.

    Each call runs in its own transaction, after the decision has
    committed, so a failure here can never undo an approval.

Failure modes:
    - Any exception is rolled back and re-raised; the side-effect
      dispatcher turns it into a warning.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from contextlib import contextmanager
from datetime import date
from typing import Callable, Iterator
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.domain.approval import DaySwapPair, ScheduleAdjustment, ShiftSync
from hr_kernel.logging_config import get_logger
from hr_kernel.models.schedule import ShiftModel, ShiftStatus

logger = get_logger("services.schedule_adjuster")

EFFECT_LEAVE_DAYS_OFF = "leave_days_off"
EFFECT_DAY_SWAP = "day_swap"


class SqlScheduleAdjuster:
    """``ScheduleAdjuster`` writing to the ``shifts`` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @staticmethod
    def _live_shifts(
        session: Session,
        user_id: UUID,
        days: Iterable[date],
    ) -> dict[date, ShiftModel]:
        shifts = session.scalars(
            select(ShiftModel).where(
                ShiftModel.user_id == user_id,
                ShiftModel.shift_date.in_(list(days)),
                ShiftModel.deleted_at.is_(None),
            )
        ).all()
        return {s.shift_date: s for s in shifts}

    @staticmethod
    def _latest_pattern(session: Session, user_id: UUID, before: date) -> str | None:
        """Pattern of the user's most recent earlier work day, if any."""
        return session.scalars(
            select(ShiftModel.pattern_ref)
            .where(
                ShiftModel.user_id == user_id,
                ShiftModel.shift_date < before,
                ShiftModel.status == ShiftStatus.WORK.value,
                ShiftModel.pattern_ref.is_not(None),
                ShiftModel.deleted_at.is_(None),
            )
            .order_by(ShiftModel.shift_date.desc())
            .limit(1)
        ).first()

    def upsert_return_to_work_entry(
        self,
        user_id: UUID,
        shift_date: date,
        pattern_ref: str | None = None,
    ) -> ScheduleAdjustment:
        """Mark ``shift_date`` as a work day for ``user_id``.

        An existing live entry on that date is updated in place; its
        pattern is replaced only when ``pattern_ref`` is given.
        """
        with self._transaction() as session:
            shift = self._live_shifts(session, user_id, [shift_date]).get(shift_date)

            if shift is None:
                shift = ShiftModel(
                    user_id=user_id,
                    shift_date=shift_date,
                    status=ShiftStatus.WORK.value,
                    pattern_ref=pattern_ref,
                )
                session.add(shift)
                action = "created"
            else:
                shift.status = ShiftStatus.WORK.value
                if pattern_ref is not None:
                    shift.pattern_ref = pattern_ref
                action = "updated"

            session.flush()
            adjustment = ScheduleAdjustment(
                action=action,
                shift_id=shift.id,
                user_id=user_id,
                shift_date=shift_date,
                pattern_ref=shift.pattern_ref,
            )

        logger.info(
            "return_to_work_scheduled",
            extra={
                "user_id": str(user_id),
                "shift_date": shift_date.isoformat(),
                "action": action,
                "pattern_ref": adjustment.pattern_ref,
            },
        )
        return adjustment

    def mark_days_off(self, user_id: UUID, days: Sequence[date]) -> ShiftSync:
        """Make every day in ``days`` an OFF day.

        Existing work days are switched to OFF, days without an entry get
        a new OFF entry, and days already off are left alone.
        """
        wanted = sorted(set(days))
        created = updated = 0
        with self._transaction() as session:
            existing = self._live_shifts(session, user_id, wanted)
            for day in wanted:
                shift = existing.get(day)
                if shift is None:
                    session.add(ShiftModel(
                        user_id=user_id,
                        shift_date=day,
                        status=ShiftStatus.OFF.value,
                    ))
                    created += 1
                elif shift.status != ShiftStatus.OFF.value:
                    shift.status = ShiftStatus.OFF.value
                    updated += 1

        sync = ShiftSync(
            effect=EFFECT_LEAVE_DAYS_OFF,
            created=created,
            updated=updated,
            affected_dates=tuple(wanted),
        )
        logger.info(
            "leave_days_marked_off",
            extra={
                "user_id": str(user_id),
                "first_day": wanted[0].isoformat() if wanted else None,
                "last_day": wanted[-1].isoformat() if wanted else None,
                "created": created,
                "updated": updated,
            },
        )
        return sync

    def apply_day_swap(self, user_id: UUID, pairs: Sequence[DaySwapPair]) -> ShiftSync:
        """OFF on each ``off_date``, WORK on each ``work_date``.

        An off date drops its work pattern.  A new replacement work day
        takes the pattern of the user's latest earlier work day.
        """
        targets = {p.off_date: ShiftStatus.OFF for p in pairs}
        targets.update({p.work_date: ShiftStatus.WORK for p in pairs})
        created = updated = 0
        with self._transaction() as session:
            existing = self._live_shifts(session, user_id, targets)
            for day, status in sorted(targets.items()):
                shift = existing.get(day)
                if shift is None:
                    pattern = (
                        self._latest_pattern(session, user_id, day)
                        if status == ShiftStatus.WORK
                        else None
                    )
                    session.add(ShiftModel(
                        user_id=user_id,
                        shift_date=day,
                        status=status.value,
                        pattern_ref=pattern,
                    ))
                    created += 1
                elif shift.status != status.value:
                    shift.status = status.value
                    if status == ShiftStatus.OFF:
                        shift.pattern_ref = None
                    updated += 1

        sync = ShiftSync(
            effect=EFFECT_DAY_SWAP,
            created=created,
            updated=updated,
            affected_dates=tuple(sorted(targets)),
        )
        logger.info(
            "day_swap_applied",
            extra={
                "user_id": str(user_id),
                "pairs": len(pairs),
                "created": created,
                "updated": updated,
            },
        )
        return sync
