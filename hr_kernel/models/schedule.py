"""
Module: hr_kernel.models.schedule
Responsibility: ORM persistence for per-day work schedule entries.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one live shift per user and date: partial UNIQUE index on
      (user_id, shift_date) WHERE deleted_at IS NULL.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TimestampedBase, UUIDString


class ShiftStatus(str, Enum):
    """Whether the employee works on the scheduled day."""

    WORK = "WORK"
    OFF = "OFF"


class ShiftModel(TimestampedBase):
    """One scheduled day of one employee."""

    __tablename__ = "shifts"

    __table_args__ = (
        CheckConstraint(
            "status IN ('WORK', 'OFF')",
            name="ck_shifts_valid_status",
        ),
        Index(
            "uq_shifts_live_user_date",
            "user_id", "shift_date",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    shift_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(10), default=ShiftStatus.WORK.value, nullable=False,
    )

    # Reference to the schedule pattern (work hours template)
    pattern_ref: Mapped[str | None] = mapped_column(String(64), nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Shift {self.user_id} {self.shift_date} {self.status}>"
