"""
Module: hr_kernel.models.submission
Responsibility: ORM persistence for submissions, their ordered approval
    steps and the day pairs of a day swap.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Status values are limited by CHECK constraints on both tables.
    - level >= 1 and exactly one approver reference per step (CHECK).
    - At most one live step per level of a submission: partial UNIQUE index
      on (submission_id, level) WHERE deleted_at IS NULL.
    - A day swap pair trades two different days, and a day is traded at
      most once per submission (CHECK, UNIQUE).
    - Optimistic locking: ``version`` is the mapper's version_id_col, so
      every ORM UPDATE of a submission row is guarded by its version.

Failure modes:
    - IntegrityError on a duplicate live level or a malformed step row.
    - StaleDataError when a submission row was updated by another
      transaction between load and flush.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_kernel.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from hr_kernel.domain.approval import ApprovalStep, DaySwapPair, Submission
    from hr_kernel.models.handover import HandoverModel


class SubmissionModel(TimestampedBase):
    """
    Employee submission that requires multi-level sign-off.

    Contract:
        ``status`` and ``current_approved_level`` are derived from the live
        approval steps and written only by the decision service.

    Guarantees:
        - Soft-deleted submissions keep their steps untouched.
        - ``version`` increments on every ORM update of the row.
    """

    __tablename__ = "submissions"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="ck_submissions_valid_status",
        ),
        CheckConstraint(
            "kind IN ('leave', 'sick_leave', 'hourly_leave', 'day_swap')",
            name="ck_submissions_valid_kind",
        ),
        CheckConstraint(
            "leave_start_date IS NULL OR leave_end_date IS NULL "
            "OR leave_start_date <= leave_end_date",
            name="ck_submissions_leave_dates_ordered",
        ),
        Index("ix_submissions_requester", "requester_id", "status"),
    )

    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    current_approved_level: Mapped[int | None] = mapped_column(
        Integer, nullable=True,
    )
    leave_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    leave_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_decision_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Includes removed steps; to_dto() exposes the live chain only.
    steps: Mapped[list["ApprovalStepModel"]] = relationship(
        "ApprovalStepModel",
        back_populates="submission",
        order_by="ApprovalStepModel.level",
        lazy="selectin",
    )
    handovers: Mapped[list["HandoverModel"]] = relationship(
        "HandoverModel",
        back_populates="submission",
        order_by="HandoverModel.tagged_user_id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    swap_pairs: Mapped[list["DaySwapPairModel"]] = relationship(
        "DaySwapPairModel",
        back_populates="submission",
        order_by="DaySwapPairModel.off_date",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Submission {self.id} {self.kind} status={self.status}>"

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def live_steps(self) -> list["ApprovalStepModel"]:
        """Non-deleted steps ordered by level."""
        return sorted(
            (s for s in self.steps if s.deleted_at is None),
            key=lambda s: s.level,
        )

    def to_dto(self) -> Submission:
        """Convert ORM model to frozen domain DTO."""
        from hr_kernel.domain.approval import (
            Submission as SubmissionDTO,
            SubmissionKind,
            SubmissionStatus,
        )

        return SubmissionDTO(
            submission_id=self.id,
            requester_id=self.requester_id,
            kind=SubmissionKind(self.kind),
            status=SubmissionStatus(self.status),
            current_approved_level=self.current_approved_level,
            leave_start_date=self.leave_start_date,
            leave_end_date=self.leave_end_date,
            created_at=self.created_at,
            last_decision_at=self.last_decision_at,
            steps=tuple(s.to_dto() for s in self.live_steps()),
            tagged_user_ids=tuple(h.tagged_user_id for h in self.handovers),
            swap_pairs=tuple(p.to_dto() for p in self.swap_pairs),
        )


class ApprovalStepModel(TimestampedBase):
    """
    One level of a submission's approval chain.

    Contract:
        A decided step is frozen.  Its decision only returns to pending
        when a chain edit changes its level or approver.

    Guarantees:
        - The pending -> decided write is a conditional UPDATE issued by the
          decision service, so a step is decided at most once.
    """

    __tablename__ = "approval_steps"

    __table_args__ = (
        CheckConstraint(
            "decision IN ('pending', 'approved', 'rejected')",
            name="ck_approval_steps_valid_decision",
        ),
        CheckConstraint("level >= 1", name="ck_approval_steps_level_positive"),
        CheckConstraint(
            "(approver_user_id IS NULL) <> (approver_role IS NULL)",
            name="ck_approval_steps_one_approver",
        ),
        Index(
            "uq_approval_steps_live_level",
            "submission_id", "level",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        Index("ix_approval_steps_approver_user", "approver_user_id", "decision"),
        Index("ix_approval_steps_approver_role", "approver_role", "decision"),
    )

    submission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("submissions.id"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    approver_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    decision: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending",
    )
    decided_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    decided_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    submission: Mapped["SubmissionModel"] = relationship(
        "SubmissionModel",
        back_populates="steps",
    )

    def __repr__(self) -> str:
        approver = self.approver_user_id or self.approver_role
        return (
            f"<ApprovalStep {self.id} level={self.level} "
            f"approver={approver} decision={self.decision}>"
        )

    def reset_to_pending(self) -> None:
        """Clear the decision trail after the step's assignment changed."""
        self.decision = "pending"
        self.decided_at = None
        self.decided_by_id = None
        self.note = None

    def to_dto(self) -> ApprovalStep:
        """Convert ORM model to frozen domain DTO."""
        from hr_kernel.domain.approval import (
            ApprovalStep as ApprovalStepDTO,
            ApproverRole,
            StepDecision,
        )

        return ApprovalStepDTO(
            step_id=self.id,
            submission_id=self.submission_id,
            level=self.level,
            approver_user_id=self.approver_user_id,
            approver_role=(
                ApproverRole(self.approver_role) if self.approver_role else None
            ),
            decision=StepDecision(self.decision),
            decided_at=self.decided_at,
            decided_by_id=self.decided_by_id,
            note=self.note,
        )


class DaySwapPairModel(TimestampedBase):
    """One traded day of a day swap submission."""

    __tablename__ = "day_swap_pairs"

    __table_args__ = (
        CheckConstraint("off_date <> work_date", name="ck_day_swap_pairs_distinct"),
        UniqueConstraint("submission_id", "off_date", name="uq_day_swap_pairs_off"),
        UniqueConstraint("submission_id", "work_date", name="uq_day_swap_pairs_work"),
    )

    submission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("submissions.id"),
        nullable=False,
    )
    off_date: Mapped[date] = mapped_column(Date, nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)

    submission: Mapped["SubmissionModel"] = relationship(
        "SubmissionModel",
        back_populates="swap_pairs",
    )

    def to_dto(self) -> DaySwapPair:
        from hr_kernel.domain.approval import DaySwapPair as DaySwapPairDTO

        return DaySwapPairDTO(off_date=self.off_date, work_date=self.work_date)
