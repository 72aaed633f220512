"""
Approval domain types (``hr_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the multi-level approval engine.  Defines the
submission and step state machines, the closed approver role set, the
frozen DTOs exchanged between layers, and the protocols of the external
collaborators (user directory, notification sender, schedule adjuster).

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Submission lifecycle -- ``SUBMISSION_TRANSITIONS`` defines the only
  valid status transitions.  Terminal states have no outgoing edges.
* Step lifecycle -- ``STEP_TRANSITIONS``: ``pending`` moves to
  ``approved`` or ``rejected`` exactly once.
* Closed role set -- approver roles are ``ApproverRole`` members;
  ``ApproverRole.parse`` is the only string-to-role conversion.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


# =========================================================================
# Submission kinds
# =========================================================================


class SubmissionKind(str, Enum):
    """Employee request types that go through the approval chain."""

    LEAVE = "leave"
    SICK_LEAVE = "sick_leave"
    HOURLY_LEAVE = "hourly_leave"
    DAY_SWAP = "day_swap"


# =========================================================================
# Submission status lifecycle
# =========================================================================


class SubmissionStatus(str, Enum):
    """Aggregate status of a submission, derived from its steps."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


SUBMISSION_TRANSITIONS: dict[SubmissionStatus, frozenset[SubmissionStatus]] = {
    SubmissionStatus.PENDING: frozenset({
        SubmissionStatus.APPROVED,
        SubmissionStatus.REJECTED,
    }),
    SubmissionStatus.APPROVED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}

TERMINAL_SUBMISSION_STATUSES: frozenset[SubmissionStatus] = frozenset({
    SubmissionStatus.APPROVED,
    SubmissionStatus.REJECTED,
})


# =========================================================================
# Step decision lifecycle
# =========================================================================


class StepDecision(str, Enum):
    """Decision recorded on a single approval step."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @classmethod
    def parse_final(cls, value: Any) -> StepDecision | None:
        """Parse an approver's decision (approved/rejected), case-insensitive.

        Returns None for anything else, including ``pending``.
        """
        if isinstance(value, StepDecision):
            return value if value in FINAL_STEP_DECISIONS else None
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for member in FINAL_STEP_DECISIONS:
            if member.value == normalized:
                return member
        return None


STEP_TRANSITIONS: dict[StepDecision, frozenset[StepDecision]] = {
    StepDecision.PENDING: frozenset({
        StepDecision.APPROVED,
        StepDecision.REJECTED,
    }),
    StepDecision.APPROVED: frozenset(),
    StepDecision.REJECTED: frozenset(),
}

FINAL_STEP_DECISIONS: frozenset[StepDecision] = frozenset({
    StepDecision.APPROVED,
    StepDecision.REJECTED,
})


# =========================================================================
# Approver roles
# =========================================================================


class ApproverRole(str, Enum):
    """Closed set of roles an approval step can be assigned to."""

    EMPLOYEE = "EMPLOYEE"
    SUPERVISOR = "SUPERVISOR"
    HR = "HR"
    OPERATIONS = "OPERATIONS"
    DIRECTOR = "DIRECTOR"
    SUBADMIN = "SUBADMIN"
    SUPERADMIN = "SUPERADMIN"

    @classmethod
    def parse(cls, value: Any) -> ApproverRole | None:
        """Case-insensitive role lookup.  Returns None for unknown values."""
        if isinstance(value, ApproverRole):
            return value
        if not isinstance(value, str):
            return None
        normalized = value.strip().upper()
        if not normalized:
            return None
        try:
            return cls(normalized)
        except ValueError:
            return None


class AggregationPolicy(str, Enum):
    """How step decisions roll up into the submission status.

    ``ANY_APPROVAL_WINS`` -- one approved step approves the submission even
    when lower levels are pending or rejected; all rejected rejects it.

    ``SEQUENTIAL`` -- levels must be approved in ascending order; any
    rejection rejects the submission; all approved approves it.
    """

    ANY_APPROVAL_WINS = "any_approval_wins"
    SEQUENTIAL = "sequential"


# =========================================================================
# Snapshots
# =========================================================================


@dataclass(frozen=True)
class ApprovalStep:
    """Immutable snapshot of one level of an approval chain."""

    step_id: UUID
    submission_id: UUID
    level: int
    approver_user_id: UUID | None = None
    approver_role: ApproverRole | None = None
    decision: StepDecision = StepDecision.PENDING
    decided_at: datetime | None = None
    decided_by_id: UUID | None = None
    note: str | None = None

    @property
    def is_decided(self) -> bool:
        return self.decision != StepDecision.PENDING


@dataclass(frozen=True)
class DaySwapPair:
    """One day off traded for one replacement work day."""

    off_date: date
    work_date: date


@dataclass(frozen=True)
class Submission:
    """Immutable snapshot of a submission and its live approval chain.

    ``steps`` are ordered by level and exclude removed steps.
    ``tagged_user_ids`` are the colleagues covering for the requester.
    ``swap_pairs`` are only set for day swaps.
    """

    submission_id: UUID
    requester_id: UUID
    kind: SubmissionKind
    status: SubmissionStatus = SubmissionStatus.PENDING
    current_approved_level: int | None = None
    leave_start_date: date | None = None
    leave_end_date: date | None = None
    created_at: datetime | None = None
    last_decision_at: datetime | None = None
    steps: tuple[ApprovalStep, ...] = ()
    tagged_user_ids: tuple[UUID, ...] = ()
    swap_pairs: tuple[DaySwapPair, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_SUBMISSION_STATUSES


# =========================================================================
# Reconciliation types
# =========================================================================


@dataclass(frozen=True)
class DesiredStep:
    """One entry of a caller-supplied approval chain.

    ``step_id`` refers to an existing step; None means "create a new step".
    Exactly one of ``approver_user_id`` / ``approver_role`` must be set.
    Raw values (strings) are accepted here and normalized by the engine.
    """

    level: Any
    approver_user_id: UUID | str | None = None
    approver_role: ApproverRole | str | None = None
    step_id: UUID | str | None = None


@dataclass(frozen=True)
class StepUpdate:
    """Rewrite of an existing step; the step's decision resets to pending."""

    step_id: UUID
    level: int
    approver_user_id: UUID | None
    approver_role: ApproverRole | None


@dataclass(frozen=True)
class ChainDiff:
    """Create/update/delete sets that turn the current chain into the desired one."""

    creates: tuple[DesiredStep, ...] = ()
    updates: tuple[StepUpdate, ...] = ()
    deletes: tuple[UUID, ...] = ()
    unchanged: tuple[UUID, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.updates or self.deletes)


# =========================================================================
# Decision types
# =========================================================================


@dataclass(frozen=True)
class AggregateStatus:
    """Submission-level outcome derived from all step decisions."""

    status: SubmissionStatus
    current_approved_level: int | None = None


@dataclass(frozen=True)
class DecisionEvent:
    """Domain event emitted for every recorded decision."""

    submission_id: UUID
    requester_id: UUID
    kind: SubmissionKind
    step_id: UUID
    decision: StepDecision
    level: int
    note: str | None
    submission_status: SubmissionStatus


@dataclass(frozen=True)
class DecisionOutcome:
    """Result of applying one decision inside the decision transaction."""

    step: ApprovalStep
    submission: Submission
    previous_status: SubmissionStatus
    event: DecisionEvent

    @property
    def reached_terminal(self) -> bool:
        """True when this decision moved the submission out of pending."""
        return (
            self.previous_status == SubmissionStatus.PENDING
            and self.submission.status in TERMINAL_SUBMISSION_STATUSES
        )


@dataclass(frozen=True)
class ReturnShiftRequest:
    """Caller-supplied override for the return-to-work schedule entry."""

    date: date | None = None
    pattern_ref: str | None = None


@dataclass(frozen=True)
class ScheduleAdjustment:
    """Schedule entry written for the requester's return to work."""

    action: str  # "created" | "updated"
    shift_id: UUID
    user_id: UUID
    shift_date: date
    pattern_ref: str | None = None


@dataclass(frozen=True)
class ShiftSync:
    """Summary of a multi-day schedule rewrite (leave days off, day swap)."""

    effect: str
    created: int = 0
    updated: int = 0
    affected_dates: tuple[date, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated)


@dataclass(frozen=True)
class SideEffectWarning:
    """Non-fatal failure of a post-decision side effect."""

    effect: str
    code: str
    message: str


@dataclass(frozen=True)
class DecisionResponse:
    """What the decision operation returns to its caller."""

    step: ApprovalStep
    submission: Submission
    schedule_adjustment: ScheduleAdjustment | None = None
    shift_sync: ShiftSync | None = None
    warnings: tuple[SideEffectWarning, ...] = field(default_factory=tuple)


# =========================================================================
# External collaborators
# =========================================================================


class UserDirectory(Protocol):
    """Resolves which user ids exist and are active."""

    def resolve_existing(self, user_ids: set[UUID]) -> set[UUID]:
        """Return the subset of ``user_ids`` that exist and are active."""
        ...


class NotificationSender(Protocol):
    """Outbound notification transport.  Fire-and-forget."""

    def send(
        self,
        event_type: str,
        recipient_user_id: UUID,
        payload: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> None:
        ...


class ScheduleAdjuster(Protocol):
    """Best-effort writer of the requester's work schedule."""

    def upsert_return_to_work_entry(
        self,
        user_id: UUID,
        shift_date: date,
        pattern_ref: str | None = None,
    ) -> ScheduleAdjustment:
        """Create or update the work entry on ``shift_date``.  Raises on failure."""
        ...

    def mark_days_off(self, user_id: UUID, days: Sequence[date]) -> ShiftSync:
        """Make every day in ``days`` an OFF day.  Raises on failure."""
        ...

    def apply_day_swap(self, user_id: UUID, pairs: Sequence[DaySwapPair]) -> ShiftSync:
        """OFF on each ``off_date``, WORK on each ``work_date``.  Raises on failure."""
        ...
