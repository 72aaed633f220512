"""
hr_kernel.services.decision_service -- Apply one approver decision.

Responsibility:
    Transition exactly one approval step from pending to approved or
    rejected and recompute the submission's aggregate status, inside the
    caller's transaction.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the
    pure engines.

Invariants enforced:
    - Step state machine: ``STEP_TRANSITIONS``; a step is decided once.
    - Submission state machine: ``SUBMISSION_TRANSITIONS``; terminal
      submissions accept no further decisions.
    - Exactly-once under concurrency: the submission row is locked and the
      step write is a conditional UPDATE guarded by ``decision = 'pending'``.
      A zero row count means another transaction won the race.
    - Authorization, validation and state checks happen before any write.

Failure modes:
    - InvalidDecisionError, ApprovalStepNotFoundError,
      SubmissionNotFoundError, UnauthorizedApproverError,
      StepAlreadyDecidedError, SubmissionFinalizedError,
      OutOfOrderDecisionError.
    - StaleDataError (from flush) when the submission version moved; the
      workflow retries the whole transaction.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from hr_engines.approval import (
    aggregate_status,
    blocking_levels,
    is_authorized_approver,
)
from hr_kernel.domain.approval import (
    STEP_TRANSITIONS,
    SUBMISSION_TRANSITIONS,
    AggregationPolicy,
    DecisionEvent,
    DecisionOutcome,
    StepDecision,
    SubmissionKind,
    SubmissionStatus,
)
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import (
    ApprovalStepNotFoundError,
    InvalidDecisionError,
    OutOfOrderDecisionError,
    StepAlreadyDecidedError,
    SubmissionFinalizedError,
    UnauthorizedApproverError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.models.submission import ApprovalStepModel
from hr_kernel.services.base import BaseService, load_submission_for_update

logger = get_logger("services.decision")


class DecisionService(BaseService[ApprovalStepModel]):
    """Records approver decisions and keeps the submission aggregate in sync."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: AggregationPolicy = AggregationPolicy.ANY_APPROVAL_WINS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy

    def _find_submission_id(self, step_id: UUID) -> UUID:
        submission_id = self.session.scalars(
            select(ApprovalStepModel.submission_id).where(
                ApprovalStepModel.id == step_id,
                ApprovalStepModel.deleted_at.is_(None),
            )
        ).one_or_none()
        if submission_id is None:
            raise ApprovalStepNotFoundError(str(step_id))
        return submission_id

    def _load_live_steps(self, submission_id: UUID) -> list[ApprovalStepModel]:
        stmt = (
            select(ApprovalStepModel)
            .where(
                ApprovalStepModel.submission_id == submission_id,
                ApprovalStepModel.deleted_at.is_(None),
            )
            .order_by(ApprovalStepModel.level)
            .execution_options(populate_existing=True)
        )
        return list(self.session.scalars(stmt).all())

    def decide(
        self,
        step_id: UUID,
        actor_id: UUID,
        actor_role: Any,
        decision: Any,
        note: str | None = None,
    ) -> DecisionOutcome:
        """
        Apply ``decision`` to ``step_id`` on behalf of the actor.

        Preconditions:
            - The actor is the step's approver user or holds its role.
            - The step is pending and its submission is pending.

        Postconditions:
            - The step carries the decision, decided_at, decided_by_id and
              note; the submission carries the recomputed status, level and
              last_decision_at.  Both are flushed, not committed.
        """
        parsed = StepDecision.parse_final(decision)
        if parsed is None:
            raise InvalidDecisionError(decision)

        submission_id = self._find_submission_id(step_id)
        submission = load_submission_for_update(self.session, submission_id)

        # Re-read after the lock so the decision reflects committed state.
        steps = self._load_live_steps(submission_id)
        step = next((s for s in steps if s.id == step_id), None)
        if step is None:
            raise ApprovalStepNotFoundError(str(step_id))
        step_dto = step.to_dto()

        if not is_authorized_approver(step_dto, actor_id, actor_role):
            logger.warning(
                "approval_decision_forbidden",
                extra={
                    "step_id": str(step_id),
                    "actor_id": str(actor_id),
                    "actor_role": str(actor_role) if actor_role else None,
                },
            )
            raise UnauthorizedApproverError(
                str(step_id),
                str(actor_id),
                str(actor_role) if actor_role else None,
            )

        if parsed not in STEP_TRANSITIONS[step_dto.decision]:
            raise StepAlreadyDecidedError(str(step_id), step_dto.decision.value)

        previous_status = SubmissionStatus(submission.status)
        if previous_status != SubmissionStatus.PENDING:
            raise SubmissionFinalizedError(str(submission_id), submission.status)

        if self._policy == AggregationPolicy.SEQUENTIAL:
            blocking = blocking_levels(
                [s.to_dto() for s in steps], step_dto.level,
            )
            if blocking:
                raise OutOfOrderDecisionError(
                    str(step_id), step_dto.level, blocking,
                )

        now = self._clock.now()
        result = self.session.execute(
            update(ApprovalStepModel)
            .where(
                ApprovalStepModel.id == step_id,
                ApprovalStepModel.decision == StepDecision.PENDING.value,
                ApprovalStepModel.deleted_at.is_(None),
            )
            .values(
                decision=parsed.value,
                decided_at=now,
                decided_by_id=actor_id,
                note=note,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "approval_decision_lost_race",
                extra={"step_id": str(step_id), "actor_id": str(actor_id)},
            )
            raise StepAlreadyDecidedError(str(step_id))

        steps = self._load_live_steps(submission_id)
        aggregate = aggregate_status([s.to_dto() for s in steps], self._policy)

        assert (
            aggregate.status == previous_status
            or aggregate.status in SUBMISSION_TRANSITIONS[previous_status]
        ), f"illegal submission transition {previous_status} -> {aggregate.status}"

        submission.status = aggregate.status.value
        submission.current_approved_level = aggregate.current_approved_level
        submission.last_decision_at = now
        self.session.flush()

        decided = next(s for s in steps if s.id == step_id).to_dto()
        snapshot = submission.to_dto()

        logger.info(
            "approval_decision_recorded",
            extra={
                "submission_id": str(submission_id),
                "step_id": str(step_id),
                "actor_id": str(actor_id),
                "decision": parsed.value,
                "level": decided.level,
                "previous_status": previous_status.value,
                "submission_status": snapshot.status.value,
                "current_approved_level": snapshot.current_approved_level,
                "policy": self._policy.value,
            },
        )

        return DecisionOutcome(
            step=decided,
            submission=snapshot,
            previous_status=previous_status,
            event=DecisionEvent(
                submission_id=submission_id,
                requester_id=submission.requester_id,
                kind=SubmissionKind(submission.kind),
                step_id=step_id,
                decision=parsed,
                level=decided.level,
                note=note,
                submission_status=snapshot.status,
            ),
        )
