"""
hr_kernel.services.submission_service -- Submission creation and cancellation.

Responsibility:
    Create pending submissions together with their initial approval chain,
    and soft-delete (cancel) pending submissions.

Architecture position:
    Kernel > Services.  Chain validation is delegated to
    ReconciliationService so creation and editing share one rule set.

Failure modes:
    - InvalidRequestError for an unknown kind, unordered leave dates or
      malformed day swap pairs.
    - EmptyApprovalChainError, ChainValidationError,
      UnresolvedApproversError on creation.
    - SubmissionNotFoundError, SubmissionAccessDeniedError,
      SubmissionFinalizedError on cancellation.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hr_engines.approval import parse_role, swap_pair_errors
from hr_kernel.domain.approval import (
    ApproverRole,
    DaySwapPair,
    DesiredStep,
    StepDecision,
    Submission,
    SubmissionKind,
    SubmissionStatus,
)
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import (
    EmptyApprovalChainError,
    InvalidRequestError,
    SubmissionAccessDeniedError,
    SubmissionFinalizedError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.models.handover import HandoverModel
from hr_kernel.models.submission import (
    ApprovalStepModel,
    DaySwapPairModel,
    SubmissionModel,
)
from hr_kernel.services.base import BaseService, load_submission_for_update
from hr_kernel.services.reconciliation_service import ReconciliationService

logger = get_logger("services.submission")


class SubmissionService(BaseService[SubmissionModel]):
    """Creates and cancels submissions."""

    def __init__(
        self,
        session: Session,
        chain_service: ReconciliationService,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._chains = chain_service
        self._clock = clock or SystemClock()

    def create(
        self,
        kind: SubmissionKind | str,
        requester_id: UUID,
        chain: Sequence[DesiredStep],
        leave_start_date: date | None = None,
        leave_end_date: date | None = None,
        tagged_user_ids: Iterable[Any] = (),
        swap_pairs: Sequence[DaySwapPair] = (),
    ) -> Submission:
        """Create a pending submission with its initial approval chain.

        ``tagged_user_ids`` are resolved in the same directory call as the
        approvers.  ``swap_pairs`` are accepted for day swaps only.
        """
        try:
            parsed_kind = SubmissionKind(kind)
        except ValueError:
            raise InvalidRequestError("kind", f"unknown submission kind {kind!r}")

        if not chain:
            raise EmptyApprovalChainError()

        if (
            leave_start_date is not None
            and leave_end_date is not None
            and leave_end_date < leave_start_date
        ):
            raise InvalidRequestError(
                "leave_end_date", "must not be before leave_start_date",
            )

        if swap_pairs and parsed_kind != SubmissionKind.DAY_SWAP:
            raise InvalidRequestError(
                "swap_pairs", f"not allowed for {parsed_kind.value} submissions",
            )
        pair_errors = swap_pair_errors(swap_pairs)
        if pair_errors:
            raise InvalidRequestError("swap_pairs", "; ".join(pair_errors))

        normalized, tagged = self._chains.validate_chain(
            chain, tagged_user_ids=tagged_user_ids,
        )

        submission = SubmissionModel(
            requester_id=requester_id,
            kind=parsed_kind.value,
            status=SubmissionStatus.PENDING.value,
            leave_start_date=leave_start_date,
            leave_end_date=leave_end_date,
        )
        for desired in sorted(normalized, key=lambda d: d.level):
            submission.steps.append(
                ApprovalStepModel(
                    level=desired.level,
                    approver_user_id=desired.approver_user_id,
                    approver_role=(
                        desired.approver_role.value if desired.approver_role else None
                    ),
                    decision=StepDecision.PENDING.value,
                )
            )
        for user_id in tagged:
            submission.handovers.append(HandoverModel(tagged_user_id=user_id))
        for pair in swap_pairs:
            submission.swap_pairs.append(
                DaySwapPairModel(off_date=pair.off_date, work_date=pair.work_date)
            )
        self.session.add(submission)
        self.session.flush()

        logger.info(
            "submission_created",
            extra={
                "submission_id": str(submission.id),
                "requester_id": str(requester_id),
                "kind": parsed_kind.value,
                "step_count": len(normalized),
                "tagged_count": len(tagged),
            },
        )
        return submission.to_dto()

    def cancel(
        self,
        submission_id: UUID,
        actor_id: UUID,
        actor_role: Any = None,
        admin_roles: Iterable[ApproverRole] = (),
    ) -> Submission:
        """Soft-delete a pending submission.

        Allowed for the requester and for actors holding an admin role.
        Steps are left untouched.
        """
        submission = load_submission_for_update(self.session, submission_id)

        is_admin = parse_role(actor_role) in set(admin_roles)
        if submission.requester_id != actor_id and not is_admin:
            raise SubmissionAccessDeniedError(str(submission_id), str(actor_id))

        if submission.status != SubmissionStatus.PENDING.value:
            raise SubmissionFinalizedError(str(submission_id), submission.status)

        submission.deleted_at = self._clock.now()
        self.session.flush()

        logger.info(
            "submission_cancelled",
            extra={
                "submission_id": str(submission_id),
                "actor_id": str(actor_id),
                "by_admin": submission.requester_id != actor_id,
            },
        )
        return submission.to_dto()
