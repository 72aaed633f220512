"""
hr_kernel.services.reconciliation_service -- Approval chain editing.

Responsibility:
    Synchronize a submission's persisted approval chain with a desired
    chain supplied by the caller: validate it, diff it with the pure
    engine, and apply the diff in the caller's transaction.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and the
    pure engines.

Invariants enforced:
    - Chains are editable only while every live step is pending and the
      submission is still pending.
    - Every structural problem is reported at once, before any write.
    - Approver and tagged delegate user ids are resolved in a single
      directory call.
    - Tagged delegates are replaced in the same transaction as the chain.
    - At most one live step per level at every flush: level changes go
      through temporary levels above the current maximum first.
    - An identical desired chain with unchanged delegates writes nothing.

Failure modes:
    - SubmissionNotFoundError, SubmissionFinalizedError, ChainFrozenError.
    - ChainValidationError, UnresolvedApproversError.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from hr_engines.approval import (
    approver_user_ids,
    compute_chain_diff,
    normalize_desired_chain,
    normalize_tagged_user_ids,
)
from hr_kernel.domain.approval import (
    ApprovalStep,
    ChainDiff,
    DesiredStep,
    StepDecision,
    SubmissionStatus,
    UserDirectory,
)
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import (
    ChainFrozenError,
    ChainValidationError,
    SubmissionFinalizedError,
    UnresolvedApproversError,
)
from hr_kernel.logging_config import get_logger
from hr_kernel.models.handover import HandoverModel
from hr_kernel.models.submission import ApprovalStepModel, SubmissionModel
from hr_kernel.services.base import BaseService, load_submission_for_update

logger = get_logger("services.reconciliation")


class ReconciliationService(BaseService[ApprovalStepModel]):
    """Validates desired approval chains and applies chain diffs."""

    def __init__(
        self,
        session: Session,
        user_directory: UserDirectory,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._directory = user_directory
        self._clock = clock or SystemClock()

    def validate_chain(
        self,
        desired: Sequence[DesiredStep],
        existing_step_ids: Iterable[UUID] = (),
        tagged_user_ids: Iterable[Any] = (),
    ) -> tuple[tuple[DesiredStep, ...], tuple[UUID, ...]]:
        """Normalize a desired chain and its tagged delegates, or raise.

        Approver and tagged user ids are checked in one directory call so
        that every unresolved id is reported together.

        Returns:
            ``(normalized_chain, tagged_user_ids)``.

        Raises:
            ChainValidationError: one or more structural problems.
            UnresolvedApproversError: users missing or inactive.
        """
        normalized, errors = normalize_desired_chain(desired, existing_step_ids)
        tagged, tag_errors = normalize_tagged_user_ids(tagged_user_ids)
        errors.extend(tag_errors)
        if errors:
            raise ChainValidationError(errors)

        approvers = approver_user_ids(normalized)
        wanted = approvers | set(tagged)
        if wanted:
            missing = wanted - set(self._directory.resolve_existing(set(wanted)))
            if missing:
                raise UnresolvedApproversError(missing, missing & set(tagged))
        return normalized, tagged

    def reconcile(
        self,
        submission_id: UUID,
        desired: Sequence[DesiredStep],
        actor_id: UUID | None = None,
        tagged_user_ids: Iterable[Any] | None = None,
    ) -> tuple[ApprovalStep, ...]:
        """Replace the submission's chain with ``desired``.

        When ``tagged_user_ids`` is given, the submission's tagged
        delegates are replaced with it in the same transaction; None
        leaves them alone.

        Returns:
            The resulting live chain ordered by level.
        """
        submission = load_submission_for_update(self.session, submission_id)

        if submission.status != SubmissionStatus.PENDING.value:
            raise SubmissionFinalizedError(str(submission_id), submission.status)

        live = submission.live_steps()
        decided = [s.level for s in live if s.decision != StepDecision.PENDING.value]
        if decided:
            raise ChainFrozenError(str(submission_id), decided)

        normalized, tagged = self.validate_chain(
            desired, (s.id for s in live), tagged_user_ids or (),
        )
        diff = compute_chain_diff([s.to_dto() for s in live], normalized)
        handovers_changed = tagged_user_ids is not None and self.sync_handovers(
            submission, tagged,
        )

        if diff.is_empty and not handovers_changed:
            logger.info(
                "approval_chain_unchanged",
                extra={
                    "submission_id": str(submission_id),
                    "step_count": len(live),
                },
            )
            return submission.to_dto().steps

        if diff.is_empty:
            submission.updated_at = self._clock.now()
            self.session.flush()
        else:
            self.apply_diff(submission, diff)

        logger.info(
            "approval_chain_reconciled",
            extra={
                "submission_id": str(submission_id),
                "actor_id": str(actor_id) if actor_id else None,
                "created": len(diff.creates),
                "updated": len(diff.updates),
                "deleted": len(diff.deletes),
                "unchanged": len(diff.unchanged),
                "handovers_changed": handovers_changed,
            },
        )
        return submission.to_dto().steps

    def sync_handovers(
        self,
        submission: SubmissionModel,
        tagged_user_ids: Sequence[UUID],
    ) -> bool:
        """Make the submission's tagged delegates equal ``tagged_user_ids``.

        Only the difference is written, so a user kept in the set keeps
        their row.  Returns True when anything changed.
        """
        wanted = set(tagged_user_ids)
        current = {h.tagged_user_id for h in submission.handovers}
        if wanted == current:
            return False

        for handover in list(submission.handovers):
            if handover.tagged_user_id not in wanted:
                submission.handovers.remove(handover)
        for user_id in tagged_user_ids:
            if user_id not in current:
                submission.handovers.append(HandoverModel(tagged_user_id=user_id))

        logger.info(
            "handovers_synced",
            extra={
                "submission_id": str(submission.id),
                "added": len(wanted - current),
                "removed": len(current - wanted),
            },
        )
        return True

    def apply_diff(self, submission: SubmissionModel, diff: ChainDiff) -> None:
        """Apply a computed diff to a locked submission and flush.

        Order: soft-delete removed steps, move re-levelled steps to
        temporary levels, write final levels and approvers, then create.
        """
        now = self._clock.now()
        live = submission.live_steps()
        by_id = {s.id: s for s in live}

        for step_id in diff.deletes:
            by_id[step_id].deleted_at = now
        if diff.deletes:
            self.session.flush()

        relevelled = [u for u in diff.updates if by_id[u.step_id].level != u.level]
        if relevelled:
            ceiling = max(
                [s.level for s in live]
                + [u.level for u in diff.updates]
                + [c.level for c in diff.creates]
            )
            for offset, update in enumerate(relevelled, start=1):
                by_id[update.step_id].level = ceiling + offset
            self.session.flush()

        for update in diff.updates:
            step = by_id[update.step_id]
            step.level = update.level
            step.approver_user_id = update.approver_user_id
            step.approver_role = (
                update.approver_role.value if update.approver_role else None
            )
            step.reset_to_pending()

        for create in diff.creates:
            submission.steps.append(
                ApprovalStepModel(
                    submission_id=submission.id,
                    level=create.level,
                    approver_user_id=create.approver_user_id,
                    approver_role=(
                        create.approver_role.value if create.approver_role else None
                    ),
                    decision=StepDecision.PENDING.value,
                )
            )

        # Bumps the version so concurrent writers of this submission conflict.
        submission.updated_at = now
        self.session.flush()
