"""
hr_services.approval_workflow -- Transaction owner for approval operations.

Responsibility:
    The public surface of the approval engine.  Each operation (create,
    reconcile, decide, cancel) runs in exactly one transaction: open a
    session, call the flush-only kernel service, commit.  Decisions that
    finalize a submission are handed to the side-effect dispatcher after
    the commit.

Architecture position:
    Services layer.  Composes hr_kernel services with hr_config settings.

Invariants enforced:
    - One transaction per operation; kernel services never commit.
    - Optimistic lock conflicts (StaleDataError) roll back and retry the
      whole operation up to ``engine.max_lock_retries`` times.
    - Database failures surface as ``PersistenceError`` after rollback.
    - Side effects run after commit and only on a pending -> final change.

Failure modes:
    - Any ``ApprovalEngineError`` raised by the kernel propagates unchanged.
    - ``OptimisticLockError`` when retries are exhausted.
    - ``PersistenceError`` wrapping a ``SQLAlchemyError``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from hr_config.schema import HRConfig
from hr_kernel.domain.approval import (
    ApprovalStep,
    DaySwapPair,
    DecisionResponse,
    DesiredStep,
    ReturnShiftRequest,
    Submission,
    SubmissionKind,
    UserDirectory,
)
from hr_kernel.domain.clock import Clock, SystemClock
from hr_kernel.exceptions import (
    ApprovalEngineError,
    NotAuthenticatedError,
    OptimisticLockError,
    PersistenceError,
)
from hr_kernel.logging_config import LogContext, get_logger
from hr_kernel.selectors.approval_selector import ApprovalSelector
from hr_kernel.services.decision_service import DecisionService
from hr_kernel.services.reconciliation_service import ReconciliationService
from hr_kernel.services.submission_service import SubmissionService
from hr_services.side_effects import SideEffectDispatcher, SideEffectReport
from hr_services.user_directory import SqlUserDirectory

logger = get_logger("services.approval_workflow")

T = TypeVar("T")


class ApprovalWorkflow:
    """Transactional entry point for every approval operation."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: HRConfig,
        directory_factory: Callable[[Session], UserDirectory] = SqlUserDirectory,
        side_effects: SideEffectDispatcher | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._directory_factory = directory_factory
        self._side_effects = side_effects
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Transaction handling
    # -------------------------------------------------------------------------

    def _run(
        self,
        operation: str,
        entity_id: Any,
        work: Callable[[Session], T],
    ) -> T:
        """Run ``work`` in one transaction, retrying on stale versions."""
        attempts = self._config.engine.max_lock_retries + 1
        for attempt in range(1, attempts + 1):
            session = self._session_factory()
            try:
                result = work(session)
                session.commit()
                return result
            except StaleDataError:
                session.rollback()
                logger.warning(
                    "approval_operation_conflict_retry",
                    extra={
                        "operation": operation,
                        "entity_id": str(entity_id),
                        "attempt": attempt,
                        "max_attempts": attempts,
                    },
                )
            except ApprovalEngineError:
                session.rollback()
                raise
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception(
                    "approval_operation_failed",
                    extra={"operation": operation, "entity_id": str(entity_id)},
                )
                raise PersistenceError(operation, str(exc)) from exc
            finally:
                session.close()

        raise OptimisticLockError("Submission", str(entity_id))

    def _chains(self, session: Session) -> ReconciliationService:
        return ReconciliationService(
            session, self._directory_factory(session), self._clock,
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create_submission(
        self,
        kind: SubmissionKind | str,
        requester_id: UUID,
        chain: Sequence[DesiredStep],
        leave_start_date: date | None = None,
        leave_end_date: date | None = None,
        tagged_user_ids: Sequence[Any] = (),
        swap_pairs: Sequence[DaySwapPair] = (),
    ) -> Submission:
        """Create a pending submission with its initial approval chain."""
        with LogContext.bind(actor_id=requester_id):
            return self._run(
                "create_submission",
                requester_id,
                lambda session: SubmissionService(
                    session, self._chains(session), self._clock,
                ).create(
                    kind, requester_id, chain, leave_start_date, leave_end_date,
                    tagged_user_ids, swap_pairs,
                ),
            )

    def reconcile_chain(
        self,
        submission_id: UUID,
        desired: Sequence[DesiredStep],
        actor_id: UUID | None = None,
        tagged_user_ids: Sequence[Any] | None = None,
    ) -> tuple[ApprovalStep, ...]:
        """Replace a submission's approval chain; returns the new chain.

        ``tagged_user_ids`` replaces the tagged delegates in the same
        transaction; None leaves them untouched.
        """
        with LogContext.bind(actor_id=actor_id, submission_id=submission_id):
            return self._run(
                "reconcile_chain",
                submission_id,
                lambda session: self._chains(session).reconcile(
                    submission_id, desired, actor_id, tagged_user_ids,
                ),
            )

    def decide(
        self,
        step_id: UUID,
        actor_id: UUID | None,
        actor_role: Any,
        decision: Any,
        note: str | None = None,
        return_shift: ReturnShiftRequest | None = None,
    ) -> DecisionResponse:
        """Record an approver's decision on one step.

        Raises:
            NotAuthenticatedError: no actor.
            ApprovalEngineError: any validation, authorization, not-found
                or conflict failure from the decision service.
        """
        if actor_id is None:
            raise NotAuthenticatedError()

        with LogContext.bind(actor_id=actor_id, step_id=step_id):
            outcome = self._run(
                "decide",
                step_id,
                lambda session: DecisionService(
                    session, self._clock, self._config.engine.aggregation_policy,
                ).decide(step_id, actor_id, actor_role, decision, note),
            )

            report = SideEffectReport()
            if self._side_effects is not None:
                report = self._side_effects.dispatch(outcome, return_shift)

        return DecisionResponse(
            step=outcome.step,
            submission=outcome.submission,
            schedule_adjustment=report.schedule_adjustment,
            shift_sync=report.shift_sync,
            warnings=report.warnings,
        )

    def cancel_submission(
        self,
        submission_id: UUID,
        actor_id: UUID | None,
        actor_role: Any = None,
    ) -> Submission:
        """Soft-delete a pending submission (requester or admin only)."""
        if actor_id is None:
            raise NotAuthenticatedError()

        with LogContext.bind(actor_id=actor_id, submission_id=submission_id):
            return self._run(
                "cancel_submission",
                submission_id,
                lambda session: SubmissionService(
                    session, self._chains(session), self._clock,
                ).cancel(
                    submission_id, actor_id, actor_role, self._config.roles.admin,
                ),
            )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_submission(self, submission_id: UUID) -> Submission | None:
        session = self._session_factory()
        try:
            return ApprovalSelector(session).get_submission(submission_id)
        finally:
            session.close()

    def pending_for_actor(self, user_id: UUID, role: Any = None) -> list[ApprovalStep]:
        """Approver inbox for ``user_id`` / ``role``."""
        session = self._session_factory()
        try:
            return ApprovalSelector(session).pending_steps_for_actor(user_id, role)
        finally:
            session.close()
