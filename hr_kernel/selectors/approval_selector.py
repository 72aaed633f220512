"""
Module: hr_kernel.selectors.approval_selector
Responsibility: Read access to submissions, approval chains and the
    approver inbox.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Soft-deleted submissions and removed steps are never returned.
    - The approver inbox uses the same authorization rule as the decision
      service (``is_authorized_approver``).
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import or_, select

from hr_engines.approval import is_authorized_approver, parse_role
from hr_kernel.domain.approval import (
    ApprovalStep,
    StepDecision,
    Submission,
    SubmissionStatus,
)
from hr_kernel.models.submission import ApprovalStepModel, SubmissionModel
from hr_kernel.selectors.base import BaseSelector


class ApprovalSelector(BaseSelector[ApprovalStepModel]):
    """Read-only queries over submissions and their approval steps."""

    def get_submission(self, submission_id: UUID) -> Submission | None:
        model = self.session.scalars(
            select(SubmissionModel).where(
                SubmissionModel.id == submission_id,
                SubmissionModel.deleted_at.is_(None),
            )
        ).one_or_none()
        return model.to_dto() if model is not None else None

    def get_chain(self, submission_id: UUID) -> tuple[ApprovalStep, ...]:
        """Live chain ordered by level; empty for an unknown submission."""
        rows = self.session.scalars(
            select(ApprovalStepModel)
            .join(SubmissionModel, SubmissionModel.id == ApprovalStepModel.submission_id)
            .where(
                ApprovalStepModel.submission_id == submission_id,
                ApprovalStepModel.deleted_at.is_(None),
                SubmissionModel.deleted_at.is_(None),
            )
            .order_by(ApprovalStepModel.level)
        ).all()
        return tuple(r.to_dto() for r in rows)

    def get_step(self, step_id: UUID) -> ApprovalStep | None:
        model = self.session.scalars(
            select(ApprovalStepModel).where(
                ApprovalStepModel.id == step_id,
                ApprovalStepModel.deleted_at.is_(None),
            )
        ).one_or_none()
        return model.to_dto() if model is not None else None

    def list_for_requester(self, requester_id: UUID) -> list[Submission]:
        """Live submissions of one requester, oldest first."""
        rows = self.session.scalars(
            select(SubmissionModel)
            .where(
                SubmissionModel.requester_id == requester_id,
                SubmissionModel.deleted_at.is_(None),
            )
            .order_by(SubmissionModel.created_at, SubmissionModel.id)
        ).all()
        return [r.to_dto() for r in rows]

    def pending_steps_for_actor(
        self,
        user_id: UUID,
        role: Any = None,
    ) -> list[ApprovalStep]:
        """
        Approver inbox: pending steps the actor may decide.

        Only steps of pending, non-deleted submissions are returned, ordered
        by submission creation time and level.
        """
        parsed_role = parse_role(role)
        approver_filter = [ApprovalStepModel.approver_user_id == user_id]
        if parsed_role is not None:
            approver_filter.append(ApprovalStepModel.approver_role == parsed_role.value)

        rows = self.session.scalars(
            select(ApprovalStepModel)
            .join(SubmissionModel, SubmissionModel.id == ApprovalStepModel.submission_id)
            .where(
                ApprovalStepModel.decision == StepDecision.PENDING.value,
                ApprovalStepModel.deleted_at.is_(None),
                SubmissionModel.status == SubmissionStatus.PENDING.value,
                SubmissionModel.deleted_at.is_(None),
                or_(*approver_filter),
            )
            .order_by(SubmissionModel.created_at, SubmissionModel.id, ApprovalStepModel.level)
        ).all()

        steps = [r.to_dto() for r in rows]
        return [s for s in steps if is_authorized_approver(s, user_id, role)]
