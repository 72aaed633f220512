"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services inherit
    from BaseService, receiving a SQLAlchemy ``Session`` that they use
    via ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (ApprovalWorkflow or a test harness) owns commit/rollback.
    - Per-submission serialization: every write path starts by locking
      the submission row through ``load_submission_for_update``.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.db.base import Base
from hr_kernel.exceptions import SubmissionNotFoundError
from hr_kernel.models.submission import SubmissionModel

ModelType = TypeVar("ModelType", bound=Base)


def load_submission_for_update(
    session: Session,
    submission_id: UUID,
) -> SubmissionModel:
    """
    Load a live submission and lock its row (SELECT ... FOR UPDATE).

    The row lock is held until the caller's transaction ends.  On SQLite
    the FOR UPDATE clause is omitted and the version column is the only
    guard.

    Raises:
        SubmissionNotFoundError: missing or soft-deleted submission.
    """
    stmt = (
        select(SubmissionModel)
        .where(
            SubmissionModel.id == submission_id,
            SubmissionModel.deleted_at.is_(None),
        )
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    submission = session.scalars(stmt).one_or_none()
    if submission is None:
        raise SubmissionNotFoundError(str(submission_id))
    return submission


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``hr_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
