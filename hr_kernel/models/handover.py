"""
Module: hr_kernel.models.handover
Responsibility: Colleagues tagged to cover a requester's work while a
    submission is in effect.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A user is tagged at most once per submission (UNIQUE).
    - Rows are replaced as a set by the reconciliation service, inside the
      same transaction as the chain edit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from hr_kernel.db.base import TimestampedBase, UUIDString

if TYPE_CHECKING:
    from hr_kernel.models.submission import SubmissionModel


class HandoverModel(TimestampedBase):
    """One tagged delegate of one submission."""

    __tablename__ = "submission_handovers"

    __table_args__ = (
        UniqueConstraint(
            "submission_id", "tagged_user_id",
            name="uq_submission_handovers_user",
        ),
    )

    submission_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("submissions.id"),
        nullable=False,
    )
    tagged_user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    submission: Mapped["SubmissionModel"] = relationship(
        "SubmissionModel",
        back_populates="handovers",
    )

    def __repr__(self) -> str:
        return f"<Handover {self.submission_id} -> {self.tagged_user_id}>"
