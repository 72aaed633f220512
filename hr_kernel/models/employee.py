"""
Module: hr_kernel.models.employee
Responsibility: ORM persistence for employees, the source of truth for
    approver user references.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TimestampedBase


class EmployeeModel(TimestampedBase):
    """
    Employee account.

    Guarantees:
        - An employee resolves as an approver only while ``is_active`` is
          true and ``deleted_at`` is null.
    """

    __tablename__ = "employees"

    __table_args__ = (
        Index("ix_employees_active", "is_active", "deleted_at"),
    )

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Stored upper-case; see ApproverRole
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    is_active: Mapped[bool] = mapped_column(
        Boolean, default=True, nullable=False,
    )
    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Employee {self.id} {self.full_name} ({self.role})>"
