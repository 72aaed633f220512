"""
hr_services.user_directory -- SQL-backed approver lookup.

Resolves approver user references against the ``employees`` table.  One
query per call, whatever the number of ids.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from hr_kernel.models.employee import EmployeeModel


class SqlUserDirectory:
    """``UserDirectory`` over the caller's session (reads only)."""

    def __init__(self, session: Session):
        self._session = session

    def resolve_existing(self, user_ids: set[UUID]) -> set[UUID]:
        if not user_ids:
            return set()
        rows = self._session.scalars(
            select(EmployeeModel.id).where(
                EmployeeModel.id.in_(list(user_ids)),
                EmployeeModel.is_active.is_(True),
                EmployeeModel.deleted_at.is_(None),
            )
        ).all()
        return set(rows)
