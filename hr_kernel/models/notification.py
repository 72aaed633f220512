"""
Module: hr_kernel.models.notification
Responsibility: ORM persistence for the in-app notification inbox.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from hr_kernel.db.base import TimestampedBase, UUIDString


class NotificationModel(TimestampedBase):
    """
    Notification delivered to a user's inbox.

    Guarantees:
        - Rows are written once per notification; only ``read_at`` changes
          afterwards.
    """

    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_recipient", "recipient_id", "read_at"),
    )

    recipient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(
        JSON, default=dict, nullable=False,
    )
    deeplink: Mapped[str | None] = mapped_column(String(255), nullable=True)
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Notification {self.event_type} -> {self.recipient_id}>"
