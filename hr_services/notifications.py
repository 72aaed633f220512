"""
hr_services.notifications -- Notification senders.

``StoredNotificationSender`` writes the in-app inbox row in its own
transaction.  ``LoggingNotificationSender`` only logs, for development.
Both implement ``NotificationSender``; delivery is driven by
``NotificationDispatcher`` on its worker thread.
"""

from __future__ import annotations

from typing import Any, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from hr_kernel.logging_config import get_logger
from hr_kernel.models.notification import NotificationModel

logger = get_logger("services.notifications")


class StoredNotificationSender:
    """Persists one ``notifications`` row per message."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def send(
        self,
        event_type: str,
        recipient_user_id: UUID,
        payload: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> None:
        options = options or {}
        session = self._session_factory()
        try:
            session.add(
                NotificationModel(
                    recipient_id=recipient_user_id,
                    event_type=event_type,
                    title=payload.get("title") or event_type,
                    body=payload.get("body") or "",
                    payload=payload,
                    deeplink=options.get("deeplink"),
                )
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


class LoggingNotificationSender:
    """Logs each notification instead of delivering it."""

    def send(
        self,
        event_type: str,
        recipient_user_id: UUID,
        payload: dict[str, Any],
        options: dict[str, Any] | None = None,
    ) -> None:
        logger.info(
            "notification_logged",
            extra={
                "event_type": event_type,
                "recipient_user_id": str(recipient_user_id),
                "payload": payload,
                "options": options or {},
            },
        )
