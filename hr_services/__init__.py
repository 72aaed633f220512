"""
hr_services -- Transactional composition of the HR approval engine.

``create_workflow`` wires the production collaborators from an
``HRConfig``: the SQL user directory, the stored notification sender
behind the bounded dispatcher, and the SQL schedule adjuster.
"""

from __future__ import annotations

from hr_config import HRConfig, get_active_config
from hr_kernel.db.engine import get_session_factory, init_engine_from_url
from hr_services.approval_workflow import ApprovalWorkflow
from hr_services.notification_dispatch import (
    NotificationDispatcher,
    NotificationMessage,
)
from hr_services.notifications import (
    LoggingNotificationSender,
    StoredNotificationSender,
)
from hr_services.schedule_adjuster import SqlScheduleAdjuster
from hr_services.side_effects import SideEffectDispatcher, SideEffectReport
from hr_services.user_directory import SqlUserDirectory


def create_workflow(
    config: HRConfig | None = None,
    session_factory=None,
) -> tuple[ApprovalWorkflow, NotificationDispatcher]:
    """Build a production ``ApprovalWorkflow``.

    When ``session_factory`` is None the engine is initialized from
    ``config.database``.  The returned dispatcher is already started; the
    caller stops it on shutdown.
    """
    config = config or get_active_config()
    if session_factory is None:
        init_engine_from_url(
            config.database.url,
            echo=config.database.echo,
            pool_size=config.database.pool_size,
            max_overflow=config.database.max_overflow,
        )
        session_factory = get_session_factory()

    notifier = NotificationDispatcher(
        StoredNotificationSender(session_factory),
        queue_size=config.notifications.queue_size,
        shutdown_timeout_seconds=config.notifications.shutdown_timeout_seconds,
    )
    notifier.start()

    side_effects = SideEffectDispatcher(
        config, notifier, SqlScheduleAdjuster(session_factory),
    )
    workflow = ApprovalWorkflow(
        session_factory,
        config,
        directory_factory=SqlUserDirectory,
        side_effects=side_effects,
    )
    return workflow, notifier


__all__ = [
    "ApprovalWorkflow",
    "LoggingNotificationSender",
    "NotificationDispatcher",
    "NotificationMessage",
    "SideEffectDispatcher",
    "SideEffectReport",
    "SqlScheduleAdjuster",
    "SqlUserDirectory",
    "StoredNotificationSender",
    "create_workflow",
]
