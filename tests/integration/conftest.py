"""Shared wiring for workflow-level tests (committing sessions)."""

import pytest

from hr_services.approval_workflow import ApprovalWorkflow
from hr_services.notification_dispatch import NotificationDispatcher
from hr_services.side_effects import SideEffectDispatcher


@pytest.fixture
def dispatcher(notification_sender):
    """Started dispatcher over the recording sender; stopped at teardown."""
    d = NotificationDispatcher(notification_sender, queue_size=16)
    d.start()
    yield d
    d.stop(timeout=2.0)


@pytest.fixture
def side_effects(hr_config, dispatcher, schedule_adjuster):
    return SideEffectDispatcher(hr_config, dispatcher, schedule_adjuster)


@pytest.fixture
def workflow(session_factory, hr_config, user_directory, side_effects, deterministic_clock):
    return ApprovalWorkflow(
        session_factory,
        hr_config,
        directory_factory=lambda session: user_directory,
        side_effects=side_effects,
        clock=deterministic_clock,
    )
