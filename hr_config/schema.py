"""
HR engine configuration schema.

Frozen dataclasses that the loader builds from YAML.  Every runtime
component receives these objects; none of them reads YAML itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hr_kernel.domain.approval import AggregationPolicy, ApproverRole, SubmissionKind

# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    """Decision aggregation and transaction retry settings."""

    aggregation_policy: AggregationPolicy = AggregationPolicy.ANY_APPROVAL_WINS
    max_lock_retries: int = 3


@dataclass(frozen=True)
class RolesConfig:
    """Roles allowed to act on other users' submissions."""

    admin: tuple[ApproverRole, ...] = ()


# ---------------------------------------------------------------------------
# Per-kind behavior
# ---------------------------------------------------------------------------


class ScheduleSync(str, Enum):
    """Schedule rewrite applied when a submission is approved."""

    LEAVE_DAYS_OFF = "leave_days_off"
    DAY_SWAP = "day_swap"


@dataclass(frozen=True)
class KindConfig:
    """What happens when a submission of one kind reaches a final status.

    ``schedule_sync`` names the schedule rewrite run on approval, and
    ``schedule_notification_event`` the message that reports it.
    """

    kind: SubmissionKind
    notification_event: str
    deeplink_prefix: str
    title: str
    related_table: str
    return_to_work: bool = False
    schedule_sync: ScheduleSync | None = None
    schedule_notification_event: str | None = None

    def deeplink(self, submission_id: object) -> str:
        return f"{self.deeplink_prefix.rstrip('/')}/{submission_id}"


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NotificationConfig:
    """Bounded delivery queue settings."""

    queue_size: int = 1000
    shutdown_timeout_seconds: float = 5.0
    schedule_deeplink: str = "/shifts"


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///hr_approvals.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class HRConfig:
    """Complete, validated engine configuration."""

    config_id: str
    version: int
    engine: EngineConfig
    roles: RolesConfig
    kinds: tuple[KindConfig, ...]
    notifications: NotificationConfig
    database: DatabaseConfig
    checksum: str = ""

    def kind(self, kind: SubmissionKind | str) -> KindConfig:
        """Settings for one submission kind.

        Raises:
            KeyError: kind not configured.
        """
        wanted = SubmissionKind(kind)
        for entry in self.kinds:
            if entry.kind == wanted:
                return entry
        raise KeyError(f"No configuration for submission kind {wanted.value!r}")
