"""
Configuration Loader (``hr_config.loader``).

Responsibility
--------------
Loads the YAML configuration file, validates the raw document and parses
it into the frozen ``hr_config.schema`` dataclasses.  The single public
entry point for runtime config is ``hr_config.get_active_config()``.

Invariants enforced
-------------------
* Validation collects every problem before parsing; nothing is silently
  defaulted for required fields.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed document for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid content  -> ``validate_document`` returns the error list.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from hr_config.schema import (
    DatabaseConfig,
    EngineConfig,
    HRConfig,
    KindConfig,
    NotificationConfig,
    RolesConfig,
    ScheduleSync,
)
from hr_kernel.domain.approval import AggregationPolicy, ApproverRole, SubmissionKind


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a parsed document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_document(data: dict[str, Any]) -> list[str]:
    """Return every problem found in a raw configuration document."""
    errors: list[str] = []

    if not data.get("config_id"):
        errors.append("config_id is required")
    if not _is_int(data.get("version")):
        errors.append("version must be an integer")

    engine = data.get("engine") or {}
    policy = engine.get("aggregation_policy", AggregationPolicy.ANY_APPROVAL_WINS.value)
    if policy not in {p.value for p in AggregationPolicy}:
        errors.append(f"engine.aggregation_policy: unknown policy {policy!r}")
    retries = engine.get("max_lock_retries", 3)
    if not _is_int(retries) or retries < 0:
        errors.append("engine.max_lock_retries must be an integer >= 0")

    roles = data.get("roles") or {}
    for role in roles.get("admin") or []:
        if ApproverRole.parse(role) is None:
            errors.append(f"roles.admin: unknown role {role!r}")

    kinds = data.get("kinds") or {}
    for kind in SubmissionKind:
        entry = kinds.get(kind.value)
        if not isinstance(entry, dict):
            errors.append(f"kinds.{kind.value} is not configured")
            continue
        for key in ("notification_event", "deeplink_prefix", "title", "related_table"):
            if not entry.get(key):
                errors.append(f"kinds.{kind.value}.{key} is required")
        if not isinstance(entry.get("return_to_work", False), bool):
            errors.append(f"kinds.{kind.value}.return_to_work must be a boolean")
        sync = entry.get("schedule_sync")
        if sync is not None and sync not in {s.value for s in ScheduleSync}:
            errors.append(f"kinds.{kind.value}.schedule_sync: unknown mode {sync!r}")
        if sync is not None and not entry.get("schedule_notification_event"):
            errors.append(
                f"kinds.{kind.value}.schedule_notification_event is required "
                "with schedule_sync"
            )
    for name in kinds:
        if name not in {k.value for k in SubmissionKind}:
            errors.append(f"kinds.{name}: unknown submission kind")

    notifications = data.get("notifications") or {}
    queue_size = notifications.get("queue_size", 1000)
    if not _is_int(queue_size) or queue_size < 1:
        errors.append("notifications.queue_size must be an integer >= 1")
    timeout = notifications.get("shutdown_timeout_seconds", 5.0)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 0:
        errors.append("notifications.shutdown_timeout_seconds must be a number >= 0")

    database = data.get("database") or {}
    for key in ("pool_size", "max_overflow"):
        value = database.get(key, 0)
        if not _is_int(value) or value < 0:
            errors.append(f"database.{key} must be an integer >= 0")

    return errors


def parse_kind(name: str, data: dict[str, Any]) -> KindConfig:
    """Parse a ``KindConfig`` from one ``kinds.<name>`` entry."""
    return KindConfig(
        kind=SubmissionKind(name),
        notification_event=data["notification_event"],
        deeplink_prefix=data["deeplink_prefix"],
        title=data["title"],
        related_table=data["related_table"],
        return_to_work=data.get("return_to_work", False),
        schedule_sync=(
            ScheduleSync(data["schedule_sync"]) if data.get("schedule_sync") else None
        ),
        schedule_notification_event=data.get("schedule_notification_event"),
    )


def parse_config(data: dict[str, Any], checksum: str = "") -> HRConfig:
    """Build an ``HRConfig`` from a document that passed validation."""
    engine = data.get("engine") or {}
    roles = data.get("roles") or {}
    notifications = data.get("notifications") or {}
    database = data.get("database") or {}

    return HRConfig(
        config_id=data["config_id"],
        version=data["version"],
        engine=EngineConfig(
            aggregation_policy=AggregationPolicy(
                engine.get("aggregation_policy", AggregationPolicy.ANY_APPROVAL_WINS.value)
            ),
            max_lock_retries=engine.get("max_lock_retries", 3),
        ),
        roles=RolesConfig(
            admin=tuple(ApproverRole.parse(r) for r in roles.get("admin") or []),
        ),
        kinds=tuple(
            parse_kind(kind.value, data["kinds"][kind.value]) for kind in SubmissionKind
        ),
        notifications=NotificationConfig(
            queue_size=notifications.get("queue_size", 1000),
            shutdown_timeout_seconds=float(
                notifications.get("shutdown_timeout_seconds", 5.0)
            ),
            schedule_deeplink=notifications.get(
                "schedule_deeplink", NotificationConfig.schedule_deeplink,
            ),
        ),
        database=DatabaseConfig(
            url=database.get("url", DatabaseConfig.url),
            echo=bool(database.get("echo", False)),
            pool_size=database.get("pool_size", 20),
            max_overflow=database.get("max_overflow", 10),
        ),
        checksum=checksum,
    )
