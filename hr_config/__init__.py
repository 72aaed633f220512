"""
hr_config -- single public entrypoint for approval engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a frozen ``HRConfig``.

Architecture position:
    Configuration -- sits above ``hr_kernel`` and below ``hr_services``.
    The kernel MUST NEVER import from ``hr_config``; services translate
    the config into constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- configuration file missing.
    - ``ValueError`` -- validation failures, all listed in the message.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``HR_CONFIG_TRACE`` log entry with the config id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hr_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_config,
    validate_document,
)
from hr_config.schema import (
    DatabaseConfig,
    EngineConfig,
    HRConfig,
    KindConfig,
    NotificationConfig,
    RolesConfig,
    ScheduleSync,
)

_logger = logging.getLogger("hr_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(config_path: Path | str | None = None) -> HRConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: YAML file to load.  Defaults to the packaged
            ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(path)

    errors = validate_document(data)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    config = parse_config(data, checksum=compute_checksum(data))

    _logger.info(
        "HR_CONFIG_TRACE",
        extra={
            "trace_type": "HR_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "aggregation_policy": config.engine.aggregation_policy.value,
            "kind_count": len(config.kinds),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DatabaseConfig",
    "EngineConfig",
    "HRConfig",
    "KindConfig",
    "NotificationConfig",
    "RolesConfig",
    "ScheduleSync",
    "get_active_config",
]
