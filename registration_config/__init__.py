"""
registration_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  It locates the YAML document, parses and validates it,
    applies the environment overrides and emits one
    ``REGISTRATION_CONFIG_TRACE`` log entry.

Architecture position:
    Configuration.  Sits above ``registration_kernel`` and below
    ``registration_services``.  The kernel never imports this package;
    ``registration_config.bridges`` turns a loaded configuration into
    kernel ports.

Failure modes:
    - ``FileNotFoundError`` when the configuration file does not exist.
    - ``ValueError`` on structural validation failures.
"""

from __future__ import annotations

import os
from pathlib import Path

from registration_config.loader import apply_env_overrides, load_config
from registration_config.schema import RegistrationConfig
from registration_kernel.logging_config import get_logger

_logger = get_logger("config")

ENV_CONFIG_PATH = "REGISTRATION_CONFIG"

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "defaults" / "registration.yaml"


def get_active_config(config_path: Path | None = None) -> RegistrationConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``config_path``, then the
    ``REGISTRATION_CONFIG`` environment variable, then the packaged
    defaults.
    """
    path = config_path or (
        Path(os.environ[ENV_CONFIG_PATH]) if os.environ.get(ENV_CONFIG_PATH) else None
    ) or _DEFAULT_CONFIG_FILE

    config = apply_env_overrides(load_config(path))

    _logger.info(
        "REGISTRATION_CONFIG_TRACE",
        extra={
            "trace_type": "REGISTRATION_CONFIG_TRACE",
            "config_path": str(path),
            "checksum": config.checksum,
            "template_count": len(config.templates),
            "workflow_count": len(config.workflows),
            "group_count": len(config.groups),
            "empty_level_policy": config.workflow.empty_level_policy,
        },
    )
    return config


__all__ = ["RegistrationConfig", "get_active_config"]
