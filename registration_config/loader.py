"""
Configuration Loader (``registration_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the frozen
``registration_config.schema`` types.  Runtime callers go through
``registration_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Required keys raise ``KeyError``; there are no silent defaults for them.
* ``compute_checksum`` is deterministic over the parsed document, so the
  same YAML always yields the same checksum.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Structural problems (unknown template, duplicate level order...)
  -> ``ValueError`` from ``validate_config``.
"""

from __future__ import annotations

import hashlib
import json
import os
from dataclasses import replace
from pathlib import Path
from typing import Any

import yaml

from registration_config.schema import (
    DatabaseConfig,
    DirectoryConfig,
    GroupDef,
    LoggingConfig,
    RegistrationConfig,
    TemplateDef,
    UserDef,
    WorkflowDef,
    WorkflowEngineConfig,
    WorkflowLevelDef,
)

ENV_DATABASE_URL = "REGISTRATION_DATABASE_URL"
ENV_LOG_LEVEL = "REGISTRATION_LOG_LEVEL"

_EMPTY_LEVEL_POLICIES = frozenset({"skip", "fail"})
_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_DIRECTORY_SOURCES = frozenset({"database", "config"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a raw configuration document."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _strings(values: Any) -> tuple[str, ...]:
    return tuple(str(v) for v in (values or ()))


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    return DatabaseConfig(
        url=data.get("url", DatabaseConfig.url),
        echo=bool(data.get("echo", False)),
        pool_size=int(data.get("pool_size", DatabaseConfig.pool_size)),
        busy_timeout_seconds=float(
            data.get("busy_timeout_seconds", DatabaseConfig.busy_timeout_seconds)
        ),
    )


def parse_workflow_engine(data: dict[str, Any]) -> WorkflowEngineConfig:
    return WorkflowEngineConfig(
        max_advance_iterations=int(data.get("max_advance_iterations", 100)),
        empty_level_policy=str(data.get("empty_level_policy", "skip")).lower(),
        tracking_number_digits=int(data.get("tracking_number_digits", 5)),
    )


def parse_template(template_id: str, data: dict[str, Any]) -> TemplateDef:
    """Parse one entry of the ``templates`` mapping (keyed by template id)."""
    return TemplateDef(
        template_id=str(template_id),
        table_name=data["table_name"],
        fields=_strings(data.get("fields")),
        required_fields=_strings(data.get("required_fields")),
        is_active=bool(data.get("is_active", True)),
    )


def parse_level(data: dict[str, Any]) -> WorkflowLevelDef:
    order = int(data["level_order"])
    return WorkflowLevelDef(
        level_order=order,
        level_name=data.get("level_name", f"Level {order}"),
        approver_ids=_strings(data.get("approver_ids")),
        approver_group_ids=_strings(data.get("approver_group_ids")),
        is_parallel=bool(data.get("is_parallel", True)),
        editable_fields=_strings(data.get("editable_fields")),
        conditions=data.get("conditions"),
    )


def parse_workflow(data: dict[str, Any]) -> WorkflowDef:
    return WorkflowDef(
        workflow_id=str(data["workflow_id"]),
        template_id=str(data["template_id"]),
        name=data.get("name", str(data["workflow_id"])),
        version=int(data.get("version", 1)),
        is_active=bool(data.get("is_active", True)),
        levels=tuple(parse_level(level) for level in data.get("levels", ())),
    )


def parse_group(group_id: str, data: dict[str, Any]) -> GroupDef:
    return GroupDef(
        group_id=str(group_id),
        name=data.get("name", str(group_id)),
        members=_strings(data.get("members")),
        is_active=bool(data.get("is_active", True)),
    )


def parse_user(user_id: str, data: dict[str, Any] | None) -> UserDef:
    data = data or {}
    return UserDef(
        user_id=str(user_id),
        email=data.get("email", ""),
        is_active=bool(data.get("is_active", True)),
    )


def parse_config(data: dict[str, Any]) -> RegistrationConfig:
    """Parse a raw configuration document (already loaded from YAML)."""
    return RegistrationConfig(
        database=parse_database(data.get("database") or {}),
        logging=LoggingConfig(
            level=str((data.get("logging") or {}).get("level", "INFO")).upper()
        ),
        workflow=parse_workflow_engine(data.get("workflow") or {}),
        directory=DirectoryConfig(
            source=str((data.get("directory") or {}).get("source", "database")).lower()
        ),
        templates=tuple(
            parse_template(tid, tdata)
            for tid, tdata in (data.get("templates") or {}).items()
        ),
        workflows=tuple(parse_workflow(w) for w in data.get("workflows") or ()),
        groups=tuple(
            parse_group(gid, gdata) for gid, gdata in (data.get("groups") or {}).items()
        ),
        users=tuple(
            parse_user(uid, udata) for uid, udata in (data.get("users") or {}).items()
        ),
        checksum=compute_checksum(data),
    )


def apply_env_overrides(
    config: RegistrationConfig,
    environ: dict[str, str] | None = None,
) -> RegistrationConfig:
    """Apply ``REGISTRATION_DATABASE_URL`` / ``REGISTRATION_LOG_LEVEL``."""
    env = os.environ if environ is None else environ
    if env.get(ENV_DATABASE_URL):
        config = replace(
            config, database=replace(config.database, url=env[ENV_DATABASE_URL]),
        )
    if env.get(ENV_LOG_LEVEL):
        config = replace(
            config, logging=LoggingConfig(level=env[ENV_LOG_LEVEL].upper()),
        )
    return config


def validate_config(config: RegistrationConfig) -> list[str]:
    """Return every structural problem found; empty when the config is usable."""
    errors: list[str] = []

    if config.workflow.empty_level_policy not in _EMPTY_LEVEL_POLICIES:
        errors.append(
            f"workflow.empty_level_policy must be one of "
            f"{sorted(_EMPTY_LEVEL_POLICIES)}, got {config.workflow.empty_level_policy!r}"
        )
    if config.workflow.max_advance_iterations < 1:
        errors.append("workflow.max_advance_iterations must be >= 1")
    if config.logging.level not in _LOG_LEVELS:
        errors.append(
            f"logging.level must be one of {sorted(_LOG_LEVELS)}, got {config.logging.level!r}"
        )
    if config.directory.source not in _DIRECTORY_SOURCES:
        errors.append(
            f"directory.source must be one of {sorted(_DIRECTORY_SOURCES)}, "
            f"got {config.directory.source!r}"
        )

    template_ids = {t.template_id for t in config.templates}
    group_ids = {g.group_id for g in config.groups}

    for template in config.templates:
        unknown = set(template.required_fields) - set(template.fields)
        if template.fields and unknown:
            errors.append(
                f"template {template.template_id}: required fields not declared: "
                f"{sorted(unknown)}"
            )

    active_per_template: dict[str, int] = {}
    for workflow in config.workflows:
        if workflow.template_id not in template_ids:
            errors.append(
                f"workflow {workflow.workflow_id}: unknown template {workflow.template_id}"
            )
        orders = [level.level_order for level in workflow.levels]
        if len(orders) != len(set(orders)):
            errors.append(f"workflow {workflow.workflow_id}: duplicate level orders {orders}")
        if any(order < 1 for order in orders):
            errors.append(f"workflow {workflow.workflow_id}: level orders must be >= 1")
        if orders and 1 not in orders:
            errors.append(f"workflow {workflow.workflow_id}: no level with order 1")
        for level in workflow.levels:
            for group_id in level.approver_group_ids:
                if config.groups and group_id not in group_ids:
                    errors.append(
                        f"workflow {workflow.workflow_id} level {level.level_order}: "
                        f"unknown group {group_id}"
                    )
        if workflow.is_active:
            key = f"{workflow.template_id}@{workflow.version}"
            active_per_template[key] = active_per_template.get(key, 0) + 1

    for key, count in active_per_template.items():
        if count > 1:
            errors.append(f"more than one active workflow for {key}")

    return errors


def load_config(path: Path) -> RegistrationConfig:
    """Load, parse and validate ``path``.  Environment overrides not applied."""
    config = parse_config(load_yaml_file(path))
    errors = validate_config(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )
    return config
