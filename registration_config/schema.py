"""
Registration configuration schema.

Frozen dataclasses for everything the registration engine reads from
configuration: database and logging settings, engine tunables, form
templates, per-template approval workflows, approver groups and the user
directory.  YAML documents are parsed into these types by the loader;
``bridges`` turns them into kernel ports.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``init_engine_from_url``."""

    url: str = "sqlite:///registration.db"
    echo: bool = False
    pool_size: int = 20
    busy_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class DirectoryConfig:
    """Where approver groups and user e-mails are read from.

    ``database`` uses the SQL group directory tables; ``config`` uses the
    ``groups`` and ``users`` sections of this file.
    """

    source: str = "database"  # database | config


@dataclass(frozen=True)
class WorkflowEngineConfig:
    """Engine tunables (see ``WorkflowSettings``)."""

    max_advance_iterations: int = 100
    empty_level_policy: str = "skip"  # skip | fail
    tracking_number_digits: int = 5


@dataclass(frozen=True)
class TemplateDef:
    """A form template: target ERP table and field rules."""

    template_id: str
    table_name: str
    fields: tuple[str, ...] = ()
    required_fields: tuple[str, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class WorkflowLevelDef:
    level_order: int
    level_name: str
    approver_ids: tuple[str, ...] = ()
    approver_group_ids: tuple[str, ...] = ()
    is_parallel: bool = True
    editable_fields: tuple[str, ...] = ()
    conditions: dict[str, Any] | None = None


@dataclass(frozen=True)
class WorkflowDef:
    """An approval workflow bound to one template."""

    workflow_id: str
    template_id: str
    name: str
    version: int = 1
    is_active: bool = True
    levels: tuple[WorkflowLevelDef, ...] = ()


@dataclass(frozen=True)
class GroupDef:
    group_id: str
    name: str
    members: tuple[str, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class UserDef:
    user_id: str
    email: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class RegistrationConfig:
    """The complete, validated configuration of one deployment."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    workflow: WorkflowEngineConfig = field(default_factory=WorkflowEngineConfig)
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
    templates: tuple[TemplateDef, ...] = ()
    workflows: tuple[WorkflowDef, ...] = ()
    groups: tuple[GroupDef, ...] = ()
    users: tuple[UserDef, ...] = ()
    checksum: str = ""

    def get_template(self, template_id: str) -> TemplateDef | None:
        for template in self.templates:
            if template.template_id == template_id:
                return template
        return None
