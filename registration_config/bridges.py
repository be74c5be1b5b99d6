"""
Config -> Kernel Bridges.

Adapters that expose a loaded ``RegistrationConfig`` through the kernel's
ports.  They live here (the producer) because the kernel must never import
``registration_config``.

Usage:
    config = get_active_config()
    templates = ConfiguredTemplateCatalog(config)
    workflows = ConfiguredWorkflowLookup(config)
    groups = ConfiguredGroupResolver(config)
    settings = build_workflow_settings(config)
"""

from __future__ import annotations

from registration_config.schema import RegistrationConfig, WorkflowDef
from registration_kernel.domain.ports import TemplateInfo
from registration_kernel.domain.workflow import (
    EmptyLevelPolicy,
    WorkflowDefinition,
    WorkflowLevel,
    WorkflowSettings,
)
from registration_kernel.exceptions import TemplateNotFoundError, WorkflowNotFoundError
from registration_kernel.logging_config import configure_logging


def build_workflow_settings(config: RegistrationConfig) -> WorkflowSettings:
    return WorkflowSettings(
        max_advance_iterations=config.workflow.max_advance_iterations,
        empty_level_policy=EmptyLevelPolicy(config.workflow.empty_level_policy),
        tracking_number_digits=config.workflow.tracking_number_digits,
    )


def configure_logging_from(config: RegistrationConfig) -> None:
    configure_logging(level=config.logging.level)


def to_workflow_definition(workflow: WorkflowDef) -> WorkflowDefinition:
    return WorkflowDefinition(
        workflow_id=workflow.workflow_id,
        name=workflow.name,
        template_id=workflow.template_id,
        version=workflow.version,
        levels=tuple(
            WorkflowLevel(
                level_order=level.level_order,
                level_name=level.level_name,
                approver_ids=level.approver_ids,
                approver_group_ids=level.approver_group_ids,
                is_parallel=level.is_parallel,
                editable_fields=level.editable_fields,
                conditions=level.conditions,
            )
            for level in workflow.levels
        ),
    )


class ConfiguredTemplateCatalog:
    """TemplateCatalog over the ``templates`` section."""

    def __init__(self, config: RegistrationConfig):
        self._config = config

    def get_template(self, template_id: str) -> TemplateInfo:
        template = self._config.get_template(template_id)
        if template is None or not template.is_active:
            raise TemplateNotFoundError(template_id)
        return TemplateInfo(
            template_id=template.template_id,
            table_name=template.table_name,
            field_names=template.fields,
            required_fields=template.required_fields,
            is_active=template.is_active,
        )


class ConfiguredWorkflowLookup:
    """WorkflowDefinitionLookup over the ``workflows`` section.

    When several active workflows exist for a template the highest
    version wins.
    """

    def __init__(self, config: RegistrationConfig):
        self._config = config

    def get_active_workflow(self, template_id: str) -> WorkflowDefinition:
        candidates = [
            w for w in self._config.workflows
            if w.template_id == template_id and w.is_active
        ]
        if not candidates:
            raise WorkflowNotFoundError(template_id)
        return to_workflow_definition(max(candidates, key=lambda w: w.version))


class ConfiguredGroupResolver:
    """GroupMembershipResolver and UserDirectory over ``groups`` / ``users``.

    Inactive groups contribute nobody; users listed as inactive are
    dropped.  Users absent from the ``users`` section count as active.
    """

    def __init__(self, config: RegistrationConfig):
        self._groups = {g.group_id: g for g in config.groups}
        self._users = {u.user_id: u for u in config.users}

    def get_user_ids_from_groups(self, group_ids: list[str]) -> list[str]:
        members: list[str] = []
        seen: set[str] = set()
        for group_id in group_ids:
            group = self._groups.get(group_id)
            if group is None or not group.is_active:
                continue
            for user_id in group.members:
                user = self._users.get(user_id)
                if user is not None and not user.is_active:
                    continue
                if user_id not in seen:
                    seen.add(user_id)
                    members.append(user_id)
        return members

    def get_emails(self, user_ids: list[str]) -> dict[str, str]:
        return {
            uid: self._users[uid].email
            for uid in user_ids
            if uid in self._users and self._users[uid].email
        }
