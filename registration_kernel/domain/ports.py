"""
Capability interfaces consumed by the workflow engine.

Responsibility
--------------
Structural protocols for the subsystems the engine depends on but does not
own: group membership, ERP synchronization, workflow and template lookup,
and the user directory.  Any storage or transport may implement them; the
test suite implements them with in-memory fakes.

Architecture position
---------------------
**Kernel domain layer** -- interfaces and plain value types only.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from registration_kernel.domain.registration import OperationType
from registration_kernel.domain.workflow import WorkflowDefinition


@dataclass(frozen=True)
class TemplateInfo:
    """What the engine needs to know about a form template."""

    template_id: str
    table_name: str
    field_names: tuple[str, ...] = ()
    required_fields: tuple[str, ...] = ()
    is_active: bool = True


@runtime_checkable
class GroupMembershipResolver(Protocol):
    """Resolves approver groups to user ids.

    Only members of active groups who are themselves active are returned.
    """

    def get_user_ids_from_groups(self, group_ids: list[str]) -> list[str]:
        ...


@runtime_checkable
class ErpGateway(Protocol):
    """Persists an approved registration in the external ERP.

    Returns the ERP record id.  Raises on any failure; enforces its own
    timeout.
    """

    def sync_record(
        self,
        operation_type: OperationType,
        table_name: str,
        original_external_id: str | None,
        form_data: dict[str, Any],
    ) -> str:
        ...


@runtime_checkable
class WorkflowDefinitionLookup(Protocol):
    """Returns the active workflow for a template.

    Raises WorkflowNotFoundError when none is active.
    """

    def get_active_workflow(self, template_id: str) -> WorkflowDefinition:
        ...


@runtime_checkable
class TemplateCatalog(Protocol):
    """Returns template metadata. Raises TemplateNotFoundError when unknown."""

    def get_template(self, template_id: str) -> TemplateInfo:
        ...


@runtime_checkable
class UserDirectory(Protocol):
    """Maps user ids to e-mail addresses; unknown ids are omitted."""

    def get_emails(self, user_ids: list[str]) -> dict[str, str]:
        ...
