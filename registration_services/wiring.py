"""
Composition root for the registration workflow engine.

``build_registration_service`` assembles a RegistrationService and its
collaborators around one session.  Ports not given explicitly come from the
active configuration: templates, workflows and engine settings always;
groups and user e-mails from the SQL group directory, or from the
configuration when ``directory.source`` is ``config``.

Usage:
    with session_scope() as session:
        service = build_registration_service(session, erp=my_gateway)
        service.approve(registration_id, actor_id="u-1")
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from registration_config import RegistrationConfig, get_active_config
from registration_config.bridges import (
    ConfiguredGroupResolver,
    ConfiguredTemplateCatalog,
    ConfiguredWorkflowLookup,
    build_workflow_settings,
)
from registration_kernel.domain.clock import Clock, SystemClock
from registration_kernel.domain.ports import (
    ErpGateway,
    GroupMembershipResolver,
    TemplateCatalog,
    UserDirectory,
    WorkflowDefinitionLookup,
)
from registration_kernel.domain.workflow import WorkflowSettings
from registration_kernel.selectors.registration_selector import RegistrationSelector
from registration_kernel.services.approver_resolver import ApproverResolver
from registration_kernel.services.field_change_tracker import FieldChangeTracker
from registration_kernel.services.registration_service import RegistrationService
from registration_kernel.services.sequence_service import SequenceService
from registration_kernel.services.sync_trigger import SyncTrigger
from registration_kernel.services.workflow_event_recorder import WorkflowEventRecorder
from registration_kernel.services.workflow_snapshot_store import WorkflowSnapshotStore
from registration_services.group_directory import SqlGroupDirectory


@dataclass(frozen=True)
class RegistrationComponents:
    """Write and read side sharing one session."""

    service: RegistrationService
    selector: RegistrationSelector


def build_registration_service(
    session: Session,
    erp: ErpGateway,
    *,
    config: RegistrationConfig | None = None,
    templates: TemplateCatalog | None = None,
    workflows: WorkflowDefinitionLookup | None = None,
    groups: GroupMembershipResolver | None = None,
    users: UserDirectory | None = None,
    settings: WorkflowSettings | None = None,
    clock: Clock | None = None,
) -> RegistrationService:
    clock = clock or SystemClock()

    if templates is None or workflows is None or settings is None or groups is None:
        config = config or get_active_config()
        templates = templates or ConfiguredTemplateCatalog(config)
        workflows = workflows or ConfiguredWorkflowLookup(config)
        settings = settings or build_workflow_settings(config)

    if groups is None:
        if config.directory.source == "config":
            directory = ConfiguredGroupResolver(config)
        else:
            directory = SqlGroupDirectory(session)
        groups = directory
        users = users or directory

    sequences = SequenceService(session)
    events = WorkflowEventRecorder(session, sequences, clock)

    return RegistrationService(
        session,
        templates=templates,
        snapshots=WorkflowSnapshotStore(workflows),
        resolver=ApproverResolver(groups),
        field_tracker=FieldChangeTracker(session, clock),
        sync_trigger=SyncTrigger(session, erp, events, clock),
        events=events,
        sequences=sequences,
        users=users,
        clock=clock,
        settings=settings,
    )


def build_registration_components(
    session: Session,
    erp: ErpGateway,
    **kwargs,
) -> RegistrationComponents:
    return RegistrationComponents(
        service=build_registration_service(session, erp, **kwargs),
        selector=RegistrationSelector(session),
    )
