"""
Module: registration_kernel.selectors.registration_selector
Responsibility: Read-only queries over registrations: lookup and listing,
    the pending-approval inbox of a user, the field change history, the
    workflow event log and what the current level may edit.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Read-only: no mutations performed on any queried data.
    - Editable fields are read from the frozen workflow snapshot only.
    - An approver's inbox only lists rows at the registration's current
      level while it is awaiting approval.

Failure modes:
    - RegistrationNotFoundError from every per-registration query when the
      id is unknown.
"""

from uuid import UUID

from sqlalchemy import select

from registration_kernel.domain.registration import (
    AWAITING_APPROVAL_STATUSES,
    ApprovalAction,
    EditableFieldsInfo,
    FieldChangeRecord,
    PendingApproval,
    RegistrationRequest,
    RegistrationStatus,
    WorkflowEventRecord,
)
from registration_kernel.domain.workflow import WorkflowDefinition
from registration_kernel.exceptions import RegistrationNotFoundError
from registration_kernel.models.registration import (
    ApprovalModel,
    FieldChangeModel,
    RegistrationRequestModel,
    WorkflowEventModel,
)
from registration_kernel.selectors.base import BaseSelector

_AWAITING = [s.value for s in AWAITING_APPROVAL_STATUSES]


class RegistrationSelector(BaseSelector[RegistrationRequestModel]):
    """Read-side queries for registrations."""

    def get_registration(self, registration_id: UUID) -> RegistrationRequest:
        return self._load(registration_id).to_dto()

    def find_all(
        self,
        status: RegistrationStatus | None = None,
        requester_id: str | None = None,
        template_id: str | None = None,
    ) -> list[RegistrationRequest]:
        """Registrations matching every given filter, newest first."""
        query = select(RegistrationRequestModel)
        if status is not None:
            query = query.where(RegistrationRequestModel.status == status.value)
        if requester_id is not None:
            query = query.where(RegistrationRequestModel.requester_id == requester_id)
        if template_id is not None:
            query = query.where(RegistrationRequestModel.template_id == template_id)
        query = query.order_by(
            RegistrationRequestModel.created_at.desc(),
            RegistrationRequestModel.tracking_number.desc(),
        )

        return [m.to_dto() for m in self.session.execute(query).scalars().all()]

    def get_pending_approvals_for(self, user_id: str) -> list[PendingApproval]:
        """Rows waiting on ``user_id`` at the current level of live registrations."""
        rows = self.session.execute(
            select(ApprovalModel, RegistrationRequestModel)
            .join(
                RegistrationRequestModel,
                RegistrationRequestModel.id == ApprovalModel.request_id,
            )
            .where(
                ApprovalModel.approver_id == user_id,
                ApprovalModel.action == ApprovalAction.PENDING.value,
                ApprovalModel.level == RegistrationRequestModel.current_level,
                RegistrationRequestModel.status.in_(_AWAITING),
            )
            .order_by(
                RegistrationRequestModel.submitted_at,
                RegistrationRequestModel.tracking_number,
            )
        ).all()

        return [
            PendingApproval(
                approval_id=approval.id,
                level=approval.level,
                registration=registration.to_dto(),
            )
            for approval, registration in rows
        ]

    def get_field_change_history(self, registration_id: UUID) -> list[FieldChangeRecord]:
        self._load(registration_id)
        changes = self.session.execute(
            select(FieldChangeModel)
            .where(FieldChangeModel.request_id == registration_id)
            .order_by(FieldChangeModel.changed_at, FieldChangeModel.field_name)
        ).scalars().all()
        return [c.to_dto() for c in changes]

    def get_workflow_events(self, registration_id: UUID) -> list[WorkflowEventRecord]:
        self._load(registration_id)
        events = self.session.execute(
            select(WorkflowEventModel)
            .where(WorkflowEventModel.request_id == registration_id)
            .order_by(WorkflowEventModel.seq)
        ).scalars().all()
        return [e.to_dto() for e in events]

    def get_editable_fields_info(self, registration_id: UUID) -> EditableFieldsInfo:
        """Editable fields of the current level, from the frozen snapshot.

        Outside PENDING_APPROVAL / IN_APPROVAL nothing is editable.
        """
        registration = self._load(registration_id)
        level_name = None
        editable: tuple[str, ...] = ()

        if registration.workflow_snapshot:
            workflow = WorkflowDefinition.from_snapshot(registration.workflow_snapshot)
            level = workflow.get_level(registration.current_level)
            if level is not None:
                level_name = level.level_name
                if RegistrationStatus(registration.status) in AWAITING_APPROVAL_STATUSES:
                    editable = level.editable_fields

        return EditableFieldsInfo(
            request_id=registration.id,
            current_level=registration.current_level,
            level_name=level_name,
            editable_fields=editable,
            form_data=dict(registration.form_data or {}),
            can_edit=bool(editable),
        )

    def _load(self, registration_id: UUID) -> RegistrationRequestModel:
        registration = self.session.execute(
            select(RegistrationRequestModel)
            .where(RegistrationRequestModel.id == registration_id)
        ).scalar_one_or_none()
        if registration is None:
            raise RegistrationNotFoundError(str(registration_id))
        return registration
