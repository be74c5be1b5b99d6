"""
Module: registration_kernel.models.registration
Responsibility: ORM persistence for registration requests, their per-level
    approval rows, the field change audit trail and the workflow event log.
Architecture position: Kernel > Models.  May import from db/base.py and
    exceptions only.

Invariants enforced:
    - Optimistic versioning: RegistrationRequestModel.version is the mapper's
      version_id_col; a flush against a stale row raises StaleDataError.
    - Approval uniqueness: UNIQUE(request_id, level, approver_id) -- an
      approver has at most one row per level.
    - Approval finality: an approval row leaves PENDING at most once and is
      never deleted.
    - Append-only audit: field change and workflow event rows cannot be
      updated or deleted (ORM listeners below).
    - workflow_snapshot is write-once: once set it cannot be replaced.

Failure modes:
    - IntegrityError on a duplicate approval row.
    - ImmutabilityViolationError on any forbidden UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, attributes, mapped_column, relationship

from registration_kernel.db.base import Base, JsonDocument, TrackedBase, UUIDString
from registration_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from registration_kernel.domain.registration import (
        ApprovalRecord,
        FieldChangeRecord,
        RegistrationRequest,
        WorkflowEventRecord,
    )


class RegistrationRequestModel(TrackedBase):
    """
    Persistent registration request.

    Contract:
        Status transitions are validated by RegistrationService against
        REGISTRATION_TRANSITIONS before being written here.

    Guarantees:
        - tracking_number is unique.
        - current_level never decreases (service-enforced).
        - version increments on every UPDATE.
    """

    __tablename__ = "registration_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'PENDING_APPROVAL', 'IN_APPROVAL', 'APPROVED', "
            "'REJECTED', 'SYNCING', 'SYNCED', 'SYNC_FAILED')",
            name="ck_registration_requests_valid_status",
        ),
        CheckConstraint(
            "operation_type IN ('NEW', 'ALTERATION')",
            name="ck_registration_requests_operation_type",
        ),
        CheckConstraint(
            "current_level >= 0",
            name="ck_registration_requests_level_non_negative",
        ),
        UniqueConstraint("tracking_number", name="uq_registration_tracking_number"),
        Index("ix_registration_requests_status", "status"),
        Index("ix_registration_requests_requester", "requester_id", "created_at"),
        Index("ix_registration_requests_template", "template_id"),
    )

    tracking_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    template_id: Mapped[str] = mapped_column(String(100), nullable=False)
    source_table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_id: Mapped[str] = mapped_column(String(100), nullable=False)
    requester_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    form_data: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False)
    operation_type: Mapped[str] = mapped_column(String(20), nullable=False, default="NEW")
    original_external_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="DRAFT")
    current_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    workflow_snapshot: Mapped[dict[str, Any] | None] = mapped_column(
        JsonDocument, nullable=True,
    )
    external_record_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    sync_log: Mapped[dict[str, Any] | None] = mapped_column(JsonDocument, nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    approved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    synced_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    approvals: Mapped[list["ApprovalModel"]] = relationship(
        "ApprovalModel",
        back_populates="request",
        order_by="ApprovalModel.level",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return (
            f"<RegistrationRequest {self.id} {self.tracking_number} "
            f"status={self.status} level={self.current_level}>"
        )

    def to_dto(self) -> RegistrationRequest:
        """Convert ORM model to frozen domain DTO."""
        from registration_kernel.domain.registration import (
            OperationType,
            RegistrationRequest as RegistrationRequestDTO,
            RegistrationStatus,
        )

        return RegistrationRequestDTO(
            request_id=self.id,
            tracking_number=self.tracking_number,
            template_id=self.template_id,
            source_table_name=self.source_table_name,
            requester_id=self.requester_id,
            requester_email=self.requester_email,
            form_data=dict(self.form_data or {}),
            operation_type=OperationType(self.operation_type),
            status=RegistrationStatus(self.status),
            current_level=self.current_level,
            original_external_id=self.original_external_id,
            workflow_snapshot=self.workflow_snapshot,
            external_record_id=self.external_record_id,
            sync_error=self.sync_error,
            sync_log=self.sync_log,
            submitted_at=self.submitted_at,
            approved_at=self.approved_at,
            synced_at=self.synced_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
            approvals=tuple(
                a.to_dto()
                for a in sorted(self.approvals, key=lambda a: (a.level, a.approver_id))
            ),
        )


class ApprovalModel(Base):
    """One resolved approver's row at one level of a registration.

    Guarantees:
        - UNIQUE(request_id, level, approver_id).
        - action moves PENDING -> APPROVED | REJECTED exactly once.
    """

    __tablename__ = "registration_approvals"

    __table_args__ = (
        CheckConstraint(
            "action IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_registration_approvals_action",
        ),
        UniqueConstraint(
            "request_id", "level", "approver_id",
            name="uq_registration_approvals_level_approver",
        ),
        Index("ix_registration_approvals_pending", "request_id", "level", "action"),
        Index("ix_registration_approvals_approver", "approver_id", "action"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("registration_requests.id"),
        nullable=False,
    )
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approver_email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    action: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    action_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    request: Mapped["RegistrationRequestModel"] = relationship(
        "RegistrationRequestModel",
        back_populates="approvals",
    )

    def __repr__(self) -> str:
        return (
            f"<Approval request={self.request_id} level={self.level} "
            f"approver={self.approver_id} action={self.action}>"
        )

    def to_dto(self) -> ApprovalRecord:
        from registration_kernel.domain.registration import (
            ApprovalAction,
            ApprovalRecord as ApprovalRecordDTO,
        )

        return ApprovalRecordDTO(
            approval_id=self.id,
            request_id=self.request_id,
            level=self.level,
            approver_id=self.approver_id,
            approver_email=self.approver_email,
            action=ApprovalAction(self.action),
            comments=self.comments,
            action_at=self.action_at,
        )


class FieldChangeModel(Base):
    """Append-only audit row for an approver's edit of one form field."""

    __tablename__ = "field_change_history"

    __table_args__ = (
        Index("ix_field_change_history_request", "request_id", "changed_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("registration_requests.id"),
        nullable=False,
    )
    field_name: Mapped[str] = mapped_column(String(100), nullable=False)
    previous_value: Mapped[Any] = mapped_column(JsonDocument, nullable=True)
    new_value: Mapped[Any] = mapped_column(JsonDocument, nullable=True)
    changed_by_id: Mapped[str] = mapped_column(String(100), nullable=False)
    approval_level: Mapped[int] = mapped_column(Integer, nullable=False)
    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<FieldChange request={self.request_id} field={self.field_name} "
            f"level={self.approval_level}>"
        )

    def to_dto(self) -> FieldChangeRecord:
        from registration_kernel.domain.registration import (
            FieldChangeRecord as FieldChangeRecordDTO,
        )

        return FieldChangeRecordDTO(
            change_id=self.id,
            request_id=self.request_id,
            field_name=self.field_name,
            previous_value=self.previous_value,
            new_value=self.new_value,
            changed_by_id=self.changed_by_id,
            approval_level=self.approval_level,
            changed_at=self.changed_at,
        )


class WorkflowEventModel(Base):
    """Append-only workflow event (submission, level advance/skip, sync...)."""

    __tablename__ = "registration_workflow_events"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_registration_workflow_events_seq"),
        Index("ix_registration_workflow_events_request", "request_id", "seq"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("registration_requests.id"),
        nullable=False,
    )
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    actor_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JsonDocument, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<WorkflowEvent request={self.request_id} {self.event_type}>"

    def to_dto(self) -> WorkflowEventRecord:
        from registration_kernel.domain.registration import (
            WorkflowEventRecord as WorkflowEventRecordDTO,
            WorkflowEventType,
        )

        return WorkflowEventRecordDTO(
            event_id=self.id,
            seq=self.seq,
            request_id=self.request_id,
            event_type=WorkflowEventType(self.event_type),
            level=self.level,
            actor_id=self.actor_id,
            payload=dict(self.payload or {}),
            created_at=self.created_at,
        )


# =============================================================================
# ORM-Level Immutability
# =============================================================================


@event.listens_for(RegistrationRequestModel, "before_update")
def prevent_snapshot_rewrite(mapper, connection, target):
    """The workflow snapshot is frozen once written."""
    history = attributes.get_history(target, "workflow_snapshot")
    if history.deleted and history.deleted[0] is not None:
        raise ImmutabilityViolationError(
            entity_type="RegistrationRequest",
            entity_id=str(target.id),
            reason="Workflow snapshot is frozen at submission -- cannot modify",
        )


@event.listens_for(ApprovalModel, "before_update")
def prevent_approval_reversal(mapper, connection, target):
    """An approval row may leave PENDING once and never change again."""
    history = attributes.get_history(target, "action")
    if history.deleted and history.deleted[0] != "PENDING":
        raise ImmutabilityViolationError(
            entity_type="Approval",
            entity_id=str(target.id),
            reason=f"Approval already {history.deleted[0]} -- cannot modify",
        )


@event.listens_for(ApprovalModel, "before_delete")
def prevent_approval_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="Approval",
        entity_id=str(target.id),
        reason="Approval rows are never deleted",
    )


@event.listens_for(FieldChangeModel, "before_update")
def prevent_field_change_update(mapper, connection, target):
    """Prevent updates to field change audit records."""
    raise ImmutabilityViolationError(
        entity_type="FieldChangeRecord",
        entity_id=str(target.id),
        reason="Field change history is append-only -- cannot modify",
    )


@event.listens_for(FieldChangeModel, "before_delete")
def prevent_field_change_delete(mapper, connection, target):
    """Prevent deletion of field change audit records."""
    raise ImmutabilityViolationError(
        entity_type="FieldChangeRecord",
        entity_id=str(target.id),
        reason="Field change history is append-only -- cannot delete",
    )


@event.listens_for(WorkflowEventModel, "before_update")
def prevent_workflow_event_update(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="WorkflowEvent",
        entity_id=str(target.id),
        reason="Workflow events are append-only -- cannot modify",
    )


@event.listens_for(WorkflowEventModel, "before_delete")
def prevent_workflow_event_delete(mapper, connection, target):
    raise ImmutabilityViolationError(
        entity_type="WorkflowEvent",
        entity_id=str(target.id),
        reason="Workflow events are append-only -- cannot delete",
    )
