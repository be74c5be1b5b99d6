"""
Registration domain types (``registration_kernel.domain.registration``).

Responsibility
--------------
Pure value objects for the registration approval engine.  Defines the
registration lifecycle state machine, the approval-row and audit record
DTOs, and the read models returned by selectors.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* ``REGISTRATION_TRANSITIONS`` defines the only valid status transitions.
  REJECTED and SYNCED have no outgoing edges.
* ``OPERATION_SOURCE_STATES`` closes the set of statuses each public
  operation may start from; services check it before any mutation.
* PENDING_APPROVAL and IN_APPROVAL are interchangeable for every operation
  (first level vs. subsequent level marker only).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =========================================================================
# Registration Status Lifecycle
# =========================================================================


class RegistrationStatus(str, Enum):
    """Registration lifecycle states."""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    IN_APPROVAL = "IN_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SYNCING = "SYNCING"
    SYNCED = "SYNCED"
    SYNC_FAILED = "SYNC_FAILED"


REGISTRATION_TRANSITIONS: dict[RegistrationStatus, frozenset[RegistrationStatus]] = {
    RegistrationStatus.DRAFT: frozenset({
        RegistrationStatus.PENDING_APPROVAL,
    }),
    RegistrationStatus.PENDING_APPROVAL: frozenset({
        RegistrationStatus.IN_APPROVAL,
        RegistrationStatus.APPROVED,
        RegistrationStatus.REJECTED,
    }),
    RegistrationStatus.IN_APPROVAL: frozenset({
        RegistrationStatus.IN_APPROVAL,
        RegistrationStatus.APPROVED,
        RegistrationStatus.REJECTED,
    }),
    RegistrationStatus.APPROVED: frozenset({
        RegistrationStatus.SYNCING,
    }),
    RegistrationStatus.SYNCING: frozenset({
        RegistrationStatus.SYNCED,
        RegistrationStatus.SYNC_FAILED,
    }),
    RegistrationStatus.SYNC_FAILED: frozenset({
        RegistrationStatus.APPROVED,
    }),
    RegistrationStatus.REJECTED: frozenset(),
    RegistrationStatus.SYNCED: frozenset(),
}

AWAITING_APPROVAL_STATUSES: frozenset[RegistrationStatus] = frozenset({
    RegistrationStatus.PENDING_APPROVAL,
    RegistrationStatus.IN_APPROVAL,
})

TERMINAL_REGISTRATION_STATUSES: frozenset[RegistrationStatus] = frozenset({
    RegistrationStatus.REJECTED,
    RegistrationStatus.SYNCED,
})


class RegistrationOperation(str, Enum):
    """Public mutating operations on a registration."""

    UPDATE = "update"
    REMOVE = "remove"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RETRY_SYNC = "retry_sync"


OPERATION_SOURCE_STATES: dict[RegistrationOperation, frozenset[RegistrationStatus]] = {
    RegistrationOperation.UPDATE: frozenset({RegistrationStatus.DRAFT}),
    RegistrationOperation.REMOVE: frozenset({RegistrationStatus.DRAFT}),
    RegistrationOperation.SUBMIT: frozenset({RegistrationStatus.DRAFT}),
    RegistrationOperation.APPROVE: AWAITING_APPROVAL_STATUSES,
    RegistrationOperation.REJECT: AWAITING_APPROVAL_STATUSES,
    RegistrationOperation.RETRY_SYNC: frozenset({RegistrationStatus.SYNC_FAILED}),
}


def is_valid_transition(
    from_status: RegistrationStatus,
    to_status: RegistrationStatus,
) -> bool:
    return to_status in REGISTRATION_TRANSITIONS.get(from_status, frozenset())


def operation_allowed(
    operation: RegistrationOperation,
    status: RegistrationStatus,
) -> bool:
    return status in OPERATION_SOURCE_STATES[operation]


class OperationType(str, Enum):
    """What the ERP is asked to do once the registration is approved."""

    NEW = "NEW"
    ALTERATION = "ALTERATION"


class ApprovalAction(str, Enum):
    """State of a single approver's row at a level."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class WorkflowEventType(str, Enum):
    """Entries of the append-only workflow event log."""

    SUBMITTED = "submitted"
    APPROVED = "approved"
    LEVEL_ADVANCED = "level_advanced"
    LEVEL_SKIPPED = "level_skipped"
    REJECTED = "rejected"
    FULLY_APPROVED = "fully_approved"
    SYNC_SUCCEEDED = "sync_succeeded"
    SYNC_FAILED = "sync_failed"
    SYNC_RETRIED = "sync_retried"


WARNING_EVENT_TYPES: frozenset[WorkflowEventType] = frozenset({
    WorkflowEventType.LEVEL_SKIPPED,
    WorkflowEventType.SYNC_FAILED,
})


# =========================================================================
# Records
# =========================================================================


@dataclass(frozen=True)
class ApprovalRecord:
    """One approver's row at one level. Immutable snapshot of the row."""

    approval_id: UUID
    request_id: UUID
    level: int
    approver_id: str
    approver_email: str
    action: ApprovalAction
    comments: str | None = None
    action_at: datetime | None = None


@dataclass(frozen=True)
class FieldChangeRecord:
    """Append-only audit entry for an in-flight edit made by an approver."""

    change_id: UUID
    request_id: UUID
    field_name: str
    previous_value: Any
    new_value: Any
    changed_by_id: str
    approval_level: int
    changed_at: datetime | None = None


@dataclass(frozen=True)
class WorkflowEventRecord:
    """Append-only workflow event (submission, advancement, sync outcome...)."""

    event_id: UUID
    seq: int
    request_id: UUID
    event_type: WorkflowEventType
    level: int
    actor_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def is_warning(self) -> bool:
        return self.event_type in WARNING_EVENT_TYPES


@dataclass(frozen=True)
class RegistrationRequest:
    """Immutable view of a registration and its approval rows."""

    request_id: UUID
    tracking_number: str | None
    template_id: str
    source_table_name: str
    requester_id: str
    requester_email: str
    form_data: dict[str, Any]
    operation_type: OperationType
    status: RegistrationStatus
    current_level: int
    original_external_id: str | None = None
    workflow_snapshot: dict[str, Any] | None = None
    external_record_id: str | None = None
    sync_error: str | None = None
    sync_log: dict[str, Any] | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    synced_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    approvals: tuple[ApprovalRecord, ...] = ()

    def approvals_at(self, level: int) -> tuple[ApprovalRecord, ...]:
        return tuple(a for a in self.approvals if a.level == level)

    def pending_at(self, level: int) -> tuple[ApprovalRecord, ...]:
        return tuple(
            a for a in self.approvals
            if a.level == level and a.action == ApprovalAction.PENDING
        )


@dataclass(frozen=True)
class EditableFieldsInfo:
    """What the current level's approvers may edit, from the frozen snapshot."""

    request_id: UUID
    current_level: int
    level_name: str | None
    editable_fields: tuple[str, ...]
    form_data: dict[str, Any]
    can_edit: bool


@dataclass(frozen=True)
class PendingApproval:
    """A registration waiting on a given approver."""

    approval_id: UUID
    level: int
    registration: RegistrationRequest
