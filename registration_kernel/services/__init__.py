"""Services for the registration kernel (write side)."""

from registration_kernel.services.approver_resolver import ApproverResolver
from registration_kernel.services.field_change_tracker import FieldChangeTracker
from registration_kernel.services.registration_service import RegistrationService
from registration_kernel.services.sequence_service import SequenceService
from registration_kernel.services.sync_trigger import SyncTrigger
from registration_kernel.services.workflow_event_recorder import WorkflowEventRecorder
from registration_kernel.services.workflow_snapshot_store import WorkflowSnapshotStore

__all__ = [
    "ApproverResolver",
    "FieldChangeTracker",
    "RegistrationService",
    "SequenceService",
    "SyncTrigger",
    "WorkflowEventRecorder",
    "WorkflowSnapshotStore",
]
