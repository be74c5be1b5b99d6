"""
SyncTrigger -- hands a fully approved registration to the ERP.

Responsibility:
    Runs once each time a registration reaches APPROVED (at the end of the
    last level, or on an explicit retry).  Moves the registration through
    SYNCING, calls the ErpGateway port and records the outcome on the row:
    SYNCED with the ERP record id, or SYNC_FAILED with the error.

Architecture position:
    Kernel > Services.  Called by RegistrationService inside the approval
    transaction.  The gateway enforces its own timeout.

Invariants enforced:
    - Only APPROVED -> SYNCING -> {SYNCED, SYNC_FAILED} is ever written here.
    - A gateway failure never propagates to the approval caller: the human
      approval outcome is final, the sync outcome is stored and can be
      retried with RegistrationService.retry_sync.
    - An ALTERATION keeps pointing at the ERP record it altered.

Failure modes:
    - InvalidTransitionError if called on a registration that is not
      APPROVED (programming error, propagates).
"""

from __future__ import annotations

from typing import Any

from sqlalchemy.orm import Session

from registration_kernel.domain.clock import Clock, SystemClock
from registration_kernel.domain.ports import ErpGateway
from registration_kernel.domain.registration import (
    OperationType,
    RegistrationStatus,
    WorkflowEventType,
)
from registration_kernel.logging_config import get_logger
from registration_kernel.models.registration import RegistrationRequestModel
from registration_kernel.services.base import BaseService
from registration_kernel.services.workflow_event_recorder import WorkflowEventRecorder

logger = get_logger("services.sync_trigger")


class SyncTrigger(BaseService[RegistrationRequestModel]):
    """Invokes ERP synchronization and interprets its result."""

    def __init__(
        self,
        session: Session,
        erp: ErpGateway,
        events: WorkflowEventRecorder,
        clock: Clock | None = None,
    ):
        super().__init__(session)
        self._erp = erp
        self._events = events
        self._clock = clock or SystemClock()

    def on_fully_approved(self, registration: RegistrationRequestModel) -> None:
        operation_type = OperationType(registration.operation_type)

        self._transition(registration, RegistrationStatus.SYNCING, "sync")
        self._flush(registration)

        logger.info(
            "erp_sync_started",
            extra={
                "operation_type": operation_type.value,
                "table_name": registration.source_table_name,
            },
        )

        try:
            external_id = self._erp.sync_record(
                operation_type,
                registration.source_table_name,
                registration.original_external_id,
                dict(registration.form_data or {}),
            )
        except Exception as exc:
            self._record_failure(registration, operation_type, exc)
            return

        self._record_success(registration, operation_type, external_id)

    def _record_success(
        self,
        registration: RegistrationRequestModel,
        operation_type: OperationType,
        external_id: str | None,
    ) -> None:
        now = self._clock.now()
        if operation_type == OperationType.ALTERATION:
            external_id = registration.original_external_id
        self._transition(registration, RegistrationStatus.SYNCED, "sync")
        registration.external_record_id = external_id
        registration.synced_at = now
        registration.sync_error = None
        registration.sync_log = self._sync_log(
            now, operation_type, success=True, external_record_id=external_id,
        )
        self._flush(registration)

        self._events.record(
            registration.id,
            WorkflowEventType.SYNC_SUCCEEDED,
            registration.current_level,
            payload={"external_record_id": external_id},
        )
        logger.info(
            "erp_sync_succeeded",
            extra={"external_record_id": external_id},
        )

    def _record_failure(
        self,
        registration: RegistrationRequestModel,
        operation_type: OperationType,
        exc: Exception,
    ) -> None:
        now = self._clock.now()
        message = str(exc) or type(exc).__name__
        self._transition(registration, RegistrationStatus.SYNC_FAILED, "sync")
        registration.sync_error = message
        registration.sync_log = self._sync_log(
            now, operation_type, success=False, error=message,
        )
        self._flush(registration)

        self._events.record(
            registration.id,
            WorkflowEventType.SYNC_FAILED,
            registration.current_level,
            payload={"error": message, "error_type": type(exc).__name__},
        )
        logger.error(
            "erp_sync_failed",
            extra={"table_name": registration.source_table_name},
            exc_info=exc,
        )

    @staticmethod
    def _sync_log(
        at,
        operation_type: OperationType,
        *,
        success: bool,
        **fields: Any,
    ) -> dict[str, Any]:
        return {
            "synced_at": at.isoformat(),
            "operation_type": operation_type.value,
            "success": success,
            **fields,
        }
