"""
WorkflowEventRecorder -- append-only workflow event log.

Responsibility:
    Persists one ``WorkflowEventModel`` row per significant lifecycle step
    of a registration (submission, approvals, level advance or skip,
    rejection, sync outcome).  Warning-class events (skipped level, failed
    sync) are how a bypassed approval gate stays visible after the fact.

Architecture position:
    Kernel > Services.  Called by RegistrationService and SyncTrigger.

Invariants enforced:
    - Events are never updated or deleted (ORM listeners on the model).
    - Timestamps come from the injected Clock.
    - Events are totally ordered by ``seq``, drawn from the locked
      ``workflow_event`` counter.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from registration_kernel.domain.clock import Clock, SystemClock
from registration_kernel.domain.registration import WorkflowEventType
from registration_kernel.models.registration import WorkflowEventModel
from registration_kernel.services.sequence_service import SequenceService


class WorkflowEventRecorder:
    """Writes workflow events into the caller's transaction."""

    WORKFLOW_EVENT_SEQUENCE = "workflow_event"

    def __init__(
        self,
        session: Session,
        sequences: SequenceService | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._sequences = sequences or SequenceService(session)
        self._clock = clock or SystemClock()

    def record(
        self,
        request_id: UUID,
        event_type: WorkflowEventType,
        level: int,
        actor_id: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> WorkflowEventModel:
        event = WorkflowEventModel(
            request_id=request_id,
            seq=self._sequences.next_value(self.WORKFLOW_EVENT_SEQUENCE),
            event_type=event_type.value,
            level=level,
            actor_id=actor_id,
            payload=payload or {},
            created_at=self._clock.now(),
        )
        self._session.add(event)
        self._session.flush()
        return event
