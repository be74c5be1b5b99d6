"""
RegistrationService -- the registration approval state machine.

Responsibility:
    Owns every mutating operation on a registration: draft management
    (create, create_alteration, update, remove), submission into the
    workflow, per-level approval and rejection, level advancement and the
    sync retry.  Approver resolution, snapshot handling, field edits and the
    ERP hand-off are delegated to their own services.

Architecture position:
    Kernel > Services.  The controller layer calls it inside
    ``session_scope()``; reads go through RegistrationSelector.

Invariants enforced:
    - Lifecycle: every status write is checked against
      REGISTRATION_TRANSITIONS, and every operation against
      OPERATION_SOURCE_STATES before anything is mutated.
    - Snapshot: the workflow is frozen onto the registration at submit and
      all later decisions read the frozen copy.
    - Level rows: the approval rows of a level are created together, from
      the approver set resolved at the moment the level is entered.
    - Single advance: each approval action locks the registration row
      (SELECT ... FOR UPDATE; BEGIN IMMEDIATE on SQLite), resolves its own
      row with a conditional UPDATE (``WHERE action = 'PENDING'``) and
      counts the remaining PENDING rows inside the same transaction, so two
      concurrent final approvals advance the level exactly once.
    - current_level never decreases.
    - Veto: one rejection at the current level rejects the registration,
      whatever the other rows at that level still say.

Failure modes:
    - RegistrationNotFoundError / TemplateNotFoundError / WorkflowNotFoundError.
    - InvalidTransitionError when the status forbids the operation.
    - NotRegistrationOwnerError when someone other than the requester edits
      or deletes a draft.
    - NoApproversResolvedError, NoPendingApprovalError,
      NonEditableFieldError, FormDataValidationError, InvalidAlterationError.
    - EmptyApprovalLevelError (``fail`` empty-level policy) and
      AdvanceLimitExceededError.
    - ERP failures are NOT raised: see SyncTrigger.
"""

from __future__ import annotations

import copy
from collections.abc import Iterable, Mapping
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from registration_kernel.domain.clock import Clock, SystemClock
from registration_kernel.domain.ports import TemplateCatalog, TemplateInfo, UserDirectory
from registration_kernel.domain.registration import (
    ApprovalAction,
    OperationType,
    RegistrationOperation,
    RegistrationRequest,
    RegistrationStatus,
    WorkflowEventType,
    operation_allowed,
)
from registration_kernel.domain.workflow import (
    EmptyLevelPolicy,
    WorkflowDefinition,
    WorkflowLevel,
    WorkflowSettings,
)
from registration_kernel.exceptions import (
    AdvanceLimitExceededError,
    EmptyApprovalLevelError,
    FormDataValidationError,
    InvalidAlterationError,
    InvalidTransitionError,
    MissingFirstLevelError,
    NoApproversResolvedError,
    NoPendingApprovalError,
    NotRegistrationOwnerError,
    RegistrationNotFoundError,
)
from registration_kernel.logging_config import LogContext, get_logger
from registration_kernel.models.registration import ApprovalModel, RegistrationRequestModel
from registration_kernel.services.approver_resolver import ApproverResolver
from registration_kernel.services.base import BaseService
from registration_kernel.services.field_change_tracker import FieldChangeTracker
from registration_kernel.services.sequence_service import SequenceService
from registration_kernel.services.sync_trigger import SyncTrigger
from registration_kernel.services.workflow_event_recorder import WorkflowEventRecorder
from registration_kernel.services.workflow_snapshot_store import WorkflowSnapshotStore

logger = get_logger("services.registration")


class RegistrationService(BaseService[RegistrationRequestModel]):
    """
    Write side of the registration workflow.

    Contract:
        Every public method runs inside the caller's transaction, flushes
        but never commits, and returns a frozen ``RegistrationRequest``.
        Any raised error leaves the caller to roll the whole operation back.
    """

    def __init__(
        self,
        session: Session,
        templates: TemplateCatalog,
        snapshots: WorkflowSnapshotStore,
        resolver: ApproverResolver,
        field_tracker: FieldChangeTracker,
        sync_trigger: SyncTrigger,
        events: WorkflowEventRecorder,
        sequences: SequenceService | None = None,
        users: UserDirectory | None = None,
        clock: Clock | None = None,
        settings: WorkflowSettings | None = None,
    ):
        super().__init__(session)
        self._templates = templates
        self._snapshots = snapshots
        self._resolver = resolver
        self._field_tracker = field_tracker
        self._sync_trigger = sync_trigger
        self._events = events
        self._sequences = sequences or SequenceService(session)
        self._users = users
        self._clock = clock or SystemClock()
        self._settings = settings or WorkflowSettings()

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create(
        self,
        template_id: str,
        form_data: Mapping[str, Any],
        requester_id: str,
        requester_email: str = "",
    ) -> RegistrationRequest:
        """Create a DRAFT registration asking the ERP for a new record."""
        return self._create_draft(
            template_id, form_data, requester_id, requester_email,
            OperationType.NEW, None,
        )

    def create_alteration(
        self,
        template_id: str,
        original_external_id: str,
        form_data: Mapping[str, Any],
        requester_id: str,
        requester_email: str = "",
    ) -> RegistrationRequest:
        """Create a DRAFT registration altering an existing ERP record."""
        if not original_external_id or not str(original_external_id).strip():
            raise InvalidAlterationError(
                template_id, "original_external_id is required",
            )
        return self._create_draft(
            template_id, form_data, requester_id, requester_email,
            OperationType.ALTERATION, str(original_external_id).strip(),
        )

    def update(
        self,
        registration_id: UUID,
        form_data: Mapping[str, Any],
        actor_id: str,
    ) -> RegistrationRequest:
        """Replace the form data of a DRAFT.  Requester only."""
        with LogContext.bind(registration_id=str(registration_id), actor_id=actor_id):
            registration = self._lock(registration_id)
            self._require(registration, RegistrationOperation.UPDATE)
            self._require_owner(registration, actor_id, RegistrationOperation.UPDATE)

            template = self._templates.get_template(registration.template_id)
            self._validate_form_data(template, form_data, complete=False)

            registration.form_data = copy.deepcopy(dict(form_data))
            self._flush(registration)

            logger.info("registration_updated", extra={"field_count": len(form_data)})
            return registration.to_dto()

    def remove(self, registration_id: UUID, actor_id: str) -> None:
        """Delete a DRAFT.  Requester only."""
        with LogContext.bind(registration_id=str(registration_id), actor_id=actor_id):
            registration = self._lock(registration_id)
            self._require(registration, RegistrationOperation.REMOVE)
            self._require_owner(registration, actor_id, RegistrationOperation.REMOVE)

            self.session.delete(registration)
            self._flush(registration)
            logger.info(
                "registration_removed",
                extra={"tracking_number": registration.tracking_number},
            )

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def submit(self, registration_id: UUID, actor_id: str) -> RegistrationRequest:
        """
        Send a DRAFT into its template's active workflow.

        Postconditions:
            - workflow_snapshot holds the frozen workflow.
            - One PENDING row per resolved first-level approver.
            - status PENDING_APPROVAL, current_level = first level order.
        """
        with LogContext.bind(registration_id=str(registration_id), actor_id=actor_id):
            registration = self._lock(registration_id)
            self._require(registration, RegistrationOperation.SUBMIT)
            with LogContext.bind(template_id=registration.template_id):
                return self._enter_workflow(registration, actor_id)

    def _enter_workflow(
        self,
        registration: RegistrationRequestModel,
        actor_id: str,
    ) -> RegistrationRequest:
        template = self._templates.get_template(registration.template_id)
        self._validate_form_data(template, registration.form_data or {}, complete=True)

        workflow = self._snapshots.get_active(registration.template_id)
        first = workflow.first_level()
        if first is None:
            raise MissingFirstLevelError(registration.template_id, workflow.workflow_id)

        approvers = self._resolver.resolve(first)
        if not approvers:
            raise NoApproversResolvedError(registration.template_id, first.level_order)

        registration.workflow_snapshot = self._snapshots.freeze(workflow)
        self._create_level_rows(registration, first, approvers)
        self._raise_level(registration, first.level_order)
        self._transition(
            registration, RegistrationStatus.PENDING_APPROVAL, "submit",
        )
        registration.submitted_at = self._clock.now()
        self._flush(registration)

        self._events.record(
            registration.id,
            WorkflowEventType.SUBMITTED,
            first.level_order,
            actor_id=actor_id,
            payload={
                "workflow_id": workflow.workflow_id,
                "workflow_version": workflow.version,
                "approvers": sorted(approvers),
            },
        )
        logger.info(
            "registration_submitted",
            extra={
                "workflow_id": workflow.workflow_id,
                "approval_level": first.level_order,
                "approver_count": len(approvers),
            },
        )
        return registration.to_dto()

    def approve(
        self,
        registration_id: UUID,
        actor_id: str,
        changes: Mapping[str, Any] | None = None,
        comments: str | None = None,
    ) -> RegistrationRequest:
        """
        Record ``actor_id``'s approval at the current level.

        Field ``changes`` are validated against the level's editable fields
        in the frozen snapshot and merged into the form data first.  The
        last approval of a level advances the workflow; the last approval
        of the last level hands the registration to the Sync Trigger, whose
        failure is stored, not raised.
        """
        with LogContext.bind(registration_id=str(registration_id), actor_id=actor_id):
            registration = self._lock(registration_id)
            self._require(registration, RegistrationOperation.APPROVE)
            level = registration.current_level

            row = self._pending_row(registration, actor_id, level)
            workflow = self._snapshots.load(registration.id, registration.workflow_snapshot)

            if changes:
                registration.form_data = self._field_tracker.apply_changes(
                    registration,
                    changes,
                    workflow.editable_fields_at(level),
                    actor_id,
                    level,
                )

            self._resolve_row(registration, row, ApprovalAction.APPROVED, comments)
            self._events.record(
                registration.id,
                WorkflowEventType.APPROVED,
                level,
                actor_id=actor_id,
                payload={"comments": comments} if comments else {},
            )
            logger.info("registration_approved_by", extra={"approval_level": level})

            remaining = self._count_pending(registration.id, level)
            if remaining == 0:
                self._advance(registration, workflow, actor_id)
            else:
                self._transition(registration, RegistrationStatus.IN_APPROVAL, "approve")
                self._flush(registration)
                logger.debug(
                    "approval_level_waiting",
                    extra={"approval_level": level, "pending_count": remaining},
                )

            return registration.to_dto()

    def reject(
        self,
        registration_id: UUID,
        actor_id: str,
        reason: str,
    ) -> RegistrationRequest:
        """
        Reject at the current level.  Terminal.

        A single rejection ends the workflow even if other approvers of the
        level are still PENDING (veto, not quorum); their rows stay PENDING.
        """
        with LogContext.bind(registration_id=str(registration_id), actor_id=actor_id):
            registration = self._lock(registration_id)
            self._require(registration, RegistrationOperation.REJECT)
            level = registration.current_level

            row = self._pending_row(registration, actor_id, level)
            self._resolve_row(registration, row, ApprovalAction.REJECTED, reason)
            self._transition(registration, RegistrationStatus.REJECTED, "reject")
            self._flush(registration)

            self._events.record(
                registration.id,
                WorkflowEventType.REJECTED,
                level,
                actor_id=actor_id,
                payload={
                    "reason": reason,
                    "pending_count": self._count_pending(registration.id, level),
                },
            )
            logger.info("registration_rejected", extra={"approval_level": level})
            return registration.to_dto()

    def retry_sync(
        self,
        registration_id: UUID,
        actor_id: str | None = None,
    ) -> RegistrationRequest:
        """Clear the last sync failure and hand the registration to the ERP again."""
        with LogContext.bind(registration_id=str(registration_id), actor_id=actor_id):
            registration = self._lock(registration_id)
            self._require(registration, RegistrationOperation.RETRY_SYNC)

            previous_error = registration.sync_error
            registration.sync_error = None
            registration.sync_log = None
            self._transition(registration, RegistrationStatus.APPROVED, "retry_sync")
            self._flush(registration)

            self._events.record(
                registration.id,
                WorkflowEventType.SYNC_RETRIED,
                registration.current_level,
                actor_id=actor_id,
                payload={"previous_error": previous_error},
            )
            logger.info("erp_sync_retried")

            self._sync_trigger.on_fully_approved(registration)
            return registration.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_draft(
        self,
        template_id: str,
        form_data: Mapping[str, Any],
        requester_id: str,
        requester_email: str,
        operation_type: OperationType,
        original_external_id: str | None,
    ) -> RegistrationRequest:
        with LogContext.bind(actor_id=requester_id, template_id=template_id):
            template = self._templates.get_template(template_id)
            self._validate_form_data(template, form_data, complete=False)

            tracking_number = self._sequences.next_tracking_number(
                self._clock.now().year,
                self._settings.tracking_number_digits,
            )
            registration = RegistrationRequestModel(
                tracking_number=tracking_number,
                template_id=template_id,
                source_table_name=template.table_name,
                requester_id=requester_id,
                requester_email=requester_email or "",
                form_data=copy.deepcopy(dict(form_data)),
                operation_type=operation_type.value,
                original_external_id=original_external_id,
                status=RegistrationStatus.DRAFT.value,
                current_level=0,
            )
            self.session.add(registration)
            self._flush(registration)

            logger.info(
                "registration_created",
                extra={
                    "registration_id": str(registration.id),
                    "tracking_number": tracking_number,
                    "operation_type": operation_type.value,
                },
            )
            return registration.to_dto()

    def _advance(
        self,
        registration: RegistrationRequestModel,
        workflow: WorkflowDefinition,
        actor_id: str,
    ) -> None:
        """Move past the completed current level.

        Later levels that resolve to nobody are skipped (or refused under
        the ``fail`` policy); running out of levels approves the
        registration and triggers the ERP sync.
        """
        completed = registration.current_level
        cursor = completed

        for _ in range(self._settings.max_advance_iterations):
            next_level = workflow.next_level_after(cursor)

            if next_level is None:
                self._transition(registration, RegistrationStatus.APPROVED, "approve")
                registration.approved_at = self._clock.now()
                self._flush(registration)
                self._events.record(
                    registration.id,
                    WorkflowEventType.FULLY_APPROVED,
                    registration.current_level,
                    actor_id=actor_id,
                )
                logger.info(
                    "registration_fully_approved",
                    extra={"final_level": registration.current_level},
                )
                self._sync_trigger.on_fully_approved(registration)
                return

            approvers = self._resolver.resolve(next_level)
            if not approvers:
                if self._settings.empty_level_policy == EmptyLevelPolicy.FAIL:
                    raise EmptyApprovalLevelError(
                        str(registration.id), next_level.level_order,
                    )
                self._raise_level(registration, next_level.level_order)
                self._flush(registration)
                self._events.record(
                    registration.id,
                    WorkflowEventType.LEVEL_SKIPPED,
                    next_level.level_order,
                    actor_id=actor_id,
                    payload={
                        "level_name": next_level.level_name,
                        "reason": "no_approvers_resolved",
                    },
                )
                logger.warning(
                    "approval_level_skipped",
                    extra={
                        "approval_level": next_level.level_order,
                        "level_name": next_level.level_name,
                    },
                )
                cursor = next_level.level_order
                continue

            self._create_level_rows(registration, next_level, approvers)
            self._raise_level(registration, next_level.level_order)
            self._transition(registration, RegistrationStatus.IN_APPROVAL, "approve")
            self._flush(registration)
            self._events.record(
                registration.id,
                WorkflowEventType.LEVEL_ADVANCED,
                next_level.level_order,
                actor_id=actor_id,
                payload={
                    "from_level": completed,
                    "approvers": sorted(approvers),
                    "has_conditions": next_level.has_conditions,
                },
            )
            logger.info(
                "approval_level_advanced",
                extra={
                    "from_level": completed,
                    "to_level": next_level.level_order,
                    "approver_count": len(approvers),
                },
            )
            return

        raise AdvanceLimitExceededError(
            str(registration.id), self._settings.max_advance_iterations,
        )

    def _create_level_rows(
        self,
        registration: RegistrationRequestModel,
        level: WorkflowLevel,
        approvers: Iterable[str],
    ) -> None:
        ordered = sorted(approvers)
        emails = self._users.get_emails(ordered) if self._users is not None else {}
        for approver_id in ordered:
            registration.approvals.append(
                ApprovalModel(
                    level=level.level_order,
                    approver_id=approver_id,
                    approver_email=emails.get(approver_id, ""),
                    action=ApprovalAction.PENDING.value,
                )
            )
        self._flush(registration)

    def _lock(self, registration_id: UUID) -> RegistrationRequestModel:
        """Load the registration with its row locked for this transaction."""
        registration = self.session.execute(
            select(RegistrationRequestModel)
            .where(RegistrationRequestModel.id == registration_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if registration is None:
            raise RegistrationNotFoundError(str(registration_id))
        return registration

    def _pending_row(
        self,
        registration: RegistrationRequestModel,
        actor_id: str,
        level: int,
    ) -> ApprovalModel:
        row = self.session.execute(
            select(ApprovalModel).where(
                ApprovalModel.request_id == registration.id,
                ApprovalModel.level == level,
                ApprovalModel.approver_id == actor_id,
                ApprovalModel.action == ApprovalAction.PENDING.value,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if row is None:
            raise NoPendingApprovalError(str(registration.id), actor_id, level)
        return row

    def _resolve_row(
        self,
        registration: RegistrationRequestModel,
        row: ApprovalModel,
        action: ApprovalAction,
        comments: str | None,
    ) -> None:
        """Move one row out of PENDING; a row already resolved is refused."""
        result = self.session.execute(
            update(ApprovalModel)
            .where(
                ApprovalModel.id == row.id,
                ApprovalModel.action == ApprovalAction.PENDING.value,
            )
            .values(
                action=action.value,
                comments=comments,
                action_at=self._clock.now(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise NoPendingApprovalError(
                str(registration.id), row.approver_id, row.level,
            )

    def _count_pending(self, registration_id: UUID, level: int) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(ApprovalModel)
            .where(
                ApprovalModel.request_id == registration_id,
                ApprovalModel.level == level,
                ApprovalModel.action == ApprovalAction.PENDING.value,
            )
        ).scalar_one()

    @staticmethod
    def _require(
        registration: RegistrationRequestModel,
        operation: RegistrationOperation,
    ) -> None:
        status = RegistrationStatus(registration.status)
        if not operation_allowed(operation, status):
            raise InvalidTransitionError(
                str(registration.id), status.value, operation.value,
            )

    @staticmethod
    def _require_owner(
        registration: RegistrationRequestModel,
        actor_id: str,
        operation: RegistrationOperation,
    ) -> None:
        if registration.requester_id != actor_id:
            raise NotRegistrationOwnerError(
                str(registration.id), actor_id, operation.value,
            )

    @staticmethod
    def _validate_form_data(
        template: TemplateInfo,
        form_data: Mapping[str, Any],
        complete: bool,
    ) -> None:
        """Unknown fields are always refused; required fields only on submit."""
        errors: list[dict] = []

        if template.field_names:
            known = frozenset(template.field_names)
            for name in sorted(form_data):
                if name not in known:
                    errors.append({"field": name, "error": "unknown_field"})

        if complete:
            for name in template.required_fields:
                value = form_data.get(name)
                if value is None or (isinstance(value, str) and not value.strip()):
                    errors.append({"field": name, "error": "required"})

        if errors:
            raise FormDataValidationError(template.template_id, errors)
