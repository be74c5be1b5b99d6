"""
Tests for registration domain types (``registration_kernel.domain.registration``).

Covers the lifecycle transition table, the operation/source-state table and
the frozen record DTOs.
"""

from dataclasses import FrozenInstanceError
from uuid import uuid4

import pytest

from registration_kernel.domain.registration import (
    AWAITING_APPROVAL_STATUSES,
    OPERATION_SOURCE_STATES,
    REGISTRATION_TRANSITIONS,
    TERMINAL_REGISTRATION_STATUSES,
    ApprovalAction,
    ApprovalRecord,
    RegistrationOperation,
    RegistrationStatus,
    WorkflowEventRecord,
    WorkflowEventType,
    is_valid_transition,
    operation_allowed,
)

S = RegistrationStatus


class TestTransitionTable:

    def test_every_status_has_an_entry(self):
        assert set(REGISTRATION_TRANSITIONS) == set(RegistrationStatus)

    @pytest.mark.parametrize("status", sorted(TERMINAL_REGISTRATION_STATUSES))
    def test_terminal_statuses_have_no_outgoing_edges(self, status):
        assert REGISTRATION_TRANSITIONS[status] == frozenset()

    @pytest.mark.parametrize(
        "source,target",
        [
            (S.DRAFT, S.PENDING_APPROVAL),
            (S.PENDING_APPROVAL, S.IN_APPROVAL),
            (S.PENDING_APPROVAL, S.APPROVED),
            (S.PENDING_APPROVAL, S.REJECTED),
            (S.IN_APPROVAL, S.IN_APPROVAL),
            (S.IN_APPROVAL, S.APPROVED),
            (S.IN_APPROVAL, S.REJECTED),
            (S.APPROVED, S.SYNCING),
            (S.SYNCING, S.SYNCED),
            (S.SYNCING, S.SYNC_FAILED),
            (S.SYNC_FAILED, S.APPROVED),
        ],
    )
    def test_allowed_transitions(self, source, target):
        assert is_valid_transition(source, target)

    @pytest.mark.parametrize(
        "source,target",
        [
            (S.DRAFT, S.APPROVED),
            (S.DRAFT, S.IN_APPROVAL),
            (S.IN_APPROVAL, S.PENDING_APPROVAL),
            (S.APPROVED, S.SYNCED),
            (S.REJECTED, S.DRAFT),
            (S.SYNCED, S.SYNCING),
            (S.SYNC_FAILED, S.SYNCED),
        ],
    )
    def test_forbidden_transitions(self, source, target):
        assert not is_valid_transition(source, target)


class TestOperationSourceStates:

    def test_every_operation_is_covered(self):
        assert set(OPERATION_SOURCE_STATES) == set(RegistrationOperation)

    @pytest.mark.parametrize(
        "operation",
        [RegistrationOperation.UPDATE, RegistrationOperation.REMOVE, RegistrationOperation.SUBMIT],
    )
    def test_draft_only_operations(self, operation):
        assert OPERATION_SOURCE_STATES[operation] == frozenset({S.DRAFT})

    @pytest.mark.parametrize("status", sorted(AWAITING_APPROVAL_STATUSES))
    def test_approve_and_reject_accept_both_awaiting_statuses(self, status):
        assert operation_allowed(RegistrationOperation.APPROVE, status)
        assert operation_allowed(RegistrationOperation.REJECT, status)

    @pytest.mark.parametrize("status", [s for s in S if s != S.SYNC_FAILED])
    def test_retry_sync_only_from_sync_failed(self, status):
        assert not operation_allowed(RegistrationOperation.RETRY_SYNC, status)


class TestRecords:

    def test_approval_record_is_frozen(self):
        record = ApprovalRecord(
            approval_id=uuid4(),
            request_id=uuid4(),
            level=1,
            approver_id="alice",
            approver_email="alice@example.com",
            action=ApprovalAction.PENDING,
        )
        with pytest.raises(FrozenInstanceError):
            record.action = ApprovalAction.APPROVED

    @pytest.mark.parametrize(
        "event_type,warning",
        [
            (WorkflowEventType.LEVEL_SKIPPED, True),
            (WorkflowEventType.SYNC_FAILED, True),
            (WorkflowEventType.LEVEL_ADVANCED, False),
            (WorkflowEventType.SUBMITTED, False),
        ],
    )
    def test_warning_events(self, event_type, warning):
        record = WorkflowEventRecord(
            event_id=uuid4(), seq=1, request_id=uuid4(),
            event_type=event_type, level=1,
        )
        assert record.is_warning is warning
