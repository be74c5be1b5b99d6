"""
Tests for RegistrationService.submit().

Covers:
- First-level approval rows, one per resolved approver (explicit + groups,
  de-duplicated)
- Frozen workflow snapshot with fingerprint
- Failure cases leave the registration in DRAFT
"""

from datetime import date

import pytest

from registration_kernel.domain.registration import (
    ApprovalAction,
    RegistrationStatus,
    WorkflowEventType,
)
from registration_kernel.domain.workflow import WorkflowLevel
from registration_kernel.exceptions import (
    FormDataValidationError,
    InvalidTransitionError,
    MissingFirstLevelError,
    NoApproversResolvedError,
    WorkflowNotFoundError,
)
from registration_kernel.services.workflow_snapshot_store import FINGERPRINT_KEY
from tests.fakes import REQUESTER, make_level, make_workflow


@pytest.fixture
def two_level_workflow(workflows, groups):
    groups.groups["commercial"] = ["bob", "carol", "alice"]
    wf = make_workflow(
        "customer",
        make_level(1, approvers=("alice", "dave"), groups=("commercial",)),
        make_level(2, approvers=("erin",)),
    )
    workflows.put(wf)
    return wf


class TestSubmit:

    def test_creates_one_row_per_resolved_approver(
        self, registration_service, create_draft, two_level_workflow,
    ):
        reg = create_draft()
        submitted = registration_service.submit(reg.request_id, REQUESTER)

        assert submitted.status == RegistrationStatus.PENDING_APPROVAL
        assert submitted.current_level == 1
        rows = submitted.approvals_at(1)
        assert [r.approver_id for r in rows] == ["alice", "bob", "carol", "dave"]
        assert all(r.action == ApprovalAction.PENDING for r in rows)
        assert submitted.approvals_at(2) == ()

    def test_approver_emails_from_user_directory(
        self, registration_service, create_draft, two_level_workflow,
    ):
        submitted = registration_service.submit(create_draft().request_id, REQUESTER)
        emails = {r.approver_id: r.approver_email for r in submitted.approvals}
        assert emails["alice"] == "alice@example.com"
        assert emails["dave"] == ""

    def test_snapshot_is_frozen_with_fingerprint(
        self, registration_service, create_draft, two_level_workflow,
    ):
        submitted = registration_service.submit(create_draft().request_id, REQUESTER)

        snapshot = submitted.workflow_snapshot
        assert snapshot["workflow_id"] == two_level_workflow.workflow_id
        assert [lv["level_order"] for lv in snapshot["levels"]] == [1, 2]
        assert len(snapshot[FINGERPRINT_KEY]) == 64

    def test_snapshot_is_plain_json(
        self, registration_service, create_draft, workflows, selector,
    ):
        workflows.put(make_workflow(
            "customer",
            make_level(1, approvers=("alice",)),
            WorkflowLevel(
                level_order=2,
                level_name="Credit",
                approver_ids=("carol",),
                conditions={"effective_from": date(2025, 1, 1), "tags": ("a", "b")},
            ),
        ))
        reg = create_draft()
        submitted = registration_service.submit(reg.request_id, REQUESTER)

        frozen = submitted.workflow_snapshot["levels"][1]["conditions"]
        assert frozen == {"effective_from": "2025-01-01", "tags": ["a", "b"]}

        after = registration_service.approve(reg.request_id, "alice")
        assert after.current_level == 2
        stored = selector.get_registration(reg.request_id).workflow_snapshot
        assert stored["levels"][1]["conditions"]["effective_from"] == "2025-01-01"

    def test_first_level_must_have_order_one(
        self, registration_service, create_draft, workflows, selector,
    ):
        workflows.put(make_workflow(
            "customer",
            make_level(20, approvers=("bob",)),
            make_level(10, approvers=("alice",)),
        ))
        reg = create_draft()

        with pytest.raises(MissingFirstLevelError) as exc_info:
            registration_service.submit(reg.request_id, REQUESTER)

        assert exc_info.value.workflow_id == "wf-customer"
        assert selector.get_registration(reg.request_id).status == RegistrationStatus.DRAFT

    def test_records_submitted_event(
        self, registration_service, create_draft, two_level_workflow, selector,
    ):
        reg = create_draft()
        registration_service.submit(reg.request_id, REQUESTER)

        events = selector.get_workflow_events(reg.request_id)
        assert [e.event_type for e in events] == [WorkflowEventType.SUBMITTED]
        assert events[0].payload["approvers"] == ["alice", "bob", "carol", "dave"]

    def test_submit_twice_is_invalid(
        self, registration_service, create_draft, two_level_workflow,
    ):
        reg = create_draft()
        registration_service.submit(reg.request_id, REQUESTER)
        with pytest.raises(InvalidTransitionError):
            registration_service.submit(reg.request_id, REQUESTER)


class TestSubmitFailures:

    def test_no_active_workflow(self, registration_service, create_draft, selector):
        reg = create_draft()
        with pytest.raises(WorkflowNotFoundError):
            registration_service.submit(reg.request_id, REQUESTER)
        assert selector.get_registration(reg.request_id).status == RegistrationStatus.DRAFT

    def test_first_level_without_approvers(
        self, registration_service, create_draft, workflows, selector,
    ):
        workflows.put(make_workflow("customer", make_level(1, groups=("empty",))))
        reg = create_draft()

        with pytest.raises(NoApproversResolvedError) as exc_info:
            registration_service.submit(reg.request_id, REQUESTER)

        assert exc_info.value.level == 1
        after = selector.get_registration(reg.request_id)
        assert after.status == RegistrationStatus.DRAFT
        assert after.approvals == ()
        assert after.workflow_snapshot is None

    def test_workflow_without_levels(self, registration_service, create_draft, workflows):
        workflows.put(make_workflow("customer"))
        with pytest.raises(MissingFirstLevelError):
            registration_service.submit(create_draft().request_id, REQUESTER)

    def test_missing_required_fields(
        self, registration_service, create_draft, two_level_workflow,
    ):
        reg = create_draft(form_data={"name": "ACME", "tax_id": "  "})
        with pytest.raises(FormDataValidationError) as exc_info:
            registration_service.submit(reg.request_id, REQUESTER)
        assert exc_info.value.field_errors == [{"field": "tax_id", "error": "required"}]
