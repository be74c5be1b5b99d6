"""
Tests for RegistrationSelector.

Covers:
- get_registration / find_all filters
- get_pending_approvals_for(): only current-level PENDING rows of live
  registrations
- get_editable_fields_info(): read from the frozen snapshot
- history and event queries on unknown ids
"""

from uuid import uuid4

import pytest

from registration_kernel.domain.registration import RegistrationStatus
from registration_kernel.exceptions import RegistrationNotFoundError
from tests.fakes import REQUESTER, make_level, make_workflow


@pytest.fixture(autouse=True)
def two_levels(workflows):
    workflows.put(make_workflow(
        "customer",
        make_level(1, approvers=("alice", "bob"), editable=("credit_limit", "risk"), name="Commercial"),
        make_level(2, approvers=("carol",), name="Credit"),
    ))


@pytest.fixture
def submit(registration_service, create_draft):
    def _submit(**kwargs):
        return registration_service.submit(create_draft(**kwargs).request_id, REQUESTER)
    return _submit


class TestLookup:

    def test_get_registration_unknown(self, selector):
        with pytest.raises(RegistrationNotFoundError):
            selector.get_registration(uuid4())

    @pytest.mark.parametrize(
        "method",
        ["get_field_change_history", "get_workflow_events", "get_editable_fields_info"],
    )
    def test_per_registration_queries_reject_unknown_ids(self, selector, method):
        with pytest.raises(RegistrationNotFoundError):
            getattr(selector, method)(uuid4())

    def test_find_all_filters(self, selector, create_draft, submit):
        create_draft()
        create_draft(requester_id="other")
        submitted = submit()

        drafts = selector.find_all(status=RegistrationStatus.DRAFT)
        assert len(drafts) == 2
        mine = selector.find_all(requester_id=REQUESTER)
        assert len(mine) == 2
        pending = selector.find_all(status=RegistrationStatus.PENDING_APPROVAL)
        assert [r.request_id for r in pending] == [submitted.request_id]
        assert selector.find_all(template_id="freeform") == []

    def test_find_all_newest_first(self, selector, create_draft):
        first = create_draft()
        second = create_draft()
        listed = [r.tracking_number for r in selector.find_all()]
        assert listed == [second.tracking_number, first.tracking_number]


class TestInbox:

    def test_lists_current_level_rows(self, selector, submit):
        reg = submit()
        inbox = selector.get_pending_approvals_for("alice")
        assert len(inbox) == 1
        assert inbox[0].level == 1
        assert inbox[0].registration.request_id == reg.request_id

    def test_future_level_approver_sees_nothing(self, selector, submit):
        submit()
        assert selector.get_pending_approvals_for("carol") == []

    def test_approved_row_leaves_inbox(self, selector, submit, registration_service):
        reg = submit()
        registration_service.approve(reg.request_id, "alice")
        assert selector.get_pending_approvals_for("alice") == []
        assert len(selector.get_pending_approvals_for("bob")) == 1

    def test_next_level_appears_after_advance(self, selector, submit, registration_service):
        reg = submit()
        registration_service.approve(reg.request_id, "alice")
        registration_service.approve(reg.request_id, "bob")
        inbox = selector.get_pending_approvals_for("carol")
        assert [(p.registration.request_id, p.level) for p in inbox] == [(reg.request_id, 2)]

    def test_oldest_submission_first(self, selector, submit, deterministic_clock):
        first = submit()
        deterministic_clock.advance(60)
        second = submit()
        inbox = selector.get_pending_approvals_for("alice")
        assert [p.registration.request_id for p in inbox] == [
            first.request_id, second.request_id,
        ]


class TestEditableFields:

    def test_current_level_whitelist(self, selector, submit):
        reg = submit()
        info = selector.get_editable_fields_info(reg.request_id)
        assert info.current_level == 1
        assert info.level_name == "Commercial"
        assert set(info.editable_fields) == {"credit_limit", "risk"}
        assert info.can_edit
        assert info.form_data["name"] == "ACME Ltda"

    def test_frozen_whitelist_survives_live_edit(self, selector, submit, workflows):
        reg = submit()
        workflows.put(make_workflow(
            "customer", make_level(1, approvers=("alice",), editable=("name",)),
        ))
        info = selector.get_editable_fields_info(reg.request_id)
        assert set(info.editable_fields) == {"credit_limit", "risk"}

    def test_level_without_whitelist(self, selector, submit, registration_service):
        reg = submit()
        registration_service.approve(reg.request_id, "alice")
        registration_service.approve(reg.request_id, "bob")
        info = selector.get_editable_fields_info(reg.request_id)
        assert info.level_name == "Credit"
        assert info.editable_fields == ()
        assert not info.can_edit

    def test_draft_has_nothing_editable(self, selector, create_draft):
        info = selector.get_editable_fields_info(create_draft().request_id)
        assert info.current_level == 0
        assert info.level_name is None
        assert not info.can_edit

    def test_rejected_has_nothing_editable(self, selector, submit, registration_service):
        reg = submit()
        registration_service.reject(reg.request_id, "alice", "no")
        assert not selector.get_editable_fields_info(reg.request_id).can_edit
