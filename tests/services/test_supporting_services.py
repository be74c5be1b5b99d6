"""
Tests for the small services RegistrationService delegates to:
SequenceService, ApproverResolver, WorkflowSnapshotStore.
"""

import pytest

from registration_kernel.exceptions import (
    ImmutabilityViolationError,
    MissingWorkflowSnapshotError,
    WorkflowNotFoundError,
)
from registration_kernel.services.approver_resolver import ApproverResolver
from registration_kernel.services.sequence_service import SequenceService
from registration_kernel.services.workflow_snapshot_store import (
    FINGERPRINT_KEY,
    WorkflowSnapshotStore,
)
from tests.fakes import (
    FakeGroupResolver,
    InMemoryWorkflowLookup,
    make_level,
    make_workflow,
)


class TestSequenceService:

    def test_values_increase_per_name(self, session):
        sequences = SequenceService(session)
        assert [sequences.next_value("a") for _ in range(3)] == [1, 2, 3]
        assert sequences.next_value("b") == 1
        assert sequences.current_value("a") == 3

    def test_unused_sequence_has_no_value(self, session):
        assert SequenceService(session).current_value("never") is None

    def test_tracking_number_padding(self, session):
        sequences = SequenceService(session)
        assert sequences.next_tracking_number(2024, digits=3) == "2024-001"
        assert sequences.next_tracking_number(2024, digits=3) == "2024-002"


class TestApproverResolver:

    def test_union_of_explicit_and_group_members(self):
        groups = FakeGroupResolver({"g1": ["bob", "carol"], "g2": ["carol", "dave"]})
        resolved = ApproverResolver(groups).resolve(
            make_level(1, approvers=("alice", "bob"), groups=("g1", "g2")),
        )
        assert resolved == frozenset({"alice", "bob", "carol", "dave"})

    def test_no_group_lookup_without_groups(self):
        groups = FakeGroupResolver()
        ApproverResolver(groups).resolve(make_level(1, approvers=("alice",)))
        assert groups.calls == []

    def test_blank_ids_are_ignored(self):
        groups = FakeGroupResolver({"g": ["", "bob"]})
        resolved = ApproverResolver(groups).resolve(
            make_level(1, approvers=("",), groups=("g",)),
        )
        assert resolved == frozenset({"bob"})

    def test_empty_level(self):
        assert ApproverResolver(FakeGroupResolver()).resolve(make_level(1)) == frozenset()


class TestWorkflowSnapshotStore:

    @pytest.fixture
    def store(self):
        lookup = InMemoryWorkflowLookup()
        lookup.put(make_workflow("customer", make_level(1, approvers=("a",))))
        return WorkflowSnapshotStore(lookup)

    def test_freeze_and_load(self, store):
        wf = store.get_active("customer")
        snapshot = store.freeze(wf)
        assert FINGERPRINT_KEY in snapshot
        assert store.load("reg-1", snapshot) == wf

    def test_unknown_template(self, store):
        with pytest.raises(WorkflowNotFoundError):
            store.get_active("supplier")

    @pytest.mark.parametrize("snapshot", [None, {}])
    def test_missing_snapshot(self, store, snapshot):
        with pytest.raises(MissingWorkflowSnapshotError):
            store.load("reg-1", snapshot)

    def test_fingerprint_mismatch(self, store):
        snapshot = store.freeze(store.get_active("customer"))
        snapshot["levels"][0]["approver_ids"] = ["mallory"]
        with pytest.raises(ImmutabilityViolationError):
            store.load("reg-1", snapshot)

    def test_snapshot_without_fingerprint_is_accepted(self, store):
        wf = store.get_active("customer")
        assert store.load("reg-1", wf.to_snapshot()) == wf
