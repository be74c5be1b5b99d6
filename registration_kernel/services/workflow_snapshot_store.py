"""
WorkflowSnapshotStore -- active workflow lookup and frozen snapshots.

Responsibility:
    Fetches the live workflow for a template at submit time, freezes it into
    the JSON document embedded on the registration, and rebuilds a
    ``WorkflowDefinition`` from that document for every later decision.

Architecture position:
    Kernel > Services.  Reads the WorkflowDefinitionLookup port; writes
    nothing itself (the caller stores the frozen document).

Invariants enforced:
    - After submission, levels and editable fields come only from the
      snapshot, never from the live definition.
    - Each snapshot carries a SHA-256 fingerprint of its canonical form;
      a snapshot whose content no longer matches it is refused.

Failure modes:
    - WorkflowNotFoundError (from the port) when no workflow is active.
    - MissingWorkflowSnapshotError when an in-flight registration has none.
    - ImmutabilityViolationError when the fingerprint does not match.
"""

import json
from typing import Any

from registration_kernel.domain.ports import WorkflowDefinitionLookup
from registration_kernel.domain.workflow import WorkflowDefinition
from registration_kernel.exceptions import (
    ImmutabilityViolationError,
    MissingWorkflowSnapshotError,
)
from registration_kernel.logging_config import get_logger
from registration_kernel.utils.hashing import canonicalize_json, hash_payload

logger = get_logger("services.workflow_snapshot")

FINGERPRINT_KEY = "fingerprint"


class WorkflowSnapshotStore:
    """Freezes workflow definitions and reads them back."""

    def __init__(self, lookup: WorkflowDefinitionLookup):
        self._lookup = lookup

    def get_active(self, template_id: str) -> WorkflowDefinition:
        return self._lookup.get_active_workflow(template_id)

    def freeze(self, workflow: WorkflowDefinition) -> dict[str, Any]:
        """Serialize ``workflow`` into a self-fingerprinted snapshot document.

        The result is plain JSON: opaque values such as dates inside level
        conditions are stored in the canonical form the fingerprint covers.
        """
        document = json.loads(canonicalize_json(workflow.to_snapshot()))
        document[FINGERPRINT_KEY] = hash_payload(document)
        logger.debug(
            "workflow_snapshot_frozen",
            extra={
                "workflow_id": workflow.workflow_id,
                "workflow_version": workflow.version,
                "level_count": len(workflow.levels),
            },
        )
        return document

    def load(
        self,
        registration_id: Any,
        snapshot: dict[str, Any] | None,
    ) -> WorkflowDefinition:
        """Rebuild the frozen workflow of a submitted registration."""
        if not snapshot:
            raise MissingWorkflowSnapshotError(str(registration_id))

        body = {k: v for k, v in snapshot.items() if k != FINGERPRINT_KEY}
        expected = snapshot.get(FINGERPRINT_KEY)
        if expected is not None and hash_payload(body) != expected:
            logger.error(
                "workflow_snapshot_fingerprint_mismatch",
                extra={"registration_id": str(registration_id)},
            )
            raise ImmutabilityViolationError(
                entity_type="RegistrationRequest",
                entity_id=str(registration_id),
                reason="Workflow snapshot does not match its fingerprint",
            )

        return WorkflowDefinition.from_snapshot(body)
