"""
FieldChangeTracker -- validated, audited edits made during approval.

Responsibility:
    Applies an approver's proposed field values to a registration's form
    data.  Only fields listed in the acting level's ``editable_fields`` (from
    the frozen workflow snapshot) may be touched.  Every real change leaves
    an append-only ``FieldChangeModel`` row behind.

Architecture position:
    Kernel > Services.  Called by RegistrationService.approve inside the
    same transaction that resolves the approval row.

Invariants enforced:
    - All proposed fields are checked before anything is written: one
      non-editable field rejects the whole edit and records nothing.
    - Values are compared by deep structural equality; equal values are
      no-ops and produce no audit row.
    - The input form data is never mutated; a merged copy is returned.

Failure modes:
    - NonEditableFieldError when any proposed field is outside the
      level's editable set.
"""

import copy
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy.orm import Session

from registration_kernel.domain.clock import Clock, SystemClock
from registration_kernel.exceptions import NonEditableFieldError
from registration_kernel.logging_config import get_logger
from registration_kernel.models.registration import (
    FieldChangeModel,
    RegistrationRequestModel,
)
from registration_kernel.utils.hashing import values_equal

logger = get_logger("services.field_change_tracker")


class FieldChangeTracker:
    """Validates and records approver edits to form data."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def apply_changes(
        self,
        registration: RegistrationRequestModel,
        proposed_changes: Mapping[str, Any],
        editable_fields: Iterable[str],
        actor_id: str,
        level: int,
    ) -> dict[str, Any]:
        """
        Return ``registration.form_data`` with ``proposed_changes`` merged in.

        The caller persists the returned document on the registration.
        """
        current = registration.form_data or {}
        if not proposed_changes:
            return copy.deepcopy(current)

        allowed = frozenset(editable_fields)
        rejected = sorted(name for name in proposed_changes if name not in allowed)
        if rejected:
            logger.warning(
                "non_editable_field_rejected",
                extra={"fields": rejected, "approval_level": level, "actor_id": actor_id},
            )
            raise NonEditableFieldError(rejected, level)

        merged = copy.deepcopy(current)
        now = self._clock.now()
        changed: list[str] = []

        for field_name, new_value in proposed_changes.items():
            previous_value = current.get(field_name)
            if values_equal(previous_value, new_value):
                continue

            self._session.add(
                FieldChangeModel(
                    request_id=registration.id,
                    field_name=field_name,
                    previous_value=copy.deepcopy(previous_value),
                    new_value=copy.deepcopy(new_value),
                    changed_by_id=actor_id,
                    approval_level=level,
                    changed_at=now,
                )
            )
            merged[field_name] = copy.deepcopy(new_value)
            changed.append(field_name)

        if changed:
            self._session.flush()
            logger.info(
                "form_fields_changed",
                extra={"fields": changed, "approval_level": level},
            )

        return merged
