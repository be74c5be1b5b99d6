"""
BaseService -- abstract base for all registration kernel services.

Responsibility:
    Provides the common constructor, the flush-only session contract and
    the single place where a registration's status is moved.  Every status
    write goes through ``_transition()``, which checks the lifecycle table
    in ``domain.registration`` before touching the row.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Services flush within the caller's transaction and never commit or
      roll back themselves.
    - No status is written that REGISTRATION_TRANSITIONS does not allow.
    - current_level is only ever raised, never lowered.

Failure modes:
    - InvalidTransitionError on a status change the table forbids.
    - OptimisticLockError when a flush hits a stale registration version.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from registration_kernel.db.base import Base
from registration_kernel.domain.registration import (
    RegistrationStatus,
    is_valid_transition,
)
from registration_kernel.exceptions import InvalidTransitionError, OptimisticLockError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only (read) methods -- those belong
          in ``registration_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _transition(self, registration, target: RegistrationStatus, operation: str) -> None:
        current = RegistrationStatus(registration.status)
        if not is_valid_transition(current, target):
            raise InvalidTransitionError(str(registration.id), current.value, operation)
        registration.status = target.value

    @staticmethod
    def _raise_level(registration, level: int) -> None:
        assert level >= registration.current_level, (
            f"current_level may not decrease ({registration.current_level} -> {level})"
        )
        registration.current_level = level

    def _flush(self, registration=None) -> None:
        """Flush, translating a stale version into OptimisticLockError."""
        try:
            self.session.flush()
        except StaleDataError as exc:
            entity_id = str(registration.id) if registration is not None else "unknown"
            raise OptimisticLockError("RegistrationRequest", entity_id) from exc
