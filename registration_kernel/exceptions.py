"""
Typed Exception Hierarchy for the Registration Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The controller layer maps kernel failures onto request failures (404, 409,
403, 400...).  It must do so by exception TYPE and CODE, never by parsing
message text:

    try:
        service.approve(registration_id, actor_id="u-42")
    except NoPendingApprovalError as e:
        respond(400, code=e.code, level=e.level)
    except NotFoundError as e:
        respond(404, code=e.code)

Every class carries:
  1. a class-level ``code`` (machine-readable, API-safe)
  2. structured attributes (never just a message string)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    RegistrationKernelError (base)
    |
    +-- NotFoundError
    |   +-- RegistrationNotFoundError
    |   +-- TemplateNotFoundError
    |   +-- WorkflowNotFoundError
    |
    +-- InvalidStateError
    |   +-- InvalidTransitionError
    |
    +-- ForbiddenError
    |   +-- NotRegistrationOwnerError
    |
    +-- ValidationFailureError
    |   +-- NoApproversResolvedError
    |   +-- NoPendingApprovalError
    |   +-- NonEditableFieldError
    |   +-- FormDataValidationError
    |   +-- InvalidAlterationError
    |
    +-- WorkflowConfigurationError
    |   +-- MissingFirstLevelError
    |   +-- EmptyApprovalLevelError
    |   +-- AdvanceLimitExceededError
    |   +-- MissingWorkflowSnapshotError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ErpSyncError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
NotFound        | REGISTRATION_NOT_FOUND      | Registration ID doesn't exist
                | TEMPLATE_NOT_FOUND          | Template unknown to the catalog
                | WORKFLOW_NOT_FOUND          | No active workflow for template
----------------|-----------------------------|-----------------------------------------
InvalidState    | INVALID_TRANSITION          | Operation forbidden from current status
----------------|-----------------------------|-----------------------------------------
Forbidden       | NOT_REGISTRATION_OWNER      | Non-requester updates/deletes a draft
----------------|-----------------------------|-----------------------------------------
Validation      | NO_APPROVERS_RESOLVED       | First level resolves to nobody
                | NO_PENDING_APPROVAL         | Caller has no pending row at level
                | NON_EDITABLE_FIELD          | Edit outside the level's whitelist
                | FORM_DATA_INVALID           | Form data fails template rules
                | INVALID_ALTERATION          | Alteration without ERP record id
----------------|-----------------------------|-----------------------------------------
Workflow config | MISSING_FIRST_LEVEL         | Active workflow has no level 1
                | EMPTY_APPROVAL_LEVEL        | Empty level under the "fail" policy
                | ADVANCE_LIMIT_EXCEEDED      | Runaway level advancement
                | MISSING_WORKFLOW_SNAPSHOT   | In-flight registration lost snapshot
----------------|-----------------------------|-----------------------------------------
Concurrency     | OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying an append-only record
----------------|-----------------------------|-----------------------------------------
Sync            | ERP_SYNC_FAILED             | ERP gateway could not persist record

ErpSyncError is the one exception the state machine never lets escape from
``approve``: the Sync Trigger captures it onto the registration
(status SYNC_FAILED) because the human approval outcome is already final.
"""


class RegistrationKernelError(Exception):
    """
    Base exception for all registration kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "REGISTRATION_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(RegistrationKernelError):
    """Base exception for missing registrations, templates or workflows."""

    code: str = "NOT_FOUND"


class RegistrationNotFoundError(NotFoundError):
    """Registration with given ID was not found."""

    code: str = "REGISTRATION_NOT_FOUND"

    def __init__(self, registration_id: str):
        self.registration_id = registration_id
        super().__init__(f"Registration not found: {registration_id}")


class TemplateNotFoundError(NotFoundError):
    """Form template is unknown to the template catalog."""

    code: str = "TEMPLATE_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class WorkflowNotFoundError(NotFoundError):
    """No active workflow is configured for the template."""

    code: str = "WORKFLOW_NOT_FOUND"

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f"No active workflow found for template {template_id}")


# State exceptions


class InvalidStateError(RegistrationKernelError):
    """Base exception for operations attempted from a forbidding state."""

    code: str = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    """The registration's status does not allow the requested operation."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, registration_id: str, current_status: str, operation: str):
        self.registration_id = registration_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} registration {registration_id} "
            f"in status {current_status}"
        )


# Ownership exceptions


class ForbiddenError(RegistrationKernelError):
    """Base exception for ownership / identity mismatches."""

    code: str = "FORBIDDEN"


class NotRegistrationOwnerError(ForbiddenError):
    """Only the requester may modify or delete a draft."""

    code: str = "NOT_REGISTRATION_OWNER"

    def __init__(self, registration_id: str, actor_id: str, operation: str):
        self.registration_id = registration_id
        self.actor_id = actor_id
        self.operation = operation
        super().__init__(
            f"User {actor_id} may not {operation} registration {registration_id}: "
            "not the requester"
        )


# Validation exceptions


class ValidationFailureError(RegistrationKernelError):
    """Base exception for requests rejected on their content."""

    code: str = "VALIDATION_FAILURE"


class NoApproversResolvedError(ValidationFailureError):
    """The first workflow level resolved to an empty approver set."""

    code: str = "NO_APPROVERS_RESOLVED"

    def __init__(self, template_id: str, level: int):
        self.template_id = template_id
        self.level = level
        super().__init__(
            f"Workflow level {level} for template {template_id} "
            "resolves to no approvers"
        )


class NoPendingApprovalError(ValidationFailureError):
    """The caller has no pending approval row at the current level."""

    code: str = "NO_PENDING_APPROVAL"

    def __init__(self, registration_id: str, approver_id: str, level: int):
        self.registration_id = registration_id
        self.approver_id = approver_id
        self.level = level
        super().__init__(
            f"No pending approval found for user {approver_id} "
            f"at level {level} of registration {registration_id}"
        )


class NonEditableFieldError(ValidationFailureError):
    """A proposed edit targets a field outside the level's editable set."""

    code: str = "NON_EDITABLE_FIELD"

    def __init__(self, field_names: list[str], level: int):
        self.field_names = field_names
        self.level = level
        super().__init__(
            f"Fields not editable at level {level}: {', '.join(field_names)}"
        )


class FormDataValidationError(ValidationFailureError):
    """Form data does not satisfy the template's field rules."""

    code: str = "FORM_DATA_INVALID"

    def __init__(self, template_id: str, field_errors: list[dict]):
        self.template_id = template_id
        self.field_errors = field_errors
        super().__init__(
            f"Form data invalid for template {template_id}: "
            f"{len(field_errors)} error(s)"
        )


class InvalidAlterationError(ValidationFailureError):
    """An alteration request must reference an existing ERP record."""

    code: str = "INVALID_ALTERATION"

    def __init__(self, template_id: str, reason: str):
        self.template_id = template_id
        self.reason = reason
        super().__init__(f"Invalid alteration for template {template_id}: {reason}")


# Workflow configuration exceptions


class WorkflowConfigurationError(RegistrationKernelError):
    """Base exception for misconfigured or corrupted workflows."""

    code: str = "WORKFLOW_CONFIGURATION_ERROR"


class MissingFirstLevelError(WorkflowConfigurationError):
    """The active workflow has no level with order 1."""

    code: str = "MISSING_FIRST_LEVEL"

    def __init__(self, template_id: str, workflow_id: str):
        self.template_id = template_id
        self.workflow_id = workflow_id
        super().__init__(
            f"Workflow {workflow_id} for template {template_id} has no level 1"
        )


class EmptyApprovalLevelError(WorkflowConfigurationError):
    """A subsequent level resolved to nobody and the policy forbids skipping."""

    code: str = "EMPTY_APPROVAL_LEVEL"

    def __init__(self, registration_id: str, level: int):
        self.registration_id = registration_id
        self.level = level
        super().__init__(
            f"Approval level {level} of registration {registration_id} "
            "resolves to no approvers"
        )


class AdvanceLimitExceededError(WorkflowConfigurationError):
    """Level advancement examined more levels than allowed."""

    code: str = "ADVANCE_LIMIT_EXCEEDED"

    def __init__(self, registration_id: str, max_iterations: int):
        self.registration_id = registration_id
        self.max_iterations = max_iterations
        super().__init__(
            f"Advancing registration {registration_id} exceeded "
            f"{max_iterations} iterations"
        )


class MissingWorkflowSnapshotError(WorkflowConfigurationError):
    """An in-flight registration has no frozen workflow snapshot."""

    code: str = "MISSING_WORKFLOW_SNAPSHOT"

    def __init__(self, registration_id: str):
        self.registration_id = registration_id
        super().__init__(f"Registration {registration_id} has no workflow snapshot")


# Concurrency exceptions


class ConcurrencyError(RegistrationKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(RegistrationKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify {entity_type} {entity_id}: {reason}"
        )


# Sync exceptions


class ErpSyncError(RegistrationKernelError):
    """The ERP gateway failed to persist a registration."""

    code: str = "ERP_SYNC_FAILED"

    def __init__(self, table_name: str, message: str):
        self.table_name = table_name
        self.message = message
        super().__init__(f"ERP sync to {table_name} failed: {message}")
