"""Persistence models for the registration kernel."""

from registration_kernel.models.registration import (
    ApprovalModel,
    FieldChangeModel,
    RegistrationRequestModel,
    WorkflowEventModel,
)

__all__ = [
    "ApprovalModel",
    "FieldChangeModel",
    "RegistrationRequestModel",
    "WorkflowEventModel",
]
