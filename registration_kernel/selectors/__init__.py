"""Selectors for the registration kernel (read side)."""

from registration_kernel.selectors.registration_selector import RegistrationSelector

__all__ = ["RegistrationSelector"]
