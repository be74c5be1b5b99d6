"""
registration_services -- adapters and composition above the kernel.

Holds the SQL implementation of the group-membership and user-directory
ports and the composition root that wires a RegistrationService together.
"""
