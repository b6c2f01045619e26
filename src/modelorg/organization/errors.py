"""Organization errors."""


class OrganizationError(Exception):
    """Base exception for organization failures."""


class SetupError(OrganizationError):
    """Raised when the destination tree cannot be prepared at all."""
