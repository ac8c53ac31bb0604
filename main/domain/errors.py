"""
Domain errors shared by the storefront aggregates.
"""


class NotFound(LookupError):
    """Requested entity does not exist."""


class InvalidState(ValueError):
    """Operation is not allowed in the entity's current state."""


class DuplicateRequest(Exception):
    """Idempotency key was already used for a different request."""
