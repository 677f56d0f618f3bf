"""
Service-layer exceptions.

Both subclass ValueError so callers that only care about "bad request"
semantics can keep catching ValueError.
"""


class NotFoundError(ValueError):
    """Raised when a team, player, match, payment or alert does not exist."""


class PermissionDeniedError(ValueError):
    """Raised when the acting user is not allowed to perform an operation."""
