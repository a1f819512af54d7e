"""Exceptions raised by the authorization engine."""

from typing import Optional


class AccessControlError(Exception):
    """Base class for authorization engine errors."""


class PermissionDeniedError(AccessControlError):
    """Raised when an actor may not perform an administrative operation."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class NotFoundError(AccessControlError):
    """Raised when an administrative operation references an unknown entity."""

    def __init__(self, entity: str, key: Optional[object] = None):
        message = f"{entity} not found" if key is None else f"{entity} '{key}' not found"
        super().__init__(message)
        self.entity = entity
        self.key = key


class ConflictError(AccessControlError):
    """Raised when creating an entity whose unique key already exists."""


class InvalidGrantError(AccessControlError, ValueError):
    """Raised when a grant names actions outside the capability vocabulary."""

    def __init__(self, identifier: str, invalid_actions: list[str]):
        super().__init__(
            f"Invalid actions for capability '{identifier}': {', '.join(sorted(invalid_actions))}"
        )
        self.identifier = identifier
        self.invalid_actions = invalid_actions


class InvalidCapabilityError(AccessControlError, ValueError):
    """Raised when a capability definition fails validation."""

    def __init__(self, identifier: Optional[str], errors: list[str]):
        super().__init__(f"Invalid capability '{identifier}': {', '.join(errors)}")
        self.identifier = identifier
        self.errors = errors
