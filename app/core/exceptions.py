"""Error taxonomy raised by the user-management services.

The API layer maps each type to an HTTP status; services never raise
HTTPException themselves.
"""

# Every authorization denial carries this message, whichever rule refused.
ACCESS_DENIED_MESSAGE = "Not permitted to access user data"


class UserCenterError(Exception):
    """Base class for user-management failures. Carries a human-readable message."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConflictError(UserCenterError):
    """Raised when a username, phone or email is already held by another user."""

    def __init__(self, message: str, field: str, value: str | None = None) -> None:
        self.field = field
        self.value = value
        super().__init__(message)


class PermissionDeniedError(UserCenterError):
    """Raised when the principal lacks permission or data scope for the target."""


class OperationRejectedError(UserCenterError):
    """Raised for policy-level refusals such as deleting one's own account."""


class NotFoundError(UserCenterError):
    """Raised when a single target record does not exist."""


class InternalError(UserCenterError):
    """Raised when persistence fails; the transaction has been rolled back."""
