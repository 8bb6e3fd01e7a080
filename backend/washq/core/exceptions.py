"""
Application exceptions.

Every expected outcome of the booking core (conflicts, role checks, bad
input) is raised as a WashQError subclass. They extend HTTPException so an
uncaught one still becomes a clean 4xx/5xx response; main.py registers a
handler that also emits the machine-readable ``code``.
"""

from fastapi import HTTPException, status


class WashQError(HTTPException):
    """Base application exception."""

    code = "error"

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class NotFound(WashQError):
    code = "not_found"

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} '{identifier}' not found"
        self.resource = resource
        self.identifier = identifier
        super().__init__(detail, status.HTTP_404_NOT_FOUND)


class AlreadyBooked(WashQError):
    code = "already_booked"

    def __init__(self, machine_id: str | None = None) -> None:
        self.machine_id = machine_id
        detail = "You already have an active booking. Complete your current wash first."
        if machine_id:
            detail = f"You already have an active booking on machine '{machine_id}'. Complete it first."
        super().__init__(detail, status.HTTP_409_CONFLICT)


class Unavailable(WashQError):
    code = "unavailable"

    def __init__(self, detail: str = "Machine is unavailable") -> None:
        super().__init__(detail, status.HTTP_409_CONFLICT)


class Forbidden(WashQError):
    code = "forbidden"

    def __init__(self, detail: str = "Admin access required") -> None:
        super().__init__(detail, status.HTTP_403_FORBIDDEN)


class AuthError(WashQError):
    """Credential or identity failure with a specific reason code."""

    code = "auth_error"

    MESSAGES = {
        "invalid-email": "Invalid email address.",
        "weak-password": "Password is too weak. Use at least 6 characters.",
        "wrong-password": "Incorrect password. Please try again.",
        "user-not-found": "No account exists for this email.",
        "email-already-in-use": "Email already registered. Please sign in with your password.",
        "invalid-token": "Session expired or invalid. Please sign in again.",
        "not-authenticated": "You must be logged in.",
    }

    def __init__(self, reason: str, detail: str | None = None) -> None:
        self.reason = reason
        super().__init__(
            detail or self.MESSAGES.get(reason, "Authentication failed. Please try again."),
            status.HTTP_401_UNAUTHORIZED,
            headers={"WWW-Authenticate": "Bearer"},
        )


class PersistenceError(WashQError):
    code = "persistence_error"

    def __init__(self, operation: str, collection: str, error: str | None = None) -> None:
        self.operation = operation
        self.collection = collection
        self.error = error
        super().__init__(
            "Could not save your changes. Please try again.",
            status.HTTP_503_SERVICE_UNAVAILABLE,
        )


class ValidationError(WashQError):
    code = "validation_error"

    def __init__(self, detail: str = "Validation failed") -> None:
        super().__init__(detail, status.HTTP_422_UNPROCESSABLE_ENTITY)
