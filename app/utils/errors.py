from typing import Any, Optional

from fastapi import HTTPException

from app.core.error_classifier import ErrorKind, ResolutionError


class APIError(HTTPException):
    """Base API error class with predefined status codes and messages."""

    def __init__(self, status_code: int, detail: Any):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(APIError):
    """Resource not found error."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} with id {resource_id} not found"
        super().__init__(status_code=404, detail=detail)


class UnauthorizedError(APIError):
    """Authentication error."""

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(status_code=401, detail=detail)


class ValidationError(APIError):
    """Input validation error."""

    def __init__(self, detail: str):
        super().__init__(status_code=400, detail=detail)


RESOLUTION_STATUS_CODES = {
    ErrorKind.AUTH: 403,
    ErrorKind.TRANSIENT: 503,
    ErrorKind.UNKNOWN: 500,
    # Conflicts are absorbed before reaching the API; kept for completeness
    ErrorKind.CONFLICT: 409,
}


class ResolutionFailedError(APIError):
    """A classified resolution failure, with the full classification as detail."""

    def __init__(self, error: ResolutionError):
        super().__init__(
            status_code=RESOLUTION_STATUS_CODES[error.kind], detail=error.to_dict()
        )


# Common error messages
def CONVERSATION_NOT_FOUND(id):
    return NotFoundError("Conversation", str(id))


def INVALID_TOKEN():
    return UnauthorizedError("Invalid or expired token")


def MISSING_TOKEN():
    return UnauthorizedError("No authentication token provided")
