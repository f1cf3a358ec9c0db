"""Normalization of heterogeneous store/backend errors into a small taxonomy.

Every layer above the store reasons about ``ResolutionError`` and its
``ErrorKind`` instead of driver-specific exception shapes.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    IntegrityError,
    OperationalError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

AUTH_CODES = {"42501", "PGRST301"}
UNIQUE_VIOLATION_CODE = "23505"
AUTH_STATUSES = {401, 403}
TRANSIENT_STATUSES = {408, 429, 502, 503, 504}
AUTH_MARKERS = ("permission", "unauthorized", "forbidden", "not authenticated")
CONFLICT_MARKERS = ("duplicate", "unique constraint")


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced by conversation resolution."""

    AUTH = "auth"
    CONFLICT = "conflict"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


class PermissionDeniedError(Exception):
    """Raised by the store when the access policy rejects a read or write."""

    code = "42501"

    def __init__(self, message: str = "permission denied"):
        self.message = message
        super().__init__(message)


class ResolutionError(Exception):
    """A classified failure.

    Attributes:
        kind: Taxonomy bucket
        message: Human readable message from the original error
        code: Backend error code (SQLSTATE, PostgREST code) when known
        retryable: True only for transient failures
        status: HTTP-like status when the original error carried one
        details: Extra diagnostic text, including the original error's type
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        code: str | None = None,
        status: int | None = None,
        details: str | None = None,
    ):
        self.kind = kind
        self.message = message
        self.code = code
        self.status = status
        self.details = details
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"ResolutionError(kind={self.kind.value!r}, message={self.message!r}, "
            f"code={self.code!r}, retryable={self.retryable})"
        )


def _field(raw: Any, name: str) -> Any:
    if isinstance(raw, Mapping):
        return raw.get(name)
    return getattr(raw, name, None)


def _error_code(raw: Any) -> str | None:
    # SQLAlchemy's own ``code`` is a docs link id; the SQLSTATE lives on the
    # DBAPI exception as pgcode (psycopg2) or sqlstate (psycopg 3, asyncpg)
    source = raw.orig if isinstance(raw, DBAPIError) else raw
    for attr in ("code", "pgcode", "sqlstate"):
        value = _field(source, attr)
        if isinstance(value, str) and value:
            return value
    return None


def _error_status(raw: Any) -> int | None:
    for attr in ("status_code", "status"):
        value = _field(raw, attr)
        if isinstance(value, int):
            return value
    return None


def _error_message(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    for attr in ("message", "detail"):
        value = _field(raw, attr)
        if isinstance(value, str) and value:
            return value
    if isinstance(raw, Mapping):
        return "An unexpected error occurred"
    return str(raw) or type(raw).__name__


def _is_auth(raw: Any, code: str | None, status: int | None, text: str) -> bool:
    if isinstance(raw, PermissionDeniedError):
        return True
    if code in AUTH_CODES or status in AUTH_STATUSES:
        return True
    return any(marker in text for marker in AUTH_MARKERS)


def _is_conflict(raw: Any, code: str | None, text: str) -> bool:
    if code == UNIQUE_VIOLATION_CODE:
        return True
    if isinstance(raw, IntegrityError):
        return any(marker in text for marker in CONFLICT_MARKERS)
    return "duplicate" in text


def _is_transient(raw: Any, code: str | None, status: int | None) -> bool:
    if isinstance(raw, (TimeoutError, ConnectionError, OSError)):
        return True
    if isinstance(raw, (OperationalError, DisconnectionError, PoolTimeoutError)):
        return True
    if isinstance(raw, DBAPIError) and raw.connection_invalidated:
        return True
    if code is not None and code.startswith("08"):
        return True
    return status in TRANSIENT_STATUSES


def classify(raw: Any) -> ResolutionError:
    """Map any raised or returned error onto the resolution taxonomy."""
    if isinstance(raw, ResolutionError):
        return raw
    if raw is None:
        return ResolutionError(ErrorKind.UNKNOWN, "Unknown error")

    code = _error_code(raw) if not isinstance(raw, str) else None
    status = _error_status(raw) if not isinstance(raw, str) else None
    message = _error_message(raw)
    text = message.lower()
    details = None if isinstance(raw, str) else f"{type(raw).__name__}: {raw!r}"

    if _is_auth(raw, code, status, text):
        kind = ErrorKind.AUTH
    elif _is_conflict(raw, code, text):
        kind = ErrorKind.CONFLICT
    elif _is_transient(raw, code, status):
        kind = ErrorKind.TRANSIENT
    else:
        kind = ErrorKind.UNKNOWN

    return ResolutionError(kind, message, code=code, status=status, details=details)
