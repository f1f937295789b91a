"""
Typed error taxonomy for the budgeting API client.

Every failure that leaves the dispatcher is an ``ApiError`` tagged with
exactly one ``ErrorKind``. Retryability is a property of the kind.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(str, Enum):
    """Classification assigned once, at the dispatcher boundary."""

    AUTH = "auth"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.TRANSIENT, ErrorKind.RATE_LIMIT_EXCEEDED)


class ApiError(Exception):
    """
    Error raised by the client for any failed request.

    Attributes are read-only once the error has been created. Use
    ``with_remediation`` to attach guidance for the caller; it returns a new
    error of the same kind.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after_ms: Optional[int] = None,
        code: Optional[str] = None,
        request_id: Optional[str] = None,
        remediation: Optional[str] = None,
    ):
        self._message = message
        self._status_code = status_code
        self._retry_after_ms = retry_after_ms
        self._code = code
        self._request_id = request_id
        self._remediation = remediation
        status_part = f" (Status: {status_code})" if status_code is not None else ""
        super().__init__(f"{message}{status_part}")

    @staticmethod
    def from_kind(kind: ErrorKind, message: str, **kwargs: Any) -> "ApiError":
        """Build the subclass matching ``kind``."""
        return _ERRORS_BY_KIND[kind](message, **kwargs)

    @property
    def message(self) -> str:
        return self._message

    @property
    def status_code(self) -> Optional[int]:
        return self._status_code

    @property
    def retry_after_ms(self) -> Optional[int]:
        return self._retry_after_ms

    @property
    def code(self) -> Optional[str]:
        return self._code

    @property
    def request_id(self) -> Optional[str]:
        return self._request_id

    @property
    def remediation(self) -> Optional[str]:
        return self._remediation

    @property
    def retryable(self) -> bool:
        return self.kind.retryable

    def with_remediation(self, remediation: str) -> "ApiError":
        """Return a copy of this error carrying ``remediation``; the kind is kept."""
        return type(self)(
            self._message,
            status_code=self._status_code,
            retry_after_ms=self._retry_after_ms,
            code=self._code,
            request_id=self._request_id,
            remediation=remediation,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Log-friendly view of the error."""
        data = {
            "kind": self.kind.value,
            "message": self._message,
            "status_code": self._status_code,
            "retry_after_ms": self._retry_after_ms,
            "code": self._code,
            "request_id": self._request_id,
            "remediation": self._remediation,
        }
        return {k: v for k, v in data.items() if v is not None}


class AuthError(ApiError):
    """401/403: invalid token or insufficient permissions."""
    kind = ErrorKind.AUTH


class ValidationError(ApiError):
    """400 or a response body that does not match the expected shape."""
    kind = ErrorKind.VALIDATION


class NotFoundError(ApiError):
    kind = ErrorKind.NOT_FOUND


class ConflictError(ApiError):
    """409 or a duplicate-name response."""
    kind = ErrorKind.CONFLICT


class RateLimitExceeded(ApiError):
    """429 from the server or local quota exhaustion."""
    kind = ErrorKind.RATE_LIMIT_EXCEEDED


class TransientError(ApiError):
    """5xx, timeouts and connection failures."""
    kind = ErrorKind.TRANSIENT


class UnknownError(ApiError):
    kind = ErrorKind.UNKNOWN


_ERRORS_BY_KIND = {
    ErrorKind.AUTH: AuthError,
    ErrorKind.VALIDATION: ValidationError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.CONFLICT: ConflictError,
    ErrorKind.RATE_LIMIT_EXCEEDED: RateLimitExceeded,
    ErrorKind.TRANSIENT: TransientError,
    ErrorKind.UNKNOWN: UnknownError,
}


class ConfigError(ValueError):
    """Raised when configuration is invalid; carries every problem found."""

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("Configuration validation failed:\n" + "\n".join(self.problems))
