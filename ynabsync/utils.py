"""
Failure classification helpers.

These functions turn raw HTTP outcomes into typed ``ApiError`` values. They
look only at status codes, headers, exception types and structured error
fields, never at human-readable message text.
"""

from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import httpx

from .exceptions import ApiError, ErrorKind

STATUS_KINDS = {
    400: ErrorKind.VALIDATION,
    401: ErrorKind.AUTH,
    403: ErrorKind.AUTH,
    404: ErrorKind.NOT_FOUND,
    408: ErrorKind.TRANSIENT,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
}

STATUS_MESSAGES = {
    400: "Bad request - invalid parameters or request format",
    401: "Unauthorized - invalid or missing API token",
    403: "Forbidden - insufficient permissions",
    404: "Resource not found",
    408: "Request timeout",
    409: "Conflict - resource already exists",
    422: "Unprocessable request",
    429: "Rate limit exceeded",
}

# Structured ``error.name`` values that refine a status code
ERROR_NAME_KINDS = {
    "conflict": ErrorKind.CONFLICT,
}


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP error status to an ``ErrorKind``."""
    if status_code in STATUS_KINDS:
        return STATUS_KINDS[status_code]
    if 500 <= status_code < 600:
        return ErrorKind.TRANSIENT
    return ErrorKind.UNKNOWN


def parse_retry_after(headers: Mapping[str, str], now: Optional[datetime] = None) -> Optional[int]:
    """
    Parse a ``Retry-After`` header into milliseconds.

    Both forms are accepted: delay in seconds and an HTTP date.
    """
    value = headers.get("retry-after")
    if value is None:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value) * 1000
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((when - now).total_seconds() * 1000))


def _error_detail(body: Any) -> Mapping[str, Any]:
    """Return the ``{"error": {...}}`` object of an error body, if present."""
    if isinstance(body, Mapping):
        error = body.get("error")
        if isinstance(error, Mapping):
            return error
    return {}


def classify_response(response: httpx.Response, request_id: Optional[str] = None) -> ApiError:
    """Build the ``ApiError`` for a non-2xx response."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = None
    detail = _error_detail(body)

    kind = kind_for_status(status)
    name = detail.get("name")
    if isinstance(name, str) and name.lower() in ERROR_NAME_KINDS and kind is ErrorKind.VALIDATION:
        kind = ERROR_NAME_KINDS[name.lower()]

    message = detail.get("detail") or STATUS_MESSAGES.get(status)
    if message is None:
        message = f"Server error ({status})" if status >= 500 else f"HTTP error {status}"

    retry_after_ms = None
    if kind is ErrorKind.RATE_LIMIT_EXCEEDED:
        retry_after_ms = parse_retry_after(response.headers)

    code = detail.get("id")
    return ApiError.from_kind(
        kind,
        str(message),
        status_code=status,
        retry_after_ms=retry_after_ms,
        code=str(code) if code is not None else None,
        request_id=response.headers.get("x-request-id") or request_id,
    )


def classify_exception(error: BaseException, request_id: Optional[str] = None) -> ApiError:
    """
    Build the ``ApiError`` for an exception raised while sending a request.

    Examples:
        ```python
        try:
            response = await http.request("GET", "/budgets")
        except httpx.HTTPError as e:
            error = classify_exception(e)
            if error.retryable:
                ...
        ```
    """
    if isinstance(error, ApiError):
        return error
    if isinstance(error, httpx.TimeoutException):
        return ApiError.from_kind(ErrorKind.TRANSIENT, "Request timed out", request_id=request_id)
    if isinstance(error, httpx.TransportError):
        return ApiError.from_kind(
            ErrorKind.TRANSIENT,
            f"Network error occurred: {type(error).__name__}",
            request_id=request_id,
        )
    return ApiError.from_kind(
        ErrorKind.UNKNOWN,
        str(error) or type(error).__name__,
        request_id=request_id,
    )
