"""
Data models for the budgeting API client.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from pydantic import BaseModel, Field, HttpUrl, TypeAdapter, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from .auth import validate_api_token
from .exceptions import ApiError

# Constants
DEFAULT_BASE_URL = "https://api.youneedabudget.com/v1"
DEFAULT_RATE_LIMIT_REQUESTS = 200
DEFAULT_RATE_LIMIT_WINDOW_MS = 60 * 60 * 1000
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY_MS = 1000
DEFAULT_MAX_DELAY_MS = 30000
DEFAULT_TIMEOUT_MS = 30000

T = TypeVar("T")

_HTTP_URL = TypeAdapter(HttpUrl)


class ClientConfig(BaseModel):
    """Settings for one client instance."""

    api_token: str = Field(min_length=1)
    base_url: str = DEFAULT_BASE_URL
    rate_limit_requests: int = Field(default=DEFAULT_RATE_LIMIT_REQUESTS, gt=0)
    rate_limit_window_ms: int = Field(default=DEFAULT_RATE_LIMIT_WINDOW_MS, gt=0)
    max_attempts: int = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    base_delay_ms: int = Field(default=DEFAULT_BASE_DELAY_MS, ge=0)
    max_delay_ms: int = Field(default=DEFAULT_MAX_DELAY_MS, ge=0)
    timeout_ms: int = Field(default=DEFAULT_TIMEOUT_MS, gt=0)
    # Wait for the next quota window instead of failing with RateLimitExceeded
    block_on_rate_limit: bool = True

    @field_validator("api_token")
    @classmethod
    def _check_token(cls, value: str) -> str:
        if not validate_api_token(value):
            raise PydanticCustomError("api_token", "expected a 64-character alphanumeric string")
        return value

    @field_validator("base_url")
    @classmethod
    def _check_base_url(cls, value: str) -> str:
        # Validated as a URL but kept as the given string for httpx
        try:
            _HTTP_URL.validate_python(value)
        except PydanticValidationError:
            raise PydanticCustomError(
                "base_url", "not a valid http(s) URL: {url}", {"url": value}
            ) from None
        return value


class QuotaStatus(BaseModel):
    """Snapshot of the limiter for the current window."""

    remaining: int
    reset_at: float
    capacity: int
    consumed: int
    window_ms: int


class HealthStatus(BaseModel):
    status: str
    latency_ms: float
    error: Optional[str] = None
    retry_after_ms: Optional[int] = None


@dataclass
class RateLimitState:
    """Counters for the current fixed window. Mutated only by RateLimiter."""

    capacity: int
    window_seconds: float
    consumed: int
    window_reset_at: float


@dataclass(frozen=True)
class Admission:
    admitted: bool
    wait_seconds: float = 0.0


@dataclass
class RetryContext:
    """Per-call retry bookkeeping; discarded when the call completes."""

    max_attempts: int
    base_delay_ms: int
    attempt: int = 1

    def delay_ms(self) -> int:
        """Backoff before attempt ``attempt + 1``."""
        return self.base_delay_ms * 2 ** (self.attempt - 1)


@dataclass(frozen=True)
class ApiResponse:
    """Decoded ``data`` envelope of a successful response."""

    data: Dict[str, Any]
    status_code: int = 200
    server_knowledge: Optional[int] = None


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure:
    error: ApiError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise self.error


Outcome = Union[Success[T], Failure]
