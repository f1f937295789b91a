"""
Quota-aware, retrying client for the budgeting API with delta sync.
"""

from importlib.metadata import PackageNotFoundError, version

from .auth import mask_api_token, validate_api_token
from .client import YnabClient
from .config import load_config, validate_config
from .core import RateLimiter
from .delta import DeltaCache, DeltaPage
from .dispatcher import HttpDispatcher
from .exceptions import (
    ApiError,
    AuthError,
    ConfigError,
    ConflictError,
    ErrorKind,
    NotFoundError,
    RateLimitExceeded,
    TransientError,
    UnknownError,
    ValidationError,
)
from .models import ClientConfig, HealthStatus, QuotaStatus
from .retry import RetryPolicy

try:
    __version__ = version("ynabsync")
except PackageNotFoundError:
    __version__ = "0.0.0"

__all__ = [
    'YnabClient',
    'ClientConfig',
    'load_config',
    'validate_config',
    'RateLimiter',
    'RetryPolicy',
    'HttpDispatcher',
    'DeltaPage',
    'DeltaCache',
    'QuotaStatus',
    'HealthStatus',
    'ErrorKind',
    'ApiError',
    'AuthError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'RateLimitExceeded',
    'TransientError',
    'UnknownError',
    'ConfigError',
    'mask_api_token',
    'validate_api_token',
]
