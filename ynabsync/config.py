"""
Configuration validation and loading.

``ClientConfig`` holds every field constraint. ``validate_config`` runs it
once and reports every problem at once so a misconfigured deployment can be
fixed in one pass.
"""

import logging
import os
from typing import Any, List, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from .auth import mask_api_token
from .exceptions import ConfigError
from .models import ClientConfig

logger = logging.getLogger(__name__)

# Environment variable -> ClientConfig field
ENV_FIELDS = {
    "YNAB_API_TOKEN": "api_token",
    "YNAB_BASE_URL": "base_url",
    "RATE_LIMIT_REQUESTS": "rate_limit_requests",
    "RATE_LIMIT_WINDOW_MS": "rate_limit_window_ms",
    "YNAB_MAX_ATTEMPTS": "max_attempts",
    "YNAB_BASE_DELAY_MS": "base_delay_ms",
    "YNAB_MAX_DELAY_MS": "max_delay_ms",
    "YNAB_TIMEOUT_MS": "timeout_ms",
    "YNAB_BLOCK_ON_RATE_LIMIT": "block_on_rate_limit",
}


def _problems(error: PydanticValidationError) -> List[str]:
    problems = []
    for issue in error.errors():
        field = ".".join(str(part) for part in issue["loc"]) or "config"
        problems.append(f"{field}: {issue['msg']}")
    return problems


def build_config(values: Mapping[str, Any]) -> ClientConfig:
    """
    Build a ``ClientConfig`` from raw values.

    ``None`` values are treated as unset so their defaults apply.

    Raises:
        ConfigError: carrying one ``"field: problem"`` string per invalid field.
    """
    cleaned = {k: v for k, v in values.items() if v is not None}
    try:
        return ClientConfig.model_validate(cleaned)
    except PydanticValidationError as e:
        raise ConfigError(_problems(e)) from e


def validate_config(values: Mapping[str, Any]) -> List[str]:
    """
    Check raw configuration values and return every field-level problem.

    Args:
        values: Mapping of ``ClientConfig`` field names to raw values. Missing
            optional fields fall back to their defaults.

    Returns:
        A list of ``"field: problem"`` strings; empty when the values are valid.
    """
    try:
        build_config(values)
    except ConfigError as e:
        return list(e.problems)
    return []


def load_config(environ: Optional[Mapping[str, str]] = None) -> ClientConfig:
    """Load configuration from environment variables."""
    env = os.environ if environ is None else environ
    values = {field: env.get(name) for name, field in ENV_FIELDS.items()}
    config = build_config(values)
    logger.info(
        f"Loaded configuration: base_url={config.base_url}, "
        f"token={mask_api_token(config.api_token)}, "
        f"quota={config.rate_limit_requests}/{config.rate_limit_window_ms}ms, "
        f"block_on_rate_limit={config.block_on_rate_limit}"
    )
    return config
