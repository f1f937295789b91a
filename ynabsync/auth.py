"""
Token handling for the budgeting API.

The raw token is only ever placed in the Authorization header; anything that
is logged goes through ``mask_api_token`` first.
"""

import re
from typing import Dict

# Personal access tokens are 64 alphanumeric characters
API_TOKEN_PATTERN = re.compile(r'[A-Za-z0-9]{64}')

USER_AGENT = "ynabsync/1.0"


def validate_api_token(token: str) -> bool:
    """Return True if ``token`` is exactly 64 ASCII letters or digits."""
    if not isinstance(token, str):
        return False
    return API_TOKEN_PATTERN.fullmatch(token) is not None


def mask_api_token(token: str) -> str:
    """
    Mask a token for logging.

    Examples:
        >>> mask_api_token("abcd1234wxyz")
        'abcd...wxyz'
        >>> mask_api_token("short")
        '****'
    """
    if len(token) < 8:
        return "****"
    return f"{token[:4]}...{token[-4:]}"


def auth_headers(token: str) -> Dict[str, str]:
    """Headers sent with every request."""
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
        "User-Agent": USER_AGENT,
    }
