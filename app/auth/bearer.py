"""Shared-secret bearer token checks."""

import secrets
from typing import Optional


def extract_token(authorization: Optional[str]) -> Optional[str]:
    """Pull the token out of an ``<scheme> <token>`` Authorization header.

    The scheme itself is not checked.

    Returns:
        The token, or None when the header is absent or malformed.
    """
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or not all(parts):
        return None
    return parts[1]


def is_authorized(authorization: Optional[str], expected_token: str) -> bool:
    token = extract_token(authorization)
    if token is None:
        return False
    return secrets.compare_digest(token.encode(), expected_token.encode())


def redact_authorization(authorization: Optional[str]) -> Optional[str]:
    """Mask the credential part of an Authorization header for logging."""
    if authorization is None:
        return None
    scheme, sep, _ = authorization.partition(" ")
    return f"{scheme}{sep}***" if sep else "***"
