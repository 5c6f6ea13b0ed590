"""Shared-secret verification for the batch trigger and admin queue endpoints.

The external scheduler authenticates with a static secret sent as
``Authorization: Bearer <secret>`` (or ``X-Cron-Secret``).  Comparison is
constant-time.
"""

import hmac


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token from an ``Authorization: Bearer`` header value.

    Args:
        authorization: Raw header value, possibly None.

    Returns:
        The token string, or None if the header is missing or malformed.
    """
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def verify_shared_secret(provided: str | None, expected: str) -> bool:
    """Compare a provided secret against the configured one in constant time.

    Args:
        provided: Secret supplied by the caller.
        expected: Configured secret.

    Returns:
        True if both are non-empty and equal.
    """
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
