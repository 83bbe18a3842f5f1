"""HMAC-SHA256 signed cookie values.

Format: ``<value>.<issued_at>.<hexdigest>``. The value itself must not
contain dots.
"""

import hashlib
import hmac
import logging
import time

logger = logging.getLogger(__name__)


def _digest(secret: str, payload: str) -> str:
    return hmac.new(secret.encode(), payload.encode(), hashlib.sha256).hexdigest()


def sign_value(value: str, secret: str, *, issued_at: int | None = None) -> str:
    if not secret:
        raise ValueError("SESSION_SECRET env var is required for signed cookies.")
    if "." in value:
        raise ValueError("Signed values must not contain '.'")
    ts = int(time.time()) if issued_at is None else issued_at
    payload = f"{value}.{ts}"
    return f"{payload}.{_digest(secret, payload)}"


def unsign_value(token: str | None, secret: str, *, max_age: int | None = None) -> str | None:
    """Return the signed value, or None when the token is missing, forged or expired."""
    if not token or not secret:
        return None
    try:
        value, ts_str, signature = token.split(".")
        issued_at = int(ts_str)
    except ValueError:
        return None

    expected = _digest(secret, f"{value}.{ts_str}")
    if not hmac.compare_digest(expected, signature):
        logger.warning("Rejected cookie with invalid signature")
        return None

    if max_age is not None and time.time() - issued_at > max_age:
        return None
    return value
