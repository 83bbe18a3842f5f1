"""Session cookie authentication with an HMAC-SHA256 signed user id."""

import logging
import uuid

from fastapi import HTTPException, Request

from duet.core.config import settings
from duet.core.signing import sign_value, unsign_value

logger = logging.getLogger(__name__)

SESSION_COOKIE_NAME = "duet_session"
SESSION_MAX_AGE = 30 * 24 * 3600


def issue_session_token(user_id: uuid.UUID) -> str:
    return sign_value(str(user_id), settings.session_secret)


async def get_current_user_id(request: Request) -> uuid.UUID:
    """Resolve the signed-in user from the session cookie.

    Raises HTTPException 401 if the cookie is missing, forged or expired.
    """
    value = unsign_value(
        request.cookies.get(SESSION_COOKIE_NAME),
        settings.session_secret,
        max_age=SESSION_MAX_AGE,
    )
    if not value:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        return uuid.UUID(value)
    except ValueError:
        logger.warning("Session cookie carried a malformed user id")
        raise HTTPException(status_code=401, detail="Not authenticated")
