"""Google OAuth 2.0 endpoints for Calendar availability sync."""

import logging
import urllib.parse
import uuid

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.auth import get_current_user_id
from duet.core.calendar_sync import sync_calendar_list
from duet.core.config import settings
from duet.core.db import get_session
from duet.core.exceptions import (
    DuetError,
    StateMismatchError,
    UserCancelledError,
)
from duet.core.freebusy_sync import sync_availability_blocks
from duet.core.google_auth import (
    STATE_COOKIE_MAX_AGE,
    STATE_COOKIE_NAME,
    handle_callback,
    read_state_cookie,
    start_authorization,
)
from duet.core.token_store import TokenStore, get_token_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/integrations/google", tags=["google-calendar"])


def _status_redirect(status: str) -> RedirectResponse:
    query = urllib.parse.urlencode({"google_calendar": status})
    response = RedirectResponse(
        url=f"{settings.post_connect_redirect_path}?{query}", status_code=302
    )
    # The state is single use
    response.delete_cookie(STATE_COOKIE_NAME, path="/")
    return response


@router.get("/start")
async def google_oauth_start(user_id: uuid.UUID = Depends(get_current_user_id)):
    """Start the Google OAuth flow: set the CSRF state cookie and redirect to consent."""
    flow = start_authorization(user_id)
    response = RedirectResponse(url=flow.url, status_code=302)
    response.set_cookie(
        STATE_COOKIE_NAME,
        flow.cookie_value,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
    return response


async def _initial_sync(
    session: AsyncSession, external_account_id: uuid.UUID, token_store: TokenStore
) -> None:
    """Mirror calendars and pull availability right after connecting.

    Failures are recorded in the sync state; the account stays connected.
    """
    try:
        await sync_calendar_list(session, external_account_id, token_store)
        await sync_availability_blocks(session, external_account_id, token_store)
    except DuetError as e:
        logger.warning("Initial sync failed for external account %s: %s", external_account_id, e)
    except Exception:
        logger.exception(
            "Unexpected error in initial sync for external account %s", external_account_id
        )


@router.get("/callback")
async def google_oauth_callback(
    request: Request,
    code: str | None = Query(None),
    state: str | None = Query(None),
    error: str | None = Query(None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    token_store: TokenStore = Depends(get_token_store),
):
    """Handle the Google OAuth callback: exchange code for tokens, then sync."""
    stored_state = read_state_cookie(request.cookies.get(STATE_COOKIE_NAME))
    try:
        account = await handle_callback(
            session,
            token_store,
            user_id=user_id,
            code=code,
            state=state,
            stored_state=stored_state,
            error=error,
        )
    except StateMismatchError:
        return _status_redirect("state_mismatch")
    except UserCancelledError:
        return _status_redirect("cancelled")
    except DuetError as e:
        logger.warning("Google OAuth callback failed for user %s: %s", user_id, e)
        return _status_redirect("error")
    except Exception:
        logger.exception("Unexpected error in Google OAuth callback for user %s", user_id)
        return _status_redirect("error")

    await _initial_sync(session, account.id, token_store)
    return _status_redirect("connected")
