"""Tests for the Google OAuth redirect endpoints."""

import functools
import urllib.parse
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from api.auth import SESSION_COOKIE_NAME, get_current_user_id, issue_session_token
from api.oauth import _initial_sync, router
from duet.core.calendar_sync import sync_calendar_list
from duet.core.config import settings
from duet.core.db import get_session
from duet.core.exceptions import (
    ProviderError,
    StateMismatchError,
    TokenExchangeFailedError,
    UserCancelledError,
)
from duet.core.google_auth import STATE_COOKIE_NAME, read_state_cookie
from duet.core.models import ExternalSyncState
from duet.core.signing import sign_value
from duet.core.token_store import get_token_store

USER_ID = uuid.uuid4()


def _create_test_app(user_id=USER_ID, session=None):
    """Create a test FastAPI app with the OAuth router and mocked dependencies."""
    test_app = FastAPI()
    test_app.include_router(router)

    if user_id is not None:

        async def _override_user():
            return user_id

        test_app.dependency_overrides[get_current_user_id] = _override_user

    test_app.dependency_overrides[get_session] = lambda: session or AsyncMock()
    test_app.dependency_overrides[get_token_store] = lambda: MagicMock()
    return test_app


def _location(response) -> tuple[str, dict]:
    parsed = urllib.parse.urlparse(response.headers["location"])
    return parsed.path, urllib.parse.parse_qs(parsed.query)


# --- /start ---


def test_start_redirects_to_consent_and_sets_state_cookie():
    client = TestClient(_create_test_app())
    response = client.get("/api/integrations/google/start", follow_redirects=False)

    assert response.status_code == 302
    location = urllib.parse.urlparse(response.headers["location"])
    params = urllib.parse.parse_qs(location.query)
    assert location.netloc == "accounts.google.com"
    assert params["prompt"] == ["consent"]

    set_cookie = response.headers["set-cookie"]
    assert STATE_COOKIE_NAME in set_cookie
    assert "HttpOnly" in set_cookie
    assert "samesite=lax" in set_cookie.lower()
    assert "Max-Age=600" in set_cookie

    cookie_value = response.cookies[STATE_COOKIE_NAME]
    assert read_state_cookie(cookie_value) == params["state"][0]


def test_start_requires_session():
    client = TestClient(_create_test_app(user_id=None))
    response = client.get("/api/integrations/google/start", follow_redirects=False)
    assert response.status_code == 401


def test_start_with_real_session_cookie():
    client = TestClient(_create_test_app(user_id=None))
    client.cookies.set(SESSION_COOKIE_NAME, issue_session_token(USER_ID))
    response = client.get("/api/integrations/google/start", follow_redirects=False)
    assert response.status_code == 302


# --- /callback ---


def _callback(handle_callback, *, sync_calendars=None, sync_blocks=None, cookie=True):
    sync_calendars = sync_calendars or AsyncMock(return_value=[])
    sync_blocks = sync_blocks or AsyncMock()
    client = TestClient(_create_test_app())
    if cookie:
        client.cookies.set(STATE_COOKIE_NAME, sign_value("state-abc", settings.session_secret))
    with (
        patch("api.oauth.handle_callback", handle_callback),
        patch("api.oauth.sync_calendar_list", sync_calendars),
        patch("api.oauth.sync_availability_blocks", sync_blocks),
    ):
        response = client.get(
            "/api/integrations/google/callback?code=auth-code&state=state-abc",
            follow_redirects=False,
        )
    return response, sync_calendars, sync_blocks


def test_callback_connected_runs_initial_sync():
    account = MagicMock(id=uuid.uuid4())
    handle = AsyncMock(return_value=account)

    response, sync_calendars, sync_blocks = _callback(handle)

    assert response.status_code == 302
    path, params = _location(response)
    assert path == "/spaces"
    assert params["google_calendar"] == ["connected"]

    kwargs = handle.call_args.kwargs
    assert kwargs["user_id"] == USER_ID
    assert kwargs["code"] == "auth-code"
    assert kwargs["state"] == "state-abc"
    assert kwargs["stored_state"] == "state-abc"

    assert sync_calendars.call_args.args[1] == account.id
    assert sync_blocks.call_args.args[1] == account.id
    # State cookie is single use
    assert f'{STATE_COOKIE_NAME}=""' in response.headers["set-cookie"]


def test_callback_without_state_cookie_passes_none():
    handle = AsyncMock(side_effect=StateMismatchError("OAuth state does not match"))
    response, sync_calendars, _ = _callback(handle, cookie=False)

    assert handle.call_args.kwargs["stored_state"] is None
    assert _location(response)[1]["google_calendar"] == ["state_mismatch"]
    sync_calendars.assert_not_called()


def test_callback_cancelled():
    handle = AsyncMock(side_effect=UserCancelledError("declined"))
    response, sync_calendars, _ = _callback(handle)

    assert _location(response)[1]["google_calendar"] == ["cancelled"]
    sync_calendars.assert_not_called()


def test_callback_exchange_failure_is_error():
    handle = AsyncMock(side_effect=TokenExchangeFailedError("Failed to exchange OAuth code."))
    response, _, _ = _callback(handle)
    assert _location(response)[1]["google_calendar"] == ["error"]


def test_callback_unexpected_exception_is_error():
    handle = AsyncMock(side_effect=RuntimeError("boom"))
    response, _, _ = _callback(handle)

    assert response.status_code == 302
    assert _location(response)[1]["google_calendar"] == ["error"]


def test_callback_initial_sync_failure_still_connected():
    handle = AsyncMock(return_value=MagicMock(id=uuid.uuid4()))
    failing = AsyncMock(side_effect=ProviderError("Google Calendar API request failed (503)"))

    response, _, sync_blocks = _callback(handle, sync_calendars=failing)

    assert _location(response)[1]["google_calendar"] == ["connected"]
    sync_blocks.assert_not_called()


def test_callback_unexpected_initial_sync_failure_still_connected():
    handle = AsyncMock(return_value=MagicMock(id=uuid.uuid4()))
    failing = AsyncMock(
        side_effect=IntegrityError("INSERT INTO external_calendars", {}, Exception("UNIQUE"))
    )

    response, _, sync_blocks = _callback(handle, sync_calendars=failing)

    assert response.status_code == 302
    assert _location(response)[1]["google_calendar"] == ["connected"]
    sync_blocks.assert_not_called()


# --- initial sync ---


@pytest.mark.asyncio
async def test_initial_sync_records_calendar_list_failure(
    session, token_store, account, fake_client
):
    account_id = account.id
    fake_client.error = ProviderError("Google Calendar API request failed (503)")

    with patch(
        "api.oauth.sync_calendar_list",
        functools.partial(sync_calendar_list, client_factory=fake_client),
    ):
        await _initial_sync(session, account_id, token_store)

    state = await session.scalar(
        select(ExternalSyncState).where(ExternalSyncState.external_account_id == account_id)
    )
    assert state is not None
    assert state.last_sync_error == "Google Calendar API request failed (503)"
