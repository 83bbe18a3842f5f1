"""Google OAuth token management: consent flow, code exchange, refresh, revocation."""

import hmac
import logging
import secrets
import urllib.parse
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import httpx
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from duet.core.config import settings
from duet.core.exceptions import (
    OAuthFlowError,
    ProviderError,
    ReauthorizationRequiredError,
    RevokedError,
    StateMismatchError,
    TokenExchangeFailedError,
    UserCancelledError,
)
from duet.core.models.enums import ExternalProvider
from duet.core.models.external_account import ExternalAccount
from duet.core.signing import sign_value, unsign_value
from duet.core.token_store import TokenStore
from duet.tools.google_calendar import fetch_account_email

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
SCOPES = [
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
]

STATE_COOKIE_NAME = "google_oauth_state"
STATE_COOKIE_MAX_AGE = 10 * 60


@dataclass(frozen=True)
class AuthorizationStart:
    state: str
    url: str
    cookie_value: str


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str | None
    expires_at: datetime
    scope: str | None


# ── Consent flow ────────────────────────────────────────────────────────


def build_authorization_url(state: str) -> str:
    params = urllib.parse.urlencode(
        {
            "client_id": settings.google_client_id,
            "redirect_uri": settings.google_redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            # Force the consent screen so Google issues a refresh token
            "prompt": "consent",
            "state": state,
        }
    )
    return f"{GOOGLE_AUTH_URL}?{params}"


def start_authorization(user_id: uuid.UUID | str) -> AuthorizationStart:
    """Create a CSRF state token and the consent URL that carries it.

    The caller stores ``cookie_value`` in the short-lived state cookie.
    """
    state = secrets.token_urlsafe(32)
    logger.info("Starting Google OAuth flow for user %s", user_id)
    return AuthorizationStart(
        state=state,
        url=build_authorization_url(state),
        cookie_value=sign_value(state, settings.session_secret),
    )


def read_state_cookie(cookie_value: str | None) -> str | None:
    """Return the state stored in the cookie, or None if missing, forged or expired."""
    return unsign_value(cookie_value, settings.session_secret, max_age=STATE_COOKIE_MAX_AGE)


async def exchange_code(code: str) -> TokenGrant:
    """Exchange an authorization code at the token endpoint."""
    try:
        async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
            resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "redirect_uri": settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
    except httpx.HTTPError as e:
        raise TokenExchangeFailedError(f"Token endpoint request failed: {e}") from e

    if resp.status_code < 200 or resp.status_code >= 300:
        logger.error("OAuth token exchange failed with status %s", resp.status_code)
        raise TokenExchangeFailedError("Failed to exchange OAuth code.")

    try:
        token_data = resp.json()
    except ValueError as e:
        raise TokenExchangeFailedError("Token endpoint returned invalid JSON") from e
    if not isinstance(token_data, dict) or not token_data.get("access_token"):
        raise TokenExchangeFailedError("No access token received from Google")

    return TokenGrant(
        access_token=token_data["access_token"],
        refresh_token=token_data.get("refresh_token"),
        expires_at=datetime.now(UTC) + timedelta(seconds=token_data.get("expires_in", 3600)),
        scope=token_data.get("scope"),
    )


async def get_account_for_user(
    session: AsyncSession, user_id: uuid.UUID
) -> ExternalAccount | None:
    return await session.scalar(
        select(ExternalAccount).where(
            ExternalAccount.user_id == user_id,
            ExternalAccount.provider == ExternalProvider.google.value,
        )
    )


async def handle_callback(
    session: AsyncSession,
    token_store: TokenStore,
    *,
    user_id: uuid.UUID,
    code: str | None,
    state: str | None,
    stored_state: str | None,
    error: str | None = None,
) -> ExternalAccount:
    """Validate the callback, exchange the code and persist the linked account.

    Raises StateMismatchError, UserCancelledError, TokenExchangeFailedError or
    OAuthFlowError; the caller turns those into a redirect.
    """
    if not state or not stored_state or not hmac.compare_digest(state, stored_state):
        logger.warning("OAuth state mismatch for user %s", user_id)
        raise StateMismatchError("OAuth state does not match")

    if error == "access_denied":
        raise UserCancelledError("User declined Google Calendar access")
    if error:
        raise OAuthFlowError(f"Google returned OAuth error: {error}")
    if not code:
        raise TokenExchangeFailedError("Callback is missing the authorization code")

    grant = await exchange_code(code)
    email = await fetch_account_email(grant.access_token)

    account = await get_account_for_user(session, user_id)
    if account is None:
        account = ExternalAccount(
            user_id=user_id,
            provider=ExternalProvider.google.value,
            provider_account_id=email,
        )
        session.add(account)

    account.provider_account_id = email
    # Reconnecting clears any previous revocation
    account.revoked_at = None
    token_store.save_tokens(
        account,
        access_token=grant.access_token,
        refresh_token=grant.refresh_token,
        expires_at=grant.expires_at,
        scope=grant.scope,
    )
    await session.commit()
    logger.info("Connected Google account for user %s", user_id)
    return account


# ── Token lifecycle ─────────────────────────────────────────────────────


def token_needs_refresh(account: ExternalAccount, now: datetime | None = None) -> bool:
    now = now or datetime.now(UTC)
    if account.token_expires_at is None:
        return True
    margin = timedelta(seconds=settings.token_refresh_margin_seconds)
    return account.token_expires_at < now + margin


async def _mark_revoked(session: AsyncSession, account: ExternalAccount) -> None:
    account.revoked_at = datetime.now(UTC)
    await session.commit()
    logger.warning("Google access revoked for external account %s", account.id)


async def refresh_access_token(
    session: AsyncSession, account: ExternalAccount, token_store: TokenStore
) -> str:
    """Refresh the account's access token and persist it.

    A rejected refresh token (invalid_grant) is terminal: the account is
    marked revoked and ReauthorizationRequiredError is raised. Any other
    failure is a transient ProviderError.
    """
    tokens = token_store.load_tokens(account)
    if not tokens.refresh_token:
        await _mark_revoked(session, account)
        raise ReauthorizationRequiredError(
            "No refresh token on file. Please reconnect your Google account."
        )

    try:
        async with httpx.AsyncClient(timeout=settings.provider_timeout_seconds) as client:
            resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": settings.google_client_id,
                    "client_secret": settings.google_client_secret,
                    "refresh_token": tokens.refresh_token,
                    "grant_type": "refresh_token",
                },
            )
    except httpx.HTTPError as e:
        raise ProviderError(f"Google OAuth token refresh request failed: {e}") from e

    if resp.status_code != 200:
        try:
            error_code = resp.json().get("error")
        except ValueError:
            error_code = None

        if error_code == "invalid_grant":
            # A concurrent refresh may already have stored a fresh token
            await session.refresh(account)
            if account.revoked_at is None and not token_needs_refresh(account):
                logger.info("Token for account %s was refreshed concurrently", account.id)
                return token_store.load_tokens(account).access_token
            await _mark_revoked(session, account)
            raise ReauthorizationRequiredError(
                "Failed to refresh access token. Please reconnect your account."
            )

        logger.warning(
            "Token refresh failed for account %s with status %s", account.id, resp.status_code
        )
        raise ProviderError(
            f"Google OAuth token refresh failed ({resp.status_code})",
            upstream_status=resp.status_code,
        )

    try:
        data = resp.json()
    except ValueError as e:
        raise ProviderError("Google OAuth token refresh returned invalid JSON") from e
    if not isinstance(data, dict) or not data.get("access_token"):
        raise ProviderError("No access token in Google OAuth refresh response")

    token_store.save_tokens(
        account,
        access_token=data["access_token"],
        # Google may return a new refresh token
        refresh_token=data.get("refresh_token"),
        expires_at=datetime.now(UTC) + timedelta(seconds=data.get("expires_in", 3600)),
        scope=data.get("scope"),
    )
    await session.commit()
    logger.info("Refreshed Google token for external account %s", account.id)
    return data["access_token"]


async def get_valid_access_token(
    session: AsyncSession, account: ExternalAccount, token_store: TokenStore
) -> str:
    """Return a usable access token, refreshing it when close to expiry."""
    if account.revoked_at is not None:
        raise RevokedError("Google Calendar access has been revoked. Please reconnect.")
    if token_needs_refresh(account):
        return await refresh_access_token(session, account, token_store)
    return token_store.load_tokens(account).access_token


async def disconnect_account(session: AsyncSession, user_id: uuid.UUID) -> bool:
    """Delete the user's Google account link.

    Calendars, sync state and external blocks are removed by ON DELETE CASCADE.
    Returns False when nothing was linked.
    """
    result = await session.execute(
        delete(ExternalAccount).where(
            ExternalAccount.user_id == user_id,
            ExternalAccount.provider == ExternalProvider.google.value,
        )
    )
    await session.commit()
    if not result.rowcount:
        return False
    logger.info("Disconnected Google account for user %s", user_id)
    return True
