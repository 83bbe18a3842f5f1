"""Google Calendar API client: calendar list and free/busy over httpx.

The client is bound to one access token; token refresh happens before it is
built (see ``duet.core.google_auth``).
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from duet.core.config import settings
from duet.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

GOOGLE_CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


@dataclass(frozen=True)
class ProviderCalendar:
    calendar_id: str
    summary: str
    primary: bool
    background_color: str | None = None
    foreground_color: str | None = None


def google_rfc3339(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def parse_google_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def safe_google_error_message(response: httpx.Response) -> str:
    """Reduce a Google error body to its message; never echo the raw body."""
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(payload.get("error_description"), str):
            return payload["error_description"]
        if isinstance(error, str):
            return error
    return f"HTTP {response.status_code}"


class GoogleCalendarClient:
    """Per-account Google Calendar client.

    Use as an async context manager; an injected ``http_client`` is left open.
    """

    def __init__(
        self,
        access_token: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        self._access_token = access_token
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout if timeout is not None else settings.provider_timeout_seconds
        )

    async def __aenter__(self) -> "GoogleCalendarClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ── helpers ─────────────────────────────────────────────────────────

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._http.request(
                method,
                url,
                params=params,
                json=json_body,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Google Calendar request failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise ProviderError(
                f"Google Calendar API request failed ({response.status_code}): "
                f"{safe_google_error_message(response)}",
                upstream_status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError("Google Calendar API returned invalid JSON") from e
        if not isinstance(payload, dict):
            raise ProviderError("Google Calendar API returned an unexpected JSON payload shape")
        return payload

    # ── Calendar list ───────────────────────────────────────────────────

    async def list_calendars(self) -> list[ProviderCalendar]:
        """List every calendar on the account, following pagination."""
        calendars: list[ProviderCalendar] = []
        page_token: str | None = None
        while True:
            params: dict[str, Any] = {"maxResults": 250}
            if page_token:
                params["pageToken"] = page_token
            payload = await self._request_json(
                "GET", f"{GOOGLE_CALENDAR_API_BASE_URL}/users/me/calendarList", params=params
            )
            for item in payload.get("items", []):
                if not isinstance(item, dict) or not item.get("id"):
                    continue
                calendars.append(
                    ProviderCalendar(
                        calendar_id=item["id"],
                        summary=item.get("summary") or "Unnamed Calendar",
                        primary=bool(item.get("primary", False)),
                        background_color=item.get("backgroundColor"),
                        foreground_color=item.get("foregroundColor"),
                    )
                )
            page_token = payload.get("nextPageToken")
            if not page_token:
                return calendars

    # ── Free/busy ───────────────────────────────────────────────────────

    async def query_free_busy(
        self,
        calendar_ids: list[str],
        time_min: datetime,
        time_max: datetime,
    ) -> dict[str, dict[str, Any]]:
        """Run one freeBusy query for all calendars.

        Returns the raw ``calendars`` object keyed by calendar id; each entry
        holds ``busy`` and, on per-calendar failure, ``errors``.
        """
        logger.debug("freeBusy query for %d calendars", len(calendar_ids))
        payload = await self._request_json(
            "POST",
            f"{GOOGLE_CALENDAR_API_BASE_URL}/freeBusy",
            json_body={
                "timeMin": google_rfc3339(time_min),
                "timeMax": google_rfc3339(time_max),
                "items": [{"id": cid} for cid in calendar_ids],
            },
        )
        calendars = payload.get("calendars")
        if not isinstance(calendars, dict):
            raise ProviderError("Google Calendar freeBusy response missing calendars object")
        return calendars


async def fetch_account_email(
    access_token: str, *, http_client: httpx.AsyncClient | None = None
) -> str:
    """Return the Google account email for an access token."""
    client = http_client or httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
    try:
        response = await client.get(
            GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
        )
    except httpx.HTTPError as e:
        raise ProviderError(f"Google userinfo request failed: {e}") from e
    finally:
        if http_client is None:
            await client.aclose()

    if response.status_code != 200:
        raise ProviderError(
            f"Google userinfo request failed ({response.status_code}): "
            f"{safe_google_error_message(response)}",
            upstream_status=response.status_code,
        )
    email = response.json().get("email")
    if not email:
        raise ProviderError("Google userinfo response is missing an email")
    return email
