"""Mirror of the provider's calendar list, keyed by (account, calendar id)."""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from duet.core.exceptions import CalendarNotFoundError, NotConnectedError, RevokedError
from duet.core.google_auth import get_valid_access_token
from duet.core.models.external_account import ExternalAccount
from duet.core.models.external_calendar import ExternalCalendar
from duet.core.models.sync_state import ExternalSyncState
from duet.core.token_store import TokenStore
from duet.tools.google_calendar import GoogleCalendarClient

logger = logging.getLogger(__name__)

CalendarClientFactory = Callable[[str], GoogleCalendarClient]


async def load_account(session: AsyncSession, external_account_id: uuid.UUID) -> ExternalAccount:
    """Load an account that may still be synced."""
    account = await session.get(ExternalAccount, external_account_id)
    if account is None:
        raise NotConnectedError("Google Calendar not connected")
    if account.revoked_at is not None:
        raise RevokedError("Google Calendar access has been revoked. Please reconnect.")
    return account


async def list_calendars(
    session: AsyncSession, external_account_id: uuid.UUID
) -> list[ExternalCalendar]:
    result = await session.scalars(
        select(ExternalCalendar)
        .where(ExternalCalendar.external_account_id == external_account_id)
        .order_by(ExternalCalendar.is_primary.desc(), ExternalCalendar.summary)
    )
    return list(result)


async def get_sync_state(
    session: AsyncSession, external_account_id: uuid.UUID
) -> ExternalSyncState:
    state = await session.scalar(
        select(ExternalSyncState).where(
            ExternalSyncState.external_account_id == external_account_id
        )
    )
    if state is None:
        state = ExternalSyncState(external_account_id=external_account_id)
        session.add(state)
    return state


async def record_sync_error(
    session: AsyncSession, external_account_id: uuid.UUID, message: str, attempted_at: datetime
) -> None:
    """Store a failed attempt. Runs in a fresh transaction after a rollback."""
    state = await get_sync_state(session, external_account_id)
    state.last_attempted_at = attempted_at
    state.last_sync_error = message
    await session.commit()


async def sync_calendar_list(
    session: AsyncSession,
    external_account_id: uuid.UUID,
    token_store: TokenStore,
    *,
    client_factory: CalendarClientFactory = GoogleCalendarClient,
) -> list[ExternalCalendar]:
    """Upsert the provider's calendars into the local mirror.

    Existing rows get fresh metadata but keep their ``selected`` flag. New
    rows start selected only when they are the primary calendar. Rows the
    provider no longer lists are flagged with ``removed_at``, never deleted.
    A failure leaves the mirror unchanged and is written to the sync state.
    """
    account = await load_account(session, external_account_id)
    started_at = datetime.now(UTC)

    try:
        access_token = await get_valid_access_token(session, account, token_store)

        async with client_factory(access_token) as client:
            provider_calendars = await client.list_calendars()

        existing = {
            cal.calendar_id: cal for cal in await list_calendars(session, external_account_id)
        }
        seen: set[str] = set()
        synced: list[ExternalCalendar] = []

        for provider_cal in provider_calendars:
            if provider_cal.calendar_id in seen:
                continue
            seen.add(provider_cal.calendar_id)

            calendar = existing.pop(provider_cal.calendar_id, None)
            if calendar is None:
                calendar = ExternalCalendar(
                    external_account_id=external_account_id,
                    calendar_id=provider_cal.calendar_id,
                    selected=provider_cal.primary,
                )
                session.add(calendar)
            calendar.summary = provider_cal.summary
            calendar.is_primary = provider_cal.primary
            calendar.background_color = provider_cal.background_color
            calendar.foreground_color = provider_cal.foreground_color
            calendar.removed_at = None
            synced.append(calendar)

        for missing in existing.values():
            if missing.removed_at is None:
                missing.removed_at = started_at

        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.warning(
            "Calendar list sync failed for external account %s: %s", external_account_id, e
        )
        try:
            await record_sync_error(session, external_account_id, str(e), started_at)
        except Exception:
            logger.exception("Could not record sync error for account %s", external_account_id)
        raise

    logger.info(
        "Synced %d calendars for external account %s (%d no longer listed)",
        len(synced),
        external_account_id,
        len(existing),
    )
    return synced


async def set_calendar_selected(
    session: AsyncSession,
    external_account_id: uuid.UUID,
    calendar_id: str,
    selected: bool,
) -> ExternalCalendar:
    """Record the user's choice for one calendar."""
    calendar = await session.scalar(
        select(ExternalCalendar).where(
            ExternalCalendar.external_account_id == external_account_id,
            ExternalCalendar.calendar_id == calendar_id,
        )
    )
    if calendar is None:
        raise CalendarNotFoundError(f"Calendar {calendar_id} is not linked to this account")
    calendar.selected = selected
    await session.commit()
    return calendar
