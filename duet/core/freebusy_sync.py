"""Free/busy sync: provider busy intervals -> ExternalAvailabilityBlock rows.

Google's freeBusy endpoint answers with a full snapshot, so each successful
sync replaces the account's whole block set in one transaction. A failed
sync leaves the previous snapshot untouched and records the error.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from duet.core.calendar_sync import (
    CalendarClientFactory,
    get_sync_state,
    load_account,
    record_sync_error,
)
from duet.core.config import settings
from duet.core.exceptions import ProviderError
from duet.core.google_auth import get_valid_access_token
from duet.core.models.availability_block import ExternalAvailabilityBlock
from duet.core.models.external_calendar import ExternalCalendar
from duet.core.token_store import TokenStore
from duet.tools.google_calendar import GoogleCalendarClient, parse_google_datetime

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BusyInterval:
    calendar_id: str
    start_at: datetime
    end_at: datetime


@dataclass(frozen=True)
class SyncResult:
    blocks_count: int
    synced_at: datetime


def normalize_busy_intervals(
    calendars: dict[str, dict[str, Any]], calendar_ids: list[str]
) -> list[BusyInterval]:
    """Flatten a freeBusy ``calendars`` payload into unique busy intervals.

    Calendars are read in ``calendar_ids`` order; an interval already seen on
    an earlier calendar is dropped. Entries for calendars that were not asked
    for are ignored. A ``notFound`` calendar counts as free; any other
    per-calendar error fails the whole snapshot.
    """
    seen: set[tuple[datetime, datetime]] = set()
    intervals: list[BusyInterval] = []

    for calendar_id in calendar_ids:
        entry = calendars.get(calendar_id)
        if not isinstance(entry, dict):
            continue

        errors = entry.get("errors") or []
        if errors:
            reasons = {e.get("reason") for e in errors if isinstance(e, dict)}
            if reasons <= {"notFound"}:
                logger.warning("Calendar %s not found at provider, treating as free", calendar_id)
                continue
            raise ProviderError(
                f"Free/busy lookup failed for calendar {calendar_id}: "
                f"{', '.join(sorted(str(r) for r in reasons))}"
            )

        for window in entry.get("busy") or []:
            try:
                start_at = parse_google_datetime(window["start"])
                end_at = parse_google_datetime(window["end"])
            except (KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed busy window on calendar %s", calendar_id)
                continue
            if end_at <= start_at:
                continue
            key = (start_at, end_at)
            if key in seen:
                continue
            seen.add(key)
            intervals.append(BusyInterval(calendar_id, start_at, end_at))

    return intervals


async def selected_calendar_ids(
    session: AsyncSession, external_account_id: uuid.UUID
) -> list[str]:
    """Calendars that feed availability: selected and still listed by the provider."""
    result = await session.scalars(
        select(ExternalCalendar.calendar_id)
        .where(
            ExternalCalendar.external_account_id == external_account_id,
            ExternalCalendar.selected.is_(True),
            ExternalCalendar.removed_at.is_(None),
        )
        .order_by(ExternalCalendar.is_primary.desc(), ExternalCalendar.calendar_id)
    )
    return list(result)


async def sync_availability_blocks(
    session: AsyncSession,
    external_account_id: uuid.UUID,
    token_store: TokenStore,
    *,
    client_factory: CalendarClientFactory = GoogleCalendarClient,
) -> SyncResult:
    """Replace the account's external availability blocks with a fresh snapshot.

    Raises NotConnectedError / RevokedError up front without touching the
    provider. Failures after that are written to the sync state and re-raised;
    the previously stored blocks stay as they were.
    """
    account = await load_account(session, external_account_id)
    user_id = account.user_id
    source = account.provider
    started_at = datetime.now(UTC)

    try:
        access_token = await get_valid_access_token(session, account, token_store)
        calendar_ids = await selected_calendar_ids(session, external_account_id)

        calendars: dict[str, dict[str, Any]] = {}
        if calendar_ids:
            time_max = started_at + timedelta(days=settings.freebusy_horizon_days)
            async with client_factory(access_token) as client:
                calendars = await client.query_free_busy(calendar_ids, started_at, time_max)
        intervals = normalize_busy_intervals(calendars, calendar_ids)

        await session.execute(
            delete(ExternalAvailabilityBlock).where(
                ExternalAvailabilityBlock.external_account_id == external_account_id
            )
        )
        session.add_all(
            ExternalAvailabilityBlock(
                user_id=user_id,
                external_account_id=external_account_id,
                calendar_id=interval.calendar_id,
                source=source,
                start_at=interval.start_at,
                end_at=interval.end_at,
            )
            for interval in intervals
        )

        synced_at = datetime.now(UTC)
        state = await get_sync_state(session, external_account_id)
        state.last_synced_at = synced_at
        state.last_attempted_at = synced_at
        state.last_sync_error = None
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.warning(
            "Availability sync failed for external account %s: %s", external_account_id, e
        )
        try:
            await record_sync_error(session, external_account_id, str(e), started_at)
        except Exception:
            logger.exception("Could not record sync error for account %s", external_account_id)
        raise

    logger.info(
        "Synced %d busy blocks from %d calendars for external account %s",
        len(intervals),
        len(calendar_ids),
        external_account_id,
    )
    return SyncResult(blocks_count=len(intervals), synced_at=synced_at)
