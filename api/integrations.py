"""Google Calendar integration endpoints: status, calendar toggle, sync, disconnect."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.auth import get_current_user_id
from api.errors import raise_http
from api.schemas import CamelModel
from duet.core.calendar_sync import list_calendars, set_calendar_selected
from duet.core.db import get_session
from duet.core.exceptions import DuetError, NotConnectedError
from duet.core.freebusy_sync import SyncResult, sync_availability_blocks
from duet.core.google_auth import disconnect_account, get_account_for_user
from duet.core.models.external_account import ExternalAccount
from duet.core.models.sync_state import ExternalSyncState
from duet.core.token_store import TokenStore, get_token_store

router = APIRouter(prefix="/api/integrations/google", tags=["google-calendar"])


# --- Schemas ---


class AccountInfo(CamelModel):
    id: str
    email: str
    is_revoked: bool


class CalendarItem(CamelModel):
    id: str
    calendar_id: str
    summary: str
    primary: bool
    selected: bool
    background_color: str | None = None
    foreground_color: str | None = None
    removed: bool = False


class SyncStateInfo(CamelModel):
    last_synced_at: datetime | None = None
    last_sync_error: str | None = None


class CalendarsResponse(CamelModel):
    account: AccountInfo
    calendars: list[CalendarItem]
    sync_state: SyncStateInfo | None = None


class ToggleRequest(CamelModel):
    calendar_id: str
    selected: bool


class SyncResponse(CamelModel):
    blocks_count: int
    synced_at: datetime


class ToggleResponse(CamelModel):
    calendar: CalendarItem
    sync: SyncResponse


# --- Helpers ---


async def _require_account(session: AsyncSession, user_id: uuid.UUID) -> ExternalAccount:
    account = await get_account_for_user(session, user_id)
    if account is None:
        raise NotConnectedError("Google Calendar not connected")
    return account


def _calendar_item(calendar) -> CalendarItem:
    return CalendarItem(
        id=str(calendar.id),
        calendar_id=calendar.calendar_id,
        summary=calendar.summary,
        primary=calendar.is_primary,
        selected=calendar.selected,
        background_color=calendar.background_color,
        foreground_color=calendar.foreground_color,
        removed=calendar.removed_at is not None,
    )


def _sync_response(result: SyncResult) -> SyncResponse:
    return SyncResponse(blocks_count=result.blocks_count, synced_at=result.synced_at)


# --- Endpoints ---


@router.get("/calendars", response_model=CalendarsResponse)
async def get_calendars(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Linked account, its calendars and the latest sync outcome."""
    try:
        account = await _require_account(session, user_id)
    except DuetError as e:
        raise_http(e)

    calendars = await list_calendars(session, account.id)
    state = await session.scalar(
        select(ExternalSyncState).where(ExternalSyncState.external_account_id == account.id)
    )
    return CalendarsResponse(
        account=AccountInfo(
            id=str(account.id),
            email=account.provider_account_id,
            is_revoked=account.revoked_at is not None,
        ),
        calendars=[_calendar_item(c) for c in calendars],
        sync_state=(
            SyncStateInfo(
                last_synced_at=state.last_synced_at, last_sync_error=state.last_sync_error
            )
            if state
            else None
        ),
    )


@router.post("/calendars/toggle", response_model=ToggleResponse)
async def toggle_calendar(
    body: ToggleRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    token_store: TokenStore = Depends(get_token_store),
):
    """Select or deselect a calendar, then re-sync so availability follows at once."""
    try:
        account = await _require_account(session, user_id)
        account_id = account.id
        calendar = await set_calendar_selected(
            session, account_id, body.calendar_id, body.selected
        )
        item = _calendar_item(calendar)
        result = await sync_availability_blocks(session, account_id, token_store)
    except DuetError as e:
        raise_http(e)

    return ToggleResponse(calendar=item, sync=_sync_response(result))


@router.post("/sync", response_model=SyncResponse)
async def sync_now(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
    token_store: TokenStore = Depends(get_token_store),
):
    """Manually trigger a sync of Google Calendar availability."""
    try:
        account = await _require_account(session, user_id)
        result = await sync_availability_blocks(session, account.id, token_store)
    except DuetError as e:
        raise_http(e)

    return _sync_response(result)


@router.delete("/disconnect", status_code=204)
async def disconnect(
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Remove the linked account; calendars, sync state and blocks go with it."""
    if not await disconnect_account(session, user_id):
        raise_http(NotConnectedError("Google Calendar not connected"))
    return Response(status_code=204)
