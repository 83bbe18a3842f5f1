"""Couple-space availability endpoints: merged view plus manual block CRUD."""

import uuid
from datetime import UTC, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.auth import get_current_user_id
from api.errors import raise_http
from api.schemas import CamelModel
from duet.core.availability import (
    EXTERNAL_BLOCK_TITLE,
    DayBlock,
    create_availability_block,
    delete_availability_block,
    expand_blocks_by_day,
    list_availability_blocks,
    require_space_member,
    update_availability_block,
)
from duet.core.db import get_session
from duet.core.exceptions import DuetError, ValidationError

router = APIRouter(tags=["availability"])


# --- Schemas ---


class ManualBlockItem(CamelModel):
    id: str
    couple_space_id: str
    created_by_user_id: str
    title: str
    note: str | None = None
    start_at: datetime
    end_at: datetime


class ExternalBlockItem(CamelModel):
    id: str
    user_id: str
    calendar_id: str
    source: str
    title: str = EXTERNAL_BLOCK_TITLE
    start_at: datetime
    end_at: datetime


class AvailabilityResponse(CamelModel):
    manual: list[ManualBlockItem]
    external: list[ExternalBlockItem]


class DayBlockItem(CamelModel):
    id: str
    user_id: str
    title: str
    source: str | None = None
    start_at: datetime
    end_at: datetime


class BlockRequest(CamelModel):
    title: str
    start_at: datetime
    end_at: datetime
    note: str | None = None


# --- Helpers ---


def _as_utc(value: datetime) -> datetime:
    """Naive query values are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _window(from_: datetime, to: datetime) -> tuple[datetime, datetime]:
    from_, to = _as_utc(from_), _as_utc(to)
    if to < from_:
        raise_http(ValidationError("'to' must not be before 'from'"))
    return from_, to


def _manual_item(block) -> ManualBlockItem:
    return ManualBlockItem(
        id=str(block.id),
        couple_space_id=str(block.couple_space_id),
        created_by_user_id=str(block.created_by_user_id),
        title=block.title,
        note=block.note,
        start_at=block.start_at,
        end_at=block.end_at,
    )


def _external_item(block) -> ExternalBlockItem:
    return ExternalBlockItem(
        id=str(block.id),
        user_id=str(block.user_id),
        calendar_id=block.calendar_id,
        source=block.source,
        start_at=block.start_at,
        end_at=block.end_at,
    )


def _day_item(block: DayBlock) -> DayBlockItem:
    return DayBlockItem(
        id=str(block.id),
        user_id=str(block.user_id),
        title=block.title,
        source=block.source,
        start_at=block.start_at,
        end_at=block.end_at,
    )


# --- Endpoints ---


@router.get(
    "/api/couple-spaces/{space_id}/availability", response_model=AvailabilityResponse
)
async def get_space_availability(
    space_id: uuid.UUID,
    from_: datetime = Query(..., alias="from"),
    to: datetime = Query(...),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Manual and external blocks overlapping the window, for every member of the space."""
    from_, to = _window(from_, to)
    try:
        await require_space_member(session, space_id, user_id)
    except DuetError as e:
        raise_http(e)

    blocks = await list_availability_blocks(session, space_id=space_id, from_=from_, to=to)
    return AvailabilityResponse(
        manual=[_manual_item(b) for b in blocks.manual],
        external=[_external_item(b) for b in blocks.external],
    )


@router.get(
    "/api/couple-spaces/{space_id}/availability/days",
    response_model=dict[str, list[DayBlockItem]],
)
async def get_space_availability_by_day(
    space_id: uuid.UUID,
    from_: datetime = Query(..., alias="from"),
    to: datetime = Query(...),
    tz: str = Query("UTC"),
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Same window grouped by calendar day in the caller's time zone."""
    from_, to = _window(from_, to)
    try:
        zone = ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError):
        raise_http(ValidationError(f"Unknown time zone: {tz}"))
    try:
        await require_space_member(session, space_id, user_id)
    except DuetError as e:
        raise_http(e)

    blocks = await list_availability_blocks(session, space_id=space_id, from_=from_, to=to)
    by_day = expand_blocks_by_day(blocks, zone)
    return {day: [_day_item(b) for b in entries] for day, entries in sorted(by_day.items())}


@router.post(
    "/api/couple-spaces/{space_id}/availability",
    response_model=ManualBlockItem,
    status_code=201,
)
async def create_block(
    space_id: uuid.UUID,
    body: BlockRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    try:
        block = await create_availability_block(
            session,
            space_id=space_id,
            user_id=user_id,
            title=body.title,
            start_at=_as_utc(body.start_at),
            end_at=_as_utc(body.end_at),
            note=body.note,
        )
    except DuetError as e:
        raise_http(e)
    return _manual_item(block)


@router.patch("/api/availability-blocks/{block_id}", response_model=ManualBlockItem)
async def update_block(
    block_id: uuid.UUID,
    body: BlockRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Only the creator may edit a block."""
    try:
        block = await update_availability_block(
            session,
            block_id=block_id,
            user_id=user_id,
            title=body.title,
            start_at=_as_utc(body.start_at),
            end_at=_as_utc(body.end_at),
            note=body.note,
        )
    except DuetError as e:
        raise_http(e)
    return _manual_item(block)


@router.delete("/api/availability-blocks/{block_id}", status_code=204)
async def delete_block(
    block_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    try:
        await delete_availability_block(session, block_id=block_id, user_id=user_id)
    except DuetError as e:
        raise_http(e)
    return Response(status_code=204)
