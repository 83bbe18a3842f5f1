"""Availability for a couple space: manual blocks merged with external busy blocks."""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from duet.core.exceptions import (
    AvailabilityBlockNotFoundError,
    NotASpaceMemberError,
    ValidationError,
)
from duet.core.models.availability_block import AvailabilityBlock, ExternalAvailabilityBlock
from duet.core.models.couple_space import SpaceMembership

logger = logging.getLogger(__name__)

EXTERNAL_BLOCK_TITLE = "Busy"


@dataclass
class SpaceAvailability:
    manual: list[AvailabilityBlock] = field(default_factory=list)
    external: list[ExternalAvailabilityBlock] = field(default_factory=list)


@dataclass(frozen=True)
class DayBlock:
    id: uuid.UUID
    start_at: datetime
    end_at: datetime
    title: str
    user_id: uuid.UUID
    source: str | None = None


async def is_space_member(session: AsyncSession, space_id: uuid.UUID, user_id: uuid.UUID) -> bool:
    membership_id = await session.scalar(
        select(SpaceMembership.id).where(
            SpaceMembership.couple_space_id == space_id,
            SpaceMembership.user_id == user_id,
        )
    )
    return membership_id is not None


async def require_space_member(
    session: AsyncSession, space_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    if not await is_space_member(session, space_id, user_id):
        raise NotASpaceMemberError("Not a member of this space")


async def list_availability_blocks(
    session: AsyncSession,
    *,
    space_id: uuid.UUID,
    from_: datetime,
    to: datetime,
) -> SpaceAvailability:
    """Blocks overlapping [from_, to], both ends inclusive.

    External blocks come from every member of the space, not only the
    requesting user.
    """
    manual = await session.scalars(
        select(AvailabilityBlock)
        .where(
            AvailabilityBlock.couple_space_id == space_id,
            AvailabilityBlock.start_at <= to,
            AvailabilityBlock.end_at >= from_,
        )
        .order_by(AvailabilityBlock.start_at)
    )
    external = await session.scalars(
        select(ExternalAvailabilityBlock)
        .join(SpaceMembership, SpaceMembership.user_id == ExternalAvailabilityBlock.user_id)
        .where(
            SpaceMembership.couple_space_id == space_id,
            ExternalAvailabilityBlock.start_at <= to,
            ExternalAvailabilityBlock.end_at >= from_,
        )
        .order_by(ExternalAvailabilityBlock.start_at)
    )
    return SpaceAvailability(manual=list(manual), external=list(external))


def _validate_window(title: str, start_at: datetime, end_at: datetime) -> str:
    title = title.strip()
    if not title:
        raise ValidationError("Title is required")
    if end_at < start_at:
        raise ValidationError("End must not be before start")
    return title


async def create_availability_block(
    session: AsyncSession,
    *,
    space_id: uuid.UUID,
    user_id: uuid.UUID,
    title: str,
    start_at: datetime,
    end_at: datetime,
    note: str | None = None,
) -> AvailabilityBlock:
    await require_space_member(session, space_id, user_id)
    block = AvailabilityBlock(
        couple_space_id=space_id,
        created_by_user_id=user_id,
        title=_validate_window(title, start_at, end_at),
        note=(note or "").strip() or None,
        start_at=start_at,
        end_at=end_at,
    )
    session.add(block)
    await session.commit()
    return block


async def _get_own_block(
    session: AsyncSession, block_id: uuid.UUID, user_id: uuid.UUID
) -> AvailabilityBlock:
    block = await session.scalar(
        select(AvailabilityBlock).where(
            AvailabilityBlock.id == block_id,
            AvailabilityBlock.created_by_user_id == user_id,
        )
    )
    if block is None:
        raise AvailabilityBlockNotFoundError("Availability block not found")
    return block


async def update_availability_block(
    session: AsyncSession,
    *,
    block_id: uuid.UUID,
    user_id: uuid.UUID,
    title: str,
    start_at: datetime,
    end_at: datetime,
    note: str | None = None,
) -> AvailabilityBlock:
    """Only the creator may edit a block."""
    block = await _get_own_block(session, block_id, user_id)
    block.title = _validate_window(title, start_at, end_at)
    block.note = (note or "").strip() or None
    block.start_at = start_at
    block.end_at = end_at
    await session.commit()
    return block


async def delete_availability_block(
    session: AsyncSession, *, block_id: uuid.UUID, user_id: uuid.UUID
) -> None:
    block = await _get_own_block(session, block_id, user_id)
    await session.delete(block)
    await session.commit()
    logger.info("Deleted availability block %s", block_id)


def _covered_days(start_at: datetime, end_at: datetime, tz: tzinfo):
    day = start_at.astimezone(tz).date()
    last = end_at.astimezone(tz).date()
    while day <= last:
        yield day
        day += timedelta(days=1)


def expand_blocks_by_day(
    blocks: SpaceAvailability, tz: tzinfo | None = None
) -> dict[str, list[DayBlock]]:
    """Map each block onto every calendar day it touches (``YYYY-MM-DD`` keys).

    Presentation only; nothing is stored.
    """
    tz = tz or ZoneInfo("UTC")
    by_day: dict[str, list[DayBlock]] = defaultdict(list)

    for block in blocks.manual:
        entry = DayBlock(
            id=block.id,
            start_at=block.start_at,
            end_at=block.end_at,
            title=block.title,
            user_id=block.created_by_user_id,
        )
        for day in _covered_days(block.start_at, block.end_at, tz):
            by_day[day.isoformat()].append(entry)

    for block in blocks.external:
        entry = DayBlock(
            id=block.id,
            start_at=block.start_at,
            end_at=block.end_at,
            title=EXTERNAL_BLOCK_TITLE,
            user_id=block.user_id,
            source=block.source,
        )
        for day in _covered_days(block.start_at, block.end_at, tz):
            by_day[day.isoformat()].append(entry)

    return dict(by_day)
