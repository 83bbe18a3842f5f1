"""Tests for the couple-space availability aggregator."""

import uuid
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest

from duet.core.availability import (
    EXTERNAL_BLOCK_TITLE,
    SpaceAvailability,
    create_availability_block,
    delete_availability_block,
    expand_blocks_by_day,
    list_availability_blocks,
    update_availability_block,
)
from duet.core.exceptions import (
    AvailabilityBlockNotFoundError,
    NotASpaceMemberError,
    ValidationError,
)
from duet.core.models import (
    AvailabilityBlock,
    CoupleSpace,
    ExternalAvailabilityBlock,
    SpaceMembership,
    User,
)


def _dt(day: int, hour: int = 0) -> datetime:
    return datetime(2026, 1, day, hour, tzinfo=UTC)


async def _external_block(session, account, start_at, end_at, calendar_id="alex@gmail.com"):
    block = ExternalAvailabilityBlock(
        user_id=account.user_id,
        external_account_id=account.id,
        calendar_id=calendar_id,
        source="google",
        start_at=start_at,
        end_at=end_at,
    )
    session.add(block)
    await session.commit()
    return block


@pytest.mark.asyncio
async def test_partial_overlaps_on_both_sides_are_returned(session, user, space, account):
    """Manual Jan 9-11 and external Jan 11-13 both overlap a Jan 10-12 window."""
    manual = await create_availability_block(
        session,
        space_id=space.id,
        user_id=user.id,
        title="Trip",
        start_at=_dt(9),
        end_at=_dt(11),
    )
    external = await _external_block(session, account, _dt(11), _dt(13))

    result = await list_availability_blocks(session, space_id=space.id, from_=_dt(10), to=_dt(12))

    assert [b.id for b in result.manual] == [manual.id]
    assert [b.id for b in result.external] == [external.id]


@pytest.mark.asyncio
async def test_overlap_is_inclusive_at_edges(session, user, space):
    touching = await create_availability_block(
        session, space_id=space.id, user_id=user.id, title="Ends at from",
        start_at=_dt(8), end_at=_dt(10),
    )
    await create_availability_block(
        session, space_id=space.id, user_id=user.id, title="Before",
        start_at=_dt(5), end_at=_dt(6),
    )

    result = await list_availability_blocks(session, space_id=space.id, from_=_dt(10), to=_dt(12))
    assert [b.id for b in result.manual] == [touching.id]


@pytest.mark.asyncio
async def test_external_blocks_from_every_member(
    session, space, user, partner, account, make_account
):
    partner_account = await make_account(partner.id, email="sam@gmail.com")
    await _external_block(session, account, _dt(10, 9), _dt(10, 10))
    await _external_block(session, partner_account, _dt(10, 14), _dt(10, 15), "sam@gmail.com")

    outsider = User(email="other@example.com")
    session.add(outsider)
    await session.commit()
    outsider_account = await make_account(outsider.id, email="other@gmail.com")
    await _external_block(session, outsider_account, _dt(10, 9), _dt(10, 10), "other@gmail.com")

    result = await list_availability_blocks(session, space_id=space.id, from_=_dt(10), to=_dt(11))

    assert {b.user_id for b in result.external} == {user.id, partner.id}
    assert len(result.external) == 2


@pytest.mark.asyncio
async def test_manual_blocks_scoped_to_space(session, user, space):
    other_space = CoupleSpace(name="Other")
    session.add(other_space)
    await session.flush()
    session.add(SpaceMembership(couple_space_id=other_space.id, user_id=user.id))
    await session.commit()
    await create_availability_block(
        session, space_id=other_space.id, user_id=user.id, title="Elsewhere",
        start_at=_dt(10), end_at=_dt(11),
    )

    result = await list_availability_blocks(session, space_id=space.id, from_=_dt(1), to=_dt(31))
    assert result.manual == []


@pytest.mark.asyncio
async def test_create_requires_membership(session, space):
    stranger = User(email="stranger@example.com")
    session.add(stranger)
    await session.commit()

    with pytest.raises(NotASpaceMemberError):
        await create_availability_block(
            session, space_id=space.id, user_id=stranger.id, title="Nope",
            start_at=_dt(10), end_at=_dt(11),
        )


@pytest.mark.asyncio
async def test_create_validates_input(session, user, space):
    with pytest.raises(ValidationError):
        await create_availability_block(
            session, space_id=space.id, user_id=user.id, title="   ",
            start_at=_dt(10), end_at=_dt(11),
        )
    with pytest.raises(ValidationError):
        await create_availability_block(
            session, space_id=space.id, user_id=user.id, title="Backwards",
            start_at=_dt(11), end_at=_dt(10),
        )


@pytest.mark.asyncio
async def test_create_trims_title_and_note(session, user, space):
    block = await create_availability_block(
        session, space_id=space.id, user_id=user.id, title="  Dentist ",
        start_at=_dt(10, 9), end_at=_dt(10, 10), note="  ",
    )
    assert block.title == "Dentist"
    assert block.note is None
    assert block.created_by_user_id == user.id


@pytest.mark.asyncio
async def test_only_creator_can_update(session, user, partner, space):
    block = await create_availability_block(
        session, space_id=space.id, user_id=user.id, title="Gym",
        start_at=_dt(10, 7), end_at=_dt(10, 8),
    )

    with pytest.raises(AvailabilityBlockNotFoundError):
        await update_availability_block(
            session, block_id=block.id, user_id=partner.id, title="Hijack",
            start_at=_dt(10, 7), end_at=_dt(10, 8),
        )

    updated = await update_availability_block(
        session, block_id=block.id, user_id=user.id, title="Gym (long)",
        start_at=_dt(10, 7), end_at=_dt(10, 9), note="leg day",
    )
    assert updated.title == "Gym (long)"
    assert updated.end_at == _dt(10, 9)
    assert updated.note == "leg day"


@pytest.mark.asyncio
async def test_only_creator_can_delete(session, user, partner, space):
    block = await create_availability_block(
        session, space_id=space.id, user_id=user.id, title="Gym",
        start_at=_dt(10, 7), end_at=_dt(10, 8),
    )
    block_id = block.id

    with pytest.raises(AvailabilityBlockNotFoundError):
        await delete_availability_block(session, block_id=block_id, user_id=partner.id)

    await delete_availability_block(session, block_id=block_id, user_id=user.id)
    assert await session.get(AvailabilityBlock, block_id) is None

    with pytest.raises(AvailabilityBlockNotFoundError):
        await delete_availability_block(session, block_id=block_id, user_id=user.id)


# --- Day expansion ---


def _manual(start_at, end_at, title="Trip"):
    return AvailabilityBlock(
        id=uuid.uuid4(),
        couple_space_id=uuid.uuid4(),
        created_by_user_id=uuid.uuid4(),
        title=title,
        start_at=start_at,
        end_at=end_at,
    )


def _external(start_at, end_at):
    return ExternalAvailabilityBlock(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        external_account_id=uuid.uuid4(),
        calendar_id="alex@gmail.com",
        source="google",
        start_at=start_at,
        end_at=end_at,
    )


def test_expand_multi_day_block():
    blocks = SpaceAvailability(manual=[_manual(_dt(9, 18), _dt(11, 10))])
    by_day = expand_blocks_by_day(blocks)

    assert list(by_day) == ["2026-01-09", "2026-01-10", "2026-01-11"]
    assert all(entries[0].title == "Trip" for entries in by_day.values())


def test_expand_external_blocks_are_busy():
    blocks = SpaceAvailability(external=[_external(_dt(10, 9), _dt(10, 10))])
    (entry,) = expand_blocks_by_day(blocks)["2026-01-10"]

    assert entry.title == EXTERNAL_BLOCK_TITLE
    assert entry.source == "google"


def test_expand_uses_time_zone():
    # 03:00 UTC on Jan 10 is still Jan 9 in New York
    blocks = SpaceAvailability(external=[_external(_dt(10, 3), _dt(10, 4))])

    assert list(expand_blocks_by_day(blocks)) == ["2026-01-10"]
    assert list(expand_blocks_by_day(blocks, ZoneInfo("America/New_York"))) == ["2026-01-09"]


def test_expand_empty():
    assert expand_blocks_by_day(SpaceAvailability()) == {}
