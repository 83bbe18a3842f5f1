import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from duet.core.models.base import Base, TimestampMixin, UTCDateTime
from duet.core.models.enums import ExternalProvider


class AvailabilityBlock(Base, TimestampMixin):
    """User-authored unavailability window inside a couple space."""

    __tablename__ = "availability_blocks"
    __table_args__ = (Index("ix_availability_blocks_space_start", "couple_space_id", "start_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    couple_space_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("couple_spaces.id", ondelete="CASCADE")
    )
    created_by_user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE")
    )
    title: Mapped[str] = mapped_column(String(255))
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime)


class ExternalAvailabilityBlock(Base, TimestampMixin):
    """Busy interval derived from a provider free/busy snapshot."""

    __tablename__ = "external_availability_blocks"
    __table_args__ = (
        Index("ix_external_availability_blocks_account", "external_account_id"),
        Index("ix_external_availability_blocks_user_start", "user_id", "start_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"))
    external_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("external_accounts.id", ondelete="CASCADE")
    )
    calendar_id: Mapped[str] = mapped_column(String(255))
    source: Mapped[str] = mapped_column(String(50), default=ExternalProvider.google.value)
    start_at: Mapped[datetime] = mapped_column(UTCDateTime)
    end_at: Mapped[datetime] = mapped_column(UTCDateTime)
