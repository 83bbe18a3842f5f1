import uuid
from datetime import datetime

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from duet.core.models.base import Base, TimestampMixin, UTCDateTime


class ExternalCalendar(Base, TimestampMixin):
    __tablename__ = "external_calendars"
    __table_args__ = (UniqueConstraint("external_account_id", "calendar_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("external_accounts.id", ondelete="CASCADE")
    )
    calendar_id: Mapped[str] = mapped_column(String(255))
    summary: Mapped[str] = mapped_column(String(500))
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    # Only durable user preference; calendar-list refreshes never write it.
    selected: Mapped[bool] = mapped_column(Boolean, default=False)
    background_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    foreground_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    # Set while the calendar is missing from the provider's calendar list
    removed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
