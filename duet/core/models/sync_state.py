import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from duet.core.models.base import Base, TimestampMixin, UTCDateTime


class ExternalSyncState(Base, TimestampMixin):
    __tablename__ = "external_sync_states"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("external_accounts.id", ondelete="CASCADE"), unique=True
    )
    last_synced_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_attempted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    last_sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)
