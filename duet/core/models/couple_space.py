import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from duet.core.models.base import Base, TimestampMixin
from duet.core.models.enums import MembershipRole


class CoupleSpace(Base, TimestampMixin):
    __tablename__ = "couple_spaces"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255))


class SpaceMembership(Base, TimestampMixin):
    __tablename__ = "space_memberships"
    __table_args__ = (UniqueConstraint("couple_space_id", "user_id"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    couple_space_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("couple_spaces.id", ondelete="CASCADE")
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"))
    role: Mapped[str] = mapped_column(String(20), default=MembershipRole.member.value)
