from duet.core.models.availability_block import AvailabilityBlock, ExternalAvailabilityBlock
from duet.core.models.base import Base
from duet.core.models.couple_space import CoupleSpace, SpaceMembership
from duet.core.models.enums import ExternalProvider, MembershipRole
from duet.core.models.external_account import ExternalAccount
from duet.core.models.external_calendar import ExternalCalendar
from duet.core.models.sync_state import ExternalSyncState
from duet.core.models.user import User

__all__ = [
    "Base",
    "ExternalProvider",
    "MembershipRole",
    "User",
    "CoupleSpace",
    "SpaceMembership",
    "ExternalAccount",
    "ExternalCalendar",
    "ExternalSyncState",
    "AvailabilityBlock",
    "ExternalAvailabilityBlock",
]
