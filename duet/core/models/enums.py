import enum


class ExternalProvider(str, enum.Enum):
    google = "google"


class MembershipRole(str, enum.Enum):
    owner = "owner"
    member = "member"
