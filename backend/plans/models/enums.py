import enum


class HangoutStatus(str, enum.Enum):
    PLANNING = "PLANNING"
    VOTING = "VOTING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ParticipantRole(str, enum.Enum):
    CREATOR = "CREATOR"
    MEMBER = "MEMBER"


class RsvpStatus(str, enum.Enum):
    GOING = "GOING"
    MAYBE = "MAYBE"
    NOT_GOING = "NOT_GOING"


class IdentityKind(str, enum.Enum):
    REGISTERED = "REGISTERED"
    GUEST = "GUEST"


class NotificationKind(str, enum.Enum):
    HANGOUT_UPDATE = "HANGOUT_UPDATE"
    FRIEND_REQUEST = "FRIEND_REQUEST"


# options/votes may only change while a hangout is still being decided
OPEN_STATUSES = (HangoutStatus.PLANNING.value, HangoutStatus.VOTING.value)

# membership/RSVP close once a hangout is called off or over
CLOSED_STATUSES = (HangoutStatus.CANCELLED.value, HangoutStatus.COMPLETED.value)

RESOLVED_STATUSES = (HangoutStatus.CONFIRMED.value, HangoutStatus.COMPLETED.value)
