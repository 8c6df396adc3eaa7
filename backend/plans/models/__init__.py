from .enums import HangoutStatus, IdentityKind, NotificationKind, ParticipantRole, RsvpStatus
from .profile import Profile
from .guest_profile import GuestProfile
from .hangout import Hangout
from .hangout_participant import HangoutParticipant
from .activity_option import ActivityOption
from .vote import Vote
from .time_option import TimeOption, TimeVote
from .hangout_invite import HangoutInvite
from .notification import Notification

__all__ = [
    "HangoutStatus",
    "IdentityKind",
    "NotificationKind",
    "ParticipantRole",
    "RsvpStatus",
    "Profile",
    "GuestProfile",
    "Hangout",
    "HangoutParticipant",
    "ActivityOption",
    "Vote",
    "TimeOption",
    "TimeVote",
    "HangoutInvite",
    "Notification",
]
