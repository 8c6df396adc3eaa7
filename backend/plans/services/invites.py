from __future__ import annotations

import logging
import secrets
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plans.core.clock import utcnow
from plans.core.errors import Conflict, Forbidden, InvalidInput, InvalidState, InvalidToken, NotFound
from plans.models.activity_option import ActivityOption
from plans.models.enums import CLOSED_STATUSES, RsvpStatus
from plans.models.guest_profile import GuestProfile
from plans.models.hangout import Hangout
from plans.models.hangout_invite import HangoutInvite
from plans.models.hangout_participant import HangoutParticipant
from plans.models.profile import Profile
from plans.models.time_option import TimeVote
from plans.models.vote import Vote
from plans.services.hangouts import get_hangout
from plans.services.identity import ParticipantRef, create_guest
from plans.services.membership import get_membership, join_or_get, parse_rsvp

log = logging.getLogger("plans.invites")

GUEST_NAME_MIN_LEN = 2
DEFAULT_GUEST_NAME = "Guest"


def new_invite_token() -> str:
    return secrets.token_hex(16)


def get_or_create_invite_token(db: Session, hangout_id: int, *, requester: ParticipantRef) -> str:
    """Shareable join token for the hangout; generated once, then reused."""
    get_hangout(db, hangout_id)

    m = get_membership(db, hangout_id, requester)
    if m is None:
        raise Forbidden("Not authorized")

    inv = db.execute(select(HangoutInvite).where(HangoutInvite.hangout_id == hangout_id)).scalar_one_or_none()
    if inv:
        return inv.token

    inv = HangoutInvite(hangout_id=hangout_id, token=new_invite_token(), created_by_participant_id=m.id)
    db.add(inv)
    try:
        db.commit()
    except IntegrityError:
        # another member generated it at the same moment
        db.rollback()
        return db.execute(select(HangoutInvite.token).where(HangoutInvite.hangout_id == hangout_id)).scalar_one()

    log.info("invite token created hangout_id=%s by=%s", hangout_id, requester)
    return inv.token


def hangout_for_token(db: Session, token: str) -> Hangout:
    hangout = None
    if token:
        hangout = db.execute(
            select(Hangout).join(HangoutInvite, HangoutInvite.hangout_id == Hangout.id).where(HangoutInvite.token == token)
        ).scalar_one_or_none()
    if hangout is None:
        raise InvalidToken("Invalid invite")
    return hangout


def _require_joinable(hangout: Hangout) -> None:
    if hangout.status in CLOSED_STATUSES:
        raise InvalidState(f"Hangout is {hangout.status.lower()}")


def join_as_guest(
    db: Session,
    token: str,
    display_name: str,
    *,
    rsvp_status: str | RsvpStatus | None = RsvpStatus.GOING,
    idempotency_key: str | None = None,
    existing_guest: GuestProfile | None = None,
    now: datetime | None = None,
) -> tuple[GuestProfile, HangoutParticipant]:
    """Create a guest and its membership together, or neither.

    Retries don't duplicate anything: the same `idempotency_key` maps back to
    the guest the first request created, and a caller that already holds a
    guest session joins with that guest.
    """
    name = (display_name or "").strip()
    if len(name) < GUEST_NAME_MIN_LEN:
        raise InvalidInput(f"Name is required (min {GUEST_NAME_MIN_LEN} chars)")
    rsvp = parse_rsvp(rsvp_status, allow_none=True)

    hangout = hangout_for_token(db, token)
    _require_joinable(hangout)

    scoped_key = f"{hangout.id}:{idempotency_key.strip()}" if idempotency_key and idempotency_key.strip() else None

    guest = existing_guest
    if guest is None and scoped_key:
        guest = db.execute(select(GuestProfile).where(GuestProfile.idempotency_key == scoped_key)).scalar_one_or_none()

    if guest is not None:
        m = join_or_get(db, hangout.id, ParticipantRef.guest(guest.id), rsvp_status=rsvp)
        return guest, m

    try:
        guest = create_guest(db, display_name=name, now=now, idempotency_key=scoped_key)
        m = join_or_get(db, hangout.id, ParticipantRef.guest(guest.id), rsvp_status=rsvp, commit=False)
        db.commit()
    except IntegrityError:
        db.rollback()
        if not scoped_key:
            raise Conflict() from None
        # the same retry is being handled in parallel: use its guest
        guest = db.execute(select(GuestProfile).where(GuestProfile.idempotency_key == scoped_key)).scalar_one()
        m = join_or_get(db, hangout.id, ParticipantRef.guest(guest.id), rsvp_status=rsvp)
        return guest, m
    except Exception:
        db.rollback()
        raise

    db.refresh(guest)
    db.refresh(m)
    log.info("guest joined hangout_id=%s guest_id=%s", hangout.id, guest.id)
    return guest, m


def rsvp_via_invite(
    db: Session,
    token: str,
    status: str | RsvpStatus,
    *,
    identity: ParticipantRef | None = None,
) -> tuple[ParticipantRef, HangoutParticipant, GuestProfile | None]:
    """RSVP straight from an invite link.

    Known identities join (or update their existing membership); anonymous
    visitors become a guest named "Guest". Returns (identity, membership,
    new guest or None).
    """
    rsvp = parse_rsvp(status)
    hangout = hangout_for_token(db, token)
    _require_joinable(hangout)

    if identity is None:
        guest, m = join_as_guest(db, token, DEFAULT_GUEST_NAME, rsvp_status=rsvp)
        return ParticipantRef.guest(guest.id), m, guest

    m = join_or_get(db, hangout.id, identity, rsvp_status=rsvp)
    if m.rsvp_status != rsvp:
        m.rsvp_status = rsvp
        m.responded_at = utcnow()
        db.commit()
        db.refresh(m)
    return identity, m, None


def claim(db: Session, hangout_id: int, public_id: str, *, display_name: str | None = None) -> str:
    """Hand a guest's bearer token back to a device holding the guest's public id."""
    guest = None
    if public_id:
        guest = db.execute(select(GuestProfile).where(GuestProfile.public_id == public_id)).scalar_one_or_none()
    if guest is None or get_membership(db, hangout_id, ParticipantRef.guest(guest.id)) is None:
        raise NotFound("Guest not found in this hangout")

    name = (display_name or "").strip()
    if name:
        guest.display_name = name
        db.commit()
        db.refresh(guest)

    return guest.token


def _move_rows(db: Session, model, key_column, guest_id: int, profile_id: int) -> int:
    """Re-point the guest's rows to the profile; rows the profile already has win."""
    taken = select(key_column).where(model.profile_id == profile_id)
    db.execute(
        delete(model)
        .where(model.guest_id == guest_id, key_column.in_(taken))
        .execution_options(synchronize_session=False)
    )
    res = db.execute(
        update(model)
        .where(model.guest_id == guest_id)
        .values(guest_id=None, profile_id=profile_id)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount


def upgrade_guest(db: Session, guest: GuestProfile, profile: Profile) -> int:
    """Fold a guest into the registered profile it signed in as (one-way).

    Returns how many hangout memberships were moved over.
    """
    if guest.converted_to_profile_id is not None:
        if guest.converted_to_profile_id != profile.id:
            raise InvalidState("Guest was already converted to another account")
        return 0

    moved = _move_rows(db, HangoutParticipant, HangoutParticipant.hangout_id, guest.id, profile.id)
    _move_rows(db, Vote, Vote.activity_option_id, guest.id, profile.id)
    _move_rows(db, TimeVote, TimeVote.time_option_id, guest.id, profile.id)
    db.execute(
        update(ActivityOption)
        .where(ActivityOption.added_by_guest_id == guest.id)
        .values(added_by_guest_id=None, added_by_profile_id=profile.id)
        .execution_options(synchronize_session=False)
    )

    guest.converted_to_profile_id = profile.id
    db.commit()
    db.expire_all()
    log.info("guest upgraded guest_id=%s profile_id=%s memberships=%s", guest.id, profile.id, moved)
    return moved
