from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plans.core.clock import utcnow
from plans.core.errors import AlreadyMember, Forbidden, InvalidInput, InvalidState, NotAMember, NotFound
from plans.models.activity_option import ActivityOption
from plans.models.enums import CLOSED_STATUSES, OPEN_STATUSES, ParticipantRole, RsvpStatus
from plans.models.hangout_participant import HangoutParticipant
from plans.models.time_option import TimeOption, TimeVote
from plans.models.vote import Vote
from plans.services.hangouts import get_hangout, is_creator
from plans.services.identity import ParticipantRef

log = logging.getLogger("plans.membership")


def parse_rsvp(value: str | RsvpStatus | None, *, allow_none: bool = False) -> str | None:
    if value is None and allow_none:
        return None
    try:
        return RsvpStatus(value).value
    except ValueError:
        raise InvalidInput("Invalid status") from None


def get_membership(db: Session, hangout_id: int, identity: ParticipantRef) -> HangoutParticipant | None:
    return db.execute(
        select(HangoutParticipant).where(
            HangoutParticipant.hangout_id == hangout_id,
            identity.matches(HangoutParticipant),
        )
    ).scalar_one_or_none()


def require_membership(db: Session, hangout_id: int, identity: ParticipantRef) -> HangoutParticipant:
    m = get_membership(db, hangout_id, identity)
    if m is None:
        raise NotAMember()
    return m


def join(
    db: Session,
    hangout_id: int,
    identity: ParticipantRef,
    *,
    role: str | ParticipantRole = ParticipantRole.MEMBER,
    rsvp_status: str | RsvpStatus | None = None,
    commit: bool = True,
) -> HangoutParticipant:
    """Add `identity` to the hangout.

    Raises AlreadyMember (carrying the existing row) instead of creating a
    second membership. With commit=False the row is only flushed, so it can
    share a transaction with other writes.
    """
    try:
        role = ParticipantRole(role)
    except ValueError:
        raise InvalidInput("Invalid role") from None
    rsvp = parse_rsvp(rsvp_status, allow_none=True)

    hangout = get_hangout(db, hangout_id)
    if hangout.status in CLOSED_STATUSES:
        raise InvalidState(f"Hangout is {hangout.status.lower()}")

    existing = get_membership(db, hangout_id, identity)
    if existing is not None:
        raise AlreadyMember(existing)

    if role == ParticipantRole.CREATOR and not is_creator(hangout, identity):
        raise InvalidState("Hangout already has a creator")

    m = HangoutParticipant(
        hangout_id=hangout_id,
        role=role.value,
        rsvp_status=rsvp,
        responded_at=utcnow() if rsvp else None,
        **identity.columns(),
    )
    db.add(m)

    if not commit:
        db.flush()
        return m

    try:
        db.commit()
    except IntegrityError:
        # lost a race against the same identity joining
        db.rollback()
        raise AlreadyMember(get_membership(db, hangout_id, identity)) from None

    db.refresh(m)
    log.info("joined hangout_id=%s identity=%s role=%s", hangout_id, identity, role.value)
    return m


def join_or_get(db: Session, hangout_id: int, identity: ParticipantRef, **kwargs) -> HangoutParticipant:
    """Invite-path join: an existing membership counts as success."""
    try:
        return join(db, hangout_id, identity, **kwargs)
    except AlreadyMember as e:
        return e.membership


def set_mandatory(
    db: Session,
    hangout_id: int,
    membership_id: int,
    is_mandatory: bool,
    *,
    actor: ParticipantRef,
) -> HangoutParticipant:
    hangout = get_hangout(db, hangout_id)
    if not is_creator(hangout, actor):
        raise Forbidden()

    m = db.execute(
        select(HangoutParticipant).where(
            HangoutParticipant.id == membership_id,
            HangoutParticipant.hangout_id == hangout_id,
        )
    ).scalar_one_or_none()
    if m is None:
        raise NotFound("Participant not found")

    m.is_mandatory = bool(is_mandatory)
    db.commit()
    db.refresh(m)
    return m


def set_rsvp(db: Session, hangout_id: int, identity: ParticipantRef, status: str | RsvpStatus) -> HangoutParticipant:
    rsvp = parse_rsvp(status)

    hangout = get_hangout(db, hangout_id)
    m = require_membership(db, hangout_id, identity)
    if hangout.status in CLOSED_STATUSES:
        raise InvalidState(f"Hangout is {hangout.status.lower()}")

    m.rsvp_status = rsvp
    m.responded_at = utcnow()
    db.commit()
    db.refresh(m)
    return m


def _drop_votes(db: Session, hangout_id: int, identity: ParticipantRef) -> None:
    option_ids = select(ActivityOption.id).where(ActivityOption.hangout_id == hangout_id)
    db.execute(
        delete(Vote)
        .where(Vote.activity_option_id.in_(option_ids), identity.matches(Vote))
        .execution_options(synchronize_session=False)
    )

    time_option_ids = select(TimeOption.id).where(TimeOption.hangout_id == hangout_id)
    db.execute(
        delete(TimeVote)
        .where(TimeVote.time_option_id.in_(time_option_ids), identity.matches(TimeVote))
        .execution_options(synchronize_session=False)
    )


def remove_member(db: Session, hangout_id: int, membership_id: int, *, actor: ParticipantRef) -> None:
    """Creator removes a member, or a member leaves. The creator stays."""
    hangout = get_hangout(db, hangout_id)

    m = db.execute(
        select(HangoutParticipant).where(
            HangoutParticipant.id == membership_id,
            HangoutParticipant.hangout_id == hangout_id,
        )
    ).scalar_one_or_none()
    if m is None:
        raise NotFound("Participant not found")

    if m.role == ParticipantRole.CREATOR.value:
        raise Forbidden("The host cannot leave or be removed")

    target = ParticipantRef.of(m)
    if target != actor and not is_creator(hangout, actor):
        raise Forbidden()

    if hangout.status in CLOSED_STATUSES:
        raise InvalidState(f"Hangout is {hangout.status.lower()}")

    # once decided, votes are part of the record
    if hangout.status in OPEN_STATUSES:
        _drop_votes(db, hangout_id, target)

    db.delete(m)
    db.commit()
    log.info("participant removed hangout_id=%s identity=%s by=%s", hangout_id, target, actor)
