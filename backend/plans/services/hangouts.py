from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from plans.core.clock import as_utc, iso, utcnow
from plans.core.config import settings
from plans.core.errors import Conflict, Forbidden, InvalidInput, InvalidState, NotFound
from plans.models.activity_option import ActivityOption
from plans.models.enums import HangoutStatus, NotificationKind, ParticipantRole, RsvpStatus
from plans.models.hangout import Hangout
from plans.models.hangout_participant import HangoutParticipant
from plans.models.profile import Profile
from plans.models.time_option import TimeOption
from plans.services.identity import ParticipantRef
from plans.services.notify import NotificationDispatcher, fan_out, get_dispatcher

log = logging.getLogger("plans.hangouts")


TRANSITIONS: dict[HangoutStatus, set[HangoutStatus]] = {
    HangoutStatus.PLANNING: {HangoutStatus.VOTING, HangoutStatus.CANCELLED},
    HangoutStatus.VOTING: {HangoutStatus.CONFIRMED, HangoutStatus.CANCELLED},
    HangoutStatus.CONFIRMED: {HangoutStatus.COMPLETED},
}


def get_hangout(db: Session, hangout_id: int, *, for_update: bool = False) -> Hangout:
    stmt = select(Hangout).where(Hangout.id == hangout_id)
    if for_update:
        stmt = stmt.with_for_update()
    hangout = db.execute(stmt.execution_options(populate_existing=True)).scalar_one_or_none()
    if hangout is None:
        raise NotFound("Hangout not found")
    return hangout


def is_creator(hangout: Hangout, identity: ParticipantRef | None) -> bool:
    return bool(identity and identity.is_registered and identity.id == hangout.creator_id)


def require_creator(hangout: Hangout, identity: ParticipantRef | None, detail: str = "Only the host can do this") -> None:
    if not is_creator(hangout, identity):
        raise Forbidden(detail)


def transition(db: Session, hangout: Hangout, to: HangoutStatus, **values) -> bool:
    """Compare-and-set status change; does not commit.

    Returns False when a concurrent writer moved the hangout away from the
    status we read, in which case nothing was written.
    """
    current = HangoutStatus(hangout.status)
    if to not in TRANSITIONS.get(current, set()):
        raise InvalidState(f"Cannot move hangout from {current.value} to {to.value}")

    res = db.execute(
        update(Hangout)
        .where(Hangout.id == hangout.id, Hangout.status == current.value)
        .values(status=to.value, **values)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount == 1


def hangout_link(hangout: Hangout) -> str:
    return f"/hangouts/{hangout.id}"


def member_refs(hangout: Hangout, *, exclude: ParticipantRef | None = None) -> list[ParticipantRef]:
    refs = [ParticipantRef.of(p) for p in hangout.participants]
    return [r for r in refs if r != exclude]


def _smart_title(option_titles: Sequence[str], friend_names: Sequence[str]) -> str:
    title = "New Hangout"
    if len(option_titles) == 1:
        title = option_titles[0]
    elif len(option_titles) > 1:
        title = f"{option_titles[0]} or {option_titles[1]}"
        if len(option_titles) > 2:
            title += "..."

    if len(friend_names) == 1:
        title = f"{title} with {friend_names[0]}"
    elif len(friend_names) == 2:
        title = f"{title} with {friend_names[0]} & {friend_names[1]}"
    elif len(friend_names) > 2:
        title = f"{title} with {friend_names[0]} & {len(friend_names) - 1} others"
    return title


def create_hangout(
    db: Session,
    *,
    creator: Profile,
    title: str | None = None,
    description: str | None = None,
    activities: Iterable[tuple[str, str | None]] = (),
    member_profile_ids: Iterable[int] = (),
    consensus_threshold: int | None = None,
    allow_participant_suggestions: bool = True,
    voting_ends_at: datetime | None = None,
    scheduled_for: datetime | None = None,
    start_voting: bool | None = None,
) -> Hangout:
    """Open a hangout with its creator, invited friends and initial options.

    `activities` is a sequence of (activity_ref, title) pairs; their position
    becomes the display order. More than one activity starts voting right away
    unless `start_voting` says otherwise.
    """
    threshold = settings.DEFAULT_CONSENSUS_THRESHOLD if consensus_threshold is None else int(consensus_threshold)
    if not 0 <= threshold <= 100:
        raise InvalidInput("consensus_threshold must be between 0 and 100")

    acts = [((ref or "").strip(), t) for ref, t in activities]
    if any(not ref for ref, _ in acts):
        raise InvalidInput("Activity reference is empty")

    # unique, order preserved, creator is added separately
    member_ids = [pid for pid in dict.fromkeys(int(x) for x in member_profile_ids) if pid != creator.id]
    friends: list[Profile] = []
    if member_ids:
        found = {p.id: p for p in db.execute(select(Profile).where(Profile.id.in_(member_ids))).scalars()}
        missing = [pid for pid in member_ids if pid not in found]
        if missing:
            raise NotFound(f"Profile not found: {missing[0]}")
        friends = [found[pid] for pid in member_ids]

    if not title:
        title = _smart_title(
            [t or ref for ref, t in acts],
            [f.display_name.split(" ")[0] for f in friends if f.display_name],
        )

    voting = start_voting if start_voting is not None else len(acts) > 1
    status = HangoutStatus.VOTING if voting else HangoutStatus.PLANNING

    hangout = Hangout(
        title=title.strip()[:200],
        description=description,
        creator_id=creator.id,
        status=status.value,
        consensus_threshold=threshold,
        allow_participant_suggestions=allow_participant_suggestions,
        is_voting_enabled=voting,
        voting_ends_at=voting_ends_at,
        scheduled_for=scheduled_for,
    )
    db.add(hangout)
    db.flush()  # need hangout.id below

    now = utcnow()
    db.add(
        HangoutParticipant(
            hangout_id=hangout.id,
            profile_id=creator.id,
            role=ParticipantRole.CREATOR.value,
            rsvp_status=RsvpStatus.GOING.value,
            responded_at=now,
        )
    )
    for f in friends:
        db.add(HangoutParticipant(hangout_id=hangout.id, profile_id=f.id, role=ParticipantRole.MEMBER.value))

    for index, (ref, t) in enumerate(acts):
        db.add(
            ActivityOption(
                hangout_id=hangout.id,
                activity_ref=ref,
                title=t,
                display_order=index,
                added_by_profile_id=creator.id,
            )
        )

    db.commit()
    db.refresh(hangout)
    log.info("hangout created id=%s creator=%s status=%s options=%s", hangout.id, creator.id, hangout.status, len(acts))
    return hangout


def open_voting(
    db: Session,
    hangout_id: int,
    *,
    actor: ParticipantRef,
    voting_ends_at: datetime | None = None,
) -> Hangout:
    hangout = get_hangout(db, hangout_id, for_update=True)
    require_creator(hangout, actor, "Only the host can start voting")

    values = {"is_voting_enabled": True}
    if voting_ends_at is not None:
        values["voting_ends_at"] = voting_ends_at

    if not transition(db, hangout, HangoutStatus.VOTING, **values):
        db.rollback()
        raise Conflict()
    db.commit()
    db.refresh(hangout)
    log.info("voting opened hangout_id=%s ends_at=%s", hangout.id, hangout.voting_ends_at)
    return hangout


def cancel_hangout(
    db: Session,
    hangout_id: int,
    *,
    actor: ParticipantRef,
    dispatcher: NotificationDispatcher | None = None,
) -> Hangout:
    hangout = get_hangout(db, hangout_id, for_update=True)
    require_creator(hangout, actor, "Only the host can cancel the hangout")

    if not transition(db, hangout, HangoutStatus.CANCELLED, is_voting_enabled=False):
        db.rollback()
        raise Conflict()
    db.commit()
    db.refresh(hangout)
    log.info("hangout cancelled id=%s", hangout.id)

    fan_out(
        dispatcher or get_dispatcher(),
        member_refs(hangout, exclude=actor),
        kind=NotificationKind.HANGOUT_UPDATE,
        content=f"\"{hangout.title}\" was cancelled by the host.",
        link=hangout_link(hangout),
    )
    return hangout


def complete_hangout(db: Session, hangout_id: int, *, now: datetime | None = None) -> Hangout:
    """CONFIRMED -> COMPLETED, driven by an external scheduling signal."""
    now = now or utcnow()
    hangout = get_hangout(db, hangout_id, for_update=True)

    if hangout.status != HangoutStatus.CONFIRMED.value:
        db.rollback()
        raise InvalidState(f"Only confirmed hangouts can be completed (status={hangout.status})")

    starts = as_utc(hangout.scheduled_for)
    if starts is not None and starts > now:
        db.rollback()
        raise InvalidState("Hangout has not happened yet")

    if not transition(db, hangout, HangoutStatus.COMPLETED):
        db.rollback()
        raise Conflict()
    db.commit()
    db.refresh(hangout)
    log.info("hangout completed id=%s", hangout.id)
    return hangout


def complete_due(db: Session, *, now: datetime | None = None) -> list[int]:
    now = now or utcnow()
    ids = db.execute(
        select(Hangout.id).where(
            Hangout.status == HangoutStatus.CONFIRMED.value,
            Hangout.scheduled_for.is_not(None),
            Hangout.scheduled_for <= now,
        )
    ).scalars().all()

    done: list[int] = []
    for hangout_id in ids:
        try:
            complete_hangout(db, hangout_id, now=now)
        except (InvalidState, Conflict, NotFound) as e:
            log.warning("complete skipped hangout_id=%s: %s", hangout_id, e)
            continue
        done.append(hangout_id)
    return done


def hangout_status(db: Session, hangout_id: int) -> dict:
    """Read-only snapshot for polling clients: members, options and raw votes."""
    hangout = db.execute(
        select(Hangout)
        .where(Hangout.id == hangout_id)
        .options(
            selectinload(Hangout.participants).selectinload(HangoutParticipant.profile),
            selectinload(Hangout.participants).selectinload(HangoutParticipant.guest),
            selectinload(Hangout.activity_options).selectinload(ActivityOption.votes),
            selectinload(Hangout.time_options).selectinload(TimeOption.votes),
        )
    ).scalar_one_or_none()
    if hangout is None:
        raise NotFound("Hangout not found")

    def participant_payload(p: HangoutParticipant) -> dict:
        return {
            "id": p.id,
            "role": p.role,
            "is_mandatory": p.is_mandatory,
            "rsvp_status": p.rsvp_status,
            "responded_at": iso(p.responded_at),
            "profile": (
                {"id": p.profile.id, "display_name": p.profile.display_name, "avatar_url": p.profile.avatar_url}
                if p.profile
                else None
            ),
            "guest": {"id": p.guest.id, "display_name": p.guest.display_name} if p.guest else None,
        }

    def votes_payload(votes) -> list[dict]:
        return [{"value": v.value, "profile_id": v.profile_id, "guest_id": v.guest_id} for v in votes]

    return {
        "id": hangout.id,
        "title": hangout.title,
        "status": hangout.status,
        "creator_id": hangout.creator_id,
        "consensus_threshold": hangout.consensus_threshold,
        "allow_participant_suggestions": hangout.allow_participant_suggestions,
        "is_voting_enabled": hangout.is_voting_enabled,
        "voting_ends_at": iso(hangout.voting_ends_at),
        "scheduled_for": iso(hangout.scheduled_for),
        "final_option_id": hangout.final_option_id,
        "final_activity_ref": hangout.final_activity_ref,
        "final_time_option_id": hangout.final_time_option_id,
        "participants": [participant_payload(p) for p in hangout.participants],
        "activity_options": [
            {
                "id": o.id,
                "activity_ref": o.activity_ref,
                "title": o.display_name,
                "display_order": o.display_order,
                "score": sum(v.value for v in o.votes),
                "votes": votes_payload(o.votes),
            }
            for o in hangout.activity_options
        ],
        "time_options": [
            {
                "id": t.id,
                "starts_at": iso(t.starts_at),
                "display_order": t.display_order,
                "score": sum(v.value for v in t.votes),
                "votes": votes_payload(t.votes),
            }
            for t in hangout.time_options
        ],
    }
