from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from plans.auth.deps import get_current_identity
from plans.auth.guards import require_profile
from plans.core.clock import as_utc, utcnow
from plans.core.config import settings
from plans.core.db import get_db
from plans.core.errors import NoOptions
from plans.models.enums import HangoutStatus
from plans.models.profile import Profile
from plans.routers.common import (
    hangout_payload,
    http_errors,
    membership_payload,
    option_payload,
    resolution_payload,
    set_guest_cookie,
    time_option_payload,
)
from plans.services import hangouts as hangout_service
from plans.services import invites, membership, options, resolution, votes
from plans.services.identity import ParticipantRef
from plans.services.notify import NotificationDispatcher, get_dispatcher

log = logging.getLogger("plans.api.hangouts")

router = APIRouter(prefix="/hangouts", tags=["hangouts"])


# ---------- Schemas ----------

class ActivityIn(BaseModel):
    activity_ref: str = Field(..., min_length=1, max_length=200)
    title: str | None = Field(default=None, max_length=200)


class HangoutCreateIn(BaseModel):
    title: str | None = Field(default=None, max_length=200)
    description: str | None = None
    activities: List[ActivityIn] = Field(default_factory=list)
    member_profile_ids: List[int] = Field(default_factory=list)
    consensus_threshold: int | None = Field(default=None, ge=0, le=100)
    allow_participant_suggestions: bool = True
    voting_ends_at: Optional[datetime] = None
    scheduled_for: Optional[datetime] = None
    start_voting: bool | None = None


class StartVotingIn(BaseModel):
    voting_ends_at: Optional[datetime] = None


class OptionIn(BaseModel):
    activity_ref: str = Field(..., min_length=1, max_length=200)
    title: str | None = Field(default=None, max_length=200)


class TimeOptionIn(BaseModel):
    starts_at: datetime


class VoteIn(BaseModel):
    option_id: int = Field(..., gt=0)
    value: int  # 0 withdraws the vote


class RsvpIn(BaseModel):
    status: str  # GOING | MAYBE | NOT_GOING


class MandatoryIn(BaseModel):
    is_mandatory: bool


class ClaimIn(BaseModel):
    public_id: str = Field(..., min_length=1, max_length=32)
    display_name: str | None = Field(default=None, max_length=64)


# ---------- Lifecycle ----------

@router.post("", status_code=status.HTTP_201_CREATED)
def create_hangout(
    payload: HangoutCreateIn,
    db: Session = Depends(get_db),
    profile: Profile = Depends(require_profile),
):
    with http_errors():
        h = hangout_service.create_hangout(
            db,
            creator=profile,
            title=payload.title,
            description=payload.description,
            activities=[(a.activity_ref, a.title) for a in payload.activities],
            member_profile_ids=payload.member_profile_ids,
            consensus_threshold=payload.consensus_threshold,
            allow_participant_suggestions=payload.allow_participant_suggestions,
            voting_ends_at=payload.voting_ends_at,
            scheduled_for=payload.scheduled_for,
            start_voting=payload.start_voting,
        )
    return hangout_payload(h)


@router.get("/{hangout_id}/status")
def hangout_status(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    with http_errors():
        h = hangout_service.get_hangout(db, hangout_id)
        membership.require_membership(db, hangout_id, identity)

        # polling past the deadline settles the vote
        ends_at = as_utc(h.voting_ends_at)
        if h.status == HangoutStatus.VOTING.value and ends_at is not None and ends_at <= utcnow():
            try:
                resolution.resolve(db, hangout_id, dispatcher=dispatcher)
            except NoOptions:
                log.info("poll: deadline passed without options hangout_id=%s", hangout_id)

        return hangout_service.hangout_status(db, hangout_id)


@router.post("/{hangout_id}/start-voting")
def start_voting(
    hangout_id: int,
    payload: StartVotingIn | None = None,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        h = hangout_service.open_voting(
            db,
            hangout_id,
            actor=identity,
            voting_ends_at=payload.voting_ends_at if payload else None,
        )
    return hangout_payload(h)


@router.post("/{hangout_id}/cancel")
def cancel_hangout(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    with http_errors():
        h = hangout_service.cancel_hangout(db, hangout_id, actor=identity, dispatcher=dispatcher)
    return hangout_payload(h)


@router.post("/{hangout_id}/end-voting")
def end_voting(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    with http_errors():
        result = resolution.end_voting(db, hangout_id, actor=identity, dispatcher=dispatcher)
    return resolution_payload(result)


# ---------- Options ----------

@router.get("/{hangout_id}/options")
def list_options(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        membership.require_membership(db, hangout_id, identity)
        rows = options.list_options(db, hangout_id)
    return [option_payload(o) for o in rows]


@router.post("/{hangout_id}/options", status_code=status.HTTP_201_CREATED)
def add_option(
    hangout_id: int,
    payload: OptionIn,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        o = options.add_option(db, hangout_id, payload.activity_ref, requester=identity, title=payload.title)
    return option_payload(o)


@router.get("/{hangout_id}/time-options")
def list_time_options(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        membership.require_membership(db, hangout_id, identity)
        rows = options.list_time_options(db, hangout_id)
    return [time_option_payload(t) for t in rows]


@router.post("/{hangout_id}/time-options", status_code=status.HTTP_201_CREATED)
def add_time_option(
    hangout_id: int,
    payload: TimeOptionIn,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        t = options.add_time_option(db, hangout_id, payload.starts_at, requester=identity)
    return time_option_payload(t)


# ---------- Votes ----------

def _vote_payload(vote, option_id: int) -> dict:
    return {"option_id": option_id, "value": vote.value if vote is not None else votes.NO_VOTE}


@router.post("/{hangout_id}/vote")
def cast_vote(
    hangout_id: int,
    payload: VoteIn,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        v = votes.cast_vote(db, payload.option_id, identity, payload.value, hangout_id=hangout_id)
    return _vote_payload(v, payload.option_id)


@router.post("/{hangout_id}/time-vote")
def cast_time_vote(
    hangout_id: int,
    payload: VoteIn,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        v = votes.cast_time_vote(db, payload.option_id, identity, payload.value, hangout_id=hangout_id)
    return _vote_payload(v, payload.option_id)


@router.get("/{hangout_id}/tally")
def tally(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        hangout_service.get_hangout(db, hangout_id)
        membership.require_membership(db, hangout_id, identity)
        scores = votes.tally(db, hangout_id)
        time_scores = votes.time_tally(db, hangout_id)
    # JSON object keys are strings
    return {
        "options": {str(k): v for k, v in scores.items()},
        "time_options": {str(k): v for k, v in time_scores.items()},
    }


# ---------- Participants ----------

@router.post("/{hangout_id}/rsvp")
def rsvp(
    hangout_id: int,
    payload: RsvpIn,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        m = membership.set_rsvp(db, hangout_id, identity, payload.status)
    return membership_payload(m)


@router.post("/{hangout_id}/participants/{participant_id}/mandatory")
def set_mandatory(
    hangout_id: int,
    participant_id: int,
    payload: MandatoryIn,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        m = membership.set_mandatory(db, hangout_id, participant_id, payload.is_mandatory, actor=identity)
    return membership_payload(m)


@router.delete("/{hangout_id}/participants/{participant_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_participant(
    hangout_id: int,
    participant_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        membership.remove_member(db, hangout_id, participant_id, actor=identity)
    return


# ---------- Invites ----------

@router.post("/{hangout_id}/invite")
def create_invite(
    hangout_id: int,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        token = invites.get_or_create_invite_token(db, hangout_id, requester=identity)
    return {
        "token": token,
        "url": f"{settings.APP_BASE_URL.rstrip('/')}/join/{token}",
    }


@router.post("/{hangout_id}/claim")
def claim_guest(
    hangout_id: int,
    payload: ClaimIn,
    response: Response,
    db: Session = Depends(get_db),
):
    with http_errors():
        token = invites.claim(db, hangout_id, payload.public_id, display_name=payload.display_name)
    set_guest_cookie(response, token)
    return {"ok": True, "public_id": payload.public_id, "token": token}
