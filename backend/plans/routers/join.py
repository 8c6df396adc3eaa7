from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Response
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from plans.auth.deps import get_current_guest, get_optional_identity
from plans.core.db import get_db
from plans.models import GuestProfile, HangoutParticipant, Profile
from plans.models.enums import RsvpStatus
from plans.routers.common import hangout_payload, http_errors, membership_payload, option_payload, set_guest_cookie
from plans.services import invites
from plans.services.identity import ParticipantRef
from plans.services.membership import get_membership

router = APIRouter(prefix="/join", tags=["join"])


class GuestJoinIn(BaseModel):
    display_name: str = Field(..., max_length=64)
    rsvp_status: str | None = RsvpStatus.GOING.value


class InviteRsvpIn(BaseModel):
    status: str


def _guest_payload(guest: GuestProfile) -> dict:
    return {"id": guest.id, "public_id": guest.public_id, "display_name": guest.display_name}


@router.get("/{token}")
def preview(
    token: str,
    db: Session = Depends(get_db),
    identity: ParticipantRef | None = Depends(get_optional_identity),
):
    """What an invite link shows before joining."""
    with http_errors():
        h = invites.hangout_for_token(db, token)

    creator = db.get(Profile, h.creator_id)
    going = db.execute(
        select(func.count(HangoutParticipant.id)).where(
            HangoutParticipant.hangout_id == h.id,
            HangoutParticipant.rsvp_status == RsvpStatus.GOING.value,
        )
    ).scalar_one()

    m = get_membership(db, h.id, identity) if identity is not None else None
    return {
        "hangout": hangout_payload(h),
        "host": {"id": creator.id, "display_name": creator.display_name} if creator else None,
        "options": [option_payload(o) for o in h.activity_options],
        "going_count": int(going),
        "membership": membership_payload(m) if m else None,
    }


@router.post("/{token}/guest")
def join_as_guest(
    token: str,
    payload: GuestJoinIn,
    response: Response,
    db: Session = Depends(get_db),
    current_guest: GuestProfile | None = Depends(get_current_guest),
    idempotency_key: str | None = Header(default=None, alias="Idempotency-Key"),
):
    with http_errors():
        guest, m = invites.join_as_guest(
            db,
            token,
            payload.display_name,
            rsvp_status=payload.rsvp_status,
            idempotency_key=idempotency_key,
            existing_guest=current_guest if current_guest and current_guest.converted_to_profile_id is None else None,
        )
    set_guest_cookie(response, guest.token)
    return {"guest": _guest_payload(guest), "membership": membership_payload(m)}


@router.post("/{token}/rsvp")
def rsvp(
    token: str,
    payload: InviteRsvpIn,
    response: Response,
    db: Session = Depends(get_db),
    identity: ParticipantRef | None = Depends(get_optional_identity),
):
    with http_errors():
        ref, m, guest = invites.rsvp_via_invite(db, token, payload.status, identity=identity)
    if guest is not None:
        set_guest_cookie(response, guest.token)
    return {
        "identity": {"kind": ref.kind.value, "id": ref.id},
        "membership": membership_payload(m),
        "guest": _guest_payload(guest) if guest else None,
    }
