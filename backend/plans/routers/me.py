from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from plans.auth.deps import get_current_identity
from plans.core.clock import iso
from plans.core.db import get_db
from plans.models import Hangout, HangoutParticipant, Notification
from plans.routers.common import hangout_payload, http_errors, membership_payload
from plans.services.identity import ParticipantRef, display_identity

router = APIRouter(tags=["me"])


class NotificationsReadIn(BaseModel):
    ids: List[int] | None = None  # None = all


@router.get("/me")
def me(
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    with http_errors():
        return display_identity(db, identity)


@router.get("/me/hangouts")
def my_hangouts(
    status: str | None = Query(default=None),
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    q = (
        select(Hangout, HangoutParticipant)
        .join(HangoutParticipant, HangoutParticipant.hangout_id == Hangout.id)
        .where(identity.matches(HangoutParticipant))
        .order_by(Hangout.created_at.desc(), Hangout.id.desc())
    )
    if status:
        q = q.where(Hangout.status == status.strip().upper())

    rows = db.execute(q).all()
    return [{**hangout_payload(h), "membership": membership_payload(m)} for h, m in rows]


@router.get("/me/notifications")
def my_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    q = select(Notification).where(identity.matches(Notification))
    if unread_only:
        q = q.where(Notification.is_read.is_(False))
    q = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)

    return [
        {
            "id": n.id,
            "kind": n.kind,
            "content": n.content,
            "link": n.link,
            "is_read": n.is_read,
            "created_at": iso(n.created_at),
        }
        for n in db.execute(q).scalars()
    ]


@router.post("/me/notifications/read")
def mark_notifications_read(
    payload: NotificationsReadIn | None = None,
    db: Session = Depends(get_db),
    identity: ParticipantRef = Depends(get_current_identity),
):
    q = update(Notification).where(identity.matches(Notification), Notification.is_read.is_(False))
    if payload is not None and payload.ids is not None:
        q = q.where(Notification.id.in_(payload.ids))

    res = db.execute(q.values(is_read=True).execution_options(synchronize_session=False))
    db.commit()
    return {"ok": True, "updated": res.rowcount}
