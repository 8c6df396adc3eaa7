from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plans.core.errors import Conflict, InvalidInput, SuggestionsDisabled, VotingClosed
from plans.models.activity_option import ActivityOption
from plans.models.enums import OPEN_STATUSES
from plans.models.hangout import Hangout
from plans.models.time_option import TimeOption
from plans.services.hangouts import get_hangout, is_creator
from plans.services.identity import ParticipantRef
from plans.services.membership import require_membership

log = logging.getLogger("plans.options")


def _next_display_order(db: Session, model, hangout_id: int) -> int:
    current = db.execute(select(func.max(model.display_order)).where(model.hangout_id == hangout_id)).scalar()
    return 0 if current is None else int(current) + 1


def _check_can_add(db: Session, hangout: Hangout, requester: ParticipantRef) -> None:
    if hangout.status not in OPEN_STATUSES:
        raise VotingClosed("Cannot add options to this hangout anymore")

    require_membership(db, hangout.id, requester)

    if not is_creator(hangout, requester) and not hangout.allow_participant_suggestions:
        raise SuggestionsDisabled()


def _commit_option(db: Session, row):
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # display_order collided with a concurrent insert
        db.rollback()
        raise Conflict() from None
    db.refresh(row)
    return row


def add_option(
    db: Session,
    hangout_id: int,
    activity_ref: str,
    *,
    requester: ParticipantRef,
    title: str | None = None,
) -> ActivityOption:
    activity_ref = (activity_ref or "").strip()
    if not activity_ref:
        raise InvalidInput("Missing activity reference")

    # row lock serializes display_order allocation per hangout
    hangout = get_hangout(db, hangout_id, for_update=True)
    _check_can_add(db, hangout, requester)

    option = _commit_option(
        db,
        ActivityOption(
            hangout_id=hangout.id,
            activity_ref=activity_ref,
            title=(title or "").strip() or None,
            display_order=_next_display_order(db, ActivityOption, hangout.id),
            added_by_profile_id=requester.profile_id,
            added_by_guest_id=requester.guest_id,
        ),
    )
    log.info("option added hangout_id=%s option_id=%s ref=%s by=%s", hangout_id, option.id, activity_ref, requester)
    return option


def list_options(db: Session, hangout_id: int) -> list[ActivityOption]:
    get_hangout(db, hangout_id)
    return list(
        db.execute(
            select(ActivityOption)
            .where(ActivityOption.hangout_id == hangout_id)
            .order_by(ActivityOption.display_order.asc())
        ).scalars()
    )


def add_time_option(
    db: Session,
    hangout_id: int,
    starts_at: datetime,
    *,
    requester: ParticipantRef,
) -> TimeOption:
    if starts_at is None:
        raise InvalidInput("Missing start time")

    hangout = get_hangout(db, hangout_id, for_update=True)
    _check_can_add(db, hangout, requester)

    return _commit_option(
        db,
        TimeOption(
            hangout_id=hangout.id,
            starts_at=starts_at,
            display_order=_next_display_order(db, TimeOption, hangout.id),
        ),
    )


def list_time_options(db: Session, hangout_id: int) -> list[TimeOption]:
    get_hangout(db, hangout_id)
    return list(
        db.execute(
            select(TimeOption).where(TimeOption.hangout_id == hangout_id).order_by(TimeOption.display_order.asc())
        ).scalars()
    )
