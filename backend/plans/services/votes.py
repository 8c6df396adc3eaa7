from __future__ import annotations

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plans.core.errors import InvalidInput, NotFound, VotingClosed
from plans.models.activity_option import ActivityOption
from plans.models.enums import OPEN_STATUSES
from plans.models.hangout import Hangout
from plans.models.time_option import TimeOption, TimeVote
from plans.models.vote import Vote
from plans.services.identity import ParticipantRef
from plans.services.membership import require_membership

NO_VOTE = 0


def _require_open(db: Session, hangout_id: int) -> None:
    # shared lock: waits for a resolver holding FOR UPDATE, never blocks other voters
    status = db.execute(
        select(Hangout.status).where(Hangout.id == hangout_id).with_for_update(read=True)
    ).scalar_one()
    if status not in OPEN_STATUSES:
        db.rollback()
        raise VotingClosed()


def _cast(
    db: Session,
    option_model,
    vote_model,
    fk_name: str,
    option_id: int,
    identity: ParticipantRef,
    value: int,
    hangout_id: int | None = None,
):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput("Vote value must be an integer")

    option = db.get(option_model, option_id)
    if option is None or (hangout_id is not None and option.hangout_id != hangout_id):
        raise NotFound("Option not found")

    if option.hangout.status not in OPEN_STATUSES:
        raise VotingClosed()
    require_membership(db, option.hangout_id, identity)

    # re-checked under the lock; held until commit so a resolver cannot slip in
    _require_open(db, option.hangout_id)

    key = (getattr(vote_model, fk_name) == option_id, identity.matches(vote_model))

    if value == NO_VOTE:
        db.execute(delete(vote_model).where(*key))
        db.commit()
        return None

    vote = db.execute(select(vote_model).where(*key)).scalar_one_or_none()
    if vote is None:
        vote = vote_model(value=value, **{fk_name: option_id}, **identity.columns())
        try:
            with db.begin_nested():
                db.add(vote)
        except IntegrityError:
            # same (option, identity) inserted concurrently: overwrite it
            vote = db.execute(select(vote_model).where(*key)).scalar_one()
            vote.value = value
    else:
        vote.value = value

    db.commit()
    db.refresh(vote)
    return vote


def cast_vote(
    db: Session, option_id: int, identity: ParticipantRef, value: int, *, hangout_id: int | None = None
) -> Vote | None:
    """Upsert this identity's vote on an activity option; value 0 removes it."""
    return _cast(db, ActivityOption, Vote, "activity_option_id", option_id, identity, value, hangout_id)


def cast_time_vote(
    db: Session, time_option_id: int, identity: ParticipantRef, value: int, *, hangout_id: int | None = None
) -> TimeVote | None:
    return _cast(db, TimeOption, TimeVote, "time_option_id", time_option_id, identity, value, hangout_id)


def _tally(db: Session, option_model, vote_model, fk_name: str, hangout_id: int) -> dict[int, int]:
    rows = db.execute(
        select(option_model.id, func.coalesce(func.sum(vote_model.value), 0))
        .outerjoin(vote_model, getattr(vote_model, fk_name) == option_model.id)
        .where(option_model.hangout_id == hangout_id)
        .group_by(option_model.id)
    ).all()
    return {int(option_id): int(score) for option_id, score in rows}


def tally(db: Session, hangout_id: int) -> dict[int, int]:
    """option_id -> sum of vote values; unvoted options score 0."""
    return _tally(db, ActivityOption, Vote, "activity_option_id", hangout_id)


def time_tally(db: Session, hangout_id: int) -> dict[int, int]:
    return _tally(db, TimeOption, TimeVote, "time_option_id", hangout_id)
