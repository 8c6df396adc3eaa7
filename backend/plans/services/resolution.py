"""Closing a vote and committing the winning option.

Every path that decides a hangout (host ends voting, deadline cron) goes
through `resolve`, so the winner is always computed the same way:

* score = sum of vote values per option (unvoted options score 0),
* highest score wins, ties go to the lower display_order.

The decision is written with a compare-and-set on the hangout status, so
two concurrent resolvers can never commit different winners; the loser
returns the committed one.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from plans.core.clock import as_utc, utcnow
from plans.core.errors import Conflict, NoOptions, NotFound
from plans.models.activity_option import ActivityOption
from plans.models.enums import RESOLVED_STATUSES, HangoutStatus, NotificationKind
from plans.models.hangout import Hangout
from plans.models.time_option import TimeOption
from plans.services.hangouts import get_hangout, hangout_link, member_refs, require_creator, transition
from plans.services.identity import ParticipantRef
from plans.services.notify import NotificationDispatcher, fan_out, get_dispatcher
from plans.services.votes import tally, time_tally

log = logging.getLogger("plans.resolution")


class ResolutionOutcome(str, enum.Enum):
    RESOLVED = "RESOLVED"
    ALREADY_RESOLVED = "ALREADY_RESOLVED"
    NOT_APPLICABLE = "NOT_APPLICABLE"


@dataclass(frozen=True)
class RankedOption:
    option: Any  # ActivityOption or TimeOption
    score: int


@dataclass
class ResolutionResult:
    outcome: ResolutionOutcome
    hangout: Hangout
    winner: RankedOption | None = None
    ranking: list[RankedOption] = field(default_factory=list)
    time_winner: RankedOption | None = None
    notified: int = 0
    reason: str | None = None

    @property
    def applied(self) -> bool:
        return self.outcome == ResolutionOutcome.RESOLVED


def rank(options, scores: dict[int, int]) -> list[RankedOption]:
    ranked = [RankedOption(o, scores.get(o.id, 0)) for o in options]
    # display_order is unique per hangout, so this is a strict total order
    ranked.sort(key=lambda r: (-r.score, r.option.display_order))
    return ranked


def rank_options(db: Session, hangout_id: int) -> list[RankedOption]:
    options = db.execute(select(ActivityOption).where(ActivityOption.hangout_id == hangout_id)).scalars().all()
    return rank(options, tally(db, hangout_id))


def rank_time_options(db: Session, hangout_id: int) -> list[RankedOption]:
    options = db.execute(select(TimeOption).where(TimeOption.hangout_id == hangout_id)).scalars().all()
    return rank(options, time_tally(db, hangout_id))


def _pick(ranking: list[RankedOption], option_id: int | None, model, db: Session) -> RankedOption | None:
    if option_id is None:
        return None
    for r in ranking:
        if r.option.id == option_id:
            return r
    option = db.get(model, option_id)
    return RankedOption(option, 0) if option is not None else None


def _reload_options(db: Session, hangout_id: int) -> None:
    """Refill option rows expired by the commit."""
    for model in (ActivityOption, TimeOption):
        db.execute(select(model).where(model.hangout_id == hangout_id)).scalars().all()


def _already_resolved(db: Session, hangout_id: int) -> ResolutionResult:
    # release the row lock, then read the stored decision
    db.rollback()
    hangout = get_hangout(db, hangout_id)
    ranking = rank_options(db, hangout.id)
    return ResolutionResult(
        outcome=ResolutionOutcome.ALREADY_RESOLVED,
        hangout=hangout,
        winner=_pick(ranking, hangout.final_option_id, ActivityOption, db),
        ranking=ranking,
        time_winner=_pick(rank_time_options(db, hangout.id), hangout.final_time_option_id, TimeOption, db),
        reason=f"Hangout is already {hangout.status}",
    )


def resolve(
    db: Session,
    hangout_id: int,
    *,
    actor: ParticipantRef | None = None,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> ResolutionResult:
    """Pick the winner of a VOTING hangout and confirm it.

    Safe to call speculatively: a hangout that is not VOTING yields
    NOT_APPLICABLE (nothing written), one that is already decided yields
    ALREADY_RESOLVED with the stored winner. `actor` is excluded from the
    result notification; the deadline path passes None so everyone hears.
    """
    now = now or utcnow()

    hangout = get_hangout(db, hangout_id, for_update=True)

    if hangout.status in RESOLVED_STATUSES:
        return _already_resolved(db, hangout_id)

    if hangout.status != HangoutStatus.VOTING.value:
        reason = f"Hangout is {hangout.status}, not VOTING"
        db.rollback()
        hangout = get_hangout(db, hangout_id)
        return ResolutionResult(outcome=ResolutionOutcome.NOT_APPLICABLE, hangout=hangout, reason=reason)

    ranking = rank_options(db, hangout.id)
    if not ranking:
        db.rollback()
        raise NoOptions()
    winner = ranking[0]

    time_ranking = rank_time_options(db, hangout.id)
    time_winner = time_ranking[0] if time_ranking else None

    values = {
        "final_option_id": winner.option.id,
        "final_activity_ref": winner.option.activity_ref,
        "is_voting_enabled": False,
    }
    # resolved early: the deadline becomes now; a deadline already past stays as is
    ends_at = as_utc(hangout.voting_ends_at)
    if ends_at is not None and ends_at > now:
        values["voting_ends_at"] = now
    if time_winner is not None:
        values["final_time_option_id"] = time_winner.option.id
        values["scheduled_for"] = time_winner.option.starts_at

    if not transition(db, hangout, HangoutStatus.CONFIRMED, **values):
        db.rollback()
        hangout = get_hangout(db, hangout_id)
        if hangout.status in RESOLVED_STATUSES:
            log.info("resolution lost race hangout_id=%s final_option_id=%s", hangout_id, hangout.final_option_id)
            return _already_resolved(db, hangout_id)
        raise Conflict("Hangout changed while resolving")

    db.commit()
    db.refresh(hangout)
    _reload_options(db, hangout.id)

    log.info(
        "hangout resolved id=%s winner_option_id=%s score=%s options=%s actor=%s",
        hangout.id,
        winner.option.id,
        winner.score,
        len(ranking),
        actor,
    )

    # committed: from here on nothing may undo the decision
    notified = fan_out(
        dispatcher or get_dispatcher(),
        member_refs(hangout, exclude=actor),
        kind=NotificationKind.HANGOUT_UPDATE,
        content=f"Voting closed! The plan is set for: {winner.option.display_name}. Tap to RSVP.",
        link=hangout_link(hangout),
    )

    return ResolutionResult(
        outcome=ResolutionOutcome.RESOLVED,
        hangout=hangout,
        winner=winner,
        ranking=ranking,
        time_winner=time_winner,
        notified=notified,
    )


def end_voting(
    db: Session,
    hangout_id: int,
    *,
    actor: ParticipantRef,
    dispatcher: NotificationDispatcher | None = None,
    now: datetime | None = None,
) -> ResolutionResult:
    """Host closes voting early."""
    hangout = get_hangout(db, hangout_id)
    require_creator(hangout, actor, "Only the host can end voting early")
    return resolve(db, hangout_id, actor=actor, dispatcher=dispatcher, now=now)


def resolve_due(
    db: Session,
    *,
    now: datetime | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> list[ResolutionResult]:
    """Resolve every VOTING hangout whose deadline has passed (cron entry point)."""
    now = now or utcnow()
    ids = db.execute(
        select(Hangout.id)
        .where(
            Hangout.status == HangoutStatus.VOTING.value,
            Hangout.voting_ends_at.is_not(None),
            Hangout.voting_ends_at <= now,
        )
        .order_by(Hangout.voting_ends_at.asc())
    ).scalars().all()

    results: list[ResolutionResult] = []
    for hangout_id in ids:
        try:
            results.append(resolve(db, hangout_id, dispatcher=dispatcher, now=now))
        except (NoOptions, NotFound) as e:
            log.warning("deadline resolution skipped hangout_id=%s: %s", hangout_id, e)
    return results
