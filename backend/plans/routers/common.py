from __future__ import annotations

from contextlib import contextmanager

from fastapi import HTTPException, Response

from plans.core.clock import iso
from plans.core.config import settings
from plans.core.errors import PlansError


@contextmanager
def http_errors():
    """Map engine errors onto HTTP responses."""
    try:
        yield
    except PlansError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)


def hangout_payload(h) -> dict:
    return {
        "id": h.id,
        "title": h.title,
        "description": h.description,
        "status": h.status,
        "creator_id": h.creator_id,
        "consensus_threshold": h.consensus_threshold,
        "allow_participant_suggestions": h.allow_participant_suggestions,
        "is_voting_enabled": h.is_voting_enabled,
        "voting_ends_at": iso(h.voting_ends_at),
        "scheduled_for": iso(h.scheduled_for),
        "final_option_id": h.final_option_id,
        "final_activity_ref": h.final_activity_ref,
        "final_time_option_id": h.final_time_option_id,
    }


def option_payload(o) -> dict:
    return {
        "id": o.id,
        "hangout_id": o.hangout_id,
        "activity_ref": o.activity_ref,
        "title": o.display_name,
        "display_order": o.display_order,
    }


def time_option_payload(t) -> dict:
    return {"id": t.id, "hangout_id": t.hangout_id, "starts_at": iso(t.starts_at), "display_order": t.display_order}


def membership_payload(m) -> dict:
    return {
        "id": m.id,
        "hangout_id": m.hangout_id,
        "profile_id": m.profile_id,
        "guest_id": m.guest_id,
        "role": m.role,
        "is_mandatory": m.is_mandatory,
        "rsvp_status": m.rsvp_status,
        "responded_at": iso(m.responded_at),
    }


def resolution_payload(result) -> dict:
    def ranked(r, fmt):
        return {**fmt(r.option), "score": r.score} if r else None

    return {
        "outcome": result.outcome.value,
        "reason": result.reason,
        "winner": ranked(result.winner, option_payload),
        "time_winner": ranked(result.time_winner, time_option_payload),
        "ranking": [ranked(r, option_payload) for r in result.ranking],
        "notified": result.notified,
        "hangout": hangout_payload(result.hangout),
    }


def set_guest_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.GUEST_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        domain=settings.COOKIE_DOMAIN,
        path="/",
        max_age=settings.guest_token_ttl_seconds,
    )
