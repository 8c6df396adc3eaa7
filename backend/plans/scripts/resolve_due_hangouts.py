"""Close expired votes and complete hangouts that already took place.

Run this script periodically (e.g. every minute) from the backend environment.
Each VOTING hangout whose voting deadline has passed is resolved exactly once
(a hangout that is already decided is left as is), then every CONFIRMED
hangout whose scheduled time has passed is marked COMPLETED.

Env:
  - DATABASE_URL (whatever plans.core.config reads)
  - PUSH_SERVICE_URL / PUSH_SERVICE_SECRET (optional push delivery)
"""

from __future__ import annotations

import logging
import os

from sqlalchemy import select

from plans.core.clock import utcnow
from plans.core.db import SessionLocal
from plans.models import Hangout
from plans.models.enums import HangoutStatus
from plans.services.hangouts import complete_due
from plans.services.notify import get_dispatcher
from plans.services.resolution import ResolutionOutcome, resolve_due

log = logging.getLogger("plans.scripts.resolve_due")

# DRY_RUN=1 only prints the hangouts that would be resolved
DRY_RUN = os.getenv("DRY_RUN", "").strip() in ("1", "true", "yes")


def main() -> tuple[int, int]:
    now = utcnow()

    with SessionLocal() as db:
        if DRY_RUN:
            due = db.execute(
                select(Hangout.id, Hangout.title, Hangout.voting_ends_at).where(
                    Hangout.status == HangoutStatus.VOTING.value,
                    Hangout.voting_ends_at.is_not(None),
                    Hangout.voting_ends_at <= now,
                )
            ).all()
            for hangout_id, title, ends_at in due:
                print(f"DRY_RUN match: hangout_id={hangout_id} ends_at={ends_at} title=\"{title}\"")
            return 0, 0

        results = resolve_due(db, now=now, dispatcher=get_dispatcher())
        resolved = sum(1 for r in results if r.outcome == ResolutionOutcome.RESOLVED)
        completed = len(complete_due(db, now=now))

    log.info("resolve_due: resolved=%s completed=%s", resolved, completed)

    return resolved, completed


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    r, c = main()
    print(f"resolved={r} completed={c}")
