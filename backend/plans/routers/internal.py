from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from plans.auth.guards import require_internal_secret
from plans.core.db import get_db
from plans.routers.common import hangout_payload, http_errors, resolution_payload
from plans.services.hangouts import complete_due, complete_hangout
from plans.services.notify import NotificationDispatcher, get_dispatcher
from plans.services.resolution import resolve_due

log = logging.getLogger("plans.api.internal")

router = APIRouter(prefix="/internal", tags=["internal"], dependencies=[Depends(require_internal_secret)])


@router.post("/resolve-due")
def run_resolve_due(
    db: Session = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Scheduler tick: settle expired votes, then complete past hangouts."""
    results = resolve_due(db, dispatcher=dispatcher)
    completed = complete_due(db)
    log.info("resolve-due tick resolved=%s completed=%s", len(results), len(completed))
    return {
        "resolved": [resolution_payload(r) for r in results],
        "completed": completed,
    }


@router.post("/hangouts/{hangout_id}/complete")
def complete(hangout_id: int, db: Session = Depends(get_db)):
    with http_errors():
        h = complete_hangout(db, hangout_id)
    return hangout_payload(h)
