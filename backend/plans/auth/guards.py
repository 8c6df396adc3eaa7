from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from plans.auth.deps import get_current_identity
from plans.core.config import settings
from plans.core.db import get_db
from plans.models.profile import Profile
from plans.services.identity import ParticipantRef


def require_profile(
    identity: ParticipantRef = Depends(get_current_identity),
    db: Session = Depends(get_db),
) -> Profile:
    if not identity.is_registered:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Sign in required",
        )
    profile = db.get(Profile, identity.id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return profile


def require_internal_secret(request: Request) -> None:
    got = request.headers.get("X-Internal-Secret", "")
    if not settings.INTERNAL_SECRET or not hmac.compare_digest(got, settings.INTERNAL_SECRET):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="bad secret")
