from __future__ import annotations

import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from plans.auth.deps import get_current_guest, get_identity_provider_config, get_jwt_config
from plans.auth.jwt_tokens import create_access_token, decode_identity_token
from plans.core.config import settings
from plans.core.db import get_db
from plans.core.errors import PlansError
from plans.models import GuestProfile
from plans.services.identity import resolve_profile
from plans.services.invites import upgrade_guest

log = logging.getLogger("plans.auth")

router = APIRouter(prefix="/auth", tags=["auth"])


class SessionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    idToken: str = Field(alias="id_token", min_length=1)


@router.post("/session")
def create_session(
    payload: SessionIn,
    response: Response,
    db: Session = Depends(get_db),
    guest: GuestProfile | None = Depends(get_current_guest),
):
    try:
        ident = decode_identity_token(get_identity_provider_config(), payload.idToken)
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=401, detail=str(e))

    try:
        profile = resolve_profile(
            db,
            external_id=ident.external_id,
            display_name=ident.display_name,
            avatar_url=ident.avatar_url,
        )
        # a guest who signs in keeps their hangouts and votes
        moved = upgrade_guest(db, guest, profile) if guest is not None else 0
    except PlansError as e:
        raise HTTPException(status_code=e.status_code, detail=e.detail)

    token = create_access_token(get_jwt_config(), profile.id)
    response.set_cookie(
        key="access_token",
        value=token,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        domain=settings.COOKIE_DOMAIN,
        path="/",
        max_age=settings.ACCESS_TOKEN_TTL_SECONDS,
    )
    if guest is not None:
        response.delete_cookie(settings.GUEST_COOKIE_NAME, path="/", domain=settings.COOKIE_DOMAIN)

    return {
        "profile": {"id": profile.id, "display_name": profile.display_name, "avatar_url": profile.avatar_url},
        "upgraded_memberships": moved,
    }


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(response: Response):
    response.delete_cookie("access_token", path="/", domain=settings.COOKIE_DOMAIN)
    response.delete_cookie(settings.GUEST_COOKIE_NAME, path="/", domain=settings.COOKIE_DOMAIN)
    return
