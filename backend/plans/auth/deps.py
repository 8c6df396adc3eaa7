from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from plans.auth.jwt_tokens import JwtConfig, decode_access_token
from plans.core.config import settings
from plans.core.db import get_db
from plans.core.errors import InvalidToken
from plans.models import GuestProfile, Profile
from plans.services.identity import ParticipantRef, get_guest_by_token, resolve_guest


def get_jwt_config() -> JwtConfig:
    return JwtConfig(
        secret=settings.JWT_SECRET,
        issuer=settings.JWT_ISS,
        audience=settings.JWT_AUD,
        ttl_seconds=settings.ACCESS_TOKEN_TTL_SECONDS,
    )


def get_identity_provider_config() -> JwtConfig:
    return JwtConfig(
        secret=settings.IDP_JWT_SECRET,
        issuer=settings.IDP_ISS,
        audience=settings.IDP_AUD,
        ttl_seconds=0,
    )


def _profile_from_cookie(db: Session, access_token: str | None) -> Profile | None:
    if not access_token:
        return None
    try:
        payload = decode_access_token(get_jwt_config(), access_token)
        profile_id = int(payload["sub"])
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    profile = db.get(Profile, profile_id)
    if not profile:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    return profile


def get_optional_identity(request: Request, db: Session = Depends(get_db)) -> ParticipantRef | None:
    """Registered session cookie first, then the guest cookie; None if neither."""
    profile = _profile_from_cookie(db, request.cookies.get("access_token"))
    if profile is not None:
        return ParticipantRef.registered(profile.id)

    guest_token = request.cookies.get(settings.GUEST_COOKIE_NAME)
    if not guest_token:
        return None
    try:
        return resolve_guest(db, guest_token)
    except InvalidToken as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))


def get_current_identity(identity: ParticipantRef | None = Depends(get_optional_identity)) -> ParticipantRef:
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return identity


def get_current_guest(request: Request, db: Session = Depends(get_db)) -> GuestProfile | None:
    """The guest behind the guest cookie, if any (expired/unknown cookies are ignored)."""
    token = request.cookies.get(settings.GUEST_COOKIE_NAME)
    if not token:
        return None
    try:
        return get_guest_by_token(db, token)
    except InvalidToken:
        return None
