from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plans.core.clock import as_utc, utcnow
from plans.core.config import settings
from plans.core.errors import InvalidToken, NotFound
from plans.models.enums import IdentityKind
from plans.models.guest_profile import GuestProfile
from plans.models.profile import Profile

log = logging.getLogger("plans.identity")


@dataclass(frozen=True)
class ParticipantRef:
    """Either a registered profile or a guest.

    Identity-bearing tables carry a `profile_id`/`guest_id` column pair; this
    is the only place that knows which of the two a participant lives in.
    """

    kind: IdentityKind
    id: int

    @classmethod
    def registered(cls, profile_id: int) -> "ParticipantRef":
        return cls(IdentityKind.REGISTERED, int(profile_id))

    @classmethod
    def guest(cls, guest_id: int) -> "ParticipantRef":
        return cls(IdentityKind.GUEST, int(guest_id))

    @classmethod
    def of(cls, row: Any) -> "ParticipantRef":
        """Build from any row with profile_id/guest_id columns."""
        if row.profile_id is not None:
            return cls.registered(row.profile_id)
        return cls.guest(row.guest_id)

    @property
    def is_registered(self) -> bool:
        return self.kind == IdentityKind.REGISTERED

    @property
    def profile_id(self) -> int | None:
        return self.id if self.is_registered else None

    @property
    def guest_id(self) -> int | None:
        return None if self.is_registered else self.id

    def matches(self, model):
        """WHERE clause selecting this identity's rows of `model`."""
        if self.is_registered:
            return model.profile_id == self.id
        return model.guest_id == self.id

    def columns(self) -> dict[str, int | None]:
        return {"profile_id": self.profile_id, "guest_id": self.guest_id}

    def __str__(self) -> str:
        return f"{self.kind.value.lower()}:{self.id}"


def resolve_profile(
    db: Session,
    *,
    external_id: str,
    display_name: str | None = None,
    avatar_url: str | None = None,
) -> Profile:
    """Return the profile for an external identity key, creating it on first sight."""
    external_id = (external_id or "").strip()
    if not external_id:
        raise InvalidToken("Identity key is missing")

    profile = db.execute(select(Profile).where(Profile.external_id == external_id)).scalar_one_or_none()

    if profile is None:
        profile = Profile(external_id=external_id, display_name=display_name, avatar_url=avatar_url)
        db.add(profile)
        try:
            db.commit()
        except IntegrityError:
            # a parallel request created it first
            db.rollback()
            profile = db.execute(select(Profile).where(Profile.external_id == external_id)).scalar_one()
        else:
            log.info("profile created id=%s external_id=%s", profile.id, external_id)
        db.refresh(profile)
        return profile

    # fill in defaults, never overwrite what the user edited
    changed = False
    if profile.display_name is None and display_name:
        profile.display_name = display_name
        changed = True
    if profile.avatar_url is None and avatar_url:
        profile.avatar_url = avatar_url
        changed = True
    if changed:
        db.commit()
        db.refresh(profile)

    return profile


def new_guest_token() -> str:
    return secrets.token_urlsafe(32)


def new_guest_public_id() -> str:
    return secrets.token_urlsafe(16)


def create_guest(
    db: Session,
    *,
    display_name: str,
    now: datetime | None = None,
    idempotency_key: str | None = None,
) -> GuestProfile:
    """Add a guest to the session (flush only, caller owns the transaction)."""
    now = now or utcnow()
    guest = GuestProfile(
        token=new_guest_token(),
        public_id=new_guest_public_id(),
        display_name=display_name,
        expires_at=now + timedelta(days=settings.GUEST_TOKEN_TTL_DAYS),
        idempotency_key=idempotency_key,
    )
    db.add(guest)
    db.flush()
    return guest


def get_guest_by_token(db: Session, token: str | None, *, now: datetime | None = None) -> GuestProfile:
    if not token:
        raise InvalidToken("Guest token is missing")

    guest = db.execute(select(GuestProfile).where(GuestProfile.token == token)).scalar_one_or_none()
    if guest is None:
        raise InvalidToken("Unknown guest token")

    now = now or utcnow()
    if as_utc(guest.expires_at) <= now:
        raise InvalidToken("Guest session expired")

    return guest


def resolve_guest(db: Session, token: str | None, *, now: datetime | None = None) -> ParticipantRef:
    """Map a guest bearer token to the identity that now acts for it."""
    guest = get_guest_by_token(db, token, now=now)
    if guest.converted_to_profile_id is not None:
        return ParticipantRef.registered(guest.converted_to_profile_id)
    return ParticipantRef.guest(guest.id)


def display_identity(db: Session, ref: ParticipantRef) -> dict:
    if ref.is_registered:
        p = db.get(Profile, ref.id)
        if p is None:
            raise NotFound("Profile not found")
        return {"kind": ref.kind.value, "id": p.id, "display_name": p.display_name, "avatar_url": p.avatar_url}

    g = db.get(GuestProfile, ref.id)
    if g is None:
        raise NotFound("Guest not found")
    return {"kind": ref.kind.value, "id": g.id, "display_name": g.display_name, "avatar_url": None}
