from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

import jwt  # PyJWT

ACCESS_CLAIMS = ["exp", "iat", "iss", "aud", "sub"]
IDENTITY_CLAIMS = ["exp", "iss", "aud", "sub"]


@dataclass(frozen=True)
class JwtConfig:
    secret: str
    issuer: str
    audience: str
    ttl_seconds: int


@dataclass(frozen=True)
class ExternalIdentity:
    external_id: str
    display_name: str | None = None
    avatar_url: str | None = None


def _decode(cfg: JwtConfig, token: str, required: list[str]) -> dict[str, Any]:
    return jwt.decode(
        token,
        cfg.secret,
        algorithms=["HS256"],
        issuer=cfg.issuer,
        audience=cfg.audience,
        options={"require": required},
    )


def create_access_token(cfg: JwtConfig, profile_id: int) -> str:
    """Our own session cookie for a registered profile."""
    now = int(time.time())
    return jwt.encode(
        {
            "sub": str(profile_id),
            "iat": now,
            "exp": now + cfg.ttl_seconds,
            "iss": cfg.issuer,
            "aud": cfg.audience,
            "typ": "access",
        },
        cfg.secret,
        algorithm="HS256",
    )


def decode_access_token(cfg: JwtConfig, token: str) -> dict[str, Any]:
    return _decode(cfg, token, ACCESS_CLAIMS)


def decode_identity_token(cfg: JwtConfig, token: str) -> ExternalIdentity:
    """Verify a token minted by the external identity provider."""
    claims = _decode(cfg, token, IDENTITY_CLAIMS)
    return ExternalIdentity(
        external_id=str(claims["sub"]),
        display_name=(claims.get("name") or "").strip() or None,
        avatar_url=claims.get("picture") or None,
    )
