from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError  # ← python-jose 사용

from pantry.backend.core.config import settings
from pantry.backend.core.errors import ErrorKind, Failure

ACCESS_TYP = "access"
REFRESH_SECRET_BYTES = 48


@dataclass(frozen=True)
class AccessClaims:
    user_id: int
    email: str
    role: str


# ---- 공통 ----
def utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Aware UTC view of a stored timestamp.
    SQLite drops the offset of timestamptz columns on read; those values are UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _make_jwt(payload: Dict[str, Any], exp: datetime) -> str:
    to_encode = payload.copy()
    to_encode["iat"] = int(utcnow().timestamp())
    to_encode["exp"] = int(as_utc(exp).timestamp())
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def sha256_hex(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


def access_token_ttl_seconds() -> int:
    return settings.access_token_expire_minutes * 60


# ---- Access Token ----
def create_access_token(user, expires_delta: timedelta | None = None) -> str:
    """
    Sign a short-lived assertion of {sub, email, role} for the user.
    """
    exp = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "typ": ACCESS_TYP,
    }
    return _make_jwt(payload, exp)


def verify_access_token(token: str) -> AccessClaims | Failure:
    invalid = Failure(ErrorKind.INVALID_TOKEN, "Invalid token")
    try:
        # jose.jwt.decode는 서명 불일치·만료 시 JWTError(ExpiredSignatureError 포함)를 던짐
        payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return invalid
    if payload.get("typ") != ACCESS_TYP:
        return invalid
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        return invalid
    return AccessClaims(
        user_id=user_id,
        email=str(payload.get("email") or ""),
        role=str(payload.get("role") or "user"),
    )


# ---- Refresh Token (회전 전제, opaque secret) ----
def new_refresh_secret() -> str:
    return secrets.token_urlsafe(REFRESH_SECRET_BYTES)


def refresh_expires_at(now: datetime | None = None) -> datetime:
    return as_utc(now or utcnow()) + timedelta(days=settings.refresh_token_expire_days)
