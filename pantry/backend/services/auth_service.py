from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fastapi import Request
from sqlalchemy import update
from sqlmodel import Session, select

from pantry.backend.core.errors import ErrorKind, Failure
from pantry.backend.core.tokens import (
    access_token_ttl_seconds,
    create_access_token,
    new_refresh_secret,
    refresh_expires_at,
    as_utc,
    sha256_hex,
    utcnow,
)
from pantry.backend.models.refresh_token import RefreshToken
from pantry.backend.models.user import User

log = logging.getLogger(__name__)

INVALID_REFRESH = Failure(ErrorKind.INVALID_REFRESH, "Invalid refresh token")


@dataclass(frozen=True)
class RequestContext:
    ip: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request) -> "RequestContext":
        return cls(
            ip=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
        )


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    refresh_id: int
    token_type: str = "bearer"

    def as_response(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": self.token_type,
            "expires_in": access_token_ttl_seconds(),
        }


def _revoke_if_unrevoked(db: Session, token_id: int, now: datetime, *, require_unexpired: bool) -> bool:
    """Conditional revoke; True only for the one caller whose UPDATE hit the row."""
    stmt = update(RefreshToken).where(
        RefreshToken.id == token_id,
        RefreshToken.revoked_at.is_(None),
    )
    if require_unexpired:
        stmt = stmt.where(RefreshToken.expires_at > now)
    result = db.exec(stmt.values(revoked_at=now).execution_options(synchronize_session=False))
    return result.rowcount == 1


def issue_token_pair(
    db: Session,
    user: User,
    ctx: RequestContext | None = None,
    now: Optional[datetime] = None,
) -> TokenPair:
    """
    로그인/회전 성공 시 호출: AT 발급 + RT 생성/저장 (원문은 저장하지 않고 해시만 저장)
    """
    ctx = ctx or RequestContext()
    now = now or utcnow()
    secret = new_refresh_secret()
    row = RefreshToken(
        user_id=user.id,
        token_hash=sha256_hex(secret),
        created_at=now,
        expires_at=refresh_expires_at(now),
        ip=ctx.ip,
        user_agent=ctx.user_agent,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return TokenPair(
        access_token=create_access_token(user),
        refresh_token=secret,
        refresh_id=row.id,
    )


def rotate_refresh_token(
    db: Session,
    presented: str,
    ctx: RequestContext | None = None,
    now: Optional[datetime] = None,
) -> TokenPair | Failure:
    """
    Exchange a refresh secret for a new pair. The presented secret is
    single-use: a second presentation, or one of an already revoked chain
    member, always fails.
    """
    if not presented:
        return INVALID_REFRESH
    now = now or utcnow()
    token_hash = sha256_hex(presented)

    row = db.exec(
        select(RefreshToken).where(
            RefreshToken.token_hash == token_hash,
            RefreshToken.revoked_at.is_(None),
        )
    ).first()

    if row is None:
        replayed = db.exec(
            select(RefreshToken.id).where(
                RefreshToken.token_hash == token_hash,
                RefreshToken.replaced_by.is_not(None),
            )
        ).first()
        if replayed is not None:
            log.warning("rotated refresh token presented again (token id=%s)", replayed)
        return INVALID_REFRESH

    if as_utc(row.expires_at) <= now:
        # lazy expiry detection
        _revoke_if_unrevoked(db, row.id, now, require_unexpired=False)
        db.commit()
        log.info("expired refresh token presented (token id=%s)", row.id)
        return INVALID_REFRESH

    if not _revoke_if_unrevoked(db, row.id, now, require_unexpired=True):
        db.rollback()
        log.warning("refresh token lost a concurrent rotation (token id=%s)", row.id)
        return INVALID_REFRESH

    user = db.get(User, row.user_id)
    if user is None:
        db.commit()
        log.error("refresh token %s belongs to missing user_id=%s", row.id, row.user_id)
        return Failure(ErrorKind.USER_NOT_FOUND, "Account not found")

    old_id = row.id
    pair = issue_token_pair(db, user, ctx, now)  # commits the revoke together with the new row
    db.exec(
        update(RefreshToken)
        .where(RefreshToken.id == old_id)
        .values(replaced_by=pair.refresh_id)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    log.info("refresh token rotated user_id=%s old=%s new=%s", user.id, old_id, pair.refresh_id)
    return pair


def revoke_refresh_token(db: Session, presented: str | None, now: Optional[datetime] = None) -> None:
    """Logout. Unknown, expired or already revoked secrets are a silent no-op."""
    if not presented:
        return None
    now = now or utcnow()
    db.exec(
        update(RefreshToken)
        .where(
            RefreshToken.token_hash == sha256_hex(presented),
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return None


def revoke_all_for_user(db: Session, user_id: int, now: Optional[datetime] = None) -> int:
    """현재 사용자 모든 RT 무효화. 무효화된 개수를 반환."""
    now = now or utcnow()
    result = db.exec(
        update(RefreshToken)
        .where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        )
        .values(revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount
