from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from pantry.backend.core.config import settings
from pantry.backend.core.errors import NOT_AUTHENTICATED, Failure
from pantry.backend.core.tokens import verify_access_token
from pantry.backend.models.user import User
from pantry.backend.services.credentials import get_user
from pantry.backend.services.demo_identity import resolve_demo_user
from pantry.db.session import get_session

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthIdentity:
    user_id: int
    email: str
    role: str
    authenticated: bool = True

    @classmethod
    def of(cls, user: User) -> "AuthIdentity":
        return cls(user_id=user.id, email=user.email, role=user.role)


@dataclass(frozen=True)
class OptionalAuth:
    authenticated: bool
    identity: Optional[AuthIdentity] = None


ANONYMOUS = OptionalAuth(authenticated=False)


def _not_authenticated() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=NOT_AUTHENTICATED,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _identity_from_token(db: Session, creds: Optional[HTTPAuthorizationCredentials]) -> Optional[AuthIdentity]:
    if creds is None or creds.scheme.lower() != "bearer" or not creds.credentials:
        return None
    claims = verify_access_token(creds.credentials)
    if isinstance(claims, Failure):
        return None
    user = get_user(db, claims.user_id)
    if user is None:
        return None
    return AuthIdentity.of(user)


def get_current_user(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_session),
) -> AuthIdentity:
    """Strict auth dependency; raises 401 when no/invalid token."""
    if settings.auth_bypass:
        return AuthIdentity.of(resolve_demo_user(request.app, db))

    identity = _identity_from_token(db, creds)
    if identity is None:
        raise _not_authenticated()
    return identity


def get_current_user_optional(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_session),
) -> OptionalAuth:
    """Lenient auth dependency; anonymous callers get ANONYMOUS instead of a 401."""
    if settings.auth_bypass:
        return OptionalAuth(authenticated=True, identity=AuthIdentity.of(resolve_demo_user(request.app, db)))

    identity = _identity_from_token(db, creds)
    if identity is None:
        return ANONYMOUS
    return OptionalAuth(authenticated=True, identity=identity)
