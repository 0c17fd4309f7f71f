from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlmodel import Session

from pantry.backend.core.errors import Failure, to_http_exception
from pantry.backend.dependencies.auth import (
    AuthIdentity,
    OptionalAuth,
    get_current_user,
    get_current_user_optional,
)
from pantry.backend.schemas.auth import (
    LoginRequest,
    LogoutRequest,
    PublicUser,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
)
from pantry.backend.services import auth_service, credentials
from pantry.backend.services.auth_service import RequestContext
from pantry.db.session import get_session

log = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])


@auth_router.post("/register", response_model=PublicUser, status_code=status.HTTP_201_CREATED)
def register(body: RegisterRequest, db: Session = Depends(get_session)):
    user = credentials.register_user(db, email=body.email, password=body.password, name=body.name)
    if isinstance(user, Failure):
        raise to_http_exception(user)
    return credentials.public_user(user)


@auth_router.post("/login", response_model=TokenPairResponse)
def login(body: LoginRequest, request: Request, db: Session = Depends(get_session)):
    user = credentials.authenticate(db, email=body.email, password=body.password)
    if isinstance(user, Failure):
        raise to_http_exception(user)

    pair = auth_service.issue_token_pair(db, user, RequestContext.from_request(request))
    log.info("login user_id=%s", user.id)
    return pair.as_response()


@auth_router.post("/refresh", response_model=TokenPairResponse)
def refresh(body: RefreshRequest, request: Request, db: Session = Depends(get_session)):
    """
    Refresh token rotation.
    - the presented secret is revoked, a new pair is issued
    - any failure means the session is gone; the client must log in again
    """
    pair = auth_service.rotate_refresh_token(db, body.refresh_token, RequestContext.from_request(request))
    if isinstance(pair, Failure):
        raise to_http_exception(pair)
    return pair.as_response()


@auth_router.post("/logout")
def logout(body: Optional[LogoutRequest] = None, db: Session = Depends(get_session)):
    auth_service.revoke_refresh_token(db, body.refresh_token if body else None)
    return {"success": True}


@auth_router.post("/logout-all")
def logout_all(
    identity: AuthIdentity = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    revoked = auth_service.revoke_all_for_user(db, identity.user_id)
    log.info("logout-all user_id=%s revoked=%s", identity.user_id, revoked)
    return {"success": True, "revoked": revoked}


@auth_router.get("/session")
def session_state(auth: OptionalAuth = Depends(get_current_user_optional)):
    """Anonymous callers get {"authenticated": false} instead of a 401."""
    if not auth.authenticated or auth.identity is None:
        return {"authenticated": False, "user": None}
    return {
        "authenticated": True,
        "user": {
            "id": auth.identity.user_id,
            "email": auth.identity.email,
            "role": auth.identity.role,
        },
    }
