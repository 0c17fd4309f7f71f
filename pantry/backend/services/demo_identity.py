import logging
import secrets
import threading

from fastapi import FastAPI
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from pantry.backend.core.config import settings
from pantry.backend.core.security import hash_password
from pantry.backend.models.user import User
from pantry.db import session as db_session

log = logging.getLogger(__name__)

_lock = threading.Lock()


def ensure_demo_user(db: Session) -> User:
    """
    Upsert the deterministic demo user and return it.
    A concurrent insert of the same email is resolved by re-reading.
    """
    email = settings.demo_user_email.strip().lower()

    existing = db.exec(select(User).where(User.email == email)).first()
    if existing:
        return existing

    # 로그인 불가능한 임의 비밀번호
    user = User(
        name=settings.demo_user_name,
        email=email,
        password_hash=hash_password(secrets.token_urlsafe(32)),
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return db.exec(select(User).where(User.email == email)).one()
    db.refresh(user)
    log.info("demo user created id=%s", user.id)
    return user


def init_demo_identity(app: FastAPI) -> None:
    """Startup step for bypass deployments: create the demo user once."""
    with db_session.session_scope() as db:
        app.state.demo_user_id = ensure_demo_user(db).id
    log.info("auth bypass enabled, demo user id=%s", app.state.demo_user_id)


def resolve_demo_user(app: FastAPI, db: Session) -> User:
    """
    Demo user for the current request. Normally set at startup; if not
    (or the row is gone) a single lock-guarded lookup recreates it.
    """
    demo_id = getattr(app.state, "demo_user_id", None)
    user = db.get(User, demo_id) if demo_id is not None else None
    if user is not None:
        return user
    with _lock:
        user = ensure_demo_user(db)
        app.state.demo_user_id = user.id
    return user
