from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from pantry.backend.core.errors import ErrorKind, Failure
from pantry.backend.core.security import hash_password, verify_password
from pantry.backend.core.tokens import as_utc
from pantry.backend.models.user import User

log = logging.getLogger(__name__)

INVALID_CREDENTIALS = Failure(ErrorKind.INVALID_CREDENTIALS, "Invalid credentials")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user(db: Session, user_id: int) -> Optional[User]:
    return db.get(User, user_id)


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.exec(select(User).where(User.email == normalize_email(email))).first()


def public_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "created_at": as_utc(user.created_at).isoformat(),
    }


def register_user(db: Session, *, email: str, password: str, name: str) -> User | Failure:
    email = normalize_email(email)
    name = (name or "").strip()
    if not email or "@" not in email or not password or not name:
        return Failure(ErrorKind.VALIDATION_ERROR, "Missing required fields")

    if get_user_by_email(db, email) is not None:
        return Failure(ErrorKind.CONFLICT, "User already exists")

    user = User(email=email, name=name, password_hash=hash_password(password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # 동시 가입 경쟁: unique(email) 위반
        db.rollback()
        return Failure(ErrorKind.CONFLICT, "User already exists")
    db.refresh(user)
    log.info("registered user id=%s", user.id)
    return user


def authenticate(db: Session, *, email: str, password: str) -> User | Failure:
    user = get_user_by_email(db, email)
    if not verify_password(password, user.password_hash if user else None):
        return INVALID_CREDENTIALS
    return user


def change_password(
    db: Session, user: User, *, current_password: str, new_password: str
) -> Failure | None:
    if not new_password:
        return Failure(ErrorKind.VALIDATION_ERROR, "Missing required fields")
    if not verify_password(current_password, user.password_hash):
        return INVALID_CREDENTIALS
    user.password_hash = hash_password(new_password)
    db.add(user)
    db.commit()
    db.refresh(user)
    return None
