"""
Password hashing via argon2-cffi.
"""
from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher()

# Verified against when the email is unknown so both login paths cost one argon2 check.
_DUMMY_HASH = ph.hash("smart-pantry-dummy-password")


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, password_hash: str | None) -> bool:
    try:
        return ph.verify(password_hash or _DUMMY_HASH, password) and password_hash is not None
    except (VerificationError, InvalidHashError):
        return False
