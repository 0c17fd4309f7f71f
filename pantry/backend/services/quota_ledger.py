# pantry/backend/services/quota_ledger.py
"""
Usage metering on two cadences.

Resets are lazy: they only happen when a ledger call touches the user, and
an account idle for several intervals gets exactly one reset anchored to
the moment of access. Every check-then-mutate is one conditional UPDATE;
"zero rows affected" is the denial path, so concurrent requests for the
same user cannot push a counter past its ceiling.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import or_, update
from sqlmodel import Session

from pantry.backend.core.config import settings
from pantry.backend.core.errors import (
    ErrorKind,
    Failure,
    monthly_limit_exceeded,
    quota_exceeded,
)
from pantry.backend.core.tokens import as_utc, utcnow
from pantry.backend.models.user import User
from pantry.backend.services import tier_policy
from pantry.backend.services.inventory import count_groceries
from pantry.backend.services.tier_policy import (
    INVENTORY_KINDS,
    UNLIMITED,
    LimitKind,
    RollingKind,
)

log = logging.getLogger(__name__)

USER_NOT_FOUND = Failure(ErrorKind.USER_NOT_FOUND, "Account not found")


# ──────────────────────────────────────────────────────────────────────────────
# 내부 유틸

def first_of_next_month(now: datetime) -> datetime:
    now = as_utc(now)
    if now.month == 12:
        return datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)


def _rolling_counter(kind: RollingKind):
    if kind is RollingKind.LLM:
        return User.llm_tokens_used
    if kind is RollingKind.RECIPE:
        return User.recipe_calls_used
    raise ValueError(f"unknown rolling kind: {kind!r}")


def _monthly_counter(kind: LimitKind):
    if kind is LimitKind.CACHE_RECIPE_SUGGESTIONS:
        return User.cache_recipe_suggestions_used
    if kind is LimitKind.CHAT_MESSAGES:
        return User.chat_messages_used
    if kind is LimitKind.CACHE_RECIPE_SEARCH_VIA_CHAT:
        return User.cache_recipe_search_via_chat_used
    raise ValueError(f"no monthly counter for {kind!r}")


def _execute_update(db: Session, stmt) -> int:
    result = db.exec(stmt.execution_options(synchronize_session=False))
    db.commit()
    return result.rowcount


def apply_lazy_resets(db: Session, user: User, now: Optional[datetime] = None) -> User:
    """Zero whichever counter families are past their reset time, then reload the row."""
    now = now or utcnow()
    touched = 0

    if user.quota_reset_at is None or as_utc(user.quota_reset_at) <= now:
        touched += _execute_update(
            db,
            update(User)
            .where(
                User.id == user.id,
                or_(User.quota_reset_at.is_(None), User.quota_reset_at <= now),
            )
            .values(
                llm_tokens_used=0,
                recipe_calls_used=0,
                quota_reset_at=now + timedelta(hours=settings.quota_reset_interval_hours),
            ),
        )

    if user.monthly_limit_reset_at is None or as_utc(user.monthly_limit_reset_at) <= now:
        touched += _execute_update(
            db,
            update(User)
            .where(
                User.id == user.id,
                or_(User.monthly_limit_reset_at.is_(None), User.monthly_limit_reset_at <= now),
            )
            .values(
                cache_recipe_suggestions_used=0,
                chat_messages_used=0,
                cache_recipe_search_via_chat_used=0,
                monthly_limit_reset_at=first_of_next_month(now),
            ),
        )

    if touched:
        log.debug("lazy quota reset applied user_id=%s", user.id)
    db.refresh(user)
    return user


def _load(db: Session, user_id: int, now: datetime) -> Optional[User]:
    user = db.get(User, user_id)
    if user is None:
        return None
    return apply_lazy_resets(db, user, now)


# ──────────────────────────────────────────────────────────────────────────────
# 공개 API

def consume_rolling(
    db: Session,
    user_id: int,
    kind: RollingKind,
    amount: int,
    now: Optional[datetime] = None,
) -> Failure | None:
    """Add ``amount`` to a rolling counter, or deny leaving the row unchanged."""
    if settings.auth_bypass:
        return None
    kind = RollingKind(kind)
    if amount < 0:
        return Failure(ErrorKind.VALIDATION_ERROR, "amount must not be negative")

    now = now or utcnow()
    user = _load(db, user_id, now)
    if user is None:
        log.error("quota consume for missing user_id=%s", user_id)
        return USER_NOT_FOUND

    limit = tier_policy.resolve_rolling(user, kind).limit
    counter = _rolling_counter(kind)
    stmt = update(User).where(User.id == user_id)
    if limit != UNLIMITED:
        stmt = stmt.where(counter + amount <= limit)
    rows = _execute_update(db, stmt.values({counter: counter + amount}))
    db.refresh(user)

    if rows == 0:
        log.info("rolling quota denied user_id=%s kind=%s limit=%s", user_id, kind.value, limit)
        return quota_exceeded(kind.value, limit)
    return None


def check_and_consume_monthly(
    db: Session,
    user_id: int,
    kind: LimitKind,
    live_count: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Failure | None:
    """
    Gate one unit of a monthly / inventory limit.

    Counter kinds are incremented by exactly 1 on success. Inventory kinds
    have no counter: the live grocery count (counted here when not passed
    in) is only compared with the ceiling.
    """
    if settings.auth_bypass:
        return None
    kind = LimitKind(kind)

    now = now or utcnow()
    user = _load(db, user_id, now)
    if user is None:
        log.error("quota check for missing user_id=%s", user_id)
        return USER_NOT_FOUND

    if kind in INVENTORY_KINDS:
        if live_count is None:
            live_count = count_groceries(db, user_id, kind)
        resolved = tier_policy.resolve(user, kind, live_count)
        if not resolved.allowed:
            log.info("inventory limit denied user_id=%s kind=%s limit=%s", user_id, kind.value, resolved.limit)
            return monthly_limit_exceeded(kind.value, resolved.limit)
        return None

    limit = tier_policy.resolve(user, kind).limit
    counter = _monthly_counter(kind)
    stmt = update(User).where(User.id == user_id)
    if limit != UNLIMITED:
        stmt = stmt.where(counter < limit)
    rows = _execute_update(db, stmt.values({counter: counter + 1}))
    db.refresh(user)

    if rows == 0:
        log.info("monthly limit denied user_id=%s kind=%s limit=%s", user_id, kind.value, limit)
        return monthly_limit_exceeded(kind.value, limit)
    return None


def usage_snapshot(db: Session, user: User, now: Optional[datetime] = None) -> dict:
    """Resolved limits plus live usage for every metered kind (GET /user/limits)."""
    if not settings.auth_bypass:
        user = apply_lazy_resets(db, user, now)

    rolling = {
        kind.value: tier_policy.resolve_rolling(user, kind).as_dict()
        for kind in RollingKind
    }
    monthly = {}
    inventory = {}
    for kind in LimitKind:
        if kind in INVENTORY_KINDS:
            count = 0 if settings.auth_bypass else count_groceries(db, user.id, kind)
            inventory[kind.value] = tier_policy.resolve(user, kind, count).as_dict()
        else:
            monthly[kind.value] = tier_policy.resolve(user, kind).as_dict()

    return {
        "plan": tier_policy.detect_plan(user).value,
        "rolling": rolling,
        "monthly": monthly,
        "inventory": inventory,
        "quota_reset_at": as_utc(user.quota_reset_at).isoformat() if user.quota_reset_at else None,
        "monthly_limit_reset_at": (
            as_utc(user.monthly_limit_reset_at).isoformat() if user.monthly_limit_reset_at else None
        ),
        "notifications_enabled": user.notifications_enabled,
        "has_priority_support": user.has_priority_support,
    }
