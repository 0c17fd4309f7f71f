from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy import update

from pantry.backend.core.config import settings
from pantry.backend.core.errors import ErrorKind
from pantry.backend.core.tokens import as_utc
from pantry.backend.models.grocery import Grocery
from pantry.backend.models.user import User
from pantry.backend.services import quota_ledger
from pantry.backend.services.quota_ledger import (
    check_and_consume_monthly,
    consume_rolling,
    first_of_next_month,
    usage_snapshot,
)
from pantry.backend.services.tier_policy import LimitKind, RollingKind

from conftest import NOW


def _reload(db, user: User) -> User:
    db.expire_all()
    return db.get(User, user.id)


def test_rolling_consume_over_limit_leaves_counter_unchanged(db, make_user):
    user = make_user(quota_llm_tokens=100, llm_tokens_used=95)

    failure = consume_rolling(db, user.id, RollingKind.LLM, 10, now=NOW)

    assert failure is not None
    assert failure.kind is ErrorKind.QUOTA_EXCEEDED
    assert failure.limit_kind == "llm"
    assert failure.limit == 100
    assert failure.status_code == 402
    assert _reload(db, user).llm_tokens_used == 95


def test_rolling_consume_within_limit_increments(db, make_user):
    user = make_user(quota_llm_tokens=100, llm_tokens_used=95)

    assert consume_rolling(db, user.id, RollingKind.LLM, 5, now=NOW) is None
    assert _reload(db, user).llm_tokens_used == 100


def test_rolling_consume_never_breaches_ceiling(db, make_user):
    user = make_user(quota_recipe_calls=10)

    outcomes = []
    for amount in (3, 3, 3, 3, 1, 1, 2):
        outcomes.append(consume_rolling(db, user.id, RollingKind.RECIPE, amount, now=NOW) is None)
        assert _reload(db, user).recipe_calls_used <= 10

    assert outcomes == [True, True, True, False, True, False, False]
    assert _reload(db, user).recipe_calls_used == 10


def test_rolling_uses_free_default_when_limit_unset(db, make_user):
    user = make_user(recipe_calls_used=6)

    failure = consume_rolling(db, user.id, RollingKind.RECIPE, 1, now=NOW)

    assert failure.kind is ErrorKind.QUOTA_EXCEEDED
    assert failure.limit == 6


def test_unlimited_rolling_quota_never_fails(db, make_user):
    user = make_user(quota_llm_tokens=-1, llm_tokens_used=10_000_000)

    assert consume_rolling(db, user.id, RollingKind.LLM, 5_000_000, now=NOW) is None
    assert _reload(db, user).llm_tokens_used == 15_000_000


def test_concurrent_increment_between_check_and_write_is_not_lost(db, make_user, monkeypatch):
    user = make_user(quota_llm_tokens=100, llm_tokens_used=50)
    real_load = quota_ledger._load

    def load_then_interleave(session, user_id, now):
        loaded = real_load(session, user_id, now)
        # another request for the same user lands before our write
        session.exec(update(User).where(User.id == user_id).values(llm_tokens_used=95))
        session.commit()
        return loaded

    monkeypatch.setattr(quota_ledger, "_load", load_then_interleave)

    failure = consume_rolling(db, user.id, RollingKind.LLM, 10, now=NOW)

    assert failure.kind is ErrorKind.QUOTA_EXCEEDED
    assert _reload(db, user).llm_tokens_used == 95


def test_negative_amount_is_rejected(db, make_user):
    user = make_user()

    failure = consume_rolling(db, user.id, RollingKind.LLM, -1, now=NOW)

    assert failure.kind is ErrorKind.VALIDATION_ERROR


def test_missing_user_is_reported(db):
    failure = consume_rolling(db, 9999, RollingKind.LLM, 1, now=NOW)

    assert failure.kind is ErrorKind.USER_NOT_FOUND
    assert "9999" not in failure.message


def test_no_reset_before_quota_reset_at(db, make_user):
    reset_at = NOW + timedelta(minutes=1)
    user = make_user(quota_llm_tokens=100, llm_tokens_used=40, recipe_calls_used=2, quota_reset_at=reset_at)

    consume_rolling(db, user.id, RollingKind.LLM, 0, now=NOW)

    user = _reload(db, user)
    assert user.llm_tokens_used == 40
    assert user.recipe_calls_used == 2
    assert as_utc(user.quota_reset_at) == reset_at


def test_single_reset_after_long_idle_anchored_to_call_time(db, make_user):
    user = make_user(
        quota_llm_tokens=100,
        llm_tokens_used=90,
        recipe_calls_used=5,
        quota_reset_at=NOW - timedelta(days=30),
    )

    assert consume_rolling(db, user.id, RollingKind.LLM, 7, now=NOW) is None

    user = _reload(db, user)
    assert user.llm_tokens_used == 7
    assert user.recipe_calls_used == 0
    assert as_utc(user.quota_reset_at) == NOW + timedelta(hours=settings.quota_reset_interval_hours)


def test_reset_happens_once_per_interval(db, make_user):
    user = make_user(quota_llm_tokens=100, quota_reset_at=None)

    consume_rolling(db, user.id, RollingKind.LLM, 10, now=NOW)
    consume_rolling(db, user.id, RollingKind.LLM, 10, now=NOW + timedelta(hours=1))

    user = _reload(db, user)
    assert user.llm_tokens_used == 20
    assert as_utc(user.quota_reset_at) == NOW + timedelta(hours=settings.quota_reset_interval_hours)


def test_monthly_reset_moves_to_first_of_next_month(db, make_user):
    user = make_user(
        chat_messages_used=4,
        cache_recipe_suggestions_used=12,
        cache_recipe_search_via_chat_used=3,
        monthly_limit_reset_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )

    assert check_and_consume_monthly(db, user.id, LimitKind.CHAT_MESSAGES, now=NOW) is None

    user = _reload(db, user)
    assert user.chat_messages_used == 1
    assert user.cache_recipe_suggestions_used == 0
    assert user.cache_recipe_search_via_chat_used == 0
    assert as_utc(user.monthly_limit_reset_at) == datetime(2026, 4, 1, tzinfo=timezone.utc)


def test_both_resets_can_fire_on_one_call(db, make_user):
    user = make_user(
        llm_tokens_used=50,
        chat_messages_used=4,
        quota_reset_at=None,
        monthly_limit_reset_at=None,
    )

    consume_rolling(db, user.id, RollingKind.RECIPE, 1, now=NOW)

    user = _reload(db, user)
    assert user.llm_tokens_used == 0
    assert user.chat_messages_used == 0
    assert user.recipe_calls_used == 1
    assert as_utc(user.monthly_limit_reset_at) == datetime(2026, 4, 1, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc), datetime(2026, 4, 1, tzinfo=timezone.utc)),
        (datetime(2026, 12, 31, 23, 59, tzinfo=timezone.utc), datetime(2027, 1, 1, tzinfo=timezone.utc)),
        (datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc), datetime(2026, 2, 1, tzinfo=timezone.utc)),
    ],
)
def test_first_of_next_month(now, expected):
    assert first_of_next_month(now) == expected


def test_monthly_limit_reached_keeps_counter(db, make_user):
    user = make_user(max_chat_messages=4, chat_messages_used=4)

    failure = check_and_consume_monthly(db, user.id, LimitKind.CHAT_MESSAGES, now=NOW)

    assert failure.kind is ErrorKind.MONTHLY_LIMIT_EXCEEDED
    assert failure.limit_kind == "chat_messages"
    assert failure.limit == 4
    assert _reload(db, user).chat_messages_used == 4


def test_monthly_consume_increments_by_one(db, make_user):
    user = make_user(max_cache_recipe_suggestions=12, cache_recipe_suggestions_used=3)

    assert check_and_consume_monthly(db, user.id, LimitKind.CACHE_RECIPE_SUGGESTIONS, now=NOW) is None
    assert _reload(db, user).cache_recipe_suggestions_used == 4


def test_unlimited_monthly_limit_never_fails(db, make_user):
    user = make_user(max_cache_recipe_search_via_chat=-1, cache_recipe_search_via_chat_used=999)

    assert check_and_consume_monthly(db, user.id, LimitKind.CACHE_RECIPE_SEARCH_VIA_CHAT, now=NOW) is None
    assert _reload(db, user).cache_recipe_search_via_chat_used == 1000


def test_inventory_limit_counts_live_groceries(db, make_user):
    user = make_user(max_groceries_total=2, max_groceries_with_expiry=1)
    db.add(Grocery(user_id=user.id, name="milk", expiry_date=date(2026, 3, 20)))
    db.add(Grocery(user_id=user.id, name="rice"))
    db.commit()

    total = check_and_consume_monthly(db, user.id, LimitKind.GROCERIES_TOTAL, now=NOW)
    expiry = check_and_consume_monthly(db, user.id, LimitKind.GROCERIES_WITH_EXPIRY, now=NOW)

    assert total.kind is ErrorKind.MONTHLY_LIMIT_EXCEEDED
    assert total.limit == 2
    assert expiry.limit_kind == "groceries_with_expiry"


def test_inventory_limit_accepts_supplied_count(db, make_user):
    user = make_user()

    assert check_and_consume_monthly(db, user.id, LimitKind.GROCERIES_TOTAL, live_count=19, now=NOW) is None
    failure = check_and_consume_monthly(db, user.id, LimitKind.GROCERIES_TOTAL, live_count=20, now=NOW)
    assert failure.limit == 20


def test_bypass_mode_is_a_no_op(db, make_user, monkeypatch):
    user = make_user(quota_llm_tokens=1, llm_tokens_used=1, max_chat_messages=0)
    monkeypatch.setattr(settings, "auth_bypass", True)

    assert consume_rolling(db, user.id, RollingKind.LLM, 50, now=NOW) is None
    assert check_and_consume_monthly(db, user.id, LimitKind.CHAT_MESSAGES, now=NOW) is None
    assert consume_rolling(db, 424242, RollingKind.LLM, 1, now=NOW) is None

    user = _reload(db, user)
    assert user.llm_tokens_used == 1
    assert user.chat_messages_used == 0


def test_usage_snapshot_reports_every_kind(db, make_user):
    user = make_user(max_chat_messages=16, chat_messages_used=4, max_cache_recipe_suggestions=30)
    db.add(Grocery(user_id=user.id, name="eggs", expiry_date=date(2026, 3, 14)))
    db.commit()

    snap = usage_snapshot(db, user, now=NOW)

    assert snap["plan"] == "basic"
    assert set(snap["rolling"]) == {"llm", "recipe"}
    assert set(snap["monthly"]) == {
        "cache_recipe_suggestions",
        "chat_messages",
        "cache_recipe_search_via_chat",
    }
    assert snap["monthly"]["chat_messages"] == {
        "used": 4,
        "limit": 16,
        "unlimited": False,
        "remaining": 12,
        "percent": 25,
    }
    assert snap["inventory"]["groceries_total"]["used"] == 1
    assert snap["inventory"]["groceries_with_expiry"]["limit"] == 10
