from __future__ import annotations

import pytest

from pantry.backend.core.config import settings
from pantry.backend.models.user import User
from pantry.backend.services import tier_policy
from pantry.backend.services.tier_policy import (
    FREE_TIER_DEFAULTS,
    UNLIMITED,
    LimitKind,
    Plan,
    ResolvedLimit,
    RollingKind,
    apply_plan,
    detect_plan,
    resolve,
    resolve_rolling,
)


def _user(**fields) -> User:
    return User(email="t@example.com", name="T", password_hash="x", **fields)


def test_unset_limits_fall_back_to_free_tier():
    user = _user()

    for kind in (LimitKind.CACHE_RECIPE_SUGGESTIONS, LimitKind.CHAT_MESSAGES, LimitKind.CACHE_RECIPE_SEARCH_VIA_CHAT):
        assert resolve(user, kind).limit == FREE_TIER_DEFAULTS[kind]
    assert resolve(user, LimitKind.GROCERIES_TOTAL, live_count=0).limit == 20
    assert resolve(user, LimitKind.GROCERIES_WITH_EXPIRY, live_count=0).limit == 10
    assert resolve_rolling(user, RollingKind.RECIPE).limit == 6


def test_row_values_override_defaults():
    user = _user(max_chat_messages=16, chat_messages_used=3, quota_llm_tokens=500, llm_tokens_used=40)

    chat = resolve(user, LimitKind.CHAT_MESSAGES)
    llm = resolve_rolling(user, RollingKind.LLM)

    assert (chat.limit, chat.used) == (16, 3)
    assert (llm.limit, llm.used) == (500, 40)


def test_inventory_kinds_require_live_count():
    with pytest.raises(ValueError):
        resolve(_user(), LimitKind.GROCERIES_TOTAL)


def test_string_kinds_are_coerced_and_unknown_ones_rejected():
    assert resolve(_user(), "chat_messages").kind == "chat_messages"
    with pytest.raises(ValueError):
        resolve(_user(), "pantry_size")


def test_bypass_resolves_everything_as_unlimited(monkeypatch):
    monkeypatch.setattr(settings, "auth_bypass", True)

    chat = resolve(None, LimitKind.CHAT_MESSAGES)
    groceries = resolve(None, LimitKind.GROCERIES_TOTAL)
    llm = resolve_rolling(None, RollingKind.LLM)

    for r in (chat, groceries, llm):
        assert r.limit == UNLIMITED
        assert r.used == 0
        assert r.allowed


@pytest.mark.parametrize(
    ("limit", "used", "allowed", "remaining", "percent"),
    [
        (10, 0, True, 10, 0),
        (10, 9, True, 1, 90),
        (10, 10, False, 0, 100),
        (10, 14, False, 0, 100),
        (0, 0, False, 0, 0),
        (UNLIMITED, 10_000, True, None, 0),
    ],
)
def test_resolved_limit_arithmetic(limit, used, allowed, remaining, percent):
    r = ResolvedLimit(kind="chat_messages", limit=limit, used=used)

    assert r.allowed is allowed
    assert r.remaining == remaining
    assert r.percent == percent


def test_apply_plan_writes_preset_and_keeps_counters():
    user = _user(chat_messages_used=3, llm_tokens_used=100)

    apply_plan(user, Plan.PRO)

    assert user.max_groceries_total == UNLIMITED
    assert user.max_cache_recipe_suggestions == UNLIMITED
    assert user.quota_recipe_calls == 48
    assert user.has_priority_support is True
    assert user.chat_messages_used == 3
    assert user.llm_tokens_used == 100


@pytest.mark.parametrize("plan", list(Plan))
def test_detect_plan_inverts_apply_plan(plan):
    assert detect_plan(apply_plan(_user(), plan)) is plan


def test_detect_plan_defaults_to_free():
    assert detect_plan(_user()) is Plan.FREE


def test_presets_grow_with_tier():
    free, basic, pro = (tier_policy.TIER_PRESETS[p] for p in (Plan.FREE, Plan.BASIC, Plan.PRO))

    assert free.llm_tokens < basic.llm_tokens < pro.llm_tokens
    assert free.recipe_calls < basic.recipe_calls < pro.recipe_calls
    assert free.chat_messages < basic.chat_messages < pro.chat_messages
