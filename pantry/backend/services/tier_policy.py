# pantry/backend/services/tier_policy.py
"""
Tier ceilings resolved from the user row.

A NULL limit column falls back to the free-tier default; -1 always means
"no ceiling". Tiers are pre-provisioned values on the row (see apply_plan),
nothing here talks to billing.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from pantry.backend.core.config import settings
from pantry.backend.models.user import User

UNLIMITED = -1

__all__ = [
    "UNLIMITED",
    "LimitKind",
    "RollingKind",
    "Plan",
    "TierLimits",
    "TIER_PRESETS",
    "FREE_TIER_DEFAULTS",
    "FREE_ROLLING_DEFAULTS",
    "INVENTORY_KINDS",
    "ResolvedLimit",
    "resolve",
    "resolve_rolling",
    "apply_plan",
    "detect_plan",
]


class LimitKind(str, Enum):
    GROCERIES_TOTAL = "groceries_total"
    GROCERIES_WITH_EXPIRY = "groceries_with_expiry"
    CACHE_RECIPE_SUGGESTIONS = "cache_recipe_suggestions"
    CHAT_MESSAGES = "chat_messages"
    CACHE_RECIPE_SEARCH_VIA_CHAT = "cache_recipe_search_via_chat"


class RollingKind(str, Enum):
    LLM = "llm"
    RECIPE = "recipe"


class Plan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PRO = "pro"


INVENTORY_KINDS = frozenset({LimitKind.GROCERIES_TOTAL, LimitKind.GROCERIES_WITH_EXPIRY})

FREE_TIER_DEFAULTS: Dict[LimitKind, int] = {
    LimitKind.GROCERIES_TOTAL: 20,
    LimitKind.GROCERIES_WITH_EXPIRY: 10,
    LimitKind.CACHE_RECIPE_SUGGESTIONS: 12,
    LimitKind.CHAT_MESSAGES: 4,
    LimitKind.CACHE_RECIPE_SEARCH_VIA_CHAT: 4,
}

FREE_ROLLING_DEFAULTS: Dict[RollingKind, int] = {
    RollingKind.LLM: 20_000,
    RollingKind.RECIPE: 6,
}


@dataclass(frozen=True)
class TierLimits:
    llm_tokens: int
    recipe_calls: int
    cache_recipe_suggestions: int
    chat_messages: int
    cache_recipe_search_via_chat: int
    groceries_total: int
    groceries_with_expiry: int
    notifications: bool
    priority_support: bool


TIER_PRESETS: Dict[Plan, TierLimits] = {
    Plan.FREE: TierLimits(
        llm_tokens=FREE_ROLLING_DEFAULTS[RollingKind.LLM],
        recipe_calls=FREE_ROLLING_DEFAULTS[RollingKind.RECIPE],
        cache_recipe_suggestions=12,
        chat_messages=4,
        cache_recipe_search_via_chat=4,
        groceries_total=20,
        groceries_with_expiry=10,
        notifications=False,
        priority_support=False,
    ),
    Plan.BASIC: TierLimits(
        llm_tokens=60_000,
        recipe_calls=15,
        cache_recipe_suggestions=30,
        chat_messages=16,
        cache_recipe_search_via_chat=20,
        groceries_total=250,
        groceries_with_expiry=100,
        notifications=True,
        priority_support=False,
    ),
    Plan.PRO: TierLimits(
        llm_tokens=200_000,
        recipe_calls=48,
        cache_recipe_suggestions=UNLIMITED,
        chat_messages=50,
        cache_recipe_search_via_chat=100,
        groceries_total=UNLIMITED,
        groceries_with_expiry=UNLIMITED,
        notifications=True,
        priority_support=True,
    ),
}


@dataclass(frozen=True)
class ResolvedLimit:
    kind: str
    limit: int
    used: int

    @property
    def unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def allowed(self) -> bool:
        """True when one more unit fits under the ceiling."""
        return self.unlimited or self.used < self.limit

    @property
    def remaining(self) -> Optional[int]:
        if self.unlimited:
            return None
        return max(self.limit - self.used, 0)

    @property
    def percent(self) -> int:
        if self.unlimited or self.limit <= 0:
            return 0
        return min(100, round(self.used * 100 / self.limit))

    def as_dict(self) -> dict:
        return {
            "used": self.used,
            "limit": self.limit,
            "unlimited": self.unlimited,
            "remaining": self.remaining,
            "percent": self.percent,
        }


def _or_default(value: Optional[int], default: int) -> int:
    return default if value is None else value


def _monthly_limit_and_used(user: User, kind: LimitKind) -> tuple[Optional[int], int]:
    if kind is LimitKind.CACHE_RECIPE_SUGGESTIONS:
        return user.max_cache_recipe_suggestions, user.cache_recipe_suggestions_used
    if kind is LimitKind.CHAT_MESSAGES:
        return user.max_chat_messages, user.chat_messages_used
    if kind is LimitKind.CACHE_RECIPE_SEARCH_VIA_CHAT:
        return user.max_cache_recipe_search_via_chat, user.cache_recipe_search_via_chat_used
    raise ValueError(f"not a monthly counter kind: {kind!r}")


def _inventory_limit(user: User, kind: LimitKind) -> Optional[int]:
    if kind is LimitKind.GROCERIES_TOTAL:
        return user.max_groceries_total
    if kind is LimitKind.GROCERIES_WITH_EXPIRY:
        return user.max_groceries_with_expiry
    raise ValueError(f"not an inventory kind: {kind!r}")


def resolve(user: Optional[User], kind: LimitKind, live_count: Optional[int] = None) -> ResolvedLimit:
    """
    Effective {limit, used} for one of the LimitKind ceilings.

    Inventory kinds measure the current grocery count, so the caller must
    pass live_count. In bypass mode everything is unlimited and the row is
    not read.
    """
    kind = LimitKind(kind)
    if settings.auth_bypass:
        return ResolvedLimit(kind=kind.value, limit=UNLIMITED, used=0)

    if kind in INVENTORY_KINDS:
        if live_count is None:
            raise ValueError(f"{kind.value} needs a live grocery count")
        limit = _or_default(_inventory_limit(user, kind), FREE_TIER_DEFAULTS[kind])
        return ResolvedLimit(kind=kind.value, limit=limit, used=live_count)

    raw_limit, used = _monthly_limit_and_used(user, kind)
    return ResolvedLimit(
        kind=kind.value,
        limit=_or_default(raw_limit, FREE_TIER_DEFAULTS[kind]),
        used=used,
    )


def resolve_rolling(user: Optional[User], kind: RollingKind) -> ResolvedLimit:
    kind = RollingKind(kind)
    if settings.auth_bypass:
        return ResolvedLimit(kind=kind.value, limit=UNLIMITED, used=0)
    if kind is RollingKind.LLM:
        raw_limit, used = user.quota_llm_tokens, user.llm_tokens_used
    else:
        raw_limit, used = user.quota_recipe_calls, user.recipe_calls_used
    return ResolvedLimit(
        kind=kind.value,
        limit=_or_default(raw_limit, FREE_ROLLING_DEFAULTS[kind]),
        used=used,
    )


def apply_plan(user: User, plan: Plan) -> User:
    """Write a tier preset onto the row. Counters are left untouched."""
    preset = TIER_PRESETS[Plan(plan)]
    user.quota_llm_tokens = preset.llm_tokens
    user.quota_recipe_calls = preset.recipe_calls
    user.max_cache_recipe_suggestions = preset.cache_recipe_suggestions
    user.max_chat_messages = preset.chat_messages
    user.max_cache_recipe_search_via_chat = preset.cache_recipe_search_via_chat
    user.max_groceries_total = preset.groceries_total
    user.max_groceries_with_expiry = preset.groceries_with_expiry
    user.notifications_enabled = preset.notifications
    user.has_priority_support = preset.priority_support
    return user


def detect_plan(user: User) -> Plan:
    if user.has_priority_support:
        return Plan.PRO
    basic = TIER_PRESETS[Plan.BASIC]
    if (
        user.max_cache_recipe_suggestions == basic.cache_recipe_suggestions
        and user.max_chat_messages == basic.chat_messages
    ):
        return Plan.BASIC
    return Plan.FREE
