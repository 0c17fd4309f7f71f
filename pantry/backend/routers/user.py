from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from pantry.backend.core.errors import NOT_AUTHENTICATED, to_http_exception
from pantry.backend.dependencies.auth import AuthIdentity, get_current_user
from pantry.backend.schemas.auth import PasswordChangeRequest
from pantry.backend.services import auth_service, credentials, quota_ledger, tier_policy
from pantry.db.session import get_session


user_router = APIRouter(prefix="/user", tags=["user"])


def _load_user(db: Session, identity: AuthIdentity):
    user = credentials.get_user(db, identity.user_id)
    if user is None:
        raise HTTPException(status_code=401, detail=NOT_AUTHENTICATED)
    return user


@user_router.get("/limits")
def get_limits(
    identity: AuthIdentity = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    user = _load_user(db, identity)
    return quota_ledger.usage_snapshot(db, user)


@user_router.get("/profile")
def get_profile(
    identity: AuthIdentity = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    user = _load_user(db, identity)
    return {
        **credentials.public_user(user),
        "plan": tier_policy.detect_plan(user).value,
        "quotas": {
            "quotaLlmTokens": tier_policy.resolve_rolling(user, tier_policy.RollingKind.LLM).limit,
            "quotaRecipeCalls": tier_policy.resolve_rolling(user, tier_policy.RollingKind.RECIPE).limit,
            "maxCacheRecipeSuggestions": tier_policy.resolve(
                user, tier_policy.LimitKind.CACHE_RECIPE_SUGGESTIONS
            ).limit,
            "maxChatMessages": tier_policy.resolve(user, tier_policy.LimitKind.CHAT_MESSAGES).limit,
            "maxCacheRecipeSearchViaChat": tier_policy.resolve(
                user, tier_policy.LimitKind.CACHE_RECIPE_SEARCH_VIA_CHAT
            ).limit,
            "notificationsEnabled": user.notifications_enabled,
            "hasPrioritySupport": user.has_priority_support,
        },
    }


@user_router.put("/password")
def change_password(
    body: PasswordChangeRequest,
    identity: AuthIdentity = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    user = _load_user(db, identity)
    failure = credentials.change_password(
        db, user, current_password=body.current_password, new_password=body.new_password
    )
    if failure:
        raise to_http_exception(failure)
    # 비밀번호 변경 시 모든 세션 종료
    revoked = auth_service.revoke_all_for_user(db, user.id)
    return {"success": True, "revoked": revoked}
