from __future__ import annotations

from fastapi import Depends
from sqlmodel import Session

from pantry.backend.core.errors import to_http_exception
from pantry.backend.dependencies.auth import AuthIdentity, get_current_user
from pantry.backend.services.quota_ledger import check_and_consume_monthly, consume_rolling
from pantry.backend.services.tier_policy import LimitKind, RollingKind
from pantry.db.session import get_session


def require_rolling_quota(kind: RollingKind, amount: int = 1):
    """Depends() factory for handlers that spend a rolling quota before doing work."""
    kind = RollingKind(kind)

    def _dependency(
        identity: AuthIdentity = Depends(get_current_user),
        db: Session = Depends(get_session),
    ) -> AuthIdentity:
        failure = consume_rolling(db, identity.user_id, kind, amount)
        if failure:
            raise to_http_exception(failure)
        return identity

    return _dependency


def require_monthly_quota(kind: LimitKind):
    """Depends() factory for handlers gated by a monthly or inventory ceiling."""
    kind = LimitKind(kind)

    def _dependency(
        identity: AuthIdentity = Depends(get_current_user),
        db: Session = Depends(get_session),
    ) -> AuthIdentity:
        failure = check_and_consume_monthly(db, identity.user_id, kind)
        if failure:
            raise to_http_exception(failure)
        return identity

    return _dependency
