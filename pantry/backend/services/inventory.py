from __future__ import annotations

from sqlalchemy import func
from sqlmodel import Session, select

from pantry.backend.models.grocery import Grocery
from pantry.backend.services.tier_policy import LimitKind


def count_groceries(db: Session, user_id: int, kind: LimitKind) -> int:
    """Live inventory size for one of the two inventory-based limit kinds."""
    stmt = select(func.count()).select_from(Grocery).where(Grocery.user_id == user_id)
    if LimitKind(kind) is LimitKind.GROCERIES_WITH_EXPIRY:
        stmt = stmt.where(Grocery.expiry_date.is_not(None))
    elif LimitKind(kind) is not LimitKind.GROCERIES_TOTAL:
        raise ValueError(f"not an inventory kind: {kind!r}")
    return int(db.exec(stmt).one())
