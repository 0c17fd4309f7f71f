from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field


class RefreshToken(SQLModel, table=True):
    """
    회전(rotation)과 재사용 탐지(replay detection)를 위한 RT 레코드.
    - token_hash: DB 유출 대비 원문 secret의 sha256 (원문은 저장하지 않음)
    - replaced_by: 회전으로 발급된 후속 RT의 id (회전 체인)
    - active 조건: revoked_at IS NULL AND now < expires_at
    """
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, foreign_key="user.id")
    token_hash: str = Field(nullable=False, unique=True, index=True)

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    revoked_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    replaced_by: Optional[int] = None

    ip: Optional[str] = None
    user_agent: Optional[str] = None
