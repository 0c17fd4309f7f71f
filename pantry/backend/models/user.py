from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone
from typing import Optional


class User(SQLModel, table=True):
    """
    계정 + 사용량 카운터. 시각 컬럼은 모두 timestamptz (UTC).
    limit 컬럼이 NULL이면 free 티어 기본값, -1이면 무제한.
    """
    __tablename__ = "user"

    id: Optional[int] = Field(default=None, primary_key=True)
    email: str = Field(index=True, unique=True)  # 항상 소문자로 정규화
    name: str
    password_hash: str
    role: str = "user"
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    # rolling quota (QUOTA_RESET_INTERVAL_HOURS 주기)
    quota_llm_tokens: Optional[int] = None
    llm_tokens_used: int = 0
    quota_recipe_calls: Optional[int] = None
    recipe_calls_used: int = 0
    quota_reset_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))

    # monthly quota (다음 달 1일 리셋)
    max_cache_recipe_suggestions: Optional[int] = None
    cache_recipe_suggestions_used: int = 0
    max_chat_messages: Optional[int] = None
    chat_messages_used: int = 0
    max_cache_recipe_search_via_chat: Optional[int] = None
    cache_recipe_search_via_chat_used: int = 0
    monthly_limit_reset_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True)))

    # 재고 기반 상한 (grocery 테이블 실시간 카운트와 비교)
    max_groceries_total: Optional[int] = None
    max_groceries_with_expiry: Optional[int] = None

    notifications_enabled: bool = False
    has_priority_support: bool = False
