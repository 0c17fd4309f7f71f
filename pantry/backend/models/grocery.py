from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field
from datetime import date, datetime, timezone
from typing import Optional


class Grocery(SQLModel, table=True):
    """재고 항목. CRUD는 이 서비스 밖에서 처리하고 여기서는 상한 비교용 카운트만 읽는다."""
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True, foreign_key="user.id")
    name: str
    quantity: float = 1
    unit: Optional[str] = None
    expiry_date: Optional[date] = None
    added_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
