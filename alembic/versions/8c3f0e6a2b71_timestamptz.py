"""timestamptz

Revision ID: 8c3f0e6a2b71
Revises: 5b1e2c7a9d40
Create Date: 2026-10-19 10:04:17.518203

"""
from alembic import op
import sqlalchemy as sa



revision = '8c3f0e6a2b71'
down_revision = '5b1e2c7a9d40'
branch_labels = None
depends_on = None

# 기존 값은 naive UTC로 저장되어 있음
COLUMNS = [
    ("user", "created_at", False),
    ("user", "quota_reset_at", True),
    ("user", "monthly_limit_reset_at", True),
    ("grocery", "added_at", False),
    ("refreshtoken", "created_at", False),
    ("refreshtoken", "expires_at", False),
    ("refreshtoken", "revoked_at", True),
]


def upgrade() -> None:
    for table, column, nullable in COLUMNS:
        op.alter_column(
            table,
            column,
            type_=sa.DateTime(timezone=True),
            existing_type=sa.DateTime(),
            existing_nullable=nullable,
            postgresql_using=f"{column} AT TIME ZONE 'UTC'",
        )


def downgrade() -> None:
    for table, column, nullable in COLUMNS:
        op.alter_column(
            table,
            column,
            type_=sa.DateTime(),
            existing_type=sa.DateTime(timezone=True),
            existing_nullable=nullable,
            postgresql_using=f"{column} AT TIME ZONE 'UTC'",
        )
