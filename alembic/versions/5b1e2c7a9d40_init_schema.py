"""init_schema

Revision ID: 5b1e2c7a9d40
Revises: 
Create Date: 2026-10-19 09:12:31.402118

"""
from alembic import op
import sqlalchemy as sa



revision = '5b1e2c7a9d40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "user",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=False),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("quota_llm_tokens", sa.Integer(), nullable=True),
        sa.Column("llm_tokens_used", sa.Integer(), nullable=False),
        sa.Column("quota_recipe_calls", sa.Integer(), nullable=True),
        sa.Column("recipe_calls_used", sa.Integer(), nullable=False),
        sa.Column("quota_reset_at", sa.DateTime(), nullable=True),
        sa.Column("max_cache_recipe_suggestions", sa.Integer(), nullable=True),
        sa.Column("cache_recipe_suggestions_used", sa.Integer(), nullable=False),
        sa.Column("max_chat_messages", sa.Integer(), nullable=True),
        sa.Column("chat_messages_used", sa.Integer(), nullable=False),
        sa.Column("max_cache_recipe_search_via_chat", sa.Integer(), nullable=True),
        sa.Column("cache_recipe_search_via_chat_used", sa.Integer(), nullable=False),
        sa.Column("monthly_limit_reset_at", sa.DateTime(), nullable=True),
        sa.Column("max_groceries_total", sa.Integer(), nullable=True),
        sa.Column("max_groceries_with_expiry", sa.Integer(), nullable=True),
        sa.Column("notifications_enabled", sa.Boolean(), nullable=False),
        sa.Column("has_priority_support", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_user_email", "user", ["email"], unique=True)

    op.create_table(
        "grocery",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("unit", sa.String(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("added_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_grocery_user_id", "grocery", ["user_id"], unique=False)

    op.create_table(
        "refreshtoken",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("token_hash", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(), nullable=True),
        sa.Column("replaced_by", sa.Integer(), nullable=True),
        sa.Column("ip", sa.String(), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_refreshtoken_user_id", "refreshtoken", ["user_id"], unique=False)
    op.create_index("ix_refreshtoken_token_hash", "refreshtoken", ["token_hash"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_refreshtoken_token_hash", table_name="refreshtoken")
    op.drop_index("ix_refreshtoken_user_id", table_name="refreshtoken")
    op.drop_table("refreshtoken")
    op.drop_index("ix_grocery_user_id", table_name="grocery")
    op.drop_table("grocery")
    op.drop_index("ix_user_email", table_name="user")
    op.drop_table("user")
