"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates:
- items (catalog) with pg_trgm GIN indexes for similarity search
- quotes (itinerary item list + optimistic version)
- chat_sessions
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

TRGM_COLUMNS = ("name_eng", "name_kor", "keyword")


def upgrade() -> None:
    """Create all tables."""
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", sa.Text(), nullable=False, server_default="place"),
        sa.Column("name_kor", sa.Text(), nullable=False, server_default=""),
        sa.Column("name_eng", sa.Text(), nullable=False, server_default=""),
        sa.Column("keyword", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("description_eng", sa.Text(), nullable=True),
        sa.Column("categories", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("region", sa.Text(), nullable=True),
        sa.Column("address_english", sa.Text(), nullable=True),
        sa.Column("images", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("ai_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("idx_items_type_ai_enabled", "items", ["type", "ai_enabled"])
    op.create_index("idx_items_region", "items", ["region"])
    for column in TRGM_COLUMNS:
        op.execute(
            f"CREATE INDEX idx_items_{column}_trgm ON items USING gin ({column} gin_trgm_ops)"
        )

    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("items", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status_ai", sa.Text(), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )

    op.create_table(
        "chat_sessions",
        sa.Column("session_id", sa.Text(), primary_key=True),
        sa.Column("quote_id", sa.Integer(), nullable=True),
        sa.Column("region", sa.Text(), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("travel_date", sa.Date(), nullable=True),
        sa.Column("interest_main", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("interest_sub", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("attractions", postgresql.JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("chat_sessions")
    op.drop_table("quotes")
    for column in TRGM_COLUMNS:
        op.execute(f"DROP INDEX IF EXISTS idx_items_{column}_trgm")
    op.drop_index("idx_items_region", table_name="items")
    op.drop_index("idx_items_type_ai_enabled", table_name="items")
    op.drop_table("items")
