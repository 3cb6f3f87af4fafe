"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

jsonType = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)
        )
    return cols


def upgrade() -> None:
    """目的: 初期スキーマ（data_sources / tables_meta / insights / messages / charts / boards / profiles）を作成する。"""
    op.create_table(
        "data_sources",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("file_path", sa.String(length=1024), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("row_count", sa.Integer(), nullable=True),
        sa.Column("column_count", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_data_sources_user_id", "data_sources", ["user_id"])

    op.create_table(
        "tables_meta",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=False),
        sa.Column("column_name", sa.String(length=255), nullable=False),
        sa.Column("data_type", sa.String(length=16), nullable=False),
        sa.Column("sample_values", jsonType, nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_tables_meta_data_source_id", "tables_meta", ["data_source_id"])

    op.create_table(
        "insights",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("insight_type", sa.String(length=32), nullable=True),
        sa.Column("metadata", jsonType, nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_insights_user_id", "insights", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("metadata", jsonType, nullable=True),
        *_timestamps(updated=False),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_messages_user_id", "messages", ["user_id"])

    op.create_table(
        "charts",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("data_source_id", sa.String(length=36), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("chart_type", sa.String(length=16), nullable=False),
        sa.Column("config", jsonType, nullable=False),
        sa.Column("query_text", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["data_source_id"], ["data_sources.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_charts_user_id", "charts", ["user_id"])

    op.create_table(
        "boards",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("layout", jsonType, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_boards_user_id", "boards", ["user_id"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=255), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("avatar_url", sa.String(length=1024), nullable=True),
        *_timestamps(),
    )


def downgrade() -> None:
    """目的: 初期スキーマを削除する（依存の逆順）。"""
    op.drop_table("profiles")
    op.drop_table("boards")
    op.drop_table("charts")
    op.drop_table("messages")
    op.drop_table("insights")
    op.drop_table("tables_meta")
    op.drop_table("data_sources")
