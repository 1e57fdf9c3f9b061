"""Create recipe_analyses and usage_logs tables

Revision ID: 002
Revises: 001
Create Date: 2026-09-28

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "recipe_analyses",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("recipe_url", sa.String(length=2048), nullable=False),
        sa.Column("original_title", sa.String(length=500), nullable=True),
        sa.Column("optimized_title", sa.String(length=500), nullable=True),
        sa.Column("original_description", sa.Text(), nullable=True),
        sa.Column("optimized_description", sa.Text(), nullable=True),
        sa.Column("seo_score", sa.Integer(), nullable=False),
        sa.Column("target_keywords", sa.JSON(), nullable=False),
        sa.Column("suggested_keywords", sa.JSON(), nullable=False),
        sa.Column("competitor_analysis", sa.JSON(), nullable=True),
        sa.Column("schema_markup", sa.Text(), nullable=True),
        sa.Column("optimization_suggestions", sa.JSON(), nullable=False),
        sa.Column("source", sa.String(length=20), nullable=False, server_default="fallback"),
        sa.Column("ai_model", sa.String(length=100), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recipe_analyses_user_id", "recipe_analyses", ["user_id"])
    # Serves the monthly quota count
    op.create_index(
        "ix_recipe_analyses_user_created", "recipe_analyses", ["user_id", "created_at"]
    )

    op.create_table(
        "usage_logs",
        sa.Column("id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=False), nullable=False),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("resource_used", sa.String(length=100), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_usage_logs_user_id", "usage_logs", ["user_id"])
    op.create_index("ix_usage_logs_user_action", "usage_logs", ["user_id", "action"])


def downgrade() -> None:
    op.drop_index("ix_usage_logs_user_action", table_name="usage_logs")
    op.drop_index("ix_usage_logs_user_id", table_name="usage_logs")
    op.drop_table("usage_logs")
    op.drop_index("ix_recipe_analyses_user_created", table_name="recipe_analyses")
    op.drop_index("ix_recipe_analyses_user_id", table_name="recipe_analyses")
    op.drop_table("recipe_analyses")
