"""
Recipe analysis and usage log models.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utc_now


class AnalysisSource:
    """How the analysis payload was produced."""

    AI = "ai"
    FALLBACK = "fallback"


class RecipeAnalysis(Base):
    """One SEO analysis of a submitted recipe page. Never updated after insert."""

    __tablename__ = "recipe_analyses"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    recipe_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    original_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    optimized_title: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    original_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    optimized_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    seo_score: Mapped[int] = mapped_column(Integer, nullable=False)

    target_keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    suggested_keywords: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    competitor_analysis: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    schema_markup: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    optimization_suggestions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    source: Mapped[str] = mapped_column(String(20), nullable=False, default=AnalysisSource.FALLBACK)
    ai_model: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_recipe_analyses_user_created", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<RecipeAnalysis(id={self.id}, user_id={self.user_id}, score={self.seo_score})>"


class UsageLog(Base):
    """Append-only audit entry for a billable action."""

    __tablename__ = "usage_logs"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    resource_used: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    # "metadata" is reserved on declarative classes
    log_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_usage_logs_user_action", "user_id", "action"),
    )

    def __repr__(self) -> str:
        return f"<UsageLog(user_id={self.user_id}, action={self.action})>"
