"""
Dashboard statistics routes.
"""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.routes.auth import get_current_user
from api.schemas.dashboard import DashboardStatsResponse
from infrastructure.database.connection import get_db
from infrastructure.database.models.analysis import RecipeAnalysis
from infrastructure.database.models.user import User
from services.usage_quota import UsageQuotaService

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])

RECENT_ACTIVITY_LIMIT = 5


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Monthly usage, totals, average score and the most recent analyses."""
    usage = UsageQuotaService(db)
    quota = await usage.get_quota_status(current_user)
    total = await usage.count_analyses_total(current_user.id)

    average = (
        await db.execute(
            select(func.avg(RecipeAnalysis.seo_score)).where(RecipeAnalysis.user_id == current_user.id)
        )
    ).scalar_one_or_none()

    recent = (
        await db.execute(
            select(RecipeAnalysis)
            .where(RecipeAnalysis.user_id == current_user.id)
            .order_by(RecipeAnalysis.created_at.desc())
            .limit(RECENT_ACTIVITY_LIMIT)
        )
    ).scalars().all()

    return {
        "recipes_analyzed": quota.used,
        "total_recipes": total,
        "seo_score_average": round(average) if average is not None else None,
        "usage": quota.to_dict(),
        "recent_activity": [
            {
                "id": a.id,
                "title": a.optimized_title or "Recipe Analysis",
                "url": a.recipe_url,
                "seo_score": a.seo_score,
                "created_at": a.created_at,
            }
            for a in recent
        ],
    }
