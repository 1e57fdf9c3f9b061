"""
Dashboard schemas.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from api.schemas.billing import UsageSummary


class RecentActivity(BaseModel):
    id: str
    title: str
    url: str
    seo_score: int
    created_at: datetime


class DashboardStatsResponse(BaseModel):
    recipes_analyzed: int
    total_recipes: int
    seo_score_average: Optional[int] = None
    usage: UsageSummary
    recent_activity: List[RecentActivity]
