"""
Monthly usage quota accounting.

The quota window is the current calendar month in UTC:
``[first instant of the month, now)``, with the start inclusive.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Optional, Union

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.plans import UNLIMITED, get_analysis_limit, resolve_tier
from infrastructure.database.models.analysis import RecipeAnalysis, UsageLog
from infrastructure.database.models.user import User

logger = logging.getLogger(__name__)

UNLIMITED_LABEL = "unlimited"


def current_month_start(now: Optional[datetime] = None) -> datetime:
    """First instant of the month containing ``now`` (UTC)."""
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now.astimezone(UTC).replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def next_month_start(now: Optional[datetime] = None) -> datetime:
    start = current_month_start(now)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


@dataclass(frozen=True)
class QuotaStatus:
    """Usage of one account against its tier limit in the current window."""

    tier: str
    used: int
    limit: int

    @property
    def is_unlimited(self) -> bool:
        return self.limit == UNLIMITED

    @property
    def exceeded(self) -> bool:
        return not self.is_unlimited and self.used >= self.limit

    @property
    def remaining(self) -> Union[int, str]:
        if self.is_unlimited:
            return UNLIMITED_LABEL
        return max(self.limit - self.used, 0)

    def to_dict(self) -> dict:
        return {
            "tier": self.tier,
            "used": self.used,
            "limit": self.limit,
            "remaining": self.remaining,
            "resets_at": next_month_start().isoformat(),
        }


class UsageQuotaService:
    """Counts analyses against tier limits and writes usage log entries."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def count_analyses_since(self, user_id: str, window_start: datetime) -> int:
        result = await self.db.execute(
            select(func.count(RecipeAnalysis.id)).where(
                RecipeAnalysis.user_id == user_id,
                RecipeAnalysis.created_at >= window_start,
            )
        )
        return result.scalar_one()

    async def count_analyses_this_month(self, user_id: str, now: Optional[datetime] = None) -> int:
        return await self.count_analyses_since(user_id, current_month_start(now))

    async def count_analyses_total(self, user_id: str) -> int:
        result = await self.db.execute(
            select(func.count(RecipeAnalysis.id)).where(RecipeAnalysis.user_id == user_id)
        )
        return result.scalar_one()

    async def get_quota_status(self, user: User) -> QuotaStatus:
        tier = resolve_tier(user.subscription_tier)
        used = await self.count_analyses_this_month(user.id)
        return QuotaStatus(tier=tier, used=used, limit=get_analysis_limit(tier))

    async def log_usage(
        self,
        user_id: str,
        action: str,
        resource_used: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> bool:
        """
        Append a usage log entry and commit it.

        Usage logs are informational only: failures are logged and
        swallowed, and the method returns False.
        """
        try:
            self.db.add(
                UsageLog(
                    user_id=user_id,
                    action=action,
                    resource_used=resource_used,
                    log_metadata=metadata,
                )
            )
            await self.db.commit()
            return True
        except SQLAlchemyError as e:
            logger.warning(
                "Failed to write usage log for user %s (%s): %s", user_id, action, e,
                extra={"account_id": user_id},
            )
            await self.db.rollback()
            return False
