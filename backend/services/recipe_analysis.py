"""
Recipe analysis admission and creation.

Checks the caller's monthly quota, produces the SEO payload (Claude or the
deterministic fallback) and stores exactly one analysis record plus a
best-effort usage log entry.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.ai.anthropic_adapter import (
    AnthropicRecipeSEOService,
    RecipeSEOServiceError,
)
from core.plans import get_analysis_limit, resolve_tier
from infrastructure.config.settings import settings
from infrastructure.database.models.analysis import AnalysisSource, RecipeAnalysis
from infrastructure.database.models.user import User
from services.recipe_payload import (
    AnalysisPayload,
    build_fallback_analysis,
    payload_from_ai_result,
)
from services.usage_quota import QuotaStatus, UsageQuotaService

logger = logging.getLogger(__name__)

MAX_KEYWORD_LENGTH = 100
MAX_URL_LENGTH = 2048

USAGE_ACTION_ANALYSIS = "recipe_analysis"


class AnalysisError(Exception):
    """Base exception for analysis admission."""


class AnalysisValidationError(AnalysisError):
    """Malformed submission. Nothing was persisted."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class AccountNotFoundError(AnalysisError):
    """The account id does not resolve to an account."""


class QuotaExceededError(AnalysisError):
    """Monthly analysis limit reached. Nothing was persisted."""

    def __init__(self, count: int, limit: int, tier: str):
        super().__init__(
            f"Monthly analysis limit reached ({count}/{limit} on the {tier} plan)"
        )
        self.count = count
        self.limit = limit
        self.tier = tier

    def to_dict(self) -> dict:
        return {"count": self.count, "limit": self.limit, "tier": self.tier}


class AnalysisPersistenceError(AnalysisError):
    """Storing the analysis record failed."""


@dataclass
class AnalysisSubmission:
    """A stored analysis together with the quota state after storing it."""

    analysis: RecipeAnalysis
    quota: QuotaStatus

    @property
    def usage_remaining(self):
        return self.quota.remaining


def validate_recipe_url(source_url: Optional[str]) -> str:
    """Return the stripped URL or raise AnalysisValidationError."""
    if not source_url or not source_url.strip():
        raise AnalysisValidationError("Recipe URL is required", field="recipe_url")
    url = source_url.strip()
    if len(url) > MAX_URL_LENGTH:
        raise AnalysisValidationError("Recipe URL is too long", field="recipe_url")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname or " " in url:
        raise AnalysisValidationError("Invalid URL format", field="recipe_url")
    return url


def normalize_keyword(target_keyword: Optional[str]) -> Optional[str]:
    if target_keyword is None:
        return None
    keyword = " ".join(target_keyword.split())
    if not keyword:
        return None
    if len(keyword) > MAX_KEYWORD_LENGTH:
        raise AnalysisValidationError(
            f"Target keyword must be at most {MAX_KEYWORD_LENGTH} characters",
            field="target_keyword",
        )
    return keyword


class RecipeAnalysisService:
    """Admits and records recipe analyses for one database session."""

    def __init__(
        self,
        db: AsyncSession,
        ai_service: Optional[AnthropicRecipeSEOService] = None,
        use_ai: Optional[bool] = None,
    ):
        self.db = db
        self.ai_service = ai_service
        self.use_ai = settings.recipe_analysis_use_ai if use_ai is None else use_ai
        self.quota = UsageQuotaService(db)

    async def submit_analysis(
        self,
        account_id: str,
        source_url: str,
        target_keyword: Optional[str] = None,
        current_title: Optional[str] = None,
        current_description: Optional[str] = None,
    ) -> AnalysisSubmission:
        """
        Run and store one recipe analysis for an account.

        Raises:
            AnalysisValidationError: URL or keyword malformed
            AccountNotFoundError: account_id does not exist
            QuotaExceededError: monthly limit already reached
            AnalysisPersistenceError: the analysis row could not be stored
        """
        url = validate_recipe_url(source_url)
        keyword = normalize_keyword(target_keyword)
        current_title = (current_title or "").strip() or None
        current_description = (current_description or "").strip() or None

        user = await self.db.get(User, account_id)
        if user is None:
            raise AccountNotFoundError(account_id)
        tier = resolve_tier(user.subscription_tier)
        limit = get_analysis_limit(tier)

        # Cheap early rejection before spending a model call
        status = QuotaStatus(
            tier=tier,
            used=await self.quota.count_analyses_this_month(account_id),
            limit=limit,
        )
        if status.exceeded:
            logger.info(
                "Quota exceeded for account %s: %d/%d (%s)", account_id, status.used, limit, tier,
                extra={"account_id": account_id},
            )
            raise QuotaExceededError(status.used, limit, tier)

        # No connection may stay checked out across the model call
        await self.db.commit()

        payload = await self._produce_payload(url, keyword, current_title, current_description)

        analysis, used_before = await self._store_within_quota(account_id, tier, limit, url, payload)

        await self.quota.log_usage(
            account_id,
            USAGE_ACTION_ANALYSIS,
            resource_used="ai_analysis" if payload.source == AnalysisSource.AI else "fallback_analysis",
            metadata={
                "recipe_url": url,
                "target_keyword": keyword,
                "seo_score": payload.seo_score,
            },
        )

        return AnalysisSubmission(
            analysis=analysis,
            quota=QuotaStatus(tier=tier, used=used_before + 1, limit=limit),
        )

    async def _produce_payload(
        self,
        url: str,
        keyword: Optional[str],
        current_title: Optional[str],
        current_description: Optional[str],
    ) -> AnalysisPayload:
        if self.use_ai and self.ai_service is not None and self.ai_service.is_configured:
            try:
                result = await self.ai_service.analyze_recipe(
                    url, keyword, current_title, current_description
                )
                return payload_from_ai_result(
                    result, url, keyword, current_title, current_description,
                    model=self.ai_service.model,
                )
            except RecipeSEOServiceError as e:
                logger.warning("AI analysis unavailable for %s, using fallback: %s", url, e)
        return build_fallback_analysis(url, keyword, current_title, current_description)

    async def _store_within_quota(
        self,
        account_id: str,
        tier: str,
        limit: int,
        url: str,
        payload: AnalysisPayload,
    ) -> tuple[RecipeAnalysis, int]:
        """
        Recount and insert while holding the account row lock.

        Concurrent submissions for the same account serialize on the lock, so
        the count cannot go stale between the check and the insert. The lock
        is released by the commit or rollback below.
        """
        try:
            await self.db.execute(
                select(User.id).where(User.id == account_id).with_for_update()
            )
            used = await self.quota.count_analyses_this_month(account_id)
            if QuotaStatus(tier=tier, used=used, limit=limit).exceeded:
                await self.db.rollback()
                raise QuotaExceededError(used, limit, tier)

            analysis = RecipeAnalysis(
                user_id=account_id,
                recipe_url=url,
                original_title=payload.original_title,
                optimized_title=payload.optimized_title,
                original_description=payload.original_description,
                optimized_description=payload.optimized_description,
                seo_score=payload.seo_score,
                target_keywords=payload.target_keywords,
                suggested_keywords=payload.suggested_keywords,
                competitor_analysis=payload.competitor_analysis,
                schema_markup=payload.schema_markup,
                optimization_suggestions=payload.optimization_suggestions,
                source=payload.source,
                ai_model=payload.ai_model,
            )
            self.db.add(analysis)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("Failed to store analysis for account %s: %s", account_id, e)
            raise AnalysisPersistenceError("Failed to store analysis") from e

        # Detach so a failed usage-log rollback cannot expire the stored record
        self.db.expunge(analysis)
        logger.info(
            "Stored analysis %s for account %s (%s, score %d)",
            analysis.id, account_id, payload.source, payload.seo_score,
            extra={"account_id": account_id, "analysis_id": analysis.id},
        )
        return analysis, used
