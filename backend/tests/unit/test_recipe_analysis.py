"""
Unit tests for RecipeAnalysisService.

Runs against the sqlite test database. The Claude collaborator is either
absent (fallback path) or a MagicMock.
"""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.ai.anthropic_adapter import RecipeSEOAPIError, RecipeSEOResult
from infrastructure.database.models import RecipeAnalysis, UsageLog, User
from services.recipe_analysis import (
    AccountNotFoundError,
    AnalysisValidationError,
    QuotaExceededError,
    RecipeAnalysisService,
    normalize_keyword,
    validate_recipe_url,
)

URL = "https://www.foodblog.com/banana-bread"


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _seed_analyses(db: AsyncSession, user: User, count: int, created_at: datetime | None = None):
    created_at = created_at or datetime.now(UTC)
    db.add_all([
        RecipeAnalysis(
            user_id=user.id,
            recipe_url=f"https://www.foodblog.com/recipe-{i}",
            optimized_title=f"Recipe {i}",
            seo_score=60,
            target_keywords=["recipe"],
            suggested_keywords=[],
            optimization_suggestions=[],
            created_at=created_at,
        )
        for i in range(count)
    ])
    await db.commit()


def _ai_service(reply: dict | None = None, error: Exception | None = None) -> MagicMock:
    ai = MagicMock()
    ai.is_configured = True
    ai.model = "claude-test"
    if error is not None:
        ai.analyze_recipe = AsyncMock(side_effect=error)
    else:
        ai.analyze_recipe = AsyncMock(return_value=RecipeSEOResult.model_validate(reply))
    return ai


class TestValidation:
    @pytest.mark.parametrize("url", ["", "   ", "not a url", "ftp://foodblog.com/x", "https://", None])
    def test_rejects_bad_urls(self, url):
        with pytest.raises(AnalysisValidationError):
            validate_recipe_url(url)

    def test_strips_url(self):
        assert validate_recipe_url(f"  {URL} ") == URL

    def test_keyword_whitespace_collapsed(self):
        assert normalize_keyword("  banana   bread ") == "banana bread"
        assert normalize_keyword("   ") is None
        assert normalize_keyword(None) is None

    def test_keyword_too_long(self):
        with pytest.raises(AnalysisValidationError):
            normalize_keyword("k" * 101)


class TestSubmitAnalysis:
    async def test_fallback_analysis(self, db_session: AsyncSession, starter_user: User):
        service = RecipeAnalysisService(db_session, ai_service=None)
        submission = await service.submit_analysis(starter_user.id, URL, "banana bread")

        analysis = submission.analysis
        assert analysis.id
        assert analysis.user_id == starter_user.id
        assert analysis.source == "fallback"
        assert analysis.optimized_title == "Banana Bread - Perfect Recipe for Food Lovers"
        assert analysis.target_keywords == ["banana bread"]
        assert 0 <= analysis.seo_score <= 100
        assert json.loads(analysis.schema_markup)["name"] == analysis.optimized_title
        assert submission.usage_remaining == 9

        assert await _count(db_session, RecipeAnalysis) == 1
        log = (await db_session.execute(select(UsageLog))).scalar_one()
        assert log.action == "recipe_analysis"
        assert log.resource_used == "fallback_analysis"

    async def test_fallback_is_deterministic(self, db_session: AsyncSession, pro_user: User):
        service = RecipeAnalysisService(db_session, ai_service=None)
        first = await service.submit_analysis(pro_user.id, URL, "banana bread", "Banana Bread")
        second = await service.submit_analysis(pro_user.id, URL, "banana bread", "Banana Bread")

        assert first.analysis.id != second.analysis.id
        assert first.analysis.seo_score == second.analysis.seo_score
        assert first.analysis.optimized_description == second.analysis.optimized_description
        assert second.usage_remaining == 48

    async def test_invalid_url_stores_nothing(self, db_session: AsyncSession, starter_user: User):
        service = RecipeAnalysisService(db_session, ai_service=None)
        with pytest.raises(AnalysisValidationError, match="Invalid URL format"):
            await service.submit_analysis(starter_user.id, "not a url")

        assert await _count(db_session, RecipeAnalysis) == 0
        assert await _count(db_session, UsageLog) == 0

    async def test_unknown_account(self, db_session: AsyncSession):
        service = RecipeAnalysisService(db_session, ai_service=None)
        with pytest.raises(AccountNotFoundError):
            await service.submit_analysis("00000000-0000-0000-0000-000000000000", URL)

    async def test_starter_quota_exceeded(self, db_session: AsyncSession, starter_user: User):
        await _seed_analyses(db_session, starter_user, 10)
        ai = _ai_service(error=RecipeSEOAPIError("unused"))
        service = RecipeAnalysisService(db_session, ai_service=ai, use_ai=True)

        with pytest.raises(QuotaExceededError) as exc_info:
            await service.submit_analysis(starter_user.id, URL, "banana bread")

        assert exc_info.value.to_dict() == {"count": 10, "limit": 10, "tier": "starter"}
        assert await _count(db_session, RecipeAnalysis) == 10
        ai.analyze_recipe.assert_not_awaited()

    async def test_last_month_does_not_count(self, db_session: AsyncSession, starter_user: User):
        last_month = datetime.now(UTC).replace(day=1) - timedelta(days=2)
        await _seed_analyses(db_session, starter_user, 10, created_at=last_month)

        submission = await RecipeAnalysisService(db_session, ai_service=None).submit_analysis(
            starter_user.id, URL
        )
        assert submission.usage_remaining == 9

    async def test_pro_quota_exceeded(self, db_session: AsyncSession, pro_user: User):
        await _seed_analyses(db_session, pro_user, 50)
        with pytest.raises(QuotaExceededError) as exc_info:
            await RecipeAnalysisService(db_session, ai_service=None).submit_analysis(pro_user.id, URL)

        assert (exc_info.value.count, exc_info.value.limit, exc_info.value.tier) == (50, 50, "pro")

    async def test_agency_is_unlimited(self, db_session: AsyncSession, agency_user: User):
        await _seed_analyses(db_session, agency_user, 60)
        submission = await RecipeAnalysisService(db_session, ai_service=None).submit_analysis(
            agency_user.id, URL
        )
        assert submission.usage_remaining == "unlimited"

    async def test_unknown_tier_treated_as_starter(self, db_session: AsyncSession, user_factory):
        user = await user_factory("legacy@reciperank.io", tier="enterprise")
        submission = await RecipeAnalysisService(db_session, ai_service=None).submit_analysis(user.id, URL)
        assert submission.quota.tier == "starter"
        assert submission.usage_remaining == 9


class TestAIPath:
    REPLY = {
        "optimizedTitle": "Moist Banana Bread Recipe",
        "optimizedDescription": "Bake the best moist banana bread with ripe bananas.",
        "seoScore": 82,
        "targetKeywords": ["moist banana bread"],
        "suggestedKeywords": ["easy banana bread"],
        "optimizationSuggestions": ["Add prep time"],
        "schemaMarkup": {"@type": "Recipe", "name": "Something Else"},
        "competitorAnalysis": {"avgContentLength": 1500, "topKeywords": ["banana bread"], "avgSeoScore": 80},
    }

    async def test_uses_model_reply(self, db_session: AsyncSession, pro_user: User):
        ai = _ai_service(self.REPLY)
        service = RecipeAnalysisService(db_session, ai_service=ai, use_ai=True)

        submission = await service.submit_analysis(pro_user.id, URL, "banana bread", "Banana Bread")

        analysis = submission.analysis
        assert analysis.source == "ai"
        assert analysis.ai_model == "claude-test"
        assert analysis.seo_score == 82
        assert analysis.optimized_title == "Moist Banana Bread Recipe"
        assert analysis.target_keywords == ["banana bread", "moist banana bread"]
        assert json.loads(analysis.schema_markup)["name"] == "Moist Banana Bread Recipe"
        ai.analyze_recipe.assert_awaited_once_with(URL, "banana bread", "Banana Bread", None)

        log = (await db_session.execute(select(UsageLog))).scalar_one()
        assert log.resource_used == "ai_analysis"

    async def test_model_failure_falls_back(self, db_session: AsyncSession, pro_user: User):
        ai = _ai_service(error=RecipeSEOAPIError("overloaded"))
        service = RecipeAnalysisService(db_session, ai_service=ai, use_ai=True)

        submission = await service.submit_analysis(pro_user.id, URL, "banana bread")

        assert submission.analysis.source == "fallback"
        assert await _count(db_session, RecipeAnalysis) == 1

    async def test_ai_disabled(self, db_session: AsyncSession, pro_user: User):
        ai = _ai_service(self.REPLY)
        service = RecipeAnalysisService(db_session, ai_service=ai, use_ai=False)

        submission = await service.submit_analysis(pro_user.id, URL)

        assert submission.analysis.source == "fallback"
        ai.analyze_recipe.assert_not_awaited()


class TestStorage:
    async def test_no_transaction_open_during_model_call(self, db_session: AsyncSession, pro_user: User):
        seen = []

        async def analyze(*args):
            seen.append(db_session.in_transaction())
            return RecipeSEOResult.model_validate(TestAIPath.REPLY)

        ai = _ai_service(TestAIPath.REPLY)
        ai.analyze_recipe = AsyncMock(side_effect=analyze)

        await RecipeAnalysisService(db_session, ai_service=ai, use_ai=True).submit_analysis(pro_user.id, URL)

        assert seen == [False]

    async def test_recount_rejects_submission_that_lost_the_race(
        self, db_session: AsyncSession, starter_user: User
    ):
        account_id = starter_user.id
        await _seed_analyses(db_session, starter_user, 9)

        async def analyze(*args):
            # A concurrent request stores the tenth analysis while the model runs
            db_session.add(RecipeAnalysis(
                user_id=account_id,
                recipe_url="https://www.foodblog.com/concurrent",
                seo_score=70,
                target_keywords=[],
                suggested_keywords=[],
                optimization_suggestions=[],
            ))
            await db_session.commit()
            return RecipeSEOResult.model_validate(TestAIPath.REPLY)

        ai = _ai_service(TestAIPath.REPLY)
        ai.analyze_recipe = AsyncMock(side_effect=analyze)
        service = RecipeAnalysisService(db_session, ai_service=ai, use_ai=True)

        with pytest.raises(QuotaExceededError) as exc_info:
            await service.submit_analysis(account_id, URL, "banana bread")

        assert exc_info.value.to_dict() == {"count": 10, "limit": 10, "tier": "starter"}
        assert await _count(db_session, RecipeAnalysis) == 10
        assert await _count(db_session, UsageLog) == 0

    async def test_usage_log_failure_does_not_fail_submission(
        self, db_session: AsyncSession, starter_user: User
    ):
        account_id = starter_user.id
        await db_session.execute(text("DROP TABLE usage_logs"))
        await db_session.commit()

        submission = await RecipeAnalysisService(db_session, ai_service=None).submit_analysis(account_id, URL)

        assert submission.usage_remaining == 9
        assert submission.analysis.optimized_title == "Banana Bread - Perfect Recipe for Food Lovers"
        assert await _count(db_session, RecipeAnalysis) == 1
