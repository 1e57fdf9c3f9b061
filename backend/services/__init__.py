"""
Service layer for business logic.
"""

from services.billing_events import BillingEventOutcome, BillingEventProcessor
from services.recipe_analysis import (
    AccountNotFoundError,
    AnalysisError,
    AnalysisSubmission,
    AnalysisValidationError,
    QuotaExceededError,
    RecipeAnalysisService,
)
from services.team_roles import TeamService
from services.usage_quota import QuotaStatus, UsageQuotaService

__all__ = [
    "RecipeAnalysisService",
    "AnalysisSubmission",
    "AnalysisError",
    "AnalysisValidationError",
    "AccountNotFoundError",
    "QuotaExceededError",
    "UsageQuotaService",
    "QuotaStatus",
    "TeamService",
    "BillingEventProcessor",
    "BillingEventOutcome",
]
