"""
SQLAlchemy database models.
"""

from .analysis import AnalysisSource, RecipeAnalysis, UsageLog
from .base import Base, TimestampMixin
from .billing import Subscription, SubscriptionStatus
from .integration import WEBHOOK_EVENTS, ApiKey, WebhookEndpoint
from .organization import Organization, TeamMember, TeamRole, can_manage, is_protected
from .user import SubscriptionTier, User, UserStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "User",
    "UserStatus",
    "SubscriptionTier",
    "RecipeAnalysis",
    "AnalysisSource",
    "UsageLog",
    "Subscription",
    "SubscriptionStatus",
    "Organization",
    "TeamMember",
    "TeamRole",
    "can_manage",
    "is_protected",
    "ApiKey",
    "WebhookEndpoint",
    "WEBHOOK_EVENTS",
]
