"""
Plan configuration for subscription tiers.

This module is the single source of truth for plan limits and features.
It lives in core/ so both service and API layers can import from it
without creating circular dependencies.
"""

from types import MappingProxyType
from typing import Mapping, Optional

# Sentinel for "no monthly cap"
UNLIMITED = -1

DEFAULT_TIER = "starter"

# Plan configuration with features and limits
PLANS = {
    "starter": {
        "name": "Starter",
        "price_monthly": 29,
        "features": [
            "basic_seo",
            "schema_generator",
            "email_support",
        ],
        "limits": {
            "analyses_per_month": 10,
        },
    },
    "pro": {
        "name": "Pro",
        "price_monthly": 69,
        "features": [
            "basic_seo",
            "schema_generator",
            "email_support",
            "advanced_keywords",
            "competitor_analysis",
            "content_decay",
            "priority_support",
        ],
        "limits": {
            "analyses_per_month": 50,
        },
    },
    "agency": {
        "name": "Agency",
        "price_monthly": 149,
        "features": [
            "basic_seo",
            "schema_generator",
            "email_support",
            "advanced_keywords",
            "competitor_analysis",
            "content_decay",
            "priority_support",
            "unlimited",
            "white_label",
            "team_collaboration",
            "custom_integrations",
            "phone_support",
        ],
        "limits": {
            "analyses_per_month": UNLIMITED,
        },
    },
}

# Read-only tier -> monthly analysis cap, built once at import
ANALYSIS_LIMITS: Mapping[str, int] = MappingProxyType(
    {tier: plan["limits"]["analyses_per_month"] for tier, plan in PLANS.items()}
)


def resolve_tier(tier: Optional[str]) -> str:
    """Normalize a stored tier value. Missing or unknown tiers count as starter."""
    if not tier:
        return DEFAULT_TIER
    tier = str(tier).strip().lower()
    return tier if tier in PLANS else DEFAULT_TIER


def get_analysis_limit(tier: Optional[str]) -> int:
    """Monthly analysis cap for a tier, UNLIMITED for no cap."""
    return ANALYSIS_LIMITS[resolve_tier(tier)]


def has_feature(tier: Optional[str], feature: str) -> bool:
    return feature in PLANS[resolve_tier(tier)]["features"]
