"""Payment adapters for billing and subscription management."""

from .stripe_adapter import (
    StripeAPIError,
    StripeBillingError,
    StripeBillingService,
    StripeNotConfiguredError,
    StripeSignatureError,
    StripeSubscriptionInfo,
    stripe_billing_service,
)

__all__ = [
    "StripeBillingService",
    "StripeSubscriptionInfo",
    "StripeBillingError",
    "StripeNotConfiguredError",
    "StripeAPIError",
    "StripeSignatureError",
    "stripe_billing_service",
]
