"""
Stripe billing adapter for subscription management.

Wraps the synchronous Stripe SDK: customers, checkout sessions, the billing
portal, subscription lookups and webhook signature verification. SDK calls
run in a worker thread so they never block the event loop.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Optional

import stripe

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

CHECKOUT_PLANS = ("starter", "pro", "agency")


# Custom Exceptions
class StripeBillingError(Exception):
    """Base exception for Stripe adapter errors."""

    pass


class StripeNotConfiguredError(StripeBillingError):
    """Raised when Stripe keys or price ids are missing."""

    pass


class StripeAPIError(StripeBillingError):
    """Raised when the Stripe API returns an error."""

    pass


class StripeSignatureError(StripeBillingError):
    """Raised when a webhook signature is missing or does not verify."""

    pass


@dataclass
class StripeSubscriptionInfo:
    """The parts of a Stripe subscription this application stores."""

    id: str
    customer_id: Optional[str]
    status: str
    plan_id: Optional[str]
    price_id: Optional[str]
    current_period_start: Optional[datetime]
    current_period_end: Optional[datetime]
    user_id: Optional[str] = None

    @classmethod
    def from_api_object(cls, data: Any) -> "StripeSubscriptionInfo":
        """Build from a Stripe subscription object or an event's plain dict."""
        metadata = data.get("metadata") or {}
        items = (data.get("items") or {}).get("data") or []
        first_item = items[0] if items else {}
        price = first_item.get("price") or {}

        # Newer API versions moved the billing period onto subscription items
        period_start = data.get("current_period_start") or first_item.get("current_period_start")
        period_end = data.get("current_period_end") or first_item.get("current_period_end")

        customer = data.get("customer")
        if customer is not None and not isinstance(customer, str):
            customer = customer.get("id")

        return cls(
            id=data["id"],
            customer_id=customer,
            status=data.get("status") or "incomplete",
            plan_id=metadata.get("plan_id") or metadata.get("planId"),
            price_id=price.get("id"),
            current_period_start=_from_timestamp(period_start),
            current_period_end=_from_timestamp(period_end),
            user_id=metadata.get("user_id") or metadata.get("userId"),
        )


def _from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=UTC)


class StripeBillingService:
    """Stripe client for checkout, portal and webhooks."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        price_ids: Optional[dict[str, Optional[str]]] = None,
        frontend_url: Optional[str] = None,
        trial_days: Optional[int] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.stripe_secret_key
        self._webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.stripe_webhook_secret
        )
        self._price_ids = price_ids if price_ids is not None else settings.stripe_price_ids
        self._frontend_url = (frontend_url or settings.frontend_url).rstrip("/")
        self._trial_days = settings.stripe_trial_days if trial_days is None else trial_days

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    def plan_for_price(self, price_id: Optional[str]) -> Optional[str]:
        if not price_id:
            return None
        for plan_id, configured in self._price_ids.items():
            if configured and configured == price_id:
                return plan_id
        return None

    async def _call(self, fn, *args, **kwargs):
        """Run a Stripe SDK call off the event loop and translate its errors."""
        if not self._api_key:
            raise StripeNotConfiguredError("STRIPE_SECRET_KEY is not configured")
        try:
            return await asyncio.to_thread(fn, *args, api_key=self._api_key, **kwargs)
        except stripe.StripeError as e:
            logger.error("Stripe API error: %s", e)
            raise StripeAPIError(str(e)) from e

    async def get_or_create_customer(
        self,
        email: str,
        user_id: str,
        name: Optional[str] = None,
        existing_customer_id: Optional[str] = None,
    ) -> str:
        """Return the Stripe customer id for an account, creating one if needed."""
        if existing_customer_id:
            return existing_customer_id
        customer = await self._call(
            stripe.Customer.create,
            email=email,
            name=name or None,
            metadata={"user_id": user_id},
        )
        logger.info("Created Stripe customer %s for user %s", customer["id"], user_id)
        return customer["id"]

    async def create_checkout_session(
        self,
        customer_id: str,
        plan_id: str,
        user_id: str,
    ) -> dict[str, str]:
        """Create a subscription-mode checkout session. Returns its id and URL."""
        if plan_id not in CHECKOUT_PLANS:
            raise StripeBillingError(f"Unknown plan: {plan_id}")
        price_id = self._price_ids.get(plan_id)
        if not price_id:
            raise StripeNotConfiguredError(f"No Stripe price configured for plan {plan_id}")

        metadata = {"user_id": user_id, "plan_id": plan_id}
        subscription_data: dict[str, Any] = {"metadata": metadata}
        if self._trial_days:
            subscription_data["trial_period_days"] = self._trial_days

        session = await self._call(
            stripe.checkout.Session.create,
            customer=customer_id,
            mode="subscription",
            payment_method_types=["card"],
            line_items=[{"price": price_id, "quantity": 1}],
            subscription_data=subscription_data,
            metadata=metadata,
            success_url=f"{self._frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{self._frontend_url}/pricing?canceled=true",
        )
        return {"session_id": session["id"], "url": session["url"]}

    async def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        session = await self._call(stripe.checkout.Session.retrieve, session_id)
        customer_details = session.get("customer_details") or {}
        return {
            "id": session["id"],
            "payment_status": session.get("payment_status"),
            "customer_email": customer_details.get("email") or session.get("customer_email"),
            "amount_total": session.get("amount_total"),
            "currency": session.get("currency"),
            "client_reference_id": session.get("client_reference_id"),
            "customer_id": session.get("customer"),
        }

    async def create_portal_session(self, customer_id: str) -> str:
        """Create a billing portal session and return its URL."""
        session = await self._call(
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=f"{self._frontend_url}/dashboard",
        )
        return session["url"]

    async def retrieve_subscription(self, subscription_id: str) -> StripeSubscriptionInfo:
        subscription = await self._call(stripe.Subscription.retrieve, subscription_id)
        return StripeSubscriptionInfo.from_api_object(subscription)

    def verify_webhook(self, payload: bytes, signature: Optional[str]) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header and return the event as a plain dict.

        Raises:
            StripeNotConfiguredError: No webhook secret configured
            StripeSignatureError: Header missing or signature invalid
        """
        if not self._webhook_secret:
            raise StripeNotConfiguredError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise StripeSignatureError("Missing Stripe-Signature header")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise StripeSignatureError("Invalid webhook payload") from e
        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                self._webhook_secret,
                stripe.Webhook.DEFAULT_TOLERANCE,
            )
        except stripe.SignatureVerificationError as e:
            raise StripeSignatureError("Invalid signature") from e

        try:
            event = json.loads(body)
        except json.JSONDecodeError as e:
            raise StripeSignatureError("Invalid webhook payload") from e
        if not isinstance(event, dict) or "type" not in event:
            raise StripeSignatureError("Invalid webhook payload")
        return event


# Singleton instance
stripe_billing_service = StripeBillingService()
