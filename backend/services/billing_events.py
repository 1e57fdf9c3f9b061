"""
Stripe webhook event processing.

Keeps the local subscriptions table and each account's subscription tier in
step with Stripe.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments.stripe_adapter import (
    StripeBillingService,
    StripeSubscriptionInfo,
    stripe_billing_service,
)
from core.plans import DEFAULT_TIER, PLANS
from infrastructure.database.models.billing import Subscription, SubscriptionStatus
from infrastructure.database.models.user import User

logger = logging.getLogger(__name__)


@dataclass
class BillingEventOutcome:
    """What processing an event did, and which outbound notification it triggers."""

    handled: bool
    user_id: Optional[str] = None
    notify_event: Optional[str] = None
    notify_data: dict[str, Any] = field(default_factory=dict)


class BillingEventProcessor:
    """Dispatches verified Stripe events to handlers."""

    def __init__(self, db: AsyncSession, billing: Optional[StripeBillingService] = None):
        self.db = db
        self.billing = billing or stripe_billing_service
        self.handlers = {
            "checkout.session.completed": self._handle_checkout_completed,
            "customer.subscription.created": self._handle_subscription_updated,
            "customer.subscription.updated": self._handle_subscription_updated,
            "customer.subscription.deleted": self._handle_subscription_deleted,
            "invoice.paid": self._handle_payment_succeeded,
            "invoice.payment_succeeded": self._handle_payment_succeeded,
            "invoice.payment_failed": self._handle_payment_failed,
        }

    async def process(self, event: dict[str, Any]) -> BillingEventOutcome:
        event_type = event.get("type", "")
        handler = self.handlers.get(event_type)
        if handler is None:
            logger.info("Ignoring unhandled Stripe event %s", event_type, extra={"event_type": event_type})
            return BillingEventOutcome(handled=False)

        obj = (event.get("data") or {}).get("object") or {}
        outcome = await handler(obj)
        await self.db.commit()
        logger.info(
            "Processed Stripe event %s (%s)", event_type, event.get("id"),
            extra={"event_type": event_type, "account_id": outcome.user_id},
        )
        return outcome

    # Lookups

    async def _find_subscription(self, stripe_subscription_id: str) -> Optional[Subscription]:
        result = await self.db.execute(
            select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
        )
        return result.scalar_one_or_none()

    async def _find_user(
        self, user_id: Optional[str] = None, customer_id: Optional[str] = None
    ) -> Optional[User]:
        if user_id:
            user = await self.db.get(User, user_id)
            if user is not None:
                return user
        if customer_id:
            result = await self.db.execute(select(User).where(User.stripe_customer_id == customer_id))
            return result.scalar_one_or_none()
        return None

    def _resolve_plan(self, info: StripeSubscriptionInfo, fallback: Optional[str] = None) -> Optional[str]:
        plan = info.plan_id or self.billing.plan_for_price(info.price_id) or fallback
        return plan if plan in PLANS else None

    async def _upsert_subscription(
        self, user: User, info: StripeSubscriptionInfo, plan_id: str
    ) -> Subscription:
        subscription = await self._find_subscription(info.id)
        if subscription is None:
            subscription = Subscription(
                user_id=user.id,
                stripe_subscription_id=info.id,
                status=info.status,
                plan_id=plan_id,
            )
            self.db.add(subscription)
        subscription.status = info.status
        subscription.plan_id = plan_id
        subscription.current_period_start = info.current_period_start
        subscription.current_period_end = info.current_period_end
        return subscription

    # Handlers

    async def _handle_checkout_completed(self, session: dict[str, Any]) -> BillingEventOutcome:
        metadata = session.get("metadata") or {}
        user_id = metadata.get("user_id") or session.get("client_reference_id")
        subscription_id = session.get("subscription")
        customer_id = session.get("customer")

        user = await self._find_user(user_id, customer_id)
        if user is None or not subscription_id:
            logger.warning(
                "Checkout session %s has no resolvable user or subscription", session.get("id")
            )
            return BillingEventOutcome(handled=False)

        info = await self.billing.retrieve_subscription(subscription_id)
        plan_id = self._resolve_plan(info, fallback=metadata.get("plan_id"))
        if plan_id is None:
            logger.warning("Checkout session %s has no known plan", session.get("id"))
            return BillingEventOutcome(handled=False, user_id=user.id)

        await self._upsert_subscription(user, info, plan_id)
        user.subscription_tier = plan_id
        if customer_id and not user.stripe_customer_id:
            user.stripe_customer_id = customer_id

        logger.info("User %s subscribed to %s", user.id, plan_id)
        return BillingEventOutcome(
            handled=True,
            user_id=user.id,
            notify_event="user.subscribed",
            notify_data={"plan_id": plan_id, "status": info.status},
        )

    async def _handle_subscription_updated(self, obj: dict[str, Any]) -> BillingEventOutcome:
        info = StripeSubscriptionInfo.from_api_object(obj)
        existing = await self._find_subscription(info.id)
        user = await self._find_user(
            existing.user_id if existing else info.user_id, info.customer_id
        )
        if user is None:
            logger.warning("Subscription %s does not match any user", info.id)
            return BillingEventOutcome(handled=False)

        plan_id = self._resolve_plan(info, fallback=existing.plan_id if existing else None)
        if plan_id is None:
            logger.warning("Subscription %s has no known plan", info.id)
            return BillingEventOutcome(handled=False, user_id=user.id)

        await self._upsert_subscription(user, info, plan_id)
        if info.status in SubscriptionStatus.LIVE:
            user.subscription_tier = plan_id
        return BillingEventOutcome(handled=True, user_id=user.id)

    async def _handle_subscription_deleted(self, obj: dict[str, Any]) -> BillingEventOutcome:
        info = StripeSubscriptionInfo.from_api_object(obj)
        subscription = await self._find_subscription(info.id)
        user = await self._find_user(
            subscription.user_id if subscription else info.user_id, info.customer_id
        )
        if subscription is not None:
            subscription.status = SubscriptionStatus.CANCELED
        if user is None:
            return BillingEventOutcome(handled=subscription is not None)

        user.subscription_tier = DEFAULT_TIER
        logger.info("Subscription %s canceled, user %s back on %s", info.id, user.id, DEFAULT_TIER)
        return BillingEventOutcome(handled=True, user_id=user.id)

    async def _handle_payment_succeeded(self, invoice: dict[str, Any]) -> BillingEventOutcome:
        logger.info(
            "Invoice %s paid for subscription %s", invoice.get("id"), invoice.get("subscription")
        )
        return BillingEventOutcome(handled=True)

    async def _handle_payment_failed(self, invoice: dict[str, Any]) -> BillingEventOutcome:
        subscription_id = invoice.get("subscription")
        logger.warning("Invoice %s payment failed for subscription %s", invoice.get("id"), subscription_id)
        if not subscription_id:
            return BillingEventOutcome(handled=True)
        subscription = await self._find_subscription(subscription_id)
        if subscription is None:
            return BillingEventOutcome(handled=True)
        subscription.status = SubscriptionStatus.PAST_DUE
        return BillingEventOutcome(handled=True, user_id=subscription.user_id)
