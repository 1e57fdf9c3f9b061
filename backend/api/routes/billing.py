"""
Billing and subscription API routes.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.payments.stripe_adapter import (
    StripeBillingError,
    StripeNotConfiguredError,
    StripeSignatureError,
    stripe_billing_service,
)
from adapters.webhooks.dispatcher import deliver_event, load_webhook_targets
from api.middleware.rate_limit import get_rate_limit, limiter
from api.routes.auth import get_current_user
from api.schemas.billing import (
    CheckoutRequest,
    CheckoutResponse,
    PortalResponse,
    PricingResponse,
    SubscriptionStatusResponse,
    VerifySessionResponse,
)
from core.plans import PLANS, resolve_tier
from infrastructure.database.connection import get_db
from infrastructure.database.models.billing import Subscription, SubscriptionStatus
from infrastructure.database.models.user import User
from services.billing_events import BillingEventProcessor
from services.usage_quota import UsageQuotaService

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


def _billing_unavailable(e: StripeBillingError) -> HTTPException:
    if isinstance(e, StripeNotConfiguredError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Billing is not configured",
        )
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Payment provider error",
    )


@router.get("/pricing", response_model=PricingResponse)
async def get_pricing():
    """
    Get available subscription plans and pricing.

    Public endpoint - no authentication required.
    """
    return {
        "plans": [
            {
                "id": plan_id,
                "name": plan["name"],
                "price_monthly": plan["price_monthly"],
                "analyses_per_month": plan["limits"]["analyses_per_month"],
                "features": plan["features"],
            }
            for plan_id, plan in PLANS.items()
        ]
    }


@router.get("/subscription", response_model=SubscriptionStatusResponse)
async def get_subscription(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Current tier, live Stripe subscription (if any) and this month's usage."""
    result = await db.execute(
        select(Subscription)
        .where(
            Subscription.user_id == current_user.id,
            Subscription.status.in_(SubscriptionStatus.LIVE),
        )
        .order_by(Subscription.created_at.desc())
    )
    subscription = result.scalars().first()
    quota = await UsageQuotaService(db).get_quota_status(current_user)

    return {
        "subscription_tier": resolve_tier(current_user.subscription_tier),
        "has_stripe_customer": current_user.has_stripe_customer,
        "subscription": subscription,
        "usage": quota.to_dict(),
    }


@router.post("/checkout", response_model=CheckoutResponse)
@limiter.limit(get_rate_limit("checkout"))
async def create_checkout(
    request: Request,
    checkout_request: CheckoutRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """
    Start a Stripe checkout for a plan.

    Creates the Stripe customer on first use and remembers it on the account.
    """
    try:
        customer_id = await stripe_billing_service.get_or_create_customer(
            email=current_user.email,
            user_id=current_user.id,
            name=current_user.name,
            existing_customer_id=current_user.stripe_customer_id,
        )
        if current_user.stripe_customer_id != customer_id:
            current_user.stripe_customer_id = customer_id
            await db.commit()

        session = await stripe_billing_service.create_checkout_session(
            customer_id=customer_id,
            plan_id=checkout_request.plan_id,
            user_id=current_user.id,
        )
    except StripeBillingError as e:
        logger.error("Checkout failed for user %s: %s", current_user.id, e)
        raise _billing_unavailable(e)

    return session


@router.get("/verify-session", response_model=VerifySessionResponse)
async def verify_session(
    current_user: Annotated[User, Depends(get_current_user)],
    session_id: str = Query(..., min_length=1),
):
    """Look up a completed checkout session for the success page."""
    try:
        session = await stripe_billing_service.retrieve_checkout_session(session_id)
    except StripeBillingError as e:
        raise _billing_unavailable(e)

    if session.get("customer_id") and session["customer_id"] != current_user.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


@router.post("/portal", response_model=PortalResponse)
async def create_portal(
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Open the Stripe billing portal for the caller's customer record."""
    if not current_user.stripe_customer_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No customer found")
    try:
        url = await stripe_billing_service.create_portal_session(current_user.stripe_customer_id)
    except StripeBillingError as e:
        raise _billing_unavailable(e)
    return {"url": url}


@router.post("/webhook")
@limiter.limit(get_rate_limit("webhook"))
async def handle_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
    db: AsyncSession = Depends(get_db),
):
    """
    Handle Stripe webhook events.

    The signature is verified before anything in the payload is trusted.
    """
    body = await request.body()

    try:
        event = stripe_billing_service.verify_webhook(body, stripe_signature)
    except StripeNotConfiguredError:
        logger.error("Webhook rejected: STRIPE_WEBHOOK_SECRET not configured")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Webhook verification not configured",
        )
    except StripeSignatureError as e:
        logger.warning("Rejected Stripe webhook: %s", e)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        outcome = await BillingEventProcessor(db, stripe_billing_service).process(event)
    except StripeBillingError as e:
        # Non-2xx makes Stripe retry the delivery later
        await db.rollback()
        logger.error("Failed to process Stripe event %s: %s", event.get("id"), e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )

    if outcome.notify_event and outcome.user_id:
        targets = await load_webhook_targets(db, outcome.user_id, outcome.notify_event)
        if targets:
            background_tasks.add_task(deliver_event, targets, outcome.notify_event, outcome.notify_data)

    return {"received": True}
