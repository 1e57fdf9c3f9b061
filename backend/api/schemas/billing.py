"""
Billing request and response schemas.
"""

from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict


class PlanInfo(BaseModel):
    id: str
    name: str
    price_monthly: int
    analyses_per_month: int
    features: List[str]


class PricingResponse(BaseModel):
    plans: List[PlanInfo]


class CheckoutRequest(BaseModel):
    plan_id: Literal["starter", "pro", "agency"]


class CheckoutResponse(BaseModel):
    session_id: str
    url: str


class PortalResponse(BaseModel):
    url: str


class VerifySessionResponse(BaseModel):
    id: str
    payment_status: Optional[str] = None
    customer_email: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None


class SubscriptionRecord(BaseModel):
    stripe_subscription_id: str
    status: str
    plan_id: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class UsageSummary(BaseModel):
    tier: str
    used: int
    limit: int
    remaining: Union[int, str]
    resets_at: str


class SubscriptionStatusResponse(BaseModel):
    subscription_tier: str
    has_stripe_customer: bool
    subscription: Optional[SubscriptionRecord] = None
    usage: UsageSummary
