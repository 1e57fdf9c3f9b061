"""
User (subscriber account) database model.
"""

from enum import Enum
from typing import Optional
from uuid import uuid4

from sqlalchemy import Index, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class UserStatus(str, Enum):
    """User account status enumeration."""

    ACTIVE = "active"
    SUSPENDED = "suspended"


class SubscriptionTier(str, Enum):
    """Subscription tier enumeration."""

    STARTER = "starter"
    PRO = "pro"
    AGENCY = "agency"


class User(Base, TimestampMixin):
    """Subscriber account model."""

    __tablename__ = "users"

    # Primary key
    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    # Basic info
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Authentication
    password_hash: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50),
        default=UserStatus.ACTIVE.value,
        nullable=False,
    )

    # Subscription
    subscription_tier: Mapped[str] = mapped_column(
        String(50),
        default=SubscriptionTier.STARTER.value,
        nullable=False,
    )
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, unique=True
    )

    # White-label branding (agency tier)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    company_logo: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    primary_color: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    custom_domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_users_subscription_tier", "subscription_tier"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, tier={self.subscription_tier})>"

    @property
    def is_active(self) -> bool:
        """Check if user account is active."""
        return self.status == UserStatus.ACTIVE.value

    @property
    def has_stripe_customer(self) -> bool:
        return bool(self.stripe_customer_id)
