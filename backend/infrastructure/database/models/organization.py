"""
Organization (agency team) and membership models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional, Union
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, utc_now


class TeamRole(str, Enum):
    """Team member role enumeration."""

    OWNER = "OWNER"  # Created the organization, cannot be demoted or removed
    ADMIN = "ADMIN"  # Manages members
    MEMBER = "MEMBER"  # Runs analyses
    VIEWER = "VIEWER"  # Read-only

    @property
    def can_manage(self) -> bool:
        """Whether this role may invite, remove or re-role members."""
        return self in (TeamRole.OWNER, TeamRole.ADMIN)

    @property
    def is_protected(self) -> bool:
        """Whether members holding this role are immune to removal and role changes."""
        return self is TeamRole.OWNER

    @classmethod
    def assignable(cls) -> tuple["TeamRole", ...]:
        """Roles that may be granted through invite or role change."""
        return tuple(role for role in cls if role is not cls.OWNER)


def can_manage(role: Union[TeamRole, str, None]) -> bool:
    if role is None:
        return False
    try:
        return TeamRole(role).can_manage
    except ValueError:
        return False


def is_protected(role: Union[TeamRole, str, None]) -> bool:
    if role is None:
        return False
    try:
        return TeamRole(role).is_protected
    except ValueError:
        return False


class Organization(Base, TimestampMixin):
    """Agency organization grouping several accounts."""

    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    owner_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, slug={self.slug})>"


class TeamMember(Base):
    """Membership of an account in an organization."""

    __tablename__ = "team_members"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4()),
    )
    organization_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default=TeamRole.MEMBER.value)
    invited_by: Mapped[Optional[str]] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    invited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )
    joined_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_team_members_org_user"),
        Index("ix_team_members_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<TeamMember(org={self.organization_id}, user={self.user_id}, role={self.role})>"
