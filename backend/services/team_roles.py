"""
Agency team management.

Only OWNER and ADMIN members may invite, remove or re-role members, and the
OWNER can never be demoted or removed. The permission table itself lives on
``TeamRole``.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from infrastructure.database.models.base import utc_now
from infrastructure.database.models.organization import (
    Organization,
    TeamMember,
    TeamRole,
    can_manage,
    is_protected,
)
from infrastructure.database.models.user import User

logger = logging.getLogger(__name__)


class TeamError(Exception):
    """Base exception for team management."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TeamPermissionError(TeamError):
    """Requester lacks the role, or the target is protected."""


class TeamNotFoundError(TeamError):
    """Organization, member or invitee does not exist."""


class TeamConflictError(TeamError):
    """Invitee is already a member."""


class TeamValidationError(TeamError):
    """Role value not allowed for the operation."""


@dataclass
class MemberView:
    """A membership joined with the member's account details."""

    id: str
    user_id: str
    email: str
    name: Optional[str]
    role: str
    invited_at: object
    joined_at: object


def parse_assignable_role(value: str) -> TeamRole:
    try:
        role = TeamRole(str(value).upper())
    except ValueError:
        raise TeamValidationError(f"Invalid role: {value}")
    if role not in TeamRole.assignable():
        raise TeamValidationError("The OWNER role cannot be assigned")
    return role


class TeamService:
    """Team operations performed on behalf of one requesting account."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_membership(self, organization_id: str, user_id: str) -> Optional[TeamMember]:
        result = await self.db.execute(
            select(TeamMember).where(
                TeamMember.organization_id == organization_id,
                TeamMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def require_manager(self, organization_id: str, requester_id: str) -> TeamMember:
        membership = await self.get_membership(organization_id, requester_id)
        if membership is None or not can_manage(membership.role):
            raise TeamPermissionError("Insufficient permissions")
        return membership

    async def list_members(self, organization_id: str, requester_id: str) -> list[MemberView]:
        await self.require_manager(organization_id, requester_id)
        result = await self.db.execute(
            select(TeamMember, User)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.organization_id == organization_id)
            .order_by(TeamMember.invited_at.asc())
        )
        return [
            MemberView(
                id=member.id,
                user_id=user.id,
                email=user.email,
                name=user.name,
                role=member.role,
                invited_at=member.invited_at,
                joined_at=member.joined_at,
            )
            for member, user in result.all()
        ]

    async def invite_member(
        self,
        organization_id: str,
        requester_id: str,
        email: str,
        role: str,
    ) -> MemberView:
        """
        Add an existing account to the organization.

        The invitee must already have registered. Invitation emails are not
        sent; the member is added directly.
        """
        await self.require_manager(organization_id, requester_id)
        new_role = parse_assignable_role(role)

        result = await self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        invitee = result.scalar_one_or_none()
        if invitee is None:
            raise TeamNotFoundError(
                "User not found. They must register first before being invited."
            )
        if await self.get_membership(organization_id, invitee.id) is not None:
            raise TeamConflictError("User is already a team member")

        member = TeamMember(
            organization_id=organization_id,
            user_id=invitee.id,
            role=new_role.value,
            invited_by=requester_id,
            joined_at=utc_now(),
        )
        self.db.add(member)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise TeamConflictError("User is already a team member")

        logger.info(
            "Invitation email for %s to organization %s not sent: email delivery is not configured",
            invitee.email, organization_id,
        )
        return MemberView(
            id=member.id,
            user_id=invitee.id,
            email=invitee.email,
            name=invitee.name,
            role=member.role,
            invited_at=member.invited_at,
            joined_at=member.joined_at,
        )

    async def _load_target(self, member_id: str, requester_id: str) -> TeamMember:
        target = await self.db.get(TeamMember, member_id)
        if target is None:
            raise TeamNotFoundError("Team member not found")
        await self.require_manager(target.organization_id, requester_id)
        return target

    async def change_role(self, member_id: str, requester_id: str, role: str) -> TeamMember:
        target = await self._load_target(member_id, requester_id)
        if is_protected(target.role):
            raise TeamPermissionError("Cannot change the organization owner's role")
        new_role = parse_assignable_role(role)
        target.role = new_role.value
        await self.db.commit()
        logger.info("Member %s role changed to %s by %s", member_id, new_role.value, requester_id)
        return target

    async def remove_member(self, member_id: str, requester_id: str) -> None:
        target = await self._load_target(member_id, requester_id)
        if is_protected(target.role):
            raise TeamPermissionError("Cannot remove organization owner")
        await self.db.delete(target)
        await self.db.commit()
        logger.info("Member %s removed by %s", member_id, requester_id)

    async def ensure_agency_organization(self, user: User) -> Organization:
        """Return the organization owned by ``user``, creating it with an OWNER membership."""
        result = await self.db.execute(
            select(Organization).where(Organization.owner_id == user.id)
        )
        organization = result.scalars().first()
        if organization is not None:
            return organization

        organization = Organization(
            name=f"{user.name or 'Agency'} Organization",
            slug=f"org-{user.id}",
            description="Agency organization",
            owner_id=user.id,
        )
        self.db.add(organization)
        await self.db.flush()
        self.db.add(
            TeamMember(
                organization_id=organization.id,
                user_id=user.id,
                role=TeamRole.OWNER.value,
                joined_at=utc_now(),
            )
        )
        await self.db.commit()
        logger.info("Created organization %s for agency user %s", organization.id, user.id)
        return organization

    async def count_members(self, organization_id: str) -> int:
        result = await self.db.execute(
            select(func.count(TeamMember.id)).where(TeamMember.organization_id == organization_id)
        )
        return result.scalar_one()
