"""
Agency tier API routes.

Team management, white-label branding, API keys and outbound webhooks.
Team endpoints are gated by membership role in the organization; everything
else requires the caller's own subscription to be on the agency plan.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from adapters.webhooks.dispatcher import deliver_event, load_webhook_targets
from api.routes.auth import get_current_user
from api.schemas.agency import (
    AgencyStatsResponse,
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyResponse,
    InviteMemberRequest,
    TeamListResponse,
    TeamMemberResponse,
    UpdateMemberRoleRequest,
    WebhookCreatedResponse,
    WebhookCreateRequest,
    WebhookEventsResponse,
    WebhookResponse,
    WhiteLabelSettings,
)
from api.utils import require_uuid
from core.plans import has_feature
from core.security.api_keys import (
    api_key_preview,
    generate_api_key,
    generate_webhook_secret,
    hash_api_key,
)
from infrastructure.database.connection import get_db
from infrastructure.database.models.analysis import RecipeAnalysis, UsageLog
from infrastructure.database.models.integration import WEBHOOK_EVENTS, ApiKey, WebhookEndpoint
from infrastructure.database.models.user import User
from services.team_roles import (
    TeamConflictError,
    TeamError,
    TeamNotFoundError,
    TeamPermissionError,
    TeamService,
    TeamValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agency", tags=["Agency"])

_TEAM_ERROR_STATUS = {
    TeamPermissionError: status.HTTP_403_FORBIDDEN,
    TeamNotFoundError: status.HTTP_404_NOT_FOUND,
    TeamConflictError: status.HTTP_409_CONFLICT,
    TeamValidationError: status.HTTP_400_BAD_REQUEST,
}


# ============================================================================
# Helper Functions
# ============================================================================


def require_feature(feature: str):
    """Dependency factory rejecting callers whose plan lacks ``feature``."""

    def dependency(current_user: Annotated[User, Depends(get_current_user)]) -> User:
        if not has_feature(current_user.subscription_tier, feature):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Agency subscription required",
            )
        return current_user

    return dependency


require_agency = require_feature("team_collaboration")
require_white_label = require_feature("white_label")
require_integrations = require_feature("custom_integrations")


def _team_http_error(e: TeamError) -> HTTPException:
    return HTTPException(
        status_code=_TEAM_ERROR_STATUS.get(type(e), status.HTTP_400_BAD_REQUEST),
        detail=e.message,
    )


def _api_key_response(api_key: ApiKey) -> dict:
    return {
        "id": api_key.id,
        "name": api_key.name,
        "key_preview": api_key.key_prefix,
        "created_at": api_key.created_at,
        "last_used_at": api_key.last_used_at,
    }


# ============================================================================
# Stats
# ============================================================================


@router.get("/stats", response_model=AgencyStatsResponse)
async def get_agency_stats(
    current_user: Annotated[User, Depends(require_agency)],
    db: AsyncSession = Depends(get_db),
):
    """Totals for the caller's agency organization."""
    team = TeamService(db)
    organization = await team.ensure_agency_organization(current_user)

    total_analyses = (
        await db.execute(
            select(func.count(RecipeAnalysis.id)).where(RecipeAnalysis.user_id == current_user.id)
        )
    ).scalar_one()
    api_calls = (
        await db.execute(
            select(func.count(UsageLog.id)).where(
                UsageLog.user_id == current_user.id,
                UsageLog.action == "api_call",
            )
        )
    ).scalar_one()

    return {
        "total_analyses": total_analyses,
        "team_members": await team.count_members(organization.id),
        "api_calls": api_calls,
        "organization_id": organization.id,
    }


# ============================================================================
# Team
# ============================================================================


@router.get("/team", response_model=TeamListResponse)
async def list_team(
    current_user: Annotated[User, Depends(get_current_user)],
    organization_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """List members of an organization the caller manages."""
    require_uuid(organization_id, "Insufficient permissions", status.HTTP_403_FORBIDDEN)
    try:
        members = await TeamService(db).list_members(organization_id, current_user.id)
    except TeamError as e:
        raise _team_http_error(e)
    return {"members": members}


@router.post("/team/invite", response_model=TeamMemberResponse, status_code=status.HTTP_201_CREATED)
async def invite_team_member(
    body: InviteMemberRequest,
    background_tasks: BackgroundTasks,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Add a registered account to the organization with a non-owner role."""
    requester_id = current_user.id
    require_uuid(body.organization_id, "Insufficient permissions", status.HTTP_403_FORBIDDEN)
    try:
        member = await TeamService(db).invite_member(
            body.organization_id, requester_id, body.email, body.role
        )
    except TeamError as e:
        raise _team_http_error(e)

    targets = await load_webhook_targets(db, requester_id, "team.member.added")
    if targets:
        background_tasks.add_task(
            deliver_event,
            targets,
            "team.member.added",
            {
                "organization_id": body.organization_id,
                "member_id": member.id,
                "email": member.email,
                "role": member.role,
            },
        )
    return member


@router.patch("/team/{member_id}", response_model=TeamMemberResponse)
async def update_team_member_role(
    member_id: str,
    body: UpdateMemberRoleRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Change a member's role. The owner's role is fixed."""
    require_uuid(member_id, "Team member not found")
    try:
        member = await TeamService(db).change_role(member_id, current_user.id, body.role)
    except TeamError as e:
        raise _team_http_error(e)

    user = await db.get(User, member.user_id)
    return {
        "id": member.id,
        "user_id": member.user_id,
        "email": user.email if user else "",
        "name": user.name if user else None,
        "role": member.role,
        "invited_at": member.invited_at,
        "joined_at": member.joined_at,
    }


@router.delete("/team/{member_id}", status_code=status.HTTP_200_OK)
async def remove_team_member(
    member_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Remove a member. The owner cannot be removed."""
    require_uuid(member_id, "Team member not found")
    try:
        await TeamService(db).remove_member(member_id, current_user.id)
    except TeamError as e:
        raise _team_http_error(e)
    return {"message": "Team member removed"}


# ============================================================================
# White-label
# ============================================================================


@router.get("/white-label", response_model=WhiteLabelSettings)
async def get_white_label(current_user: Annotated[User, Depends(require_white_label)]):
    return current_user


@router.put("/white-label", response_model=WhiteLabelSettings)
async def update_white_label(
    body: WhiteLabelSettings,
    current_user: Annotated[User, Depends(require_white_label)],
    db: AsyncSession = Depends(get_db),
):
    """Update branding. Only fields present in the request are changed."""
    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    await db.commit()
    await db.refresh(current_user)
    logger.info("White-label settings updated", extra={"account_id": current_user.id})
    return current_user


# ============================================================================
# API keys
# ============================================================================


@router.get("/api-keys", response_model=list[ApiKeyResponse])
async def list_api_keys(
    current_user: Annotated[User, Depends(require_integrations)],
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(ApiKey).where(ApiKey.user_id == current_user.id).order_by(ApiKey.created_at.desc())
    )
    return [_api_key_response(k) for k in result.scalars().all()]


@router.post("/api-keys", response_model=ApiKeyCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_api_key(
    body: ApiKeyCreateRequest,
    current_user: Annotated[User, Depends(require_integrations)],
    db: AsyncSession = Depends(get_db),
):
    """
    Create an API key.

    The full key is only returned here; afterwards only its preview is shown.
    """
    raw_key = generate_api_key()
    api_key = ApiKey(
        user_id=current_user.id,
        name=body.name.strip(),
        key_prefix=api_key_preview(raw_key),
        key_hash=hash_api_key(raw_key),
    )
    db.add(api_key)
    await db.commit()
    await db.refresh(api_key)

    logger.info("API key %s created", api_key.id, extra={"account_id": current_user.id})
    return {**_api_key_response(api_key), "key": raw_key}


@router.delete("/api-keys/{key_id}", status_code=status.HTTP_200_OK)
async def delete_api_key(
    key_id: str,
    current_user: Annotated[User, Depends(require_integrations)],
    db: AsyncSession = Depends(get_db),
):
    require_uuid(key_id, "API key not found")
    result = await db.execute(
        select(ApiKey).where(ApiKey.id == key_id, ApiKey.user_id == current_user.id)
    )
    api_key = result.scalar_one_or_none()
    if api_key is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="API key not found")

    await db.delete(api_key)
    await db.commit()
    return {"message": "API key deleted"}


# ============================================================================
# Webhooks
# ============================================================================


@router.get("/webhooks/events", response_model=WebhookEventsResponse)
async def list_webhook_events(current_user: Annotated[User, Depends(require_integrations)]):
    return {"events": list(WEBHOOK_EVENTS)}


@router.get("/webhooks", response_model=list[WebhookResponse])
async def list_webhooks(
    current_user: Annotated[User, Depends(require_integrations)],
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(WebhookEndpoint)
        .where(WebhookEndpoint.user_id == current_user.id)
        .order_by(WebhookEndpoint.created_at.desc())
    )
    return result.scalars().all()


@router.post("/webhooks", response_model=WebhookCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    body: WebhookCreateRequest,
    current_user: Annotated[User, Depends(require_integrations)],
    db: AsyncSession = Depends(get_db),
):
    """Register an endpoint. The signing secret is only returned here."""
    endpoint = WebhookEndpoint(
        user_id=current_user.id,
        url=body.url,
        events=body.events,
        secret=generate_webhook_secret(),
        is_active=True,
    )
    db.add(endpoint)
    await db.commit()
    await db.refresh(endpoint)

    logger.info("Webhook endpoint %s registered", endpoint.id, extra={"account_id": current_user.id})
    return {
        "id": endpoint.id,
        "url": endpoint.url,
        "events": endpoint.events,
        "is_active": endpoint.is_active,
        "created_at": endpoint.created_at,
        "secret": endpoint.secret,
    }


@router.delete("/webhooks/{webhook_id}", status_code=status.HTTP_200_OK)
async def delete_webhook(
    webhook_id: str,
    current_user: Annotated[User, Depends(require_integrations)],
    db: AsyncSession = Depends(get_db),
):
    require_uuid(webhook_id, "Webhook not found")
    result = await db.execute(
        select(WebhookEndpoint).where(
            WebhookEndpoint.id == webhook_id,
            WebhookEndpoint.user_id == current_user.id,
        )
    )
    endpoint = result.scalar_one_or_none()
    if endpoint is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Webhook not found")

    await db.delete(endpoint)
    await db.commit()
    return {"message": "Webhook deleted"}
