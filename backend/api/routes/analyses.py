"""
Recipe analysis API routes.
"""

import logging
import math
from typing import Annotated, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.background import BackgroundTask

from adapters.ai.anthropic_adapter import recipe_seo_service
from adapters.webhooks.dispatcher import deliver_event, load_webhook_targets
from api.middleware.rate_limit import get_rate_limit, limiter
from api.routes.auth import get_current_user
from api.schemas.analysis import (
    AnalysisCreateRequest,
    AnalysisCreateResponse,
    AnalysisListResponse,
    AnalysisResponse,
    SchemaMarkupRequest,
    SchemaMarkupResponse,
)
from api.utils import require_uuid
from infrastructure.database.connection import get_db
from infrastructure.database.models.analysis import RecipeAnalysis
from infrastructure.database.models.user import User
from services.recipe_analysis import (
    AccountNotFoundError,
    AnalysisPersistenceError,
    AnalysisValidationError,
    QuotaExceededError,
    RecipeAnalysisService,
)
from services.recipe_payload import build_full_recipe_schema

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analyses", tags=["Analyses"])

NOT_FOUND_DETAIL = "Analysis not found or access denied"


def get_analysis_service(db: AsyncSession = Depends(get_db)) -> RecipeAnalysisService:
    return RecipeAnalysisService(db, ai_service=recipe_seo_service)


@router.post("", response_model=AnalysisCreateResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(get_rate_limit("analysis"))
async def create_analysis(
    request: Request,
    body: AnalysisCreateRequest,
    background_tasks: BackgroundTasks,
    current_user: Annotated[User, Depends(get_current_user)],
    service: Annotated[RecipeAnalysisService, Depends(get_analysis_service)],
    db: AsyncSession = Depends(get_db),
):
    """
    Analyze a recipe page and store the result.

    Rejected with 403 once the monthly quota of the caller's plan is used up.
    """
    # The service may roll back the session, so keep plain values only
    account_id = current_user.id

    try:
        submission = await service.submit_analysis(
            account_id,
            body.recipe_url,
            target_keyword=body.target_keyword,
            current_title=body.current_title,
            current_description=body.current_description,
        )
    except AnalysisValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": e.message, "details": {"field": e.field}},
        )
    except QuotaExceededError as e:
        targets = await load_webhook_targets(db, account_id, "usage.limit.reached")
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"error": "Usage limit exceeded", "details": e.to_dict()},
            background=BackgroundTask(deliver_event, targets, "usage.limit.reached", e.to_dict()),
        )
    except AccountNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    except AnalysisPersistenceError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store analysis",
        )

    analysis = submission.analysis
    targets = await load_webhook_targets(db, account_id, "analysis.completed")
    if targets:
        background_tasks.add_task(
            deliver_event,
            targets,
            "analysis.completed",
            {
                "analysis_id": analysis.id,
                "recipe_url": analysis.recipe_url,
                "seo_score": analysis.seo_score,
                "optimized_title": analysis.optimized_title,
            },
        )

    return {
        "analysis": AnalysisResponse.model_validate(analysis),
        "usage_remaining": submission.usage_remaining,
    }


@router.get("", response_model=AnalysisListResponse)
async def list_analyses(
    current_user: Annotated[User, Depends(get_current_user)],
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = Query(None, max_length=200),
    db: AsyncSession = Depends(get_db),
):
    """List the caller's analyses, newest first, with optional text search."""
    conditions = [RecipeAnalysis.user_id == current_user.id]
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        conditions.append(
            or_(
                RecipeAnalysis.original_title.ilike(pattern),
                RecipeAnalysis.optimized_title.ilike(pattern),
                RecipeAnalysis.recipe_url.ilike(pattern),
            )
        )

    total = (
        await db.execute(select(func.count(RecipeAnalysis.id)).where(*conditions))
    ).scalar_one()
    result = await db.execute(
        select(RecipeAnalysis)
        .where(*conditions)
        .order_by(RecipeAnalysis.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )

    return {
        "analyses": result.scalars().all(),
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    }


@router.post("/schema-markup", response_model=SchemaMarkupResponse)
async def generate_schema_markup(
    body: SchemaMarkupRequest,
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Build complete Recipe JSON-LD from structured recipe data."""
    return {"schema_markup": build_full_recipe_schema(body.model_dump())}


@router.get("/{analysis_id}", response_model=AnalysisResponse)
async def get_analysis(
    analysis_id: str,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
):
    """Fetch one of the caller's analyses."""
    require_uuid(analysis_id, NOT_FOUND_DETAIL)

    result = await db.execute(
        select(RecipeAnalysis).where(
            RecipeAnalysis.id == analysis_id,
            RecipeAnalysis.user_id == current_user.id,
        )
    )
    analysis = result.scalar_one_or_none()
    if analysis is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=NOT_FOUND_DETAIL)
    return analysis
