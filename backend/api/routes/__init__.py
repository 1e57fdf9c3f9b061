"""API Routes."""

from fastapi import APIRouter

from .agency import router as agency_router
from .analyses import router as analyses_router
from .auth import router as auth_router
from .billing import router as billing_router
from .dashboard import router as dashboard_router
from .health import router as health_router

# Create main API router
api_router = APIRouter()

# Include route modules
api_router.include_router(health_router, tags=["Health"])
api_router.include_router(auth_router)
api_router.include_router(analyses_router)
api_router.include_router(dashboard_router)
api_router.include_router(billing_router)
api_router.include_router(agency_router)
