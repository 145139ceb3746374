"""Main API routes for the SCM adapter service."""

from fastapi import APIRouter

from .stats import router as stats_router
from .webhooks import router as webhooks_router

# Main API router
router = APIRouter()

# Include sub-routers
router.include_router(webhooks_router, tags=["webhooks"])
router.include_router(stats_router, tags=["stats"])
