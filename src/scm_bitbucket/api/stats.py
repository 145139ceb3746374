"""Executor and circuit breaker stats for every configured SCM."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/stats")
async def get_scm_stats(request: Request):
    """Request counters and breaker state keyed by scm context."""
    return request.app.state.scm_registry.stats()
