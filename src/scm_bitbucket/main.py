"""FastAPI application exposing the Bitbucket adapter's webhook receiver."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI

from .api.routes import router as api_router
from .bitbucket import BitbucketScm
from .config import get_settings
from .observability.logging import configure_logging
from .scm.registry import ScmRegistry

logger = logging.getLogger(__name__)


def build_registry() -> ScmRegistry:
    """Registry holding the Bitbucket plugin configured from settings."""
    settings = get_settings()
    registry = ScmRegistry()
    registry.register(BitbucketScm(settings.to_scm_config()))
    return registry


def create_app(registry: Optional[ScmRegistry] = None) -> FastAPI:
    """Create and configure FastAPI application.

    Without an explicit registry one is built from settings at startup, so a
    missing OAuth credential fails the service before it accepts traffic.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(
            environment=settings.environment,
            log_level="DEBUG" if settings.debug else settings.log_level,
        )
        if app.state.scm_registry is None:
            app.state.scm_registry = build_registry()

        logger.info("%s v%s started", settings.app_name, settings.app_version)
        logger.info("SCM contexts: %s", ", ".join(app.state.scm_registry.list_scm_contexts()))

        yield

        await app.state.scm_registry.aclose()
        logger.info("%s shutdown complete", settings.app_name)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Bitbucket Cloud SCM adapter",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.scm_registry = registry

    # Include API routes
    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.app_version,
        }

    return app


def main():
    """Run the service with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "scm_bitbucket.main:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
    )


if __name__ == "__main__":
    main()
