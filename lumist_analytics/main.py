"""
FastAPI application entry point for the Lumist analytics API.

  uvicorn lumist_analytics.main:app --reload
"""

from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from lumist_analytics import __version__
from lumist_analytics.core.config import settings
from lumist_analytics.core.observability import (
    get_logger,
    get_metrics,
    get_metrics_content_type,
    setup_logging,
)
from lumist_analytics.routers import acquisition, revenue, sat, social
from lumist_analytics.routers.dependencies import get_report_service

logger = get_logger(__name__)


def create_app() -> FastAPI:
    """Build the application with CORS, service endpoints and the API routers."""
    setup_logging()

    app = FastAPI(
        title="Lumist Analytics API",
        description="Revenue, subscription, social media and SAT seat analytics",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event():
        logger.info(
            f"application_startup - environment={settings.environment}, log_level={settings.log_level}"
        )

    @app.on_event("shutdown")
    async def shutdown_event():
        if get_report_service.cache_info().currsize:
            await get_report_service().close()
        logger.info("application_shutdown")

    @app.get("/health")
    async def health_check():
        """Service status and which data sources are configured."""
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.environment,
            "dependencies": {
                "analytics_store": "configured" if settings.supabase_url else "missing",
                "social_store": "configured" if settings.social_supabase_url else "missing",
            },
        }

    if settings.enable_metrics:
        @app.get("/metrics")
        async def metrics():
            """Prometheus metrics in text exposition format."""
            return Response(content=get_metrics(), media_type=get_metrics_content_type())

    @app.get("/")
    async def root():
        return {
            "name": "Lumist Analytics API",
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
            "metrics": "/metrics",
        }

    app.include_router(revenue.router, prefix="/api/v1/revenue", tags=["Revenue"])
    app.include_router(sat.router, prefix="/api/v1/sat", tags=["SAT Tracker"])
    app.include_router(social.router, prefix="/api/v1/social", tags=["Social Media"])
    app.include_router(acquisition.router, prefix="/api/v1/acquisition", tags=["Acquisition"])
    logger.info("Revenue, SAT, social and acquisition endpoints registered at /api/v1")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "lumist_analytics.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
