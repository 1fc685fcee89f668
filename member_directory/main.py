"""
Member Directory - Main Application Entry Point
Multi-tenant member directory synced from Whop membership webhooks
"""

from typing import Optional
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import structlog

from member_directory.core.config import Settings, get_settings
from member_directory.core.database import Database
from member_directory.core.timeutils import utcnow
from member_directory.services.whop import WhopAPIClient
from member_directory.api import directory, tenants, waitlist, webhooks


def configure_logging(settings: Settings) -> None:
    """Configure structured logging"""
    logging.basicConfig(format="%(message)s", level=settings.LOG_LEVEL.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    settings: Settings = app.state.settings
    logger.info("Initializing Member Directory backend", environment=settings.ENVIRONMENT)
    if settings.AUTO_CREATE_TABLES:
        await app.state.db.create_all()

    base_url = settings.BASE_URL or "http://localhost:8000"
    logger.info("Webhook endpoint ready", url=f"{base_url}/webhook")

    yield

    logger.info("Shutting down Member Directory backend")
    await app.state.whop_client.aclose()
    await app.state.db.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application with its own database and Whop client"""
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="Member Directory API",
        description="Multi-tenant member directory fed by Whop membership webhooks",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = Database(settings.DATABASE_URL, echo=settings.DEBUG)
    app.state.whop_client = WhopAPIClient(
        api_key=settings.WHOP_API_KEY,
        base_url=settings.WHOP_API_BASE_URL,
        timeout=settings.WHOP_API_TIMEOUT_SECONDS,
    )

    # Configure middleware stack
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(directory.router, tags=["directory"])
    app.include_router(tenants.router, prefix="/api/v1/tenants", tags=["tenants"])
    app.include_router(waitlist.router, prefix="/api/v1/waitlist", tags=["waitlist"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "member-directory-api",
            "environment": settings.ENVIRONMENT,
            "timestamp": utcnow().isoformat(),
        }

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "Member Directory API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "member_directory.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
