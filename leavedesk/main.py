"""Leavedesk — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# Model modules imported so cross-module relationships resolve
import leavedesk.common.audit  # noqa: F401
import leavedesk.leave.models  # noqa: F401
import leavedesk.org.models  # noqa: F401
from leavedesk.common.exceptions import register_exception_handlers
from leavedesk.common.rate_limit import limiter
from leavedesk.config import settings
from leavedesk.database import engine
from leavedesk.leave.router import router as leave_router

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


def configure_logging() -> None:
    """Root logging from LOG_LEVEL; SQL echo only in development."""
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    if settings.ENVIRONMENT != "development":
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Leavedesk %s starting (environment=%s)", VERSION, settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("Leavedesk stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Leavedesk",
        description="Leave requests, approvals and the leave balance ledger",
        version=VERSION,
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": VERSION,
            "environment": settings.ENVIRONMENT,
        }

    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])

    return app


app = create_app()
