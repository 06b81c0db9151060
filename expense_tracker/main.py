"""Expense Tracker — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from expense_tracker.common.exceptions import register_exception_handlers
from expense_tracker.common.rate_limit import limiter
from expense_tracker.config import settings
from expense_tracker.dashboard.router import router as dashboard_router
from expense_tracker.database import engine
from expense_tracker.expenses.router import admin_router as admin_expenses_router
from expense_tracker.expenses.router import router as expenses_router
from expense_tracker.logging_config import setup_logging
from expense_tracker.notifications.router import admin_router as admin_notifications_router
from expense_tracker.notifications.router import router as notifications_router
from expense_tracker.reports.router import admin_router as admin_reports_router
from expense_tracker.reports.router import router as reports_router

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    setup_logging(debug=settings.debug, log_file=settings.LOG_FILE or None)
    logger.info("%s %s starting (%s)", settings.APP_NAME, VERSION, settings.ENVIRONMENT)
    yield
    await engine.dispose()
    logger.info("%s stopped", settings.APP_NAME)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.APP_NAME,
        description="Expense reports: submission, approval and reimbursement",
        version=VERSION,
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers ({"error": ...} bodies)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

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

    # Register routers
    app.include_router(reports_router, prefix="/api/v1/reports", tags=["reports"])
    app.include_router(expenses_router, prefix="/api/v1/expenses", tags=["expenses"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])
    app.include_router(admin_reports_router, prefix="/api/v1/admin/reports", tags=["admin"])
    app.include_router(admin_expenses_router, prefix="/api/v1/admin/expenses", tags=["admin"])
    app.include_router(
        admin_notifications_router, prefix="/api/v1/admin/notifications", tags=["admin"],
    )
    app.include_router(dashboard_router, prefix="/api/v1/admin/dashboard", tags=["dashboard"])

    return app


app = create_app()
