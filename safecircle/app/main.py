"""
FastAPI application entry point.

Run with:
    safecircle                      # console script, HOST / PORT / RELOAD from settings
    python -m safecircle.app.main

Or directly through uvicorn:
    uvicorn safecircle.app.main:app --port 8000
"""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ── Core infrastructure ──
from safecircle.app.core.config import settings
from safecircle.app.core.logging_config import setup_logging, get_logger
from safecircle.app.core.errors import register_error_handlers
from safecircle.app.core.middleware import RequestLoggingMiddleware
from safecircle.app.core.health import HealthStatus, run_health_check
from safecircle.app.api.deps import AppContext, build_context

# ── API routers ──
from safecircle.app.api.v1.sos import router as sos_router
from safecircle.app.api.v1.safety_check import router as safety_check_router
from safecircle.app.api.v1.alerts import router as alerts_router
from safecircle.app.api.v1.contacts import router as contacts_router
from safecircle.app.api.v1.settings import router as settings_router
from safecircle.app.api.v1.session import router as session_router
from safecircle.app.api.v1.location import router as location_router

# ── Initialise logging ──
setup_logging()
logger = get_logger(__name__)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    """
    Build the application. ``context`` replaces the configured wiring
    (tests pass one with in-memory storage and a scripted location source).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        ctx = context if context is not None else build_context()
        app.state.ctx = ctx
        await ctx.startup()
        yield
        await ctx.shutdown()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Personal safety service: emergency contacts, SOS countdown with "
            "hold-to-activate, safety-check auto-alert timer, alert history, "
            "continuous location tracking and best-effort notification fan-out."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # ── Middleware stack (order matters — outermost first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    register_error_handlers(app)

    app.include_router(sos_router)
    app.include_router(safety_check_router)
    app.include_router(alerts_router)
    app.include_router(contacts_router)
    app.include_router(settings_router)
    app.include_router(session_router)
    app.include_router(location_router)

    # ── Root & health endpoints ──

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "modules": [
                "sos",
                "safety-check",
                "alerts",
                "contacts",
                "settings",
                "session",
                "location",
            ],
            "docs": "/docs",
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Deep health probe — checks all subsystems."""
        report = await run_health_check(app.state.ctx)
        return report.to_dict()

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Kubernetes liveness probe — is the process alive?"""
        return {"status": "alive"}

    @app.get("/health/ready", tags=["health"])
    async def readiness():
        """Kubernetes readiness probe — can we serve traffic?"""
        report = await run_health_check(app.state.ctx)
        if report.status == HealthStatus.UNHEALTHY:
            return JSONResponse(status_code=503, content=report.to_dict())
        return report.to_dict()

    return app


app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn. Auto-reload only applies in development."""
    uvicorn.run(
        "safecircle.app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD and settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    run()
