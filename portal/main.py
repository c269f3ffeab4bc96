"""
FastAPI Application Entry Point.
Initializes the FastAPI app with middleware, CORS, and routes.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from portal.config import settings
from portal.core.cache import cache
from portal.core.database import engine
from portal.core.errors import SSOException
from portal.core.logging_config import configure_logging
from portal.core.rate_limit import limiter
from portal.services.audit_service import flush_pending

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Startup
    configure_logging(settings.log_level, settings.log_format)
    await cache.connect()
    logger.info(f"Accounts portal starting ({settings.environment})")
    yield
    # Shutdown
    await flush_pending()
    await cache.disconnect()
    await engine.dispose()


app = FastAPI(
    title="BFEAI Accounts Portal",
    description="SSO authorization-code exchange and cross-domain session cookies",
    version="1.0.0",
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# Add rate limiter state and error handler
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(SSOException)
async def sso_exception_handler(request: Request, exc: SSOException):
    """Render protocol errors as {"error": "..."}."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=exc.headers,
    )


# Credentials are required for the session cookie on cross-subdomain fetches
cors_origins = settings.get_allowed_origins_list()
logger.info(f"CORS allowed origins: {cors_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# Health Check Endpoints
@app.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "environment": settings.environment,
        }
    )


@app.get("/health/ready", tags=["Health"])
async def readiness_check():
    """
    Readiness check endpoint.
    Verifies database, cache, and identity backend connectivity.
    """
    from sqlalchemy import text

    from portal.core.database import AsyncSessionLocal
    from portal.core.identity_client import identity_client

    checks = {
        "database": False,
        "redis": "not_configured" if not settings.redis_url else False,
        "identity": False,
    }

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = True
    except Exception as e:
        logger.warning(f"Readiness: database check failed: {e}")

    if settings.redis_url:
        checks["redis"] = await cache.ping()

    checks["identity"] = await identity_client.health_check()

    # Consider redis as healthy if not configured
    redis_ok = checks["redis"] == "not_configured" or checks["redis"] is True
    all_healthy = checks["database"] and redis_ok and checks["identity"]
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if all_healthy else "not ready",
            "checks": checks,
        }
    )


# Include routers
from portal.api.routes import auth, sso
from portal.web import pages

app.include_router(
    sso.router,
    prefix="/api/auth",
    tags=["SSO"]
)

app.include_router(
    auth.router,
    prefix="/api/auth",
    tags=["Authentication"]
)

app.include_router(
    pages.router,
    tags=["Pages"]
)
