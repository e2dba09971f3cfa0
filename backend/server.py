"""
Timesheet Reconciliation API

FastAPI application wiring:
- /api/health*: liveness and dependency checks
- /api/reconciliation/*: reconciliation engine
- /api/wfx/*: WorkflowMax connection
"""

import logging
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

# .env must be loaded before settings are read
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from config import get_settings
from logging_config import setup_logging
from reconciliation.endpoints.reconciliation_api import router as reconciliation_router
from reconciliation.matching_config import MatchingConfig
from wfx_integration.client import WFXApiError, WFXAuthenticationError, get_wfx_client
from wfx_integration.wfx_router import router as wfx_router

settings = get_settings()

# JSON logs in production, plain text elsewhere
setup_logging(
    level=settings.LOG_LEVEL,
    json_format=settings.is_production,
    service_name="timesheet-recon"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Timesheet reconciliation API starting (environment={settings.ENVIRONMENT}, "
        f"debug={settings.debug_enabled}, wfx_configured={settings.wfx_configured})"
    )
    if settings.wfx_configured:
        client = get_wfx_client()
        logger.info(f"WorkflowMax authenticated: {client.is_authenticated()}")
    yield
    logger.info("Timesheet reconciliation API stopped")


app = FastAPI(
    title=settings.API_TITLE,
    description="""
    Reconciles GPS vehicle trips against WorkflowMax (WFX) timesheets.

    ### Reconciliation (/api/reconciliation)
    - Trip classification (home-bound vs work travel)
    - Two-pass job matching (confident, then fuzzy)
    - Day-level hours comparison
    - Accuracy metrics and alerts

    ### WorkflowMax (/api/wfx)
    - OAuth connection and token status
    """,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
)

api_router = APIRouter(prefix="/api")


# ==================== HEALTH ====================

@api_router.get("/health", tags=["Health"])
async def health_check():
    """
    Service health including matching configuration and WorkflowMax status.

    Reports "degraded" when the matching configuration is invalid.
    """
    config_errors = MatchingConfig.from_settings(settings).validate()

    wfx = {"configured": settings.wfx_configured, "authenticated": False}
    if settings.wfx_configured:
        wfx["authenticated"] = get_wfx_client().is_authenticated()

    return {
        "status": "degraded" if config_errors else "healthy",
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "matching_config": {"valid": not config_errors, "errors": config_errors},
            "wfx": wfx,
        },
    }


@api_router.get("/health/live", tags=["Health"])
async def liveness_check():
    """Liveness probe; no dependency checks."""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


api_router.include_router(reconciliation_router)
api_router.include_router(wfx_router)
app.include_router(api_router)


# ==================== MIDDLEWARE ====================

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Tag every request with an id and log slow or failing ones."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    started = time.perf_counter()

    response = await call_next(request)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = str(elapsed_ms)

    if settings.debug_enabled or response.status_code >= 400:
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms}ms)",
            extra={"request_id": request_id, "status_code": response.status_code}
        )
    return response


# ==================== EXCEPTION HANDLERS ====================

@app.exception_handler(WFXAuthenticationError)
async def wfx_auth_error_handler(request: Request, exc: WFXAuthenticationError):
    logger.warning(f"WorkflowMax authentication required: {exc}")
    return JSONResponse(
        status_code=401,
        content={"detail": "WorkflowMax authorisation required", "authorize": "/api/wfx/authorize"}
    )


@app.exception_handler(WFXApiError)
async def wfx_api_error_handler(request: Request, exc: WFXApiError):
    logger.error(f"WorkflowMax request failed: {exc}")
    return JSONResponse(
        status_code=502,
        content={"detail": "WorkflowMax request failed", "upstream_status": exc.status_code}
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    content = {"detail": "Internal server error"}
    if not settings.is_production:
        content.update({"detail": str(exc), "type": type(exc).__name__})
    return JSONResponse(status_code=500, content=content)
