"""
Main FastAPI application for the Contract AI backend.
Wires the organization-scoped routers, CORS, request logging and the
startup checks (database, Anthropic key, contract storage).
"""
import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contract_ai.config import settings
from contract_ai.database import close_db, init_db
from contract_ai.routers import audit, auth, contracts, health, organizations, playbooks

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup / shutdown helpers
# ---------------------------------------------------------------------------

async def _check_database() -> bool:
    """Initialise DB tables and verify the connection.  Returns True on success."""
    try:
        await init_db()
        logger.info("✓ Database connection OK")
        return True
    except Exception as exc:
        logger.error("✗ Database connection failed: %s", exc)
        raise


def _check_anthropic() -> bool:
    """Report whether an Anthropic API key is configured.  Never raises."""
    if settings.ANTHROPIC_API_KEY:
        logger.info("✓ Anthropic API key configured (model %s)", settings.ANTHROPIC_MODEL)
        return True
    logger.warning(
        "⚠ ANTHROPIC_API_KEY is not set; contract analysis endpoints will return 503"
    )
    return False


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

def _prepare_upload_dir() -> str:
    """Create the contract storage directory and return its absolute path."""
    upload_dir = os.path.abspath(settings.UPLOAD_DIR)
    os.makedirs(upload_dir, exist_ok=True)
    logger.info(
        "✓ Contract storage: %s (max %d MB; %s)",
        upload_dir,
        settings.MAX_FILE_SIZE // (1024 * 1024),
        ", ".join(settings.SUPPORTED_FILE_TYPES),
    )
    return upload_dir


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the database, report AI readiness, prepare contract storage."""
    logger.info("=" * 60)
    logger.info("  Contract AI backend starting (environment: %s)", settings.ENVIRONMENT)
    logger.info("=" * 60)

    # Database is required; a failure aborts startup
    await _check_database()

    # Without a key the API still serves uploads, playbooks and exports
    ai_ready = _check_anthropic()

    _prepare_upload_dir()

    logger.info("=" * 60)
    logger.info(
        "  Ready on http://%s:%d  (docs at /docs, AI review %s)",
        settings.HOST,
        settings.PORT,
        "enabled" if ai_ready else "disabled",
    )
    logger.info("=" * 60)

    yield

    logger.info("Shutting down Contract AI backend …")
    await close_db()
    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Contract AI API",
    description=(
        "**Contract AI** — AI-assisted contract review.\n\n"
        "Upload Word contracts, review them against your organization's "
        "playbooks with Claude, and accept or reject the suggested edits "
        "as tracked changes.\n\n"
        "Key endpoints:\n"
        "- `POST /api/auth/signin` — get a session token\n"
        "- `POST /api/organizations/{org_id}/contracts/upload` — upload a contract\n"
        "- `POST /api/organizations/{org_id}/contracts/{id}/analyze` — AI review\n"
        "- `PATCH .../analyses/{id}/changes/{change_id}` — accept / reject a suggestion\n"
        "- `PUT  /api/organizations/{org_id}/contracts/{id}/lexical-state` — save the reviewed document\n"
        "- `GET  /api/organizations/{org_id}/contracts/{id}/export` — download .docx\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    # The export download name travels in Content-Disposition
    expose_headers=["Content-Disposition", "X-Process-Time"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

_QUIET_PATHS = {"/", "/api/health", "/api/health/"}
SLOW_REQUEST_MS = 5000


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log each API call with its organization, status code and elapsed time,
    and attach an ``X-Process-Time`` header (milliseconds).

    Contract uploads and AI reviews can take tens of seconds, so slow calls
    are logged at WARNING.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    path = request.url.path
    if path not in _QUIET_PATHS:
        org_id = request.path_params.get("org_id", "-")
        level = logging.WARNING if elapsed_ms >= SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "[org %s] %s %s → %d  (%.2f ms)",
            org_id,
            request.method,
            path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Global exception handler
# ---------------------------------------------------------------------------

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    JSON 500 for anything a router did not turn into an HTTPException.

    The exception text can quote contract content or SQL, so it is only
    returned to the client in development.
    """
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    content = {
        "detail": "Internal server error",
        "path": str(request.url.path),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    if settings.is_development:
        content["error"] = str(exc)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

ORG_PREFIX = "/api/organizations/{org_id}"

app.include_router(health.router,        prefix="/api/health",              tags=["Health"])
app.include_router(auth.router,          prefix="/api/auth",                tags=["Auth"])
app.include_router(organizations.router, prefix="/api/organizations",       tags=["Organizations"])
app.include_router(playbooks.router,     prefix=f"{ORG_PREFIX}/playbooks",  tags=["Playbooks"])
app.include_router(contracts.router,     prefix=f"{ORG_PREFIX}/contracts",  tags=["Contracts"])
app.include_router(audit.router,         prefix=f"{ORG_PREFIX}/audit-logs", tags=["Audit"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """Service name, version and where the organization-scoped routes live."""
    return {
        "name": "Contract AI API",
        "version": "0.1.0",
        "description": "AI-assisted contract review backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "auth": "/api/auth",
            "organizations": "/api/organizations",
            "playbooks": f"{ORG_PREFIX}/playbooks",
            "contracts": f"{ORG_PREFIX}/contracts",
            "audit": f"{ORG_PREFIX}/audit-logs",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "contract_ai.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
