"""
Main FastAPI application for the FlowMender backend.
Handles CORS, request logging middleware, lifespan events, and router registration.
"""
import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.routers import analysis, documents, health, jobs
from app.services.llm_client import get_llm_client

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup helpers
# ---------------------------------------------------------------------------

def _check_llm_config() -> bool:
    """
    Log the analysis configuration and whether the provider can be called.
    Never raises: a misconfigured provider only means demo results.
    """
    try:
        client = get_llm_client()
    except ValueError as exc:
        logger.error("✗ %s", exc)
        return False

    logger.info("  LLM provider : %s (%s)", client.provider_name, client.model)
    logger.info(
        "  Validator    : %s  (threshold %d, gate < %d)",
        settings.VALIDATOR_MODE,
        settings.PRD_CONFIDENCE_THRESHOLD,
        settings.PRD_GATE_MIN_CONFIDENCE,
    )
    logger.info(
        "  Journeys     : %d-%d, scoring=%s",
        settings.MIN_JOURNEYS,
        settings.MAX_JOURNEYS,
        settings.SCORING_MODE,
    )
    if not client.is_configured():
        logger.warning(
            "⚠ GEMINI_API_KEY is not set: every analysis will return demo data. "
            "Set it in .env or switch LLM_PROVIDER=ollama."
        )
        return False
    logger.info("✓ LLM client configured")
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting FlowMender backend …")
    logger.info("=" * 60)

    _check_llm_config()

    logger.info("=" * 60)
    logger.info("  FlowMender backend ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("  Health     : http://%s:%d/api/health", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield

    logger.info("Shutting down FlowMender backend …")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="FlowMender API",
    description=(
        "**FlowMender** finds the gaps in product requirements documents.\n\n"
        "Upload a PRD (PDF/DOCX/TXT/MD) or paste its text; the AI pipeline "
        "extracts user journeys, identifies edge cases and scores readiness.\n\n"
        "Key endpoints:\n"
        "- `POST /api/documents/parse` — extract text from a file\n"
        "- `POST /api/documents/validate` — is this a PRD?\n"
        "- `POST /api/analysis/` — analyze PRD text\n"
        "- `POST /api/analysis/upload` — upload and analyze a file\n"
        "- `POST /api/analysis/report` — export Markdown / JSON / DOCX\n"
        "- `POST /api/jobs/` — background analysis with progress polling\n"
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
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    # Job polling and health checks are too frequent to log
    path = request.url.path
    if path not in ("/api/health/", "/") and not (
        request.method == "GET" and path.startswith("/api/jobs/")
    ):
        logger.info(
            "%s %s → %d  (%.2f ms)",
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
    """Return a structured JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": "Internal server error",
            "error": str(exc),
            "path": str(request.url.path),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,    prefix="/api/health",    tags=["Health"])
app.include_router(documents.router, prefix="/api/documents", tags=["Documents"])
app.include_router(analysis.router,  prefix="/api/analysis",  tags=["Analysis"])
app.include_router(jobs.router,      prefix="/api/jobs",      tags=["Jobs"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "FlowMender API",
        "version": "0.1.0",
        "description": "PRD edge case analysis backend",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "documents": "/api/documents",
            "analysis": "/api/analysis",
            "report": "/api/analysis/report",
            "jobs": "/api/jobs",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
