"""Snakey sync backend - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .dependencies import build_domain_services, get_domain_services
from .errors import DomainError
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import sync_router

logger = get_logger("snakey.api")

ERROR_STATUS = {
    "VALIDATION_ERROR": 400,
    "FORBIDDEN": 403,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.debug)
    logger.info(
        f"Starting Snakey sync API (debug={settings.debug}, storage={settings.storage_backend})"
    )
    if getattr(app.state, "services", None) is None:
        app.state.services = build_domain_services(settings)
    yield
    logger.info("Shutting down Snakey sync API")


app = FastAPI(
    title="Snakey Sync API",
    description="Offline-first sync backend for reptile husbandry records",
    version="0.4.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Map a DomainError that escaped a route to its status code."""
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind.value, 500),
        content={"error": {"code": exc.kind.value, "message": exc.message}},
    )


# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sync_router)


@app.get("/")
async def root():
    """Service banner."""
    return {
        "service": "snakey-sync",
        "version": "0.4.0",
        "status": "ok",
    }


@app.get("/health")
async def health(request: Request):
    """Health check that runs a cheap query against the storage backend."""
    storage_status = "disconnected"
    try:
        services = get_domain_services(request, settings)
        await services.reptiles.ping()
        storage_status = "connected"
    except Exception as e:
        logger.warning(f"Storage health check failed: {e}")
        storage_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if storage_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "storage": storage_status,
        "backend": settings.storage_backend,
    }
