"""
Main FastAPI Application

Entry point for the ZyraisPay tenant registration service.
Configures middleware, routes, error handlers, and startup/shutdown events.

Error bodies for the signup form are always {"errors": {field: message}},
whether the problem came from schema validation or from the service.
"""
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import time
from contextlib import asynccontextmanager

from zyrapay import __version__
from zyrapay.config import get_settings
from zyrapay.database import engine, init_db
from zyrapay.middleware.rate_limit import RateLimitMiddleware
from zyrapay.utils.logging import setup_logging, get_logger
from zyrapay.core.exceptions import FieldValidationError
from zyrapay.api.deps import get_tenant_databases

# Import routers
from zyrapay.api.endpoints import registration

settings = get_settings()

# Setup logging
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(f"Starting application in {settings.ENVIRONMENT} mode")

    # Initialize central tables (dev only - use Alembic in production)
    if settings.ENVIRONMENT in ("development", "local"):
        logger.warning("Initializing database tables (dev mode)")
        init_db()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    get_tenant_databases().dispose()
    engine.dispose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="ZyraisPay Tenant Registration",
    description="Business signup for the ZyraisPay multi-tenant billing platform",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)


# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

# CORS Middleware
# SECURITY: In production, restrict allowed_origins to specific domains
allowed_origins = [
    f"https://{settings.TENANT_BASE_DOMAIN}",
    "http://localhost:3000",
    "http://localhost:8000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins if settings.ENVIRONMENT != "development" else ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add X-Process-Time header to track request duration."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response


app.add_middleware(RateLimitMiddleware, settings=settings)


# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================

def _field_name(loc) -> str:
    """("body", "email") -> "email"; a body-level error stays "body"."""
    fields = [str(part) for part in loc if part != "body"]
    return fields[0] if fields else "body"


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Reshape schema errors into one message per form field."""
    errors = {}
    for error in exc.errors():
        field = _field_name(error.get("loc", ()))
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, message)

    return JSONResponse(status_code=422, content={"errors": errors})


@app.exception_handler(FieldValidationError)
async def field_validation_error_handler(request: Request, exc: FieldValidationError):
    return JSONResponse(status_code=exc.status_code, content={"errors": exc.errors})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Catch-all exception handler.

    SECURITY: Don't expose internal errors in production.
    Log full details but return generic error to client.
    """
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {str(exc)}",
        exc_info=True,
        extra={"path": request.url.path, "method": request.method}
    )

    if settings.DEBUG:
        return JSONResponse(
            status_code=500,
            content={
                "detail": str(exc),
                "type": type(exc).__name__,
                "traceback": "See logs for traceback"
            }
        )
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Internal server error",
            "type": "internal_error"
        }
    )


# ============================================================================
# ROUTES
# ============================================================================

@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": __version__
    }


@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "message": "ZyraisPay Tenant Registration",
        "version": __version__,
        "register": "/register",
        "docs": "/docs",
        "health": "/health"
    }


app.include_router(registration.router)


if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 80)
    logger.info("ZyraisPay Tenant Registration")
    logger.info("=" * 80)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info(f"Tenant domain: *.{settings.TENANT_BASE_DOMAIN}")
    logger.info("=" * 80)

    uvicorn.run(
        "zyrapay.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
