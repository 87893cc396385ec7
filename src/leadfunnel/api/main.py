"""Main FastAPI application for the lead funnel API."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from leadfunnel import __version__
from leadfunnel.api.deps import Services
from leadfunnel.api.rate_limit import client_identity, limiter
from leadfunnel.api.v1.affiliates import router as affiliates_router
from leadfunnel.api.v1.dashboard import router as dashboard_router
from leadfunnel.api.v1.leads import router as leads_router
from leadfunnel.api.v1.referral import router as referral_router
from leadfunnel.errors import (
    CodeGenerationExhaustedError,
    ConflictError,
    IllegalTransitionError,
    LeadFunnelError,
    LeadValidationError,
    NotFoundError,
    PayoutError,
    RateLimitedError,
    StoreUnavailableError,
)
from leadfunnel.leads.intake import Gate
from leadfunnel.leads.validator import violations_from_errors
from leadfunnel.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from leadfunnel.settings import settings
from leadfunnel.storage.db import Database

configure_logging()
logger = get_logger(__name__)

# First match wins, so subclasses go before their bases
ERROR_STATUS = (
    (LeadValidationError, 400),
    (ConflictError, 409),
    (IllegalTransitionError, 409),
    (CodeGenerationExhaustedError, 503),
    (StoreUnavailableError, 503),
    (RateLimitedError, 429),
    (NotFoundError, 404),
    (PayoutError, 400),
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses.

    These headers protect against common web vulnerabilities:
    - Clickjacking
    - MIME sniffing
    - Referrer leakage
    """

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        # The form is embedded on our own landing page only
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        # API responses never load resources
        response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"
        response.headers["Permissions-Policy"] = (
            "camera=(), "
            "geolocation=(), "
            "microphone=(), "
            "payment=()"
        )

        return response


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a request id and the client identity to every log line.

    An incoming ``X-Request-ID`` is reused so a proxy can correlate its own
    logs; the id is echoed on the response.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id", "")[:64] or uuid.uuid4().hex
        bind_request_context(request_id, client_identity(request))
        try:
            response = await call_next(request)
        finally:
            clear_request_context()

        response.headers["X-Request-ID"] = request_id
        return response


def status_for(exc: LeadFunnelError) -> int:
    """HTTP status for an engine error; unknown categories are server errors."""
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


def error_response(request: Request, exc: LeadFunnelError) -> JSONResponse:
    """Render an engine error.

    Public callers get the category message only. Requests that passed
    operator authentication also see the underlying error text.
    """
    status_code = status_for(exc)
    content = {"detail": exc.public_message}
    headers = {}

    if isinstance(exc, LeadValidationError):
        content["errors"] = exc.violations
    if isinstance(exc, RateLimitedError):
        headers["Retry-After"] = str(exc.retry_after)
    if getattr(request.state, "operator", False):
        content["error"] = str(exc)

    log = logger.error if status_code >= 500 else logger.info
    log(
        "request_failed",
        path=request.url.path,
        status_code=status_code,
        error_type=type(exc).__name__,
        error=str(exc),
    )
    return JSONResponse(status_code=status_code, content=content, headers=headers or None)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("app_starting", env=settings.env)

    app.state.services.database.create_tables()
    logger.info("database_tables_created")

    yield

    # Shutdown
    logger.info("app_shutting_down")


def create_app(database: Database | None = None, gate: Gate | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        database: Database to bind the services to (defaults to the global instance)
        gate: Submission rate limiter (defaults to one built from settings)

    Returns:
        Configured FastAPI app
    """
    # Hide API docs in production
    is_production = settings.env == "production"

    app = FastAPI(
        title="Lead Funnel API",
        description="Lead capture and affiliate attribution API",
        version=__version__,
        docs_url=None if is_production else "/api/docs",
        redoc_url=None if is_production else "/api/redoc",
        openapi_url=None if is_production else "/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = Services.build(database=database, gate=gate)

    # Security Headers middleware (must be added before CORS)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestContextMiddleware)

    # CORS middleware - never allow wildcard in production
    allowed_origins = [
        origin.strip()
        for origin in settings.allowed_origins.split(",")
        if origin.strip()
    ]

    if is_production and "*" in allowed_origins:
        logger.error("cors_wildcard_blocked", message="Wildcard CORS not allowed in production")
        allowed_origins = []

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "X-Admin-Key", "X-Request-ID"],
        expose_headers=["X-Request-ID", "Retry-After"],
        max_age=3600,  # Cache preflight for 1 hour
    )

    # Rate limiting (shared instance from rate_limit module)
    app.state.limiter = limiter

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests. Please try again later."},
        )

    @app.exception_handler(LeadFunnelError)
    async def lead_funnel_error_handler(request: Request, exc: LeadFunnelError):
        return error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(
            request, LeadValidationError(violations_from_errors(exc.errors()))
        )

    # Include v1 API routers
    app.include_router(leads_router, prefix="/api/v1")
    app.include_router(referral_router, prefix="/api/v1")
    app.include_router(affiliates_router, prefix="/api/v1")
    app.include_router(dashboard_router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "env": settings.env,
        }

    return app


# Create app instance
app = create_app()
