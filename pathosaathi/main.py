"""
Main FastAPI Application

Entry point for the PathoSaathi multi-tenant diagnostics platform API.
Configures middleware, routes, error handlers, and startup/shutdown events.

create_app() builds an application around an AppState; the module-level
`app` uses the environment's settings. Tests call create_app() with their
own state.

PRODUCTION CHECKLIST:
- [ ] Enable HTTPS only
- [ ] Restrict ALLOWED_ORIGINS to real frontends
- [ ] Point REDIS_URL at a replicated Redis
- [ ] Use migrations for the root tenant tables
"""
from contextlib import asynccontextmanager
from typing import Optional
import time
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from pathosaathi import __version__
from pathosaathi.api.endpoints import admin, auth, branding, partners, users
from pathosaathi.config import get_settings
from pathosaathi.core.exceptions import ApiError
from pathosaathi.core.responses import error_response, success_response
from pathosaathi.middleware.rate_limit import RateLimitMiddleware
from pathosaathi.middleware.tenant import TenantMiddleware
from pathosaathi.state import AppState
from pathosaathi.utils.logging import get_logger, setup_logging

settings = get_settings()

# Setup logging
setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production,
)
logger = get_logger(__name__)


def _tenant_prefix(request: Request) -> Optional[str]:
    tenant = getattr(request.state, "tenant", None)
    return tenant.tenant_prefix if tenant is not None else None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup creates the root tenant's tables (PS_ROOT_*). A database that is
    not reachable yet is logged, not fatal; tables are also created lazily
    on first use.
    """
    state: AppState = app.state.container
    logger.info(f"Starting application in {state.settings.ENVIRONMENT} mode")

    try:
        state.startup()
    except SQLAlchemyError:
        logger.error("Core model initialization failed", exc_info=True)

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application")
    state.dispose()
    logger.info("Application shutdown complete")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        if exc.status_code >= 500:
            logger.error(
                f"{type(exc).__name__}: {exc.message}",
                extra={"path": request.url.path, "method": request.method, "tenant_prefix": _tenant_prefix(request)},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.message, exc.error_code, exc.details),
            headers=exc.headers or {},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request: Request, exc: RequestValidationError):
        """Malformed input is a 400 with field-level details."""
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"] if part != "body"),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_response("Validation failed", "VALIDATION_ERROR", details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(str(exc.detail), f"HTTP_{exc.status_code}"),
            headers=getattr(exc, "headers", None) or {},
        )

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
            extra={"path": request.url.path, "method": request.method, "tenant_prefix": _tenant_prefix(request)},
        )

        if app.state.container.settings.is_development:
            return JSONResponse(
                status_code=500,
                content=error_response(
                    str(exc),
                    "INTERNAL_ERROR",
                    {"type": type(exc).__name__, "stack": traceback.format_exception(exc)},
                ),
            )
        return JSONResponse(
            status_code=500,
            content=error_response("Internal server error", "INTERNAL_ERROR"),
        )


def create_app(state: Optional[AppState] = None) -> FastAPI:
    state = state or AppState(settings)

    app = FastAPI(
        title="PathoSaathi API",
        description="Multi-tenant diagnostics lab platform: tenant routing, domain-bound auth and branding",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.container = state

    # ========================================================================
    # MIDDLEWARE CONFIGURATION
    # ========================================================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if state.settings.is_development else state.settings.allowed_origins,
        allow_credentials=not state.settings.is_development,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_process_time_header(request: Request, call_next):
        """Add X-Process-Time header to track request duration."""
        start_time = time.time()
        response = await call_next(request)
        response.headers["X-Process-Time"] = str(time.time() - start_time)
        return response

    # Starlette runs the last added middleware first: tenant resolution
    # wraps rate limiting, which buckets requests by the resolved tenant
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(TenantMiddleware)

    register_exception_handlers(app)

    # ========================================================================
    # ROUTES
    # ========================================================================

    @app.get("/health", tags=["health"])
    async def health_check():
        """Health check endpoint for load balancers."""
        return success_response(
            {"status": "healthy", "environment": state.settings.ENVIRONMENT, "version": __version__},
            "Service is healthy",
        )

    @app.get("/", tags=["root"])
    async def root():
        return success_response(
            {"name": "PathoSaathi API", "version": __version__, "docs": "/docs", "health": "/health"},
            "PathoSaathi API",
        )

    api_prefix = f"/api/{state.settings.API_VERSION}"
    app.include_router(auth.router, prefix=api_prefix)
    app.include_router(partners.router, prefix=api_prefix)
    app.include_router(users.router, prefix=api_prefix)
    app.include_router(admin.router, prefix=api_prefix)
    app.include_router(branding.router, prefix="/api")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 80)
    logger.info("PathoSaathi API")
    logger.info("=" * 80)
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug: {settings.DEBUG}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    logger.info("=" * 80)

    uvicorn.run(
        "pathosaathi.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
