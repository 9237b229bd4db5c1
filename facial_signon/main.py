"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from facial_signon.api import auth_token, health, relay, sessions
from facial_signon.api.facial_sign_on import router as facial_sign_on_router
from facial_signon.config import AppSettings, get_settings
from facial_signon.context import AppContext
from facial_signon.core.exceptions import SignOnError
from facial_signon.core.logging import configure_logging, get_logger
from facial_signon.middleware import LoggingMiddleware, RequestIDMiddleware
from facial_signon.models.api import ErrorResponse

logger = get_logger(__name__)


def make_logger(settings: AppSettings):
    """Initialize logging configuration."""
    configure_logging(settings.log_level)
    logger.info("logger_initialized", log_level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings: AppSettings = app.state.settings

    # Startup
    make_logger(settings)
    logger.info(
        "startup",
        app=settings.app_name,
        version=settings.version,
        session_strategy=settings.signon.session_strategy,
    )
    if settings.signon.session_strategy == "legacy":
        logger.warning("legacy_session_strategy_enabled")

    owns_context = getattr(app.state, "context", None) is None
    if owns_context:
        app.state.context = AppContext.from_settings(settings)

    yield

    # Shutdown
    logger.info("shutdown_started")
    if owns_context:
        await app.state.context.close()
    logger.info("shutdown_complete")


def error_response(exc: SignOnError) -> Response:
    body = ErrorResponse(error=exc.user_message, code=exc.code, vendor_code=exc.vendor_code)
    return Response(
        content=body.model_dump_json(),
        status_code=exc.status_code,
        media_type="application/json",
    )


async def sign_on_error_handler(request: Request, exc: SignOnError) -> Response:
    """Handle every SignOnError: internal message logged, user message returned."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        exc.code,
        error=exc.message,
        status_code=exc.status_code,
        vendor_code=exc.vendor_code,
        path=str(request.url.path),
    )
    return error_response(exc)


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> Response:
    """Handle FastAPI request validation errors."""
    logger.warning("validation_error", path=str(request.url.path), errors=exc.errors())

    error_response = ErrorResponse(error="Invalid request.", code="validation_error")

    return Response(
        content=error_response.model_dump_json(),
        status_code=status.HTTP_400_BAD_REQUEST,
        media_type="application/json",
    )


async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Handle all other unhandled exceptions without leaking internals."""
    logger.exception(
        "unhandled_exception", error_type=type(exc).__name__, path=str(request.url.path)
    )

    error_response = ErrorResponse(
        error="Something went wrong. Please try again.", code="internal_error"
    )

    return Response(
        content=error_response.model_dump_json(),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/json",
    )


def create_app(
    settings: Optional[AppSettings] = None, context: Optional[AppContext] = None
) -> FastAPI:
    """Build the application.

    Args:
        settings: Configuration; loaded from the environment when omitted
        context: Prebuilt resources; created during startup when omitted
    """
    settings = settings or (context.settings if context else get_settings())

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Facial-recognition sign-on broker between the browser, the local user "
            "database and the Axiam verification service."
        ),
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    if context is not None:
        app.state.context = context

    # Register custom middleware (order matters: last added = outermost layer)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.session.secret_key,
        session_cookie=settings.session.cookie_name,
        max_age=settings.session.max_age,
        same_site="lax",
        https_only=settings.session.https_only,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    # RequestIDMiddleware is outermost so every log line carries the id
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(SignOnError, sign_on_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Register API routes
    app.include_router(health.router)
    app.include_router(auth_token.router)
    app.include_router(facial_sign_on_router)
    app.include_router(sessions.router)
    app.include_router(relay.router)

    @app.get("/", tags=["root"])
    async def root():
        """Basic service information."""
        return {
            "message": settings.app_name,
            "version": settings.version,
            "status": "running",
        }

    return app


def run() -> None:
    """Run the service with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "facial_signon.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
    )
