import logging
from typing import Optional
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.api.v1.router import api_router
from app.config import Settings, get_settings
from app.core.exceptions import (
    FileUploadException,
    FormNotFoundException,
    FormNotPublicException,
    FormValidationException,
    GeneratorException,
    GeneratorUnavailableException,
    InvalidCredentialsException,
    NoSubmissionsException,
    SlugConflictException,
)
from app.core.circuit_breaker import CircuitBreakerOpenException
from app.core.logging_config import setup_logging, cleanup_old_logs
from app.core.logging_utils import get_request_id, sanitize_log_message
from app.core.time_utils import to_iso
from app.external.generator_client import SchemaGeneratorClient
from app.external.webhook_client import WebhookDispatcher
from app.middleware.logging_middleware import LoggingMiddleware
from app.middleware.rate_limit import setup_rate_limiting
from app.middleware.security import setup_security_middleware
from app.services.form_store import FormConfigStore
from app.services.lifecycle_service import FormLifecycleService
from app.services.submission_service import SubmissionRecorder

logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    """Log every handled error with request context and answer `{"detail": ...}`."""

    def make_handler(message: str, level: int = logging.WARNING):
        async def handler(request: Request, exc):
            logger.log(
                level,
                sanitize_log_message(
                    message,
                    Path=request.url.path,
                    Method=request.method,
                    IP=_client_ip(request),
                    Detail=exc.detail,
                    RequestID=get_request_id(request)
                )
            )
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail},
                headers=getattr(exc, "headers", None)
            )
        return handler

    app.add_exception_handler(FormNotFoundException, make_handler("Form not found"))
    app.add_exception_handler(FormNotPublicException, make_handler("Form not publicly accessible"))
    app.add_exception_handler(NoSubmissionsException, make_handler("No submissions for form", logging.INFO))
    app.add_exception_handler(SlugConflictException, make_handler("URL slug conflict"))
    app.add_exception_handler(FileUploadException, make_handler("File upload rejected"))
    app.add_exception_handler(InvalidCredentialsException, make_handler("Invalid credentials"))
    app.add_exception_handler(
        GeneratorUnavailableException,
        make_handler("Form generator unavailable", logging.ERROR)
    )

    @app.exception_handler(FormValidationException)
    async def form_validation_handler(request: Request, exc: FormValidationException):
        logger.warning(
            sanitize_log_message(
                "Validation failed",
                Path=request.url.path,
                Method=request.method,
                Detail=exc.detail,
                Errors=exc.errors,
                RequestID=get_request_id(request)
            )
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "errors": exc.errors}
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body") or "body",
                "message": err["msg"]
            }
            for err in exc.errors()
        ]
        logger.warning(
            sanitize_log_message(
                "Request validation failed",
                Path=request.url.path,
                Method=request.method,
                Errors=errors,
                RequestID=get_request_id(request)
            )
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": "Validation failed", "errors": errors}
        )

    @app.exception_handler(GeneratorException)
    async def generator_handler(request: Request, exc: GeneratorException):
        logger.error(
            sanitize_log_message(
                "Form generation failed",
                Path=request.url.path,
                Detail=exc.detail,
                Reason=exc.reason,
                RequestID=get_request_id(request)
            )
        )
        content = {"detail": exc.detail}
        if exc.reason and settings.is_development:
            content["details"] = exc.reason
        return JSONResponse(status_code=exc.status_code, content=content)

    @app.exception_handler(CircuitBreakerOpenException)
    async def circuit_breaker_handler(request: Request, exc: CircuitBreakerOpenException):
        logger.warning(
            sanitize_log_message(
                "Circuit breaker open",
                Path=request.url.path,
                Method=request.method,
                IP=_client_ip(request),
                Message=exc.message
            )
        )
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service temporarily unavailable. Please try again later."}
        )

    # Generic exception handler for unhandled exceptions
    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(
            sanitize_log_message(
                f"Unhandled exception: {type(exc).__name__}",
                Path=request.url.path,
                Method=request.method,
                IP=_client_ip(request),
                ExceptionType=type(exc).__name__,
                ExceptionMessage=str(exc),
                RequestID=get_request_id(request)
            )
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "Internal server error" if settings.is_production else str(exc)
            }
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application and its long-lived services.

    Args:
        settings: Explicit settings (tests); defaults to the environment

    Returns:
        Configured FastAPI application
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
        docs_url=f"{settings.API_V1_STR}/docs",
        redoc_url=f"{settings.API_V1_STR}/redoc",
    )

    form_store = FormConfigStore(settings.forms_path)
    app.state.settings = settings
    app.state.form_store = form_store
    app.state.lifecycle_service = FormLifecycleService(form_store)
    app.state.submission_recorder = SubmissionRecorder(settings.submissions_path, settings.MAX_FILE_SIZE)
    app.state.webhook_dispatcher = WebhookDispatcher.from_settings(settings)
    app.state.generator_client = SchemaGeneratorClient.from_settings(settings)

    @app.on_event("startup")
    async def startup_event():
        """Initialize logging and cleanup old logs on application startup."""
        setup_logging(settings)
        cleanup_old_logs(settings)
        if not settings.auth_enabled:
            logger.warning("SECRET_KEY is not set: admin authentication is DISABLED")
        if not app.state.generator_client.is_configured:
            logger.warning("OPENAI_API_KEY is not set: form generation is unavailable")
        logger.info(sanitize_log_message(
            "Application startup complete",
            Environment=settings.ENVIRONMENT,
            FormsDir=str(settings.forms_path),
            SubmissionsDir=str(settings.submissions_path)
        ))

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.webhook_dispatcher.client.aclose()
        await app.state.generator_client.close()

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "Accept", "Origin"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )

    # Security middleware (request size limit + security headers)
    setup_security_middleware(app, max_request_size=settings.MAX_REQUEST_SIZE)

    # Logging middleware (after CORS, before routes)
    app.add_middleware(LoggingMiddleware, enabled=settings.LOG_ENABLE_REQUEST_LOGGING)

    # Rate limiting
    setup_rate_limiting(app, settings)

    app.include_router(api_router, prefix=settings.API_V1_STR)
    register_exception_handlers(app, settings)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": settings.VERSION, "timestamp": to_iso()}

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": f"{settings.API_V1_STR}/docs"
        }

    return app


app = create_app()
