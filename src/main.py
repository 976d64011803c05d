"""EnrollGate API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.access_codes.router import router as access_codes_router
from src.access_codes.service import AccessCodeRegistry
from src.accounts.router import router as accounts_router
from src.accounts.service import AccountStore
from src.admin.router import router as admin_router
from src.admin.service import AdminActionService
from src.audit.router import router as audit_router
from src.audit.service import AuditLogStore
from src.config import get_settings
from src.core.context import get_request_id
from src.core.database import CassandraCluster, StoreHandle
from src.core.errors import EnrollmentGateError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.enrollments.access_service import CourseAccessService
from src.enrollments.router import integrations_router
from src.enrollments.router import router as enrollments_router
from src.enrollments.service import EnrollmentStore
from src.health import router as health_router
from src.realtime.feed import ChangeFeed
from src.realtime.websocket_router import router as realtime_ws_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container.

    The store handle is opened in the lifespan and passed explicitly to every
    service; nothing reaches for a global session.
    """

    store: StoreHandle | None = None
    change_feed: ChangeFeed | None = None
    audit_store: AuditLogStore | None = None
    access_code_registry: AccessCodeRegistry | None = None
    enrollment_store: EnrollmentStore | None = None
    course_access_service: CourseAccessService | None = None
    account_store: AccountStore | None = None
    admin_service: AdminActionService | None = None


app_state = AppState()


def get_change_feed() -> ChangeFeed:
    """Get ChangeFeed instance from app state."""
    if app_state.change_feed is None:
        msg = "ChangeFeed not initialized"
        raise RuntimeError(msg)
    return app_state.change_feed


def get_audit_store() -> AuditLogStore:
    """Get AuditLogStore instance from app state."""
    if app_state.audit_store is None:
        msg = "AuditLogStore not initialized"
        raise RuntimeError(msg)
    return app_state.audit_store


def get_access_code_registry() -> AccessCodeRegistry:
    """Get AccessCodeRegistry instance from app state."""
    if app_state.access_code_registry is None:
        msg = "AccessCodeRegistry not initialized"
        raise RuntimeError(msg)
    return app_state.access_code_registry


def get_enrollment_store() -> EnrollmentStore:
    """Get EnrollmentStore instance from app state."""
    if app_state.enrollment_store is None:
        msg = "EnrollmentStore not initialized"
        raise RuntimeError(msg)
    return app_state.enrollment_store


def get_course_access_service() -> CourseAccessService:
    """Get CourseAccessService instance from app state."""
    if app_state.course_access_service is None:
        msg = "CourseAccessService not initialized"
        raise RuntimeError(msg)
    return app_state.course_access_service


def get_account_store() -> AccountStore:
    """Get AccountStore instance from app state."""
    if app_state.account_store is None:
        msg = "AccountStore not initialized"
        raise RuntimeError(msg)
    return app_state.account_store


def get_admin_service() -> AdminActionService:
    """Get AdminActionService instance from app state."""
    if app_state.admin_service is None:
        msg = "AdminActionService not initialized"
        raise RuntimeError(msg)
    return app_state.admin_service


def build_services(store: StoreHandle, feed: ChangeFeed) -> None:
    """Construct every service around one store handle and change feed."""
    settings = get_settings()

    app_state.store = store
    app_state.change_feed = feed
    app_state.audit_store = AuditLogStore(
        store,
        feed,
        default_page_size=settings.audit_page_size_default,
        max_page_size=settings.audit_page_size_max,
    )
    app_state.access_code_registry = AccessCodeRegistry(
        store,
        app_state.audit_store,
        code_length=settings.access_code_length,
        max_generation_attempts=settings.access_code_max_generation_attempts,
        default_expiry_days=settings.access_code_default_expiry_days,
    )
    app_state.enrollment_store = EnrollmentStore(store, app_state.audit_store, feed)
    app_state.course_access_service = CourseAccessService(
        app_state.enrollment_store,
        app_state.access_code_registry,
    )
    app_state.account_store = AccountStore(
        store,
        app_state.audit_store,
        app_state.enrollment_store,
    )
    app_state.admin_service = AdminActionService(
        app_state.access_code_registry,
        app_state.enrollment_store,
        app_state.account_store,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Open the cluster and relay, build services, and tear them down."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis is optional; without it live updates stay process-local
    redis_client = await init_redis(settings)
    feed = ChangeFeed(
        redis_client,
        queue_size=settings.realtime_queue_size,
        channel=settings.realtime_channel,
    )
    feed.start()
    app_state.change_feed = feed

    cluster = CassandraCluster(settings)
    app.state.cassandra = cluster
    try:
        session = await cluster.open()
    except ConnectionError as e:
        # Readiness reports 503 until a restart finds the cluster
        logger.error("database_unavailable_at_startup", error=str(e))
    else:
        build_services(StoreHandle.from_settings(session, settings), feed)
        logger.info("services_initialized", redis_enabled=redis_client is not None)

    yield

    logger.info("shutting_down_application")
    await feed.stop()
    await shutdown_redis()
    cluster.close()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Stack traces stay in the logs; handlers below return sanitized bodies
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Enrollment access verification and admin audit API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request ids and access logging
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    # Added last, so CORS is the outermost layer
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def error_response(
        request: Request,
        status_code: int,
        message: str,
        headers: dict[str, str] | None = None,
        **fields: Any,
    ) -> ORJSONResponse:
        """Uniform error body; never carries a stack trace."""
        request_id = getattr(request.state, "request_id", None) or get_request_id()
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "message": message,
                **fields,
                "status_code": status_code,
                "request_id": request_id,
            },
            headers=headers,
        )

    @app.exception_handler(EnrollmentGateError)
    async def domain_exception_handler(
        request: Request, exc: EnrollmentGateError
    ) -> ORJSONResponse:
        """Map domain errors to their status code and a stable body."""
        log = logger.error if exc.retryable else logger.info
        log(
            "domain_error",
            code=exc.code,
            status_code=exc.status_code,
            error_message=exc.message,
            path=request.url.path,
            method=request.method,
        )
        return error_response(request, exc.status_code, **exc.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return error_response(
            request, exc.status_code, message, headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        errors = exc.errors()
        logger.warning(
            "validation_error",
            errors=errors,
            path=request.url.path,
            method=request.method,
        )
        return error_response(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            code="validation_error",
            details=[
                {
                    "field": ".".join(str(loc) for loc in err.get("loc", [])),
                    "message": err.get("msg", "Invalid value"),
                }
                for err in errors
            ],
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Log unexpected failures in full; the caller gets a generic 500."""
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            path=request.url.path,
            method=request.method,
        )
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred. Please try again later.",
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(accounts_router)
    app.include_router(enrollments_router)
    app.include_router(integrations_router)
    app.include_router(access_codes_router)
    app.include_router(admin_router)
    app.include_router(audit_router)
    app.include_router(realtime_ws_router)  # WebSocket for live enrollment/audit changes

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "EnrollGate API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


# Configure router dependencies before creating app
from src.access_codes.dependencies import set_access_code_registry_getter  # noqa: E402
from src.accounts.dependencies import set_account_store_getter  # noqa: E402
from src.admin.dependencies import set_admin_service_getter  # noqa: E402
from src.audit.dependencies import set_audit_store_getter  # noqa: E402
from src.enrollments.dependencies import (  # noqa: E402
    set_course_access_service_getter,
    set_enrollment_store_getter,
)
from src.realtime.dependencies import set_change_feed_getter  # noqa: E402


set_change_feed_getter(get_change_feed)
set_audit_store_getter(get_audit_store)
set_access_code_registry_getter(get_access_code_registry)
set_enrollment_store_getter(get_enrollment_store)
set_course_access_service_getter(get_course_access_service)
set_account_store_getter(get_account_store)
set_admin_service_getter(get_admin_service)


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.api_reload,
    )
