"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from identityhub import __version__
from identityhub.api import CorrelationIdMiddleware, auth_router, health_router, user_router
from identityhub.api.responses import respond
from identityhub.config import Settings, get_settings
from identityhub.database import close_database, init_database, run_migrations
from identityhub.exceptions import AuthError, ErrorKind, validation_messages
from identityhub.models.results import ApiResult
from identityhub.rpc import start_grpc_server, stop_grpc_server
from identityhub.services import (
    AuthService,
    LoggingNotifier,
    Notifier,
    PasswordService,
    TokenService,
    configure_logging,
    get_logger,
)
from identityhub.store import InMemoryCredentialStore, PostgresCredentialStore
from identityhub.store.base import CredentialStore


def build_store(settings: Settings) -> CredentialStore:
    """Credential store for the configured backend."""
    if settings.store_backend == "memory":
        return InMemoryCredentialStore()
    return PostgresCredentialStore()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[CredentialStore] = None,
    notifier: Optional[Notifier] = None,
) -> FastAPI:
    """Wire the services and both transports into one application.

    Args:
        settings: Configuration; defaults to the cached environment settings
        store: Credential store; defaults to the configured backend
        notifier: Token delivery; defaults to LoggingNotifier

    Returns:
        FastAPI app whose lifespan also runs the gRPC server when enabled
    """
    settings = settings or get_settings()
    store = store or build_store(settings)
    tokens = TokenService(settings)
    passwords = PasswordService(settings)
    auth_service = AuthService(store, tokens, passwords, notifier or LoggingNotifier(), settings)
    uses_postgres = isinstance(store, PostgresCredentialStore)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown events."""
        configure_logging(settings.log_level)
        logger = get_logger("main")

        if uses_postgres:
            await init_database(settings.postgres_url)
            await run_migrations()
            logger.info("database_initialized")

        grpc_server = None
        if settings.grpc_enabled:
            grpc_server, _ = await start_grpc_server(
                auth_service, tokens, f"[::]:{settings.grpc_port}"
            )

        if (
            settings.environment == "development"
            and settings.seed_admin_email
            and settings.seed_admin_password
        ):
            result = await auth_service.ensure_admin_user(
                settings.seed_admin_email, settings.seed_admin_password
            )
            logger.info("admin_seed_checked", success=result.success, detail=result.message)

        logger.info(
            "application_started",
            environment=settings.environment,
            store_backend=settings.store_backend,
            grpc_enabled=settings.grpc_enabled,
            log_level=settings.log_level,
        )

        yield

        await stop_grpc_server(grpc_server)
        if uses_postgres:
            await close_database()
        logger.info("application_shutdown")

    app = FastAPI(
        title="IdentityHub",
        description="Identity and authentication service: registration, sign-in, "
        "token rotation, password and profile management",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.token_service = tokens
    app.state.auth_service = auth_service

    @app.exception_handler(AuthError)
    async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
        """Render guard failures raised by dependencies as envelopes."""
        return respond(ApiResult.fail(exc.kind, exc.message, exc.errors))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Render request validation errors as a 400 envelope."""
        correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
        errors = validation_messages(exc.errors())

        structlog.get_logger().warning(
            "validation_error",
            correlation_id=correlation_id,
            errors=errors,
        )

        body = ApiResult.fail(ErrorKind.VALIDATION_FAILURE, "Validation failed", errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=body.model_dump(mode="json"),
            headers={"X-Correlation-Id": correlation_id},
        )

    # CORS middleware for browser clients
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Correlation ID middleware for request tracking and observability
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(health_router)

    return app


app = create_app()
