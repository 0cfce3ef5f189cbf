"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import HTTPException, RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.responses import JSONResponse

from src.identity_sync.api.http.app_data import ApplicationDependencies
from src.identity_sync.api.http.routers.health import router as health_router
from src.identity_sync.api.http.routers.sync import router as sync_router
from src.identity_sync.api.http.routers.sync import sync_error_response
from src.identity_sync.api.utils.app_startup import configure_logging
from src.identity_sync.core.errors import SyncError
from src.identity_sync.core.services import (
    DbSessionService,
    IdentitySyncService,
    build_provider_client,
)
from src.identity_sync.runtime.config.config_data import ConfigData
from src.identity_sync.runtime.context import get_config


# --- Lifecycle hooks ---
async def startup(app: FastAPI) -> None:
    config: ConfigData = app.state.config
    configure_logging(config)
    logger.info("Starting up application in {} environment", config.app.environment)

    database_service = DbSessionService(config)
    database_service.create_all()
    provider = build_provider_client(config.provider)

    deps = ApplicationDependencies(
        config=config,
        database_service=database_service,
        provider=provider,
    )

    if config.reconciliation.enabled:
        deps.daemon_session = database_service.get_session()
        deps.daemon = IdentitySyncService.from_session(
            deps.daemon_session, provider, config
        ).build_daemon()
        if config.reconciliation.autostart and provider is not None:
            deps.daemon.start()
        elif config.reconciliation.autostart:
            logger.warning("Reconciliation daemon not started: provider is not configured")

    app.state.app_dependencies = deps


async def shutdown(app: FastAPI) -> None:
    logger.info("Shutting down application")
    app_dependencies: ApplicationDependencies = app.state.app_dependencies

    if app_dependencies.daemon is not None and app_dependencies.daemon.running:
        await app_dependencies.daemon.stop()
    if app_dependencies.daemon_session is not None:
        app_dependencies.daemon_session.close()
    if app_dependencies.provider is not None:
        await app_dependencies.provider.close()
    app_dependencies.database_service.dispose()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup(app)
    try:
        yield
    finally:
        await shutdown(app)


# --- Request logging middleware ---
async def log_requests(request: Request, call_next):
    # Correlation / tracing
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())

    xff = request.headers.get("x-forwarded-for")
    client_ip = (
        xff.split(",")[0].strip()
        if xff
        else request.client.host
        if request.client
        else "unknown"
    )

    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": client_ip,
        "user_agent": request.headers.get("user-agent", "unknown"),
    }

    start = time.perf_counter()

    # Everything that logs within this block inherits base_ctx
    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
            ).info("request.end")

            response.headers.setdefault("X-Request-ID", request_id)
            return response

        except HTTPException as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=exc.status_code,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=exc.status_code,
                content={"detail": exc.detail, "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        except RequestValidationError as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=422,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.validation_error")
            return JSONResponse(
                status_code=422,
                content={"detail": exc.errors(), "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )

        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=500,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal Server Error", "request_id": request_id},
                headers={"X-Request-ID": request_id},
            )


async def handle_sync_error(request: Request, exc: SyncError) -> JSONResponse:
    logger.bind(error_code=exc.code, status_code=exc.status_code).warning(
        "Sync request refused: {}", exc.message
    )
    return sync_error_response(exc)


def create_app(config: ConfigData | None = None) -> FastAPI:
    """Build the application for ``config`` (the active configuration by default)."""
    config = config or get_config()

    if config.app.environment == "production" and "*" in config.app.cors.origins:
        raise RuntimeError(
            "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
        )

    application = FastAPI(
        title="Identity Sync",
        lifespan=lifespan,
        docs_url=None if config.app.environment == "production" else "/docs",
        redoc_url=None if config.app.environment == "production" else "/redoc",
    )
    application.state.config = config

    application.add_middleware(
        CORSMiddleware,
        allow_origins=config.app.cors.origins,
        allow_credentials=config.app.cors.allow_credentials,
        allow_methods=config.app.cors.allow_methods,
        allow_headers=config.app.cors.allow_headers,
    )
    application.middleware("http")(log_requests)
    application.add_exception_handler(SyncError, handle_sync_error)

    application.include_router(health_router)
    application.include_router(sync_router)
    return application


app = create_app()

__all__ = ["app", "create_app", "startup", "shutdown"]


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_config().app.host,
        port=get_config().app.port,
        access_log=False,  # We handle access logging in middleware
    )
