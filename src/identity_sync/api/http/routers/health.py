"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Request
from starlette.responses import JSONResponse

from src.identity_sync.api.http.app_data import ApplicationDependencies

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Basic health check endpoint - checks if app is running.

    This is a liveness probe that returns 200 OK as long as the application
    process is running. It does not check dependencies.
    """
    return {"status": "healthy", "service": "identity-sync"}


@router.get("/ready", response_model=None)
async def readiness(request: Request) -> dict[str, Any] | JSONResponse:
    """Readiness check - validates the database and the identity provider.

    Returns 200 if every critical dependency is ready, 503 otherwise. An
    unconfigured provider is reported but does not fail readiness outside
    production, so local development works without provider credentials.
    """
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    config = app_deps.config

    checks: dict[str, Any] = {}
    all_healthy = True

    # Database health check
    try:
        db_healthy = app_deps.database_service.health_check()
        checks["database"] = {
            "status": "healthy" if db_healthy else "unhealthy",
            "type": "postgresql" if "postgresql" in config.database.url else "sqlite",
        }
        if not db_healthy:
            all_healthy = False
    except Exception as e:
        checks["database"] = {
            "status": "unhealthy",
            "error": str(e),
        }
        all_healthy = False

    # Identity provider health check
    if app_deps.provider is None:
        checks["provider"] = {
            "status": "unconfigured",
            "note": "Sync operations are refused until the provider is configured",
        }
        if config.app.environment == "production":
            all_healthy = False
    else:
        provider_healthy = await app_deps.provider.health_check()
        checks["provider"] = {
            "status": "healthy" if provider_healthy else "unhealthy",
            "type": config.provider.kind,
        }
        if not provider_healthy:
            all_healthy = False

    # Reconciliation daemon is informational only
    if app_deps.daemon is None:
        checks["reconciliation"] = {"status": "disabled"}
    else:
        checks["reconciliation"] = {
            "status": "running" if app_deps.daemon.running else "stopped",
        }

    response = {
        "status": "ready" if all_healthy else "not_ready",
        "environment": config.app.environment,
        "checks": checks,
    }

    if not all_healthy:
        return JSONResponse(
            status_code=503,
            content=response,
        )

    return response
