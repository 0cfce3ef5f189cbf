"""FastAPI dependency implementations."""

from __future__ import annotations

from collections.abc import Iterator

from fastapi import Depends, Request
from sqlmodel import Session

from src.identity_sync.api.http.app_data import ApplicationDependencies
from src.identity_sync.core.errors import UnconfiguredError
from src.identity_sync.core.services import (
    DbSessionService,
    IdentityProviderClient,
    IdentitySyncService,
    ReconciliationDaemon,
)
from src.identity_sync.runtime.config.config_data import ConfigData


def get_app_dependencies(request: Request) -> ApplicationDependencies:
    return request.app.state.app_dependencies


def get_app_config(request: Request) -> ConfigData:
    """Get the configuration the application was started with."""
    return get_app_dependencies(request).config


def get_database_service(request: Request) -> DbSessionService:
    """Get the database service instance."""
    return get_app_dependencies(request).database_service


def get_provider(request: Request) -> IdentityProviderClient | None:
    """Get the identity provider client, or None when it is not configured."""
    return get_app_dependencies(request).provider


def get_db_session(
    database_service: DbSessionService = Depends(get_database_service),
) -> Iterator[Session]:
    """Yield a database session tied to the current request lifecycle."""
    db = database_service.get_session()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_sync_service(
    db: Session = Depends(get_db_session),
    provider: IdentityProviderClient | None = Depends(get_provider),
    config: ConfigData = Depends(get_app_config),
) -> IdentitySyncService:
    """Sync service bound to the request's database session."""
    return IdentitySyncService.from_session(db, provider, config)


def get_daemon(request: Request) -> ReconciliationDaemon:
    """Get the reconciliation daemon; refuses when reconciliation is disabled."""
    daemon = get_app_dependencies(request).daemon
    if daemon is None:
        raise UnconfiguredError(
            "Reconciliation daemon is disabled (reconciliation.enabled is false)"
        )
    return daemon
