from dataclasses import dataclass

from sqlmodel import Session

from src.identity_sync.core.services import (
    DbSessionService,
    IdentityProviderClient,
    ReconciliationDaemon,
)
from src.identity_sync.runtime.config.config_data import ConfigData


@dataclass
class ApplicationDependencies:
    config: ConfigData
    database_service: DbSessionService
    provider: IdentityProviderClient | None
    daemon: ReconciliationDaemon | None = None
    # The daemon outlives requests, so it holds its own session
    daemon_session: Session | None = None
