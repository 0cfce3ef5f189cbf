"""Core services exports."""

from .database.db_session import DbSessionService
from .provider import (
    BoundedProviderClient,
    HttpIdentityProviderClient,
    IdentityProviderClient,
    InMemoryIdentityProviderClient,
    build_provider_client,
    require_provider,
)
from .sync import (
    BatchOrchestrator,
    IdentityMatcher,
    IdentitySyncService,
    PullSynchronizer,
    PushSynchronizer,
    ReconciliationDaemon,
    WebhookEventHandler,
)

__all__ = [
    "BatchOrchestrator",
    "BoundedProviderClient",
    "DbSessionService",
    "HttpIdentityProviderClient",
    "IdentityMatcher",
    "IdentityProviderClient",
    "IdentitySyncService",
    "InMemoryIdentityProviderClient",
    "PullSynchronizer",
    "PushSynchronizer",
    "ReconciliationDaemon",
    "WebhookEventHandler",
    "build_provider_client",
    "require_provider",
]
