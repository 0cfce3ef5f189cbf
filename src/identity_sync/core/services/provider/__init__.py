"""External identity provider clients."""

from loguru import logger

from src.identity_sync.core.errors import UnconfiguredError
from src.identity_sync.runtime.config.config_data import ProviderConfig

from .bounded import BoundedProviderClient
from .client import HttpIdentityProviderClient, IdentityProviderClient
from .memory import InMemoryIdentityProviderClient


def build_provider_client(config: ProviderConfig) -> IdentityProviderClient | None:
    """Create the configured provider client, or None when the provider is not set up.

    Every client is wrapped so each call is bounded by ``timeout_seconds``.
    """
    if not config.configured:
        logger.warning(
            "Identity provider not configured (enabled={}, kind={}); sync is disabled",
            config.enabled,
            config.kind,
        )
        return None

    inner: IdentityProviderClient
    if config.kind == "memory":
        logger.info("Using in-memory identity provider")
        inner = InMemoryIdentityProviderClient()
    else:
        logger.info("Using identity provider at {}", config.base_url)
        inner = HttpIdentityProviderClient(config)
    return BoundedProviderClient(inner, config.timeout_seconds)


def require_provider(provider: IdentityProviderClient | None) -> IdentityProviderClient:
    """Return the provider, refusing to continue when none is configured."""
    if provider is None:
        raise UnconfiguredError(
            "Identity provider is not configured; set provider.base_url and "
            "provider.api_key (or provider.kind: memory) and restart"
        )
    return provider


__all__ = [
    "BoundedProviderClient",
    "HttpIdentityProviderClient",
    "IdentityProviderClient",
    "InMemoryIdentityProviderClient",
    "build_provider_client",
    "require_provider",
]
