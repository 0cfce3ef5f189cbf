"""Per-call timeout enforcement around any provider client."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from src.identity_sync.core.errors import ProviderUnavailableError
from src.identity_sync.core.models.provider import (
    CustomClaims,
    ExternalIdentity,
    ExternalIdentityPage,
    IdentityAttributes,
)
from src.identity_sync.core.services.provider.client import IdentityProviderClient

T = TypeVar("T")


class BoundedProviderClient(IdentityProviderClient):
    """Wraps a provider client so no call outlives ``timeout_seconds``.

    A call that runs out of time raises :class:`ProviderUnavailableError`,
    which the synchronizers record as a failure of that one item.
    """

    def __init__(self, inner: IdentityProviderClient, timeout_seconds: float):
        self._inner = inner
        self._timeout = timeout_seconds

    @property
    def inner(self) -> IdentityProviderClient:
        return self._inner

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except TimeoutError as e:
            raise ProviderUnavailableError(
                f"Provider call {operation} timed out after {self._timeout}s"
            ) from e

    async def get_identity(self, external_id: str) -> ExternalIdentity:
        return await self._bounded("get_identity", self._inner.get_identity(external_id))

    async def create_identity(self, attributes: IdentityAttributes) -> ExternalIdentity:
        return await self._bounded(
            "create_identity", self._inner.create_identity(attributes)
        )

    async def update_identity(
        self, external_id: str, attributes: IdentityAttributes
    ) -> ExternalIdentity:
        return await self._bounded(
            "update_identity", self._inner.update_identity(external_id, attributes)
        )

    async def delete_identity(self, external_id: str) -> None:
        await self._bounded("delete_identity", self._inner.delete_identity(external_id))

    async def list_identities(
        self, page_size: int, page_token: str | None = None
    ) -> ExternalIdentityPage:
        return await self._bounded(
            "list_identities", self._inner.list_identities(page_size, page_token)
        )

    async def set_custom_claims(self, external_id: str, claims: CustomClaims) -> None:
        await self._bounded(
            "set_custom_claims", self._inner.set_custom_claims(external_id, claims)
        )

    async def health_check(self) -> bool:
        try:
            return await self._bounded("health_check", self._inner.health_check())
        except ProviderUnavailableError:
            return False

    async def close(self) -> None:
        await self._inner.close()
