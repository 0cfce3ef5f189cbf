"""External identity provider client interface and HTTP implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import httpx
from loguru import logger

from src.identity_sync.core.errors import (
    ConflictError,
    NotFoundError,
    ProviderUnavailableError,
    SyncError,
    ValidationError,
)
from src.identity_sync.core.models.provider import (
    CustomClaims,
    ExternalIdentity,
    ExternalIdentityPage,
    IdentityAttributes,
)
from src.identity_sync.runtime.config.config_data import ProviderConfig


class IdentityProviderClient(ABC):
    """Abstract interface to the external identity provider.

    Implementations translate provider failures into the sync error taxonomy:
    a missing identity raises :class:`NotFoundError`, a duplicate raises
    :class:`ConflictError` and an unreachable or degraded provider raises
    :class:`ProviderUnavailableError`.
    """

    @abstractmethod
    async def get_identity(self, external_id: str) -> ExternalIdentity:
        """Fetch the current snapshot of one identity."""

    @abstractmethod
    async def create_identity(self, attributes: IdentityAttributes) -> ExternalIdentity:
        """Create an identity and return it with its provider-issued id."""

    @abstractmethod
    async def update_identity(
        self, external_id: str, attributes: IdentityAttributes
    ) -> ExternalIdentity:
        """Update the mutable fields of an identity."""

    @abstractmethod
    async def delete_identity(self, external_id: str) -> None:
        """Delete an identity."""

    @abstractmethod
    async def list_identities(
        self, page_size: int, page_token: str | None = None
    ) -> ExternalIdentityPage:
        """Return one page of identities; follow ``next_page_token`` for more."""

    @abstractmethod
    async def set_custom_claims(self, external_id: str, claims: CustomClaims) -> None:
        """Replace the custom claims embedded in the identity's tokens."""

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the provider answers."""

    async def close(self) -> None:
        """Release any held connections."""


class HttpIdentityProviderClient(IdentityProviderClient):
    """Client for a provider exposing a JSON identity admin API.

    Endpoints (relative to ``base_url``):
    ``GET/PATCH/DELETE /identities/{id}``, ``POST /identities``,
    ``GET /identities?pageSize=&pageToken=``, ``PUT /identities/{id}/claims``
    and ``GET /health``.
    """

    def __init__(
        self,
        config: ProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not config.base_url:
            raise ValueError("Provider base_url is required for the HTTP client")

        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"

        self._client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers=headers,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"Provider timed out on {method} {url}") from e
        except httpx.TransportError as e:
            raise ProviderUnavailableError(
                f"Provider unreachable on {method} {url}: {e}"
            ) from e

        if response.is_success:
            return response

        detail = self._error_detail(response)
        status = response.status_code
        if status == 404:
            raise NotFoundError(f"External identity not found: {detail}")
        if status == 409:
            raise ConflictError(f"Provider reported a conflict: {detail}")
        if status == 429 or status >= 500:
            raise ProviderUnavailableError(f"Provider returned {status}: {detail}")
        if status in (401, 403):
            raise SyncError(f"Provider rejected credentials ({status}): {detail}")
        raise ValidationError(f"Provider rejected request ({status}): {detail}")

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(body, dict):
            return str(body.get("message") or body.get("error") or body)
        return str(body)

    async def get_identity(self, external_id: str) -> ExternalIdentity:
        response = await self._request("GET", f"/identities/{external_id}")
        return ExternalIdentity.model_validate(response.json())

    async def create_identity(self, attributes: IdentityAttributes) -> ExternalIdentity:
        response = await self._request("POST", "/identities", json=attributes.to_payload())
        return ExternalIdentity.model_validate(response.json())

    async def update_identity(
        self, external_id: str, attributes: IdentityAttributes
    ) -> ExternalIdentity:
        response = await self._request(
            "PATCH", f"/identities/{external_id}", json=attributes.to_payload()
        )
        return ExternalIdentity.model_validate(response.json())

    async def delete_identity(self, external_id: str) -> None:
        await self._request("DELETE", f"/identities/{external_id}")

    async def list_identities(
        self, page_size: int, page_token: str | None = None
    ) -> ExternalIdentityPage:
        params: dict[str, Any] = {"pageSize": page_size}
        if page_token:
            params["pageToken"] = page_token
        response = await self._request("GET", "/identities", params=params)
        return ExternalIdentityPage.model_validate(response.json())

    async def set_custom_claims(self, external_id: str, claims: CustomClaims) -> None:
        await self._request(
            "PUT", f"/identities/{external_id}/claims", json=claims.to_payload()
        )

    async def health_check(self) -> bool:
        try:
            await self._request("GET", "/health")
            return True
        except SyncError as e:
            logger.warning("Identity provider health check failed: {}", e)
            return False

    async def close(self) -> None:
        await self._client.aclose()
