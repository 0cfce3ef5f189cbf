"""In-memory identity provider for development and tests."""

from __future__ import annotations

import uuid
from datetime import datetime

from src.identity_sync.core.errors import ConflictError, NotFoundError, ValidationError
from src.identity_sync.core.models.provider import (
    CustomClaims,
    ExternalIdentity,
    ExternalIdentityPage,
    IdentityAttributes,
)
from src.identity_sync.core.services.provider.client import IdentityProviderClient
from src.identity_sync.entities.core._base import utc_now


class InMemoryIdentityProviderClient(IdentityProviderClient):
    """Dict-backed provider with the same error semantics as the HTTP client.

    Emails are unique case-insensitively, as they are at hosted providers.
    Page tokens are stringified offsets into creation order.
    """

    def __init__(self):
        self._identities: dict[str, ExternalIdentity] = {}

    def seed(self, identity: ExternalIdentity) -> ExternalIdentity:
        """Insert an identity as if it had been created directly at the provider."""
        self._identities[identity.external_id] = identity.model_copy(deep=True)
        return identity

    def touch(self, external_id: str, at: datetime | None = None) -> None:
        """Advance an identity's last-activity timestamp."""
        identity = self._require(external_id)
        identity.last_activity_at = at or utc_now()

    def remove(self, external_id: str) -> None:
        """Delete an identity without going through the client API."""
        self._identities.pop(external_id, None)

    def count(self) -> int:
        return len(self._identities)

    def _require(self, external_id: str) -> ExternalIdentity:
        identity = self._identities.get(external_id)
        if identity is None:
            raise NotFoundError(f"External identity {external_id} not found")
        return identity

    def _check_email_free(self, email: str, owner: str | None = None) -> None:
        for identity in self._identities.values():
            if identity.external_id != owner and identity.email.lower() == email.lower():
                raise ConflictError(f"Email {email} already belongs to another identity")

    async def get_identity(self, external_id: str) -> ExternalIdentity:
        return self._require(external_id).model_copy(deep=True)

    async def create_identity(self, attributes: IdentityAttributes) -> ExternalIdentity:
        if not attributes.email:
            raise ValidationError("Email is required to create an identity")
        self._check_email_free(attributes.email)

        now = utc_now()
        identity = ExternalIdentity(
            external_id=uuid.uuid4().hex,
            email=attributes.email,
            display_name=attributes.display_name,
            phone_number=attributes.phone_number,
            email_verified=bool(attributes.email_verified),
            disabled=bool(attributes.disabled),
            created_at=now,
            last_activity_at=now,
        )
        self._identities[identity.external_id] = identity
        return identity.model_copy(deep=True)

    async def update_identity(
        self, external_id: str, attributes: IdentityAttributes
    ) -> ExternalIdentity:
        identity = self._require(external_id)
        changes = attributes.model_dump(exclude_none=True)
        if "email" in changes:
            self._check_email_free(changes["email"], owner=external_id)
        for field, value in changes.items():
            setattr(identity, field, value)
        identity.last_activity_at = utc_now()
        return identity.model_copy(deep=True)

    async def delete_identity(self, external_id: str) -> None:
        self._require(external_id)
        del self._identities[external_id]

    async def list_identities(
        self, page_size: int, page_token: str | None = None
    ) -> ExternalIdentityPage:
        ordered = list(self._identities.values())
        start = int(page_token) if page_token else 0
        end = start + page_size
        return ExternalIdentityPage(
            identities=[identity.model_copy(deep=True) for identity in ordered[start:end]],
            next_page_token=str(end) if end < len(ordered) else None,
            total_count=len(ordered),
        )

    async def set_custom_claims(self, external_id: str, claims: CustomClaims) -> None:
        self._require(external_id).custom_claims = claims.to_payload()

    async def health_check(self) -> bool:
        return True
