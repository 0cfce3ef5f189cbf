"""Models exchanged with the external identity provider.

The provider speaks camelCase JSON; the models accept either spelling and
serialise with aliases when sent over the wire.
"""

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from src.identity_sync.core.models.base import CamelModel
from src.identity_sync.entities.core._base import as_utc


class ExternalIdentity(CamelModel):
    """Snapshot of an identity as the provider currently reports it."""

    external_id: str
    email: str
    display_name: str | None = None
    phone_number: str | None = None
    email_verified: bool = False
    disabled: bool = False
    custom_claims: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    last_activity_at: datetime | None = None

    @field_validator("created_at", "last_activity_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)


class IdentityAttributes(CamelModel):
    """Mutable provider fields sent on create or update; None means "leave as is"."""

    email: str | None = None
    display_name: str | None = None
    phone_number: str | None = None
    email_verified: bool | None = None
    disabled: bool | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CustomClaims(CamelModel):
    """Claims the provider embeds into the session tokens it issues.

    ``roles``, ``user_id`` and ``last_sync`` are owned by this service; any
    other claim set by someone else travels in ``extra`` and is preserved.
    """

    roles: list[str] = Field(default_factory=list)
    user_id: str
    last_sync: int = Field(description="Milliseconds since the epoch")
    extra: dict[str, Any] = Field(default_factory=dict, exclude=True)

    def to_payload(self) -> dict[str, Any]:
        payload = dict(self.extra)
        payload.update(self.model_dump(by_alias=True))
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CustomClaims":
        known = {"roles", "userId", "lastSync"}
        return cls(
            roles=payload.get("roles", []),
            user_id=payload["userId"],
            last_sync=payload["lastSync"],
            extra={key: value for key, value in payload.items() if key not in known},
        )


class ExternalIdentityPage(CamelModel):
    """One page of a provider identity listing."""

    identities: list[ExternalIdentity] = Field(default_factory=list)
    next_page_token: str | None = None
    total_count: int | None = None
