"""Identity record domain entity."""

import secrets
from datetime import datetime
from enum import StrEnum

from pydantic import Field, field_validator

from src.identity_sync.entities.core._base import Entity, as_utc

# A hash that no password verifier will ever accept
UNUSABLE_PASSWORD_PREFIX = "!"


class SyncStatus(StrEnum):
    """Where a record stands relative to its provider counterpart."""

    SYNCED = "synced"
    PENDING = "pending"
    ERROR = "error"
    MANUAL = "manual"


def make_unusable_password() -> str:
    """Placeholder credential for records whose login is owned by the provider."""
    return UNUSABLE_PASSWORD_PREFIX + secrets.token_urlsafe(32)


class IdentityRecord(Entity):
    """A user identity owned by the application.

    The record may be linked to an identity at the external provider through
    ``external_id``. Linking state and the outcome of the last sync attempt
    are tracked in ``sync_status``, ``last_synced_at`` and ``sync_error``.
    """

    email: str = Field(description="Unique email address, compared case-insensitively")
    external_id: str | None = Field(
        default=None, description="Provider-issued identifier of the linked identity"
    )
    display_name: str = Field(default="", description="Name shown to other users")
    phone: str | None = Field(default=None, description="Phone number")
    email_verified: bool = Field(default=False)
    active: bool = Field(default=True)
    roles: list[str] = Field(default_factory=list, description="Authorization roles")
    sync_status: SyncStatus = Field(default=SyncStatus.MANUAL)
    last_synced_at: datetime | None = Field(default=None)
    sync_error: str | None = Field(default=None)
    password_hash: str | None = Field(default=None, repr=False)

    @field_validator("roles")
    @classmethod
    def _dedupe_roles(cls, roles: list[str]) -> list[str]:
        return sorted(set(roles))

    @field_validator("last_synced_at", "created_at", "updated_at")
    @classmethod
    def _ensure_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @property
    def is_linked(self) -> bool:
        return self.external_id is not None

    def link(self, external_id: str, synced_at: datetime) -> None:
        """Record a successful sync with the given provider identity."""
        self.external_id = external_id
        self.sync_status = SyncStatus.SYNCED
        self.last_synced_at = synced_at
        self.sync_error = None

    def mark_error(self, message: str) -> None:
        """Record a failed sync; linking and profile fields stay as they were."""
        self.sync_status = SyncStatus.ERROR
        self.sync_error = message

    def unlink(self, note: str | None) -> None:
        """Detach from the provider identity, keeping every other field."""
        self.external_id = None
        self.sync_status = SyncStatus.MANUAL
        self.sync_error = note
