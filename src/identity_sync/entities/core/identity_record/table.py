"""Identity record database table model."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text
from sqlmodel import Field

from src.identity_sync.entities.core._base import EntityTable


class IdentityRecordTable(EntityTable, table=True):
    """Database persistence model for identity records.

    ``external_id`` is unique but nullable: SQL treats NULLs as distinct, so
    any number of unlinked records can coexist while no two records can share
    a provider identity.
    """

    email: str = Field(sa_column=Column(String(320), nullable=False, unique=True, index=True))
    external_id: str | None = Field(
        default=None, sa_column=Column(String(128), nullable=True, unique=True, index=True)
    )
    display_name: str = Field(default="", sa_column=Column(String(256), nullable=False))
    phone: str | None = Field(default=None, sa_column=Column(String(64), nullable=True))
    email_verified: bool = Field(default=False, sa_column=Column(Boolean, nullable=False))
    active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False))
    roles: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    sync_status: str = Field(
        default="manual", sa_column=Column(String(16), nullable=False, index=True)
    )
    last_synced_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    sync_error: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    password_hash: str | None = Field(default=None, sa_column=Column(String(256), nullable=True))
