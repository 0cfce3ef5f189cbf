"""Projection of local identity records onto the external provider."""

from collections.abc import Callable
from datetime import datetime

from loguru import logger

from src.identity_sync.core.errors import NotFoundError, error_code_for
from src.identity_sync.core.models.provider import (
    CustomClaims,
    ExternalIdentity,
    IdentityAttributes,
)
from src.identity_sync.core.models.sync import PushResult, SyncAction
from src.identity_sync.core.services.provider import (
    IdentityProviderClient,
    require_provider,
)
from src.identity_sync.entities.core._base import utc_now
from src.identity_sync.entities.core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
)
from src.identity_sync.runtime.config.config_data import SyncConfig

_OWNED_CLAIMS = {"roles", "userId", "lastSync"}


class PushSynchronizer:
    """Create or update the provider identity for a local record.

    Failures never propagate: the record is marked ``error`` with the
    message, its link and profile fields stay as they were, and the returned
    :class:`PushResult` reports the failure.
    """

    def __init__(
        self,
        repository: IdentityRecordRepository,
        provider: IdentityProviderClient | None,
        config: SyncConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._provider = provider
        self._config = config
        self._clock = clock

    async def push(self, record: IdentityRecord) -> PushResult:
        provider = require_provider(self._provider)
        log = logger.bind(record_id=record.id, email=record.email)

        try:
            existing = await self._fetch_linked(provider, record)
            attributes, note = self._attributes_for(record, existing)

            if existing is None:
                identity = await provider.create_identity(attributes)
                action = SyncAction.CREATED
            else:
                identity = await provider.update_identity(existing.external_id, attributes)
                action = SyncAction.UPDATED

            synced_at = self._clock()
            await provider.set_custom_claims(
                identity.external_id, self._claims_for(record, existing, synced_at)
            )

            linked = record.model_copy(deep=True)
            linked.link(identity.external_id, synced_at)
            self._repository.update(linked)
        except Exception as e:
            return self._fail(record, e)

        message = f"Identity record {record.email} pushed to provider ({action})"
        if note:
            message = f"{message}; {note}"
        log.bind(external_id=identity.external_id, action=str(action)).info(message)
        return PushResult(
            success=True,
            action=action,
            external_id=identity.external_id,
            message=message,
        )

    async def _fetch_linked(
        self, provider: IdentityProviderClient, record: IdentityRecord
    ) -> ExternalIdentity | None:
        if not record.external_id:
            return None
        try:
            return await provider.get_identity(record.external_id)
        except NotFoundError:
            logger.bind(record_id=record.id).info(
                "Linked external identity {} no longer exists; it will be recreated",
                record.external_id,
            )
            return None

    def _attributes_for(
        self, record: IdentityRecord, existing: ExternalIdentity | None
    ) -> tuple[IdentityAttributes, str | None]:
        attributes = IdentityAttributes(
            email=record.email,
            display_name=record.display_name or None,
            email_verified=record.email_verified,
            disabled=not record.active,
            phone_number=record.phone,
        )

        if (
            existing is not None
            and self._config.email_conflict_policy == "preserve_verified"
            and existing.email_verified
            and existing.email.lower() != record.email.lower()
        ):
            # Verification state belongs to the provider's address, not ours
            attributes.email = None
            attributes.email_verified = None
            return attributes, f"kept verified provider email {existing.email}"

        return attributes, None

    @staticmethod
    def _claims_for(
        record: IdentityRecord, existing: ExternalIdentity | None, synced_at: datetime
    ) -> CustomClaims:
        extra = {}
        if existing is not None:
            extra = {
                key: value
                for key, value in existing.custom_claims.items()
                if key not in _OWNED_CLAIMS
            }
        return CustomClaims(
            roles=record.roles,
            user_id=record.id,
            last_sync=int(synced_at.timestamp() * 1000),
            extra=extra,
        )

    def _fail(self, record: IdentityRecord, error: Exception) -> PushResult:
        message = str(error) or type(error).__name__
        logger.bind(record_id=record.id, email=record.email).warning(
            "Push failed for {}: {}", record.email, message
        )

        failed = record.model_copy(deep=True)
        failed.mark_error(message)
        try:
            self._repository.update(failed)
        except Exception as e:
            logger.bind(record_id=record.id).exception(
                "Could not record push failure: {}", e
            )

        return PushResult(
            success=False,
            action=SyncAction.ERROR,
            external_id=record.external_id,
            message=message,
            error_code=error_code_for(error),
        )
