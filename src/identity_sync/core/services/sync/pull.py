"""Projection of provider identities onto the local identity store."""

from collections.abc import Callable
from datetime import datetime
from typing import Any

from loguru import logger

from src.identity_sync.core.errors import ConflictError, error_code_for
from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.models.sync import PullResult, SyncAction
from src.identity_sync.core.services.sync.matcher import IdentityMatcher, MatchKey
from src.identity_sync.entities.core._base import utc_now
from src.identity_sync.entities.core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
    SyncStatus,
)
from src.identity_sync.entities.core.identity_record.entity import make_unusable_password
from src.identity_sync.runtime.config.config_data import SyncConfig


def display_name_for(identity: ExternalIdentity) -> str:
    if identity.display_name:
        return identity.display_name
    return identity.email.split("@", 1)[0]


class PullSynchronizer:
    """Create or update the local record for a provider identity snapshot.

    The snapshot is applied as-is: callers fetch it fresh from the provider.
    Matching and the write that follows run without yielding to the event
    loop, so two pulls of the same identity cannot both decide to create.
    """

    def __init__(
        self,
        repository: IdentityRecordRepository,
        matcher: IdentityMatcher,
        config: SyncConfig,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repository = repository
        self._matcher = matcher
        self._config = config
        self._clock = clock

    async def pull(self, identity: ExternalIdentity) -> PullResult:
        log = logger.bind(external_id=identity.external_id, email=identity.email)
        try:
            result = self._apply(identity)
        except Exception as e:
            return self._fail(identity, e)

        log.bind(record_id=result.record_id, action=str(result.action)).info(result.message)
        return result

    def _apply(self, identity: ExternalIdentity) -> PullResult:
        fields = self._fields_for(identity)
        match = self._matcher.match_external(identity)

        if match is None:
            try:
                record = self._repository.create(
                    IdentityRecord(
                        **fields,
                        roles=list(self._config.default_roles),
                        password_hash=make_unusable_password(),
                    )
                )
                return PullResult(
                    success=True,
                    action=SyncAction.CREATED,
                    record_id=record.id,
                    message=f"Identity record created for {identity.email}",
                )
            except ConflictError:
                # Another writer created the record since we matched; apply as an update
                match = self._matcher.match_external(identity)
                if match is None:
                    raise
                logger.bind(external_id=identity.external_id).info(
                    "Concurrent create detected for {}; retrying as update", identity.email
                )

        record = match.record
        if match.matched_by != MatchKey.EXTERNAL_ID and record.external_id not in (
            None,
            identity.external_id,
        ):
            raise ConflictError(
                f"Identity record {record.email} is linked to external identity "
                f"{record.external_id}, not {identity.external_id}"
            )

        updated = self._repository.update(record.model_copy(update=fields))
        return PullResult(
            success=True,
            action=SyncAction.UPDATED,
            record_id=updated.id,
            message=f"Identity record updated for {identity.email}",
        )

    def _fields_for(self, identity: ExternalIdentity) -> dict[str, Any]:
        return {
            "display_name": display_name_for(identity),
            "email": identity.email,
            "phone": identity.phone_number or None,
            "email_verified": identity.email_verified,
            "active": not identity.disabled,
            "external_id": identity.external_id,
            "sync_status": SyncStatus.SYNCED,
            "last_synced_at": self._clock(),
            "sync_error": None,
        }

    def _fail(self, identity: ExternalIdentity, error: Exception) -> PullResult:
        message = str(error) or type(error).__name__
        logger.bind(external_id=identity.external_id, email=identity.email).warning(
            "Pull failed for {}: {}", identity.email, message
        )

        record_id = None
        try:
            match = self._matcher.match_external(identity)
            if match is not None:
                record_id = match.record.id
                failed = match.record.model_copy(deep=True)
                failed.mark_error(message)
                self._repository.update(failed)
        except Exception as e:
            logger.bind(external_id=identity.external_id).exception(
                "Could not record pull failure: {}", e
            )

        return PullResult(
            success=False,
            action=SyncAction.ERROR,
            record_id=record_id,
            message=message,
            error_code=error_code_for(error),
        )
