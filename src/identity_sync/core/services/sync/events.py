"""Provider lifecycle notifications applied as immediate single-identity syncs."""

from loguru import logger

from src.identity_sync.core.errors import NotFoundError, ValidationError
from src.identity_sync.core.models.sync import (
    PullResult,
    SyncAction,
    WebhookEvent,
    WebhookEventType,
)
from src.identity_sync.core.services.provider import (
    IdentityProviderClient,
    require_provider,
)
from src.identity_sync.core.services.sync.pull import PullSynchronizer
from src.identity_sync.entities.core.identity_record import IdentityRecordRepository

EXTERNAL_DELETED_NOTE = "external identity deleted"


def unlink_external(
    repository: IdentityRecordRepository, external_id: str, note: str | None
) -> PullResult:
    """Detach the local record linked to ``external_id``, if there is one."""
    record = repository.get_by_external_id(external_id)
    if record is None:
        return PullResult(
            success=True,
            action=SyncAction.IGNORED,
            message=f"No identity record linked to {external_id}",
        )

    unlinked = record.model_copy(deep=True)
    unlinked.unlink(note)
    repository.update(unlinked)
    logger.bind(record_id=record.id, external_id=external_id, action="unlinked").info(
        "Identity record {} unlinked from {}", record.email, external_id
    )
    return PullResult(
        success=True,
        action=SyncAction.UNLINKED,
        record_id=record.id,
        message=f"Identity record {record.email} unlinked from {external_id}",
    )


class WebhookEventHandler:
    """Apply ``identity.created``/``updated``/``deleted`` notifications.

    Event payload fields are never trusted: created and updated events
    re-read the identity from the provider and pull that snapshot, so a
    replayed or reordered event converges on the provider's current state.
    """

    def __init__(
        self,
        repository: IdentityRecordRepository,
        provider: IdentityProviderClient | None,
        puller: PullSynchronizer,
    ):
        self._repository = repository
        self._provider = provider
        self._puller = puller

    async def handle(self, event: WebhookEvent) -> PullResult:
        provider = require_provider(self._provider)
        log = logger.bind(external_id=event.external_id, event_type=event.event_type)

        try:
            kind = WebhookEventType(event.event_type)
        except ValueError:
            supported = ", ".join(kind.value for kind in WebhookEventType)
            raise ValidationError(
                f"Unknown event type {event.event_type!r}; expected one of {supported}"
            ) from None

        log.info("Webhook event received")

        if kind == WebhookEventType.DELETED:
            return unlink_external(self._repository, event.external_id, EXTERNAL_DELETED_NOTE)

        try:
            identity = await provider.get_identity(event.external_id)
        except NotFoundError:
            log.info("Identity vanished before the event was applied; unlinking")
            return unlink_external(self._repository, event.external_id, EXTERNAL_DELETED_NOTE)

        return await self._puller.pull(identity)
