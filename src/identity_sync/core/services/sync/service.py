"""Entry points used by the API and the CLI."""

from loguru import logger
from sqlmodel import Session

from src.identity_sync.core.errors import NotFoundError, ValidationError
from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.models.sync import (
    BatchSummary,
    PendingRecord,
    PullResult,
    PushResult,
    SyncStatusReport,
    WebhookEvent,
)
from src.identity_sync.core.services.provider import (
    IdentityProviderClient,
    require_provider,
)
from src.identity_sync.core.services.sync.batch import BatchOrchestrator, ProgressCallback
from src.identity_sync.core.services.sync.daemon import ReconciliationDaemon
from src.identity_sync.core.services.sync.events import WebhookEventHandler, unlink_external
from src.identity_sync.core.services.sync.matcher import IdentityMatcher
from src.identity_sync.core.services.sync.pull import PullSynchronizer
from src.identity_sync.core.services.sync.push import PushSynchronizer
from src.identity_sync.entities.core.identity_record import (
    IdentityRecordRepository,
    SyncStatus,
)
from src.identity_sync.runtime.config.config_data import ConfigData

MAX_EXTERNAL_LISTING = 1000


class IdentitySyncService:
    """Single-identity operations, bulk runs and status reporting.

    All components share one repository, so an instance is bound to one
    database session; create one per request or per CLI invocation.
    """

    def __init__(
        self,
        repository: IdentityRecordRepository,
        provider: IdentityProviderClient | None,
        config: ConfigData,
    ):
        self.repository = repository
        self.provider = provider
        self.config = config

        self.matcher = IdentityMatcher(repository)
        self.pusher = PushSynchronizer(repository, provider, config.sync)
        self.puller = PullSynchronizer(repository, self.matcher, config.sync)
        self.orchestrator = BatchOrchestrator(
            repository,
            provider,
            self.pusher,
            self.puller,
            config.sync,
            config.provider,
        )
        self.events = WebhookEventHandler(repository, provider, self.puller)

    @classmethod
    def from_session(
        cls,
        session: Session,
        provider: IdentityProviderClient | None,
        config: ConfigData,
    ) -> "IdentitySyncService":
        return cls(IdentityRecordRepository(session), provider, config)

    def build_daemon(self) -> ReconciliationDaemon:
        return ReconciliationDaemon(
            self.repository,
            self.provider,
            self.matcher,
            self.puller,
            self.config.sync,
            self.config.provider,
            interval_ms=self.config.reconciliation.interval_ms,
        )

    async def push_one(self, record_id: str) -> PushResult:
        require_provider(self.provider)
        record = self.repository.get(record_id)
        if record is None:
            raise NotFoundError(f"Identity record {record_id} not found")
        return await self.pusher.push(record)

    async def pull_one(self, external_id: str) -> PullResult:
        provider = require_provider(self.provider)
        identity = await provider.get_identity(external_id)
        return await self.puller.pull(identity)

    async def push_all(
        self,
        batch_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchSummary:
        return await self.orchestrator.push_all(batch_size, progress_callback)

    async def pull_all(
        self,
        batch_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchSummary:
        return await self.orchestrator.pull_all(batch_size, progress_callback)

    async def handle_event(self, event: WebhookEvent) -> PullResult:
        return await self.events.handle(event)

    async def delete_external(self, external_id: str) -> PullResult:
        """Delete the provider identity and detach its local record."""
        provider = require_provider(self.provider)
        try:
            await provider.delete_identity(external_id)
        except NotFoundError:
            logger.bind(external_id=external_id).info(
                "External identity already gone; unlinking local record only"
            )
        return unlink_external(self.repository, external_id, None)

    async def list_external(self, limit: int = 100) -> list[ExternalIdentity]:
        if limit <= 0 or limit > MAX_EXTERNAL_LISTING:
            raise ValidationError(f"limit must be between 1 and {MAX_EXTERNAL_LISTING}")
        provider = require_provider(self.provider)

        identities: list[ExternalIdentity] = []
        page_token = None
        while len(identities) < limit:
            page = await provider.list_identities(
                min(self.config.provider.page_size, limit - len(identities)), page_token
            )
            identities.extend(page.identities)
            page_token = page.next_page_token
            if not page_token:
                break
        return identities[:limit]

    async def status(self) -> SyncStatusReport:
        counts = self.repository.count_by_status()
        total = sum(counts.values())
        synced = counts[SyncStatus.SYNCED]

        provider_healthy = False
        if self.provider is not None:
            try:
                provider_healthy = await self.provider.health_check()
            except Exception as e:
                logger.warning("Provider health check failed: {}", e)

        return SyncStatusReport(
            total_records=total,
            synced=synced,
            pending=counts[SyncStatus.PENDING],
            error=counts[SyncStatus.ERROR],
            manual=counts[SyncStatus.MANUAL],
            with_external_id=self.repository.count(linked_only=True),
            sync_percentage=round(synced / total * 100, 1) if total else 0.0,
            provider_configured=self.provider is not None,
            provider_healthy=provider_healthy,
        )

    def pending(self) -> list[PendingRecord]:
        return [
            PendingRecord(
                id=record.id,
                email=record.email,
                display_name=record.display_name,
                external_id=record.external_id,
                sync_status=str(record.sync_status),
                last_synced_at=record.last_synced_at,
                sync_error=record.sync_error,
            )
            for record in self.repository.list_needing_sync()
        ]
