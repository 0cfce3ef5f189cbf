"""Background reconciliation between the provider and the local store.

The daemon catches drift the webhook path misses: identities created at the
provider without a notification, changes made while the service was down and
identities deleted at the provider. Delivery is at-least-once: a record whose
sync fails keeps its ``error`` state and is attempted again on the next pass,
which is the only retry a degraded provider receives.
"""

import asyncio
import time
from collections.abc import Callable
from datetime import datetime
from enum import StrEnum

from loguru import logger

from src.identity_sync.core.errors import NotFoundError, ValidationError
from src.identity_sync.core.models.sync import DaemonStatus, ReconciliationReport
from src.identity_sync.core.services.provider import (
    IdentityProviderClient,
    require_provider,
)
from src.identity_sync.core.services.sync.events import (
    EXTERNAL_DELETED_NOTE,
    unlink_external,
)
from src.identity_sync.core.services.sync.matcher import IdentityMatcher
from src.identity_sync.core.services.sync.pull import PullSynchronizer
from src.identity_sync.entities.core._base import utc_now
from src.identity_sync.entities.core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
)
from src.identity_sync.runtime.config.config_data import ProviderConfig, SyncConfig


class DaemonState(StrEnum):
    STOPPED = "stopped"
    RUNNING = "running"


class ReconciliationDaemon:
    """Owns the reconciliation loop and its run statistics.

    ``start()`` runs a pass immediately and then one every ``interval_ms``.
    Scheduled passes and :meth:`run_now` share a lock, so passes never
    overlap.
    """

    def __init__(
        self,
        repository: IdentityRecordRepository,
        provider: IdentityProviderClient | None,
        matcher: IdentityMatcher,
        puller: PullSynchronizer,
        sync_config: SyncConfig,
        provider_config: ProviderConfig,
        interval_ms: int = 60_000,
        clock: Callable[[], datetime] = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self._repository = repository
        self._provider = provider
        self._matcher = matcher
        self._puller = puller
        self._sync_config = sync_config
        self._provider_config = provider_config
        self._interval_ms = interval_ms
        self._clock = clock
        self._monotonic = monotonic

        self._state = DaemonState.STOPPED
        self._task: asyncio.Task | None = None
        self._reschedule = asyncio.Event()
        self._pass_lock = asyncio.Lock()
        self._next_run_at: float | None = None

        self._last_run_at: datetime | None = None
        self._last_run_duration_ms: int | None = None
        self._last_report: ReconciliationReport | None = None
        self._total_runs = 0
        self._successful_runs = 0
        self._failed_runs = 0

    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == DaemonState.RUNNING

    def start(self) -> None:
        if self._state == DaemonState.RUNNING:
            logger.warning("Reconciliation daemon is already running")
            return
        self._state = DaemonState.RUNNING
        self._task = asyncio.create_task(self._loop(), name="identity-reconciliation")
        logger.info("Reconciliation daemon started (interval {} ms)", self._interval_ms)

    async def stop(self) -> None:
        if self._state == DaemonState.STOPPED:
            logger.warning("Reconciliation daemon is not running")
            return
        self._state = DaemonState.STOPPED
        self._next_run_at = None

        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Reconciliation daemon stopped")

    def set_interval(self, interval_ms: int) -> None:
        """Change the pass interval; a running daemon restarts its timer."""
        if interval_ms <= 0:
            raise ValidationError("Reconciliation interval must be a positive number of ms")
        self._interval_ms = interval_ms
        logger.info("Reconciliation interval set to {} ms", interval_ms)
        if self.running:
            self._reschedule.set()

    async def run_now(self) -> DaemonStatus:
        """Run one pass immediately, regardless of the schedule."""
        await self._run_pass()
        return self.status()

    def status(self) -> DaemonStatus:
        next_run_in_ms = None
        if self.running and self._next_run_at is not None:
            next_run_in_ms = max(0, int((self._next_run_at - self._monotonic()) * 1000))
        return DaemonStatus(
            running=self.running,
            last_run_at=self._last_run_at,
            interval_ms=self._interval_ms,
            total_runs=self._total_runs,
            successful_runs=self._successful_runs,
            failed_runs=self._failed_runs,
            last_run_duration_ms=self._last_run_duration_ms,
            next_run_in_ms=next_run_in_ms,
            last_report=self._last_report,
        )

    async def _loop(self) -> None:
        while True:
            await self._run_pass()
            await self._wait_for_next_run()

    async def _wait_for_next_run(self) -> None:
        while True:
            self._reschedule.clear()
            self._next_run_at = self._monotonic() + self._interval_ms / 1000
            try:
                await asyncio.wait_for(
                    self._reschedule.wait(), timeout=self._interval_ms / 1000
                )
            except TimeoutError:
                return

    async def _run_pass(self) -> bool:
        async with self._pass_lock:
            started = self._monotonic()
            self._last_run_at = self._clock()
            self._total_runs += 1
            try:
                report = await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._failed_runs += 1
                logger.exception("Reconciliation pass failed: {}", e)
                return False
            finally:
                self._last_run_duration_ms = int((self._monotonic() - started) * 1000)

            self._successful_runs += 1
            self._last_report = report
            return True

    async def run_once(self) -> ReconciliationReport:
        """Execute a single reconciliation pass and report what changed.

        Per-identity failures are counted in the report. Anything that stops
        the pass as a whole (no provider, listing failure) is raised.
        """
        provider = require_provider(self._provider)
        report = ReconciliationReport()
        logger.info("Reconciliation pass started")

        await self._detect_new(provider, report)
        await self._detect_changed(provider, report)

        logger.bind(**report.model_dump()).info(
            "Reconciliation pass finished: {} created, {} updated, {} unlinked, {} errors",
            report.created,
            report.updated,
            report.unlinked,
            report.errors,
        )
        return report

    async def _detect_new(
        self, provider: IdentityProviderClient, report: ReconciliationReport
    ) -> None:
        page_token = None
        while True:
            page = await provider.list_identities(self._provider_config.page_size, page_token)
            for identity in page.identities:
                if self._matcher.match_external(identity) is not None:
                    continue
                result = await self._puller.pull(identity)
                if result.success:
                    report.created += 1
                else:
                    report.errors += 1
            page_token = page.next_page_token
            if not page_token:
                return

    async def _detect_changed(
        self, provider: IdentityProviderClient, report: ReconciliationReport
    ) -> None:
        page_size = self._sync_config.page_size
        offset = 0
        while True:
            page = self._repository.list_page(offset, page_size, linked_only=True)
            if not page:
                return
            unlinked = 0
            for record in page:
                if await self._refresh(provider, record, report):
                    unlinked += 1
            # Unlinked records drop out of the linked set
            offset += len(page) - unlinked

    async def _refresh(
        self,
        provider: IdentityProviderClient,
        record: IdentityRecord,
        report: ReconciliationReport,
    ) -> bool:
        """Pull one linked record if the provider changed it; True when unlinked."""
        log = logger.bind(record_id=record.id, external_id=record.external_id)
        try:
            identity = await provider.get_identity(record.external_id)
        except NotFoundError:
            try:
                unlink_external(self._repository, record.external_id, EXTERNAL_DELETED_NOTE)
            except Exception as e:
                report.errors += 1
                log.warning("Could not unlink {}: {}", record.email, e)
                return False
            report.unlinked += 1
            return True
        except Exception as e:
            report.errors += 1
            log.warning("Could not fetch external identity for {}: {}", record.email, e)
            return False

        activity = identity.last_activity_at
        if activity is None:
            return False
        if record.last_synced_at is not None and activity <= record.last_synced_at:
            return False

        result = await self._puller.pull(identity)
        if result.success:
            report.updated += 1
        else:
            report.errors += 1
        return False
