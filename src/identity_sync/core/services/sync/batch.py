"""Bulk push and pull with bounded concurrency and progress reporting."""

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable

from loguru import logger

from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.models.sync import (
    BatchItemDetail,
    BatchProgress,
    BatchSummary,
    PullResult,
    PushResult,
)
from src.identity_sync.core.services.provider import (
    IdentityProviderClient,
    require_provider,
)
from src.identity_sync.core.services.sync.pull import PullSynchronizer
from src.identity_sync.core.services.sync.push import PushSynchronizer
from src.identity_sync.entities.core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
)
from src.identity_sync.runtime.config.config_data import ProviderConfig, SyncConfig

ProgressCallback = Callable[[BatchProgress], None]


class _BatchRun:
    """Counters and per-item details for one bulk operation."""

    def __init__(
        self,
        total: int,
        progress_callback: ProgressCallback | None,
        clock: Callable[[], float],
    ):
        self.total = total
        self.summary = BatchSummary(total=total)
        self._callback = progress_callback
        self._clock = clock
        self._started = clock()

    @property
    def elapsed(self) -> float:
        return self._clock() - self._started

    def record(self, email: str, result: PushResult | PullResult) -> None:
        self.summary.processed += 1
        if result.success:
            self.summary.synced += 1
        else:
            self.summary.errors += 1
        self.summary.details.append(BatchItemDetail(email=email, result=result))

        if self._callback is None:
            return
        progress = BatchProgress.compute(
            processed=self.summary.processed,
            # A lower bound while the provider has not reported its total
            total=max(self.total, self.summary.processed),
            synced=self.summary.synced,
            errors=self.summary.errors,
            elapsed=self.elapsed,
        )
        try:
            self._callback(progress)
        except Exception as e:
            logger.warning("Progress callback failed: {}", e)

    def finish(self) -> BatchSummary:
        self.summary.total = max(self.total, self.summary.processed)
        self.summary.duration_seconds = round(self.elapsed, 3)
        return self.summary


class BatchOrchestrator:
    """Drives the push and pull synchronizers over whole populations.

    The source is read page by page; each page is split into chunks of
    ``batch_size`` items that run concurrently, and every chunk is awaited,
    followed by a short pause, before the next one starts. A failing item is
    counted and reported, never raised.
    """

    def __init__(
        self,
        repository: IdentityRecordRepository,
        provider: IdentityProviderClient | None,
        pusher: PushSynchronizer,
        puller: PullSynchronizer,
        sync_config: SyncConfig,
        provider_config: ProviderConfig,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._repository = repository
        self._provider = provider
        self._pusher = pusher
        self._puller = puller
        self._sync_config = sync_config
        self._provider_config = provider_config
        self._clock = clock
        self._sleep = sleep

    async def push_all(
        self,
        batch_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchSummary:
        require_provider(self._provider)
        batch_size = batch_size or self._sync_config.push_batch_size
        run = _BatchRun(self._repository.count(), progress_callback, self._clock)
        logger.info("Push-all started: {} records, batch size {}", run.total, batch_size)

        async def push_one(record: IdentityRecord) -> None:
            run.record(record.email, await self._pusher.push(record))

        await self._run_chunks(
            self._local_records(),
            push_one,
            batch_size,
            self._sync_config.push_chunk_delay_ms,
        )
        summary = run.finish()
        logger.info(
            "Push-all finished: {} synced, {} errors in {}s",
            summary.synced,
            summary.errors,
            summary.duration_seconds,
        )
        return summary

    async def pull_all(
        self,
        batch_size: int | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> BatchSummary:
        provider = require_provider(self._provider)
        batch_size = batch_size or self._sync_config.pull_batch_size
        run = _BatchRun(0, progress_callback, self._clock)
        logger.info("Pull-all started, batch size {}", batch_size)

        async def pull_one(identity: ExternalIdentity) -> None:
            run.record(identity.email, await self._puller.pull(identity))

        await self._run_chunks(
            self._external_identities(provider, run),
            pull_one,
            batch_size,
            self._sync_config.pull_chunk_delay_ms,
        )
        summary = run.finish()
        logger.info(
            "Pull-all finished: {} synced, {} errors in {}s",
            summary.synced,
            summary.errors,
            summary.duration_seconds,
        )
        return summary

    async def _local_records(self) -> AsyncIterator[list[IdentityRecord]]:
        page_size = self._sync_config.page_size
        offset = 0
        while True:
            page = self._repository.list_page(offset, page_size)
            if not page:
                return
            yield page
            offset += len(page)

    async def _external_identities(
        self, provider: IdentityProviderClient, run: _BatchRun
    ) -> AsyncIterator[list[ExternalIdentity]]:
        page_token = None
        seen = 0
        while True:
            page = await provider.list_identities(self._provider_config.page_size, page_token)
            seen += len(page.identities)
            run.total = page.total_count if page.total_count is not None else seen
            if page.identities:
                yield page.identities
            page_token = page.next_page_token
            if not page_token:
                return

    async def _run_chunks(self, pages, handle, batch_size: int, delay_ms: int) -> None:
        first = True
        async for page in pages:
            for start in range(0, len(page), batch_size):
                if not first and delay_ms:
                    await self._sleep(delay_ms / 1000)
                first = False
                await asyncio.gather(*(handle(item) for item in page[start : start + batch_size]))
