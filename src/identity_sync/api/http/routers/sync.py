"""Identity synchronization endpoints."""

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import Field

from src.identity_sync.api.http.deps import (
    get_app_config,
    get_daemon,
    get_database_service,
    get_provider,
    get_sync_service,
)
from src.identity_sync.core.errors import (
    ConflictError,
    NotFoundError,
    ProviderUnavailableError,
    SyncError,
    UnconfiguredError,
    ValidationError,
    error_code_for,
)
from src.identity_sync.core.models.base import CamelModel
from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.models.sync import (
    BatchProgress,
    BatchSummary,
    DaemonStatus,
    PendingRecord,
    PullResult,
    PushResult,
    SyncResult,
    SyncStatusReport,
    WebhookEvent,
)
from src.identity_sync.core.services import (
    DbSessionService,
    IdentityProviderClient,
    IdentitySyncService,
    ReconciliationDaemon,
    require_provider,
)
from src.identity_sync.runtime.config.config_data import ConfigData

router = APIRouter(prefix="/sync", tags=["sync"])

_STATUS_BY_CODE = {
    error.code: error.status_code
    for error in (
        NotFoundError,
        ConflictError,
        ProviderUnavailableError,
        ValidationError,
        UnconfiguredError,
    )
}


class BatchRequest(CamelModel):
    batch_size: int | None = Field(default=None, ge=1, le=100)


class IntervalRequest(CamelModel):
    interval_ms: int = Field(ge=1)


class WebhookResponse(CamelModel):
    success: bool
    result: PullResult


def _single_item_response(result: SyncResult) -> JSONResponse | SyncResult:
    """Failed single-item syncs answer with the status of their error kind."""
    if result.success:
        return result
    return JSONResponse(
        status_code=_STATUS_BY_CODE.get(result.error_code, 502),
        content=result.model_dump(mode="json", by_alias=True),
    )


@router.post("/webhook", response_model=WebhookResponse)
async def webhook(
    event: WebhookEvent, service: IdentitySyncService = Depends(get_sync_service)
) -> WebhookResponse:
    """Apply a provider lifecycle notification immediately."""
    result = await service.handle_event(event)
    return WebhookResponse(success=result.success, result=result)


@router.post("/push/{record_id}", response_model=PushResult)
async def push_record(
    record_id: str, service: IdentitySyncService = Depends(get_sync_service)
):
    return _single_item_response(await service.push_one(record_id))


@router.post("/pull/{external_id}", response_model=PullResult)
async def pull_identity(
    external_id: str, service: IdentitySyncService = Depends(get_sync_service)
):
    return _single_item_response(await service.pull_one(external_id))


@router.post("/push-all", response_model=BatchSummary)
async def push_all(
    body: BatchRequest | None = None,
    service: IdentitySyncService = Depends(get_sync_service),
) -> BatchSummary:
    return await service.push_all(body.batch_size if body else None)


@router.post("/pull-all", response_model=BatchSummary)
async def pull_all(
    body: BatchRequest | None = None,
    service: IdentitySyncService = Depends(get_sync_service),
) -> BatchSummary:
    return await service.pull_all(body.batch_size if body else None)


def _sse(event: str, payload: Any) -> str:
    if isinstance(payload, CamelModel):
        data = payload.model_dump_json(by_alias=True)
    else:
        data = json.dumps(payload)
    return f"event: {event}\ndata: {data}\n\n"


BatchRun = Callable[
    [IdentitySyncService, int | None, Callable[[BatchProgress], None]],
    Awaitable[BatchSummary],
]


def _stream_batch(
    direction: str,
    run: BatchRun,
    batch_size: int | None,
    database_service: DbSessionService,
    provider: IdentityProviderClient | None,
    config: ConfigData,
) -> StreamingResponse:
    # Refuse before the stream opens so the caller gets a plain error status
    require_provider(provider)

    async def events() -> AsyncIterator[str]:
        queue: asyncio.Queue[BatchProgress | None] = asyncio.Queue()
        yield _sse("start", {"direction": direction, "batchSize": batch_size})

        with database_service.session_scope() as session:
            service = IdentitySyncService.from_session(session, provider, config)
            task = asyncio.create_task(run(service, batch_size, queue.put_nowait))
            task.add_done_callback(lambda _: queue.put_nowait(None))
            try:
                while (progress := await queue.get()) is not None:
                    yield _sse("progress", progress)

                error = task.exception()
                if error is not None:
                    logger.bind(direction=direction).error(
                        "Streamed {} failed: {}", direction, error
                    )
                    yield _sse(
                        "error",
                        {"success": False, "error": str(error), "code": error_code_for(error)},
                    )
                else:
                    yield _sse("complete", task.result())
            finally:
                if not task.done():
                    logger.bind(direction=direction).warning(
                        "Client disconnected; cancelling streamed {}", direction
                    )
                    task.cancel()

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/push-all/stream")
async def push_all_stream(
    batch_size: int | None = Query(default=None, ge=1, le=100),
    database_service: DbSessionService = Depends(get_database_service),
    provider: IdentityProviderClient | None = Depends(get_provider),
    config: ConfigData = Depends(get_app_config),
) -> StreamingResponse:
    return _stream_batch(
        "push-all",
        lambda service, size, callback: service.push_all(size, callback),
        batch_size,
        database_service,
        provider,
        config,
    )


@router.get("/pull-all/stream")
async def pull_all_stream(
    batch_size: int | None = Query(default=None, ge=1, le=100),
    database_service: DbSessionService = Depends(get_database_service),
    provider: IdentityProviderClient | None = Depends(get_provider),
    config: ConfigData = Depends(get_app_config),
) -> StreamingResponse:
    return _stream_batch(
        "pull-all",
        lambda service, size, callback: service.pull_all(size, callback),
        batch_size,
        database_service,
        provider,
        config,
    )


@router.get("/status", response_model=SyncStatusReport)
async def sync_status(
    service: IdentitySyncService = Depends(get_sync_service),
) -> SyncStatusReport:
    return await service.status()


@router.get("/pending", response_model=list[PendingRecord])
async def pending(
    service: IdentitySyncService = Depends(get_sync_service),
) -> list[PendingRecord]:
    """Records awaiting sync, failed, or not linked, with their raw errors."""
    return service.pending()


@router.get("/external", response_model=list[ExternalIdentity])
async def list_external(
    limit: int = Query(default=100, ge=1, le=1000),
    service: IdentitySyncService = Depends(get_sync_service),
) -> list[ExternalIdentity]:
    return await service.list_external(limit)


@router.delete("/external/{external_id}", response_model=PullResult)
async def delete_external(
    external_id: str, service: IdentitySyncService = Depends(get_sync_service)
) -> PullResult:
    return await service.delete_external(external_id)


@router.get("/daemon/status", response_model=DaemonStatus)
async def daemon_status(daemon: ReconciliationDaemon = Depends(get_daemon)) -> DaemonStatus:
    return daemon.status()


@router.post("/daemon/start", response_model=DaemonStatus)
async def daemon_start(
    daemon: ReconciliationDaemon = Depends(get_daemon),
    provider: IdentityProviderClient | None = Depends(get_provider),
) -> DaemonStatus:
    require_provider(provider)
    daemon.start()
    return daemon.status()


@router.post("/daemon/stop", response_model=DaemonStatus)
async def daemon_stop(daemon: ReconciliationDaemon = Depends(get_daemon)) -> DaemonStatus:
    await daemon.stop()
    return daemon.status()


@router.post("/daemon/run", response_model=DaemonStatus)
async def daemon_run(
    daemon: ReconciliationDaemon = Depends(get_daemon),
    provider: IdentityProviderClient | None = Depends(get_provider),
) -> DaemonStatus:
    """Run one reconciliation pass now and report the outcome."""
    require_provider(provider)
    return await daemon.run_now()


@router.put("/daemon/interval", response_model=DaemonStatus)
async def daemon_interval(
    body: IntervalRequest, daemon: ReconciliationDaemon = Depends(get_daemon)
) -> DaemonStatus:
    daemon.set_interval(body.interval_ms)
    return daemon.status()


def sync_error_response(error: SyncError) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content={"success": False, "error": error.message, "code": error.code},
    )
