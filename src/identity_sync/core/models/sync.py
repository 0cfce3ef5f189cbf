"""Results, progress snapshots and status reports produced by the sync engine."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import Field

from src.identity_sync.core.models.base import CamelModel


class SyncAction(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNLINKED = "unlinked"
    IGNORED = "ignored"
    ERROR = "error"


class SyncResult(CamelModel):
    """Outcome of synchronizing a single identity."""

    success: bool
    action: SyncAction
    message: str
    error_code: str | None = None


class PushResult(SyncResult):
    external_id: str | None = None


class PullResult(SyncResult):
    record_id: str | None = None


class BatchItemDetail(CamelModel):
    email: str
    result: PushResult | PullResult


class BatchProgress(CamelModel):
    """Snapshot handed to progress callbacks after every completed item."""

    processed: int
    total: int
    synced: int
    errors: int
    elapsed_seconds: float
    eta_seconds: float
    percent: float

    @classmethod
    def compute(
        cls, processed: int, total: int, synced: int, errors: int, elapsed: float
    ) -> "BatchProgress":
        """Linear estimate: ``elapsed / processed * total - elapsed``."""
        if processed > 0:
            eta = max(0.0, elapsed / processed * total - elapsed)
        else:
            eta = 0.0
        percent = processed / total * 100 if total else 100.0
        return cls(
            processed=processed,
            total=total,
            synced=synced,
            errors=errors,
            elapsed_seconds=round(elapsed, 3),
            eta_seconds=round(eta, 3),
            percent=round(percent, 1),
        )


class BatchSummary(CamelModel):
    total: int = 0
    synced: int = 0
    errors: int = 0
    processed: int = 0
    duration_seconds: float = 0.0
    details: list[BatchItemDetail] = Field(default_factory=list)


class ReconciliationReport(CamelModel):
    """What one reconciliation pass changed."""

    created: int = 0
    updated: int = 0
    unlinked: int = 0
    errors: int = 0


class DaemonStatus(CamelModel):
    running: bool
    last_run_at: datetime | None
    interval_ms: int
    total_runs: int
    successful_runs: int
    failed_runs: int
    last_run_duration_ms: int | None
    next_run_in_ms: int | None = None
    last_report: ReconciliationReport | None = None


class SyncStatusReport(CamelModel):
    total_records: int
    synced: int
    pending: int
    error: int
    manual: int
    with_external_id: int
    sync_percentage: float
    provider_configured: bool
    provider_healthy: bool


class PendingRecord(CamelModel):
    id: str
    email: str
    display_name: str
    external_id: str | None
    sync_status: str
    last_synced_at: datetime | None
    sync_error: str | None


class WebhookEventType(StrEnum):
    CREATED = "identity.created"
    UPDATED = "identity.updated"
    DELETED = "identity.deleted"


class WebhookEvent(CamelModel):
    """Provider lifecycle notification.

    ``event_type`` stays a plain string so unknown kinds reach the handler and
    are rejected there with a descriptive error.
    """

    event_type: str
    external_id: str = Field(min_length=1)
    email: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
