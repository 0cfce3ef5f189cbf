"""Core models exports."""

from .provider import (
    CustomClaims,
    ExternalIdentity,
    ExternalIdentityPage,
    IdentityAttributes,
)
from .sync import (
    BatchItemDetail,
    BatchProgress,
    BatchSummary,
    DaemonStatus,
    PendingRecord,
    PullResult,
    PushResult,
    ReconciliationReport,
    SyncAction,
    SyncResult,
    SyncStatusReport,
    WebhookEvent,
    WebhookEventType,
)

__all__ = [
    "BatchItemDetail",
    "BatchProgress",
    "BatchSummary",
    "CustomClaims",
    "DaemonStatus",
    "ExternalIdentity",
    "ExternalIdentityPage",
    "IdentityAttributes",
    "PendingRecord",
    "PullResult",
    "PushResult",
    "ReconciliationReport",
    "SyncAction",
    "SyncResult",
    "SyncStatusReport",
    "WebhookEvent",
    "WebhookEventType",
]
