"""Identity synchronization between the local store and the provider."""

from .batch import BatchOrchestrator, ProgressCallback
from .daemon import DaemonState, ReconciliationDaemon
from .events import EXTERNAL_DELETED_NOTE, WebhookEventHandler, unlink_external
from .matcher import IdentityMatcher, Match, MatchKey
from .pull import PullSynchronizer
from .push import PushSynchronizer
from .service import IdentitySyncService

__all__ = [
    "EXTERNAL_DELETED_NOTE",
    "BatchOrchestrator",
    "DaemonState",
    "IdentityMatcher",
    "IdentitySyncService",
    "Match",
    "MatchKey",
    "ProgressCallback",
    "PullSynchronizer",
    "PushSynchronizer",
    "ReconciliationDaemon",
    "WebhookEventHandler",
    "unlink_external",
]
