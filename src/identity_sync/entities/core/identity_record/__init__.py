"""Identity record entity module.

This module contains all IdentityRecord-related classes organized by responsibility:
- IdentityRecord: Domain entity for a locally owned user identity
- IdentityRecordTable: Database persistence model
- IdentityRecordRepository: Data access layer
"""

from .entity import IdentityRecord, SyncStatus
from .repository import IdentityRecordRepository
from .table import IdentityRecordTable

__all__ = [
    "IdentityRecord",
    "IdentityRecordRepository",
    "IdentityRecordTable",
    "SyncStatus",
]
