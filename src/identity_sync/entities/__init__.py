"""Entities organised by business concept.

Each entity has its own package containing:
- entity.py: Domain model with business logic
- table.py: Database persistence model
- repository.py: Data access layer
"""

from .core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
    IdentityRecordTable,
    SyncStatus,
)

__all__ = [
    "IdentityRecord",
    "IdentityRecordRepository",
    "IdentityRecordTable",
    "SyncStatus",
]
