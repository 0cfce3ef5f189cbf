"""Identity record repository for data access operations."""

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from src.identity_sync.core.errors import ConflictError, NotFoundError
from src.identity_sync.entities.core._base import utc_now

from .entity import IdentityRecord, SyncStatus
from .table import IdentityRecordTable


class IdentityRecordRepository:
    """Data-access layer for identity records.

    Writes commit immediately so that a uniqueness violation surfaces at the
    call that caused it, as a :class:`ConflictError`.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @staticmethod
    def _to_entity(row: IdentityRecordTable | None) -> IdentityRecord | None:
        if row is None:
            return None
        return IdentityRecord.model_validate(row, from_attributes=True)

    def _exec(self, statement):
        # Long-lived sessions must see writes committed by other sessions
        return self._session.exec(statement.execution_options(populate_existing=True))

    def _first(self, statement) -> IdentityRecord | None:
        return self._to_entity(self._exec(statement).first())

    def get(self, record_id: str) -> IdentityRecord | None:
        return self._to_entity(self._session.get(IdentityRecordTable, record_id, populate_existing=True))

    def get_by_external_id(self, external_id: str) -> IdentityRecord | None:
        statement = select(IdentityRecordTable).where(
            IdentityRecordTable.external_id == external_id
        )
        return self._first(statement)

    def get_by_email(self, email: str) -> IdentityRecord | None:
        statement = select(IdentityRecordTable).where(IdentityRecordTable.email == email)
        return self._first(statement)

    def get_by_email_insensitive(self, email: str) -> IdentityRecord | None:
        statement = (
            select(IdentityRecordTable)
            .where(func.lower(IdentityRecordTable.email) == email.lower())
            .order_by(IdentityRecordTable.created_at)
        )
        return self._first(statement)

    def create(self, record: IdentityRecord) -> IdentityRecord:
        row = IdentityRecordTable.model_validate(record, from_attributes=True)
        self._session.add(row)
        self._commit(f"Identity record for {record.email} conflicts with an existing record")
        self._session.refresh(row)
        return self._to_entity(row)

    def update(self, record: IdentityRecord) -> IdentityRecord:
        row = self._session.get(IdentityRecordTable, record.id, populate_existing=True)
        if row is None:
            raise NotFoundError(f"Identity record {record.id} not found")

        for field, value in record.model_dump(exclude={"id", "created_at", "updated_at"}).items():
            setattr(row, field, value)
        row.updated_at = utc_now()

        self._session.add(row)
        self._commit(f"Identity record {record.id} conflicts with an existing record")
        self._session.refresh(row)
        return self._to_entity(row)

    def _commit(self, conflict_message: str) -> None:
        try:
            self._session.commit()
        except IntegrityError as e:
            self._session.rollback()
            raise ConflictError(conflict_message) from e

    def list_page(
        self, offset: int, limit: int, linked_only: bool = False
    ) -> list[IdentityRecord]:
        """Return one page of records in stable primary-key order."""
        statement = select(IdentityRecordTable)
        if linked_only:
            statement = statement.where(col(IdentityRecordTable.external_id).is_not(None))
        statement = statement.order_by(IdentityRecordTable.id).offset(offset).limit(limit)
        return [self._to_entity(row) for row in self._exec(statement).all()]

    def count(self, linked_only: bool = False) -> int:
        statement = select(func.count()).select_from(IdentityRecordTable)
        if linked_only:
            statement = statement.where(col(IdentityRecordTable.external_id).is_not(None))
        return self._session.exec(statement).one()

    def count_by_status(self) -> dict[SyncStatus, int]:
        statement = select(IdentityRecordTable.sync_status, func.count()).group_by(
            IdentityRecordTable.sync_status
        )
        counts = {status: 0 for status in SyncStatus}
        for status, amount in self._session.exec(statement).all():
            counts[SyncStatus(status)] = amount
        return counts

    def list_needing_sync(self) -> list[IdentityRecord]:
        """Records in pending or error state, or not linked to the provider."""
        statement = (
            select(IdentityRecordTable)
            .where(
                or_(
                    col(IdentityRecordTable.sync_status).in_(
                        [SyncStatus.PENDING.value, SyncStatus.ERROR.value]
                    ),
                    col(IdentityRecordTable.external_id).is_(None),
                )
            )
            .order_by(IdentityRecordTable.email)
        )
        return [self._to_entity(row) for row in self._exec(statement).all()]
