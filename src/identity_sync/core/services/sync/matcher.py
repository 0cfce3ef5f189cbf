"""Counterpart resolution between provider identities and local records."""

from dataclasses import dataclass
from enum import StrEnum

from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.entities.core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
)


class MatchKey(StrEnum):
    EXTERNAL_ID = "external_id"
    EMAIL = "email"
    EMAIL_INSENSITIVE = "email_insensitive"


@dataclass(frozen=True)
class Match:
    record: IdentityRecord
    matched_by: MatchKey


class IdentityMatcher:
    """Find the local record corresponding to a provider identity.

    Lookup order is exact external id, exact email, then case-insensitive
    email. The first hit wins, so an established external id link always
    takes precedence over an email match on another record. Read-only.
    """

    def __init__(self, repository: IdentityRecordRepository):
        self._repository = repository

    def match(self, external_id: str | None, email: str | None) -> Match | None:
        if external_id:
            record = self._repository.get_by_external_id(external_id)
            if record is not None:
                return Match(record, MatchKey.EXTERNAL_ID)

        if email:
            record = self._repository.get_by_email(email)
            if record is not None:
                return Match(record, MatchKey.EMAIL)

            record = self._repository.get_by_email_insensitive(email)
            if record is not None:
                return Match(record, MatchKey.EMAIL_INSENSITIVE)

        return None

    def match_external(self, identity: ExternalIdentity) -> Match | None:
        return self.match(identity.external_id, identity.email)

    def match_record(self, record: IdentityRecord) -> Match | None:
        """Resolve a local record to the stored record holding its keys.

        Useful for records built outside the store (an import row, a request
        body) that must be reconciled against what is already persisted.
        """
        return self.match(record.external_id, record.email)
