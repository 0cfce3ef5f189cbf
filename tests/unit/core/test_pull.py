"""Unit tests for the pull synchronizer (provider identity -> local record)."""

from unittest.mock import patch

import pytest

from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.models.sync import SyncAction
from src.identity_sync.entities.core.identity_record import SyncStatus
from src.identity_sync.entities.core.identity_record.entity import UNUSABLE_PASSWORD_PREFIX

PROFILE_FIELDS = {
    "id",
    "email",
    "external_id",
    "display_name",
    "phone",
    "email_verified",
    "active",
    "roles",
    "sync_status",
    "sync_error",
}


def snapshot(**fields) -> ExternalIdentity:
    fields.setdefault("external_id", "u1")
    fields.setdefault("email", "a@b.com")
    return ExternalIdentity(**fields)


class TestPullCreates:
    @pytest.mark.asyncio
    async def test_pull_creates_local_record(self, puller, repository, clock):
        identity = snapshot(display_name="A", email_verified=True, disabled=False)

        result = await puller.pull(identity)

        assert result.success is True
        assert result.action == SyncAction.CREATED
        record = repository.get(result.record_id)
        assert record.email == "a@b.com"
        assert record.external_id == "u1"
        assert record.display_name == "A"
        assert record.active is True
        assert record.email_verified is True
        assert record.sync_status == SyncStatus.SYNCED
        assert record.last_synced_at == clock.now
        assert record.sync_error is None

    @pytest.mark.asyncio
    async def test_created_record_gets_default_roles_and_unusable_credential(
        self, puller, repository
    ):
        result = await puller.pull(snapshot())
        record = repository.get(result.record_id)

        assert record.roles == ["customer"]
        assert record.password_hash.startswith(UNUSABLE_PASSWORD_PREFIX)

    @pytest.mark.asyncio
    async def test_display_name_falls_back_to_email_local_part(self, puller, repository):
        result = await puller.pull(snapshot(email="jane.doe@b.com", display_name=None))

        assert repository.get(result.record_id).display_name == "jane.doe"

    @pytest.mark.asyncio
    async def test_disabled_identity_becomes_inactive(self, puller, repository):
        result = await puller.pull(snapshot(disabled=True, phone_number="+15550100"))
        record = repository.get(result.record_id)

        assert record.active is False
        assert record.phone == "+15550100"


class TestPullUpdates:
    @pytest.mark.asyncio
    async def test_pull_updates_matched_record_in_place(self, puller, repository, make_record):
        existing = make_record(
            "a@b.com", roles=["staff"], sync_status=SyncStatus.ERROR, sync_error="old"
        )

        result = await puller.pull(snapshot(display_name="From Provider", phone_number="123"))

        assert result.action == SyncAction.UPDATED
        assert result.record_id == existing.id
        record = repository.get(existing.id)
        assert record.external_id == "u1"
        assert record.display_name == "From Provider"
        assert record.phone == "123"
        assert record.roles == ["staff"]
        assert record.sync_status == SyncStatus.SYNCED
        assert record.sync_error is None
        assert repository.count() == 1

    @pytest.mark.asyncio
    async def test_pull_is_idempotent(self, puller, repository, clock):
        identity = snapshot(display_name="A", phone_number="123", email_verified=True)

        first = await puller.pull(identity)
        after_first = repository.get(first.record_id)
        clock.advance(30)
        second = await puller.pull(identity)
        after_second = repository.get(second.record_id)

        assert second.record_id == first.record_id
        assert second.action == SyncAction.UPDATED
        assert after_second.model_dump(include=PROFILE_FIELDS) == after_first.model_dump(
            include=PROFILE_FIELDS
        )
        assert after_second.last_synced_at > after_first.last_synced_at
        assert repository.count() == 1

    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(self, puller, repository, make_record):
        existing = make_record("Jane@Example.com")

        result = await puller.pull(snapshot(email="jane@example.com"))

        assert result.record_id == existing.id
        assert repository.get(existing.id).email == "jane@example.com"
        assert repository.count() == 1

    @pytest.mark.asyncio
    async def test_external_id_match_wins_over_email(self, puller, repository, make_record):
        linked = make_record("a@x.com", external_id="X")
        other = make_record("A@x.com")

        result = await puller.pull(snapshot(external_id="X", email="a@x.com", display_name="Z"))

        assert result.record_id == linked.id
        assert repository.get(linked.id).display_name == "Z"
        assert repository.get(other.id).external_id is None
        assert repository.count() == 2


class TestPullFailures:
    @pytest.mark.asyncio
    async def test_email_match_linked_elsewhere_is_a_conflict(
        self, puller, repository, make_record
    ):
        existing = make_record("a@b.com", external_id="other", display_name="Kept")

        result = await puller.pull(snapshot(external_id="u1", display_name="Intruder"))

        assert result.success is False
        assert result.action == SyncAction.ERROR
        assert result.error_code == "conflict"
        record = repository.get(existing.id)
        assert record.external_id == "other"
        assert record.display_name == "Kept"
        assert record.sync_status == SyncStatus.ERROR
        assert repository.count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_create_is_retried_as_update(
        self, puller, matcher, repository, make_record
    ):
        # Another writer inserted the record between our match and our create
        existing = make_record("a@b.com")
        real_match = matcher.match_external
        calls = []

        def racing_match(identity):
            calls.append(identity.external_id)
            return None if len(calls) == 1 else real_match(identity)

        with patch.object(matcher, "match_external", side_effect=racing_match):
            result = await puller.pull(snapshot(display_name="Raced"))

        assert result.success is True
        assert result.action == SyncAction.UPDATED
        assert result.record_id == existing.id
        assert repository.get(existing.id).external_id == "u1"
        assert repository.count() == 1

    @pytest.mark.asyncio
    async def test_unexpected_store_failure_is_reported(self, puller, repository):
        with patch.object(repository, "create", side_effect=RuntimeError("disk full")):
            result = await puller.pull(snapshot())

        assert result.success is False
        assert result.error_code == "sync_error"
        assert result.message == "disk full"
        assert result.record_id is None
