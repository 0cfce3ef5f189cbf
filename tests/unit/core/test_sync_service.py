"""Unit tests for the sync service entry points."""

import pytest

from src.identity_sync.core.errors import NotFoundError, UnconfiguredError, ValidationError
from src.identity_sync.core.models.provider import ExternalIdentity
from src.identity_sync.core.models.sync import SyncAction
from src.identity_sync.core.services import IdentitySyncService
from src.identity_sync.entities.core.identity_record import SyncStatus


class TestSingleItem:
    @pytest.mark.asyncio
    async def test_push_one_missing_record(self, sync_service):
        with pytest.raises(NotFoundError):
            await sync_service.push_one("missing")

    @pytest.mark.asyncio
    async def test_pull_one_fetches_fresh_identity(self, sync_service, memory_provider, repository):
        memory_provider.seed(ExternalIdentity(external_id="u1", email="a@b.com"))

        result = await sync_service.pull_one("u1")

        assert result.action == SyncAction.CREATED
        assert repository.get_by_external_id("u1").email == "a@b.com"

    @pytest.mark.asyncio
    async def test_unconfigured_provider_refuses(self, repository, test_config, make_record):
        service = IdentitySyncService(repository, None, test_config)
        record = make_record("a@b.com")

        with pytest.raises(UnconfiguredError):
            await service.push_one(record.id)
        with pytest.raises(UnconfiguredError):
            await service.pull_one("u1")
        assert repository.get(record.id).sync_status == SyncStatus.MANUAL


class TestExternalIdentities:
    @pytest.mark.asyncio
    async def test_list_external_follows_pages(self, sync_service, memory_provider):
        sync_service.config.provider.page_size = 2
        for i in range(5):
            memory_provider.seed(
                ExternalIdentity(external_id=f"ext-{i}", email=f"user{i}@example.com")
            )

        identities = await sync_service.list_external(limit=4)

        assert [identity.external_id for identity in identities] == [
            "ext-0",
            "ext-1",
            "ext-2",
            "ext-3",
        ]

    @pytest.mark.parametrize("limit", [0, 1001])
    @pytest.mark.asyncio
    async def test_list_external_limit_bounds(self, sync_service, limit):
        with pytest.raises(ValidationError):
            await sync_service.list_external(limit)

    @pytest.mark.asyncio
    async def test_delete_external_unlinks_record(
        self, sync_service, memory_provider, repository, make_record
    ):
        memory_provider.seed(ExternalIdentity(external_id="u1", email="a@b.com"))
        record = make_record(
            "a@b.com", external_id="u1", sync_status=SyncStatus.SYNCED, sync_error=None
        )

        result = await sync_service.delete_external("u1")

        assert result.action == SyncAction.UNLINKED
        assert memory_provider.count() == 0
        stored = repository.get(record.id)
        assert stored.external_id is None
        assert stored.sync_error is None

    @pytest.mark.asyncio
    async def test_delete_unknown_identity_is_ignored(self, sync_service):
        result = await sync_service.delete_external("nobody")

        assert result.success is True
        assert result.action == SyncAction.IGNORED


class TestReporting:
    @pytest.mark.asyncio
    async def test_status_counts(self, sync_service, make_record):
        make_record("a@b.com", external_id="u1", sync_status=SyncStatus.SYNCED)
        make_record("b@b.com", sync_status=SyncStatus.PENDING)
        make_record("c@b.com", sync_status=SyncStatus.ERROR, sync_error="boom")
        make_record("d@b.com")

        report = await sync_service.status()

        assert report.total_records == 4
        assert report.synced == 1
        assert report.pending == 1
        assert report.error == 1
        assert report.manual == 1
        assert report.with_external_id == 1
        assert report.sync_percentage == 25.0
        assert report.provider_configured is True
        assert report.provider_healthy is True

    @pytest.mark.asyncio
    async def test_status_on_empty_store(self, repository, test_config):
        report = await IdentitySyncService(repository, None, test_config).status()

        assert report.total_records == 0
        assert report.sync_percentage == 0.0
        assert report.provider_configured is False

    def test_pending_lists_unsynced_records(self, sync_service, make_record):
        make_record("a@b.com", external_id="u1", sync_status=SyncStatus.SYNCED)
        make_record("b@b.com", sync_status=SyncStatus.ERROR, sync_error="boom")
        make_record("c@b.com")

        pending = sync_service.pending()

        assert [item.email for item in pending] == ["b@b.com", "c@b.com"]
        assert pending[0].sync_error == "boom"
        assert pending[0].sync_status == "error"
