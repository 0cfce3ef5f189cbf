"""Tests for the identity-sync CLI."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from src.identity_sync.cli import app
from src.identity_sync.core.services import DbSessionService
from src.identity_sync.entities.core.identity_record import (
    IdentityRecord,
    IdentityRecordRepository,
    SyncStatus,
)
from src.identity_sync.runtime.config.config_data import (
    ConfigData,
    DatabaseConfig,
    LoggingConfig,
    ProviderConfig,
    SyncConfig,
)
from src.identity_sync.runtime.context import with_context

runner = CliRunner()


def cli_config(tmp_path: Path, **provider) -> ConfigData:
    return ConfigData(
        logging=LoggingConfig(level="WARNING", file=None),
        database=DatabaseConfig(url=f"sqlite:///{tmp_path / 'cli.db'}"),
        provider=ProviderConfig(kind="memory", **provider),
        sync=SyncConfig(push_chunk_delay_ms=0, pull_chunk_delay_ms=0),
    )


@pytest.fixture
def cli_context(tmp_path: Path) -> Iterator[ConfigData]:
    config = cli_config(tmp_path)
    with with_context(config):
        yield config


@pytest.fixture
def seed_records(cli_context: ConfigData):
    """Write records straight to the CLI's database file."""

    def _seed(*records: IdentityRecord) -> None:
        database_service = DbSessionService(cli_context)
        database_service.create_all()
        with database_service.session_scope() as session:
            repository = IdentityRecordRepository(session)
            for record in records:
                repository.create(record)
        database_service.dispose()

    return _seed


def read_records(config: ConfigData) -> list[IdentityRecord]:
    database_service = DbSessionService(config)
    with database_service.session_scope() as session:
        records = IdentityRecordRepository(session).list_page(0, 100)
    database_service.dispose()
    return records


def test_help_lists_commands():
    result = runner.invoke(app, ["sync", "--help"])

    assert result.exit_code == 0
    for command in ("status", "pending", "push-all", "pull-all", "reconcile"):
        assert command in result.output


def test_status_on_empty_database(cli_context):
    result = runner.invoke(app, ["sync", "status"])

    assert result.exit_code == 0
    assert "Total records" in result.output


def test_pending_lists_failed_records(seed_records):
    seed_records(
        IdentityRecord(email="ok@example.com", external_id="u1", sync_status=SyncStatus.SYNCED),
        IdentityRecord(email="bad@example.com", sync_status=SyncStatus.ERROR, sync_error="boom"),
    )

    result = runner.invoke(app, ["sync", "pending"])

    assert result.exit_code == 0
    assert "bad@example.com" in result.output
    assert "ok@example.com" not in result.output
    assert "1 records need attention" in result.output


def test_pending_when_everything_is_synced(cli_context):
    result = runner.invoke(app, ["sync", "pending"])

    assert result.exit_code == 0
    assert "Every record is in sync" in result.output


def test_push_all_links_every_record(cli_context, seed_records):
    seed_records(*(IdentityRecord(email=f"user{i}@example.com") for i in range(3)))

    result = runner.invoke(app, ["sync", "push-all", "--batch-size", "2"])

    assert result.exit_code == 0
    assert "Processed 3/3: 3 synced, 0 errors" in result.output
    assert all(record.external_id for record in read_records(cli_context))


def test_batch_size_is_bounded(cli_context):
    result = runner.invoke(app, ["sync", "push-all", "--batch-size", "0"])

    assert result.exit_code != 0


def test_reconcile_on_empty_provider(cli_context):
    result = runner.invoke(app, ["sync", "reconcile"])

    assert result.exit_code == 0
    assert "0 created" in result.output


def test_unconfigured_provider_fails(tmp_path):
    with with_context(cli_config(tmp_path, enabled=False)):
        result = runner.invoke(app, ["sync", "pull-all"])

    assert result.exit_code == 1
    assert "Pull-all failed" in result.output
    assert "unconfigured" in result.output
