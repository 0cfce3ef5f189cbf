"""Unit tests for configuration loading and the application context."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from src.identity_sync.runtime.config.config_data import (
    ConfigData,
    DatabaseConfig,
    ProviderConfig,
    ReconciliationConfig,
    SyncConfig,
)
from src.identity_sync.runtime.config.config_template import (
    apply_environment_overrides,
    load_templated_yaml,
    substitute_env_vars,
)
from src.identity_sync.runtime.context import (
    AppContext,
    get_config,
    get_context,
    merge_configs,
    with_context,
)

YAML = """
config:
  provider:
    kind: http
    base_url: ${TEST_PROVIDER_URL:-}
    api_key: ${TEST_PROVIDER_KEY:-}
  sync:
    push_batch_size: ${TEST_PUSH_BATCH:-7}
    email_conflict_policy: preserve_verified
  reconciliation:
    interval_ms: 30000
"""


class TestSubstituteEnvVars:
    """Test cases for substitute_env_vars function."""

    def test_substitute_simple_env_var(self):
        with patch.dict(os.environ, {"TEST_VAR": "test_value"}):
            assert substitute_env_vars("${TEST_VAR}") == "test_value"

    def test_default_used_when_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            assert substitute_env_vars("${MISSING_VAR:-fallback}") == "fallback"
            assert substitute_env_vars("${MISSING_VAR:-}") == ""

    def test_required_env_var_missing(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="MISSING_VAR not set"):
                substitute_env_vars("${MISSING_VAR}")

    def test_custom_error_message(self):
        with patch.dict(os.environ, {}, clear=True):
            with pytest.raises(ValueError, match="MISSING_VAR: provider key needed"):
                substitute_env_vars("${MISSING_VAR:?provider key needed}")


class TestEnvironmentOverrides:
    def test_prefixed_variables_are_promoted(self):
        with patch.dict(
            os.environ,
            {"PRODUCTION_PROVIDER_API_KEY": "prod-key", "PROVIDER_API_KEY": "dev-key"},
            clear=True,
        ):
            apply_environment_overrides("production")

            assert os.environ["PROVIDER_API_KEY"] == "prod-key"

    def test_other_environments_are_ignored(self):
        with patch.dict(
            os.environ,
            {"PRODUCTION_PROVIDER_API_KEY": "prod-key", "PROVIDER_API_KEY": "dev-key"},
            clear=True,
        ):
            apply_environment_overrides("development")

            assert os.environ["PROVIDER_API_KEY"] == "dev-key"


class TestLoadTemplatedYaml:
    def test_load_with_substitution(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(YAML)

        with patch.dict(
            os.environ,
            {"TEST_PROVIDER_URL": "https://idp.test", "TEST_PROVIDER_KEY": "k"},
            clear=True,
        ):
            config = load_templated_yaml(path)

        assert config.provider.base_url == "https://idp.test"
        assert config.provider.configured is True
        assert config.sync.push_batch_size == 7
        assert config.sync.email_conflict_policy == "preserve_verified"
        assert config.reconciliation.interval_ms == 30000
        # Untouched sections keep their defaults
        assert config.sync.pull_batch_size == 15
        assert config.sync.default_roles == ["customer"]

    def test_missing_provider_settings_leave_it_unconfigured(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(YAML)

        with patch.dict(os.environ, {}, clear=True):
            config = load_templated_yaml(path)

        assert config.provider.configured is False

    def test_missing_file_yields_defaults(self, tmp_path: Path):
        config = load_templated_yaml(tmp_path / "absent.yaml")

        assert config == ConfigData()

    def test_invalid_values_are_rejected(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("config:\n  sync:\n    email_conflict_policy: sometimes\n")

        with pytest.raises(ValueError, match="Invalid configuration"):
            load_templated_yaml(path)

    def test_shipped_config_file_loads(self):
        shipped = Path(__file__).resolve().parents[3] / "config.yaml"

        with patch.dict(os.environ, {}, clear=True):
            config = load_templated_yaml(shipped)

        assert config.sync.push_batch_size == 10
        assert config.reconciliation.interval_ms == 60000
        assert config.provider.configured is False


class TestConfigModels:
    def test_provider_configured(self):
        assert ProviderConfig(kind="memory").configured is True
        assert ProviderConfig(kind="memory", enabled=False).configured is False
        assert ProviderConfig(base_url="https://idp.test").configured is False
        assert ProviderConfig(base_url="https://idp.test", api_key="k").configured is True

    def test_sqlite_connection_string_is_unchanged(self):
        assert DatabaseConfig(url="sqlite:///./x.db").connection_string == "sqlite:///./x.db"

    def test_password_from_environment(self):
        with patch.dict(os.environ, {"DB_PASSWORD": "s3cret"}):
            config = DatabaseConfig(
                url="postgresql://app@db:5432/identity", password_env_var="DB_PASSWORD"
            )

            assert "s3cret" in config.connection_string

    def test_password_from_file(self, tmp_path: Path):
        secret = tmp_path / "password"
        secret.write_text("from-file\n")
        config = DatabaseConfig(
            url="postgresql://app@db:5432/identity", password_file=str(secret)
        )

        assert config.password == "from-file"

    def test_batch_sizes_must_be_positive(self):
        with pytest.raises(ValueError):
            SyncConfig(push_batch_size=0)


class TestContext:
    def test_default_context_available(self):
        context = get_context()

        assert isinstance(context, AppContext)
        assert context.config is get_config()

    def test_with_context_overrides_only_explicit_fields(self):
        original = get_config()
        override = ConfigData(sync=SyncConfig(push_batch_size=3))

        with with_context(override):
            config = get_config()
            assert config.sync.push_batch_size == 3
            assert config.sync.pull_batch_size == original.sync.pull_batch_size
            assert config.provider == original.provider

        assert get_config() is original

    def test_nested_contexts(self):
        with with_context(ConfigData(reconciliation=ReconciliationConfig(interval_ms=1000))):
            outer_page_size = get_config().sync.page_size
            with with_context(ConfigData(sync=SyncConfig(page_size=5))):
                config = get_config()
                assert config.reconciliation.interval_ms == 1000
                assert config.sync.page_size == 5
            assert get_config().sync.page_size == outer_page_size
            assert get_config().reconciliation.interval_ms == 1000

    def test_rejects_wrong_type(self):
        with pytest.raises(ValueError):
            with with_context({"sync": {}}):
                pass

    def test_merge_configs(self):
        base = ConfigData(sync=SyncConfig(push_batch_size=4, pull_batch_size=8))
        merged = merge_configs(base, ConfigData(sync=SyncConfig(pull_batch_size=2)))

        assert merged.sync.push_batch_size == 4
        assert merged.sync.pull_batch_size == 2
