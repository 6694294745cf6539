"""Unit tests for server configuration settings model.

Tests verify that the Settings model binds environment variables and that
the grouped configuration models are derived from it.
"""

import pytest

from fiscal_ledger.server.core.config import CORSConfig, OpenSearchConfig, PlatformConfig, Settings


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "OPENSEARCH_URL",
        "OPENSEARCH_INDEXES_PREFIX",
        "SEARCH_SYNC_ENABLED",
        "PLATFORM_COLLECTIVE_ID",
        "PLATFORM_SETTLEMENT_MIN_AMOUNT",
        "FISCAL_LEDGER_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettingsBinding:
    """Test Settings model environment variable binding."""

    def test_defaults(self, clean_env):
        settings = Settings(_env_file=None)
        assert settings.server_port == 8000
        assert settings.log_level == "INFO"
        assert settings.fx_rates_api_url is None

    def test_server_binding(self, clean_env):
        clean_env.setenv("FISCAL_LEDGER_SERVER_PORT", "9000")
        clean_env.setenv("FISCAL_LEDGER_LOG_LEVEL", "DEBUG")

        settings = Settings(_env_file=None)
        assert settings.server_port == 9000
        assert settings.log_level == "DEBUG"

    def test_database_url_binding(self, clean_env):
        clean_env.setenv("DATABASE_URL", "postgresql+asyncpg://ledger:secret@db:5432/ledger")
        assert Settings(_env_file=None).database_url == "postgresql+asyncpg://ledger:secret@db:5432/ledger"


class TestOpenSearchConfig:
    def test_not_configured_by_default(self, clean_env):
        config = Settings(_env_file=None).opensearch
        assert isinstance(config, OpenSearchConfig)
        assert config.is_configured is False
        assert config.max_sync_delay == 5000
        assert config.max_batch_size == 1000
        assert config.sync_enabled is False

    def test_binding(self, clean_env):
        clean_env.setenv("OPENSEARCH_URL", "http://mock-opensearch:9200")
        clean_env.setenv("OPENSEARCH_INDEXES_PREFIX", "staging")
        clean_env.setenv("SEARCH_SYNC_ENABLED", "true")

        config = Settings(_env_file=None).opensearch
        assert config.is_configured is True
        assert config.url == "http://mock-opensearch:9200"
        assert config.indexes_prefix == "staging"
        assert config.sync_enabled is True


class TestPlatformConfig:
    def test_binding(self, clean_env):
        clean_env.setenv("PLATFORM_COLLECTIVE_ID", "1")
        clean_env.setenv("PLATFORM_SETTLEMENT_MIN_AMOUNT", "500")

        config = Settings(_env_file=None).platform
        assert isinstance(config, PlatformConfig)
        assert config.collective_id == 1
        assert config.currency == "USD"
        assert config.settlement_min_amount == 500

    def test_populate_by_name(self):
        config = PlatformConfig(collective_id=2, currency="EUR")
        assert config.collective_id == 2
        assert config.settlement_min_amount == 1000


def test_cors_defaults(clean_env):
    config = Settings(_env_file=None).cors
    assert isinstance(config, CORSConfig)
    assert config.origins == ["*"]
    assert config.allow_credentials is True
