"""
Tests for WorkerConfig and the per-kind settings.
"""

from catalogworker.config import ExportSettings, ImportSettings, RatesSettings, WorkerConfig


class TestKindSettings:
    """Test per-kind defaults."""

    def test_export_defaults(self):
        settings = ExportSettings()

        assert settings.concurrency == 2
        assert settings.max_retries == 30
        assert settings.link_delay_ms == 350

    def test_import_defaults(self):
        settings = ImportSettings()

        assert settings.concurrency == 1
        assert settings.page_delay_secs == 10.0
        assert settings.link_delay_ms == 350

    def test_rates_defaults(self):
        settings = RatesSettings()

        assert settings.refresh_interval == 4 * 60 * 60
        assert settings.markup == 1.07
        assert settings.path == "currency_rates.csv"


class TestWorkerConfig:
    """Test WorkerConfig defaults and environment loading."""

    def test_default_values(self):
        """Test WorkerConfig has correct defaults."""
        config = WorkerConfig()

        assert config.service_name == "catalogworker"
        assert config.log_level == "INFO"
        assert config.timezone == "Europe/Kyiv"
        assert config.catalog_database_url == ""
        assert isinstance(config.export, ExportSettings)
        assert isinstance(config.imports, ImportSettings)

    def test_from_env_loads_custom_values(self, monkeypatch):
        """Test from_env() loads from environment."""
        monkeypatch.setenv("SERVICE_NAME", "catalog-prod")
        monkeypatch.setenv("EXPORT_CONCURRENCY", "4")
        monkeypatch.setenv("IMPORT_CONCURRENCY", "3")
        monkeypatch.setenv("IMPORT_LINK_DELAY_MS", "0")
        monkeypatch.setenv("CURRENCY_RATES_PATH", "/var/lib/rates.csv")
        monkeypatch.setenv("TARGET_CURRENCY", " usd ")

        config = WorkerConfig.from_env()

        assert config.service_name == "catalog-prod"
        assert config.export.concurrency == 4
        assert config.imports.concurrency == 3
        assert config.imports.link_delay_ms == 0
        assert config.rates.path == "/var/lib/rates.csv"
        assert config.target_currency == "USD"

    def test_bad_concurrency_falls_back(self, monkeypatch):
        """Unparsable or non-positive limiter sizes use the defaults."""
        monkeypatch.setenv("EXPORT_CONCURRENCY", "lots")
        monkeypatch.setenv("IMPORT_CONCURRENCY", "0")
        monkeypatch.setenv("CURRENCY_REFRESH_SEC", "-5")

        config = WorkerConfig.from_env()

        assert config.export.concurrency == 2
        assert config.imports.concurrency == 1
        assert config.rates.refresh_interval == 4 * 60 * 60

    def test_empty_rates_path_uses_default(self, monkeypatch):
        monkeypatch.setenv("CURRENCY_RATES_PATH", "  ")

        assert WorkerConfig.from_env().rates.path == "currency_rates.csv"
