"""
Configuration for CatalogWorker.

Uses Pydantic for validation and environment loading.
Each job kind (export/import) has its own limiter size and retry budget.
"""

import os
from functools import lru_cache

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings


def _positive_int(name: str, default: int) -> int:
    """Read a positive integer from env, falling back to default on junk."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


class ExportSettings(BaseModel):
    """Export side: internal catalog -> published files."""

    concurrency: int = Field(default=2, gt=0, description="Simultaneous export bodies")
    max_retries: int = Field(default=30, ge=0, description="Transient retries per cycle")
    link_delay_ms: int = Field(
        default=350, ge=0, description="Delay between sequential link-feed fetches"
    )
    staging_dir: str = Field(default="/tmp/export", description="Private staging area")
    public_dir: str = Field(default="./export", description="Published artifacts root")
    fetch_timeout: float = Field(default=60.0, description="HTTP timeout in seconds")


class ImportSettings(BaseModel):
    """Import side: supplier feeds -> internal catalog."""

    concurrency: int = Field(default=1, gt=0, description="Simultaneous import bodies")
    max_retries: int = Field(default=30, ge=0, description="Transient retries per cycle")
    page_delay_secs: float = Field(
        default=10.0, ge=0, description="Delay between paginated API requests"
    )
    link_delay_ms: int = Field(
        default=350, ge=0, description="Delay between sequential link-feed fetches"
    )
    fetch_timeout: float = Field(default=60.0, description="HTTP timeout in seconds")


class RatesSettings(BaseModel):
    """Currency rate table cache and refresh."""

    path: str = Field(default="currency_rates.csv", description="CSV cache file")
    url: str = Field(
        default="https://bank.gov.ua/NBUStatService/v1/statdirectory/exchange?json",
        description="JSON rates endpoint",
    )
    refresh_interval: int = Field(
        default=4 * 60 * 60, gt=0, description="Seconds between refreshes (4 h)"
    )
    markup: float = Field(default=1.07, gt=0, description="Multiplier over the raw rate")


class WorkerConfig(BaseSettings):
    """Master configuration for CatalogWorker.

    Loads from environment variables (exact names, no prefix).
    """

    model_config = ConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    service_name: str = Field(default="catalogworker")
    log_level: str = Field(default="INFO")

    config_dir: str = Field(default="./config", description="Per-owner entry files")
    diagnostics_dir: str = Field(
        default="./diagnostics", description="Raw payloads that failed to parse"
    )
    catalog_database_url: str = Field(
        default="", description="PostgreSQL URL for the catalog, empty = in-memory"
    )
    timezone: str = Field(default="Europe/Kyiv", description="Local civil time zone")
    target_currency: str = Field(default="UAH")

    export: ExportSettings = Field(default_factory=ExportSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)
    rates: RatesSettings = Field(default_factory=RatesSettings)

    @classmethod
    def from_env(cls) -> "WorkerConfig":
        """Load configuration from environment variables."""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "catalogworker"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            config_dir=os.getenv("CATALOGWORKER_CONFIG_DIR", "./config"),
            diagnostics_dir=os.getenv("CATALOGWORKER_DIAGNOSTICS_DIR", "./diagnostics"),
            catalog_database_url=os.getenv("CATALOG_DATABASE_URL", ""),
            timezone=os.getenv("CATALOGWORKER_TZ", "Europe/Kyiv"),
            target_currency=os.getenv("TARGET_CURRENCY", "UAH").strip().upper() or "UAH",
            export=ExportSettings(
                concurrency=_positive_int("EXPORT_CONCURRENCY", 2),
                max_retries=int(os.getenv("EXPORT_MAX_RETRIES", "30")),
                link_delay_ms=int(os.getenv("EXPORT_LINK_DELAY_MS", "350")),
                staging_dir=os.getenv("EXPORT_STAGING_DIR", "/tmp/export"),
                public_dir=os.getenv("EXPORT_PUBLIC_DIR", "./export"),
                fetch_timeout=float(os.getenv("EXPORT_FETCH_TIMEOUT", "60.0")),
            ),
            imports=ImportSettings(
                concurrency=_positive_int("IMPORT_CONCURRENCY", 1),
                max_retries=int(os.getenv("IMPORT_MAX_RETRIES", "30")),
                page_delay_secs=float(os.getenv("IMPORT_PAGE_DELAY_SECS", "10")),
                link_delay_ms=int(os.getenv("IMPORT_LINK_DELAY_MS", "350")),
                fetch_timeout=float(os.getenv("IMPORT_FETCH_TIMEOUT", "60.0")),
            ),
            rates=RatesSettings(
                path=os.getenv("CURRENCY_RATES_PATH", "").strip() or "currency_rates.csv",
                url=os.getenv(
                    "CURRENCY_RATES_URL",
                    "https://bank.gov.ua/NBUStatService/v1/statdirectory/exchange?json",
                ),
                refresh_interval=_positive_int("CURRENCY_REFRESH_SEC", 4 * 60 * 60),
                markup=float(os.getenv("CURRENCY_MARKUP", "1.07")),
            ),
        )


@lru_cache(maxsize=1)
def get_config() -> WorkerConfig:
    """Get the process-wide configuration (loaded once)."""
    return WorkerConfig.from_env()

