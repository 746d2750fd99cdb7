"""
Job bodies: what one export or import cycle does.

Export: Fetch -> Transform (per bucket) -> Write formats -> Publish
Import: Fetch -> Transform -> Merge into catalog -> Missing policy

Both are driven by ``core.loop.JobLoop``; errors propagate as the
``catalogworker.errors`` taxonomy and are classified there.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from zoneinfo import ZoneInfo

import httpx

from ..catalog import CatalogStore, ListingIndex, merge_into_catalog
from ..config import ExportSettings, ImportSettings
from ..entries import ExportEntry, ImportEntry
from ..errors import ConfigurationError
from ..publish import WRITERS, Publisher
from ..storage import ConfigurationStore
from .aggregator import aggregate_export, aggregate_import
from .categories import CategoryMatcher
from .models import ZeroStockPolicy
from .rates import RateTable
from .sources import FetchContext
from .transform import TransformContext, transform_export, transform_import

logger = logging.getLogger(__name__)


class _JobBody:
    """Collaborators shared by export and import bodies."""

    def __init__(
        self,
        configs: ConfigurationStore,
        catalog: CatalogStore,
        rates: Optional[RateTable] = None,
        tz: str = "Europe/Kyiv",
        target_currency: str = "UAH",
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
    ):
        self.configs = configs
        self.catalog = catalog
        self.rates = rates
        self.tz = ZoneInfo(tz)
        self.target_currency = target_currency
        self.client_factory = client_factory

    async def _transform_context(self, owner: str, categories: bool) -> TransformContext:
        matcher = None
        if categories:
            matcher = CategoryMatcher(await self.configs.categories(owner))
        return TransformContext(
            rates=self.rates,
            matcher=matcher,
            tz=self.tz,
            target_currency=self.target_currency,
        )


class ExportJob(_JobBody):
    """Catalog and feeds -> published artifacts."""

    def __init__(self, publisher: Publisher, settings: ExportSettings, **kwargs):
        super().__init__(**kwargs)
        self.publisher = publisher
        self.settings = settings

    def last_run_age(self, handle) -> Optional[timedelta]:
        return self.publisher.age(handle.owner, handle.config.artifact_names())

    async def execute(self, handle, config: ExportEntry) -> Dict[str, Any]:
        if not config.sources:
            raise ConfigurationError(f"Export {config.entry_key()} has no sources")

        context = FetchContext(
            catalog=self.catalog,
            timeout=self.settings.fetch_timeout,
            default_policy=ZeroStockPolicy.NOT_AVAILABLE,
            default_currency=self.target_currency,
            progress=handle.set_progress,
            client_factory=self.client_factory,
        )
        buckets = await aggregate_export(
            config.sources, context, link_delay=self.settings.link_delay_ms / 1000
        )

        needs_categories = any(b.options.categories for b in buckets)
        tctx = await self._transform_context(handle.owner, needs_categories)
        for bucket in buckets:
            bucket.records = transform_export(bucket.records, bucket.options, tctx)
        total = sum(len(b.records) for b in buckets)

        stem = config.artifact_stem()
        artifacts = {}
        for index, fmt in enumerate(config.formats):
            handle.set_progress(f"writing {fmt}", index, len(config.formats))
            artifacts[f"{stem}.{fmt}"] = WRITERS[fmt](buckets)

        await self.publisher.publish(handle.owner, artifacts)
        logger.info(
            f"Export {stem} generated for {handle.owner}: "
            f"{total} records in {len(buckets)} buckets"
        )
        return {"buckets": len(buckets), "records": total, "artifacts": list(artifacts)}


class ImportJob(_JobBody):
    """Supplier sources -> internal catalog."""

    def __init__(self, index: ListingIndex, settings: ImportSettings, **kwargs):
        super().__init__(**kwargs)
        self.index = index
        self.settings = settings

    def last_run_age(self, handle) -> Optional[timedelta]:
        if handle.last_success_at is None:
            return None
        return datetime.now(timezone.utc) - handle.last_success_at

    async def execute(self, handle, config: ImportEntry) -> Dict[str, Any]:
        if not config.sources:
            raise ConfigurationError(f"Import {config.supplier} has no sources")

        context = FetchContext(
            catalog=self.catalog,
            timeout=self.settings.fetch_timeout,
            page_delay=self.settings.page_delay_secs,
            default_policy=ZeroStockPolicy.NOT_AVAILABLE,
            default_currency=self.target_currency,
            progress=handle.set_progress,
            client_factory=self.client_factory,
        )
        merged = await aggregate_import(
            config.sources, context, link_delay=self.settings.link_delay_ms / 1000
        )

        tctx = await self._transform_context(handle.owner, config.options.categories)
        records = transform_import(list(merged.values()), config.options, tctx)

        handle.set_progress("saving", 0, len(records))
        summary = await merge_into_catalog(
            handle.owner, config.supplier, records, config.options, self.catalog, self.index
        )
        logger.info(
            f"Import {config.supplier} finished for {handle.owner}: "
            f"{summary.created} created, {summary.updated} updated, "
            f"{len(summary.missing)} missing ({summary.policy.value})"
        )
        return summary.as_dict()


__all__ = ["ExportJob", "ImportJob"]
