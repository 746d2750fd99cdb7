"""
Engine: the composition root.

Builds every collaborator once from a WorkerConfig and owns their
lifecycle:

    engine = Engine(get_config())
    await engine.start()     # load all owners' entries, start loops + rates
    engine.exports.start(key)
    await engine.stop()
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from .catalog import CatalogStore, InMemoryCatalogStore, InMemoryListingIndex, ListingIndex
from .config import WorkerConfig
from .core import ConcurrencyLimiter, JobService
from .entries import JobKind
from .errors import CatalogWorkerError, DuplicateEntryError
from .harvester.orchestrator import ExportJob, ImportJob
from .harvester.rates import RateRefresher, RateTable
from .publish import Publisher
from .storage import ConfigurationStore

logger = logging.getLogger(__name__)


class Engine:
    """Wires configuration, stores, job bodies and services together."""

    def __init__(
        self,
        config: WorkerConfig,
        catalog: Optional[CatalogStore] = None,
        index: Optional[ListingIndex] = None,
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
    ):
        self.config = config
        self.configs = ConfigurationStore(config.config_dir)
        self.rates = RateTable.load(
            config.rates.path,
            markup=config.rates.markup,
            target_currency=config.target_currency,
        )
        self.refresher = RateRefresher(self.rates, config.rates, client_factory=client_factory)
        self._postgres = None

        if catalog is None:
            if config.catalog_database_url:
                from .catalog.postgres import PostgresCatalog, PostgresListingIndex

                self._postgres = PostgresCatalog(config.catalog_database_url)
                catalog = self._postgres
                index = index or PostgresListingIndex(self._postgres)
            else:
                catalog = InMemoryCatalogStore()
        self.catalog = catalog
        self.index = index or InMemoryListingIndex()

        self.publisher = Publisher(config.export.staging_dir, config.export.public_dir)

        common = dict(
            configs=self.configs,
            catalog=self.catalog,
            rates=self.rates,
            tz=config.timezone,
            target_currency=config.target_currency,
            client_factory=client_factory,
        )
        self.exports = JobService(
            JobKind.EXPORT,
            ExportJob(self.publisher, config.export, **common),
            ConcurrencyLimiter("export", config.export.concurrency),
            self.configs,
            publisher=self.publisher,
            max_retries=config.export.max_retries,
            diagnostics_dir=config.diagnostics_dir,
        )
        self.imports = JobService(
            JobKind.IMPORT,
            ImportJob(self.index, config.imports, **common),
            ConcurrencyLimiter("import", config.imports.concurrency),
            self.configs,
            max_retries=config.imports.max_retries,
            diagnostics_dir=config.diagnostics_dir,
        )

    def service(self, kind: JobKind) -> JobService:
        return self.exports if kind == JobKind.EXPORT else self.imports

    async def load_owner(self, owner: str) -> int:
        """Spawn loops for every persisted entry of ``owner``."""
        owner_config = await self.configs.load(owner)
        spawned = 0
        for entry in [*owner_config.export_entries, *owner_config.import_entries]:
            try:
                self.service(entry.kind).spawn(owner, entry)
                spawned += 1
            except DuplicateEntryError as e:
                logger.warning(f"Skipping duplicate entry for {owner}: {e}")
        return spawned

    async def start(self, refresh_rates: bool = True) -> None:
        total = 0
        for owner in self.configs.owners():
            try:
                total += await self.load_owner(owner)
            except CatalogWorkerError as e:
                logger.error(f"Unable to load entries of {owner}: {e}")
        logger.info(
            f"Engine started: {len(self.exports.registry)} export, "
            f"{len(self.imports.registry)} import jobs ({total} loaded)"
        )

        if refresh_rates:
            if len(self.rates) == 0:
                await self.refresher.refresh()
            self.refresher.start()

    async def stop(self) -> None:
        await self.exports.shutdown()
        await self.imports.shutdown()
        await self.refresher.stop()
        if self._postgres is not None:
            await self._postgres.close()
        logger.info("Engine stopped")


__all__ = ["Engine"]
