"""
Source kind fetchers.

Each fetcher turns one source descriptor into normalized records:
- ``link``: XML feed over HTTP
- ``supplier``: rows already in the internal catalog for a supplier
- ``api``: JSON price-list API, paged until a short page

Network and IO errors surface as ``TransientSourceError``; payloads that
arrive but cannot be understood surface as ``PermanentParseError``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx

from ..errors import ConfigurationError, PermanentParseError, TransientSourceError
from .feeds import parse_feed
from .models import (
    AggregatedRecord,
    Availability,
    ZeroStockPolicy,
    identity_key,
    merge_same_identity,
    normalize_record,
)
from .registry import source_registry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


def _no_progress(stage: str, done: int, total: int) -> None:
    return None


@dataclass
class FetchContext:
    """What fetchers need from the outside world for one cycle."""

    catalog: Any = None
    timeout: float = 60.0
    page_delay: float = 0.0
    default_policy: ZeroStockPolicy = ZeroStockPolicy.NOT_AVAILABLE
    default_currency: str = "UAH"
    progress: ProgressCallback = _no_progress
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient
    known_warehouses: Set[str] = field(default_factory=set)


@source_registry.register_source("link")
class LinkFeedFetcher:
    """Downloads and parses one XML feed."""

    def __init__(self, context: FetchContext):
        self.context = context

    async def fetch(self, source) -> List[AggregatedRecord]:
        payload = await self._download(source.link)
        records = []
        for raw in parse_feed(source.link, payload):
            record = normalize_record(
                raw,
                policy=source.options.zero_stock_policy,
                default_policy=self.context.default_policy,
                vendor=source.vendor,
                default_currency=self.context.default_currency,
            )
            if record is None:
                logger.debug(f"Skipping feed record without article in {source.link}")
                continue
            records.append(record)
        logger.info(f"Fetched {len(records)} records from {source.link}")
        return records

    async def _download(self, link: str) -> bytes:
        try:
            async with self.context.client_factory(
                timeout=self.context.timeout, follow_redirects=True
            ) as client:
                response = await client.get(link)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise TransientSourceError(link, str(e)) from e


@source_registry.register_source("supplier")
class SupplierTableFetcher:
    """Reads a supplier's records out of the catalog store."""

    def __init__(self, context: FetchContext):
        self.context = context

    async def fetch(self, source) -> List[AggregatedRecord]:
        if self.context.catalog is None:
            raise ConfigurationError("supplier source requires a catalog store")
        try:
            records = await self.context.catalog.list(source.supplier)
        except OSError as e:
            raise TransientSourceError(source.locator, str(e)) from e
        if source.only_available:
            records = [r for r in records if r.availability == Availability.AVAILABLE]
        logger.info(f"Loaded {len(records)} records of supplier {source.supplier}")
        return records


@source_registry.register_source("api")
class PaginatedApiFetcher:
    """Pages a JSON price-list API with ``limit``/``offset``.

    Expected response:
        {"success": true, "total": 1234, "data": [{"sku": .., "id": .., ...}]}
    """

    def __init__(self, context: FetchContext):
        self.context = context

    async def fetch(self, source) -> List[AggregatedRecord]:
        if not source.token.strip():
            raise ConfigurationError(f"API token is empty for {source.url}")

        collected: Dict[str, AggregatedRecord] = {}
        offset = 0
        total: Optional[int] = None

        async with self.context.client_factory(timeout=self.context.timeout) as client:
            while True:
                page = await self._fetch_page(client, source, offset)
                if total is None:
                    total = page.get("total_results") or page.get("total")
                data = page.get("data") or []
                total_val = total or len(data)
                self.context.progress("fetching api", min(offset, total_val), total_val)

                for item in data:
                    self._collect(source, item, collected)

                if len(data) < source.page_size:
                    break
                offset += len(data)
                if self.context.page_delay > 0:
                    await self.context.sleep(self.context.page_delay)

        logger.info(f"Fetched {len(collected)} records from {source.url}")
        return list(collected.values())

    async def _fetch_page(self, client: httpx.AsyncClient, source, offset: int) -> Dict[str, Any]:
        try:
            response = await client.get(
                source.url,
                params={"limit": source.page_size, "offset": offset},
                headers={"Authorization": f"Bearer {source.token.strip()}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise TransientSourceError(source.url, str(e)) from e

        try:
            page = response.json()
        except ValueError as e:
            raise PermanentParseError(source.url, str(e), response.content) from e
        if not isinstance(page, dict) or not isinstance(page.get("data", []), list):
            raise PermanentParseError(source.url, "unexpected response shape", response.content)
        if not page.get("success", False):
            raise PermanentParseError(source.url, "API returned success=false", response.content)
        return page

    def _collect(self, source, item: Dict[str, Any], collected: Dict[str, AggregatedRecord]) -> None:
        warehouse = str(item.get("warehouse") or "").strip()
        if warehouse:
            self.context.known_warehouses.add(warehouse)
        if source.warehouses and warehouse not in source.warehouses:
            return

        sku = str(item.get("sku") or "").strip()
        raw = dict(item)
        raw["article"] = sku or (str(item["id"]) if item.get("id") is not None else "")
        raw["vendor"] = item.get("mark") or item.get("vendor")
        record = normalize_record(
            raw,
            policy=source.options.zero_stock_policy,
            default_policy=self.context.default_policy,
            vendor=source.vendor,
            default_currency=self.context.default_currency,
        )
        if record is None:
            return
        if not record.title:
            record = record.model_copy(update={"title": record.article})

        key = identity_key(record.article)
        if key in collected:
            collected[key] = merge_same_identity(collected[key], record)
        else:
            collected[key] = record


__all__ = [
    "FetchContext",
    "LinkFeedFetcher",
    "PaginatedApiFetcher",
    "SupplierTableFetcher",
]
