"""
Source aggregator.

Fetches every source of an entry in order and merges the results:
- export: records grouped into buckets by their source's output options,
  so sources with equal options share one bucket (fetch order preserved)
- import: one merged record per identity key (lowercased article)

Any source failure propagates and aborts the cycle; nothing partial is
returned.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence

from ..entries import ExportOptions
from ..errors import ConfigurationError
from .models import AggregatedRecord, merge_same_identity
from .registry import source_registry
from .sources import FetchContext

logger = logging.getLogger(__name__)


@dataclass
class ExportBucket:
    """Records sharing one set of output options."""

    options: ExportOptions
    records: List[AggregatedRecord] = field(default_factory=list)


async def _fetch_source(source, context: FetchContext) -> List[AggregatedRecord]:
    fetcher = source_registry.get_fetcher(source.kind, context)
    if fetcher is None:
        raise ConfigurationError(f"Unknown source kind: {source.kind}")
    return await fetcher.fetch(source)


async def _fetch_all(sources: Sequence, context: FetchContext, link_delay: float):
    """Yield (source, records) sequentially, pausing between link feeds."""
    total = len(sources)
    links_left = sum(1 for s in sources if s.kind == "link")
    for index, source in enumerate(sources):
        context.progress(f"fetching source {index + 1}/{total}", index, total)
        records = await _fetch_source(source, context)
        yield source, records
        if source.kind == "link":
            links_left -= 1
            if links_left > 0 and link_delay > 0:
                await context.sleep(link_delay)


async def aggregate_export(
    sources: Sequence,
    context: FetchContext,
    link_delay: float = 0.0,
) -> List[ExportBucket]:
    """Fetch all sources and bucket priced records by output options."""
    buckets: Dict[str, ExportBucket] = {}
    async for source, records in _fetch_all(sources, context, link_delay):
        priced = [r for r in records if r.price is not None]
        dropped = len(records) - len(priced)
        if dropped:
            logger.debug(f"Dropped {dropped} unpriced records from {source.locator}")
        key = source.options.bucket_key()
        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = ExportBucket(options=source.options)
        bucket.records.extend(priced)
    return list(buckets.values())


async def aggregate_import(
    sources: Sequence,
    context: FetchContext,
    link_delay: float = 0.0,
) -> Dict[str, AggregatedRecord]:
    """Fetch all sources and merge records by identity key."""
    merged: Dict[str, AggregatedRecord] = {}
    async for _source, records in _fetch_all(sources, context, link_delay):
        for record in records:
            key = record.identity
            if key in merged:
                merged[key] = merge_same_identity(merged[key], record)
            else:
                merged[key] = record
    if context.known_warehouses:
        logger.info(f"Known warehouses: {', '.join(sorted(context.known_warehouses))}")
    return merged


__all__ = ["ExportBucket", "aggregate_export", "aggregate_import"]
