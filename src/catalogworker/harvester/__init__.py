"""
Harvester: fetch, normalize, merge and transform product records.

Components:
- models: AggregatedRecord and normalization helpers
- registry: source kind -> fetcher class
- sources: link feed, supplier table, paginated API fetchers
- aggregator: multi-source fetch + merge
- transform: currency, categories, pricing, availability override
- rates: currency rate table with periodic refresh
- orchestrator: export / import job bodies
"""

from .models import AggregatedRecord, Availability, ZeroStockPolicy
from .registry import SourceRegistry, source_registry
from . import sources  # noqa: F401  (registers the built-in fetchers)

__all__ = [
    "AggregatedRecord",
    "Availability",
    "ZeroStockPolicy",
    "SourceRegistry",
    "source_registry",
]
