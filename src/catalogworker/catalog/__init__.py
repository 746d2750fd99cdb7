"""
Catalog: persistent records, the per-owner listing index and import merge.
"""

from .merge import ImportSummary, apply_missing_policy, merge_into_catalog, merge_record
from .store import (
    CatalogStore,
    InMemoryCatalogStore,
    InMemoryListingIndex,
    Listing,
    ListingIndex,
)

__all__ = [
    "CatalogStore",
    "ImportSummary",
    "InMemoryCatalogStore",
    "InMemoryListingIndex",
    "Listing",
    "ListingIndex",
    "apply_missing_policy",
    "merge_into_catalog",
    "merge_record",
]
