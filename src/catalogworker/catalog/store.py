"""
Persistent catalog and the derived per-owner listing index.

The catalog holds one ``AggregatedRecord`` per identity key (lowercased
article). The listing index is what an owner's storefront shows: visibility,
indexing flag and category per article. Both are async so a database-backed
implementation (see ``catalog.postgres``) can stand in for the in-memory one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from ..harvester.models import AggregatedRecord, identity_key

logger = logging.getLogger(__name__)


class CatalogStore(Protocol):
    async def get(self, article: str) -> Optional[AggregatedRecord]: ...

    async def save(self, record: AggregatedRecord) -> None: ...

    async def delete_many(self, articles: Iterable[str]) -> int: ...

    async def list(self, supplier: str) -> List[AggregatedRecord]: ...


@dataclass
class Listing:
    """One article as shown by one owner."""

    visible: bool = True
    indexed: bool = True
    category: Optional[str] = None


class ListingIndex(Protocol):
    async def get(self, owner: str, article: str) -> Optional[Listing]: ...

    async def set_visibility(
        self, owner: str, articles: Iterable[str], visible: bool, indexed: bool
    ) -> None: ...

    async def remove_many(self, owner: str, articles: Iterable[str]) -> int: ...

    async def get_category(self, owner: str, article: str) -> Optional[str]: ...

    async def set_category(self, owner: str, article: str, category: str) -> None: ...


class InMemoryCatalogStore:
    """Dict-backed catalog, the default when no database is configured."""

    def __init__(self, records: Iterable[AggregatedRecord] = ()):
        self._records: Dict[str, AggregatedRecord] = {}
        for record in records:
            self._records[record.identity] = record

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, article: str) -> Optional[AggregatedRecord]:
        return self._records.get(identity_key(article))

    async def save(self, record: AggregatedRecord) -> None:
        self._records[record.identity] = record

    async def delete_many(self, articles: Iterable[str]) -> int:
        removed = 0
        for article in articles:
            if self._records.pop(identity_key(article), None) is not None:
                removed += 1
        return removed

    async def list(self, supplier: str) -> List[AggregatedRecord]:
        return [r for r in self._records.values() if r.supplier == supplier]


class InMemoryListingIndex:
    """Dict-backed listing index keyed by (owner, identity key)."""

    def __init__(self):
        self._listings: Dict[Tuple[str, str], Listing] = {}

    def _entry(self, owner: str, article: str) -> Listing:
        key = (owner, identity_key(article))
        listing = self._listings.get(key)
        if listing is None:
            listing = self._listings[key] = Listing()
        return listing

    async def get(self, owner: str, article: str) -> Optional[Listing]:
        return self._listings.get((owner, identity_key(article)))

    async def set_visibility(
        self, owner: str, articles: Iterable[str], visible: bool, indexed: bool
    ) -> None:
        for article in articles:
            listing = self._entry(owner, article)
            listing.visible = visible
            listing.indexed = indexed

    async def remove_many(self, owner: str, articles: Iterable[str]) -> int:
        removed = 0
        for article in articles:
            if self._listings.pop((owner, identity_key(article)), None) is not None:
                removed += 1
        return removed

    async def get_category(self, owner: str, article: str) -> Optional[str]:
        listing = self._listings.get((owner, identity_key(article)))
        return listing.category if listing else None

    async def set_category(self, owner: str, article: str, category: str) -> None:
        self._entry(owner, article).category = category


__all__ = [
    "CatalogStore",
    "InMemoryCatalogStore",
    "InMemoryListingIndex",
    "Listing",
    "ListingIndex",
]
