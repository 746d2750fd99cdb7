"""
Catalog merge and missing-record policy for imports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..entries import ImportOptions, MissingPolicy, UpdateFields
from ..harvester.models import AggregatedRecord, Availability, merge_unique
from .store import CatalogStore, ListingIndex

logger = logging.getLogger(__name__)

# Flag name -> record fields it governs
_FLAGGED_FIELDS = {
    "title": ("title",),
    "description": ("description",),
    "price": ("price",),
    "availability": ("availability",),
    "quantity": ("quantity", "available_in_stock"),
    "attributes": ("attributes",),
    "discounts": ("discount_percent",),
}


def merge_record(
    existing: Optional[AggregatedRecord],
    incoming: AggregatedRecord,
    update_fields: UpdateFields,
    append_images: bool = False,
) -> AggregatedRecord:
    """Fold ``incoming`` into ``existing`` honoring per-field update flags."""
    if existing is None:
        return incoming

    update = {}
    for flag, names in _FLAGGED_FIELDS.items():
        if getattr(update_fields, flag):
            for name in names:
                update[name] = getattr(incoming, name)

    if update_fields.images:
        update["images"] = (
            merge_unique(existing.images, incoming.images) if append_images else list(incoming.images)
        )
    if incoming.source_price is not None:
        update["source_price"] = incoming.source_price
    if incoming.supplier:
        update["supplier"] = incoming.supplier
    return existing.model_copy(update=update)


@dataclass
class ImportSummary:
    created: int = 0
    updated: int = 0
    missing: List[str] = field(default_factory=list)
    policy: MissingPolicy = MissingPolicy.KEEP

    def as_dict(self) -> Dict[str, object]:
        return {
            "created": self.created,
            "updated": self.updated,
            "missing": len(self.missing),
            "policy": self.policy.value,
        }


async def apply_missing_policy(
    policy: MissingPolicy,
    owner: str,
    articles: List[str],
    store: CatalogStore,
    index: ListingIndex,
) -> None:
    """Handle catalog records the supplier no longer sends."""
    if not articles or policy == MissingPolicy.KEEP:
        return

    if policy == MissingPolicy.MARK_UNAVAILABLE:
        for article in articles:
            record = await store.get(article)
            if record is not None:
                await store.save(record.model_copy(update={"availability": Availability.NOT_AVAILABLE}))
    elif policy == MissingPolicy.HIDE:
        await index.set_visibility(owner, articles, visible=False, indexed=False)
    elif policy == MissingPolicy.DELETE:
        await store.delete_many(articles)
        await index.remove_many(owner, articles)

    logger.info(f"Applied missing policy {policy.value} to {len(articles)} records of {owner}")


async def merge_into_catalog(
    owner: str,
    supplier: str,
    records: List[AggregatedRecord],
    options: ImportOptions,
    store: CatalogStore,
    index: ListingIndex,
) -> ImportSummary:
    """Merge one cycle's records, then apply the missing policy.

    "Missing" means persisted under ``supplier`` before the cycle but absent
    from ``records``.
    """
    summary = ImportSummary(policy=options.missing_policy)
    previous = {r.identity: r.article for r in await store.list(supplier)}

    seen = set()
    for incoming in records:
        incoming = incoming.model_copy(update={"supplier": supplier})
        existing = await store.get(incoming.article)
        merged = merge_record(existing, incoming, options.update_fields, options.append_images)
        await store.save(merged)
        seen.add(incoming.identity)
        if existing is None:
            summary.created += 1
        else:
            summary.updated += 1

        if options.categories and incoming.category:
            if await index.get_category(owner, incoming.article) is None:
                await index.set_category(owner, incoming.article, incoming.category)

    summary.missing = [article for key, article in previous.items() if key not in seen]
    await apply_missing_policy(options.missing_policy, owner, summary.missing, store, index)
    return summary


__all__ = ["ImportSummary", "apply_missing_policy", "merge_into_catalog", "merge_record"]
