"""
Canonical record shape produced by the source aggregator.

Every source kind normalizes into ``AggregatedRecord``:
- availability resolved from explicit flags / quantity / zero-stock policy
- price parsed into Decimal (missing, zero or junk -> None)
- identity key is the lowercased article
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, Field


class Availability(str, Enum):
    """Stock state published for a record."""

    AVAILABLE = "available"
    ON_ORDER = "on_order"
    NOT_AVAILABLE = "not_available"


class ZeroStockPolicy(str, Enum):
    """What a record without stock becomes."""

    INHERIT = "inherit"  # defer to the entry-level default
    ON_ORDER = "on_order"
    NOT_AVAILABLE = "not_available"


class AggregatedRecord(BaseModel):
    """Normalized product record shared by export and import."""

    article: str
    title: str = ""
    description: Optional[str] = None
    price: Optional[Decimal] = None
    source_price: Optional[Decimal] = None
    currency: str = "UAH"
    availability: Availability = Availability.NOT_AVAILABLE
    quantity: Optional[int] = None
    available_in_stock: Optional[int] = None
    images: List[str] = Field(default_factory=list)
    attributes: Dict[str, str] = Field(default_factory=dict)
    category: Optional[str] = None
    supplier: Optional[str] = None
    vendor: Optional[str] = None
    warehouse: Optional[str] = None
    discount_percent: Optional[int] = None

    @property
    def identity(self) -> str:
        return identity_key(self.article)


def identity_key(article: str) -> str:
    return article.strip().lower()


def parse_price(value: Any) -> Optional[Decimal]:
    """Parse a price, returning None for missing, zero or non-numeric input."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        price = value
    elif isinstance(value, (int, float)):
        price = Decimal(str(value))
    else:
        text = str(value).strip().replace(" ", "").replace(" ", "").replace(",", ".")
        if not text:
            return None
        try:
            price = Decimal(text)
        except InvalidOperation:
            return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError):
        return None


def parse_flag(value: Any) -> Optional[bool]:
    """Interpret feed flags like ``available="true"``."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "y", "+"):
        return True
    if text in ("false", "0", "no", "n", "-"):
        return False
    return None


def resolve_availability(
    available: Optional[bool],
    quantity: Optional[int],
    policy: ZeroStockPolicy = ZeroStockPolicy.INHERIT,
    default_policy: ZeroStockPolicy = ZeroStockPolicy.NOT_AVAILABLE,
) -> Availability:
    """Explicit flag or positive quantity wins; otherwise apply the policy."""
    if available or (quantity is not None and quantity > 0):
        return Availability.AVAILABLE
    if policy == ZeroStockPolicy.INHERIT:
        policy = default_policy
    if policy == ZeroStockPolicy.ON_ORDER:
        return Availability.ON_ORDER
    return Availability.NOT_AVAILABLE


def normalize_supplier_key(raw: Optional[str]) -> Optional[str]:
    """Lowercase, keep alphanumerics, collapse ``-``/``_``/spaces into one ``_``.

    e.g., " DD-Audio  Pro " -> "dd_audio_pro"
    """
    if not raw or not raw.strip():
        return None
    out = []
    last_sep = False
    for ch in raw.strip().lower():
        if ch.isalnum():
            out.append(ch)
            last_sep = False
        elif ch in "-_" or ch.isspace():
            if not last_sep:
                out.append("_")
                last_sep = True
    key = "".join(out).strip("_")
    return key or None


VENDOR_TLDS = ("com", "net", "ua", "org", "one")


def parse_vendor_from_link(link: str) -> Optional[str]:
    """Vendor label from a feed link host.

    The label right before the first generic TLD wins, e.g.
    ``https://www.maxton.com.ua/feed.xml`` -> "maxton".
    """
    host = urlparse(link.strip()).hostname
    if not host:
        return None
    labels = [label for label in host.split(".") if label and label != "www"]
    for index, label in enumerate(labels[1:], start=1):
        if label in VENDOR_TLDS:
            return labels[index - 1]
    if len(labels) >= 2:
        return labels[-2]
    return None


_SPLIT_IMAGES = re.compile(r"[\s,;]+")


def _as_images(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        items = _SPLIT_IMAGES.split(value)
    else:
        items = [str(v) for v in value]
    return merge_unique([], [i.strip() for i in items if i and i.strip()])


def merge_unique(existing: List[str], incoming: List[str]) -> List[str]:
    """Union preserving first-seen order."""
    seen = set()
    result = []
    for item in list(existing) + list(incoming):
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def normalize_record(
    raw: Dict[str, Any],
    *,
    policy: ZeroStockPolicy = ZeroStockPolicy.INHERIT,
    default_policy: ZeroStockPolicy = ZeroStockPolicy.NOT_AVAILABLE,
    supplier: Optional[str] = None,
    vendor: Optional[str] = None,
    default_currency: str = "UAH",
) -> Optional[AggregatedRecord]:
    """Build an AggregatedRecord from a source's raw dict.

    Returns None when the record has no usable article. Price validation is
    left to the caller since export and import treat missing prices differently.
    """
    article = str(raw.get("article") or raw.get("sku") or "").strip()
    if not article and raw.get("id") is not None:
        article = str(raw["id"]).strip()
    if not article:
        return None

    quantity = parse_int(raw.get("quantity"))
    in_stock = parse_int(raw.get("available_in_stock"))
    available = parse_flag(raw.get("available"))
    attributes = raw.get("attributes") or {}

    return AggregatedRecord(
        article=article,
        title=str(raw.get("title") or raw.get("name") or "").strip(),
        description=raw.get("description") or None,
        price=parse_price(raw.get("price")),
        currency=str(raw.get("currency") or default_currency).strip().upper(),
        availability=resolve_availability(
            available, quantity if quantity is not None else in_stock, policy, default_policy
        ),
        quantity=quantity,
        available_in_stock=in_stock,
        images=_as_images(raw.get("images")),
        attributes={str(k): str(v) for k, v in attributes.items()},
        category=(str(raw["category"]).strip() or None) if raw.get("category") else None,
        supplier=supplier,
        vendor=raw.get("vendor") or vendor,
        warehouse=raw.get("warehouse") or None,
    )


def merge_same_identity(existing: AggregatedRecord, incoming: AggregatedRecord) -> AggregatedRecord:
    """Combine two records with one identity key.

    Scalars keep the first-seen value, images union in order, attributes add
    missing keys, quantity sums and available_in_stock takes the max.
    """
    update: Dict[str, Any] = {}
    for name in ("title", "description", "price", "category", "vendor", "warehouse"):
        if not getattr(existing, name) and getattr(incoming, name):
            update[name] = getattr(incoming, name)
    update["images"] = merge_unique(existing.images, incoming.images)
    attributes = dict(incoming.attributes)
    attributes.update(existing.attributes)
    update["attributes"] = attributes

    if existing.quantity is not None or incoming.quantity is not None:
        update["quantity"] = (existing.quantity or 0) + (incoming.quantity or 0)
    if existing.available_in_stock is not None or incoming.available_in_stock is not None:
        update["available_in_stock"] = max(
            existing.available_in_stock or 0, incoming.available_in_stock or 0
        )
    if Availability.AVAILABLE in (existing.availability, incoming.availability):
        update["availability"] = Availability.AVAILABLE
    elif Availability.ON_ORDER in (existing.availability, incoming.availability):
        update["availability"] = Availability.ON_ORDER
    return existing.model_copy(update=update)
