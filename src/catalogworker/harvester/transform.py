"""
Transform stage: pure per-record transforms applied after aggregation.

Pricing order is fixed: currency conversion, multiplier / markup, discount,
rounding to whole units, then "end in 9" rounding. The availability override
is always applied last.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo

from ..entries import Discount, ExportOptions, ImportOptions
from .categories import CategoryMatcher
from .models import AggregatedRecord, Availability
from .rates import RateTable

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


def round_to_9(value) -> Decimal:
    """Round a price so it ends in 9: 0 -> 0, 3 -> 9, 10 -> 19, 151 -> 159."""
    v = int(Decimal(value).to_integral_value(rounding=ROUND_HALF_UP))
    if v == 0:
        return Decimal(0)
    if v < 10:
        return Decimal(9)
    return Decimal(v - v % 10 + 9)


def round_whole(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_HALF_UP)


def discount_active(discount: Optional[Discount], now: datetime, tz: ZoneInfo) -> bool:
    """True while local time is within ``hours`` (at least 1) after local midnight.

    A discount without ``hours`` has no window and is always active.
    """
    if discount is None or discount.percent <= 0:
        return False
    if discount.hours is None:
        return True
    local = now.astimezone(tz)
    midnight = datetime.combine(local.date(), time.min, tzinfo=tz)
    return midnight <= local < midnight + timedelta(hours=max(discount.hours, 1))


def apply_discount(price: Decimal, percent: int) -> Decimal:
    percent = min(percent, 100)
    return price * (HUNDRED - percent) / HUNDRED


def decorate_title(title: str, options: ExportOptions) -> str:
    for old, new in options.title_replacements:
        if old:
            title = title.replace(old, new)
    return f"{options.title_prefix}{title}{options.title_suffix}"


def _utcnow() -> datetime:
    return datetime.now(tz=ZoneInfo("UTC"))


@dataclass
class TransformContext:
    """Collaborators shared by every transform in a cycle."""

    rates: Optional[RateTable] = None
    matcher: Optional[CategoryMatcher] = None
    tz: ZoneInfo = field(default_factory=lambda: ZoneInfo("Europe/Kyiv"))
    target_currency: str = "UAH"
    clock: Callable[[], datetime] = _utcnow

    def convert(self, price: Decimal, currency: str) -> Decimal:
        if self.rates is None:
            return price
        return self.rates.convert(price, currency)

    def guess_category(self, title: str) -> Optional[str]:
        if not self.matcher:
            return None
        return self.matcher.guess(title)


def transform_export(
    records: List[AggregatedRecord],
    options: ExportOptions,
    ctx: TransformContext,
) -> List[AggregatedRecord]:
    """Apply one bucket's output options to its records."""
    discount_on = discount_active(options.discount, ctx.clock(), ctx.tz)
    result = []
    for record in records:
        if options.only_available and record.availability != Availability.AVAILABLE:
            continue
        if record.price is None:
            continue

        update = {"title": decorate_title(record.title, options)}

        price = record.price
        if options.convert_currency:
            price = ctx.convert(price, record.currency)
            update["currency"] = ctx.target_currency
        if options.adjust_price is not None:
            price = price * Decimal(str(options.adjust_price))
        if discount_on:
            price = apply_discount(price, options.discount.percent)
            update["discount_percent"] = min(options.discount.percent, 100)
        if options.round_to_9:
            price = round_to_9(price)
        update["price"] = price

        if options.categories and not record.category:
            category = ctx.guess_category(record.title)
            if category:
                update["category"] = category

        if options.set_availability is not None:
            update["availability"] = options.set_availability

        result.append(record.model_copy(update=update))
    return result


def transform_import(
    records: List[AggregatedRecord],
    options: ImportOptions,
    ctx: TransformContext,
) -> List[AggregatedRecord]:
    """Price and availability rules for records headed into the catalog.

    ``source_price`` keeps the converted price, rounded to a whole unit, before markup
    and discount.
    """
    discount_on = discount_active(options.discount, ctx.clock(), ctx.tz)
    markup = Decimal(str(options.markup_percent))
    result = []
    for record in records:
        if options.only_available and record.availability != Availability.AVAILABLE:
            continue

        update = {}
        if record.price is not None:
            price = record.price
            if options.convert_currency:
                price = ctx.convert(price, record.currency)
                update["currency"] = ctx.target_currency
            update["source_price"] = round_whole(price)
            if markup > 0:
                price = price * (HUNDRED + markup) / HUNDRED
            if discount_on:
                price = apply_discount(price, options.discount.percent)
                update["discount_percent"] = min(options.discount.percent, 100)
            price = round_whole(price)
            if options.round_to_9:
                price = round_to_9(price)
            update["price"] = price

        if options.categories and not record.category:
            category = ctx.guess_category(record.title)
            if category:
                update["category"] = category

        if options.set_availability is not None:
            update["availability"] = options.set_availability

        result.append(record.model_copy(update=update))
    return result


__all__ = [
    "TransformContext",
    "apply_discount",
    "decorate_title",
    "discount_active",
    "round_to_9",
    "transform_export",
    "transform_import",
]
