"""
Currency rate table.

The table maps an ISO code to its raw rate against the local currency and is
cached on disk as ``CODE,rate`` lines. ``RateRefresher`` re-downloads it on an
APScheduler interval; a failed refresh keeps the previous table.
"""

from __future__ import annotations

import asyncio
import logging
import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import RatesSettings

logger = logging.getLogger(__name__)

# Codes that already denote the local currency
LOCAL_CODES = frozenset({"UAH", "ГРН", "UA"})


def _parse_rate(value) -> Optional[Decimal]:
    try:
        rate = Decimal(str(value).strip().replace(",", "."))
    except InvalidOperation:
        return None
    if not rate.is_finite() or rate <= 0:
        return None
    return rate


class RateTable:
    """Read-mostly currency -> rate mapping with a fixed markup."""

    def __init__(
        self,
        rates: Optional[Dict[str, Decimal]] = None,
        markup: float = 1.07,
        target_currency: str = "UAH",
    ):
        self._rates: Dict[str, Decimal] = dict(rates or {})
        self.markup = Decimal(str(markup))
        self.target_currency = target_currency.upper()

    def __len__(self) -> int:
        return len(self._rates)

    def replace(self, rates: Dict[str, Decimal]) -> None:
        """Swap in a new table wholesale."""
        self._rates = dict(rates)

    def snapshot(self) -> Dict[str, Decimal]:
        return dict(self._rates)

    def multiplier(self, currency: str) -> Optional[Decimal]:
        """Rate with markup for ``currency``; None when no conversion applies."""
        code = (currency or "").strip().upper()
        if not code or code in LOCAL_CODES or code == self.target_currency:
            return None
        rate = self._rates.get(code)
        if rate is None:
            return None
        return rate * self.markup

    def convert(self, price: Decimal, currency: str) -> Decimal:
        """Convert to the target currency; unknown codes leave price unchanged."""
        multiplier = self.multiplier(currency)
        if multiplier is None:
            return price
        return price * multiplier

    # =========================================================================
    # CSV cache
    # =========================================================================

    @classmethod
    def load(cls, path: str | Path, **kwargs) -> "RateTable":
        """Load the CSV cache. A missing file yields an empty table."""
        return cls(read_rates(path), **kwargs)

    def save(self, path: str | Path) -> None:
        write_rates(path, self._rates)


def read_rates(path: str | Path) -> Dict[str, Decimal]:
    rates: Dict[str, Decimal] = {}
    file = Path(path)
    if not file.exists():
        logger.info(f"No currency rates cache at {file}")
        return rates
    for line in file.read_text(encoding="utf-8").splitlines():
        parts = line.split(",")
        if len(parts) < 2:
            continue
        code = parts[0].strip().upper()
        rate = _parse_rate(parts[1])
        if not code or rate is None:
            logger.warning(f"Skipping bad rate line in {file}: {line!r}")
            continue
        rates[code] = rate
    return rates


def write_rates(path: str | Path, rates: Dict[str, Decimal]) -> None:
    file = Path(path)
    file.parent.mkdir(parents=True, exist_ok=True)
    tmp = file.with_name(file.name + ".part")
    tmp.write_text("".join(f"{code},{rate}\n" for code, rate in sorted(rates.items())), encoding="utf-8")
    os.replace(tmp, file)


class RateRefresher:
    """Periodically downloads rates into a RateTable.

    The endpoint returns a JSON list of ``{"cc": "USD", "rate": 41.2}``.
    """

    def __init__(
        self,
        table: RateTable,
        settings: RatesSettings,
        client_factory: Callable[..., httpx.AsyncClient] = httpx.AsyncClient,
    ):
        self.table = table
        self.settings = settings
        self.client_factory = client_factory
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Start the scheduler."""
        self.scheduler.add_job(
            self.refresh,
            trigger=IntervalTrigger(seconds=self.settings.refresh_interval),
            id="currency_rates_refresh",
            name="Currency Rates Refresh",
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            f"Rate refresher started. Refreshing every {self.settings.refresh_interval}s"
        )

    async def stop(self):
        """Stop the scheduler."""
        if self.scheduler.running:
            self.scheduler.shutdown()
        logger.info("Rate refresher stopped")

    async def refresh(self) -> bool:
        """Download and persist rates. Returns False and keeps the old table on failure."""
        try:
            rates = await self._download()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Unable to download currency rates: {e}")
            return False

        if not rates:
            logger.warning("Currency rates endpoint returned no usable rates")
            return False

        self.table.replace(rates)
        try:
            await asyncio.to_thread(write_rates, self.settings.path, rates)
        except OSError as e:
            logger.warning(f"Unable to write currency rates cache: {e}")
        logger.info(f"Currency rates updated: {len(rates)} codes")
        return True

    async def _download(self) -> Dict[str, Decimal]:
        async with self.client_factory(timeout=30.0) as client:
            response = await client.get(self.settings.url)
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, list):
            raise ValueError("rates payload is not a list")

        rates: Dict[str, Decimal] = {}
        for row in payload:
            if not isinstance(row, dict):
                continue
            code = str(row.get("cc") or "").strip().upper()
            rate = _parse_rate(row.get("rate"))
            if code and rate is not None:
                rates[code] = rate
        return rates


__all__ = ["LOCAL_CODES", "RateRefresher", "RateTable", "read_rates", "write_rates"]
