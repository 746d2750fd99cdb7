"""Shared fixtures for CatalogWorker tests."""

import asyncio
from datetime import timedelta
from decimal import Decimal

import httpx
import pytest

from catalogworker.harvester.models import AggregatedRecord, Availability


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.005):
    """Poll ``predicate`` until true or fail after ``timeout`` seconds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)


def make_record(article: str, price="100", **kwargs) -> AggregatedRecord:
    kwargs.setdefault("title", f"Product {article}")
    kwargs.setdefault("availability", Availability.AVAILABLE)
    return AggregatedRecord(
        article=article,
        price=None if price is None else Decimal(str(price)),
        **kwargs,
    )


def mock_client_factory(handler):
    """httpx.AsyncClient factory routed through ``handler``."""
    transport = httpx.MockTransport(handler)

    def factory(**kwargs):
        return httpx.AsyncClient(transport=transport, **kwargs)

    return factory


class FakeBody:
    """Scriptable job body.

    ``script`` is a list of exceptions (raised) or values (returned), one per
    attempt; the last element repeats.
    """

    def __init__(self, script=None, delay: float = 0.0, age=None):
        self.script = list(script or [None])
        self.delay = delay
        self.age = age
        self.calls = 0
        self.running = 0
        self.max_running = 0
        self.release = None

    def last_run_age(self, handle):
        return self.age

    async def execute(self, handle, config):
        self.calls += 1
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            if self.release is not None:
                await self.release.wait()
            elif self.delay:
                await asyncio.sleep(self.delay)
            step = self.script[min(self.calls - 1, len(self.script) - 1)]
            if isinstance(step, BaseException):
                raise step
            return step
        finally:
            self.running -= 1


@pytest.fixture
def short_rate():
    return timedelta(seconds=30)
