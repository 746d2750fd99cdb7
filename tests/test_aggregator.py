"""
Tests for the source aggregator.
"""

import httpx
import pytest

from catalogworker.catalog import InMemoryCatalogStore
from catalogworker.entries import ExportOptions, LinkFeedSource, SupplierTableSource
from catalogworker.errors import TransientSourceError
from catalogworker.harvester.aggregator import aggregate_export, aggregate_import
from catalogworker.harvester.sources import FetchContext

from conftest import make_record, mock_client_factory

FEED = b"""<yml_catalog><shop><offers>
  <offer id="f1" available="true"><name>Feed one</name><price>10</price></offer>
  <offer id="f2" available="true"><name>Unpriced</name></offer>
</offers></shop></yml_catalog>"""


def feed_handler(request):
    if request.url.host == "down.example.com":
        return httpx.Response(502)
    return httpx.Response(200, content=FEED)


@pytest.fixture
def catalog():
    return InMemoryCatalogStore(
        [
            make_record("s1", supplier="dd"),
            make_record("s2", supplier="dd", price=None),
            make_record("k1", supplier="kicx"),
        ]
    )


class TestAggregateExport:
    """Buckets by output options, in fetch order."""

    @pytest.mark.asyncio
    async def test_equal_options_share_bucket(self, catalog):
        rounded = ExportOptions(round_to_9=True)
        sources = [
            SupplierTableSource(supplier="dd", options=rounded),
            LinkFeedSource(link="https://feed.example.com/x.xml"),
            SupplierTableSource(supplier="kicx", options=ExportOptions(round_to_9=True)),
        ]
        context = FetchContext(catalog=catalog, client_factory=mock_client_factory(feed_handler))

        buckets = await aggregate_export(sources, context)

        assert len(buckets) == 2
        assert buckets[0].options == rounded
        assert [r.article for r in buckets[0].records] == ["s1", "k1"]
        # unpriced records never reach a bucket
        assert [r.article for r in buckets[1].records] == ["f1"]

    @pytest.mark.asyncio
    async def test_failure_aborts_cycle(self, catalog):
        sources = [
            SupplierTableSource(supplier="dd"),
            LinkFeedSource(link="https://down.example.com/x.xml"),
        ]
        context = FetchContext(catalog=catalog, client_factory=mock_client_factory(feed_handler))

        with pytest.raises(TransientSourceError):
            await aggregate_export(sources, context)

    @pytest.mark.asyncio
    async def test_delay_only_between_links(self, catalog):
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        sources = [
            LinkFeedSource(link="https://a.example.com/x.xml"),
            SupplierTableSource(supplier="dd"),
            LinkFeedSource(link="https://b.example.com/x.xml"),
        ]
        context = FetchContext(
            catalog=catalog,
            client_factory=mock_client_factory(feed_handler),
            sleep=fake_sleep,
        )

        await aggregate_export(sources, context, link_delay=2.5)

        assert sleeps == [2.5]

    @pytest.mark.asyncio
    async def test_progress_reported(self, catalog):
        stages = []
        context = FetchContext(
            catalog=catalog,
            progress=lambda stage, done, total: stages.append((stage, done, total)),
        )

        await aggregate_export(
            [SupplierTableSource(supplier="dd"), SupplierTableSource(supplier="kicx")], context
        )

        assert stages == [("fetching source 1/2", 0, 2), ("fetching source 2/2", 1, 2)]


class TestAggregateImport:
    """Merges by lowercased article across sources."""

    @pytest.mark.asyncio
    async def test_merge_across_sources(self):
        catalog = InMemoryCatalogStore([make_record("X1", supplier="dd", quantity=2)])
        feed = b"""<yml_catalog><shop><offers>
          <offer id="1"><vendorCode>x1</vendorCode><name>Feed</name><price>5</price>
            <picture>p.jpg</picture></offer>
        </offers></shop></yml_catalog>"""
        context = FetchContext(
            catalog=catalog,
            client_factory=mock_client_factory(lambda request: httpx.Response(200, content=feed)),
        )

        merged = await aggregate_import(
            [SupplierTableSource(supplier="dd"), LinkFeedSource(link="https://f.example.com/x")],
            context,
        )

        assert list(merged) == ["x1"]
        assert merged["x1"].article == "X1"
        assert merged["x1"].images == ["p.jpg"]
        assert merged["x1"].quantity == 2
