"""
Tests for the ingestion poller.

Covers deduplication at both layers, the in-flight marker, alert ordering
and threshold, feed failures and the feed clients themselves.
"""

import httpx
import pytest
from sqlalchemy import select

from salewatch.db.models import SaleRecord
from salewatch.db.unit_of_work import UnitOfWork
from salewatch.feed.clients.base import FeedConnectionError, FeedParseError, RawSale
from salewatch.feed.clients.mock_client import MockFeedClient
from salewatch.feed.clients.roblox_client import RobloxFeedClient
from salewatch.feed.config import PollerConfig
from salewatch.feed.metrics import PollStatus
from salewatch.feed.poller import IngestionPoller
from salewatch.scheduler.state import IngestionState, SeenCache
from tests.fixtures.sales import RecordingNotifier, StaticFeedClient, feed_entry


def make_poller(notifier, client, session_factory, seen_ttl=60, **config):
    config = PollerConfig(group_ids=[1], seen_ttl_seconds=seen_ttl, **config)
    state = IngestionState(seen=SeenCache(ttl_seconds=seen_ttl))
    return IngestionPoller(
        notifier=notifier,
        client=client,
        config=config,
        state=state,
        session_factory=session_factory,
    )


async def stored_hashes(session_factory):
    async with UnitOfWork(session_factory=session_factory) as uow:
        result = await uow.session.execute(select(SaleRecord.id_hash))
        return sorted(result.scalars().all())


class TestSeenCache:
    def test_mark_and_expire(self):
        now = [1000.0]
        cache = SeenCache(ttl_seconds=60, clock=lambda: now[0])

        cache.mark("abc")
        assert cache.seen_recently("abc")
        assert len(cache) == 1

        now[0] += 60
        assert not cache.seen_recently("abc")
        assert len(cache) == 0

    def test_zero_ttl_disables_cache(self):
        cache = SeenCache(ttl_seconds=0)
        cache.mark("abc")
        assert not cache.seen_recently("abc")


@pytest.mark.asyncio
class TestPollerDeduplication:
    """Each hash is stored once and alerted once."""

    async def test_non_asset_sales_are_never_stored(self, notifier, session_factory):
        client = StaticFeedClient(
            {1: [feed_entry("pass-1", asset_type="GamePass"), feed_entry("asset-1")]}
        )
        poller = make_poller(notifier, client, session_factory)

        result = await poller.poll_partition(1)

        assert result["status"] == PollStatus.SUCCESS.value
        assert result["fetched"] == 2
        assert result["non_asset"] == 1
        assert result["new"] == 1
        assert await stored_hashes(session_factory) == ["asset-1"]
        assert [a.id_hash for a in notifier.sales] == ["asset-1"]

    async def test_repeat_poll_detected_by_store(self, notifier, session_factory):
        """With the seen cache disabled the database rejects the repeat."""
        client = StaticFeedClient({1: [feed_entry("h1", amount=25)]})
        poller = make_poller(notifier, client, session_factory, seen_ttl=0)

        first = await poller.poll_partition(1)
        second = await poller.poll_partition(1)

        assert first["new"] == 1
        assert second["new"] == 0
        assert second["duplicate"] == 1
        assert len(notifier.sales) == 1
        assert await stored_hashes(session_factory) == ["h1"]

    async def test_repeat_poll_suppressed_by_seen_cache(self, notifier, session_factory):
        client = StaticFeedClient({1: [feed_entry("h1")]})
        poller = make_poller(notifier, client, session_factory)

        await poller.poll_partition(1)
        second = await poller.poll_partition(1)

        assert second["suppressed"] == 1
        assert second["duplicate"] == 0
        assert len(notifier.sales) == 1

    async def test_same_hash_twice_in_one_batch(self, notifier, session_factory):
        client = StaticFeedClient({1: [feed_entry("h1"), feed_entry("h1")]})
        poller = make_poller(notifier, client, session_factory)

        result = await poller.poll_partition(1)

        assert result["new"] == 1
        assert result["suppressed"] == 1
        assert len(notifier.sales) == 1


@pytest.mark.asyncio
class TestPollerAlerts:
    async def test_alerts_go_out_oldest_first(self, notifier, session_factory):
        newest_first = [
            feed_entry("c", created="2026-10-19T12:00:00Z"),
            feed_entry("b", created="2026-10-19T11:00:00Z"),
            feed_entry("a", created="2026-10-19T10:00:00Z"),
        ]
        poller = make_poller(notifier, StaticFeedClient({1: newest_first}), session_factory)

        await poller.poll_partition(1)

        assert [a.id_hash for a in notifier.sales] == ["a", "b", "c"]

    async def test_threshold_stores_but_does_not_alert(self, notifier, session_factory):
        client = StaticFeedClient({1: [feed_entry("big", amount=50), feed_entry("small", amount=5)]})
        poller = make_poller(notifier, client, session_factory, alert_min_amount=10)

        result = await poller.poll_partition(1)

        assert result["new"] == 2
        assert result["notified"] == 1
        assert [a.id_hash for a in notifier.sales] == ["big"]
        assert await stored_hashes(session_factory) == ["big", "small"]

    async def test_alert_contents(self, notifier, session_factory):
        client = StaticFeedClient({1: [feed_entry("h1", amount=25, item="Cargo Pants", buyer="nova_rider")]})
        poller = make_poller(notifier, client, session_factory)

        await poller.poll_partition(1)

        alert = notifier.sales[0]
        assert alert.title == "New Sale"
        assert alert.item == "Cargo Pants"
        assert alert.amount == 25
        assert alert.group_id == 1
        assert alert.buyer_name == "nova_rider"

    async def test_notifier_failure_keeps_records(self, session_factory):
        notifier = RecordingNotifier(fail=True)
        client = StaticFeedClient({1: [feed_entry("h1"), feed_entry("h2")]})
        poller = make_poller(notifier, client, session_factory)

        result = await poller.poll_partition(1)

        assert result["status"] == PollStatus.SUCCESS.value
        assert result["new"] == 2
        assert result["notified"] == 0
        assert any("Notify failed" in e for e in result["errors"])
        assert await stored_hashes(session_factory) == ["h1", "h2"]


@pytest.mark.asyncio
class TestPollerFailures:
    async def test_feed_error_fails_partition(self, notifier, session_factory):
        client = StaticFeedClient(error=FeedConnectionError("HTTP 503"))
        poller = make_poller(notifier, client, session_factory)

        result = await poller.poll_partition(1)

        assert result["status"] == PollStatus.FAILED.value
        assert result["errors"] == ["HTTP 503"]
        assert poller.state.busy_partitions == set()
        assert poller.metrics.get_last_run().status == PollStatus.FAILED

    async def test_busy_partition_is_skipped(self, notifier, session_factory):
        client = StaticFeedClient({1: [feed_entry("h1")]})
        poller = make_poller(notifier, client, session_factory)
        poller.state.try_acquire(1)

        result = await poller.poll_partition(1)

        assert result["status"] == PollStatus.SKIPPED.value
        assert client.calls == []
        # The marker belongs to the other poll and must survive the skip
        assert 1 in poller.state.busy_partitions

    async def test_partitions_are_independent(self, notifier, session_factory):
        client = StaticFeedClient({1: [feed_entry("g1")], 2: [feed_entry("g2")]})
        poller = make_poller(notifier, client, session_factory)
        poller.config.group_ids = [1, 2]

        results = await poller.poll_all()

        assert [r["group_id"] for r in results] == [1, 2]
        async with UnitOfWork(session_factory=session_factory) as uow:
            assert (await uow.sales.get_by_hash("g2")).group_id == 2

    async def test_malformed_non_asset_entry_is_ignored(self, notifier, session_factory):
        broken_pass = {
            "idHash": None,
            "created": None,
            "details": {"type": "GamePass"},
            "agent": None,
            "currency": None,
        }

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"data": [broken_pass, feed_entry("asset-1")]})

        http_client = httpx.AsyncClient(
            base_url="https://economy.test", transport=httpx.MockTransport(handler)
        )
        client = RobloxFeedClient(base_url="https://economy.test", http_client=http_client)
        poller = make_poller(notifier, client, session_factory)

        result = await poller.poll_partition(1)

        assert result["status"] == PollStatus.SUCCESS.value
        assert result["new"] == 1
        assert result["non_asset"] == 1
        assert result["failed"] == 0
        assert await stored_hashes(session_factory) == ["asset-1"]
        assert [a.id_hash for a in notifier.sales] == ["asset-1"]

    async def test_malformed_asset_entry_fails_alone(self, notifier, session_factory):
        broken = feed_entry("broken")
        broken["currency"] = None
        client = StaticFeedClient({1: [feed_entry("h2"), broken, feed_entry("h1")]})
        poller = make_poller(notifier, client, session_factory)

        result = await poller.poll_partition(1)

        assert result["status"] == PollStatus.PARTIAL.value
        assert result["failed"] == 1
        assert result["new"] == 2
        assert any("Malformed feed entry" in e for e in result["errors"])
        assert await stored_hashes(session_factory) == ["h1", "h2"]
        assert [a.id_hash for a in notifier.sales] == ["h1", "h2"]

    async def test_get_status(self, notifier, session_factory):
        poller = make_poller(notifier, StaticFeedClient(), session_factory)
        await poller.poll_partition(1)

        status = poller.get_status()

        assert status["source"] == "static"
        assert status["busy_partitions"] == []
        assert status["last_run"]["group_id"] == 1
        assert status["metrics_24h"]["total_runs"] == 1


class TestRawSale:
    def test_from_feed(self):
        sale = RawSale.from_feed(feed_entry("h1", amount=15, item="Puffer Vest"))

        assert sale.id_hash == "h1"
        assert sale.asset_type == "Asset"
        assert sale.item_name == "Puffer Vest"
        assert sale.amount == 15

    def test_missing_fields_raise_parse_error(self):
        entry = feed_entry("h1")
        del entry["currency"]
        with pytest.raises(FeedParseError):
            RawSale.from_feed(entry)

    def test_negative_amount_rejected(self):
        with pytest.raises(FeedParseError):
            RawSale.from_feed(feed_entry("h1", amount=-5))

    def test_to_record_normalises_to_utc(self):
        sale = RawSale.from_feed(feed_entry("h1", created="2026-10-19T12:00:00+02:00", item=""))
        record = sale.to_record(group_id=9)

        assert record["occurred_at"].hour == 10
        assert record["occurred_at"].utcoffset().total_seconds() == 0
        assert record["item"] == "Unknown item"
        assert record["group_id"] == 9


@pytest.mark.asyncio
class TestMockClient:
    async def test_history_grows_newest_first(self):
        client = MockFeedClient(new_per_fetch=2, non_asset_rate=0.0, seed=7)

        first = await client.fetch_entries(1)
        second = await client.fetch_entries(1)

        assert len(first) == 2
        assert len(second) == 4
        assert {e["idHash"] for e in first} <= {e["idHash"] for e in second}
        times = [e["created"] for e in second]
        assert times == sorted(times, reverse=True)

    async def test_failure_simulation(self):
        client = MockFeedClient(failure_rate=1.0)
        with pytest.raises(FeedConnectionError):
            await client.fetch_entries(1)

    async def test_end_to_end_with_mock_feed(self, notifier, session_factory):
        client = MockFeedClient(new_per_fetch=3, non_asset_rate=0.0, seed=1)
        poller = make_poller(notifier, client, session_factory, seen_ttl=0)

        first = await poller.poll_partition(1)
        second = await poller.poll_partition(1)

        assert first["new"] == 3
        assert second["new"] == 3
        assert second["duplicate"] == 3
        assert len(await stored_hashes(session_factory)) == 6


@pytest.mark.asyncio
class TestRobloxClient:
    def make_client(self, handler):
        http_client = httpx.AsyncClient(
            base_url="https://economy.test", transport=httpx.MockTransport(handler)
        )
        return RobloxFeedClient(base_url="https://economy.test", http_client=http_client)

    async def test_fetch_entries_request(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"data": [feed_entry("h2"), feed_entry("h1")]})

        client = self.make_client(handler)
        entries = await client.fetch_entries(10432375, limit=10)

        assert seen["path"] == "/v2/groups/10432375/transactions"
        assert seen["params"]["limit"] == "10"
        assert seen["params"]["transactionType"] == "Sale"
        assert [e["idHash"] for e in entries] == ["h2", "h1"]

    async def test_missing_data_is_empty(self):
        client = self.make_client(lambda request: httpx.Response(200, json={}))
        assert await client.fetch_entries(1) == []

    async def test_http_error_raises_connection_error(self):
        client = self.make_client(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(FeedConnectionError):
            await client.fetch_entries(1)

    async def test_transport_error_raises_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = self.make_client(handler)
        with pytest.raises(FeedConnectionError):
            await client.fetch_entries(1)

    async def test_invalid_json_raises_parse_error(self):
        client = self.make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(FeedParseError):
            await client.fetch_entries(1)

    async def test_cookie_is_sent(self):
        client = RobloxFeedClient(base_url="https://economy.test", cookie="secret")
        try:
            assert client._client.cookies.get(".ROBLOSECURITY") == "secret"
        finally:
            await client.aclose()
