"""Test the dashboard context: fetching, user actions and auto-refresh wiring."""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from arbwatch.client import ServiceError
from arbwatch.config import Config
from arbwatch.core.filters import SortDir, SortKey
from arbwatch.core.types import parse_opportunities
from arbwatch.dashboard import Dashboard
from tests.conftest import settle
from tests.sample_data import SAMPLE_EXCHANGES, SAMPLE_PAYLOAD, make_record


def make_client(records=None, exchanges=None):
    client = Mock()
    client.fetch_opportunities = AsyncMock(return_value=parse_opportunities(SAMPLE_PAYLOAD) if records is None else records)
    client.fetch_exchanges = AsyncMock(return_value=SAMPLE_EXCHANGES if exchanges is None else exchanges)
    client.close = AsyncMock()
    return client


def make_dashboard(client=None, clock=None, **refresh):
    config = Config(refresh=refresh) if refresh else Config()
    kwargs = {'sleep': clock.sleep} if clock is not None else {}
    return Dashboard(config, client=client or make_client(), **kwargs)


def symbols(records):
    return [r.symbol for r in records]


class TestRefresh:
    """Test the fetch side effect."""

    @pytest.mark.asyncio
    async def test_successful_refresh(self):
        client = make_client()
        dashboard = make_dashboard(client)

        await dashboard.refresh()

        client.fetch_opportunities.assert_awaited_once_with(dashboard.store.params.api_base, 0.5)
        assert len(dashboard.store.opportunities) == 3
        assert symbols(dashboard.view) == ["BTC", "ETH"]
        assert dashboard.loading is False
        assert dashboard.error is None
        assert dashboard.last_updated is not None

    @pytest.mark.asyncio
    async def test_threshold_not_sent_when_min_filter_off(self):
        client = make_client()
        dashboard = make_dashboard(client)
        dashboard.toggle_min_filter()

        await dashboard.refresh()

        client.fetch_opportunities.assert_awaited_once_with(dashboard.store.params.api_base, None)
        assert len(dashboard.view) == 3

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_last_good_records(self):
        client = make_client()
        dashboard = make_dashboard(client)
        await dashboard.refresh()
        updated = dashboard.last_updated

        client.fetch_opportunities.side_effect = ServiceError("HTTP 502 from service")
        await dashboard.refresh()

        assert len(dashboard.store.opportunities) == 3
        assert dashboard.error == "HTTP 502 from service"
        assert dashboard.loading is False
        assert dashboard.last_updated == updated

    @pytest.mark.asyncio
    async def test_error_without_message_gets_fallback(self):
        client = make_client()
        client.fetch_opportunities.side_effect = ServiceError("")
        dashboard = make_dashboard(client)

        await dashboard.refresh()

        assert dashboard.error == "Failed to fetch data"

    @pytest.mark.asyncio
    async def test_next_success_clears_error(self):
        client = make_client()
        client.fetch_opportunities.side_effect = [ServiceError("down"), parse_opportunities(SAMPLE_PAYLOAD)]
        dashboard = make_dashboard(client)

        await dashboard.refresh()
        assert dashboard.error == "down"
        await dashboard.refresh()
        assert dashboard.error is None

    @pytest.mark.asyncio
    async def test_loading_during_fetch(self):
        gate = asyncio.Event()
        seen = []

        async def slow_fetch(api_base, threshold):
            await gate.wait()
            return []

        client = make_client()
        client.fetch_opportunities.side_effect = slow_fetch
        dashboard = make_dashboard(client)
        dashboard.store.subscribe(lambda store, changed: seen.append(store.loading) if 'loading' in changed else None)

        task = asyncio.ensure_future(dashboard.refresh())
        await settle()
        assert dashboard.loading is True

        gate.set()
        await task
        assert dashboard.loading is False
        assert seen == [True, False]

    @pytest.mark.asyncio
    async def test_success_resets_sort(self):
        dashboard = make_dashboard()
        dashboard.change_sort(SortKey.MIN)
        assert dashboard.store.params.sort_key is SortKey.MIN

        await dashboard.refresh()

        assert dashboard.store.params.sort_key is SortKey.NET_DIFF
        assert dashboard.store.params.sort_dir is SortDir.DESC

    @pytest.mark.asyncio
    async def test_filters_survive_refresh(self):
        dashboard = make_dashboard()
        dashboard.set_search("et")
        dashboard.update_min_range("0.1")

        await dashboard.refresh()
        await dashboard.refresh()

        assert dashboard.store.params.search == "et"
        assert dashboard.store.params.min_diff_percent == 0.1
        assert symbols(dashboard.view) == ["ETH"]


class TestExchanges:
    """Test the exchange list and exchange filter."""

    @pytest.mark.asyncio
    async def test_load_exchanges(self):
        dashboard = make_dashboard()
        await dashboard.load_exchanges()
        assert dashboard.store.available_exchanges == tuple(SAMPLE_EXCHANGES)

    @pytest.mark.asyncio
    async def test_load_exchanges_failure_keeps_list(self):
        client = make_client()
        dashboard = make_dashboard(client)
        await dashboard.load_exchanges()

        client.fetch_exchanges.side_effect = ServiceError("down")
        await dashboard.load_exchanges()

        assert dashboard.store.available_exchanges == tuple(SAMPLE_EXCHANGES)
        assert dashboard.error is None

    @pytest.mark.asyncio
    async def test_api_base_change_reloads_exchanges(self):
        client = make_client()
        dashboard = make_dashboard(client)
        await dashboard.start()
        client.fetch_exchanges.reset_mock()

        dashboard.set_api_base("http://localhost:8000/ ")
        await settle()

        client.fetch_exchanges.assert_awaited_once_with("http://localhost:8000/")
        await dashboard.aclose()

    def test_toggle_exchange(self):
        dashboard = make_dashboard()
        dashboard.store.update(opportunities=[
            make_record("BTC", 1.0, exchanges={"binance": 1.0, "okx": 1.01}),
            make_record("ETH", 2.0, exchanges={"kraken": 1.0, "bybit": 1.02}),
        ])

        dashboard.toggle_exchange("kraken")
        assert dashboard.is_exchange_selected("kraken")
        assert symbols(dashboard.view) == ["ETH"]

        dashboard.toggle_exchange("kraken")
        assert not dashboard.is_exchange_selected("kraken")
        assert symbols(dashboard.view) == ["ETH", "BTC"]

        dashboard.toggle_exchange("okx")
        dashboard.toggle_exchange("bybit")
        dashboard.reset_exchange_filter()
        assert dashboard.store.params.selected_exchanges == frozenset()


class TestUserActions:
    """Test parameter setters and sanitizing."""

    def test_invalid_threshold_becomes_zero(self):
        dashboard = make_dashboard()
        dashboard.update_min_range("abc")
        assert dashboard.store.params.min_diff_percent == 0.0
        dashboard.update_max_range(float("nan"))
        assert dashboard.store.params.max_diff_percent == 0.0

    def test_interval_sanitized_to_floor(self):
        dashboard = make_dashboard()
        dashboard.update_auto_interval("250")
        assert dashboard.store.params.auto_refresh_ms == 1000
        dashboard.update_auto_interval("oops")
        assert dashboard.store.params.auto_refresh_ms == 1000
        dashboard.update_auto_interval(30000)
        assert dashboard.store.params.auto_refresh_ms == 30000

    def test_search_and_clear(self):
        dashboard = make_dashboard()
        dashboard.store.update(opportunities=parse_opportunities(SAMPLE_PAYLOAD))
        dashboard.set_search("et")
        assert symbols(dashboard.view) == ["ETH"]
        dashboard.clear_search()
        assert symbols(dashboard.view) == ["BTC", "ETH"]

    def test_max_filter(self):
        dashboard = make_dashboard()
        dashboard.store.update(opportunities=parse_opportunities(SAMPLE_PAYLOAD))
        dashboard.toggle_min_filter()
        dashboard.toggle_max_filter()
        dashboard.update_max_range("1")
        assert symbols(dashboard.view) == ["LTC"]

    def test_change_sort(self):
        dashboard = make_dashboard()
        dashboard.store.update(opportunities=parse_opportunities(SAMPLE_PAYLOAD))
        dashboard.toggle_min_filter()

        dashboard.change_sort(SortKey.NET_DIFF)
        assert dashboard.store.params.sort_dir is SortDir.ASC
        assert symbols(dashboard.view) == ["LTC", "BTC", "ETH"]


class TestAutoRefresh:
    """Test auto-refresh driven by the parameters."""

    @pytest.mark.asyncio
    async def test_start_with_auto_refresh_off(self, clock):
        client = make_client()
        dashboard = make_dashboard(client, clock)

        await dashboard.start()

        assert client.fetch_opportunities.await_count == 1
        client.fetch_exchanges.assert_awaited_once()
        assert not dashboard.scheduler.running
        await dashboard.aclose()

    @pytest.mark.asyncio
    async def test_start_with_auto_refresh_on_fetches_once(self, clock):
        client = make_client()
        dashboard = make_dashboard(client, clock, enabled=True, interval_ms=5000)

        await dashboard.start()
        await settle()

        assert client.fetch_opportunities.await_count == 1
        assert dashboard.scheduler.running
        assert clock.delays == [5.0]
        await dashboard.aclose()

    @pytest.mark.asyncio
    async def test_toggle_auto_refresh(self, clock):
        client = make_client()
        dashboard = make_dashboard(client, clock, refresh_on_start=False)
        await dashboard.start()
        assert client.fetch_opportunities.await_count == 0

        dashboard.toggle_auto_refresh()
        await settle()
        assert dashboard.scheduler.running
        assert client.fetch_opportunities.await_count == 1

        await clock.advance()
        assert client.fetch_opportunities.await_count == 2

        dashboard.toggle_auto_refresh()
        await clock.advance()
        assert not dashboard.scheduler.running
        assert client.fetch_opportunities.await_count == 2
        await dashboard.aclose()

    @pytest.mark.asyncio
    async def test_interval_change_restarts(self, clock):
        client = make_client()
        dashboard = make_dashboard(client, clock, refresh_on_start=False)
        await dashboard.start()

        dashboard.set_auto_refresh(True)
        await settle()
        dashboard.update_auto_interval(20000)
        await settle()

        assert client.fetch_opportunities.await_count == 2
        assert clock.delays == [15.0, 20.0]
        assert dashboard.scheduler.interval_ms == 20000
        await dashboard.aclose()

    @pytest.mark.asyncio
    async def test_filter_changes_do_not_touch_timer(self, clock):
        client = make_client()
        dashboard = make_dashboard(client, clock, enabled=True)
        await dashboard.start()
        await settle()

        dashboard.set_search("btc")
        dashboard.update_min_range(1)
        await settle()

        assert clock.delays == [15.0]
        assert client.fetch_opportunities.await_count == 1
        await dashboard.aclose()

    @pytest.mark.asyncio
    async def test_manual_refresh(self, clock):
        client = make_client()
        dashboard = make_dashboard(client, clock, enabled=True)
        await dashboard.start()
        await settle()

        await dashboard.refresh_now()

        assert client.fetch_opportunities.await_count == 2
        assert clock.delays == [15.0]
        await dashboard.aclose()

    @pytest.mark.asyncio
    async def test_context_manager_teardown(self, clock):
        client = make_client()
        async with make_dashboard(client, clock, enabled=True) as dashboard:
            await settle()
            assert dashboard.scheduler.running

        assert not dashboard.scheduler.running
        assert clock.sleeping == 0
        client.close.assert_awaited_once()

        # Parameter changes after teardown no longer drive the scheduler
        dashboard.toggle_auto_refresh()
        dashboard.toggle_auto_refresh()
        assert not dashboard.scheduler.running
