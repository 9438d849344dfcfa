"""Dashboard context: owns the state store, the service client and the refresh scheduler."""

import asyncio
from datetime import datetime
from typing import Any, FrozenSet, Optional, Set, Tuple
from loguru import logger

from .client import ArbitrageClient
from .config import Config, get_config
from .core.filters import SortDir, SortKey, next_sort, parse_interval, parse_threshold
from .core.scheduler import RefreshScheduler, SleepFn
from .core.state import DashboardParams, DashboardStore
from .core.types import ArbitrageOpportunity
from .log import setup_logging

AUTO_REFRESH_INPUTS = frozenset({'auto_refresh_enabled', 'auto_refresh_ms'})


class Dashboard:
    """Client-side state of the arbitrage dashboard.

    User actions write parameters into the store; the store notifies this
    object, which keeps the scheduler and the exchange list in step with
    the parameters. ``refresh()`` is the single fetch path used by the
    scheduler and by manual refreshes.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        client: Optional[ArbitrageClient] = None,
        sleep: SleepFn = asyncio.sleep,
    ):
        self.config = config or Config()
        self.store = DashboardStore(DashboardParams.from_config(self.config))
        self.client = client or ArbitrageClient(self.config.api.timeout_seconds)
        self.scheduler = RefreshScheduler(
            self.refresh,
            min_interval_ms=self.config.refresh.min_interval_ms,
            skip_overlapping_ticks=self.config.refresh.skip_overlapping_ticks,
            sleep=sleep,
        )

        self.running = False
        self._unsubscribe = None
        self._active_fetches = 0
        self._exchange_tasks: Set[asyncio.Task] = set()

    @classmethod
    def from_config_file(cls, config_path: Optional[str] = None) -> "Dashboard":
        """Load configuration, set up logging and build a dashboard."""
        config = get_config(config_path)
        setup_logging(config.logging)
        return cls(config)

    async def start(self):
        """Initial fetch, exchange list load and auto-refresh setup."""
        if self.running:
            return

        self.running = True
        self._unsubscribe = self.store.subscribe(self._on_change)
        params = self.store.params
        logger.info(f"Starting arbitrage dashboard against {params.api_base}")

        # Enabling auto-refresh fetches immediately, so skip the separate initial fetch
        if self.config.refresh.refresh_on_start and not params.auto_refresh_enabled:
            await self.refresh()
        await self.load_exchanges()
        self._apply_auto_refresh()

    async def aclose(self):
        """Stop auto-refresh, wait for in-flight requests and release the HTTP session."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        await self.scheduler.aclose()
        if self._exchange_tasks:
            await asyncio.gather(*list(self._exchange_tasks), return_exceptions=True)
        await self.client.close()

        if self.running:
            logger.info("Arbitrage dashboard stopped")
        self.running = False

    async def __aenter__(self) -> "Dashboard":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    # Fetching

    async def refresh(self) -> None:
        """Fetch opportunities and publish the result. Never raises."""
        self._active_fetches += 1
        self.store.update(loading=True, error=None)
        params = self.store.params
        threshold = params.min_diff_percent if params.min_filter_active else None
        try:
            records = await self.client.fetch_opportunities(params.api_base, threshold)
        except Exception as e:
            message = str(e) or "Failed to fetch data"
            logger.error(f"Failed to fetch opportunities: {message}")
            self.store.update(error=message)
        else:
            logger.debug(f"Fetched {len(records)} opportunities")
            self.store.update(
                opportunities=records,
                last_updated=datetime.now(),
                sort_key=SortKey.NET_DIFF,
                sort_dir=SortDir.DESC,
            )
        finally:
            self._active_fetches -= 1
            if self._active_fetches == 0:
                self.store.update(loading=False)

    async def load_exchanges(self) -> None:
        """Reload the list of exchanges offered for filtering."""
        api_base = self.store.params.api_base
        try:
            names = await self.client.fetch_exchanges(api_base)
        except Exception as e:
            logger.warning(f"Could not load exchange list from {api_base}: {e}")
            return
        if self.store.params.api_base != api_base:
            # A newer load for the current base URL is already underway
            return
        self.store.update(available_exchanges=names)

    def refresh_now(self) -> asyncio.Future:
        """Manual refresh; does not touch the auto-refresh timer."""
        return self.scheduler.refresh_now()

    def _on_change(self, store: DashboardStore, changed: FrozenSet[str]) -> None:
        if changed & AUTO_REFRESH_INPUTS:
            self._apply_auto_refresh()
        if 'api_base' in changed:
            task = asyncio.get_running_loop().create_task(self.load_exchanges())
            self._exchange_tasks.add(task)
            task.add_done_callback(self._exchange_tasks.discard)

    def _apply_auto_refresh(self) -> None:
        params = self.store.params
        self.scheduler.configure(params.auto_refresh_enabled, params.auto_refresh_ms)

    # User actions

    def set_api_base(self, api_base: str):
        self.store.update(api_base=api_base.strip())

    def set_search(self, text: str):
        self.store.update(search=text)

    def clear_search(self):
        self.store.update(search="")

    def update_min_range(self, value: Any):
        self.store.update(min_diff_percent=parse_threshold(value))

    def update_max_range(self, value: Any):
        self.store.update(max_diff_percent=parse_threshold(value))

    def toggle_min_filter(self):
        self.store.update(use_min_filter=not self.store.params.use_min_filter)

    def toggle_max_filter(self):
        self.store.update(use_max_filter=not self.store.params.use_max_filter)

    def toggle_exchange(self, name: str):
        selected = set(self.store.params.selected_exchanges)
        if name in selected:
            selected.remove(name)
        else:
            selected.add(name)
        self.store.update(selected_exchanges=selected)

    def reset_exchange_filter(self):
        self.store.update(selected_exchanges=frozenset())

    def is_exchange_selected(self, name: str) -> bool:
        return name in self.store.params.selected_exchanges

    def change_sort(self, key: SortKey):
        params = next_sort(self.store.params, key)
        self.store.update(sort_key=params.sort_key, sort_dir=params.sort_dir)

    def set_auto_refresh(self, enabled: bool):
        self.store.update(auto_refresh_enabled=bool(enabled))

    def toggle_auto_refresh(self):
        self.set_auto_refresh(not self.store.params.auto_refresh_enabled)

    def update_auto_interval(self, value: Any):
        interval = parse_interval(value, self.config.refresh.min_interval_ms)
        self.store.update(auto_refresh_ms=interval)

    # Observable state

    @property
    def view(self) -> Tuple[ArbitrageOpportunity, ...]:
        return self.store.view

    @property
    def loading(self) -> bool:
        return self.store.loading

    @property
    def error(self) -> Optional[str]:
        return self.store.error

    @property
    def last_updated(self) -> Optional[datetime]:
        return self.store.last_updated
