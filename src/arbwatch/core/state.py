"""Single owner of the dashboard's parameters, raw records and observable state."""

from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple
from loguru import logger

from ..config import Config, DEFAULT_API_BASE
from .filters import FilterParams, derive_view
from .types import ArbitrageOpportunity


@dataclass(frozen=True)
class DashboardParams(FilterParams):
    """Filter parameters plus the settings that drive fetching."""
    api_base: str = DEFAULT_API_BASE
    auto_refresh_enabled: bool = False
    auto_refresh_ms: int = 15000

    @classmethod
    def from_config(cls, config: Config) -> "DashboardParams":
        return cls(
            search=config.filters.search,
            min_diff_percent=config.filters.min_diff_percent,
            use_min_filter=config.filters.use_min_filter,
            max_diff_percent=config.filters.max_diff_percent,
            use_max_filter=config.filters.use_max_filter,
            api_base=config.api.base_url,
            auto_refresh_enabled=config.refresh.enabled,
            auto_refresh_ms=config.refresh.interval_ms,
        )


PARAM_FIELDS: FrozenSet[str] = frozenset(f.name for f in fields(DashboardParams))
STATE_FIELDS: FrozenSet[str] = frozenset({
    'opportunities', 'loading', 'error', 'last_updated', 'available_exchanges',
})
# Changes to these invalidate the derived view
VIEW_INPUTS: FrozenSet[str] = PARAM_FIELDS | {'opportunities'}

Listener = Callable[["DashboardStore", FrozenSet[str]], None]


class DashboardStore:
    """Holds everything the rendering layer observes.

    All writes go through ``update()``, which applies a batch of changes and
    then notifies every subscriber once with the names of the fields that
    actually changed. The derived view is computed on read and cached until
    one of its inputs changes, so any number of updates between two reads
    costs one recomputation.
    """

    def __init__(self, params: Optional[DashboardParams] = None):
        self.params = params or DashboardParams()
        self.opportunities: Tuple[ArbitrageOpportunity, ...] = ()
        self.loading = False
        self.error: Optional[str] = None
        self.last_updated: Optional[datetime] = None
        self.available_exchanges: Tuple[str, ...] = ()

        self._listeners: List[Listener] = []
        self._version = 0
        self._view_version = -1
        self._view: Tuple[ArbitrageOpportunity, ...] = ()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def update(self, **changes) -> FrozenSet[str]:
        """Apply changes atomically and notify listeners once."""
        unknown = set(changes) - PARAM_FIELDS - STATE_FIELDS
        if unknown:
            raise ValueError(f"Unknown dashboard fields: {sorted(unknown)}")

        for name in ('opportunities', 'available_exchanges'):
            if name in changes:
                changes[name] = tuple(changes[name])
        if 'selected_exchanges' in changes:
            changes['selected_exchanges'] = frozenset(changes['selected_exchanges'])

        param_changes: Dict[str, object] = {}
        changed = set()
        for name, value in changes.items():
            if name in PARAM_FIELDS:
                if getattr(self.params, name) != value:
                    param_changes[name] = value
                    changed.add(name)
            elif getattr(self, name) != value:
                changed.add(name)

        if not changed:
            return frozenset()

        if param_changes:
            self.params = replace(self.params, **param_changes)
        for name in changed - PARAM_FIELDS:
            setattr(self, name, changes[name])

        if changed & VIEW_INPUTS:
            self._version += 1

        changed = frozenset(changed)
        self._notify(changed)
        return changed

    def _notify(self, changed: FrozenSet[str]) -> None:
        for listener in list(self._listeners):
            try:
                listener(self, changed)
            except Exception as e:
                logger.error(f"Error in dashboard listener: {e}")

    @property
    def view(self) -> Tuple[ArbitrageOpportunity, ...]:
        """Filtered and sorted records for the current parameters."""
        if self._view_version != self._version:
            self._view = tuple(derive_view(self.opportunities, self.params))
            self._view_version = self._version
        return self._view

    def snapshot(self) -> Dict[str, object]:
        """Observable state for the rendering layer."""
        return {
            'view': self.view,
            'loading': self.loading,
            'error': self.error,
            'last_updated': self.last_updated,
            'available_exchanges': self.available_exchanges,
            'total': len(self.opportunities),
        }
