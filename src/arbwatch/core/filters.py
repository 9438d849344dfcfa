"""Filtering and sorting of opportunity records into the displayed view."""

import math
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from ..utils import is_finite_number
from .types import ArbitrageOpportunity


class SortKey(Enum):
    """Columns the view can be ordered by."""
    NET_DIFF = "netDiff"
    DIFF = "diff"
    MIN = "min"
    MAX = "max"
    PROFIT_USD = "profitUsd"
    PROFIT_PERCENT = "profitPercent"
    TRADE_AMOUNT_USD = "tradeAmountUsd"


class SortDir(Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True)
class FilterParams:
    """Inputs of the derivation besides the records themselves."""
    search: str = ""
    min_diff_percent: float = 0.5
    use_min_filter: bool = True
    max_diff_percent: float = 5.0
    use_max_filter: bool = False
    selected_exchanges: FrozenSet[str] = field(default_factory=frozenset)
    sort_key: SortKey = SortKey.NET_DIFF
    sort_dir: SortDir = SortDir.DESC

    @property
    def min_filter_active(self) -> bool:
        """The lower threshold participates only when enabled and finite."""
        return self.use_min_filter and is_finite_number(self.min_diff_percent)

    @property
    def max_filter_active(self) -> bool:
        return self.use_max_filter and is_finite_number(self.max_diff_percent)


_NO_VALUE = float("-inf")

_SORT_VALUES: Dict[SortKey, Callable[[ArbitrageOpportunity], Optional[float]]] = {
    SortKey.NET_DIFF: lambda item: item.net_diff,
    SortKey.DIFF: lambda item: item.diff,
    SortKey.MIN: lambda item: item.min,
    SortKey.MAX: lambda item: item.max,
    SortKey.PROFIT_USD: lambda item: item.real_profit_usd,
    SortKey.PROFIT_PERCENT: lambda item: item.profit_percent,
    SortKey.TRADE_AMOUNT_USD: lambda item: item.trade_amount_usd,
}


def sort_value(item: ArbitrageOpportunity, key: SortKey) -> float:
    """Value used for ordering; missing values rank lowest."""
    value = _SORT_VALUES[key](item)
    return _NO_VALUE if value is None else value


def derive_view(records: Iterable[ArbitrageOpportunity], params: FilterParams) -> List[ArbitrageOpportunity]:
    """Filter and sort records for display.

    Filters are ANDed: symbol substring (case-insensitive), lower and upper
    ``netDiff`` thresholds and the exchange selection. The sort is stable, so
    records with equal sort values keep their input order in both directions.
    Always returns a new list.
    """
    query = params.search.strip().upper()
    min_active = params.min_filter_active
    max_active = params.max_filter_active
    selected = params.selected_exchanges

    def keep(item: ArbitrageOpportunity) -> bool:
        if query and query not in item.symbol.upper():
            return False
        if min_active and not item.net_diff >= params.min_diff_percent:
            return False
        if max_active and not item.net_diff <= params.max_diff_percent:
            return False
        if selected and not any(item.quotes_on(name) for name in selected):
            return False
        return True

    filtered = [item for item in records if keep(item)]
    # sorted() stays stable with reverse=True
    return sorted(
        filtered,
        key=lambda item: sort_value(item, params.sort_key),
        reverse=params.sort_dir is SortDir.DESC,
    )


def next_sort(params: FilterParams, key: SortKey) -> FilterParams:
    """Selecting the active column flips direction; a new column starts descending (ascending for min)."""
    if params.sort_key is key:
        direction = SortDir.ASC if params.sort_dir is SortDir.DESC else SortDir.DESC
    else:
        direction = SortDir.ASC if key is SortKey.MIN else SortDir.DESC
    return replace(params, sort_key=key, sort_dir=direction)


def _to_float(value: Any) -> float:
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return 0.0
    return float(value)


def parse_threshold(value: Any) -> float:
    """Sanitize a user-entered threshold; anything that is not a number becomes 0."""
    try:
        parsed = _to_float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(parsed):
        return 0.0
    return parsed


def parse_interval(value: Any, floor_ms: int) -> int:
    """Sanitize a user-entered refresh interval, never going below floor_ms."""
    try:
        parsed = _to_float(value)
    except (TypeError, ValueError):
        return floor_ms
    if not math.isfinite(parsed):
        return floor_ms
    return int(max(floor_ms, parsed))
