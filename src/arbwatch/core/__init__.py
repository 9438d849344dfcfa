"""Core state logic: records, filtering, the state store and the refresh scheduler."""

from .types import ArbitrageOpportunity, OpportunityLeg, parse_opportunities
from .filters import FilterParams, SortKey, SortDir, derive_view, parse_threshold, parse_interval
from .state import DashboardParams, DashboardStore
from .scheduler import RefreshScheduler

__all__ = [
    'ArbitrageOpportunity',
    'OpportunityLeg',
    'parse_opportunities',
    'FilterParams',
    'SortKey',
    'SortDir',
    'derive_view',
    'parse_threshold',
    'parse_interval',
    'DashboardParams',
    'DashboardStore',
    'RefreshScheduler'
]
