"""Client-side state core for the cross-exchange arbitrage dashboard."""

from .config import Config, get_config
from .dashboard import Dashboard

__version__ = "0.1.0"

__all__ = [
    'Config',
    'Dashboard',
    'get_config',
]
