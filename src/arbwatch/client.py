"""HTTP client for the arbitrage data service."""

import asyncio
from decimal import Decimal
from typing import Any, Dict, List, Optional
import aiohttp
from loguru import logger

from .core.types import ArbitrageOpportunity, parse_opportunities


class ServiceError(Exception):
    """Raised when the data service cannot be reached or returns unusable data."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


def format_decimal(value: float) -> str:
    """Render a threshold as a plain decimal (``1`` rather than ``1.0``, ``0.00001`` rather than ``1e-05``)."""
    if float(value).is_integer():
        return str(int(value))
    return format(Decimal(repr(float(value))), 'f')


class ArbitrageClient:
    """Read-only client for ``/api/arbitrage`` and ``/api/exchanges``.

    The base URL is passed per call because the user can change it at any
    time. One ``aiohttp.ClientSession`` is shared by all requests and created
    on first use.
    """

    def __init__(self, timeout_seconds: float = 10.0, session: Optional[aiohttp.ClientSession] = None):
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self):
        """Close the HTTP session if this client created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def fetch_opportunities(
        self, api_base: str, min_diff_percent: Optional[float] = None
    ) -> List[ArbitrageOpportunity]:
        """Fetch the current opportunity list.

        ``min_diff_percent`` is sent only when given; without it the service
        applies no threshold of its own.
        """
        params: Dict[str, str] = {}
        if min_diff_percent is not None:
            params['minDiffPercent'] = format_decimal(min_diff_percent)

        payload = await self._get_json(build_url(api_base, '/api/arbitrage'), params)
        try:
            return parse_opportunities(payload)
        except ValueError as e:
            raise ServiceError(f"Malformed opportunities payload: {e}") from e

    async def fetch_exchanges(self, api_base: str) -> List[str]:
        """Fetch the names of exchanges the service tracks."""
        payload = await self._get_json(build_url(api_base, '/api/exchanges'))
        if not isinstance(payload, list) or not all(isinstance(name, str) for name in payload):
            raise ServiceError("Malformed exchanges payload: expected a JSON array of names")
        return payload

    async def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        session = await self._get_session()
        logger.debug(f"GET {url} params={params or {}}")
        try:
            async with session.get(url, params=params) as response:
                if not 200 <= response.status < 300:
                    text = await response.text()
                    raise ServiceError(
                        f"HTTP {response.status} from {url}: {text[:200]}", status=response.status
                    )
                return await response.json(content_type=None)
        except ServiceError:
            raise
        except asyncio.TimeoutError as e:
            raise ServiceError(f"Request to {url} timed out") from e
        except aiohttp.ClientError as e:
            raise ServiceError(f"Request to {url} failed: {e}") from e
        except ValueError as e:
            raise ServiceError(f"Invalid JSON from {url}: {e}") from e


def build_url(api_base: str, path: str) -> str:
    return api_base.rstrip('/') + path
