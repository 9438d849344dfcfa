"""
Opportunity records as served by the arbitrage data service.
Field names follow the service's camelCase JSON; Python code uses the
snake_case attribute names.
"""

import math
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class TransferStatus(Enum):
    """Result of the deposit/withdrawal availability check."""
    OK = "ok"
    UNKNOWN = "unknown"
    BLOCKED = "blocked"
    UNAVAILABLE = "unavailable"


class ValidationStatus(Enum):
    """Whether the service managed to validate an opportunity against order books."""
    VALIDATED = "validated"
    REJECTED = "rejected"


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, allow_inf_nan=False)


class OpportunityLeg(_Record):
    """One side (buy or sell) of an arbitrage trade."""
    exchange: str
    price: float
    effective_price: float = Field(alias="effectivePrice")
    fee_percent_applied: float = Field(alias="feePercentApplied")


class LegValidation(_Record):
    """Executable-price check for one leg."""
    best_price: Optional[float] = Field(default=None, alias="bestPrice")
    executable_price: Optional[float] = Field(default=None, alias="executablePrice")
    slippage_percent: Optional[float] = Field(default=None, alias="slippagePercent")
    volume_24h_quote: Optional[float] = Field(default=None, alias="volume24hQuote")


class TransferValidation(_Record):
    status: TransferStatus
    network: Optional[str] = None
    reason: Optional[str] = None


class OpportunityValidation(_Record):
    status: ValidationStatus
    reasons: List[str] = Field(default_factory=list)
    buy: Optional[LegValidation] = None
    sell: Optional[LegValidation] = None
    transfer: Optional[TransferValidation] = None


class ArbitrageOpportunity(_Record):
    """Snapshot of one symbol's cross-exchange arbitrage state at fetch time."""
    symbol: str
    min: float
    max: float
    diff: float
    net_diff: float = Field(alias="netDiff")
    buy: OpportunityLeg
    sell: OpportunityLeg
    exchanges: Dict[str, float] = Field(default_factory=dict)

    # Sizing and validation, present only when the service ran its checks
    trade_amount_usd: Optional[float] = Field(default=None, alias="tradeAmountUsd")
    real_profit_usd: Optional[float] = Field(default=None, alias="realProfitUsd")
    validation: Optional[OpportunityValidation] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArbitrageOpportunity":
        """Build a record from one element of the service's JSON array."""
        return cls.model_validate(data)

    @property
    def profit_percent(self) -> Optional[float]:
        """Realized profit as a percentage of the trade amount, if both are known."""
        pnl = self.real_profit_usd
        size = self.trade_amount_usd
        if pnl is None or size is None:
            return None
        if not math.isfinite(pnl) or not math.isfinite(size) or size <= 0:
            return None
        return pnl / size * 100

    def exchange_prices(self) -> List[Tuple[str, float]]:
        """List (exchange, price) pairs in the order the service sent them."""
        return list(self.exchanges.items())

    def quotes_on(self, exchange: str) -> bool:
        return exchange in self.exchanges


def parse_opportunities(payload: Any) -> List[ArbitrageOpportunity]:
    """Parse the full ``/api/arbitrage`` response body.

    Raises ``ValueError`` when the body is not a JSON array and pydantic's
    ``ValidationError`` (a ``ValueError`` subclass) when a record is malformed.
    """
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON array of opportunities, got {type(payload).__name__}")
    return [ArbitrageOpportunity.from_dict(item) for item in payload]
