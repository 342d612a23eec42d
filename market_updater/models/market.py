"""Normalized market records produced once per tick."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class MarketRecord:
    """
    One coin listing in a fixed shape.

    Monetary and percent fields are exact decimal text (e.g. "65000.12345678")
    and None when the provider did not send them. None is not zero.
    """

    id: int
    name: str
    symbol: str
    rank: int
    currency: str = "USD"
    price: Optional[str] = None
    volume_24h: Optional[str] = None
    market_cap: Optional[str] = None
    percent_change_1h: Optional[str] = None
    percent_change_24h: Optional[str] = None
    percent_change_7d: Optional[str] = None
    last_updated: Optional[str] = None
