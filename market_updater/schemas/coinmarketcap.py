"""Pydantic models for the CoinMarketCap listings payload."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, StrictInt, TypeAdapter


class EnvelopeStatus(BaseModel):
    """The `status` block every CoinMarketCap response carries."""

    model_config = ConfigDict(extra="ignore")

    error_code: StrictInt
    error_message: Optional[str] = None
    timestamp: Optional[str] = None
    elapsed: Optional[int] = None
    credit_count: Optional[int] = None


class FetchEnvelope(BaseModel):
    """
    First decode phase: only the status block is typed.

    `data` stays untyped so the status can be checked before the payload is trusted.
    """

    model_config = ConfigDict(extra="ignore")

    status: EnvelopeStatus
    data: Any = None


class RawQuote(BaseModel):
    """One currency entry of `quote`. Numbers arrive as Decimal (see fetcher)."""

    model_config = ConfigDict(extra="ignore")

    price: Optional[Decimal] = None
    volume_24h: Optional[Decimal] = None
    market_cap: Optional[Decimal] = None
    percent_change_1h: Optional[Decimal] = None
    percent_change_24h: Optional[Decimal] = None
    percent_change_7d: Optional[Decimal] = None
    last_updated: Optional[str] = None


class RawListing(BaseModel):
    """Second decode phase: the fixed shape of one `data` entry."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    symbol: str
    cmc_rank: int
    quote: Optional[Dict[str, RawQuote]] = None


RAW_LISTINGS = TypeAdapter(List[RawListing])
