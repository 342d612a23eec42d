from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from market_updater.models.market import MarketRecord
from market_updater.schemas.coinmarketcap import RawListing, RawQuote


def decimal_text(value: Optional[Decimal]) -> Optional[str]:
    # str(Decimal) keeps the provider digits; never round-trip through float
    if value is None:
        return None
    return str(value)


def normalize_listing(raw: RawListing, currency: str = "USD") -> MarketRecord:
    quote: Optional[RawQuote] = (raw.quote or {}).get(currency)

    if quote is None:
        return MarketRecord(id=raw.id, name=raw.name, symbol=raw.symbol, rank=raw.cmc_rank, currency=currency)

    return MarketRecord(
        id=raw.id,
        name=raw.name,
        symbol=raw.symbol,
        rank=raw.cmc_rank,
        currency=currency,
        price=decimal_text(quote.price),
        volume_24h=decimal_text(quote.volume_24h),
        market_cap=decimal_text(quote.market_cap),
        percent_change_1h=decimal_text(quote.percent_change_1h),
        percent_change_24h=decimal_text(quote.percent_change_24h),
        percent_change_7d=decimal_text(quote.percent_change_7d),
        last_updated=quote.last_updated,
    )


def normalize(raw: Iterable[RawListing], currency: str = "USD") -> list[MarketRecord]:
    """One record per listing, same order. Nothing is dropped."""
    return [normalize_listing(item, currency) for item in raw]
