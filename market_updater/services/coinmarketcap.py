"""Helpers for interacting with the CoinMarketCap Pro listings API."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx
from pydantic import ValidationError

from market_updater.config.settings import CMC_LISTINGS_URL, CMC_MAX_LIMIT, Settings
from market_updater.errors import (
    DecodeError,
    FetchTransportError,
    MalformedEnvelopeError,
    ProviderError,
)
from market_updater.schemas.coinmarketcap import RAW_LISTINGS, FetchEnvelope, RawListing

logger = logging.getLogger("market_updater.coinmarketcap")

API_KEY_HEADER = "X-CMC_PRO_API_KEY"


@dataclass(frozen=True)
class CmcConfig:
    api_key: str
    listings_url: str = CMC_LISTINGS_URL
    convert: str = "USD"
    timeout_s: float = 10.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "CmcConfig":
        return cls(
            api_key=settings.CMC_API_KEY,
            listings_url=settings.CMC_LISTINGS_URL,
            convert=settings.CMC_CONVERT,
            timeout_s=settings.CMC_TIMEOUT_SECONDS,
        )


def _summarize(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors()[:3]:
        loc = ".".join(str(x) for x in err.get("loc", ()))
        parts.append(f"{loc or '<root>'}: {err.get('msg')}")
    return "; ".join(parts)


def decode_envelope(body: bytes | str) -> list[RawListing]:
    """
    Decode a listings response body in two phases.

    1. the envelope: a JSON object whose `status` block is typed and whose
       `data` is left raw, so the provider status is checked first;
    2. `data` strictly into `list[RawListing]`.

    Floats are parsed as Decimal so prices keep their exact provider text.
    """
    try:
        payload = json.loads(body, parse_float=Decimal)
    except ValueError as exc:
        raise DecodeError(f"response body is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise DecodeError(f"expected a JSON object, got {type(payload).__name__}")

    try:
        envelope = FetchEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise MalformedEnvelopeError(f"failed to parse status object: {_summarize(exc)}") from exc

    status = envelope.status
    if status.error_code != 0:
        message = status.error_message or f"provider returned error_code={status.error_code}"
        raise ProviderError(message, error_code=status.error_code)

    if "data" not in payload:
        raise MalformedEnvelopeError("failed to parse data object: 'data' is missing")

    try:
        return RAW_LISTINGS.validate_python(envelope.data)
    except ValidationError as exc:
        raise DecodeError(f"failed to decode listings: {_summarize(exc)}") from exc


async def fetch_listings(
    config: CmcConfig,
    limit: int = 10,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[RawListing]:
    """
    Issue one GET against the listings endpoint and return the decoded records.

    The HTTP status code is not inspected: CoinMarketCap reports failures
    (bad key, exhausted credits, ...) through the envelope status block.
    """
    if limit < 1 or limit > CMC_MAX_LIMIT:
        raise ValueError(f"limit must be within 1..{CMC_MAX_LIMIT}, got {limit}")

    params = {"limit": limit, "convert": config.convert}
    headers = {API_KEY_HEADER: config.api_key, "Accept": "application/json"}

    try:
        async with httpx.AsyncClient(timeout=config.timeout_s, transport=transport) as client:
            response = await client.get(config.listings_url, params=params, headers=headers)
    except httpx.HTTPError as exc:
        raise FetchTransportError(f"Unable to reach CoinMarketCap: {exc!r}") from exc

    listings = decode_envelope(response.content)
    logger.debug("fetched %d listings | http_status=%s", len(listings), response.status_code)
    return listings
