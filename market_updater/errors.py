"""Exceptions raised by the market updater."""

from __future__ import annotations

from typing import Optional


class MarketUpdaterError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(MarketUpdaterError):
    """Raised at startup when configuration or the store client is unusable."""


class FetchError(MarketUpdaterError):
    """Raised when a listings fetch cannot produce records. Recoverable per tick."""


class DecodeError(FetchError):
    """The body (or its data payload) could not be decoded into the expected shape."""


class MalformedEnvelopeError(FetchError):
    """The body decoded, but the status or data block is missing or malformed."""


class ProviderError(FetchError):
    """The provider reported a non-zero error code in the status block."""

    def __init__(self, message: str, error_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class FetchTransportError(FetchError):
    """The request never produced a response (DNS, connect, read timeout...)."""


class SinkError(MarketUpdaterError):
    """A document store write failed."""
