"""
Price Alert Engine - Exceptions

Insufficient data is not an error: statistics return None for it.
"""


class PriceAlertError(Exception):
    """Base class for all price alert errors."""


class InvalidParameterError(PriceAlertError, ValueError):
    """A threshold, direction, symbol, price or period was rejected."""


class AlertLimitError(PriceAlertError):
    """The registry already holds the configured maximum of active alerts."""


class StoreUnavailableError(PriceAlertError):
    """The sample store could not be read or written."""


class DataUnavailableError(PriceAlertError):
    """No price history exists for the requested symbol."""

    def __init__(self, symbol: str):
        super().__init__(f"No price history available for {symbol}")
        self.symbol = symbol
