"""Error types raised by the risk engine and its collaborators."""
from __future__ import annotations


class SAREngineError(Exception):
    """Base class for every error the engine raises."""


class InvalidCase(SAREngineError):
    """The case is missing a customer or carries malformed transactions."""


class InsufficientData(InvalidCase):
    """The case has no transactions to compute metrics from."""


class UnsupportedCurrency(SAREngineError):
    def __init__(self, currency):
        super().__init__(f"Unsupported currency: {currency!r}")
        self.currency = currency


class ConfigurationError(SAREngineError):
    """Raised while loading engine configuration at startup."""
