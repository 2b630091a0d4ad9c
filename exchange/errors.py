"""
Exceptions for conditions that indicate a bug rather than a bad request.

Validation failures (insufficient funds, unknown ids, ...) are returned as
`exchange.results.Rejected` values. The exceptions here are raised only when an
internal invariant breaks and must never be swallowed by the core.
"""


class ExchangeError(Exception):
    """Base class for exchange invariant failures."""


class AuctionInvariantViolation(ExchangeError):
    """Aggregate IPO demand did not cover the offered shares, or an allocation failed."""


class AuctionAlreadyCleared(ExchangeError):
    """The company's IPO price is write-once and has already been set."""


class LedgerInvariantViolation(ExchangeError):
    """Negative cash, inconsistent lots or net-worth drift."""


class UnknownCompanyError(ExchangeError, KeyError):
    """A phase-level call referenced a company that is not registered."""
