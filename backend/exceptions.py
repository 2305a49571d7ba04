"""Custom exceptions for the deal finder backend."""


class DealFinderError(Exception):
    """Base exception for deal finder errors."""

    pass


class ParseError(DealFinderError):
    """Raised when a deal block cannot be decoded into a DealRecord."""

    pass


class ConfigurationError(DealFinderError):
    """Raised when no provider or search credential is configured."""

    pass


class UnknownAgentTypeError(DealFinderError):
    """Raised when a scan names an agent type with no prompt."""

    pass
