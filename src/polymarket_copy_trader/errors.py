from __future__ import annotations


class CopyTradingError(Exception):
    pass


class ConfigurationError(CopyTradingError):
    """Invalid session options or an order plan that cannot be satisfied."""


class ExecutionError(CopyTradingError):
    """An order could not be handed to the exchange."""
