# -*- coding: utf-8 -*-
"""
Exception hierarchy for the strategy engine.

Structural and configuration problems raise immediately. Risk rejections are
returned as values (see ``RiskCheckResult``) so batch runs can continue.
"""


class StrategyEngineError(Exception):
    """Base class for every error raised by stratengine."""


class ValidationError(StrategyEngineError, ValueError):
    """Malformed condition tree, strategy parameters or session settings."""

    def __init__(self, message: str, errors=None):
        super().__init__(message)
        self.errors = list(errors) if errors else [message]


class DataError(StrategyEngineError, ValueError):
    """Price history is empty, unordered or too short for an indicator."""


class ExecutionError(StrategyEngineError, RuntimeError):
    """An order could not be executed (simulated or live)."""


class ProviderError(StrategyEngineError, RuntimeError):
    """External market-data, news or broker failure."""
