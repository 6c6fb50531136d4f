# -*- coding: utf-8 -*-
"""
Strategy signal evaluation and backtesting engine.

Technical indicators, composable condition trees, built-in strategies, a
bar-by-bar backtest simulator with session risk controls, and live order
submission sharing the same settings and checks.
"""

from stratengine.config import Config, setup_logging
from stratengine.errors import (
    DataError,
    ExecutionError,
    ProviderError,
    StrategyEngineError,
    ValidationError,
)
from stratengine.indicators import IndicatorCache, IndicatorSpec, IndicatorType
from stratengine.conditions import build_condition, evaluate, validate_condition_node
from stratengine.signals import Signal, build_strategy, execute_strategy, validate_strategy
from stratengine.backtesting import BacktestConfig, SessionSettings, run_backtest, run_batch

__version__ = "0.1.0"

__all__ = [
    'Config',
    'setup_logging',
    'DataError',
    'ExecutionError',
    'ProviderError',
    'StrategyEngineError',
    'ValidationError',
    'IndicatorCache',
    'IndicatorSpec',
    'IndicatorType',
    'build_condition',
    'evaluate',
    'validate_condition_node',
    'Signal',
    'build_strategy',
    'execute_strategy',
    'validate_strategy',
    'BacktestConfig',
    'SessionSettings',
    'run_backtest',
    'run_batch',
]
