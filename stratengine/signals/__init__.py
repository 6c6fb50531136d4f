# -*- coding: utf-8 -*-
"""
Strategy signal layer.

User-built condition-tree strategies and built-in parametrized strategies
behind one per-bar contract.
"""

from stratengine.signals.base import (
    BaseStrategy,
    PositionSnapshot,
    PositionState,
    Signal,
    gate_signal,
)
from stratengine.signals.builtin import (
    BollingerBandsStrategy,
    BollingerParams,
    BreakoutParams,
    BreakoutStrategy,
    MeanReversionParams,
    MeanReversionStrategy,
    MomentumParams,
    MomentumStrategy,
    MovingAverageCrossoverParams,
    MovingAverageCrossoverStrategy,
    SentimentParams,
    SentimentStrategy,
)
from stratengine.signals.custom import (
    CustomStrategy,
    StrategyValidation,
    execute_strategy,
    validate_strategy,
)
from stratengine.signals.registry import StrategyType, build_strategy, compute_signal

__all__ = [
    'BaseStrategy',
    'PositionSnapshot',
    'PositionState',
    'Signal',
    'gate_signal',
    'BollingerBandsStrategy',
    'BollingerParams',
    'BreakoutParams',
    'BreakoutStrategy',
    'MeanReversionParams',
    'MeanReversionStrategy',
    'MomentumParams',
    'MomentumStrategy',
    'MovingAverageCrossoverParams',
    'MovingAverageCrossoverStrategy',
    'SentimentParams',
    'SentimentStrategy',
    'CustomStrategy',
    'StrategyValidation',
    'execute_strategy',
    'validate_strategy',
    'StrategyType',
    'build_strategy',
    'compute_signal',
]
