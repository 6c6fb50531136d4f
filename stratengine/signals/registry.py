# -*- coding: utf-8 -*-
"""
Strategy registry.

Maps the closed set of strategy tags to their implementation and parameter
struct. Dispatch happens once, when the strategy is built.
"""

from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Type

from stratengine.data import NewsArticle
from stratengine.errors import ValidationError
from stratengine.indicators import IndicatorCache
from stratengine.signals.base import BaseStrategy, FLAT, PositionSnapshot, Signal
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
    params_from_dict,
)
from stratengine.signals.custom import CustomStrategy


class StrategyType(str, Enum):
    CUSTOM = "custom"
    MEAN_REVERSION = "meanReversion"
    MOVING_AVERAGE_CROSSOVER = "movingAverageCrossover"
    MOMENTUM = "momentum"
    BOLLINGER_BANDS = "bollingerBands"
    BREAKOUT = "breakout"
    SENTIMENT = "sentimentAnalysis"

    @classmethod
    def parse(cls, value) -> "StrategyType":
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError as e:
            valid = ", ".join(t.value for t in cls)
            raise ValidationError(f"Unknown strategy '{value}'. Valid strategies: {valid}") from e


STRATEGY_REGISTRY: Dict[StrategyType, Tuple[Type[BaseStrategy], Type]] = {
    StrategyType.MEAN_REVERSION: (MeanReversionStrategy, MeanReversionParams),
    StrategyType.MOVING_AVERAGE_CROSSOVER: (MovingAverageCrossoverStrategy, MovingAverageCrossoverParams),
    StrategyType.MOMENTUM: (MomentumStrategy, MomentumParams),
    StrategyType.BOLLINGER_BANDS: (BollingerBandsStrategy, BollingerParams),
    StrategyType.BREAKOUT: (BreakoutStrategy, BreakoutParams),
    StrategyType.SENTIMENT: (SentimentStrategy, SentimentParams),
}


def build_strategy(strategy: Any, params: Optional[Dict[str, Any]] = None,
                   buy_conditions: Any = None, sell_conditions: Any = None,
                   articles: Sequence[NewsArticle] = ()) -> BaseStrategy:
    """
    Build a strategy instance from its tag.

    Parameters
    ----------
    strategy : StrategyType or str
        Strategy tag.
    params : dict or params dataclass, optional
        Built-in strategy parameters. Defaults apply for missing keys.
    buy_conditions, sell_conditions : optional
        Condition trees, required for ``custom``.
    articles : sequence of NewsArticle
        News history for ``sentimentAnalysis``.

    Raises
    ------
    ValidationError
        Unknown tag, bad parameters or malformed condition trees.
    """
    strategy_type = StrategyType.parse(strategy)
    if strategy_type == StrategyType.CUSTOM:
        if params:
            raise ValidationError("Custom strategies take buy/sell conditions, not parameters")
        return CustomStrategy(buy_conditions, sell_conditions)

    if buy_conditions is not None or sell_conditions is not None:
        raise ValidationError(f"Strategy '{strategy_type.value}' does not accept condition trees")
    strategy_cls, params_cls = STRATEGY_REGISTRY[strategy_type]
    bound = params_from_dict(params_cls, params)
    if strategy_type == StrategyType.SENTIMENT:
        return strategy_cls(bound, articles)
    return strategy_cls(bound)


def compute_signal(strategy: BaseStrategy, cache: IndicatorCache, index: int,
                   position: PositionSnapshot = FLAT) -> Signal:
    """Signal of ``strategy`` at bar ``index``; functional form of ``BaseStrategy.compute_signal``."""
    return strategy.compute_signal(cache, index, position)
