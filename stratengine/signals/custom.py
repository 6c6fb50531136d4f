# -*- coding: utf-8 -*-
"""
User-built strategies from buy/sell condition trees.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

import pandas as pd

from stratengine.conditions import (
    Comparison,
    ConditionNode,
    build_conditions,
    evaluate,
    validate_condition_node,
)
from stratengine.data import PriceBar, bars_to_frame, prepare_price_frame
from stratengine.errors import ValidationError
from stratengine.indicators import IndicatorCache, IndicatorSpec
from stratengine.signals.base import (
    BaseStrategy,
    PositionSnapshot,
    PositionState,
    Signal,
    gate_signal,
)


logger = logging.getLogger(__name__)

ConditionInput = Union[Dict[str, Any], ConditionNode, Sequence]

CROSSING = {
    Comparison.CROSSES_ABOVE, Comparison.CROSSES_BELOW,
    Comparison.CROSSES_ABOVE_SIGNAL, Comparison.CROSSES_BELOW_SIGNAL,
}


class CustomStrategy(BaseStrategy):
    """
    Strategy driven by a buy expression and a sell expression.

    Lists of nodes are combined with OR. When both expressions hold on the
    same bar, BUY wins and is then subject to position gating.
    """

    def __init__(self, buy_conditions: ConditionInput, sell_conditions: ConditionInput,
                 name: str = "CustomStrategy"):
        super().__init__(name)
        if not buy_conditions:
            raise ValidationError("Buy conditions are required")
        if not sell_conditions:
            raise ValidationError("Sell conditions are required")
        self.buy = build_conditions(buy_conditions)
        self.sell = build_conditions(sell_conditions)
        self._specs = list(dict.fromkeys(self.buy.specs() + self.sell.specs()))
        self._crossing = any(
            leaf.comparison in CROSSING for leaf in self.buy.leaves() + self.sell.leaves()
        )

    def indicator_specs(self) -> List[IndicatorSpec]:
        return self._specs

    def extra_warmup(self) -> int:
        return 1 if self._crossing else 0

    def defined_at(self, cache: IndicatorCache, index: int) -> bool:
        """Whether every referenced indicator has a value at ``index`` (and the prior bar for crossings)."""
        first = max(index - 1, 0) if self._crossing else index
        for spec in self._specs:
            window = cache.get(spec).iloc[first:index + 1]
            if window.isna().to_numpy().any():
                return False
        return True

    def evaluate(self, cache, index, position):
        if not self.defined_at(cache, index):
            return Signal.HOLD
        buy = evaluate(self.buy, cache, index)
        sell = evaluate(self.sell, cache, index)
        if buy and position.state == PositionState.FLAT:
            return Signal.BUY
        if sell and position.state == PositionState.LONG:
            return Signal.SELL
        return Signal.HOLD


def _to_frame(prices) -> pd.DataFrame:
    if isinstance(prices, pd.DataFrame):
        return prepare_price_frame(prices)
    bars = list(prices)
    if bars and not isinstance(bars[0], PriceBar):
        raise ValidationError("Prices must be a DataFrame or a sequence of PriceBar")
    return bars_to_frame(bars)


def execute_strategy(buy_conditions: ConditionInput, sell_conditions: ConditionInput,
                     prices, position: Optional[PositionSnapshot] = None) -> Signal:
    """
    Signal for the last bar of ``prices``.

    Parameters
    ----------
    buy_conditions, sell_conditions : dict, ConditionNode or list
        Expressions in JSON or built form.
    prices : pd.DataFrame or sequence of PriceBar
        History ending at the bar to evaluate.
    position : PositionSnapshot or None
        When given, the signal is gated by position state. When omitted the
        raw signal is returned (BUY has priority over SELL).

    Returns
    -------
    Signal
        HOLD while the indicators are still warming up.
    """
    strategy = CustomStrategy(buy_conditions, sell_conditions)
    frame = _to_frame(prices)
    cache = IndicatorCache(frame)
    index = len(frame) - 1
    if not strategy.is_ready(index) or not strategy.defined_at(cache, index):
        return Signal.HOLD
    if position is not None:
        return gate_signal(strategy.evaluate(cache, index, position), position)

    if evaluate(strategy.buy, cache, index):
        return Signal.BUY
    if evaluate(strategy.sell, cache, index):
        return Signal.SELL
    return Signal.HOLD


@dataclass
class StrategyValidation:
    """Outcome of ``validate_strategy``."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {'valid': self.valid, 'errors': list(self.errors), 'warnings': list(self.warnings)}


def _as_list(nodes) -> list:
    return list(nodes) if isinstance(nodes, (list, tuple)) else [nodes]


def _extract_indicators(node: Any) -> List[Dict[str, Any]]:
    if not isinstance(node, dict):
        return []
    if node.get('type') == 'indicator' and isinstance(node.get('indicator'), dict):
        ind = node['indicator']
        params = ind.get('params') if isinstance(ind.get('params'), dict) else {}
        return [{'type': ind.get('type'), 'condition': ind.get('condition'), 'params': params}]
    out = []
    for child in node.get('children') or []:
        out.extend(_extract_indicators(child))
    return out


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def validate_strategy(buy_conditions: Any, sell_conditions: Any) -> StrategyValidation:
    """
    Structural and heuristic validation of a custom strategy.

    Errors make the strategy unusable: missing or malformed trees, sides
    without any indicator, identical buy and sell trees, out-of-contract
    parameters. Warnings flag suspicious but runnable setups.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not buy_conditions:
        errors.append('Buy conditions are required')
    if not sell_conditions:
        errors.append('Sell conditions are required')
    if errors:
        return StrategyValidation(False, errors, warnings)

    buy_nodes = _as_list(buy_conditions)
    sell_nodes = _as_list(sell_conditions)

    for label, nodes in (('Buy', buy_nodes), ('Sell', sell_nodes)):
        for i, node in enumerate(nodes):
            result = validate_condition_node(node)
            if not result.valid:
                errors.append(f"{label} condition {i + 1}: {result.error}")

    buy_indicators = [ind for node in buy_nodes for ind in _extract_indicators(node)]
    sell_indicators = [ind for node in sell_nodes for ind in _extract_indicators(node)]

    if not buy_indicators:
        errors.append('Buy conditions must contain at least one indicator')
    if not sell_indicators:
        errors.append('Sell conditions must contain at least one indicator')

    buy_rsi = next((ind for ind in buy_indicators if ind['type'] == 'rsi'), None)
    sell_rsi = next((ind for ind in sell_indicators if ind['type'] == 'rsi'), None)
    if buy_rsi and sell_rsi and buy_rsi['condition'] == 'overbought' and sell_rsi['condition'] == 'oversold':
        warnings.append(
            'Buying when RSI is overbought and selling when oversold may be counterintuitive. '
            'Consider reversing these conditions.'
        )

    try:
        identical = json.dumps(buy_nodes, sort_keys=True) == json.dumps(sell_nodes, sort_keys=True)
    except TypeError:
        identical = False
    if identical:
        errors.append('Buy and sell conditions cannot be identical. The strategy would never generate signals.')

    for ind in buy_indicators + sell_indicators:
        params = ind['params']
        if ind['type'] == 'rsi':
            period = _number(params.get('period'))
            if period is not None and (period < 2 or period > 100):
                warnings.append(
                    f"RSI period of {params.get('period')} is outside the typical range (2-100). Most traders use 14."
                )
        elif ind['type'] in ('sma', 'ema'):
            period = _number(params.get('period'))
            if period is not None and period < 1:
                errors.append(f"{ind['type'].upper()} period must be at least 1")
            if period is not None and period > 500:
                warnings.append(
                    f"{ind['type'].upper()} period of {params.get('period')} is very large "
                    f"and may be slow to respond to price changes."
                )
        elif ind['type'] == 'bollingerBands':
            multiplier = _number(params.get('multiplier', params.get('stdDev')))
            if multiplier is not None and (multiplier < 0.1 or multiplier > 5):
                warnings.append(
                    f"Bollinger Bands multiplier of {multiplier:g} is outside the typical range (0.1-5). "
                    f"Most traders use 2."
                )
        elif ind['type'] == 'macd':
            fast = _number(params.get('fastPeriod'))
            slow = _number(params.get('slowPeriod'))
            if fast is not None and slow is not None and fast >= slow:
                errors.append('MACD fast period must be less than slow period')

    buy_bb = any(ind['type'] == 'bollingerBands' and ind['condition'] == 'priceAboveUpper'
                 for ind in buy_indicators)
    sell_bb = any(ind['type'] == 'bollingerBands' and ind['condition'] == 'priceBelowLower'
                  for ind in sell_indicators)
    if buy_bb and sell_bb:
        warnings.append(
            'Buying when price is above upper Bollinger Band and selling when below lower band '
            'may be counterintuitive. Consider if this matches your trading strategy.'
        )

    if len(buy_indicators) == 1 and len(sell_indicators) == 1:
        warnings.append(
            'Your strategy uses only one indicator for both buy and sell conditions. '
            'Consider adding more conditions for better signal reliability.'
        )

    # Range errors above can repeat what the node check already reported
    errors = list(dict.fromkeys(errors))
    return StrategyValidation(not errors, errors, warnings)
