# -*- coding: utf-8 -*-
"""
Base strategy interface and signal types.

Every strategy, user-built or built-in, implements the same per-bar contract:
given precomputed indicators, a bar index and the current position it returns
BUY, SELL or HOLD. Position gating is applied here so individual strategies
only express intent.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from stratengine.indicators import IndicatorCache, IndicatorSpec


class Signal(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class PositionState(str, Enum):
    FLAT = "FLAT"
    LONG = "LONG"


@dataclass(frozen=True)
class PositionSnapshot:
    """What a strategy may know about the open position."""

    state: PositionState = PositionState.FLAT
    entry_price: Optional[float] = None
    bars_held: int = 0
    entry_time: Optional[datetime] = None

    @property
    def is_long(self) -> bool:
        return self.state == PositionState.LONG


FLAT = PositionSnapshot()


def gate_signal(signal: Signal, position: PositionSnapshot) -> Signal:
    """BUY is actionable only when FLAT, SELL only when LONG."""
    if signal == Signal.BUY and position.state == PositionState.FLAT:
        return Signal.BUY
    if signal == Signal.SELL and position.state == PositionState.LONG:
        return Signal.SELL
    return Signal.HOLD


class BaseStrategy(ABC):
    """
    Abstract base class for all strategies.

    Parameters are bound at construction and validated once. Subclasses list
    the indicators they read in ``indicator_specs`` so the engine can find the
    warm-up length, then implement ``evaluate``.
    """

    def __init__(self, name: str):
        """
        Parameters
        ----------
        name : str
            Display name used in trade logs.
        """
        self.name = name

    @abstractmethod
    def indicator_specs(self) -> List[IndicatorSpec]:
        """Indicators the strategy reads."""

    @abstractmethod
    def evaluate(self, cache: IndicatorCache, index: int,
                 position: PositionSnapshot) -> Signal:
        """
        Raw per-bar decision, before position gating.

        Only called once ``is_ready(index)`` holds.
        """

    def extra_warmup(self) -> int:
        """Bars needed beyond the indicator lookbacks (e.g. a previous value)."""
        return 0

    def warmup(self) -> int:
        """Index of the first bar a signal may be produced for."""
        lookbacks = [spec.lookback() for spec in self.indicator_specs()]
        return (max(lookbacks) if lookbacks else 0) + self.extra_warmup()

    def is_ready(self, index: int) -> bool:
        return index >= self.warmup()

    def compute_signal(self, cache: IndicatorCache, index: int,
                       position: PositionSnapshot = FLAT) -> Signal:
        """
        Signal for bar ``index``.

        Returns HOLD during warm-up; otherwise the gated result of ``evaluate``.
        """
        if not self.is_ready(index):
            return Signal.HOLD
        return gate_signal(self.evaluate(cache, index, position), position)

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name, 'warmup': self.warmup()}
