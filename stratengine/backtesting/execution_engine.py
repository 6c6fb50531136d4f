# -*- coding: utf-8 -*-
"""
Execution engine for simulated order fills.

Applies the session slippage model, commission, order-type trigger rules and
volume-limited partial fills.
"""

import math
from dataclasses import dataclass
from typing import Optional

from stratengine.backtesting.config import OrderType, SessionSettings, SlippageModel, TimeInForce


# Fraction of bar volume assumed available to a single order
VOLUME_PARTICIPATION = 0.8


@dataclass(frozen=True)
class SimulatedOrder:
    """Order handed to the simulator."""

    symbol: str
    side: str  # 'BUY' or 'SELL'
    quantity: int
    price: float  # Reference market price
    order_type: str = "market"
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    volume: Optional[float] = None  # Bar volume for partial-fill simulation


@dataclass(frozen=True)
class ExecutionResult:
    executed: bool
    price: float
    quantity: int
    commission: float = 0.0
    slippage: float = 0.0  # Dollar cost of slippage
    reason: Optional[str] = None


class ExecutionEngine:
    """Handles trade execution with commission and slippage."""

    def __init__(self, settings: SessionSettings):
        """
        Parameters
        ----------
        settings : SessionSettings
            Source of slippage model/value, commission rate and fill policy.
        """
        self.settings = settings

    @property
    def all_or_none(self) -> bool:
        return (not self.settings.allow_partial_fills
                or self.settings.time_in_force == TimeInForce.FOK.value)

    def apply_slippage(self, price: float, quantity: int, side: str) -> float:
        """
        Price after slippage.

        ``fixed`` moves the price by ``slippage_value`` percent against the
        trader. ``proportional`` scales that percent by order size,
        ``1 + quantity / 1000 * 0.1``, capped at 2x.
        """
        model = SlippageModel(self.settings.slippage_model)
        if model == SlippageModel.NONE:
            return price

        pct = self.settings.slippage_value / 100.0
        if model == SlippageModel.PROPORTIONAL:
            pct *= min(1 + (quantity / 1000.0) * 0.1, 2.0)
        return price * (1 + pct) if side == 'BUY' else price * (1 - pct)

    def calculate_commission(self, price: float, quantity: int) -> float:
        if self.settings.commission_rate == 0:
            return 0.0
        return price * quantity * self.settings.commission_rate / 100.0

    def fill_quantity(self, quantity: int, volume: Optional[float]) -> int:
        """Quantity filled given bar volume; zero or unknown volume is not limiting."""
        if not volume or volume >= quantity:
            return quantity
        if self.all_or_none:
            return 0
        return min(quantity, math.floor(volume * VOLUME_PARTICIPATION))

    def _rejected(self, order: SimulatedOrder, reason: str) -> ExecutionResult:
        return ExecutionResult(False, order.price, 0, reason=reason)

    def execute(self, order: SimulatedOrder) -> ExecutionResult:
        """
        Simulate one order against the reference price.

        Returns
        -------
        ExecutionResult
            ``executed=False`` with a reason when the order type does not
            trigger or nothing fills.
        """
        order_type = OrderType(order.order_type)
        is_buy = order.side == 'BUY'
        base_price = order.price

        if order_type in (OrderType.STOP, OrderType.STOP_LIMIT) and order.stop_price is not None:
            triggered = order.price >= order.stop_price if is_buy else order.price <= order.stop_price
            if not triggered:
                return self._rejected(order, 'Stop price not triggered')

        if order_type in (OrderType.LIMIT, OrderType.STOP_LIMIT) and order.limit_price is not None:
            reachable = order.price <= order.limit_price if is_buy else order.price >= order.limit_price
            if not reachable:
                reason = ('Limit price not reached after stop triggered'
                          if order_type == OrderType.STOP_LIMIT else 'Limit price not reached')
                return self._rejected(order, reason)
            base_price = order.limit_price

        price = self.apply_slippage(base_price, order.quantity, order.side)
        quantity = self.fill_quantity(order.quantity, order.volume)
        if quantity <= 0:
            return self._rejected(order, 'Insufficient volume to fill order')

        return ExecutionResult(
            executed=True,
            price=price,
            quantity=quantity,
            commission=self.calculate_commission(price, quantity),
            slippage=abs(price - order.price) * quantity,
        )
