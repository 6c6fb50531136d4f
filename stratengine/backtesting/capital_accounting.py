# -*- coding: utf-8 -*-
"""
Capital accounting module.

Tracks cash, open positions, the trade log and the equity curve of one
backtest run. Equity at every snapshot is ``cash + sum(qty * price)``.
"""

import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from stratengine.errors import ExecutionError


logger = logging.getLogger(__name__)


@dataclass
class Position:
    """Open long position in one symbol."""

    symbol: str
    quantity: int
    avg_price: float  # Volume-weighted fill price
    cost_basis: float  # Total cash spent, commissions included
    entry_time: datetime
    entry_index: int
    highest_price: float  # For trailing stops
    last_price: float

    @property
    def market_value(self) -> float:
        return self.quantity * self.last_price


@dataclass(frozen=True)
class Trade:
    """One executed fill. ``quantity`` is always positive; direction is ``action``."""

    symbol: str
    action: str  # 'BUY' or 'SELL'
    quantity: int
    price: float
    timestamp: datetime
    strategy: str
    commission: float = 0.0
    slippage: float = 0.0
    realized_pnl: Optional[float] = None  # Closing trades only, net of commissions
    reason: str = "signal"  # 'signal', 'stop_loss', 'take_profit' or 'trailing_stop'
    holding_bars: Optional[int] = None
    holding_hours: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class EquitySnapshot:
    timestamp: datetime
    cash: float
    positions_value: float
    equity: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'cash': self.cash,
            'positions_value': self.positions_value,
            'equity': self.equity,
        }


class PortfolioState:
    """
    Portfolio of a single backtest run.

    Mutated only by the simulator that owns it; never shared between runs.
    """

    def __init__(self, initial_capital: float):
        """
        Parameters
        ----------
        initial_capital : float
            Starting cash.
        """
        self.initial_capital = float(initial_capital)
        self.cash = float(initial_capital)
        self.positions: Dict[str, Position] = {}
        self.trades: List[Trade] = []
        self.equity_curve: List[EquitySnapshot] = []
        self.day_start_equity: Optional[float] = None
        self._current_day = None

    # ------------------------------------------------------------------
    # Valuation
    # ------------------------------------------------------------------

    def mark(self, symbol: str, price: float) -> None:
        position = self.positions.get(symbol)
        if position is not None:
            position.last_price = price
            position.highest_price = max(position.highest_price, price)

    def positions_value(self) -> float:
        return sum(p.market_value for p in self.positions.values())

    def equity(self) -> float:
        return self.cash + self.positions_value()

    def position_value(self, symbol: str) -> float:
        position = self.positions.get(symbol)
        return position.market_value if position else 0.0

    def open_positions(self) -> int:
        return len(self.positions)

    def start_day(self, timestamp: datetime) -> None:
        """Record start-of-day equity the first time a calendar day is seen."""
        day = timestamp.date()
        if day != self._current_day:
            self._current_day = day
            self.day_start_equity = self.equity()

    def snapshot(self, timestamp: datetime) -> EquitySnapshot:
        positions_value = self.positions_value()
        snap = EquitySnapshot(timestamp, self.cash, positions_value, self.cash + positions_value)
        self.equity_curve.append(snap)
        return snap

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------

    def apply_buy(self, symbol: str, quantity: int, price: float, commission: float,
                  timestamp: datetime, index: int, strategy: str, slippage: float = 0.0) -> Trade:
        if quantity <= 0:
            raise ExecutionError(f"Buy quantity must be positive, got {quantity}")
        cost = quantity * price + commission
        if cost > self.cash + 1e-9:
            raise ExecutionError(f"Insufficient cash for {symbol}: need ${cost:.2f}, have ${self.cash:.2f}")

        self.cash -= cost
        position = self.positions.get(symbol)
        if position is None:
            self.positions[symbol] = Position(
                symbol=symbol,
                quantity=quantity,
                avg_price=price,
                cost_basis=cost,
                entry_time=timestamp,
                entry_index=index,
                highest_price=price,
                last_price=price,
            )
        else:
            total = position.quantity + quantity
            position.avg_price = (position.avg_price * position.quantity + price * quantity) / total
            position.quantity = total
            position.cost_basis += cost
            position.last_price = price
            position.highest_price = max(position.highest_price, price)

        trade = Trade(symbol, 'BUY', quantity, price, timestamp, strategy,
                      commission=commission, slippage=slippage)
        self.trades.append(trade)
        return trade

    def apply_sell(self, symbol: str, quantity: int, price: float, commission: float,
                   timestamp: datetime, index: int, strategy: str, slippage: float = 0.0,
                   reason: str = "signal") -> Trade:
        position = self.positions.get(symbol)
        if position is None:
            raise ExecutionError(f"No open position in {symbol} to sell")
        if quantity <= 0 or quantity > position.quantity:
            raise ExecutionError(
                f"Sell quantity {quantity} invalid for position of {position.quantity} {symbol}"
            )

        proceeds = quantity * price - commission
        basis = position.cost_basis * quantity / position.quantity
        realized = proceeds - basis

        self.cash += proceeds
        holding_bars = index - position.entry_index
        holding_hours = (timestamp - position.entry_time).total_seconds() / 3600.0
        if quantity == position.quantity:
            del self.positions[symbol]
        else:
            position.quantity -= quantity
            position.cost_basis -= basis
            position.last_price = price

        trade = Trade(symbol, 'SELL', quantity, price, timestamp, strategy,
                      commission=commission, slippage=slippage, realized_pnl=realized,
                      reason=reason, holding_bars=holding_bars, holding_hours=holding_hours)
        self.trades.append(trade)
        return trade
