# -*- coding: utf-8 -*-
"""
Broker interface for live order submission.

A ``TradingProvider`` exposes account state, positions and order submission.
Implementations translate broker payloads into the dataclasses below so that
risk checks and order preparation never see broker-specific dicts.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class AccountInfo:
    """Broker account summary."""

    portfolio_value: float
    cash: float
    buying_power: float
    equity: float
    last_equity: Optional[float] = None  # Equity at the previous close (start of day)


@dataclass(frozen=True)
class BrokerPosition:
    """One open position as reported by the broker."""

    symbol: str
    quantity: float
    market_value: float
    avg_entry_price: float = 0.0
    current_price: float = 0.0


@dataclass
class OrderRequest:
    """
    Order to submit.

    Fields left as None are filled from session settings by
    ``stratengine.live.order_execution.prepare_order``.
    """

    symbol: str
    side: str  # "buy" or "sell"
    type: Optional[str] = None
    time_in_force: Optional[str] = None
    qty: Optional[float] = None
    notional: Optional[float] = None
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    trail_percent: Optional[float] = None
    take_profit_price: Optional[float] = None
    stop_loss_price: Optional[float] = None
    extended_hours: Optional[bool] = None
    order_class: Optional[str] = None  # None, "bracket" or "oco"

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class OrderResponse:
    """Broker answer to an order submission."""

    status: str  # "accepted", "filled", "rejected", ...
    order_id: Optional[str] = None
    symbol: Optional[str] = None
    filled_qty: float = 0.0
    filled_avg_price: Optional[float] = None
    error: Optional[str] = None

    @property
    def rejected(self) -> bool:
        return self.status == "rejected"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TradingProvider(ABC):
    """Broker connection used for live and paper order flow."""

    @abstractmethod
    def get_account(self) -> AccountInfo:
        ...

    @abstractmethod
    def get_positions(self) -> List[BrokerPosition]:
        ...

    def get_position(self, symbol: str) -> Optional[BrokerPosition]:
        for position in self.get_positions():
            if position.symbol == symbol:
                return position
        return None

    def get_price(self, symbol: str) -> Optional[float]:
        """Last known price of ``symbol``; None when the broker has no quote for it."""
        position = self.get_position(symbol)
        if position is not None and position.current_price > 0:
            return position.current_price
        return None

    @abstractmethod
    def submit_order(self, order: OrderRequest) -> OrderResponse:
        ...
