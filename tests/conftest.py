# -*- coding: utf-8 -*-
"""
Shared fixtures: synthetic price frames, in-memory providers and a fake broker.
"""

import threading
import time
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import pytest

from stratengine.backtesting.config import SessionSettings
from stratengine.live.provider import (
    AccountInfo,
    BrokerPosition,
    OrderRequest,
    OrderResponse,
    TradingProvider,
)
from stratengine.providers import InMemoryMarketDataProvider


def make_frame(closes, start: str = "2023-01-02", freq: str = "B", volume=1_000_000.0) -> pd.DataFrame:
    """OHLCV frame whose open is the previous close."""
    closes = np.asarray(closes, dtype=float)
    opens = np.concatenate([[closes[0]], closes[:-1]])
    index = pd.date_range(start, periods=len(closes), freq=freq, name='timestamp')
    volumes = np.broadcast_to(np.asarray(volume, dtype=float), closes.shape)
    return pd.DataFrame({
        'open': opens,
        'high': np.maximum(opens, closes) * 1.01,
        'low': np.minimum(opens, closes) * 0.99,
        'close': closes,
        'volume': volumes,
    }, index=index)


def oscillating_closes(n: int, seed: int = 42, amplitude: float = 10.0, period: float = 30.0,
                       base: float = 100.0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    i = np.arange(n)
    return base + amplitude * np.sin(2 * np.pi * i / period) + rng.normal(0, 0.5, n)


@pytest.fixture
def oscillating_frame():
    """Business-day bars from late 2022 to mid 2023 oscillating around 100."""
    index = pd.bdate_range("2022-10-03", "2023-07-31")
    return make_frame(oscillating_closes(len(index)), start="2022-10-03")


@pytest.fixture
def market_data(oscillating_frame):
    other = make_frame(oscillating_closes(len(oscillating_frame), seed=7, amplitude=6.0),
                       start="2022-10-03")
    return InMemoryMarketDataProvider({'AAPL': oscillating_frame, 'MSFT': other})


@pytest.fixture
def default_settings():
    return SessionSettings()


# Always-true / never-true conditions on SMA(1), which equals the close
ALWAYS_BUY = {'type': 'indicator',
              'indicator': {'type': 'sma', 'params': {'period': 1}, 'condition': 'above', 'value': 0}}
NEVER_SELL = {'type': 'indicator',
              'indicator': {'type': 'sma', 'params': {'period': 1}, 'condition': 'below', 'value': 0}}


@pytest.fixture
def always_buy():
    return dict(ALWAYS_BUY)


@pytest.fixture
def never_sell():
    return dict(NEVER_SELL)


class FakeBroker(TradingProvider):
    """In-memory broker recording submitted orders."""

    def __init__(self, portfolio_value: float = 100000.0, cash: Optional[float] = None,
                 positions: Optional[List[BrokerPosition]] = None,
                 last_equity: Optional[float] = None, delay: float = 0.0,
                 error: Optional[Exception] = None, prices: Optional[Dict[str, float]] = None):
        self.portfolio_value = portfolio_value
        self.cash = portfolio_value if cash is None else cash
        self.positions = list(positions or [])
        self.last_equity = last_equity
        self.delay = delay
        self.error = error
        self.prices = dict(prices or {})
        self.submitted: List[OrderRequest] = []
        self._lock = threading.Lock()

    def get_account(self) -> AccountInfo:
        return AccountInfo(self.portfolio_value, self.cash, self.cash, self.portfolio_value,
                           last_equity=self.last_equity)

    def get_positions(self) -> List[BrokerPosition]:
        return list(self.positions)

    def get_price(self, symbol: str) -> Optional[float]:
        if symbol in self.prices:
            return self.prices[symbol]
        return super().get_price(symbol)

    def submit_order(self, order: OrderRequest) -> OrderResponse:
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        with self._lock:
            self.submitted.append(order)
            order_id = str(len(self.submitted))
        return OrderResponse(status="accepted", order_id=order_id, symbol=order.symbol)


@pytest.fixture
def broker():
    return FakeBroker()


@pytest.fixture
def growing_provider():
    """Provider whose history can be extended between polls."""

    class GrowingProvider(InMemoryMarketDataProvider):
        def __init__(self, frame: pd.DataFrame, visible: int):
            super().__init__({'TEST': frame})
            self.full = frame
            self.visible = visible

        def get_bars(self, symbol, start=None, end=None):
            bars = super().get_bars(symbol, start, end)
            return bars[:self.visible]

    closes = np.linspace(100.0, 120.0, 40)
    return GrowingProvider(make_frame(closes), visible=10)

