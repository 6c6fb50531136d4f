# -*- coding: utf-8 -*-
"""
Tests for simulated fills: slippage, commission, order types and partial fills.
"""

import pytest

from stratengine.backtesting.config import SessionSettings
from stratengine.backtesting.execution_engine import ExecutionEngine, SimulatedOrder


def order(**kwargs):
    base = {'symbol': 'AAPL', 'side': 'BUY', 'quantity': 100, 'price': 50.0}
    base.update(kwargs)
    return SimulatedOrder(**base)


class TestSlippage:

    def test_none(self):
        engine = ExecutionEngine(SessionSettings())
        assert engine.apply_slippage(100.0, 10, 'BUY') == 100.0

    def test_fixed_moves_against_trader(self):
        engine = ExecutionEngine(SessionSettings(slippage_model='fixed', slippage_value=1.0))
        assert engine.apply_slippage(100.0, 10, 'BUY') == pytest.approx(101.0)
        assert engine.apply_slippage(100.0, 10, 'SELL') == pytest.approx(99.0)

    def test_proportional_scales_and_caps(self):
        engine = ExecutionEngine(SessionSettings(slippage_model='proportional', slippage_value=1.0))
        assert engine.apply_slippage(100.0, 1000, 'BUY') == pytest.approx(101.1)
        assert engine.apply_slippage(100.0, 50000, 'BUY') == pytest.approx(102.0)


class TestExecute:

    def test_market_fill_with_commission(self):
        engine = ExecutionEngine(SessionSettings(commission_rate=0.1))
        result = engine.execute(order())
        assert result.executed
        assert result.quantity == 100
        assert result.commission == pytest.approx(5.0)
        assert result.slippage == 0.0

    def test_slippage_cost_reported(self):
        engine = ExecutionEngine(SessionSettings(slippage_model='fixed', slippage_value=2.0))
        result = engine.execute(order())
        assert result.price == pytest.approx(51.0)
        assert result.slippage == pytest.approx(100.0)

    def test_buy_limit(self):
        engine = ExecutionEngine(SessionSettings())
        result = engine.execute(order(order_type='limit', limit_price=49.0))
        assert not result.executed
        assert result.reason == 'Limit price not reached'
        filled = engine.execute(order(order_type='limit', limit_price=51.0))
        assert filled.executed
        assert filled.price == 51.0

    def test_sell_limit(self):
        engine = ExecutionEngine(SessionSettings())
        assert not engine.execute(order(side='SELL', order_type='limit', limit_price=51.0)).executed
        assert engine.execute(order(side='SELL', order_type='limit', limit_price=49.0)).executed

    def test_stop_not_triggered(self):
        engine = ExecutionEngine(SessionSettings())
        result = engine.execute(order(order_type='stop', stop_price=55.0))
        assert result.reason == 'Stop price not triggered'
        sell = engine.execute(order(side='SELL', order_type='stop', stop_price=48.0))
        assert sell.reason == 'Stop price not triggered'

    def test_stop_limit(self):
        engine = ExecutionEngine(SessionSettings())
        result = engine.execute(order(order_type='stop_limit', stop_price=45.0, limit_price=48.0))
        assert result.reason == 'Limit price not reached after stop triggered'


class TestPartialFills:

    def test_volume_limits_fill(self):
        engine = ExecutionEngine(SessionSettings())
        result = engine.execute(order(volume=50.0))
        assert result.executed
        assert result.quantity == 40

    def test_unknown_volume_fills_fully(self):
        engine = ExecutionEngine(SessionSettings())
        assert engine.execute(order(volume=0.0)).quantity == 100
        assert engine.execute(order(volume=None)).quantity == 100

    @pytest.mark.parametrize("settings", [
        SessionSettings(allow_partial_fills=False),
        SessionSettings(time_in_force='fok'),
    ])
    def test_all_or_none(self, settings):
        result = ExecutionEngine(settings).execute(order(volume=50.0))
        assert not result.executed
        assert result.reason == 'Insufficient volume to fill order'
