# -*- coding: utf-8 -*-
"""
Tests for cash and position accounting.
"""

from datetime import datetime

import pytest

from stratengine.backtesting.capital_accounting import PortfolioState
from stratengine.errors import ExecutionError

T0 = datetime(2023, 1, 2)
T1 = datetime(2023, 1, 5)


class TestPortfolioState:

    def test_buy_reduces_cash(self):
        portfolio = PortfolioState(10000)
        trade = portfolio.apply_buy('AAPL', 10, 100.0, 1.0, T0, 0, 'test')
        assert portfolio.cash == pytest.approx(8999.0)
        assert portfolio.positions['AAPL'].cost_basis == pytest.approx(1001.0)
        assert trade.action == 'BUY'
        assert trade.realized_pnl is None

    def test_average_price(self):
        portfolio = PortfolioState(10000)
        portfolio.apply_buy('AAPL', 10, 100.0, 0.0, T0, 0, 'test')
        portfolio.apply_buy('AAPL', 30, 120.0, 0.0, T0, 1, 'test')
        assert portfolio.positions['AAPL'].avg_price == pytest.approx(115.0)
        assert portfolio.positions['AAPL'].quantity == 40

    def test_realized_pnl_net_of_commissions(self):
        portfolio = PortfolioState(10000)
        portfolio.apply_buy('AAPL', 10, 100.0, 1.0, T0, 0, 'test')
        trade = portfolio.apply_sell('AAPL', 10, 110.0, 1.0, T1, 3, 'test')
        assert trade.realized_pnl == pytest.approx(98.0)
        assert trade.holding_bars == 3
        assert trade.holding_hours == pytest.approx(72.0)
        assert 'AAPL' not in portfolio.positions
        assert portfolio.cash == pytest.approx(10098.0)

    def test_partial_sell_keeps_proportional_basis(self):
        portfolio = PortfolioState(10000)
        portfolio.apply_buy('AAPL', 10, 100.0, 0.0, T0, 0, 'test')
        trade = portfolio.apply_sell('AAPL', 4, 90.0, 0.0, T1, 1, 'test', reason='stop_loss')
        assert trade.realized_pnl == pytest.approx(-40.0)
        assert trade.reason == 'stop_loss'
        assert portfolio.positions['AAPL'].quantity == 6
        assert portfolio.positions['AAPL'].cost_basis == pytest.approx(600.0)

    def test_insufficient_cash(self):
        portfolio = PortfolioState(500)
        with pytest.raises(ExecutionError, match="Insufficient cash"):
            portfolio.apply_buy('AAPL', 10, 100.0, 0.0, T0, 0, 'test')
        assert portfolio.cash == 500
        assert portfolio.trades == []

    def test_invalid_sells(self):
        portfolio = PortfolioState(10000)
        with pytest.raises(ExecutionError):
            portfolio.apply_sell('AAPL', 1, 100.0, 0.0, T0, 0, 'test')
        portfolio.apply_buy('AAPL', 5, 100.0, 0.0, T0, 0, 'test')
        with pytest.raises(ExecutionError):
            portfolio.apply_sell('AAPL', 6, 100.0, 0.0, T0, 0, 'test')

    def test_equity_is_cash_plus_marked_positions(self):
        portfolio = PortfolioState(10000)
        portfolio.apply_buy('AAPL', 10, 100.0, 2.0, T0, 0, 'test')
        portfolio.mark('AAPL', 130.0)
        snap = portfolio.snapshot(T1)
        assert snap.positions_value == pytest.approx(1300.0)
        assert snap.equity == pytest.approx(snap.cash + snap.positions_value)
        assert portfolio.positions['AAPL'].highest_price == 130.0
        portfolio.mark('AAPL', 120.0)
        assert portfolio.positions['AAPL'].highest_price == 130.0

    def test_start_day_records_once_per_day(self):
        portfolio = PortfolioState(10000)
        portfolio.start_day(datetime(2023, 1, 2, 10))
        portfolio.apply_buy('AAPL', 10, 100.0, 0.0, T0, 0, 'test')
        portfolio.mark('AAPL', 50.0)
        portfolio.start_day(datetime(2023, 1, 2, 15))
        assert portfolio.day_start_equity == 10000
        portfolio.start_day(datetime(2023, 1, 3, 10))
        assert portfolio.day_start_equity == pytest.approx(9500.0)

    def test_trade_to_dict(self):
        portfolio = PortfolioState(10000)
        data = portfolio.apply_buy('AAPL', 1, 100.0, 0.0, T0, 0, 'test').to_dict()
        assert data['timestamp'] == '2023-01-02T00:00:00'
        assert data['action'] == 'BUY'
