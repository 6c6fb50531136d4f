# -*- coding: utf-8 -*-
"""
Tests for the forward-running paper trading session.
"""

import time

import pytest

from conftest import ALWAYS_BUY, NEVER_SELL
from stratengine.live import PaperTradingSession, SessionEventType
from stratengine.providers import InMemoryMarketDataProvider
from stratengine.signals import CustomStrategy


def make_session(provider, symbol='TEST', interval=0.01):
    return PaperTradingSession(symbol, CustomStrategy(ALWAYS_BUY, NEVER_SELL), provider, interval=interval)


def wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class TestPollOnce:

    def test_processes_only_new_bars(self, growing_provider):
        session = make_session(growing_provider)
        assert session.poll_once() == 10
        assert session.poll_once() == 0
        growing_provider.visible = 15
        assert session.poll_once() == 5
        assert session.bars_processed == 15
        assert len(session.simulator.portfolio.equity_curve) == 15

    def test_trade_events(self, growing_provider):
        session = make_session(growing_provider)
        session.poll_once()
        events = session.drain_events()
        assert [e.type for e in events] == [SessionEventType.TRADE]
        assert events[0].data['action'] == 'BUY'
        assert events[0].to_dict()['type'] == 'trade'
        assert session.drain_events() == []

    def test_summary(self, growing_provider):
        session = make_session(growing_provider)
        session.poll_once()
        summary = session.summary()
        assert summary['bars_processed'] == 10
        assert summary['trades'] == 1
        assert summary['open_positions'] == 1
        assert summary['equity'] == pytest.approx(summary['cash'] + session.simulator.portfolio.positions_value())

    def test_interval_must_be_positive(self, growing_provider):
        with pytest.raises(ValueError):
            make_session(growing_provider, interval=0)


class TestBackgroundLoop:

    def test_start_and_stop(self, growing_provider):
        session = make_session(growing_provider)
        session.start()
        try:
            assert session.is_running
            assert wait_for(lambda: session.bars_processed == 10)
            with pytest.raises(RuntimeError):
                session.start()
        finally:
            session.stop(timeout=5.0)
        assert not session.is_running

        events = session.drain_events()
        assert events[0].type == SessionEventType.STARTED
        assert events[-1].type == SessionEventType.STOPPED
        assert events[-1].data['bars_processed'] == 10

    def test_errors_published_and_loop_continues(self):
        session = make_session(InMemoryMarketDataProvider({}))
        session.start()
        try:
            assert wait_for(lambda: session.events.qsize() >= 3)
        finally:
            session.stop(timeout=5.0)
        types = [e.type for e in session.drain_events()]
        assert types.count(SessionEventType.ERROR) >= 2
        assert types[-1] == SessionEventType.STOPPED
