# -*- coding: utf-8 -*-
"""
Tests for the per-bar strategy contract, built-in strategies and the registry.
"""

from datetime import datetime

import numpy as np
import pytest

from conftest import NEVER_SELL, make_frame
from stratengine.data import NewsArticle
from stratengine.errors import ValidationError
from stratengine.indicators import IndicatorCache
from stratengine.signals import (
    BollingerBandsStrategy,
    BreakoutParams,
    BreakoutStrategy,
    CustomStrategy,
    MeanReversionStrategy,
    MomentumStrategy,
    MovingAverageCrossoverParams,
    MovingAverageCrossoverStrategy,
    PositionSnapshot,
    PositionState,
    SentimentParams,
    SentimentStrategy,
    Signal,
    StrategyType,
    build_strategy,
    compute_signal,
    execute_strategy,
    gate_signal,
)
from stratengine.signals.builtin import keyword_score, score_article

FLAT = PositionSnapshot()
LONG = PositionSnapshot(PositionState.LONG, entry_price=100.0, bars_held=1)


def rsi_leaf(condition):
    return {'type': 'indicator', 'indicator': {'type': 'rsi', 'params': {'period': 14}, 'condition': condition}}


class TestGating:

    @pytest.mark.parametrize("signal, position, expected", [
        (Signal.BUY, FLAT, Signal.BUY),
        (Signal.BUY, LONG, Signal.HOLD),
        (Signal.SELL, FLAT, Signal.HOLD),
        (Signal.SELL, LONG, Signal.SELL),
        (Signal.HOLD, LONG, Signal.HOLD),
    ])
    def test_gate_signal(self, signal, position, expected):
        assert gate_signal(signal, position) == expected


class TestCustomStrategy:

    def test_warmup_from_indicator_lookback(self):
        strategy = CustomStrategy(rsi_leaf('oversold'), rsi_leaf('overbought'))
        assert strategy.warmup() == 14

    def test_crossing_needs_extra_bar(self):
        cross = {'type': 'indicator', 'indicator': {
            'type': 'sma', 'params': {'period': 10}, 'condition': 'crossesAbove',
            'value': 'indicator:sma:period=30'}}
        strategy = CustomStrategy(cross, rsi_leaf('overbought'))
        assert strategy.warmup() == 30

    def test_hold_during_warm_up(self):
        cache = IndicatorCache(make_frame(np.linspace(120, 80, 40)))
        strategy = CustomStrategy(rsi_leaf('oversold'), rsi_leaf('overbought'))
        assert strategy.compute_signal(cache, 13, FLAT) == Signal.HOLD
        assert strategy.compute_signal(cache, 30, FLAT) == Signal.BUY
        assert strategy.compute_signal(cache, 30, LONG) == Signal.HOLD

    def test_conditions_required(self):
        with pytest.raises(ValidationError):
            CustomStrategy(None, rsi_leaf('overbought'))

    def test_hold_while_indicator_undefined_after_warm_up(self):
        frame = make_frame([100.0] * 6, volume=[0.0, 0.0, 0.0, 1e6, 1e6, 1e6])
        below_vwap = {'type': 'not', 'children': [
            {'type': 'indicator', 'indicator': {'type': 'vwap', 'condition': 'priceAbove'}}]}
        strategy = CustomStrategy(below_vwap, NEVER_SELL)
        cache = IndicatorCache(frame)
        assert strategy.warmup() == 0
        signals = [strategy.compute_signal(cache, i, FLAT) for i in range(6)]
        assert signals == [Signal.HOLD] * 3 + [Signal.BUY] * 3



class TestExecuteStrategy:

    def test_raw_signal_without_position(self):
        frame = make_frame(np.linspace(120, 80, 40))
        assert execute_strategy(rsi_leaf('oversold'), rsi_leaf('overbought'), frame) == Signal.BUY

    def test_gated_with_position(self):
        frame = make_frame(np.linspace(120, 80, 40))
        signal = execute_strategy(rsi_leaf('oversold'), rsi_leaf('overbought'), frame, position=LONG)
        assert signal == Signal.HOLD

    def test_hold_when_history_too_short(self):
        frame = make_frame(np.linspace(120, 80, 10))
        assert execute_strategy(rsi_leaf('oversold'), rsi_leaf('overbought'), frame) == Signal.HOLD


class TestMeanReversion:

    def test_buy_below_average(self):
        cache = IndicatorCache(make_frame([100.0] * 24 + [90.0]))
        strategy = MeanReversionStrategy()
        assert strategy.compute_signal(cache, 24, FLAT) == Signal.BUY
        assert strategy.compute_signal(cache, 24, LONG) == Signal.HOLD

    def test_sell_above_average(self):
        cache = IndicatorCache(make_frame([100.0] * 24 + [110.0]))
        assert MeanReversionStrategy().compute_signal(cache, 24, LONG) == Signal.SELL

    def test_hold_inside_band(self):
        cache = IndicatorCache(make_frame([100.0] * 25))
        assert MeanReversionStrategy().compute_signal(cache, 24, FLAT) == Signal.HOLD


class TestMovingAverageCrossover:

    def test_golden_cross(self):
        closes = [10.0, 9.0, 8.0, 7.0, 6.0, 5.0, 9.0, 12.0, 15.0]
        cache = IndicatorCache(make_frame(closes))
        strategy = MovingAverageCrossoverStrategy(MovingAverageCrossoverParams(fast_window=2, slow_window=4))
        assert strategy.warmup() == 4
        signals = [strategy.compute_signal(cache, i, FLAT) for i in range(len(closes))]
        assert signals.index(Signal.BUY) == 6
        assert signals.count(Signal.BUY) == 1

    def test_fast_must_be_faster(self):
        with pytest.raises(ValidationError):
            MovingAverageCrossoverParams(fast_window=30, slow_window=10)


class TestMomentum:

    def test_overbought_exit(self):
        closes = 100 * 1.01 ** np.arange(40)
        cache = IndicatorCache(make_frame(closes))
        strategy = MomentumStrategy()
        assert strategy.compute_signal(cache, 39, LONG) == Signal.SELL
        # Strong momentum but RSI already overbought: no entry
        assert strategy.compute_signal(cache, 39, FLAT) == Signal.HOLD

    def test_warmup_covers_momentum_window(self):
        strategy = build_strategy('momentum', {'rsiWindow': 5, 'momentumWindow': 12})
        assert strategy.warmup() == 12


class TestBollingerBandsStrategy:

    def test_buy_at_lower_band(self):
        cache = IndicatorCache(make_frame([100.0] * 20 + [80.0]))
        assert BollingerBandsStrategy().compute_signal(cache, 20, FLAT) == Signal.BUY

    def test_sell_at_upper_band(self):
        cache = IndicatorCache(make_frame([100.0] * 20 + [120.0]))
        assert BollingerBandsStrategy().compute_signal(cache, 20, LONG) == Signal.SELL


class TestBreakout:

    def _frame(self, last_close, last_volume):
        closes = [100.0] * 20 + [last_close]
        volumes = [1000.0] * 20 + [last_volume]
        return make_frame(closes, volume=volumes)

    def test_breakout_with_volume(self):
        cache = IndicatorCache(self._frame(105.0, 5000.0))
        assert BreakoutStrategy().compute_signal(cache, 20, FLAT) == Signal.BUY

    def test_breakout_without_volume_holds(self):
        cache = IndicatorCache(self._frame(105.0, 1000.0))
        assert BreakoutStrategy().compute_signal(cache, 20, FLAT) == Signal.HOLD

    def test_time_exit(self):
        cache = IndicatorCache(self._frame(100.0, 1000.0))
        held = PositionSnapshot(PositionState.LONG, entry_price=100.0, bars_held=2)
        assert BreakoutStrategy(BreakoutParams(confirmation_period=2)).compute_signal(cache, 20, held) == Signal.SELL


class TestSentiment:

    def _article(self, article_id, title, published_at):
        return NewsArticle(id=article_id, ticker="AAPL", title=title, published_at=published_at)

    def test_keyword_score_uses_word_boundaries(self):
        assert keyword_score("Apple beats estimates with record profit") == 3
        assert keyword_score("Shares settle within seconds") == 0
        assert keyword_score("SEC opens probe") == -2

    def test_score_article_clamped(self):
        article = self._article("1", "Record profit beats estimates, strong growth", datetime(2023, 1, 2))
        assert score_article(article) == 1.0

    def test_buy_on_positive_recent_news(self):
        frame = make_frame(np.full(5, 100.0), start="2023-01-02")
        articles = [
            self._article("1", "Apple beats estimates", datetime(2023, 1, 3, 8)),
            self._article("2", "Record profit for Apple", datetime(2023, 1, 3, 9)),
            self._article("2", "Record profit for Apple", datetime(2023, 1, 3, 9)),
        ]
        strategy = SentimentStrategy(SentimentParams(), articles)
        cache = IndicatorCache(frame)
        assert strategy.aggregate(frame.index[2])[1] == 2
        assert strategy.compute_signal(cache, 2, FLAT) == Signal.BUY

    def test_future_news_not_visible(self):
        frame = make_frame(np.full(5, 100.0), start="2023-01-02")
        articles = [
            self._article("1", "Apple beats estimates", datetime(2023, 1, 5, 8)),
            self._article("2", "Record profit for Apple", datetime(2023, 1, 5, 9)),
        ]
        strategy = SentimentStrategy(SentimentParams(), articles)
        assert strategy.compute_signal(IndicatorCache(frame), 1, FLAT) == Signal.HOLD


class TestRegistry:

    def test_build_with_camel_case_params(self):
        strategy = build_strategy('movingAverageCrossover', {'fastWindow': 5, 'slowWindow': 20})
        assert isinstance(strategy, MovingAverageCrossoverStrategy)
        assert strategy.params.fast_window == 5

    def test_unknown_param_rejected(self):
        with pytest.raises(ValidationError):
            build_strategy('meanReversion', {'lookback': 10})

    def test_unknown_strategy_rejected(self):
        with pytest.raises(ValidationError, match="Unknown strategy"):
            build_strategy('pairsTrading')

    def test_custom_requires_conditions(self):
        with pytest.raises(ValidationError):
            build_strategy(StrategyType.CUSTOM)

    def test_every_tag_registered(self):
        for tag in StrategyType:
            if tag == StrategyType.CUSTOM:
                continue
            assert build_strategy(tag).warmup() >= 0

    def test_compute_signal_function(self):
        cache = IndicatorCache(make_frame([100.0] * 24 + [90.0]))
        assert compute_signal(MeanReversionStrategy(), cache, 24) == Signal.BUY
