# -*- coding: utf-8 -*-
"""
Built-in parametrized strategies.

Each strategy has a parameter dataclass validated once at construction.
Parameter dicts coming from JSON may use camelCase (``fastWindow``) or
snake_case (``fast_window``) keys; unknown keys are rejected.
"""

import logging
import math
import re
from dataclasses import dataclass, fields, asdict
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import numpy as np
import pandas as pd

from stratengine.data import NewsArticle
from stratengine.errors import ValidationError
from stratengine.indicators import IndicatorCache, IndicatorSpec
from stratengine.signals.base import BaseStrategy, PositionSnapshot, PositionState, Signal


logger = logging.getLogger(__name__)

P = TypeVar('P')

_CAMEL = re.compile(r'(?<!^)(?=[A-Z])')


def _snake(key: str) -> str:
    return _CAMEL.sub('_', key).lower()


def params_from_dict(cls: Type[P], data: Optional[Dict[str, Any]]) -> P:
    """Build a parameter dataclass from a camelCase or snake_case dict."""
    if data is None:
        return cls()
    if isinstance(data, cls):
        return data
    if not isinstance(data, dict):
        raise ValidationError(f"{cls.__name__} expects an object, got {type(data).__name__}")
    names = {f.name for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        name = _snake(key)
        if name not in names:
            raise ValidationError(f"Unknown parameter '{key}' for {cls.__name__}")
        kwargs[name] = value
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ValidationError(f"Invalid parameters for {cls.__name__}: {e}") from e


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValidationError(message)


def _positive_int(value: Any, name: str) -> None:
    _require(isinstance(value, int) and not isinstance(value, bool) and value >= 1,
             f"{name} must be a positive integer, got {value!r}")


def _ma_spec(ma_type: str, window: int) -> IndicatorSpec:
    kind = str(ma_type).lower()
    _require(kind in ('sma', 'ema'), f"maType must be SMA or EMA, got {ma_type!r}")
    return IndicatorSpec.create(kind, {'period': window})


# ============================================================================
# Parameter structs
# ============================================================================

@dataclass(frozen=True)
class MeanReversionParams:
    window: int = 20  # Moving average window
    threshold: float = 0.05  # Fractional deviation from the MA (0.05 = 5%)
    ma_type: str = "SMA"

    def __post_init__(self):
        _positive_int(self.window, "window")
        _require(self.threshold > 0, f"threshold must be positive, got {self.threshold}")
        _ma_spec(self.ma_type, self.window)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MovingAverageCrossoverParams:
    fast_window: int = 10
    slow_window: int = 30
    ma_type: str = "SMA"

    def __post_init__(self):
        _positive_int(self.fast_window, "fast_window")
        _positive_int(self.slow_window, "slow_window")
        _require(self.fast_window < self.slow_window,
                 f"fast_window ({self.fast_window}) must be less than slow_window ({self.slow_window})")
        _ma_spec(self.ma_type, self.fast_window)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class MomentumParams:
    rsi_window: int = 14
    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0
    momentum_window: int = 10  # Rate-of-change lookback in bars
    momentum_threshold: float = 0.02  # Minimum rate of change (0.02 = 2%)

    def __post_init__(self):
        _positive_int(self.rsi_window, "rsi_window")
        _positive_int(self.momentum_window, "momentum_window")
        _require(0 <= self.rsi_oversold < self.rsi_overbought <= 100,
                 f"RSI bounds must satisfy 0 <= oversold < overbought <= 100, "
                 f"got {self.rsi_oversold}/{self.rsi_overbought}")
        _require(self.momentum_threshold >= 0, "momentum_threshold must be non-negative")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BollingerParams:
    window: int = 20
    multiplier: float = 2.0
    ma_type: str = "SMA"

    def __post_init__(self):
        _positive_int(self.window, "window")
        _require(self.multiplier > 0, f"multiplier must be positive, got {self.multiplier}")
        _ma_spec(self.ma_type, self.window)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BreakoutParams:
    lookback_window: int = 20  # Bars used for support/resistance
    breakout_threshold: float = 0.01  # Required move beyond the level (0.01 = 1%)
    min_volume_ratio: float = 1.5  # Bar volume vs. lookback average
    confirmation_period: int = 2  # Bars to hold before the time-based exit

    def __post_init__(self):
        _positive_int(self.lookback_window, "lookback_window")
        _positive_int(self.confirmation_period, "confirmation_period")
        _require(self.breakout_threshold >= 0, "breakout_threshold must be non-negative")
        _require(self.min_volume_ratio >= 0, "min_volume_ratio must be non-negative")

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SentimentParams:
    lookback_days: float = 3.0  # News window before each bar
    min_articles: int = 2
    buy_threshold: float = 0.4
    sell_threshold: float = -0.4
    title_weight: float = 2.0
    recency_half_life_hours: float = 12.0

    def __post_init__(self):
        _require(self.lookback_days > 0, "lookback_days must be positive")
        _require(isinstance(self.min_articles, int) and self.min_articles >= 0,
                 "min_articles must be a non-negative integer")
        _require(self.sell_threshold < self.buy_threshold,
                 "sell_threshold must be less than buy_threshold")
        _require(self.recency_half_life_hours > 0, "recency_half_life_hours must be positive")

    def to_dict(self) -> dict:
        return asdict(self)


# ============================================================================
# Strategies
# ============================================================================

class MeanReversionStrategy(BaseStrategy):
    """Buy when price sits ``threshold`` below its MA, sell when it is that far above."""

    def __init__(self, params: Optional[MeanReversionParams] = None):
        super().__init__("MeanReversion")
        self.params = params or MeanReversionParams()
        self.ma = _ma_spec(self.params.ma_type, self.params.window)

    def indicator_specs(self):
        return [self.ma]

    def evaluate(self, cache, index, position):
        ma = cache.column(self.ma)[index]
        if not ma:
            return Signal.HOLD
        deviation = (cache.close[index] - ma) / ma
        if deviation <= -self.params.threshold:
            return Signal.BUY
        if deviation >= self.params.threshold:
            return Signal.SELL
        return Signal.HOLD


class MovingAverageCrossoverStrategy(BaseStrategy):
    """Golden cross buys, death cross sells."""

    def __init__(self, params: Optional[MovingAverageCrossoverParams] = None):
        super().__init__("MovingAverageCrossover")
        self.params = params or MovingAverageCrossoverParams()
        self.fast = _ma_spec(self.params.ma_type, self.params.fast_window)
        self.slow = _ma_spec(self.params.ma_type, self.params.slow_window)

    def indicator_specs(self):
        return [self.fast, self.slow]

    def extra_warmup(self):
        return 1

    def evaluate(self, cache, index, position):
        fast = cache.column(self.fast)
        slow = cache.column(self.slow)
        if fast[index - 1] <= slow[index - 1] and fast[index] > slow[index]:
            return Signal.BUY
        if fast[index - 1] >= slow[index - 1] and fast[index] < slow[index]:
            return Signal.SELL
        return Signal.HOLD


class MomentumStrategy(BaseStrategy):
    """
    RSI plus rate-of-change.

    Entry on oversold RSI with positive momentum, or on strong momentum while
    RSI is not yet overbought. Exit on overbought RSI or momentum reversal.
    """

    def __init__(self, params: Optional[MomentumParams] = None):
        super().__init__("Momentum")
        self.params = params or MomentumParams()
        self.rsi = IndicatorSpec.create('rsi', {'period': self.params.rsi_window})

    def indicator_specs(self):
        return [self.rsi]

    def extra_warmup(self):
        return max(0, self.params.momentum_window - self.rsi.lookback())

    def _momentum(self, cache: IndicatorCache) -> np.ndarray:
        window = self.params.momentum_window
        return cache.derived(('momentum', window), lambda df: df['close'].pct_change(periods=window))

    def evaluate(self, cache, index, position):
        p = self.params
        rsi = cache.column(self.rsi)[index]
        momentum = self._momentum(cache)[index]
        if math.isnan(rsi) or math.isnan(momentum):
            return Signal.HOLD

        if position.state == PositionState.FLAT:
            if rsi <= p.rsi_oversold and momentum > 0:
                return Signal.BUY
            if momentum >= p.momentum_threshold and rsi < p.rsi_overbought:
                return Signal.BUY
            return Signal.HOLD

        if rsi >= p.rsi_overbought or momentum <= -p.momentum_threshold:
            return Signal.SELL
        return Signal.HOLD


class BollingerBandsStrategy(BaseStrategy):
    """Buy at or below the lower band, sell at or above the upper band."""

    def __init__(self, params: Optional[BollingerParams] = None):
        super().__init__("BollingerBands")
        self.params = params or BollingerParams()
        self.bands = IndicatorSpec.create('bollingerBands', {
            'period': self.params.window,
            'multiplier': self.params.multiplier,
            'maType': str(self.params.ma_type).lower(),
        })

    def indicator_specs(self):
        return [self.bands]

    def evaluate(self, cache, index, position):
        close = cache.close[index]
        if close <= cache.column(self.bands, 'lower')[index]:
            return Signal.BUY
        if close >= cache.column(self.bands, 'upper')[index]:
            return Signal.SELL
        return Signal.HOLD


class BreakoutStrategy(BaseStrategy):
    """
    Support/resistance breakout with volume confirmation.

    Levels are the min/max close of the ``lookback_window`` bars before the
    current one. An open position is closed after ``confirmation_period`` bars
    or on a downward breakout.
    """

    def __init__(self, params: Optional[BreakoutParams] = None):
        super().__init__("Breakout")
        self.params = params or BreakoutParams()

    def indicator_specs(self):
        return []

    def extra_warmup(self):
        return self.params.lookback_window

    def _levels(self, cache: IndicatorCache):
        n = self.params.lookback_window
        resistance = cache.derived(('resistance', n), lambda df: df['close'].rolling(n).max().shift(1))
        support = cache.derived(('support', n), lambda df: df['close'].rolling(n).min().shift(1))
        avg_volume = cache.derived(('avg_volume', n), lambda df: df['volume'].rolling(n).mean().shift(1))
        return resistance, support, avg_volume

    def evaluate(self, cache, index, position):
        p = self.params
        if position.state == PositionState.LONG and position.bars_held >= p.confirmation_period:
            return Signal.SELL

        resistance, support, avg_volume = self._levels(cache)
        price = cache.close[index]
        volume = float(cache.df['volume'].iat[index])
        avg = avg_volume[index]
        if avg > 0:
            volume_ratio = volume / avg
        else:
            volume_ratio = math.inf if volume > 0 else 0.0
        if volume_ratio < p.min_volume_ratio:
            return Signal.HOLD

        if price > resistance[index] * (1 + p.breakout_threshold):
            return Signal.BUY
        if price < support[index] * (1 - p.breakout_threshold):
            return Signal.SELL
        return Signal.HOLD


POSITIVE_KEYWORDS = [
    'beat', 'beats', 'exceed', 'exceeds', 'surge', 'record', 'upgrade', 'outperform',
    'buyback', 'dividend increase', 'profit', 'profitable', 'growth', 'raises guidance',
    'raise guidance', 'optimism', 'bullish', 'strong', 'above expectations', 'tops', 'soars',
]
NEGATIVE_KEYWORDS = [
    'miss', 'misses', 'fall', 'falls', 'drop', 'drops', 'downgrade', 'underperform',
    'loss', 'losses', 'decline', 'weak', 'cuts guidance', 'cut guidance', 'bearish',
    'investigation', 'probe', 'lawsuit', 'sec', 'fraud', 'layoff', 'layoffs', 'warns', 'warning',
]
SCORE_CAP = 6.0

_POSITIVE_RE = [re.compile(r'\b' + re.escape(k) + r'\b') for k in POSITIVE_KEYWORDS]
_NEGATIVE_RE = [re.compile(r'\b' + re.escape(k) + r'\b') for k in NEGATIVE_KEYWORDS]


def keyword_score(text: str) -> int:
    """+1 per positive keyword present, -1 per negative keyword present."""
    text = (text or '').lower()
    score = sum(1 for pattern in _POSITIVE_RE if pattern.search(text))
    score -= sum(1 for pattern in _NEGATIVE_RE if pattern.search(text))
    return score


def score_article(article: NewsArticle, title_weight: float = 2.0) -> float:
    """Keyword sentiment of one article, normalized to [-1, 1]."""
    raw = keyword_score(article.title) * title_weight + keyword_score(article.description)
    return max(-1.0, min(1.0, raw / SCORE_CAP))


def dedupe_articles(articles: Sequence[NewsArticle]) -> List[NewsArticle]:
    seen = set()
    out = []
    for article in articles:
        key = article.dedupe_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(article)
    return out


class SentimentStrategy(BaseStrategy):
    """
    News sentiment with exponential recency decay.

    At each bar only articles published within ``lookback_days`` before the
    bar timestamp are scored, so the backtest never reads future news.
    """

    def __init__(self, params: Optional[SentimentParams] = None,
                 articles: Sequence[NewsArticle] = ()):
        super().__init__("SentimentAnalysis")
        self.params = params or SentimentParams()
        unique = sorted(dedupe_articles(articles), key=lambda a: a.published_at)
        self._published = pd.DatetimeIndex([pd.Timestamp(a.published_at) for a in unique])
        self._scores = np.array([score_article(a, self.params.title_weight) for a in unique], dtype=float)

    def indicator_specs(self):
        return []

    def aggregate(self, timestamp) -> tuple:
        """Return ``(score, article_count)`` as of ``timestamp``."""
        ts = pd.Timestamp(timestamp)
        window_start = ts - pd.Timedelta(days=self.params.lookback_days)
        lo = self._published.searchsorted(window_start, side='right')
        hi = self._published.searchsorted(ts, side='right')
        if hi <= lo:
            return 0.0, 0

        age_hours = (ts - self._published[lo:hi]).total_seconds().to_numpy() / 3600.0
        decay = math.log(2) / self.params.recency_half_life_hours
        weights = np.exp(-decay * np.maximum(age_hours, 0.0))
        scores = self._scores[lo:hi]
        total = weights.sum()
        score = float((scores * weights).sum() / total) if total > 0 else 0.0
        return score, hi - lo

    def evaluate(self, cache, index, position):
        score, count = self.aggregate(cache.df.index[index])
        if count < self.params.min_articles:
            return Signal.HOLD
        if score >= self.params.buy_threshold:
            return Signal.BUY
        if score <= self.params.sell_threshold:
            return Signal.SELL
        return Signal.HOLD
