# -*- coding: utf-8 -*-
"""
Technical indicator library.

Stateless transforms of a price series. Every function returns a pandas
object aligned 1:1 with its input index; entries inside the warm-up window are
NaN, never back-filled. A period below 1, or not smaller than the series
length, raises ``DataError`` instead of returning a partial series.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from stratengine.errors import DataError, ValidationError


logger = logging.getLogger(__name__)

SeriesLike = Union[pd.Series, np.ndarray, list]

PRICE_SOURCES = ('close', 'open', 'high', 'low')


class IndicatorType(str, Enum):
    SMA = "sma"
    EMA = "ema"
    RSI = "rsi"
    MACD = "macd"
    BOLLINGER = "bollingerBands"
    VWAP = "vwap"


class VwapReset(str, Enum):
    """Where the VWAP accumulation restarts."""

    NONE = "none"  # Continuous from the first bar
    DAILY = "daily"  # Restarts at each calendar day of the bar timestamp
    ROLLING = "rolling"  # Trailing window of ``period`` bars


def _as_series(values: SeriesLike) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(np.asarray(values, dtype=float))


def _check_period(period: int, length: int, name: str = "period") -> None:
    if not isinstance(period, (int, np.integer)) or isinstance(period, bool):
        raise DataError(f"{name} must be an integer, got {period!r}")
    if period < 1:
        raise DataError(f"{name} must be >= 1, got {period}")
    if period >= length:
        raise DataError(
            f"Insufficient data: {name}={period} requires more than {period} bars, got {length}"
        )


def _ema_array(values: np.ndarray, period: int) -> np.ndarray:
    """EMA over the finite tail of ``values`` seeded with the SMA of its first ``period`` entries."""
    out = np.full(len(values), np.nan)
    finite = np.flatnonzero(np.isfinite(values))
    if len(finite) == 0:
        raise DataError("Cannot compute EMA of an all-undefined series")
    first = finite[0]
    _check_period(period, len(values) - first)

    k = 2.0 / (period + 1)
    seed_idx = first + period - 1
    out[seed_idx] = values[first:seed_idx + 1].mean()
    for i in range(seed_idx + 1, len(values)):
        out[i] = values[i] * k + out[i - 1] * (1 - k)
    return out


def sma(values: SeriesLike, period: int) -> pd.Series:
    """
    Simple moving average.

    Parameters
    ----------
    values : pd.Series or array-like
        Input prices.
    period : int
        Number of trailing observations.

    Returns
    -------
    pd.Series
        Mean of the trailing ``period`` values; NaN for indices < period - 1.
    """
    series = _as_series(values)
    _check_period(period, len(series))
    return series.rolling(window=period, min_periods=period).mean()


def ema(values: SeriesLike, period: int) -> pd.Series:
    """
    Exponential moving average.

    Seeded with SMA(period) at index ``period - 1``, then
    ``ema[i] = x[i] * k + ema[i-1] * (1 - k)`` with ``k = 2 / (period + 1)``.
    """
    series = _as_series(values)
    _check_period(period, len(series))
    return pd.Series(_ema_array(series.to_numpy(), period), index=series.index)


def rsi(values: SeriesLike, period: int = 14) -> pd.Series:
    """
    Relative Strength Index with Wilder smoothing.

    The first average gain/loss is the simple mean of the first ``period``
    changes; afterwards ``avg = (avg * (period - 1) + x) / period``. The first
    defined value is at index ``period``. A window without losses reads 100,
    one without any movement reads 50.
    """
    series = _as_series(values)
    _check_period(period, len(series))

    prices = series.to_numpy()
    deltas = np.diff(prices)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    out = np.full(len(prices), np.nan)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    out[period] = _rsi_value(avg_gain, avg_loss)
    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        out[i + 1] = _rsi_value(avg_gain, avg_loss)
    return pd.Series(out, index=series.index)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else 50.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def macd(values: SeriesLike, fast_period: int = 12, slow_period: int = 26,
         signal_period: int = 9) -> pd.DataFrame:
    """
    Moving Average Convergence Divergence.

    Returns
    -------
    pd.DataFrame
        Columns ``macd`` (EMA fast - EMA slow), ``signal`` (EMA of the line)
        and ``histogram`` (line - signal).

    Raises
    ------
    ValidationError
        If ``fast_period >= slow_period``.
    DataError
        If the series is too short for the slow EMA plus the signal EMA.
    """
    if fast_period >= slow_period:
        raise ValidationError(
            f"MACD fast period ({fast_period}) must be less than slow period ({slow_period})"
        )
    series = _as_series(values)
    _check_period(fast_period, len(series), "fast_period")
    _check_period(slow_period, len(series), "slow_period")

    line = ema(series, fast_period) - ema(series, slow_period)
    signal = pd.Series(_ema_array(line.to_numpy(), signal_period), index=series.index)
    return pd.DataFrame({
        'macd': line,
        'signal': signal,
        'histogram': line - signal,
    }, index=series.index)


def bollinger_bands(values: SeriesLike, period: int = 20, multiplier: float = 2.0,
                    ma_type: str = "sma") -> pd.DataFrame:
    """
    Bollinger Bands.

    ``middle`` is the moving average, the band half-width is ``multiplier``
    times the rolling population standard deviation over ``period``.
    """
    series = _as_series(values)
    _check_period(period, len(series))
    if multiplier <= 0:
        raise ValidationError(f"Bollinger multiplier must be positive, got {multiplier}")

    if str(ma_type).lower() == "ema":
        middle = ema(series, period)
    else:
        middle = sma(series, period)
    band = multiplier * series.rolling(window=period, min_periods=period).std(ddof=0)
    return pd.DataFrame({
        'middle': middle,
        'upper': middle + band,
        'lower': middle - band,
    }, index=series.index)


def vwap(df: pd.DataFrame, reset: Union[str, VwapReset] = VwapReset.NONE,
         period: Optional[int] = None) -> pd.Series:
    """
    Volume Weighted Average Price of the typical price ``(high + low + close) / 3``.

    Parameters
    ----------
    df : pd.DataFrame
        OHLCV frame indexed by timestamp.
    reset : VwapReset or str, default ``none``
        ``none`` accumulates over the whole series, ``daily`` restarts each
        calendar day, ``rolling`` uses the trailing ``period`` bars.
    period : int or None
        Window for ``rolling``. Passing a period with ``reset='none'``
        selects ``rolling``.

    Returns
    -------
    pd.Series
        VWAP; NaN where accumulated volume is zero.
    """
    if len(df) == 0:
        raise DataError("Price series is empty")
    reset = VwapReset(reset)
    if period is not None and reset == VwapReset.NONE:
        reset = VwapReset.ROLLING

    typical = (df['high'] + df['low'] + df['close']) / 3.0
    pv = typical * df['volume']
    volume = df['volume']

    if reset == VwapReset.ROLLING:
        if period is None:
            raise ValidationError("Rolling VWAP requires a period")
        _check_period(period, len(df))
        num = pv.rolling(window=period, min_periods=period).sum()
        den = volume.rolling(window=period, min_periods=period).sum()
    elif reset == VwapReset.DAILY:
        if not isinstance(df.index, pd.DatetimeIndex):
            raise DataError("Daily VWAP reset requires a DatetimeIndex")
        days = df.index.normalize()
        num = pv.groupby(days).cumsum()
        den = volume.groupby(days).cumsum()
    else:
        num = pv.cumsum()
        den = volume.cumsum()

    return (num / den.where(den != 0)).astype(float)


# ============================================================================
# Indicator specifications
# ============================================================================

DEFAULT_PARAMS: Dict[IndicatorType, Dict[str, Any]] = {
    IndicatorType.SMA: {'period': 20, 'source': 'close'},
    IndicatorType.EMA: {'period': 20, 'source': 'close'},
    IndicatorType.RSI: {'period': 14, 'source': 'close'},
    IndicatorType.MACD: {'fastPeriod': 12, 'slowPeriod': 26, 'signalPeriod': 9, 'source': 'close'},
    IndicatorType.BOLLINGER: {'period': 20, 'multiplier': 2.0, 'maType': 'sma', 'source': 'close'},
    IndicatorType.VWAP: {'reset': 'none', 'period': None},
}

_INT_PARAMS = {'period', 'fastPeriod', 'slowPeriod', 'signalPeriod'}


def _coerce_param(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _INT_PARAMS:
        if isinstance(value, bool):
            raise ValidationError(f"Parameter '{key}' must be an integer")
        try:
            as_float = float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Parameter '{key}' must be an integer, got {value!r}") from e
        if not as_float.is_integer():
            raise ValidationError(f"Parameter '{key}' must be an integer, got {value!r}")
        return int(as_float)
    if key == 'multiplier':
        try:
            return float(value)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Parameter 'multiplier' must be numeric, got {value!r}") from e
    return value


@dataclass(frozen=True)
class IndicatorSpec:
    """
    Hashable description of one indicator computation.

    ``params`` is a sorted tuple of ``(name, value)`` pairs with defaults
    filled in, so equal specs share one cached series.
    """

    type: IndicatorType
    params: Tuple[Tuple[str, Any], ...]

    @classmethod
    def create(cls, indicator_type: Union[str, IndicatorType],
               params: Optional[Dict[str, Any]] = None) -> "IndicatorSpec":
        try:
            itype = IndicatorType(indicator_type)
        except ValueError as e:
            raise ValidationError(f"Unknown indicator type: {indicator_type}") from e

        merged = dict(DEFAULT_PARAMS[itype])
        for key, value in (params or {}).items():
            if key == 'stdDev':
                key = 'multiplier'
            if key not in merged:
                raise ValidationError(f"Unknown parameter '{key}' for indicator {itype.value}")
            merged[key] = _coerce_param(key, value)

        source = merged.get('source')
        if source is not None and source not in PRICE_SOURCES:
            raise ValidationError(f"Unknown price source '{source}' for indicator {itype.value}")
        if itype == IndicatorType.MACD and merged['fastPeriod'] >= merged['slowPeriod']:
            raise ValidationError(
                f"MACD fast period ({merged['fastPeriod']}) must be less than slow period ({merged['slowPeriod']})"
            )
        if itype == IndicatorType.VWAP:
            try:
                merged['reset'] = VwapReset(merged['reset']).value
            except ValueError as e:
                raise ValidationError(f"Unknown VWAP reset '{merged['reset']}'") from e
        for key in _INT_PARAMS:
            if merged.get(key) is not None and merged[key] < 1:
                raise ValidationError(f"Parameter '{key}' must be >= 1 for indicator {itype.value}")
        return cls(itype, tuple(sorted(merged.items())))

    @classmethod
    def parse_reference(cls, reference: str) -> "IndicatorSpec":
        """Parse ``"indicator:<type>:key=value:..."``."""
        if not reference.startswith("indicator:"):
            raise ValidationError(f"Invalid indicator reference: {reference!r}")
        parts = reference[len("indicator:"):].split(":")
        params: Dict[str, Any] = {}
        for part in parts[1:]:
            if not part:
                continue
            key, sep, raw = part.partition("=")
            if not sep:
                raise ValidationError(f"Invalid indicator reference parameter: {part!r}")
            try:
                params[key] = float(raw)
            except ValueError:
                params[key] = raw
        return cls.create(parts[0], params)

    def get(self, key: str, default: Any = None) -> Any:
        return dict(self.params).get(key, default)

    def lookback(self) -> int:
        """Index of the first bar with a defined value."""
        p = dict(self.params)
        if self.type in (IndicatorType.SMA, IndicatorType.EMA, IndicatorType.BOLLINGER):
            return p['period'] - 1
        if self.type == IndicatorType.RSI:
            return p['period']
        if self.type == IndicatorType.MACD:
            return p['slowPeriod'] + p['signalPeriod'] - 2
        if p.get('period'):
            return p['period'] - 1
        return 0

    def compute(self, df: pd.DataFrame) -> Union[pd.Series, pd.DataFrame]:
        p = dict(self.params)
        if self.type == IndicatorType.VWAP:
            return vwap(df, reset=p['reset'], period=p['period'])
        source = df[p['source']]
        if self.type == IndicatorType.SMA:
            return sma(source, p['period'])
        if self.type == IndicatorType.EMA:
            return ema(source, p['period'])
        if self.type == IndicatorType.RSI:
            return rsi(source, p['period'])
        if self.type == IndicatorType.MACD:
            return macd(source, p['fastPeriod'], p['slowPeriod'], p['signalPeriod'])
        return bollinger_bands(source, p['period'], p['multiplier'], p['maType'])

    def label(self) -> str:
        args = ",".join(f"{k}={v}" for k, v in self.params if v is not None)
        return f"{self.type.value}({args})"


class IndicatorCache:
    """
    Memoizes indicator outputs for one price frame.

    Owned by a single backtest run, so no locking.
    """

    def __init__(self, df: pd.DataFrame):
        self.df = df
        self.close = df['close'].to_numpy()
        self._values: Dict[IndicatorSpec, Union[pd.Series, pd.DataFrame]] = {}

    def __len__(self) -> int:
        return len(self.df)

    def get(self, spec: IndicatorSpec) -> Union[pd.Series, pd.DataFrame]:
        if spec not in self._values:
            self._values[spec] = spec.compute(self.df)
            logger.debug(f"Computed {spec.label()} over {len(self.df)} bars")
        return self._values[spec]

    def column(self, spec: IndicatorSpec, field: Optional[str] = None) -> np.ndarray:
        """Numpy view of an indicator; ``field`` selects a column of multi-field output."""
        values = self.get(spec)
        if isinstance(values, pd.DataFrame):
            if field is None:
                field = 'macd' if spec.type == IndicatorType.MACD else 'middle'
            values = values[field]
        return values.to_numpy()

    def derived(self, key: Tuple, compute) -> np.ndarray:
        """Memoize a strategy-specific array computed from the frame."""
        if key not in self._values:
            self._values[key] = pd.Series(np.asarray(compute(self.df), dtype=float), index=self.df.index)
        return self._values[key].to_numpy()
