# -*- coding: utf-8 -*-
"""
Price and news data types.

Bars travel through the engine as an OHLCV ``DataFrame`` indexed by a
``DatetimeIndex`` with strictly increasing timestamps.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

import numpy as np
import pandas as pd

from stratengine.errors import DataError


logger = logging.getLogger(__name__)

PRICE_COLUMNS = ['open', 'high', 'low', 'close', 'volume']


@dataclass(frozen=True)
class PriceBar:
    """One OHLCV sample."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class NewsArticle:
    """A news item used by the sentiment strategy."""

    id: str
    ticker: str
    title: str
    published_at: datetime
    description: str = ""
    url: str = ""
    source: str = ""
    tickers: tuple = field(default_factory=tuple)

    def dedupe_key(self) -> str:
        if self.id:
            return self.id
        return f"{self.ticker}-{self.title}-{self.published_at.isoformat()}"


def bars_to_frame(bars: Iterable[PriceBar]) -> pd.DataFrame:
    """
    Convert a sequence of ``PriceBar`` into a validated OHLCV frame.

    Raises
    ------
    DataError
        If the sequence is empty or timestamps are not strictly increasing.
    """
    bars = list(bars)
    if not bars:
        raise DataError("Price series is empty")

    df = pd.DataFrame(
        {
            'open': [b.open for b in bars],
            'high': [b.high for b in bars],
            'low': [b.low for b in bars],
            'close': [b.close for b in bars],
            'volume': [b.volume for b in bars],
        },
        index=pd.DatetimeIndex([pd.Timestamp(b.timestamp) for b in bars], name='timestamp'),
    )
    return prepare_price_frame(df)


def prepare_price_frame(df: pd.DataFrame) -> pd.DataFrame:
    """
    Validate and standardize an OHLCV DataFrame.

    Accepts a frame indexed by datetime or carrying a ``timestamp`` /
    ``datetime`` column. Column names are lower-cased; a missing ``volume``
    column is filled with zeros. Unlike a data cleaner this never reorders or
    drops rows: unordered input is an error.

    Parameters
    ----------
    df : pd.DataFrame
        Raw price data.

    Returns
    -------
    pd.DataFrame
        Copy with float columns open, high, low, close, volume.

    Raises
    ------
    DataError
        Empty frame, missing OHLC columns, non-numeric prices, duplicate or
        decreasing timestamps.
    """
    if df is None or len(df) == 0:
        raise DataError("Price series is empty")

    df_out = df.copy()
    df_out.columns = [str(c).lower() for c in df_out.columns]

    required_cols = ['open', 'high', 'low', 'close']
    missing_cols = [col for col in required_cols if col not in df_out.columns]
    if missing_cols:
        raise DataError(f"Missing required columns: {missing_cols}")
    if 'volume' not in df_out.columns:
        df_out['volume'] = 0.0

    # Handle timestamp
    if isinstance(df_out.index, pd.DatetimeIndex):
        pass
    elif 'timestamp' in df_out.columns:
        df_out['timestamp'] = pd.to_datetime(df_out['timestamp'])
        df_out = df_out.set_index('timestamp')
    elif 'datetime' in df_out.columns:
        df_out['datetime'] = pd.to_datetime(df_out['datetime'])
        df_out = df_out.set_index('datetime')
    else:
        try:
            df_out.index = pd.to_datetime(df_out.index)
        except (ValueError, TypeError) as e:
            raise DataError(
                "Price data must be indexed by datetime or have a 'timestamp' or 'datetime' column"
            ) from e
    df_out.index.name = 'timestamp'

    if df_out.index.has_duplicates:
        raise DataError("Price series contains duplicate timestamps")
    if not df_out.index.is_monotonic_increasing:
        raise DataError("Price series timestamps must be strictly increasing")

    for col in PRICE_COLUMNS:
        df_out[col] = pd.to_numeric(df_out[col], errors='coerce').astype(float)
    if df_out[required_cols].isna().any().any():
        raise DataError("Price series contains missing or non-numeric OHLC values")
    if not np.isfinite(df_out[required_cols].to_numpy()).all():
        raise DataError("Price series contains non-finite OHLC values")
    df_out['volume'] = df_out['volume'].fillna(0.0)

    return df_out[PRICE_COLUMNS]


def frame_to_bars(df: pd.DataFrame) -> List[PriceBar]:
    """Inverse of :func:`bars_to_frame`."""
    return [
        PriceBar(
            timestamp=ts.to_pydatetime(),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for ts, row in zip(df.index, df.itertuples(index=False))
    ]


def slice_frame(df: pd.DataFrame, start: Optional[datetime] = None,
                end: Optional[datetime] = None) -> pd.DataFrame:
    """Return rows with ``start <= timestamp <= end`` (either bound optional)."""
    mask = np.ones(len(df), dtype=bool)
    if start is not None:
        mask &= df.index >= pd.Timestamp(start)
    if end is not None:
        mask &= df.index <= pd.Timestamp(end)
    return df[mask]
