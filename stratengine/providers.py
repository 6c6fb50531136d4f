# -*- coding: utf-8 -*-
"""
Market data and news providers.

Providers return ordered ``PriceBar`` sequences or ``NewsArticle`` lists for a
(symbol, start, end) request. HTTP providers use a bounded timeout and raise
``ProviderError`` on any failure; nothing here retries.
"""

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, date, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd
import requests

from stratengine.data import PriceBar, NewsArticle, prepare_price_frame, frame_to_bars, slice_frame
from stratengine.errors import ProviderError


logger = logging.getLogger(__name__)

DateLike = Union[str, date, datetime]


def _to_timestamp(value: Optional[DateLike]) -> Optional[pd.Timestamp]:
    if value is None:
        return None
    return pd.Timestamp(value)


class MarketDataProvider(ABC):
    """Source of historical OHLCV bars."""

    @abstractmethod
    def get_bars(self, symbol: str, start: Optional[DateLike] = None,
                 end: Optional[DateLike] = None) -> List[PriceBar]:
        """Return bars for ``symbol`` with ``start <= timestamp <= end``."""


class NewsProvider(ABC):
    """Source of news articles for the sentiment strategy."""

    @abstractmethod
    def get_news(self, symbol: str, start: Optional[DateLike] = None,
                 end: Optional[DateLike] = None) -> List[NewsArticle]:
        """Return articles about ``symbol`` published in the range."""


class InMemoryMarketDataProvider(MarketDataProvider):
    """Serves bars from frames supplied up front (tests, notebooks)."""

    def __init__(self, frames: Dict[str, pd.DataFrame]):
        self._frames = {symbol.upper(): prepare_price_frame(df) for symbol, df in frames.items()}

    def get_bars(self, symbol, start=None, end=None):
        df = self._frames.get(symbol.upper())
        if df is None:
            raise ProviderError(f"No price data for symbol {symbol}")
        return frame_to_bars(slice_frame(df, _to_timestamp(start), _to_timestamp(end)))


class CsvMarketDataProvider(MarketDataProvider):
    """
    Reads ``<data_dir>/<SYMBOL>.csv`` files.

    Each file needs a ``timestamp`` (or ``datetime``/``date``) column plus
    open, high, low, close and optionally volume.
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)

    def _path(self, symbol: str) -> Path:
        return self.data_dir / f"{symbol.upper()}.csv"

    def get_bars(self, symbol, start=None, end=None):
        path = self._path(symbol)
        if not path.exists():
            raise ProviderError(f"No data file for {symbol}: {path}")
        try:
            raw = pd.read_csv(path)
        except (OSError, pd.errors.ParserError) as e:
            raise ProviderError(f"Failed to read {path}: {e}") from e

        raw.columns = [str(c).lower() for c in raw.columns]
        if 'timestamp' not in raw.columns and 'date' in raw.columns:
            raw = raw.rename(columns={'date': 'timestamp'})
        df = prepare_price_frame(raw)
        logger.debug(f"Loaded {len(df)} bars for {symbol} from {path}")
        return frame_to_bars(slice_frame(df, _to_timestamp(start), _to_timestamp(end)))


class CachedMarketDataProvider(MarketDataProvider):
    """
    Thread-safe memoizing wrapper around another provider.

    Results are keyed by ``(symbol, start, end)``. Concurrent batch runs share
    one instance, so access to the cache dict is guarded by a lock; the
    underlying fetch happens outside the lock.
    """

    def __init__(self, provider: MarketDataProvider):
        self.provider = provider
        self._cache: Dict[Tuple[str, Optional[str], Optional[str]], List[PriceBar]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    @staticmethod
    def _key(symbol, start, end):
        fmt = lambda v: None if v is None else _to_timestamp(v).isoformat()
        return (symbol.upper(), fmt(start), fmt(end))

    def get_bars(self, symbol, start=None, end=None):
        key = self._key(symbol, start, end)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self.hits += 1
                return list(cached)
            self.misses += 1

        bars = self.provider.get_bars(symbol, start, end)
        with self._lock:
            self._cache.setdefault(key, list(bars))
        return list(bars)

    def clear(self):
        with self._lock:
            self._cache.clear()


class PolygonMarketDataProvider(MarketDataProvider):
    """Aggregate bars from the Polygon.io REST API."""

    BASE_URL = "https://api.polygon.io"

    def __init__(self, api_key: str, timespan: str = "day", multiplier: int = 1,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        if not api_key:
            raise ValueError("Polygon API key must be provided")
        self.api_key = api_key
        self.timespan = timespan
        self.multiplier = multiplier
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_bars(self, symbol, start=None, end=None):
        if start is None or end is None:
            raise ValueError("Polygon requests need both start and end dates")
        start_s = _to_timestamp(start).strftime('%Y-%m-%d')
        end_s = _to_timestamp(end).strftime('%Y-%m-%d')
        url = (f"{self.BASE_URL}/v2/aggs/ticker/{symbol.upper()}/range/"
               f"{self.multiplier}/{self.timespan}/{start_s}/{end_s}")
        params = {'adjusted': 'true', 'sort': 'asc', 'limit': 50000, 'apiKey': self.api_key}

        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Polygon request for {symbol} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Polygon returned invalid JSON for {symbol}") from e

        results = payload.get('results') or []
        bars = []
        for item in results:
            try:
                bars.append(PriceBar(
                    timestamp=datetime.fromtimestamp(item['t'] / 1000.0, tz=timezone.utc).replace(tzinfo=None),
                    open=float(item['o']),
                    high=float(item['h']),
                    low=float(item['l']),
                    close=float(item['c']),
                    volume=float(item.get('v', 0.0)),
                ))
            except (KeyError, TypeError) as e:
                raise ProviderError(f"Malformed Polygon bar for {symbol}: {item}") from e
        logger.info(f"Polygon returned {len(bars)} bars for {symbol} {start_s}..{end_s}")
        return bars


class InMemoryNewsProvider(NewsProvider):
    """News from a prepared list of articles."""

    def __init__(self, articles: List[NewsArticle]):
        self.articles = list(articles)

    def get_news(self, symbol, start=None, end=None):
        start_ts, end_ts = _to_timestamp(start), _to_timestamp(end)
        symbol = symbol.upper()
        out = []
        for article in self.articles:
            if article.ticker.upper() != symbol and symbol not in [t.upper() for t in article.tickers]:
                continue
            ts = pd.Timestamp(article.published_at)
            if start_ts is not None and ts < start_ts:
                continue
            if end_ts is not None and ts > end_ts:
                continue
            out.append(article)
        return out


class TiingoNewsProvider(NewsProvider):
    """News articles from the Tiingo News API."""

    BASE_URL = "https://api.tiingo.com/tiingo/news"

    def __init__(self, api_key: str, limit: int = 1000, timeout: float = 10.0,
                 session: Optional[requests.Session] = None):
        if not api_key:
            raise ValueError("Tiingo API key must be provided")
        self.api_key = api_key
        self.limit = limit
        self.timeout = timeout
        self.session = session or requests.Session()

    def get_news(self, symbol, start=None, end=None):
        params = {'tickers': symbol.upper(), 'token': self.api_key, 'limit': self.limit}
        if start is not None:
            params['startDate'] = _to_timestamp(start).strftime('%Y-%m-%d')
        if end is not None:
            params['endDate'] = _to_timestamp(end).strftime('%Y-%m-%d')

        try:
            response = self.session.get(self.BASE_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            items = response.json() or []
        except requests.exceptions.RequestException as e:
            raise ProviderError(f"Tiingo news request for {symbol} failed: {e}") from e
        except ValueError as e:
            raise ProviderError(f"Tiingo returned invalid JSON for {symbol}") from e

        return [self._to_article(item, symbol) for item in items]

    @staticmethod
    def _to_article(item: dict, fallback_ticker: str) -> NewsArticle:
        published = item.get('publishedDate') or item.get('publishedAt')
        if not published:
            raise ProviderError(f"Tiingo article without publish date: {item.get('title')}")
        published_at = pd.Timestamp(published)
        if published_at.tzinfo is not None:
            published_at = published_at.tz_convert('UTC').tz_localize(None)
        tickers = tuple(t.upper() for t in (item.get('tickers') or []))
        return NewsArticle(
            id=str(item['id']) if item.get('id') is not None else "",
            ticker=tickers[0] if tickers else fallback_ticker.upper(),
            title=item.get('title') or "",
            description=item.get('description') or "",
            url=item.get('url') or item.get('articleUrl') or "",
            source=item.get('source') or "",
            published_at=published_at.to_pydatetime(),
            tickers=tickers,
        )
