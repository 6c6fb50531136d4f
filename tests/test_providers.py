# -*- coding: utf-8 -*-
"""
Tests for price frame preparation and the market data / news providers.
"""

from datetime import datetime
from unittest.mock import MagicMock

import numpy as np
import pandas as pd
import pytest
import requests

from conftest import make_frame
from stratengine.data import NewsArticle, PriceBar, bars_to_frame, frame_to_bars, prepare_price_frame
from stratengine.errors import DataError, ProviderError
from stratengine.providers import (
    CachedMarketDataProvider,
    CsvMarketDataProvider,
    InMemoryMarketDataProvider,
    InMemoryNewsProvider,
    PolygonMarketDataProvider,
    TiingoNewsProvider,
)


def http_session(payload=None, error=None):
    session = MagicMock()
    if error is not None:
        session.get.side_effect = error
    else:
        response = MagicMock()
        response.json.return_value = payload
        session.get.return_value = response
    return session


class TestPriceFrames:

    def test_timestamp_column_and_missing_volume(self):
        raw = pd.DataFrame({
            'Timestamp': ['2023-01-02', '2023-01-03'],
            'Open': [1.0, 2.0], 'High': [1.5, 2.5], 'Low': [0.5, 1.5], 'Close': [1.2, 2.2],
        })
        df = prepare_price_frame(raw)
        assert list(df.columns) == ['open', 'high', 'low', 'close', 'volume']
        assert isinstance(df.index, pd.DatetimeIndex)
        assert (df['volume'] == 0.0).all()

    @pytest.mark.parametrize("frame, message", [
        (pd.DataFrame(), "empty"),
        (pd.DataFrame({'open': [1.0], 'close': [1.0]}, index=pd.DatetimeIndex(['2023-01-02'])), "Missing"),
        (make_frame([1.0, 2.0]).iloc[::-1], "increasing"),
        (pd.concat([make_frame([1.0]), make_frame([2.0])]), "duplicate"),
    ])
    def test_invalid_frames(self, frame, message):
        with pytest.raises(DataError, match=message):
            prepare_price_frame(frame)

    def test_non_numeric_prices(self):
        frame = make_frame([1.0, 2.0]).astype(object)
        frame.iloc[1, 3] = 'n/a'
        with pytest.raises(DataError, match="non-numeric"):
            prepare_price_frame(frame)

    def test_bars_frame_conversion(self):
        frame = make_frame([10.0, 11.0, 12.0])
        bars = frame_to_bars(frame)
        assert isinstance(bars[0], PriceBar)
        assert bars[2].close == 12.0
        assert np.allclose(bars_to_frame(bars)['close'], frame['close'])

    def test_empty_bars(self):
        with pytest.raises(DataError):
            bars_to_frame([])


class TestInMemoryAndCsv:

    def test_in_memory_range_is_inclusive(self):
        provider = InMemoryMarketDataProvider({'aapl': make_frame(np.arange(1.0, 11.0))})
        bars = provider.get_bars('AAPL', '2023-01-03', '2023-01-05')
        assert [b.close for b in bars] == [2.0, 3.0, 4.0]

    def test_unknown_symbol(self):
        with pytest.raises(ProviderError):
            InMemoryMarketDataProvider({}).get_bars('AAPL')

    def test_csv(self, tmp_path):
        make_frame([10.0, 11.0, 12.0]).reset_index().rename(columns={'timestamp': 'date'}).to_csv(
            tmp_path / 'MSFT.csv', index=False)
        provider = CsvMarketDataProvider(tmp_path)
        bars = provider.get_bars('msft', start='2023-01-03')
        assert [b.close for b in bars] == [11.0, 12.0]
        with pytest.raises(ProviderError, match="No data file"):
            provider.get_bars('AAPL')


class TestCachedProvider:

    def test_hits_and_misses(self):
        inner = InMemoryMarketDataProvider({'AAPL': make_frame(np.arange(1.0, 6.0))})
        cached = CachedMarketDataProvider(inner)
        first = cached.get_bars('AAPL', '2023-01-02', '2023-01-06')
        second = cached.get_bars('aapl', datetime(2023, 1, 2), '2023-01-06')
        assert first == second
        assert (cached.hits, cached.misses) == (1, 1)
        cached.clear()
        cached.get_bars('AAPL', '2023-01-02', '2023-01-06')
        assert cached.misses == 2

    def test_errors_not_cached(self):
        cached = CachedMarketDataProvider(InMemoryMarketDataProvider({}))
        for _ in range(2):
            with pytest.raises(ProviderError):
                cached.get_bars('AAPL')
        assert cached.misses == 2


class TestPolygon:

    def test_parses_aggregates(self):
        session = http_session({'results': [
            {'t': 1672704000000, 'o': 1.0, 'h': 2.0, 'l': 0.5, 'c': 1.5, 'v': 100},
            {'t': 1672790400000, 'o': 1.5, 'h': 2.5, 'l': 1.0, 'c': 2.0},
        ]})
        provider = PolygonMarketDataProvider("key", session=session)
        bars = provider.get_bars('aapl', '2023-01-03', '2023-01-04')
        assert bars[0].timestamp == datetime(2023, 1, 3)
        assert bars[1].volume == 0.0
        url = session.get.call_args.args[0]
        assert url.endswith('/v2/aggs/ticker/AAPL/range/1/day/2023-01-03/2023-01-04')
        assert session.get.call_args.kwargs['timeout'] == 10.0

    def test_needs_date_range(self):
        with pytest.raises(ValueError):
            PolygonMarketDataProvider("key", session=http_session({})).get_bars('AAPL')

    def test_request_errors_wrapped(self):
        session = http_session(error=requests.exceptions.ConnectionError("down"))
        with pytest.raises(ProviderError, match="Polygon request for AAPL failed"):
            PolygonMarketDataProvider("key", session=session).get_bars('AAPL', '2023-01-01', '2023-02-01')

    def test_malformed_bar(self):
        session = http_session({'results': [{'t': 1672704000000, 'o': 1.0}]})
        with pytest.raises(ProviderError, match="Malformed"):
            PolygonMarketDataProvider("key", session=session).get_bars('AAPL', '2023-01-01', '2023-02-01')


class TestNewsProviders:

    def test_in_memory_filters_symbol_and_range(self):
        articles = [
            NewsArticle('1', 'AAPL', 'a', datetime(2023, 1, 2)),
            NewsArticle('2', 'MSFT', 'b', datetime(2023, 1, 3), tickers=('MSFT', 'AAPL')),
            NewsArticle('3', 'AAPL', 'c', datetime(2023, 2, 1)),
        ]
        provider = InMemoryNewsProvider(articles)
        found = provider.get_news('aapl', '2023-01-01', '2023-01-31')
        assert [a.id for a in found] == ['1', '2']

    def test_tiingo(self):
        session = http_session([{
            'id': 7, 'title': 'Apple beats', 'description': 'desc', 'url': 'http://x',
            'source': 'wire', 'publishedDate': '2023-01-03T14:00:00Z', 'tickers': ['aapl'],
        }])
        articles = TiingoNewsProvider("token", session=session).get_news('AAPL', '2023-01-01')
        assert articles[0].id == '7'
        assert articles[0].ticker == 'AAPL'
        assert articles[0].published_at == datetime(2023, 1, 3, 14, 0)
        assert session.get.call_args.kwargs['params']['startDate'] == '2023-01-01'

    def test_tiingo_errors_wrapped(self):
        session = http_session(error=requests.exceptions.Timeout("slow"))
        with pytest.raises(ProviderError):
            TiingoNewsProvider("token", session=session).get_news('AAPL')
