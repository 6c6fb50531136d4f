# -*- coding: utf-8 -*-
"""
Paper trading session.

Runs a strategy forward against a market data provider on its own worker
thread. Every ``interval`` seconds the session fetches the symbol's bars,
feeds bars it has not seen yet through the same per-bar simulator the
backtester uses, and publishes what happened on an outbound queue.

A session owns its thread, its stop event and its queue. Callers keep a
reference to the session object; there is no process-wide registry.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from stratengine.backtesting.config import SessionSettings
from stratengine.backtesting.engine import TradingSimulator
from stratengine.data import bars_to_frame
from stratengine.indicators import IndicatorCache
from stratengine.providers import DateLike, MarketDataProvider
from stratengine.signals.base import BaseStrategy


logger = logging.getLogger(__name__)


class SessionEventType(Enum):
    """Kinds of events a session publishes."""
    STARTED = "started"
    TRADE = "trade"
    REJECTED = "rejected"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True)
class SessionEvent:
    """One message on a session's outbound queue."""

    type: SessionEventType
    timestamp: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'type': self.type.value, 'timestamp': self.timestamp.isoformat(), 'data': self.data}


class PaperTradingSession:
    """Forward-runs one strategy on one symbol with simulated fills."""

    def __init__(self, symbol: str, strategy: BaseStrategy, provider: MarketDataProvider,
                 settings: Optional[SessionSettings] = None, initial_capital: float = 10000.0,
                 interval: float = 60.0, start: Optional[DateLike] = None, intraday: bool = False):
        """
        Initialize paper trading session.

        Parameters
        ----------
        symbol : str
            Symbol to trade.
        strategy : BaseStrategy
            Strategy producing signals.
        provider : MarketDataProvider
            Source of bars. Each poll requests bars from ``start`` onwards.
        settings : SessionSettings, optional
            Risk and execution settings. Defaults to ``SessionSettings()``.
        initial_capital : float, default 10000.0
            Starting cash.
        interval : float, default 60.0
            Seconds between polls.
        start : str, date or datetime, optional
            First bar to request.
        intraday : bool, default False
            Whether to enforce trading hours on the bars.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self.symbol = symbol
        self.provider = provider
        self.interval = interval
        self.start_date = start
        self.simulator = TradingSimulator(symbol, strategy, settings or SessionSettings(),
                                          initial_capital, intraday=intraday)
        self.events: "queue.Queue[SessionEvent]" = queue.Queue()
        self.bars_processed = 0
        self._last_timestamp = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        # Serializes polls between the worker and direct poll_once() callers
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _publish(self, event_type: SessionEventType, **data) -> None:
        self.events.put(SessionEvent(event_type, datetime.now(), data))

    def poll_once(self) -> int:
        """
        Fetch bars and process the ones not seen yet.

        Returns
        -------
        int
            Number of new bars processed.
        """
        with self._lock:
            frame = bars_to_frame(self.provider.get_bars(self.symbol, self.start_date))
            if self._last_timestamp is not None:
                first_new = int(frame.index.searchsorted(self._last_timestamp, side='right'))
            else:
                first_new = 0
            if first_new >= len(frame):
                return 0

            sim = self.simulator
            cache = IndicatorCache(frame)
            for i in range(first_new, len(frame)):
                n_trades, n_rejected = len(sim.portfolio.trades), len(sim.rejected)
                sim.on_bar(cache, i)
                for trade in sim.portfolio.trades[n_trades:]:
                    logger.info(f"Paper {trade.action} {trade.quantity} {self.symbol} @ {trade.price:.4f}")
                    self._publish(SessionEventType.TRADE, **trade.to_dict())
                for rejected in sim.rejected[n_rejected:]:
                    self._publish(SessionEventType.REJECTED, **rejected.to_dict())

            self._last_timestamp = frame.index[-1]
            processed = len(frame) - first_new
            self.bars_processed += processed
            return processed

    def _run(self) -> None:
        self._publish(SessionEventType.STARTED, symbol=self.symbol,
                      strategy=self.simulator.strategy.name)
        while not self._stop_event.is_set():
            try:
                processed = self.poll_once()
                if processed:
                    logger.debug(f"Paper session {self.symbol}: processed {processed} new bar(s)")
            except Exception as e:
                logger.error(f"Error in paper session for {self.symbol}: {e}", exc_info=True)
                self._publish(SessionEventType.ERROR, error=f"{type(e).__name__}: {e}")
            self._stop_event.wait(self.interval)
        self._publish(SessionEventType.STOPPED, symbol=self.symbol, **self.summary())

    def start(self) -> None:
        """Start polling on a background thread."""
        if self.is_running:
            raise RuntimeError(f"Paper session for {self.symbol} is already running")
        logger.info(f"Starting paper session for {self.symbol} every {self.interval}s")
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=f"paper-{self.symbol}", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the worker to stop and wait for it."""
        if self._thread is None:
            return
        logger.info(f"Stopping paper session for {self.symbol}")
        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None

    def drain_events(self) -> List[SessionEvent]:
        """Remove and return every queued event."""
        drained = []
        while True:
            try:
                drained.append(self.events.get_nowait())
            except queue.Empty:
                return drained

    def summary(self) -> Dict[str, Any]:
        portfolio = self.simulator.portfolio
        return {
            'bars_processed': self.bars_processed,
            'cash': portfolio.cash,
            'equity': portfolio.equity(),
            'open_positions': portfolio.open_positions(),
            'trades': len(portfolio.trades),
            'rejected': len(self.simulator.rejected),
        }
