# -*- coding: utf-8 -*-
"""
Backtest simulation engine.

Drives a strategy bar by bar over historical prices. Per bar:

1. protective exits (stop-loss, take-profit, trailing stop) at the close,
2. strategy signal for the bar,
3. sizing and risk checks for actionable signals,
4. simulated fill with slippage and commission, portfolio update,
5. an equity snapshot marked to the bar's close, whether or not a trade
   happened.

A run is atomic: it returns a ``BacktestResult`` or raises. Multi-symbol
batches run independent single-symbol backtests on a thread pool and report
one entry per symbol.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from stratengine.backtesting.analytics import PerformanceMetrics, compute_metrics
from stratengine.backtesting.capital_accounting import EquitySnapshot, PortfolioState, Trade
from stratengine.backtesting.config import BacktestConfig, ExecutionMode, OrderType, SessionSettings
from stratengine.backtesting.execution_engine import ExecutionEngine, SimulatedOrder
from stratengine.backtesting.risk_controls import AccountSnapshot, RiskController
from stratengine.backtesting.risk_manager import RiskManager
from stratengine.data import bars_to_frame
from stratengine.errors import ValidationError
from stratengine.indicators import IndicatorCache
from stratengine.providers import MarketDataProvider, NewsProvider
from stratengine.signals.base import BaseStrategy, PositionSnapshot, PositionState, Signal
from stratengine.signals.builtin import SentimentParams, params_from_dict
from stratengine.signals.registry import StrategyType, build_strategy


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RejectedOrder:
    """A signal that did not become a trade."""

    timestamp: datetime
    side: str
    quantity: int
    price: float
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'side': self.side,
            'quantity': self.quantity,
            'price': self.price,
            'reason': self.reason,
        }


@dataclass(frozen=True)
class BacktestResult:
    """Outcome of one single-symbol run. Immutable once created."""

    symbol: str
    strategy: str
    initial_capital: float
    final_portfolio_value: float
    total_return: float  # Fraction
    total_return_pct: float
    total_return_dollar: float
    win_rate: float
    max_drawdown: float
    sharpe_ratio: float
    sortino_ratio: float
    trades: Tuple[Trade, ...]
    equity_curve: Tuple[EquitySnapshot, ...]
    metrics: PerformanceMetrics
    rejected_orders: Tuple[RejectedOrder, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'strategy': self.strategy,
            'initial_capital': self.initial_capital,
            'final_portfolio_value': self.final_portfolio_value,
            'total_return': self.total_return,
            'total_return_pct': self.total_return_pct,
            'total_return_dollar': self.total_return_dollar,
            'win_rate': self.win_rate,
            'max_drawdown': self.max_drawdown,
            'sharpe_ratio': self.sharpe_ratio,
            'sortino_ratio': self.sortino_ratio,
            'trades': [t.to_dict() for t in self.trades],
            'equity_curve': [s.to_dict() for s in self.equity_curve],
            'metrics': self.metrics.to_dict(),
            'rejected_orders': [r.to_dict() for r in self.rejected_orders],
        }


@dataclass(frozen=True)
class SymbolBacktestResult:
    """One entry of a batch: either a result or an error message."""

    symbol: str
    result: Optional[BacktestResult] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        if self.result is not None:
            return {'symbol': self.symbol, 'result': self.result.to_dict()}
        return {'symbol': self.symbol, 'error': self.error}


class TradingSimulator:
    """
    Per-bar state machine of one run.

    Owns the ``PortfolioState``; nothing else mutates it.
    """

    def __init__(self, symbol: str, strategy: BaseStrategy, settings: SessionSettings,
                 initial_capital: float, shares_per_trade: Optional[int] = None,
                 intraday: bool = False):
        self.symbol = symbol
        self.strategy = strategy
        self.settings = settings
        self.portfolio = PortfolioState(initial_capital)
        self.risk_controller = RiskController(settings, intraday=intraday)
        self.risk_manager = RiskManager(settings, shares_per_trade=shares_per_trade)
        self.execution = ExecutionEngine(settings)
        self.rejected: List[RejectedOrder] = []
        self.pending: Optional[Signal] = None  # Signal waiting for the next bar's open

    def position_snapshot(self, index: int) -> PositionSnapshot:
        position = self.portfolio.positions.get(self.symbol)
        if position is None:
            return PositionSnapshot()
        return PositionSnapshot(
            state=PositionState.LONG,
            entry_price=position.avg_price,
            bars_held=index - position.entry_index,
            entry_time=position.entry_time,
        )

    def _reject(self, timestamp, side: str, quantity: int, price: float, reason: str) -> None:
        logger.debug(f"{self.symbol} {side} rejected at {timestamp}: {reason}")
        self.rejected.append(RejectedOrder(timestamp, side, quantity, price, reason))

    def _order_prices(self, side: str, price: float) -> Tuple[Optional[float], Optional[float]]:
        order_type = OrderType(self.settings.order_type_default)
        limit_price = stop_price = None
        if order_type in (OrderType.LIMIT, OrderType.STOP_LIMIT):
            offset = (self.settings.limit_price_offset_percentage or 0.0) / 100.0
            limit_price = price * (1 + offset) if side == 'BUY' else price * (1 - offset)
        if order_type in (OrderType.STOP, OrderType.STOP_LIMIT):
            stop_price = price
        return limit_price, stop_price

    def buy(self, index: int, timestamp: datetime, price: float, volume: float) -> Optional[Trade]:
        p = self.portfolio
        quantity = self.risk_manager.calculate_quantity(price, p.equity(), p.cash)
        if quantity <= 0:
            self._reject(timestamp, 'BUY', 0, price, "Position size calculation returned 0")
            return None

        account = AccountSnapshot(
            portfolio_value=p.equity(),
            open_positions=p.open_positions(),
            position_value=p.position_value(self.symbol),
            day_start_equity=p.day_start_equity,
        )
        expected_price = self.execution.apply_slippage(price, quantity, 'BUY')
        check = self.risk_controller.check_order('buy', quantity * expected_price, timestamp, account)
        if not check.allowed:
            self._reject(timestamp, 'BUY', quantity, price, check.reason)
            return None

        limit_price, stop_price = self._order_prices('BUY', price)
        result = self.execution.execute(SimulatedOrder(
            self.symbol, 'BUY', quantity, price, self.settings.order_type_default,
            limit_price, stop_price, volume,
        ))
        if not result.executed:
            self._reject(timestamp, 'BUY', quantity, price, result.reason)
            return None

        filled, commission = result.quantity, result.commission
        if filled * result.price + commission > p.cash:
            # Slippage pushed the fill above available cash
            filled = self.risk_manager.calculate_quantity(result.price, p.equity(), p.cash)
            commission = self.execution.calculate_commission(result.price, filled)
            if filled <= 0:
                self._reject(timestamp, 'BUY', quantity, price, "Insufficient cash after slippage")
                return None
        if result.price > expected_price:
            check = self.risk_controller.check_order('buy', filled * result.price, timestamp, account)
            if not check.allowed:
                self._reject(timestamp, 'BUY', filled, result.price, check.reason)
                return None

        return p.apply_buy(self.symbol, filled, result.price, commission, timestamp, index,
                           self.strategy.name, slippage=abs(result.price - price) * filled)

    def sell(self, index: int, timestamp: datetime, price: float, volume: float,
             reason: str = "signal") -> Optional[Trade]:
        p = self.portfolio
        position = p.positions.get(self.symbol)
        if position is None:
            return None

        account = AccountSnapshot(p.equity(), p.open_positions(), position.market_value, p.day_start_equity)
        check = self.risk_controller.check_order('sell', position.market_value, timestamp, account)
        if not check.allowed:
            self._reject(timestamp, 'SELL', position.quantity, price, check.reason)
            return None

        order_type = self.settings.order_type_default if reason == "signal" else OrderType.MARKET.value
        limit_price, stop_price = self._order_prices('SELL', price) if reason == "signal" else (None, None)
        result = self.execution.execute(SimulatedOrder(
            self.symbol, 'SELL', position.quantity, price, order_type, limit_price, stop_price, volume,
        ))
        if not result.executed:
            self._reject(timestamp, 'SELL', position.quantity, price, result.reason)
            return None
        return p.apply_sell(self.symbol, result.quantity, result.price, result.commission,
                            timestamp, index, self.strategy.name, slippage=result.slippage,
                            reason=reason)

    def act(self, signal: Signal, index: int, timestamp: datetime, price: float,
            volume: float) -> Optional[Trade]:
        if signal == Signal.BUY:
            return self.buy(index, timestamp, price, volume)
        if signal == Signal.SELL:
            return self.sell(index, timestamp, price, volume)
        return None

    def check_protective_exit(self, index: int, timestamp: datetime, close: float,
                              volume: float) -> bool:
        position = self.portfolio.positions.get(self.symbol)
        if position is None:
            return False
        reason = self.risk_manager.check_exit(position.avg_price, position.highest_price, close)
        if reason is None:
            return False
        logger.debug(f"{self.symbol} {reason} triggered at {timestamp} price {close:.4f}")
        return self.sell(index, timestamp, close, volume, reason=reason) is not None

    def on_bar(self, cache: IndicatorCache, index: int, next_open: bool = False) -> None:
        """
        Process bar ``index`` of ``cache.df`` and record its equity snapshot.

        With ``next_open`` a signal is held and filled at the following bar's
        open instead of this bar's close.
        """
        frame = cache.df
        row = frame.iloc[index]
        ts = frame.index[index].to_pydatetime()
        close, volume = float(row['close']), float(row['volume'])
        portfolio = self.portfolio
        portfolio.start_day(ts)

        if self.pending is not None:
            open_price = float(row['open'])
            portfolio.mark(self.symbol, open_price)
            self.act(self.pending, index, ts, open_price, volume)
            self.pending = None

        portfolio.mark(self.symbol, close)
        exited = self.check_protective_exit(index, ts, close, volume)

        if not exited and self.strategy.is_ready(index):
            signal = self.strategy.compute_signal(cache, index, self.position_snapshot(index))
            if signal != Signal.HOLD:
                if next_open:
                    self.pending = signal
                else:
                    self.act(signal, index, ts, close, volume)

        portfolio.mark(self.symbol, close)
        portfolio.snapshot(ts)


class BacktestEngine:
    """Runs one backtest over a prepared price frame."""

    def __init__(self, config: BacktestConfig):
        """
        Parameters
        ----------
        config : BacktestConfig
            Run configuration.
        """
        self.config = config

    def run(self, frame: pd.DataFrame, strategy: BaseStrategy) -> BacktestResult:
        """
        Simulate ``strategy`` over ``frame``.

        Parameters
        ----------
        frame : pd.DataFrame
            Validated OHLCV frame (see ``stratengine.data.prepare_price_frame``).
        strategy : BaseStrategy
            Strategy instance; its indicators are computed lazily on first use.

        Returns
        -------
        BacktestResult
        """
        cfg = self.config
        sim = TradingSimulator(
            cfg.symbol, strategy, cfg.settings, cfg.initial_capital,
            shares_per_trade=cfg.shares_per_trade, intraday=cfg.intraday,
        )
        portfolio = sim.portfolio
        cache = IndicatorCache(frame)
        next_open = ExecutionMode(cfg.execution_mode) == ExecutionMode.NEXT_OPEN

        logger.info(f"Backtest {cfg.symbol} {strategy.name}: {len(frame)} bars, "
                    f"warm-up {strategy.warmup()} bars")

        for i in range(len(frame)):
            sim.on_bar(cache, i, next_open=next_open)

        metrics = compute_metrics(portfolio.trades, portfolio.equity_curve,
                                  cfg.initial_capital, cfg.annualization_factor)
        logger.info(f"Backtest {cfg.symbol} {strategy.name} done: {len(portfolio.trades)} trades, "
                    f"return {metrics.total_return_pct:.2f}%")

        return BacktestResult(
            symbol=cfg.symbol,
            strategy=strategy.name,
            initial_capital=cfg.initial_capital,
            final_portfolio_value=metrics.final_value,
            total_return=metrics.total_return,
            total_return_pct=metrics.total_return_pct,
            total_return_dollar=metrics.total_return_dollar,
            win_rate=metrics.win_rate,
            max_drawdown=metrics.max_drawdown,
            sharpe_ratio=metrics.sharpe_ratio,
            sortino_ratio=metrics.sortino_ratio,
            trades=tuple(portfolio.trades),
            equity_curve=tuple(portfolio.equity_curve),
            metrics=metrics,
            rejected_orders=tuple(sim.rejected),
        )


def _news_window(config: BacktestConfig, lookback_days: float):
    start = None
    if config.start is not None:
        start = pd.Timestamp(config.start) - pd.Timedelta(days=math.ceil(lookback_days))
    return start, config.end


def build_config_strategy(config: BacktestConfig,
                          news_provider: Optional[NewsProvider] = None) -> BaseStrategy:
    """Build the strategy described by ``config``, fetching news when needed."""
    strategy_type = StrategyType.parse(config.strategy)
    articles = ()
    if strategy_type == StrategyType.SENTIMENT:
        if news_provider is None:
            raise ValidationError("Sentiment strategy requires a news provider")
        params = params_from_dict(SentimentParams, config.params)
        start, end = _news_window(config, params.lookback_days)
        articles = news_provider.get_news(config.symbol, start, end)
    return build_strategy(strategy_type, config.params, config.buy_conditions,
                          config.sell_conditions, articles)


def run_backtest(config: BacktestConfig, provider: MarketDataProvider,
                 news_provider: Optional[NewsProvider] = None) -> BacktestResult:
    """
    Run one single-symbol backtest.

    Parameters
    ----------
    config : BacktestConfig
        Strategy, symbol, date range, capital and settings.
    provider : MarketDataProvider
        Source of price bars.
    news_provider : NewsProvider, optional
        Required for the sentiment strategy.

    Raises
    ------
    ValidationError
        Bad strategy parameters or condition trees.
    DataError
        Empty/unordered price history or too little data for an indicator.
    ProviderError
        Market data or news could not be fetched.
    """
    strategy = build_config_strategy(config, news_provider)
    frame = bars_to_frame(provider.get_bars(config.symbol, config.start, config.end))
    return BacktestEngine(config).run(frame, strategy)


def run_batch(config: BacktestConfig, symbols: Sequence[str], provider: MarketDataProvider,
              news_provider: Optional[NewsProvider] = None,
              max_workers: int = 4) -> List[SymbolBacktestResult]:
    """
    Run ``config`` for every symbol in parallel.

    Each symbol gets its own strategy, portfolio and indicator cache. A
    failure in one symbol is captured as that symbol's error and never aborts
    the others.

    Returns
    -------
    list of SymbolBacktestResult
        One entry per requested symbol, in request order.
    """
    if not symbols:
        raise ValidationError("At least one symbol is required")

    def run_one(symbol: str) -> SymbolBacktestResult:
        try:
            result = run_backtest(config.for_symbol(symbol), provider, news_provider)
            return SymbolBacktestResult(symbol, result=result)
        except Exception as e:
            logger.error(f"Backtest failed for {symbol}: {e}", exc_info=True)
            return SymbolBacktestResult(symbol, error=f"{type(e).__name__}: {e}")

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(symbols)))) as pool:
        results = list(pool.map(run_one, symbols))

    failed = [r.symbol for r in results if not r.ok]
    if failed:
        logger.warning(f"Batch finished with {len(failed)} failed symbol(s): {', '.join(failed)}")
    return results
