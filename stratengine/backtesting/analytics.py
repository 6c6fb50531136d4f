# -*- coding: utf-8 -*-
"""
Performance analytics.

Aggregate metrics derived once from a finished trade log and equity curve.
Every metric is finite except ``profit_factor``, which is ``inf`` when there
are winning trades and no losing ones.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Sequence

import numpy as np

from stratengine.backtesting.capital_accounting import EquitySnapshot, Trade


@dataclass(frozen=True)
class PerformanceMetrics:
    initial_capital: float
    final_value: float
    total_return: float  # Fraction, 0.1 = +10%
    total_return_pct: float
    total_return_dollar: float
    total_trades: int  # Closing trades
    winning_trades: int
    losing_trades: int
    win_rate: float  # In [0, 1]
    max_drawdown: float  # Fraction in [-1, 0]
    sharpe_ratio: float
    sortino_ratio: float
    profit_factor: float
    volatility: float  # Annualized std of period returns
    avg_win: float
    avg_loss: float
    largest_win: float
    largest_loss: float
    avg_trade_duration_hours: float
    total_commission: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def period_returns(equity: Sequence[float]) -> np.ndarray:
    """Simple returns between consecutive equity values; non-finite values dropped."""
    eq = np.asarray(equity, dtype=float)
    if len(eq) < 2:
        return np.array([])
    with np.errstate(divide='ignore', invalid='ignore'):
        returns = np.diff(eq) / eq[:-1]
    return returns[np.isfinite(returns)]


def max_drawdown(equity: Sequence[float]) -> float:
    """
    Largest peak-to-trough decline as a non-positive fraction.

    Returns
    -------
    float
        In [-1, 0]; 0 for an empty or never-declining curve.
    """
    eq = np.asarray(equity, dtype=float)
    if len(eq) == 0:
        return 0.0
    peaks = np.maximum.accumulate(eq)
    with np.errstate(divide='ignore', invalid='ignore'):
        drawdowns = np.where(peaks > 0, (eq - peaks) / peaks, 0.0)
    return float(np.clip(drawdowns.min(), -1.0, 0.0))


def sharpe_ratio(returns: np.ndarray, annualization_factor: float = 252.0) -> float:
    if len(returns) < 2:
        return 0.0
    std = np.std(returns)
    if std == 0 or not np.isfinite(std):
        return 0.0
    return float(np.mean(returns) / std * np.sqrt(annualization_factor))


def sortino_ratio(returns: np.ndarray, annualization_factor: float = 252.0) -> float:
    """Mean return over downside deviation ``sqrt(mean(min(r, 0)^2))``, annualized."""
    if len(returns) < 2:
        return 0.0
    downside = np.sqrt(np.mean(np.minimum(returns, 0.0) ** 2))
    if downside == 0 or not np.isfinite(downside):
        return 0.0
    return float(np.mean(returns) / downside * np.sqrt(annualization_factor))


def profit_factor(pnls: Sequence[float]) -> float:
    gross_win = sum(p for p in pnls if p > 0)
    gross_loss = abs(sum(p for p in pnls if p < 0))
    if gross_loss == 0:
        return float('inf') if gross_win > 0 else 0.0
    return gross_win / gross_loss


def compute_metrics(trades: Sequence[Trade], equity_curve: Sequence[EquitySnapshot],
                    initial_capital: float, annualization_factor: float = 252.0) -> PerformanceMetrics:
    """
    Compute all metrics for one run.

    Parameters
    ----------
    trades : sequence of Trade
        Trade log; only closing trades (with ``realized_pnl``) count as trades.
    equity_curve : sequence of EquitySnapshot
        One snapshot per bar.
    initial_capital : float
        Starting cash.
    annualization_factor : float, default 252
        Periods per year.
    """
    equity = [snap.equity for snap in equity_curve]
    final_value = equity[-1] if equity else initial_capital
    returns = period_returns([initial_capital] + equity)

    closed = [t for t in trades if t.realized_pnl is not None]
    pnls: List[float] = [t.realized_pnl for t in closed]
    wins = [p for p in pnls if p > 0]
    losses = [p for p in pnls if p < 0]
    durations = [t.holding_hours for t in closed if t.holding_hours is not None]

    total_return = (final_value - initial_capital) / initial_capital
    volatility = float(np.std(returns) * np.sqrt(annualization_factor)) if len(returns) >= 2 else 0.0

    return PerformanceMetrics(
        initial_capital=initial_capital,
        final_value=final_value,
        total_return=total_return,
        total_return_pct=total_return * 100.0,
        total_return_dollar=final_value - initial_capital,
        total_trades=len(closed),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=len(wins) / len(closed) if closed else 0.0,
        max_drawdown=max_drawdown(equity),
        sharpe_ratio=sharpe_ratio(returns, annualization_factor),
        sortino_ratio=sortino_ratio(returns, annualization_factor),
        profit_factor=profit_factor(pnls),
        volatility=volatility,
        avg_win=float(np.mean(wins)) if wins else 0.0,
        avg_loss=float(np.mean(losses)) if losses else 0.0,
        largest_win=max(wins) if wins else 0.0,
        largest_loss=min(losses) if losses else 0.0,
        avg_trade_duration_hours=float(np.mean(durations)) if durations else 0.0,
        total_commission=sum(t.commission for t in trades),
    )
