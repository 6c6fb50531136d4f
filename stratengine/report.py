# -*- coding: utf-8 -*-
"""
Terminal reporting for backtest results.

Renders single results and multi-symbol batches with rich tables.
"""

import math
from typing import Optional, Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from stratengine.backtesting.engine import BacktestResult, SymbolBacktestResult


def _colored(value: float, text: str) -> str:
    color = "green" if value >= 0 else "red"
    return f"[{color}]{text}[/{color}]"


def _ratio(value: float) -> str:
    return "inf" if math.isinf(value) else f"{value:.2f}"


def metrics_table(result: BacktestResult) -> Table:
    """Key metrics of one run as a two-column table."""
    m = result.metrics
    table = Table(title=f"{result.symbol} - {result.strategy}", box=box.ROUNDED, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Initial Capital", f"${m.initial_capital:,.2f}")
    table.add_row("Final Value", f"${m.final_value:,.2f}")
    table.add_row("Total Return", _colored(m.total_return, f"{m.total_return_pct:+.2f}% (${m.total_return_dollar:+,.2f})"))
    table.add_row("Trades", f"{m.total_trades} ({m.winning_trades}W / {m.losing_trades}L)")
    table.add_row("Win Rate", f"{m.win_rate * 100:.1f}%")
    table.add_row("Max Drawdown", _colored(m.max_drawdown, f"{m.max_drawdown * 100:.2f}%"))
    table.add_row("Sharpe Ratio", f"{m.sharpe_ratio:.2f}")
    table.add_row("Sortino Ratio", f"{m.sortino_ratio:.2f}")
    table.add_row("Profit Factor", _ratio(m.profit_factor))
    table.add_row("Volatility", f"{m.volatility * 100:.2f}%")
    table.add_row("Avg Win / Loss", f"${m.avg_win:,.2f} / ${m.avg_loss:,.2f}")
    table.add_row("Avg Holding", f"{m.avg_trade_duration_hours:.1f}h")
    table.add_row("Commission", f"${m.total_commission:,.2f}")
    if result.rejected_orders:
        table.add_row("Rejected Orders", str(len(result.rejected_orders)))
    return table


def trades_table(result: BacktestResult, limit: int = 20) -> Table:
    """Most recent trades, newest first."""
    table = Table(title="Recent Trades", box=box.ROUNDED)
    table.add_column("Time", style="cyan")
    table.add_column("Side", style="magenta")
    table.add_column("Qty", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Reason", style="yellow")
    table.add_column("PnL", justify="right")

    trades = result.trades[-limit:]
    if not trades:
        table.add_row("No trades", "", "", "", "", "")
        return table
    for trade in reversed(trades):
        pnl = "" if trade.realized_pnl is None else _colored(trade.realized_pnl, f"{trade.realized_pnl:+.2f}")
        table.add_row(
            trade.timestamp.strftime("%Y-%m-%d %H:%M"),
            trade.action,
            str(trade.quantity),
            f"${trade.price:.2f}",
            trade.reason,
            pnl,
        )
    return table


def batch_table(results: Sequence[SymbolBacktestResult]) -> Table:
    """One row per symbol of a batch run."""
    table = Table(title="Backtest Summary", box=box.ROUNDED)
    table.add_column("Symbol", style="cyan")
    table.add_column("Return", justify="right")
    table.add_column("Trades", justify="right")
    table.add_column("Win Rate", justify="right")
    table.add_column("Max DD", justify="right")
    table.add_column("Sharpe", justify="right")
    table.add_column("Status")

    for entry in results:
        if not entry.ok:
            table.add_row(entry.symbol, "", "", "", "", "", f"[red]{entry.error}[/red]")
            continue
        r = entry.result
        table.add_row(
            entry.symbol,
            _colored(r.total_return, f"{r.total_return_pct:+.2f}%"),
            str(r.metrics.total_trades),
            f"{r.win_rate * 100:.1f}%",
            f"{r.max_drawdown * 100:.2f}%",
            f"{r.sharpe_ratio:.2f}",
            "[green]ok[/green]",
        )
    return table


def print_batch(results: Sequence[SymbolBacktestResult], console: Optional[Console] = None,
                show_trades: bool = False) -> None:
    """Print a batch summary, then per-symbol details."""
    console = console or Console()
    console.print(batch_table(results))
    for entry in results:
        if entry.ok:
            console.print(metrics_table(entry.result))
            if show_trades:
                console.print(trades_table(entry.result))
    failed = [r for r in results if not r.ok]
    if failed:
        console.print(Panel(
            "\n".join(f"{r.symbol}: {r.error}" for r in failed),
            title="Failed Symbols", border_style="red",
        ))
