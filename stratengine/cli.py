# -*- coding: utf-8 -*-
"""
Command line entry point for backtests.

Runs one strategy over one or more symbols and prints a rich summary.
Prices come from ``<data-dir>/<SYMBOL>.csv`` files, or from Polygon when
``--polygon`` is given and ``POLYGON_API_KEY`` is set.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from rich.console import Console

from stratengine.backtesting.config import BacktestConfig, ExecutionMode, SessionSettings
from stratengine.backtesting.engine import run_batch
from stratengine.config import Config, setup_logging
from stratengine.errors import StrategyEngineError
from stratengine.providers import (
    CachedMarketDataProvider,
    CsvMarketDataProvider,
    PolygonMarketDataProvider,
    TiingoNewsProvider,
)
from stratengine.report import print_batch
from stratengine.signals.registry import StrategyType


logger = logging.getLogger(__name__)


def _load_json(path: Optional[str]) -> Any:
    if path is None:
        return None
    with open(path, 'r') as f:
        return json.load(f)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Backtest a trading strategy over historical prices')

    parser.add_argument('strategy', choices=[t.value for t in StrategyType],
                        help='Strategy to run')
    parser.add_argument('symbols', nargs='+', help='Symbols to backtest')
    parser.add_argument('--start', type=str, default=None, help='First date (YYYY-MM-DD)')
    parser.add_argument('--end', type=str, default=None, help='Last date (YYYY-MM-DD)')
    parser.add_argument('--capital', type=float, default=None,
                        help='Initial capital (default: from STRATENGINE_INITIAL_CAPITAL or 10000)')
    parser.add_argument('--data-dir', type=str, default=None,
                        help='Directory of <SYMBOL>.csv files (default: from STRATENGINE_DATA_DIR)')
    parser.add_argument('--polygon', action='store_true',
                        help='Fetch prices from Polygon instead of CSV files')
    parser.add_argument('--params', type=str, default=None,
                        help='JSON file with strategy parameters')
    parser.add_argument('--conditions', type=str, default=None,
                        help='JSON file with {"buy": ..., "sell": ...} condition trees (custom strategy)')
    parser.add_argument('--settings', type=str, default=None,
                        help='JSON file with session settings')
    parser.add_argument('--execution-mode', choices=[m.value for m in ExecutionMode], default='close',
                        help='Fill signals at the bar close or the next bar open')
    parser.add_argument('--workers', type=int, default=None,
                        help='Worker threads for multi-symbol runs (default: from STRATENGINE_MAX_WORKERS)')
    parser.add_argument('--show-trades', action='store_true', help='Print recent trades per symbol')
    parser.add_argument('--output', type=str, default=None, help='Write results as JSON to this file')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the CLI.

    Returns
    -------
    int
        0 when at least one symbol succeeded, 1 when every symbol failed,
        2 for invalid input.
    """
    args = build_parser().parse_args(argv)
    config = Config()
    setup_logging(config)
    console = Console()

    try:
        conditions = _load_json(args.conditions) or {}
        backtest_config = BacktestConfig(
            strategy=args.strategy,
            symbol=args.symbols[0],
            start=args.start,
            end=args.end,
            initial_capital=args.capital if args.capital is not None else config.initial_capital,
            params=_load_json(args.params),
            buy_conditions=conditions.get('buy'),
            sell_conditions=conditions.get('sell'),
            settings=SessionSettings.from_dict(_load_json(args.settings)),
            execution_mode=args.execution_mode,
        )
    except (OSError, ValueError, StrategyEngineError) as e:
        console.print(f"[red]Error:[/red] {e}")
        return 2

    if args.polygon:
        if not config.polygon_api_key:
            console.print("[red]Error:[/red] POLYGON_API_KEY must be set to use --polygon")
            return 2
        provider = PolygonMarketDataProvider(config.polygon_api_key, timeout=config.provider_timeout)
    else:
        provider = CsvMarketDataProvider(Path(args.data_dir or config.data_dir))
    provider = CachedMarketDataProvider(provider)

    news_provider = None
    if config.tiingo_api_key:
        news_provider = TiingoNewsProvider(config.tiingo_api_key, timeout=config.provider_timeout)

    logger.info(f"Running {args.strategy} over {len(args.symbols)} symbol(s)")
    results = run_batch(backtest_config, args.symbols, provider, news_provider,
                        max_workers=args.workers or config.max_workers)
    print_batch(results, console=console, show_trades=args.show_trades)

    if args.output:
        with open(args.output, 'w') as f:
            json.dump([r.to_dict() for r in results], f, indent=2, default=str)
        console.print(f"Results written to {args.output}")

    return 0 if any(r.ok for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
