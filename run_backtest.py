# -*- coding: utf-8 -*-
"""
Main entry point for backtesting.

Example
-------
    python run_backtest.py meanReversion AAPL MSFT --start 2023-01-01 --end 2023-06-01
"""

import sys

from stratengine.cli import main


if __name__ == "__main__":
    sys.exit(main())
