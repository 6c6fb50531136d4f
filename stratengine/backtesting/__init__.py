# -*- coding: utf-8 -*-
"""
Backtesting engine module.

Provides modular components for simulated order execution, risk
enforcement, capital accounting and performance analytics, plus the
bar-by-bar engine that ties them together.
"""

from stratengine.backtesting.analytics import PerformanceMetrics, compute_metrics
from stratengine.backtesting.capital_accounting import EquitySnapshot, PortfolioState, Position, Trade
from stratengine.backtesting.config import BacktestConfig, SessionSettings, validate_settings
from stratengine.backtesting.engine import (
    BacktestEngine,
    BacktestResult,
    RejectedOrder,
    SymbolBacktestResult,
    TradingSimulator,
    run_backtest,
    run_batch,
)
from stratengine.backtesting.execution_engine import ExecutionEngine, ExecutionResult, SimulatedOrder
from stratengine.backtesting.risk_controls import AccountSnapshot, RiskCheckResult, RiskController
from stratengine.backtesting.risk_manager import RiskManager

__all__ = [
    'PerformanceMetrics',
    'compute_metrics',
    'EquitySnapshot',
    'PortfolioState',
    'Position',
    'Trade',
    'BacktestConfig',
    'SessionSettings',
    'validate_settings',
    'BacktestEngine',
    'BacktestResult',
    'RejectedOrder',
    'SymbolBacktestResult',
    'TradingSimulator',
    'run_backtest',
    'run_batch',
    'ExecutionEngine',
    'ExecutionResult',
    'SimulatedOrder',
    'AccountSnapshot',
    'RiskCheckResult',
    'RiskController',
    'RiskManager',
]
