# -*- coding: utf-8 -*-
"""
Risk controls module.

Checks a candidate order against session settings in a fixed order: trading
window, max open positions, max position size, max daily loss. The first
failing check rejects the order with a human-readable reason. Shared by the
backtest simulator and live order submission.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import pandas as pd

from stratengine.backtesting.config import SessionSettings, WEEKDAYS


logger = logging.getLogger(__name__)

# Absorbs float noise when an order is sized exactly at the limit
EPSILON = 1e-6


@dataclass(frozen=True)
class RiskCheckResult:
    """Outcome of a risk check. A rejection is a value, not an exception."""

    allowed: bool
    reason: Optional[str] = None
    check: Optional[str] = None  # Name of the failing check

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'allowed': self.allowed}
        if self.reason is not None:
            out['reason'] = self.reason
        return out


ALLOWED = RiskCheckResult(True)


@dataclass(frozen=True)
class AccountSnapshot:
    """Account state a risk check needs."""

    portfolio_value: float
    open_positions: int  # Number of symbols currently held
    position_value: float = 0.0  # Market value already held in the order's symbol
    day_start_equity: Optional[float] = None  # Equity at the start of the trading day


class RiskController:
    """Applies session risk limits to candidate orders."""

    def __init__(self, settings: SessionSettings, intraday: bool = False):
        """
        Initialize risk controller.

        Parameters
        ----------
        settings : SessionSettings
            Limits to enforce.
        intraday : bool, default False
            Whether bars carry a meaningful time of day. Daily bars are only
            checked against the allowed trading days.
        """
        self.settings = settings
        self.intraday = intraday

    def check_trading_window(self, timestamp: datetime) -> RiskCheckResult:
        ts = pd.Timestamp(timestamp)
        day = WEEKDAYS[ts.weekday()]
        if day not in self.settings.trading_days:
            return RiskCheckResult(
                False,
                f"Trading not allowed on {day}. Allowed days: {', '.join(self.settings.trading_days)}",
                'trading_window',
            )
        if self.intraday and not self.settings.extended_hours:
            current = ts.time()
            if not (self.settings.trading_start <= current <= self.settings.trading_end):
                return RiskCheckResult(
                    False,
                    f"Trading not allowed outside trading hours. Current: {current.strftime('%H:%M')}, "
                    f"Allowed: {self.settings.trading_hours_start} - {self.settings.trading_hours_end}",
                    'trading_window',
                )
        return ALLOWED

    def check_max_open_positions(self, account: AccountSnapshot) -> RiskCheckResult:
        # Adding to an existing position does not open a new one
        if account.position_value > 0:
            return ALLOWED
        if account.open_positions >= self.settings.max_open_positions:
            return RiskCheckResult(
                False,
                f"Maximum open positions limit reached. Current: {account.open_positions}, "
                f"Maximum: {self.settings.max_open_positions}",
                'max_open_positions',
            )
        return ALLOWED

    def check_position_size(self, notional: float, account: AccountSnapshot) -> RiskCheckResult:
        max_value = account.portfolio_value * self.settings.max_position_size_percentage / 100.0
        attempted = account.position_value + notional
        if attempted > max_value + EPSILON:
            return RiskCheckResult(
                False,
                f"Order exceeds max position size limit. Maximum allowed: ${max_value:.2f}, "
                f"Attempted: ${attempted:.2f}",
                'position_size',
            )
        return ALLOWED

    def check_daily_loss(self, account: AccountSnapshot) -> RiskCheckResult:
        s = self.settings
        if account.day_start_equity is None or account.day_start_equity <= 0:
            return ALLOWED
        daily_pnl = account.portfolio_value - account.day_start_equity

        if s.max_daily_loss_absolute is not None and daily_pnl <= -s.max_daily_loss_absolute:
            return RiskCheckResult(
                False,
                f"Daily loss absolute limit exceeded. Loss: ${abs(daily_pnl):.2f}, "
                f"Limit: ${s.max_daily_loss_absolute:.2f}",
                'daily_loss',
            )
        if s.max_daily_loss_percentage is not None:
            max_loss = account.day_start_equity * s.max_daily_loss_percentage / 100.0
            if daily_pnl <= -max_loss:
                return RiskCheckResult(
                    False,
                    f"Daily loss percentage limit exceeded. "
                    f"Loss: {daily_pnl / account.day_start_equity * 100:.2f}%, "
                    f"Limit: {s.max_daily_loss_percentage}%",
                    'daily_loss',
                )
        return ALLOWED

    def check_order(self, side: str, notional: float, timestamp: datetime,
                    account: AccountSnapshot) -> RiskCheckResult:
        """
        Run all checks for one order.

        Parameters
        ----------
        side : 'buy' or 'sell'
            Order side. Sells close exposure and only need the trading window.
        notional : float
            Order value in dollars.
        timestamp : datetime
            Time the order would be placed.
        account : AccountSnapshot
            Current account state.

        Returns
        -------
        RiskCheckResult
            ``allowed=True`` or the first failing check.
        """
        result = self.check_trading_window(timestamp)
        if not result.allowed or side.lower() == 'sell':
            return result

        for result in (
            self.check_max_open_positions(account),
            self.check_position_size(notional, account),
            self.check_daily_loss(account),
        ):
            if not result.allowed:
                logger.debug(f"Order rejected by {result.check}: {result.reason}")
                return result
        return ALLOWED
