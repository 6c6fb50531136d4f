# -*- coding: utf-8 -*-
"""
Risk manager module.

Position sizing from the session sizing method, plus per-position exit rules
(stop-loss, take-profit, trailing stop).
"""

import math
from typing import Optional

from stratengine.backtesting.config import SessionSettings, SizingMethod


class RiskManager:
    """Handles position sizing and protective exits."""

    def __init__(self, settings: SessionSettings, shares_per_trade: Optional[int] = None):
        """
        Initialize risk manager.

        Parameters
        ----------
        settings : SessionSettings
            Sizing method/value and exit thresholds.
        shares_per_trade : int or None, default None
            Fixed share count overriding the sizing method.
        """
        self.settings = settings
        self.shares_per_trade = shares_per_trade

    def target_notional(self, portfolio_value: float) -> float:
        """
        Dollar size of a new position.

        ``fixed`` uses ``position_size_value`` dollars, ``percentage`` and
        ``kelly`` use that percent of portfolio value, ``equal_weight`` splits
        the portfolio evenly across ``max_open_positions``. The result is not
        capped here: the max position size check rejects oversized orders.
        """
        method = SizingMethod(self.settings.position_sizing_method)
        value = self.settings.position_size_value
        if method == SizingMethod.FIXED:
            return float(value)
        if method == SizingMethod.EQUAL_WEIGHT:
            return portfolio_value / self.settings.max_open_positions
        # percentage and kelly (value is the Kelly fraction in percent)
        return portfolio_value * value / 100.0

    def calculate_quantity(self, price: float, portfolio_value: float, cash: float) -> int:
        """
        Whole shares to buy at ``price``.

        Parameters
        ----------
        price : float
            Expected fill price.
        portfolio_value : float
            Current equity.
        cash : float
            Available cash; the quantity never costs more than this,
            commission included.

        Returns
        -------
        int
            Share count (0 when nothing is affordable).
        """
        if price <= 0:
            return 0
        if self.shares_per_trade is not None:
            quantity = self.shares_per_trade
        else:
            quantity = math.floor(self.target_notional(portfolio_value) / price)

        cost_per_share = price * (1 + self.settings.commission_rate / 100.0)
        affordable = math.floor(max(cash, 0.0) / cost_per_share)
        return max(0, min(quantity, affordable))

    def check_exit(self, entry_price: float, highest_price: float,
                   current_price: float) -> Optional[str]:
        """
        Protective exit triggered at ``current_price``, if any.

        Returns
        -------
        str or None
            ``'stop_loss'``, ``'take_profit'``, ``'trailing_stop'`` or None.
        """
        s = self.settings
        if entry_price <= 0:
            return None
        pnl_pct = (current_price - entry_price) / entry_price * 100.0

        if s.stop_loss_percentage and pnl_pct <= -s.stop_loss_percentage:
            return 'stop_loss'
        if s.take_profit_percentage and pnl_pct >= s.take_profit_percentage:
            return 'take_profit'
        if s.enable_trailing_stop and s.trailing_stop_percentage:
            peak = max(highest_price, current_price)
            if current_price <= peak * (1 - s.trailing_stop_percentage / 100.0):
                return 'trailing_stop'
        return None
