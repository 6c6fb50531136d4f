# -*- coding: utf-8 -*-
"""
Backtesting configuration schema.

``SessionSettings`` holds the risk and execution settings of one trading
session (simulated or live). ``BacktestConfig`` describes one backtest run.
Both are immutable once built and validated.
"""

import re
from dataclasses import dataclass, field, fields, asdict, replace
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from stratengine.errors import ValidationError


class TimeInForce(str, Enum):
    DAY = "day"
    GTC = "gtc"
    OPG = "opg"
    CLS = "cls"
    IOC = "ioc"
    FOK = "fok"


class OrderType(str, Enum):
    MARKET = "market"
    LIMIT = "limit"
    STOP = "stop"
    STOP_LIMIT = "stop_limit"
    TRAILING_STOP = "trailing_stop"


class SizingMethod(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"
    KELLY = "kelly"
    EQUAL_WEIGHT = "equal_weight"


class RebalanceFrequency(str, Enum):
    NEVER = "never"
    DAILY = "daily"
    WEEKLY = "weekly"
    ON_SIGNAL = "on_signal"


class SlippageModel(str, Enum):
    NONE = "none"
    FIXED = "fixed"
    PROPORTIONAL = "proportional"


class ExecutionMode(str, Enum):
    CLOSE = "close"  # Fill at the signal bar's close
    NEXT_OPEN = "next_open"  # Fill at the following bar's open


WEEKDAYS = ['MON', 'TUE', 'WED', 'THU', 'FRI', 'SAT', 'SUN']
_HHMM = re.compile(r'^([0-1][0-9]|2[0-3]):[0-5][0-9]$')


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(':')
    return int(hours) * 60 + int(minutes)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _enum_values(enum_cls) -> List[str]:
    return [e.value for e in enum_cls]


def validate_settings(settings: Dict[str, Any]) -> List[str]:
    """
    Validate a (possibly partial) settings dict.

    Parameters
    ----------
    settings : dict
        Field name to value. Missing fields are not checked.

    Returns
    -------
    list of str
        Error messages; empty when valid.
    """
    errors: List[str] = []

    def pct(name: str, low: float = 0.0, high: float = 100.0, nullable: bool = True):
        if name not in settings:
            return
        value = settings[name]
        if value is None and nullable:
            return
        if not _is_number(value) or value < low or value > high:
            errors.append(f"{name} must be between {low:g} and {high:g}")

    def one_of(name: str, enum_cls):
        if name not in settings:
            return
        value = settings[name]
        value = value.value if isinstance(value, Enum) else value
        allowed = _enum_values(enum_cls)
        if value not in allowed:
            errors.append(f"{name} must be one of: {', '.join(allowed)}")

    # Risk Management
    pct('stop_loss_percentage')
    pct('take_profit_percentage')
    pct('max_position_size_percentage', nullable=False)
    pct('max_daily_loss_percentage')
    if settings.get('max_daily_loss_absolute') is not None:
        value = settings['max_daily_loss_absolute']
        if not _is_number(value) or value <= 0:
            errors.append('max_daily_loss_absolute must be positive')

    # Order Execution
    one_of('time_in_force', TimeInForce)
    one_of('order_type_default', OrderType)
    pct('limit_price_offset_percentage', low=-100.0)

    # Position Management
    if 'max_open_positions' in settings:
        value = settings['max_open_positions']
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            errors.append('max_open_positions must be a positive integer')
    one_of('position_sizing_method', SizingMethod)
    if 'position_size_value' in settings:
        value = settings['position_size_value']
        if not _is_number(value) or value <= 0:
            errors.append('position_size_value must be positive')
    one_of('rebalance_frequency', RebalanceFrequency)

    # Trading Window
    start_ok = end_ok = False
    for name in ('trading_hours_start', 'trading_hours_end'):
        if name in settings:
            value = settings[name]
            if not isinstance(value, str) or not _HHMM.match(value):
                errors.append(f"{name} must be in HH:mm format (24-hour)")
            elif name == 'trading_hours_start':
                start_ok = True
            else:
                end_ok = True
    if start_ok and end_ok:
        if _minutes(settings['trading_hours_start']) >= _minutes(settings['trading_hours_end']):
            errors.append('trading_hours_end must be after trading_hours_start')
    if 'trading_days' in settings:
        days = settings['trading_days']
        if not isinstance(days, (list, tuple)) or not days:
            errors.append('trading_days must be a non-empty list')
        else:
            invalid = [str(d) for d in days if d not in WEEKDAYS]
            if invalid:
                errors.append(
                    f"Invalid trading days: {', '.join(invalid)}. Must be one of: {', '.join(WEEKDAYS)}"
                )

    # Advanced
    pct('trailing_stop_percentage')
    if 'commission_rate' in settings:
        value = settings['commission_rate']
        if not _is_number(value) or value < 0:
            errors.append('commission_rate must be non-negative')
    one_of('slippage_model', SlippageModel)
    if 'slippage_value' in settings:
        value = settings['slippage_value']
        if not _is_number(value) or value < 0:
            errors.append('slippage_value must be non-negative')

    return errors


@dataclass(frozen=True)
class SessionSettings:
    """Risk and execution settings for one trading session."""

    # Risk Management
    stop_loss_percentage: Optional[float] = None  # Exit when price falls this % below entry
    take_profit_percentage: Optional[float] = None  # Exit when price rises this % above entry
    max_position_size_percentage: float = 25.0  # Max position value as % of portfolio
    max_daily_loss_percentage: Optional[float] = None  # % of start-of-day equity (None = no limit)
    max_daily_loss_absolute: Optional[float] = None  # Dollars (None = no limit)

    # Order Execution
    time_in_force: str = "day"
    allow_partial_fills: bool = True
    extended_hours: bool = False
    order_type_default: str = "market"
    limit_price_offset_percentage: Optional[float] = None  # Limit price vs. reference price

    # Position Management
    max_open_positions: int = 10
    position_sizing_method: str = "percentage"
    position_size_value: float = 10.0  # Dollars for 'fixed', % of portfolio otherwise
    rebalance_frequency: str = "never"  # Stored with the session; the simulator does not rebalance

    # Trading Window
    trading_hours_start: str = "09:30"
    trading_hours_end: str = "16:00"
    trading_days: Tuple[str, ...] = ('MON', 'TUE', 'WED', 'THU', 'FRI')

    # Advanced
    enable_trailing_stop: bool = False
    trailing_stop_percentage: Optional[float] = None
    enable_bracket_orders: bool = False
    enable_oco_orders: bool = False
    commission_rate: float = 0.0  # % of notional per fill
    slippage_model: str = "none"
    slippage_value: float = 0.0  # Percent

    def __post_init__(self):
        object.__setattr__(self, 'trading_days', tuple(self.trading_days))
        errors = validate_settings(self.to_dict())
        if self.enable_trailing_stop and self.trailing_stop_percentage is None:
            errors.append('trailing_stop_percentage is required when enable_trailing_stop is set')
        if errors:
            raise ValidationError(f"Invalid session settings: {'; '.join(errors)}", errors)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]] = None) -> "SessionSettings":
        """Merge ``data`` over the defaults; unknown keys are rejected."""
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        names = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - names)
        if unknown:
            raise ValidationError(f"Unknown session settings: {', '.join(unknown)}")
        errors = validate_settings(data)
        if errors:
            raise ValidationError(f"Invalid session settings: {'; '.join(errors)}", errors)
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['trading_days'] = list(self.trading_days)
        return data

    def with_overrides(self, **changes) -> "SessionSettings":
        return replace(self, **changes)

    @property
    def trading_start(self) -> time:
        return time(*map(int, self.trading_hours_start.split(':')))

    @property
    def trading_end(self) -> time:
        return time(*map(int, self.trading_hours_end.split(':')))


DEFAULT_SESSION_SETTINGS = SessionSettings()

DateLike = Union[str, date, datetime]


@dataclass(frozen=True)
class BacktestConfig:
    """Configuration of one single-symbol backtest run."""

    strategy: str  # Strategy tag, e.g. "meanReversion" or "custom"
    symbol: str
    start: Optional[DateLike] = None
    end: Optional[DateLike] = None
    initial_capital: float = 10000.0
    params: Optional[Dict[str, Any]] = None  # Built-in strategy parameters
    buy_conditions: Any = None  # Custom strategy only
    sell_conditions: Any = None  # Custom strategy only
    settings: SessionSettings = field(default_factory=SessionSettings)
    shares_per_trade: Optional[int] = None  # Fixed share count instead of settings-based sizing
    execution_mode: str = "close"  # "close" or "next_open"
    bar_interval: str = "1d"  # Anything but "1d" enables the intraday trading-hours check
    annualization_factor: float = 252.0  # Periods per year for Sharpe/Sortino/volatility

    def __post_init__(self):
        if not self.symbol:
            raise ValidationError("symbol is required")
        if not _is_number(self.initial_capital) or self.initial_capital <= 0:
            raise ValidationError(f"initial_capital must be positive, got {self.initial_capital!r}")
        if self.shares_per_trade is not None and (
                not isinstance(self.shares_per_trade, int) or self.shares_per_trade < 1):
            raise ValidationError("shares_per_trade must be a positive integer")
        try:
            ExecutionMode(self.execution_mode)
        except ValueError as e:
            raise ValidationError(
                f"execution_mode must be one of: {', '.join(_enum_values(ExecutionMode))}"
            ) from e
        if self.annualization_factor <= 0:
            raise ValidationError("annualization_factor must be positive")
        if self.start is not None and self.end is not None and pd.Timestamp(self.start) > pd.Timestamp(self.end):
            raise ValidationError("start must not be after end")
        if isinstance(self.settings, dict):
            object.__setattr__(self, 'settings', SessionSettings.from_dict(self.settings))

    @property
    def intraday(self) -> bool:
        return self.bar_interval != "1d"

    def for_symbol(self, symbol: str) -> "BacktestConfig":
        return replace(self, symbol=symbol)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['settings'] = self.settings.to_dict()
        for key in ('start', 'end'):
            if data[key] is not None:
                data[key] = str(data[key])
        return data
