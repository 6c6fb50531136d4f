# -*- coding: utf-8 -*-
"""
Tests for session settings and backtest configuration validation.
"""

from datetime import time

import pytest

from stratengine.backtesting.config import BacktestConfig, SessionSettings, validate_settings
from stratengine.errors import ValidationError


class TestSessionSettings:

    def test_defaults(self):
        settings = SessionSettings()
        assert settings.max_position_size_percentage == 25.0
        assert settings.max_open_positions == 10
        assert settings.trading_days == ('MON', 'TUE', 'WED', 'THU', 'FRI')
        assert settings.trading_start == time(9, 30)
        assert settings.trading_end == time(16, 0)

    def test_from_dict_merges_over_defaults(self):
        settings = SessionSettings.from_dict({'stop_loss_percentage': 5, 'trading_days': ['MON']})
        assert settings.stop_loss_percentage == 5
        assert settings.trading_days == ('MON',)
        assert settings.commission_rate == 0.0

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ValidationError, match="Unknown session settings: leverage"):
            SessionSettings.from_dict({'leverage': 2})

    def test_invalid_values_collected(self):
        with pytest.raises(ValidationError) as excinfo:
            SessionSettings(stop_loss_percentage=150, max_open_positions=0)
        assert 'stop_loss_percentage must be between 0 and 100' in excinfo.value.errors
        assert 'max_open_positions must be a positive integer' in excinfo.value.errors

    def test_trailing_stop_needs_percentage(self):
        with pytest.raises(ValidationError, match="trailing_stop_percentage is required"):
            SessionSettings(enable_trailing_stop=True)

    def test_with_overrides_revalidates(self):
        settings = SessionSettings().with_overrides(commission_rate=0.1)
        assert settings.commission_rate == 0.1
        with pytest.raises(ValidationError):
            settings.with_overrides(commission_rate=-1)

    def test_to_dict_round_trip(self):
        settings = SessionSettings(take_profit_percentage=10, trading_days=('MON', 'WED'))
        assert SessionSettings.from_dict(settings.to_dict()) == settings


class TestValidateSettings:

    def test_partial_dict_only_checks_given_fields(self):
        assert validate_settings({'slippage_value': 0.5}) == []

    def test_trading_hours_order(self):
        errors = validate_settings({'trading_hours_start': '16:00', 'trading_hours_end': '09:30'})
        assert errors == ['trading_hours_end must be after trading_hours_start']

    def test_trading_hours_format(self):
        errors = validate_settings({'trading_hours_start': '9:30'})
        assert errors == ['trading_hours_start must be in HH:mm format (24-hour)']

    def test_invalid_trading_days(self):
        errors = validate_settings({'trading_days': ['MON', 'FUNDAY']})
        assert errors[0].startswith('Invalid trading days: FUNDAY.')

    def test_enum_fields(self):
        errors = validate_settings({'order_type_default': 'iceberg', 'time_in_force': 'fok'})
        assert errors == ['order_type_default must be one of: market, limit, stop, stop_limit, trailing_stop']

    def test_limit_offset_may_be_negative(self):
        assert validate_settings({'limit_price_offset_percentage': -2.5}) == []

    def test_booleans_are_not_numbers(self):
        assert validate_settings({'max_open_positions': True}) == [
            'max_open_positions must be a positive integer'
        ]


class TestBacktestConfig:

    def test_settings_dict_converted(self):
        config = BacktestConfig('meanReversion', 'AAPL', settings={'stop_loss_percentage': 3})
        assert isinstance(config.settings, SessionSettings)
        assert config.settings.stop_loss_percentage == 3

    @pytest.mark.parametrize("kwargs", [
        {'symbol': ''},
        {'initial_capital': 0},
        {'shares_per_trade': 0},
        {'execution_mode': 'vwap'},
        {'start': '2023-06-01', 'end': '2023-01-01'},
    ])
    def test_invalid(self, kwargs):
        base = {'strategy': 'meanReversion', 'symbol': 'AAPL'}
        base.update(kwargs)
        with pytest.raises(ValidationError):
            BacktestConfig(**base)

    def test_intraday_flag(self):
        assert not BacktestConfig('momentum', 'AAPL').intraday
        assert BacktestConfig('momentum', 'AAPL', bar_interval='1h').intraday

    def test_for_symbol(self):
        config = BacktestConfig('momentum', 'AAPL', initial_capital=5000)
        other = config.for_symbol('MSFT')
        assert other.symbol == 'MSFT'
        assert other.initial_capital == 5000
