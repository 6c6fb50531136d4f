# -*- coding: utf-8 -*-
"""
Tests for the backtest command line.
"""

import json
import logging

import pytest

from stratengine.cli import build_parser, main


@pytest.fixture
def data_dir(tmp_path, oscillating_frame):
    oscillating_frame.reset_index().to_csv(tmp_path / 'AAPL.csv', index=False)
    return tmp_path


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    for key in ('POLYGON_API_KEY', 'TIINGO_API_KEY', 'STRATENGINE_LOG_FILE'):
        monkeypatch.delenv(key, raising=False)
    yield
    logger = logging.getLogger("stratengine")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


class TestCli:

    def test_parser(self):
        args = build_parser().parse_args(['momentum', 'AAPL', 'MSFT', '--execution-mode', 'next_open'])
        assert args.symbols == ['AAPL', 'MSFT']
        assert args.execution_mode == 'next_open'

    def test_unknown_strategy_rejected(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(['pairsTrading', 'AAPL'])

    def test_run_and_write_output(self, data_dir, tmp_path):
        output = tmp_path / 'out.json'
        code = main(['meanReversion', 'AAPL', '--data-dir', str(data_dir), '--start', '2023-01-01',
                     '--end', '2023-06-01', '--show-trades', '--output', str(output)])
        assert code == 0
        results = json.loads(output.read_text())
        assert results[0]['symbol'] == 'AAPL'
        assert 'result' in results[0]

    def test_partial_failure_still_succeeds(self, data_dir):
        assert main(['meanReversion', 'AAPL', 'NOPE', '--data-dir', str(data_dir)]) == 0

    def test_all_symbols_failing(self, data_dir):
        assert main(['meanReversion', 'NOPE', '--data-dir', str(data_dir)]) == 1

    def test_invalid_settings_file(self, data_dir, tmp_path):
        settings = tmp_path / 'settings.json'
        settings.write_text(json.dumps({'stop_loss_percentage': 500}))
        assert main(['meanReversion', 'AAPL', '--data-dir', str(data_dir),
                     '--settings', str(settings)]) == 2

    def test_custom_conditions_file(self, data_dir, tmp_path):
        conditions = tmp_path / 'conditions.json'
        conditions.write_text(json.dumps({
            'buy': {'type': 'indicator', 'indicator': {'type': 'rsi', 'condition': 'oversold'}},
            'sell': {'type': 'indicator', 'indicator': {'type': 'rsi', 'condition': 'overbought'}},
        }))
        assert main(['custom', 'AAPL', '--data-dir', str(data_dir), '--conditions', str(conditions)]) == 0

    def test_polygon_needs_key(self, data_dir):
        assert main(['momentum', 'AAPL', '--polygon']) == 2
