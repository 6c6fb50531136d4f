# -*- coding: utf-8 -*-
"""
Tests for custom strategy validation.
"""

from stratengine.signals import validate_strategy


def leaf(indicator_type, condition, value=None, **params):
    indicator = {'type': indicator_type, 'params': params, 'condition': condition}
    if value is not None:
        indicator['value'] = value
    return {'type': 'indicator', 'indicator': indicator}


class TestValidateStrategy:

    def test_identical_trees_rejected(self):
        tree = leaf('rsi', 'oversold', period=14)
        result = validate_strategy(tree, dict(tree))
        assert not result.valid
        assert ('Buy and sell conditions cannot be identical. '
                'The strategy would never generate signals.') in result.errors

    def test_missing_sides(self):
        result = validate_strategy(None, [])
        assert not result.valid
        assert result.errors == ['Buy conditions are required', 'Sell conditions are required']

    def test_valid_strategy_with_single_indicator_warning(self):
        result = validate_strategy(leaf('rsi', 'oversold'), leaf('rsi', 'overbought'))
        assert result.valid
        assert result.errors == []
        assert any('only one indicator' in w for w in result.warnings)

    def test_structural_error_is_prefixed(self):
        bad = {'type': 'indicator', 'indicator': {'type': 'rsi'}}
        result = validate_strategy([leaf('rsi', 'oversold'), bad], leaf('rsi', 'overbought'))
        assert not result.valid
        assert result.errors[0].startswith('Buy condition 2:')
        assert "'condition'" in result.errors[0]

    def test_reversed_rsi_warning(self):
        result = validate_strategy(leaf('rsi', 'overbought'), leaf('rsi', 'oversold'))
        assert result.valid
        assert any('counterintuitive' in w for w in result.warnings)

    def test_rsi_period_outside_typical_range(self):
        buy = {'type': 'and', 'children': [leaf('rsi', 'oversold', period=150), leaf('macd', 'histogramPositive')]}
        result = validate_strategy(buy, leaf('rsi', 'overbought'))
        assert result.valid
        assert any('outside the typical range (2-100)' in w for w in result.warnings)

    def test_macd_period_order(self):
        buy = leaf('macd', 'crossesAboveSignal', fastPeriod=30, slowPeriod=10)
        result = validate_strategy(buy, leaf('rsi', 'overbought'))
        assert not result.valid
        assert 'MACD fast period must be less than slow period' in result.errors

    def test_to_dict(self):
        result = validate_strategy(leaf('rsi', 'oversold'), leaf('rsi', 'overbought'))
        data = result.to_dict()
        assert data['valid'] is True
        assert set(data) == {'valid', 'errors', 'warnings'}
