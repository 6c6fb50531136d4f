# -*- coding: utf-8 -*-
"""
Boolean condition trees over indicator comparisons.

Trees arrive as JSON-like dicts::

    {"type": "and", "children": [
        {"type": "indicator",
         "indicator": {"type": "rsi", "params": {"period": 14}, "condition": "oversold"}},
        {"type": "indicator",
         "indicator": {"type": "sma", "params": {"period": 10},
                       "condition": "crossesAbove", "value": "indicator:sma:period=30"}}
    ]}

``build_condition`` turns such a dict into an immutable node tree, checking
arity, field presence, indicator/condition compatibility and nesting depth.
Only built trees can be evaluated.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from stratengine.errors import ValidationError
from stratengine.indicators import IndicatorCache, IndicatorSpec, IndicatorType


logger = logging.getLogger(__name__)

MAX_DEPTH = 32


class NodeType(str, Enum):
    INDICATOR = "indicator"
    AND = "and"
    OR = "or"
    NOT = "not"


class Comparison(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    CROSSES_ABOVE = "crossesAbove"
    CROSSES_BELOW = "crossesBelow"
    OVERBOUGHT = "overbought"
    OVERSOLD = "oversold"
    SIGNAL_ABOVE = "signalAbove"
    SIGNAL_BELOW = "signalBelow"
    CROSSES_ABOVE_SIGNAL = "crossesAboveSignal"
    CROSSES_BELOW_SIGNAL = "crossesBelowSignal"
    HISTOGRAM_POSITIVE = "histogramPositive"
    HISTOGRAM_NEGATIVE = "histogramNegative"
    PRICE_ABOVE_UPPER = "priceAboveUpper"
    PRICE_BELOW_LOWER = "priceBelowLower"
    PRICE_ABOVE = "priceAbove"
    PRICE_BELOW = "priceBelow"


# Comparisons that need a numeric threshold or a reference indicator
VALUE_COMPARISONS = {
    Comparison.ABOVE, Comparison.BELOW, Comparison.CROSSES_ABOVE, Comparison.CROSSES_BELOW,
}

# Comparisons tied to one indicator type
TYPED_COMPARISONS = {
    Comparison.OVERBOUGHT: IndicatorType.RSI,
    Comparison.OVERSOLD: IndicatorType.RSI,
    Comparison.SIGNAL_ABOVE: IndicatorType.MACD,
    Comparison.SIGNAL_BELOW: IndicatorType.MACD,
    Comparison.CROSSES_ABOVE_SIGNAL: IndicatorType.MACD,
    Comparison.CROSSES_BELOW_SIGNAL: IndicatorType.MACD,
    Comparison.HISTOGRAM_POSITIVE: IndicatorType.MACD,
    Comparison.HISTOGRAM_NEGATIVE: IndicatorType.MACD,
    Comparison.PRICE_ABOVE_UPPER: IndicatorType.BOLLINGER,
    Comparison.PRICE_BELOW_LOWER: IndicatorType.BOLLINGER,
    Comparison.PRICE_ABOVE: IndicatorType.VWAP,
    Comparison.PRICE_BELOW: IndicatorType.VWAP,
}

DEFAULT_OVERBOUGHT = 70.0
DEFAULT_OVERSOLD = 30.0


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of ``validate_condition_node``."""

    valid: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {'valid': self.valid}
        if self.error is not None:
            out['error'] = self.error
        return out


class ConditionNode:
    """Base class of built condition nodes."""

    node_type: NodeType

    def depth(self) -> int:
        return 1

    def specs(self) -> List[IndicatorSpec]:
        """Every indicator the subtree reads."""
        return []

    def leaves(self) -> List["IndicatorCondition"]:
        return []


def _check_depth(node: ConditionNode) -> None:
    if node.depth() > MAX_DEPTH:
        raise ValidationError(f"Condition tree exceeds maximum depth of {MAX_DEPTH}")


@dataclass(frozen=True)
class IndicatorCondition(ConditionNode):
    """
    Leaf comparing one indicator at the current bar.

    Parameters
    ----------
    spec : IndicatorSpec
        Indicator being tested.
    comparison : Comparison
        Operator.
    threshold : float or None
        Literal right-hand side (also the RSI overbought/oversold level).
    reference : IndicatorSpec or None
        Indicator used as right-hand side instead of ``threshold``.
    """

    spec: IndicatorSpec
    comparison: Comparison
    threshold: Optional[float] = None
    reference: Optional[IndicatorSpec] = None

    node_type = NodeType.INDICATOR

    def __post_init__(self):
        if self.comparison in VALUE_COMPARISONS:
            if self.threshold is None and self.reference is None:
                raise ValidationError(
                    f"Condition '{self.comparison.value}' on {self.spec.type.value} requires a 'value'"
                )
            if self.threshold is not None and self.reference is not None:
                raise ValidationError("Condition cannot have both a threshold and a reference indicator")
        else:
            required = TYPED_COMPARISONS[self.comparison]
            if self.spec.type != required:
                raise ValidationError(
                    f"Condition '{self.comparison.value}' is not supported for indicator type: {self.spec.type.value}"
                )
            if self.reference is not None:
                raise ValidationError(
                    f"Condition '{self.comparison.value}' cannot compare against another indicator"
                )

    def specs(self):
        return [self.spec] + ([self.reference] if self.reference is not None else [])

    def leaves(self):
        return [self]


@dataclass(frozen=True)
class AndNode(ConditionNode):
    children: Tuple[ConditionNode, ...]

    node_type = NodeType.AND

    def __post_init__(self):
        if len(self.children) < 2:
            raise ValidationError("and condition must have at least 2 children")
        _check_depth(self)

    def depth(self):
        return 1 + max(child.depth() for child in self.children)

    def specs(self):
        return [s for child in self.children for s in child.specs()]

    def leaves(self):
        return [leaf for child in self.children for leaf in child.leaves()]


@dataclass(frozen=True)
class OrNode(ConditionNode):
    children: Tuple[ConditionNode, ...]

    node_type = NodeType.OR

    def __post_init__(self):
        if len(self.children) < 2:
            raise ValidationError("or condition must have at least 2 children")
        _check_depth(self)

    def depth(self):
        return 1 + max(child.depth() for child in self.children)

    def specs(self):
        return [s for child in self.children for s in child.specs()]

    def leaves(self):
        return [leaf for child in self.children for leaf in child.leaves()]


@dataclass(frozen=True)
class NotNode(ConditionNode):
    child: ConditionNode

    node_type = NodeType.NOT

    def __post_init__(self):
        _check_depth(self)

    def depth(self):
        return 1 + self.child.depth()

    def specs(self):
        return self.child.specs()

    def leaves(self):
        return self.child.leaves()


# ============================================================================
# Construction
# ============================================================================

def _parse_value(value: Any) -> Tuple[Optional[float], Optional[IndicatorSpec]]:
    if value is None:
        return None, None
    if isinstance(value, bool):
        raise ValidationError(f"Invalid condition value: {value!r}")
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            raise ValidationError(f"Condition value must be finite, got {value!r}")
        return float(value), None
    if isinstance(value, str):
        if value.startswith("indicator:"):
            return None, IndicatorSpec.parse_reference(value)
        try:
            return float(value), None
        except ValueError as e:
            raise ValidationError(f"Invalid condition value: {value!r}") from e
    if isinstance(value, dict):
        if 'type' not in value:
            raise ValidationError("Reference indicator missing required field 'type'")
        return None, IndicatorSpec.create(value['type'], value.get('params'))
    raise ValidationError(f"Invalid condition value: {value!r}")


def _build_leaf(node: Dict[str, Any]) -> IndicatorCondition:
    indicator = node.get('indicator')
    if not indicator:
        raise ValidationError("Indicator node missing required field 'indicator'")
    if not isinstance(indicator, dict):
        raise ValidationError("Field 'indicator' must be an object")
    if not indicator.get('type'):
        raise ValidationError("Indicator missing required field 'type'")
    if not indicator.get('condition'):
        raise ValidationError("Indicator missing required field 'condition'")

    params = indicator.get('params') or {}
    if not isinstance(params, dict):
        raise ValidationError("Field 'params' must be an object")
    spec = IndicatorSpec.create(indicator['type'], params)

    try:
        comparison = Comparison(indicator['condition'])
    except ValueError as e:
        raise ValidationError(
            f"Unknown condition: {indicator['condition']} for indicator type: {spec.type.value}"
        ) from e

    threshold, reference = _parse_value(indicator.get('value'))
    if comparison == Comparison.OVERBOUGHT and threshold is None:
        threshold = DEFAULT_OVERBOUGHT
    elif comparison == Comparison.OVERSOLD and threshold is None:
        threshold = DEFAULT_OVERSOLD
    return IndicatorCondition(spec, comparison, threshold, reference)


def _build(node: Any, depth: int) -> ConditionNode:
    if depth > MAX_DEPTH:
        raise ValidationError(f"Condition tree exceeds maximum depth of {MAX_DEPTH}")
    if isinstance(node, ConditionNode):
        return node
    if not isinstance(node, dict):
        raise ValidationError(f"Condition node must be an object, got {type(node).__name__}")

    node_type = node.get('type')
    if node_type == NodeType.INDICATOR.value:
        return _build_leaf(node)

    children = node.get('children')
    if node_type in (NodeType.AND.value, NodeType.OR.value):
        if not isinstance(children, list) or len(children) < 2:
            raise ValidationError(f"{node_type} condition must have at least 2 children")
        built = tuple(_build(child, depth + 1) for child in children)
        return AndNode(built) if node_type == NodeType.AND.value else OrNode(built)
    if node_type == NodeType.NOT.value:
        if not isinstance(children, list) or len(children) != 1:
            raise ValidationError("NOT condition must have exactly 1 child")
        return NotNode(_build(children[0], depth + 1))

    if node_type is None:
        raise ValidationError("Condition node missing required field 'type'")
    raise ValidationError(f"Unknown condition type: {node_type}")


def build_condition(node: Union[Dict[str, Any], ConditionNode]) -> ConditionNode:
    """
    Build an immutable condition tree from its JSON form.

    Raises
    ------
    ValidationError
        On any structural or parameter problem, with a message naming the
        offending field.
    """
    return _build(node, 1)


def build_conditions(nodes: Union[Dict[str, Any], ConditionNode, Sequence]) -> ConditionNode:
    """
    Build a single node or a list of nodes.

    A list is combined with OR: the expression fires when any element fires.
    """
    if isinstance(nodes, (list, tuple)):
        if len(nodes) == 0:
            raise ValidationError("Condition list must not be empty")
        built = [build_condition(n) for n in nodes]
        if len(built) == 1:
            return built[0]
        return OrNode(tuple(built))
    return build_condition(nodes)


def validate_condition_node(node: Any) -> ValidationResult:
    """
    Validate a JSON condition node without raising.

    Returns
    -------
    ValidationResult
        ``valid=False`` with the first error message when the node cannot be
        built.
    """
    try:
        build_condition(node)
    except ValidationError as e:
        return ValidationResult(False, str(e))
    return ValidationResult(True)


# ============================================================================
# Evaluation
# ============================================================================

def _defined(*values: float) -> bool:
    return all(v is not None and not math.isnan(v) for v in values)


def _rhs(leaf: IndicatorCondition, cache: IndicatorCache, index: int) -> Optional[float]:
    if leaf.reference is not None:
        if index < 0:
            return None
        return float(cache.column(leaf.reference)[index])
    return leaf.threshold


def _crossed_above(prev: float, cur: float, ref_prev: float, ref_cur: float) -> bool:
    return prev <= ref_prev and cur > ref_cur


def _crossed_below(prev: float, cur: float, ref_prev: float, ref_cur: float) -> bool:
    return prev >= ref_prev and cur < ref_cur


def _evaluate_leaf(leaf: IndicatorCondition, cache: IndicatorCache, index: int) -> bool:
    comparison = leaf.comparison
    spec = leaf.spec

    if comparison in VALUE_COMPARISONS:
        values = cache.column(spec)
        cur, ref = float(values[index]), _rhs(leaf, cache, index)
        if comparison == Comparison.ABOVE:
            return _defined(cur, ref) and cur > ref
        if comparison == Comparison.BELOW:
            return _defined(cur, ref) and cur < ref
        if index < 1:
            return False
        prev, ref_prev = float(values[index - 1]), _rhs(leaf, cache, index - 1)
        if not _defined(prev, cur, ref_prev, ref):
            return False
        if comparison == Comparison.CROSSES_ABOVE:
            return _crossed_above(prev, cur, ref_prev, ref)
        return _crossed_below(prev, cur, ref_prev, ref)

    if comparison in (Comparison.OVERBOUGHT, Comparison.OVERSOLD):
        value = float(cache.column(spec)[index])
        if not _defined(value):
            return False
        if comparison == Comparison.OVERBOUGHT:
            return value > leaf.threshold
        return value < leaf.threshold

    if spec.type == IndicatorType.MACD:
        line = cache.column(spec, 'macd')
        signal = cache.column(spec, 'signal')
        hist = cache.column(spec, 'histogram')
        if comparison == Comparison.HISTOGRAM_POSITIVE:
            return _defined(hist[index]) and hist[index] > 0
        if comparison == Comparison.HISTOGRAM_NEGATIVE:
            return _defined(hist[index]) and hist[index] < 0
        if not _defined(line[index], signal[index]):
            return False
        if comparison == Comparison.SIGNAL_ABOVE:
            return line[index] > signal[index]
        if comparison == Comparison.SIGNAL_BELOW:
            return line[index] < signal[index]
        if index < 1 or not _defined(line[index - 1], signal[index - 1]):
            return False
        if comparison == Comparison.CROSSES_ABOVE_SIGNAL:
            return _crossed_above(line[index - 1], line[index], signal[index - 1], signal[index])
        return _crossed_below(line[index - 1], line[index], signal[index - 1], signal[index])

    if spec.type == IndicatorType.BOLLINGER:
        price = float(cache.df[spec.get('source')].iat[index])
        if comparison == Comparison.PRICE_ABOVE_UPPER:
            upper = cache.column(spec, 'upper')[index]
            return _defined(upper) and price >= upper
        lower = cache.column(spec, 'lower')[index]
        return _defined(lower) and price <= lower

    # VWAP
    value = cache.column(spec)[index]
    price = cache.close[index]
    if not _defined(value):
        return False
    if comparison == Comparison.PRICE_ABOVE:
        return price > value
    return price < value


def evaluate(node: ConditionNode, cache: IndicatorCache, index: int) -> bool:
    """
    Evaluate a built condition tree at bar ``index``.

    Leaves reading an undefined (warm-up) value evaluate to False. ``and`` and
    ``or`` evaluate every child.

    Raises
    ------
    ValidationError
        If ``node`` was not produced by ``build_condition``.
    IndexError
        If ``index`` is outside the price series.
    """
    if not isinstance(node, ConditionNode):
        raise ValidationError("Condition tree must be built with build_condition before evaluation")
    if index < 0 or index >= len(cache):
        raise IndexError(f"Bar index {index} out of range for {len(cache)} bars")
    return _evaluate(node, cache, index)


def _evaluate(node: ConditionNode, cache: IndicatorCache, index: int) -> bool:
    if isinstance(node, IndicatorCondition):
        return _evaluate_leaf(node, cache, index)
    if isinstance(node, AndNode):
        results = [_evaluate(child, cache, index) for child in node.children]
        return all(results)
    if isinstance(node, OrNode):
        results = [_evaluate(child, cache, index) for child in node.children]
        return any(results)
    if isinstance(node, NotNode):
        return not _evaluate(node.child, cache, index)
    raise ValidationError(f"Unsupported condition node: {type(node).__name__}")


def to_json(node: ConditionNode) -> Dict[str, Any]:
    """Serialize a built tree back to its JSON form."""
    if isinstance(node, IndicatorCondition):
        indicator: Dict[str, Any] = {
            'type': node.spec.type.value,
            'params': {k: v for k, v in node.spec.params if v is not None},
            'condition': node.comparison.value,
        }
        if node.reference is not None:
            ref_params = ":".join(f"{k}={v}" for k, v in node.reference.params if v is not None)
            indicator['value'] = f"indicator:{node.reference.type.value}:{ref_params}"
        elif node.threshold is not None:
            indicator['value'] = node.threshold
        return {'type': 'indicator', 'indicator': indicator}
    if isinstance(node, NotNode):
        return {'type': 'not', 'children': [to_json(node.child)]}
    return {'type': node.node_type.value, 'children': [to_json(c) for c in node.children]}
