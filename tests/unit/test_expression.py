# tests/unit/test_expression.py

import pytest
from dataclasses import FrozenInstanceError
import numpy as np

from bandalgebra.exceptions import EvaluationError, ExpressionSyntaxError
from bandalgebra.index.expression import (
    Literal, BandRef, Add, Sub, Mul, Div,
    parse, symbols, denominators, to_numexpr, evaluate
)

A, B, C = BandRef("A"), BandRef("B"), BandRef("C")

def test_parse_respects_precedence():
    assert parse("A + B * C") == Add(A, Mul(B, C))
    assert parse("(A + B) * C") == Mul(Add(A, B), C)

def test_parse_is_left_associative():
    assert parse("A - B - C") == Sub(Sub(A, B), C)
    assert parse("A / B / C") == Div(Div(A, B), C)

def test_parse_unary_signs():
    assert parse("-2") == Literal(-2.0)
    assert parse("+A") == A
    assert parse("-A") == Mul(Literal(-1.0), A)
    assert parse("A * -B") == Mul(A, Mul(Literal(-1.0), B))

def test_parse_numeric_literals():
    assert parse("10000") == Literal(10000.0)
    assert parse("0.5") == Literal(0.5)
    assert parse(".25") == Literal(0.25)
    assert parse("1e-4 * A") == Mul(Literal(0.0001), A)

def test_parse_identifiers_keep_case():
    tree = parse("(RedEdge1 - RED) / (RedEdge1 + RED)")
    assert symbols(tree) == frozenset({"RedEdge1", "RED"})

def test_trees_are_immutable_and_hashable():
    tree = parse("(NIR - RED) / (NIR + RED)")
    assert hash(tree) == hash(parse("(NIR - RED) / (NIR + RED)"))
    with pytest.raises(FrozenInstanceError):
        tree.left = Literal(1.0)

@pytest.mark.parametrize("text", ["", "   ", "(A + B", "A +", "A $ B", "A B", "A + )", "()"])
def test_parse_rejects_malformed_formulas(text):
    with pytest.raises(ExpressionSyntaxError) as excinfo:
        parse(text)
    assert isinstance(excinfo.value, EvaluationError)

def test_syntax_error_reports_position():
    with pytest.raises(ExpressionSyntaxError) as excinfo:
        parse("NIR $ RED")
    assert excinfo.value.position == 4

def test_denominators_cover_nested_divisions():
    tree = parse("A / (B / C) + 1")
    assert denominators(tree) == [Div(B, C), C]

def test_to_numexpr_uses_local_names():
    rendered = to_numexpr(parse("where - 2 * B"), {"where": "v0", "B": "v1"})
    assert rendered == "(v0 - (2.0 * v1))"
    assert to_numexpr(parse("-3"), {}) == "(-3.0)"

def test_evaluate_scalars():
    result = evaluate(parse("(NIR - RED) / (NIR + RED)"), {"NIR": 3000, "RED": 600})
    assert result.shape == ()
    assert float(result) == pytest.approx(2400 / 3600)

def test_evaluate_arrays_elementwise():
    nir = np.array([[0.5, 0.4], [0.3, 0.2]])
    red = np.array([[0.1, 0.1], [0.1, 0.1]])
    result = evaluate(parse("(NIR - RED) / (NIR + RED)"), {"NIR": nir, "RED": red})
    np.testing.assert_array_equal(result, (nir - red) / (nir + red))

def test_evaluate_integer_inputs_use_float_arithmetic():
    result = evaluate(parse("A / B"), {"A": np.array([1, 3], dtype=np.uint16), "B": np.array([2, 4], dtype=np.uint16)})
    assert result.dtype == np.float64
    np.testing.assert_array_equal(result, [0.5, 0.75])

def test_evaluate_broadcasts_scalars():
    result = evaluate(parse("A * B"), {"A": np.ones((2, 3)), "B": 2})
    np.testing.assert_array_equal(result, np.full((2, 3), 2.0))

def test_zero_denominator_yields_nan_by_default():
    nir = np.array([0.0, 0.5])
    red = np.array([0.0, 0.1])
    result = evaluate(parse("(NIR - RED) / (NIR + RED)"), {"NIR": nir, "RED": red})
    assert np.isnan(result[0])
    assert result[1] == pytest.approx(0.4 / 0.6)

def test_zero_denominator_uses_fill_value():
    result = evaluate(parse("A / B"), {"A": np.array([1.0, 1.0]), "B": np.array([0.0, 4.0])}, fill_value=-9999.0)
    np.testing.assert_array_equal(result, [-9999.0, 0.25])

def test_nested_zero_denominator_is_filled():
    values = {"A": np.array([1.0, 1.0]), "B": np.array([1.0, 1.0]), "C": np.array([0.0, 2.0])}
    result = evaluate(parse("A / (B / C)"), values, fill_value=-1.0)
    np.testing.assert_array_equal(result, [-1.0, 2.0])

def test_evaluate_does_not_mutate_inputs():
    nir = np.array([0.0, 0.5])
    red = np.array([0.0, 0.1])
    evaluate(parse("(NIR - RED) / (NIR + RED)"), {"NIR": nir, "RED": red}, fill_value=0.0)
    np.testing.assert_array_equal(nir, [0.0, 0.5])
    np.testing.assert_array_equal(red, [0.0, 0.1])

def test_evaluate_unresolved_symbol():
    with pytest.raises(EvaluationError, match="RED"):
        evaluate(parse("NIR - RED"), {"NIR": 1.0})

def test_evaluate_rejects_mismatched_grids():
    with pytest.raises(EvaluationError, match="not uniform"):
        evaluate(parse("A + B"), {"A": np.ones((2, 2)), "B": np.ones((3, 2))})

def test_denominator_cancelling_to_zero_is_filled():
    result = evaluate(parse("A / (B - B)"), {"A": np.array([1.0, 2.0]), "B": np.array([3.0, 4.0])})
    assert np.isnan(result).all()
