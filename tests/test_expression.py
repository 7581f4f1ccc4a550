"""
Tests for expression compilation.

Compiled expressions must evaluate the supported arithmetic correctly, work on
scalars and numpy arrays, and never let a bad expression or a bad evaluation
escape as an exception.
"""

import math

import numpy as np
import pytest

from divflow.core.errors import CompileError, LimitExceededError, UnknownIdentifierError
from divflow.core.expression import (
    ExpressionCompiler,
    compile_expression,
    parse,
    tokenize,
)

XY = ("x", "y")
XYZ = ("x", "y", "z")


# ─────────────────────────────────────────────────────────────────────
# Evaluation
# ─────────────────────────────────────────────────────────────────────

class TestEvaluation:

    @pytest.mark.parametrize("source, args, expected", [
        ("-y", (1.0, 2.0), -2.0),
        ("x + y * 2", (1.0, 3.0), 7.0),
        ("(x + y) * 2", (1.0, 3.0), 8.0),
        ("x - y - 1", (5.0, 2.0), 2.0),
        ("x / y / 2", (8.0, 2.0), 2.0),
        ("x ^ 2", (3.0, 0.0), 9.0),
        ("x ** 2", (3.0, 0.0), 9.0),
        ("2 ^ 3 ^ 2", (0.0, 0.0), 512.0),
        ("-x ^ 2", (3.0, 0.0), -9.0),
        ("2 ^ -1", (0.0, 0.0), 0.5),
        ("7 % 4", (0.0, 0.0), 3.0),
        ("+x", (4.0, 0.0), 4.0),
        ("1.5e2 + .5", (0.0, 0.0), 150.5),
        ("-y + 0.1*x", (2.0, 1.0), -0.8),
    ])
    def test_arithmetic(self, source, args, expected):
        fn = compile_expression(source, XY)
        assert fn.ok
        assert fn(*args) == pytest.approx(expected)

    def test_math_functions_and_constants(self):
        fn = compile_expression("sin(x) + cos(y) + sqrt(4) + max(1, 5, 3) + min(x, y)", XY)
        assert fn(0.0, 0.0) == pytest.approx(0.0 + 1.0 + 2.0 + 5.0 + 0.0)
        assert compile_expression("pi", XY)(0, 0) == pytest.approx(math.pi)
        assert compile_expression("exp(1) - e", XY)(0, 0) == pytest.approx(0.0)
        assert compile_expression("atan2(y, x)", XY)(0.0, 1.0) == pytest.approx(math.pi / 2)
        assert compile_expression("round(2.5) + floor(-0.5)", XY)(0, 0) == pytest.approx(3.0 - 1.0)

    def test_math_namespace_prefix(self):
        fn = compile_expression("Math.sin(y) * Math.PI", XY)
        assert fn.ok
        assert fn(0.0, math.pi / 2) == pytest.approx(math.pi)

    def test_three_variables(self):
        fn = compile_expression("-0.1*(x*x + y*y) + z", XYZ)
        assert fn(1.0, 2.0, 3.0) == pytest.approx(2.5)

    def test_scalar_call_returns_float(self):
        result = compile_expression("x*y", XY)(2, 3)
        assert isinstance(result, float)
        assert result == 6.0

    def test_array_call_matches_scalar_calls(self):
        fn = compile_expression("x*x - sin(y)", XY)
        xs = np.linspace(-3, 3, 7)
        ys = np.linspace(-1, 1, 7)
        expected = np.array([fn(x, y) for x, y in zip(xs, ys)])
        np.testing.assert_allclose(fn(xs, ys), expected)

    def test_constant_expression_broadcasts_to_argument_shape(self):
        fn = compile_expression("0", XY)
        grid_x, grid_y = np.meshgrid(np.arange(3.0), np.arange(4.0))
        result = fn(grid_x, grid_y)
        assert result.shape == (4, 3)
        assert np.all(result == 0.0)

    def test_same_source_compiles_to_same_behaviour(self):
        a = compile_expression("x*y + 1", XY)
        b = compile_expression("x*y + 1", XY)
        for x, y in [(0.0, 0.0), (1.5, -2.0), (10.0, 3.0)]:
            assert a(x, y) == b(x, y)


# ─────────────────────────────────────────────────────────────────────
# Evaluation faults are replaced by zero
# ─────────────────────────────────────────────────────────────────────

class TestEvaluationFaults:

    @pytest.mark.parametrize("source", ["1 / x", "log(x)", "sqrt(x - 1)", "x ^ 10000", "10 ^ 400"])
    def test_non_finite_results_become_zero(self, source):
        fn = compile_expression(source, XY)
        assert fn.ok
        assert fn(0.0, 0.0) == 0.0

    def test_non_finite_elements_zeroed_individually(self):
        fn = compile_expression("1 / x", XY)
        result = fn(np.array([0.0, 2.0, -4.0]), 0.0)
        np.testing.assert_allclose(result, [0.0, 0.5, -0.25])

    def test_nan_inputs_yield_zero(self):
        fn = compile_expression("x + y", XY)
        assert fn(float('nan'), 1.0) == 0.0


# ─────────────────────────────────────────────────────────────────────
# Compile failures fall back to the zero function
# ─────────────────────────────────────────────────────────────────────

class TestCompileFailures:

    @pytest.mark.parametrize("source", [
        "x +",
        "",
        "   ",
        "(x + y",
        "x + y)",
        "2x",
        "x $ y",
        "q + 1",
        "sin x",
        "sin(x, y)",
        "atan2(x)",
        "foo(x)",
        "__import__('os')",
        "x.real",
        "Math.random()",
        "z",
    ])
    def test_malformed_source_yields_zero_function(self, source):
        fn = compile_expression(source, XY)
        assert not fn.ok
        assert isinstance(fn.error, str) and fn.error
        for x, y in [(0.0, 0.0), (1.0, -1.0), (2.5, 3.5), (-3.0, 0.1)]:
            assert fn(x, y) == 0.0
        np.testing.assert_array_equal(fn(np.ones(5), np.ones(5)), np.zeros(5))

    def test_error_message_names_the_unknown_identifier(self):
        fn = compile_expression("x + w", XY)
        assert "'w'" in fn.error

    def test_parse_raises_typed_errors(self):
        with pytest.raises(UnknownIdentifierError):
            parse("w", XY)
        with pytest.raises(CompileError):
            parse("x +", XY)

    def test_depth_limit(self):
        source = "(" * 100 + "x" + ")" * 100
        with pytest.raises(LimitExceededError):
            parse(source, XY)
        assert not compile_expression(source, XY).ok

    def test_node_limit(self):
        source = " + ".join(["x"] * 300)
        assert not compile_expression(source, XY).ok

    def test_non_string_source_does_not_raise(self):
        fn = compile_expression(None, XY)
        assert fn(1.0, 1.0) == 0.0


class TestTokenizer:

    def test_tokens_carry_positions(self):
        tokens = tokenize("x + 12.5")
        assert tokens[0] == ('name', 'x', 0)
        assert tokens[1] == ('op', '+', 2)
        assert tokens[2] == ('number', '12.5', 4)
        assert tokens[-1][0] == 'end'

    def test_power_operator_is_one_token(self):
        assert [t[1] for t in tokenize("x**2")][:3] == ['x', '**', '2']


class TestExpressionCompiler:

    def test_recompiles_only_on_change(self):
        compiler = ExpressionCompiler(XY)
        first = compiler.compile('x', "-y")
        assert compiler.compile('x', "-y") is first
        second = compiler.compile('x', "y")
        assert second is not first
        assert second(0.0, 2.0) == 2.0

    def test_errors_reported_per_axis(self):
        compiler = ExpressionCompiler(XY)
        compiler.compile('x', "x +")
        compiler.compile('y', "x")
        assert list(compiler.errors) == ['x']
