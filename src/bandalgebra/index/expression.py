# src/bandalgebra/index/expression.py

"""
This module defines the band-algebra expression tree and its evaluator.

Formulas such as "(NIR - RED) / (NIR + RED)" are parsed once into an immutable
tree of Literal, BandRef, Add, Sub, Mul and Div nodes. Evaluation renders the
tree for numexpr and runs it element-wise over float64 band arrays.

Division policy: a pixel whose denominator is exactly zero receives the fill
value (NaN by default) instead of aborting the evaluation. The zero test runs
on every Div node of the tree, so nested divisions are covered as well.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Mapping, Tuple, Union, Iterator

import numexpr as ne
import numpy as np

from bandalgebra.exceptions import EvaluationError, ExpressionSyntaxError

log = logging.getLogger(__name__)

__all__ = [
    "Expression",
    "Literal",
    "BandRef",
    "Add",
    "Sub",
    "Mul",
    "Div",
    "parse",
    "symbols",
    "denominators",
    "to_numexpr",
    "evaluate"
]

ArrayLike = Union[np.ndarray, float, int]

class Expression:
    """Base class of the closed expression node set."""

@dataclass(frozen=True)
class Literal(Expression):
    value: float

    def __str__(self) -> str:
        return repr(self.value)

@dataclass(frozen=True)
class BandRef(Expression):
    symbol: str

    def __str__(self) -> str:
        return self.symbol

@dataclass(frozen=True)
class _Binary(Expression):
    left: Expression
    right: Expression

    operator = "?"

    def __str__(self) -> str:
        return f"({self.left} {self.operator} {self.right})"

@dataclass(frozen=True)
class Add(_Binary):
    operator = "+"

@dataclass(frozen=True)
class Sub(_Binary):
    operator = "-"

@dataclass(frozen=True)
class Mul(_Binary):
    operator = "*"

@dataclass(frozen=True)
class Div(_Binary):
    operator = "/"

_OPERATORS = {"+": Add, "-": Sub, "*": Mul, "/": Div}

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_][A-Za-z0-9_]*)"
    r"|(?P<op>[-+*/()])"
    r")"
)

def _tokenize(text: str) -> List[Tuple[str, str, int]]:
    tokens = []
    pos = 0
    while pos < len(text):
        rest = text[pos:]
        if not rest.strip():
            break
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            bad = pos + len(rest) - len(rest.lstrip())
            raise ExpressionSyntaxError(f"Unexpected character '{text[bad]}'", text, bad)
        kind = match.lastgroup
        tokens.append((kind, match.group(kind), match.start(kind)))
        pos = match.end()
    tokens.append(("end", "", len(text)))
    return tokens

class _Parser:
    """Recursive-descent parser. Binary operators are left-associative."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = _tokenize(text)
        self.pos = 0

    def peek(self) -> Tuple[str, str, int]:
        return self.tokens[self.pos]

    def advance(self) -> Tuple[str, str, int]:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def parse(self) -> Expression:
        if self.peek()[0] == "end":
            raise ExpressionSyntaxError("Empty expression", self.text, 0)
        node = self.sum()
        kind, value, position = self.peek()
        if kind != "end":
            raise ExpressionSyntaxError(f"Unexpected token '{value}'", self.text, position)
        return node

    def sum(self) -> Expression:
        node = self.product()
        while self.peek()[1] in ("+", "-") and self.peek()[0] == "op":
            op = self.advance()[1]
            node = _OPERATORS[op](node, self.product())
        return node

    def product(self) -> Expression:
        node = self.unary()
        while self.peek()[1] in ("*", "/") and self.peek()[0] == "op":
            op = self.advance()[1]
            node = _OPERATORS[op](node, self.unary())
        return node

    def unary(self) -> Expression:
        kind, value, _ = self.peek()
        if kind == "op" and value == "+":
            self.advance()
            return self.unary()
        if kind == "op" and value == "-":
            self.advance()
            operand = self.unary()
            if isinstance(operand, Literal):
                return Literal(-operand.value)
            return Mul(Literal(-1.0), operand)
        return self.primary()

    def primary(self) -> Expression:
        kind, value, position = self.advance()
        if kind == "number":
            return Literal(float(value))
        if kind == "name":
            return BandRef(value)
        if kind == "op" and value == "(":
            node = self.sum()
            closing = self.advance()
            if closing[1] != ")":
                raise ExpressionSyntaxError("Missing closing parenthesis", self.text, closing[2])
            return node
        if kind == "end":
            raise ExpressionSyntaxError("Unexpected end of expression", self.text, position)
        raise ExpressionSyntaxError(f"Unexpected token '{value}'", self.text, position)

def parse(text: str) -> Expression:
    """
    Parse a band-algebra formula into an expression tree.

    Supports +, -, *, /, parentheses, unary signs, numeric literals
    (including exponent notation) and band symbols.

    Raises:
        ExpressionSyntaxError: If the text is not a valid formula.
    """
    return _Parser(text).parse()

def _walk(expr: Expression) -> Iterator[Expression]:
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, _Binary):
            stack.append(node.right)
            stack.append(node.left)

def symbols(expr: Expression) -> FrozenSet[str]:
    """Returns the band symbols referenced by an expression."""
    return frozenset(node.symbol for node in _walk(expr) if isinstance(node, BandRef))

def denominators(expr: Expression) -> List[Expression]:
    """Returns the right-hand operand of every division, outermost first."""
    return [node.right for node in _walk(expr) if isinstance(node, Div)]

def to_numexpr(expr: Expression, names: Mapping[str, str]) -> str:
    """
    Render an expression as a numexpr string.

    Symbols are replaced by the local variable names in 'names' so that band
    symbols never collide with numexpr function names. Literals are rendered
    as floats to keep integer division out of the picture.
    """
    if isinstance(expr, Literal):
        text = repr(float(expr.value))
        return f"({text})" if expr.value < 0 else text
    if isinstance(expr, BandRef):
        return names[expr.symbol]
    if isinstance(expr, _Binary):
        return f"({to_numexpr(expr.left, names)} {expr.operator} {to_numexpr(expr.right, names)})"
    raise EvaluationError(f"Unsupported expression node: {type(expr).__name__}")

def _prepare_operands(expr: Expression, values: Mapping[str, ArrayLike]) -> Dict[str, np.ndarray]:
    required = symbols(expr)
    missing = required - set(values)
    if missing:
        raise EvaluationError(f"Unresolved symbol(s) in expression {expr}: {sorted(missing)}")

    operands = {sym: np.asarray(values[sym], dtype=np.float64) for sym in sorted(required)}

    shapes = {sym: arr.shape for sym, arr in operands.items() if arr.ndim > 0}
    if len(set(shapes.values())) > 1:
        raise EvaluationError(f"Band grids are not uniform: {shapes}")

    return operands

def evaluate(
    expr: Expression,
    values: Mapping[str, ArrayLike],
    fill_value: float = np.nan
) -> np.ndarray:
    """
    Evaluate an expression element-wise over per-symbol values.

    Args:
        expr: Parsed expression tree.
        values: Mapping of symbol to array (or scalar). Arrays must share one shape;
                scalars are broadcast.
        fill_value: Value written to pixels where any denominator is zero.

    Returns:
        np.ndarray: A new float64 array (0-d when every operand is scalar).

    Raises:
        EvaluationError: If a symbol is unresolved or array shapes differ.
    """
    operands = _prepare_operands(expr, values)
    names = {sym: f"v{i}" for i, sym in enumerate(operands)}
    local_dict = {names[sym]: arr for sym, arr in operands.items()}

    result = ne.evaluate(to_numexpr(expr, names), local_dict=local_dict)
    result = np.asarray(result, dtype=np.float64)

    divisors = denominators(expr)
    if not divisors:
        return result

    zero_test = " | ".join(f"({to_numexpr(d, names)} == 0.0)" for d in divisors)
    zero_mask = ne.evaluate(zero_test, local_dict=local_dict)

    if np.any(zero_mask):
        log.debug(f"{int(np.count_nonzero(zero_mask))} pixel(s) hit a zero denominator in {expr}")
        result = np.where(zero_mask, fill_value, result)

    return result
