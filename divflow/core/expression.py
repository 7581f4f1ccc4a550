"""
Expression compilation module for divflow.

Turns a user-supplied arithmetic expression such as ``"-y + 0.1*sin(x)"`` into
a numeric function of declared variables. The source is tokenized, parsed by a
small recursive-descent parser into a tuple-based syntax tree and compiled to
nested closures over numpy ufuncs, so compiled functions accept scalars or
numpy arrays alike.

Only the nodes defined here are reachable: numeric literals, the declared
variables, the fixed math namespace below and the operators
``+ - * / % ^ **``. There is no attribute access, indexing or call into the
host interpreter.

Example:
    fx = compile_expression("-y", ("x", "y"))
    fx(1.0, 2.0)                      # -2.0
    fx(grid_x, grid_y)                # array, same shape as the grids

    bad = compile_expression("x +", ("x", "y"))
    bad.error                         # "Unexpected end of expression ..."
    bad(1.0, 2.0)                     # 0.0
"""

import functools
import logging
import re

import numpy as np

from .. import config
from .errors import CompileError, LimitExceededError, UnknownIdentifierError

logger = logging.getLogger(__name__)


def _reduce(ufunc):
    return lambda *args: functools.reduce(ufunc, args)


# name -> (callable, min_args, max_args); max_args None means variadic
FUNCTIONS = {
    'sin': (np.sin, 1, 1),
    'cos': (np.cos, 1, 1),
    'tan': (np.tan, 1, 1),
    'asin': (np.arcsin, 1, 1),
    'acos': (np.arccos, 1, 1),
    'atan': (np.arctan, 1, 1),
    'atan2': (np.arctan2, 2, 2),
    'sinh': (np.sinh, 1, 1),
    'cosh': (np.cosh, 1, 1),
    'tanh': (np.tanh, 1, 1),
    'exp': (np.exp, 1, 1),
    'log': (np.log, 1, 1),
    'log2': (np.log2, 1, 1),
    'log10': (np.log10, 1, 1),
    'sqrt': (np.sqrt, 1, 1),
    'cbrt': (np.cbrt, 1, 1),
    'abs': (np.abs, 1, 1),
    'sign': (np.sign, 1, 1),
    'floor': (np.floor, 1, 1),
    'ceil': (np.ceil, 1, 1),
    'round': (lambda value: np.floor(value + 0.5), 1, 1),
    'trunc': (np.trunc, 1, 1),
    'pow': (np.power, 2, 2),
    'hypot': (np.hypot, 2, 2),
    'min': (_reduce(np.minimum), 1, None),
    'max': (_reduce(np.maximum), 1, None),
}

CONSTANTS = {
    'pi': np.pi,
    'PI': np.pi,
    'e': np.e,
    'E': np.e,
}

BINARY_OPERATORS = {
    '+': np.add,
    '-': np.subtract,
    '*': np.multiply,
    '/': np.true_divide,
    '%': np.fmod,
    '^': np.power,
    '**': np.power,
}

# Qualified names such as Math.sin resolve to the same tables
NAMESPACE_PREFIX = 'Math.'

_TOKEN_RE = re.compile(r"""
    (?P<number>(?:\d+\.\d*|\.\d+|\d+)(?:[eE][+-]?\d+)?)
  | (?P<name>[A-Za-z_][A-Za-z_0-9]*(?:\.[A-Za-z_][A-Za-z_0-9]*)*)
  | (?P<op>\*\*|[-+*/%^(),])
""", re.VERBOSE)


def tokenize(source):
    """
    Split an expression into ``(kind, text, position)`` tokens.

    The final token is always ``('end', '', len(source))``.

    Raises:
        CompileError: on a character that starts no valid token
    """
    tokens = []
    pos = 0
    length = len(source)
    while pos < length:
        if source[pos].isspace():
            pos += 1
            continue
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise CompileError(f"Unexpected character '{source[pos]}'", pos)
        kind = match.lastgroup
        tokens.append((kind, match.group(kind), pos))
        pos = match.end()
    tokens.append(('end', '', length))
    return tokens


class _Parser:
    """Recursive-descent parser producing a tuple syntax tree."""

    def __init__(self, tokens, variables, max_depth, max_nodes):
        self.tokens = tokens
        self.index = 0
        self.variables = {name: i for i, name in enumerate(variables)}
        self.max_depth = max_depth
        self.max_nodes = max_nodes
        self.depth = 0
        self.nodes = 0

    # -- token helpers ------------------------------------------------------

    def peek(self):
        return self.tokens[self.index]

    def advance(self):
        token = self.tokens[self.index]
        self.index += 1
        return token

    def accept(self, *texts):
        kind, text, _ = self.peek()
        if kind == 'op' and text in texts:
            self.index += 1
            return text
        return None

    def expect(self, text):
        kind, found, pos = self.peek()
        if kind != 'op' or found != text:
            raise CompileError(f"Expected '{text}' but found {_describe(self.peek())}", pos)
        self.index += 1

    def node(self, *parts):
        self.nodes += 1
        if self.nodes > self.max_nodes:
            raise LimitExceededError(f"Expression has more than {self.max_nodes} nodes")
        return parts

    def enter(self, pos):
        self.depth += 1
        if self.depth > self.max_depth:
            raise LimitExceededError(f"Expression is nested deeper than {self.max_depth} levels", pos)

    def leave(self):
        self.depth -= 1

    # -- grammar ------------------------------------------------------------

    def parse(self):
        if self.peek()[0] == 'end':
            raise CompileError("Expression is empty")
        tree = self.additive()
        token = self.peek()
        if token[0] != 'end':
            raise CompileError(f"Unexpected {_describe(token)}", token[2])
        return tree

    def additive(self):
        left = self.multiplicative()
        while True:
            op = self.accept('+', '-')
            if op is None:
                return left
            left = self.node('binary', op, left, self.multiplicative())

    def multiplicative(self):
        left = self.unary()
        while True:
            op = self.accept('*', '/', '%')
            if op is None:
                return left
            left = self.node('binary', op, left, self.unary())

    def unary(self):
        self.enter(self.peek()[2])
        try:
            op = self.accept('-', '+')
            if op == '-':
                return self.node('neg', self.unary())
            if op == '+':
                return self.unary()
            return self.power()
        finally:
            self.leave()

    def power(self):
        base = self.primary()
        op = self.accept('^', '**')
        if op is None:
            return base
        # Exponent goes through unary so 2^-1 parses and a^b^c groups to the right
        return self.node('binary', op, base, self.unary())

    def primary(self):
        kind, text, pos = self.advance()
        if kind == 'number':
            return self.node('num', float(text))
        if kind == 'name':
            return self.name(text, pos)
        if kind == 'op' and text == '(':
            self.enter(pos)
            try:
                inner = self.additive()
            finally:
                self.leave()
            self.expect(')')
            return inner
        if kind == 'end':
            raise CompileError("Unexpected end of expression", pos)
        raise CompileError(f"Unexpected {_describe((kind, text, pos))}", pos)

    def name(self, text, pos):
        name = text[len(NAMESPACE_PREFIX):] if text.startswith(NAMESPACE_PREFIX) else text
        if self.accept('('):
            if name not in FUNCTIONS:
                raise UnknownIdentifierError(text, pos)
            args = []
            if not self.accept(')'):
                args.append(self.additive())
                while self.accept(','):
                    args.append(self.additive())
                self.expect(')')
            _, min_args, max_args = FUNCTIONS[name]
            if len(args) < min_args or (max_args is not None and len(args) > max_args):
                raise CompileError(f"Function '{name}' called with {len(args)} argument(s)", pos)
            return self.node('call', name, tuple(args))
        if name in self.variables and name == text:
            return self.node('var', self.variables[name])
        if name in CONSTANTS:
            return self.node('num', float(CONSTANTS[name]))
        raise UnknownIdentifierError(text, pos)


def _describe(token):
    kind, text, _ = token
    if kind == 'end':
        return "end of expression"
    return f"'{text}'"


def parse(source, variables, max_depth=None, max_nodes=None):
    """
    Parse an expression into a syntax tree.

    Args:
        source (str): Expression text
        variables (sequence of str): Declared variable names, in call order
        max_depth (int, optional): Maximum nesting depth
        max_nodes (int, optional): Maximum syntax tree size

    Returns:
        tuple: Syntax tree

    Raises:
        CompileError: on any syntax error, unknown name or exceeded limit
    """
    if max_depth is None:
        max_depth = config.MAX_EXPRESSION_DEPTH
    if max_nodes is None:
        max_nodes = config.MAX_EXPRESSION_NODES
    if len(source) > config.MAX_EXPRESSION_LENGTH:
        raise LimitExceededError(f"Expression is longer than {config.MAX_EXPRESSION_LENGTH} characters")
    parser = _Parser(tokenize(source), variables, max_depth, max_nodes)
    return parser.parse()


def build_closure(tree):
    """Compile a syntax tree into a function of a tuple of argument values."""
    kind = tree[0]
    if kind == 'num':
        value = tree[1]
        return lambda env: value
    if kind == 'var':
        index = tree[1]
        return lambda env: env[index]
    if kind == 'neg':
        operand = build_closure(tree[1])
        return lambda env: np.negative(operand(env))
    if kind == 'binary':
        ufunc = BINARY_OPERATORS[tree[1]]
        left = build_closure(tree[2])
        right = build_closure(tree[3])
        return lambda env: ufunc(left(env), right(env))
    if kind == 'call':
        func = FUNCTIONS[tree[1]][0]
        args = [build_closure(arg) for arg in tree[2]]
        return lambda env: func(*[arg(env) for arg in args])
    raise CompileError(f"Unknown syntax node '{kind}'")


def _zero(env):
    return 0.0


class CompiledExpression:
    """
    A compiled scalar expression.

    Calling the object with one value per declared variable returns the
    expression's value, or ``0`` wherever the result is not finite or the
    evaluation raised. Array arguments broadcast and yield an array of the
    broadcast shape; scalar arguments yield a float.

    Attributes:
        source (str): The expression text as given
        variables (tuple): Declared variable names, in call order
        error (str or None): Compile error message, None when compiled cleanly
    """

    def __init__(self, source, variables, func=None, error=None):
        self.source = source
        self.variables = tuple(variables)
        self.error = error
        self._func = func if func is not None else _zero

    @property
    def ok(self):
        return self.error is None

    def __call__(self, *args):
        if len(args) != len(self.variables):
            raise TypeError(
                f"expression over {self.variables} takes {len(self.variables)} arguments, got {len(args)}")
        values = tuple(np.asarray(arg, dtype=float) for arg in args)
        shape = np.broadcast_shapes(*(value.shape for value in values)) if values else ()
        try:
            with np.errstate(all='ignore'):
                result = np.asarray(self._func(values), dtype=float)
        except (ArithmeticError, ValueError, TypeError):
            result = np.zeros(shape)
        if result.shape != shape:
            result = np.broadcast_to(result, shape)
        result = np.where(np.isfinite(result), result, 0.0)
        if result.ndim == 0:
            return float(result)
        return result

    def __repr__(self):
        status = 'ok' if self.ok else f'error={self.error!r}'
        return f"CompiledExpression({self.source!r}, {self.variables}, {status})"


def compile_expression(source, variable_names):
    """
    Compile an expression into a sandboxed numeric function.

    Never raises for bad input: on failure the returned function yields 0
    everywhere and its ``error`` attribute holds a display message.

    Args:
        source (str): Expression text, e.g. ``"x*y - sin(z)"``
        variable_names (sequence of str): Declared variables, in call order

    Returns:
        CompiledExpression
    """
    variables = tuple(variable_names)
    text = source if isinstance(source, str) else str(source)
    try:
        tree = parse(text, variables)
        func = build_closure(tree)
    except CompileError as exc:
        logger.debug("Compile failed for %r: %s", text, exc)
        return CompiledExpression(text, variables, error=str(exc))
    return CompiledExpression(text, variables, func=func)


class ExpressionCompiler:
    """
    Holds one compiled expression per axis and recompiles only on change.

    Args:
        variable_names (sequence of str): Variables every expression may use
    """

    def __init__(self, variable_names):
        self.variable_names = tuple(variable_names)
        self._compiled = {}

    def compile(self, axis, source):
        """Return the compiled expression for ``axis``, recompiling if the text changed."""
        current = self._compiled.get(axis)
        if current is not None and current.source == source:
            return current
        compiled = compile_expression(source, self.variable_names)
        self._compiled[axis] = compiled
        return compiled

    def get(self, axis):
        return self._compiled.get(axis)

    @property
    def errors(self):
        """Mapping of axis -> compile error message for axes that failed."""
        return {axis: expr.error for axis, expr in self._compiled.items() if not expr.ok}


def list_functions():
    """List available math functions and their (min, max) argument counts."""
    return {name: (info[1], info[2]) for name, info in FUNCTIONS.items()}


def list_constants():
    """List available named constants."""
    return dict(CONSTANTS)
