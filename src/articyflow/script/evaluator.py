"""Expression evaluation for embedded flow scripts.

Exported flows carry small C-like scripts on pins, condition nodes and
instruction nodes, e.g.::

    GameState.met_guard == true && CountCoins() > 3
    GameState.coins -= 2; GameState.met_guard = true

The sandbox talks to an :class:`Evaluator`; :class:`ExpressoEvaluator` is the
default implementation. It parses scripts with an LALR lark grammar
(``expresso.lark``) and walks the tree with a lark ``Interpreter``. Dotted
names such as ``GameState.coins`` resolve to a single entry of the flat
variable store.
"""

from __future__ import annotations

import math
from functools import lru_cache
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from lark import Lark, Tree
from lark.exceptions import UnexpectedInput
from lark.visitors import Interpreter

from articyflow.script.errors import ScriptEvaluationError, ScriptSyntaxError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping, MutableMapping

GRAMMAR_PATH = Path(__file__).with_name("expresso.lark")

_parser: Lark | None = None


class Evaluator(Protocol):
    """Evaluates one script against a variable scope and native functions."""

    def evaluate(
        self,
        script: str,
        variables: MutableMapping[str, Any],
        functions: Mapping[str, Callable[..., Any]],
        *,
        returns: bool,
    ) -> Any:
        """Run *script* and return its value.

        Args:
            script: Script source.
            variables: Variable scope. Instructions write assignments here.
            functions: Callables reachable from the script by name.
            returns: True for condition scripts (read-only, value matters),
                False for instruction scripts.
        """
        ...


def _load_parser() -> Lark:
    global _parser
    if _parser is None:
        grammar = GRAMMAR_PATH.read_text(encoding="utf-8")
        _parser = Lark(grammar, start="start", parser="lalr", maybe_placeholders=True)
    return _parser


@lru_cache(maxsize=1024)
def parse_script(script: str) -> Tree:
    """Parse a script into a lark tree.

    Parsed trees are cached by source text since exported flows evaluate the
    same pin scripts many times during branch collection.

    Raises:
        ScriptSyntaxError: If the script does not match the grammar.
    """
    try:
        return _load_parser().parse(script)
    except UnexpectedInput as e:
        raise ScriptSyntaxError(
            script=script,
            detail=type(e).__name__,
            line=getattr(e, "line", None),
            column=getattr(e, "column", None),
        ) from e


# -----------------------------------------------------------------------------
# Value semantics
# -----------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def to_display_string(value: Any) -> str:
    """Render a script value the way string concatenation does."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def to_number(value: Any) -> float | int:
    if _is_number(value):
        return value
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return math.nan
    return math.nan


def is_truthy(value: Any) -> bool:
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def strict_equals(left: Any, right: Any) -> bool:
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return bool(left == right)


def loose_equals(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    if type(left) is type(right) or (_is_number(left) and _is_number(right)):
        return strict_equals(left, right)
    # Mixed types compare numerically (true == 1, "3" == 3)
    return to_number(left) == to_number(right)


def _compare(op: str, left: Any, right: Any) -> bool:
    if op == "===":
        return strict_equals(left, right)
    if op == "!==":
        return not strict_equals(left, right)
    if op == "==":
        return loose_equals(left, right)
    if op == "!=":
        return not loose_equals(left, right)

    if isinstance(left, str) and isinstance(right, str):
        a: Any = left
        b: Any = right
    else:
        a = to_number(left)
        b = to_number(right)
    if op == "<":
        return bool(a < b)
    if op == "<=":
        return bool(a <= b)
    if op == ">":
        return bool(a > b)
    if op == ">=":
        return bool(a >= b)
    raise ValueError(f"Unknown comparison operator: {op}")


def _divide(left: float, right: float) -> float:
    if right == 0:
        if left == 0 or math.isnan(left):
            return math.nan
        return math.copysign(math.inf, left) * math.copysign(1, right)
    return left / right


def _arith(op: str, left: Any, right: Any) -> Any:
    if op == "+" and (isinstance(left, str) or isinstance(right, str)):
        return to_display_string(left) + to_display_string(right)
    a = to_number(left)
    b = to_number(right)
    if op == "+":
        return a + b
    if op == "-":
        return a - b
    if op == "*":
        return a * b
    if op == "/":
        return _divide(a, b)
    if op == "%":
        if b == 0:
            return math.nan
        if isinstance(a, float) or isinstance(b, float):
            return math.fmod(a, b)
        return int(math.fmod(a, b))
    raise ValueError(f"Unknown arithmetic operator: {op}")


_COMPOUND_OPS = {"+=": "+", "-=": "-", "*=": "*", "/=": "/", "%=": "%"}


def _unquote(token: str) -> str:
    body = token[1:-1]
    return body.encode("latin-1", "backslashreplace").decode("unicode_escape")


# -----------------------------------------------------------------------------
# Tree interpreter
# -----------------------------------------------------------------------------


class _ScriptInterpreter(Interpreter):
    """Walks one parsed script.

    Visiting is top-down so ``&&``, ``||`` and the ternary operator only
    evaluate the operands they need.
    """

    def __init__(
        self,
        script: str,
        variables: MutableMapping[str, Any],
        functions: Mapping[str, Callable[..., Any]],
        *,
        read_only: bool,
    ) -> None:
        super().__init__()
        self._script = script
        self._variables = variables
        self._functions = functions
        self._read_only = read_only

    def _fail(self, detail: str) -> ScriptEvaluationError:
        return ScriptEvaluationError(script=self._script, detail=detail)

    def _eval(self, node: Any) -> Any:
        if isinstance(node, Tree):
            return self.visit(node)
        raise self._fail(f"unexpected token {node!r}")

    def _lookup(self, name: str) -> Any:
        if name not in self._variables:
            raise self._fail(f"unknown variable '{name}'")
        return self._variables[name]

    def _store(self, name: str, value: Any) -> Any:
        if self._read_only:
            raise self._fail(f"assignment to '{name}' in a condition")
        if name not in self._variables:
            raise self._fail(f"unknown variable '{name}'")
        self._variables[name] = value
        return value

    # -- statements -----------------------------------------------------------

    def start(self, tree: Tree) -> Any:
        result: Any = None
        for statement in tree.children:
            result = self._eval(statement)
        return result

    def assign(self, tree: Tree) -> Any:
        name_token, op_token, expr = tree.children
        name = str(name_token)
        value = self._eval(expr)
        op = str(op_token)
        if op != "=":
            value = _arith(_COMPOUND_OPS[op], self._lookup(name), value)
        return self._store(name, value)

    def postfix(self, tree: Tree) -> Any:
        name_token, op_token = tree.children
        name = str(name_token)
        old = to_number(self._lookup(name))
        self._store(name, old + 1 if str(op_token) == "++" else old - 1)
        return old

    def prefix(self, tree: Tree) -> Any:
        op_token, name_token = tree.children
        name = str(name_token)
        old = to_number(self._lookup(name))
        return self._store(name, old + 1 if str(op_token) == "++" else old - 1)

    # -- expressions ----------------------------------------------------------

    def ternary(self, tree: Tree) -> Any:
        condition, if_true, if_false = tree.children
        if is_truthy(self._eval(condition)):
            return self._eval(if_true)
        return self._eval(if_false)

    def or_(self, tree: Tree) -> Any:
        left, right = tree.children
        value = self._eval(left)
        return value if is_truthy(value) else self._eval(right)

    def and_(self, tree: Tree) -> Any:
        left, right = tree.children
        value = self._eval(left)
        return self._eval(right) if is_truthy(value) else value

    def compare(self, tree: Tree) -> bool:
        left, op, right = tree.children
        return _compare(str(op), self._eval(left), self._eval(right))

    def arith(self, tree: Tree) -> Any:
        left, op, right = tree.children
        return _arith(str(op), self._eval(left), self._eval(right))

    def not_(self, tree: Tree) -> bool:
        return not is_truthy(self._eval(tree.children[0]))

    def sign(self, tree: Tree) -> Any:
        op, operand = tree.children
        value = to_number(self._eval(operand))
        return -value if str(op) == "-" else value

    def call(self, tree: Tree) -> Any:
        name_token, arguments = tree.children
        name = str(name_token)
        func = self._functions.get(name)
        if func is None:
            raise self._fail(f"unknown function '{name}'")
        args = [self._eval(arg) for arg in arguments.children] if arguments is not None else []
        return func(*args)

    def var(self, tree: Tree) -> Any:
        return self._lookup(str(tree.children[0]))

    # -- literals -------------------------------------------------------------

    def number(self, tree: Tree) -> int | float:
        text = str(tree.children[0])
        if text.isdigit():
            return int(text)
        return float(text)

    def string(self, tree: Tree) -> str:
        return _unquote(str(tree.children[0]))

    def true(self, tree: Tree) -> bool:
        return True

    def false(self, tree: Tree) -> bool:
        return False

    def null(self, tree: Tree) -> None:
        return None


class ExpressoEvaluator:
    """Default :class:`Evaluator` backed by the lark expression grammar.

    Condition scripts (``returns=True``) run read-only: an assignment raises
    :class:`ScriptEvaluationError` so that previewing a condition can never
    change the variable store.
    """

    def evaluate(
        self,
        script: str,
        variables: MutableMapping[str, Any],
        functions: Mapping[str, Callable[..., Any]],
        *,
        returns: bool,
    ) -> Any:
        tree = parse_script(script)
        interpreter = _ScriptInterpreter(script, variables, functions, read_only=returns)
        return interpreter.visit(tree)


default_evaluator = ExpressoEvaluator()
