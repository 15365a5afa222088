"""
Restricted expression evaluation for variable values.

Expressions are parsed with :mod:`ast` in ``eval`` mode and walked by a
whitelisting visitor. Only arithmetic, comparison, boolean logic,
conditional expressions, string methods, a handful of safe builtins and the
date helpers below are reachable. Names resolve exclusively against the
explicit scope mapping handed in by the caller; there is no access to
globals, modules, attributes of arbitrary objects or dunder names.

Example:
    >>> evaluate_expression("currentYear + 1", {"currentYear": 2024})
    2025
    >>> evaluate_expression("region.upper()", {"region": "emea"})
    'EMEA'
"""

from __future__ import annotations

import ast
import logging
import math
from collections.abc import Callable, Mapping
from datetime import date, datetime, timedelta, timezone
from typing import Any

from dashstore.core.errors import EvaluationError

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

SAFE_STR_METHODS: frozenset[str] = frozenset(
    {
        "lower",
        "upper",
        "title",
        "strip",
        "lstrip",
        "rstrip",
        "startswith",
        "endswith",
        "capitalize",
        "replace",
        "split",
        "join",
        "zfill",
    }
)
SAFE_BUILTINS: dict[str, Callable[..., Any]] = {
    "len": len,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "int": int,
    "float": float,
    "str": str,
    "bool": bool,
    "sum": sum,
}
NAME_CONSTANTS: dict[str, Any] = {
    "True": True,
    "False": False,
    "None": None,
    "true": True,
    "false": False,
    "null": None,
}

# Upper bounds on ``**`` exponents, on the length of repeated sequences and
# on the size of integer results (about 4000 decimal digits).
MAX_POWER = 1000
MAX_REPEAT_LENGTH = 1_000_000
MAX_INT_BITS = 13_300


def _system_clock() -> datetime:
    return datetime.now(timezone.utc)


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise EvaluationError(f"Invalid date '{value}'") from e


def date_helpers(clock: Clock | None = None) -> dict[str, Callable[..., Any]]:
    """
    Build the date helper functions exposed to expressions.

    Args:
        clock: Callable returning the current datetime (defaults to UTC now)

    Returns:
        Mapping of helper name to callable
    """
    now_fn = clock or _system_clock

    def today() -> str:
        return now_fn().date().isoformat()

    def now() -> str:
        return now_fn().isoformat(timespec="seconds")

    def current_year() -> int:
        return now_fn().year

    def current_month() -> int:
        return now_fn().month

    def current_day() -> int:
        return now_fn().day

    def date_add(value: Any, days: int) -> str:
        return (_parse_date(value) + timedelta(days=int(days))).isoformat()

    def date_format(value: Any, fmt: str) -> str:
        return _parse_date(value).strftime(str(fmt))

    return {
        "today": today,
        "now": now,
        "current_year": current_year,
        "current_month": current_month,
        "current_day": current_day,
        "date_add": date_add,
        "date_format": date_format,
    }


class SandboxedEvaluator(ast.NodeVisitor):
    """
    Evaluate expressions using a restricted subset of the Python AST.

    Args:
        scope: Variable name to value mapping visible to the expression
        functions: Named helper callables visible to the expression
    """

    def __init__(
        self,
        scope: Mapping[str, Any],
        functions: Mapping[str, Callable[..., Any]] | None = None,
    ) -> None:
        self._scope = scope
        self._functions = dict(SAFE_BUILTINS)
        if functions:
            self._functions.update(functions)
        self._safe_callables = {id(fn) for fn in self._functions.values()}

    def evaluate(self, expression: str) -> Any:
        try:
            tree = ast.parse(expression.strip(), mode="eval")
        except SyntaxError as e:
            raise EvaluationError(f"Invalid expression: {e.msg}", expression=expression) from e
        except (ValueError, RecursionError) as e:
            raise EvaluationError(f"Invalid expression: {e}", expression=expression) from e
        try:
            return self.visit(tree)
        except EvaluationError:
            raise
        except (TypeError, ValueError, ArithmeticError, LookupError, RecursionError) as e:
            raise EvaluationError(str(e), expression=expression) from e

    def visit(self, node: ast.AST) -> Any:  # type: ignore[override]
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise EvaluationError(f"Unsupported expression element '{type(node).__name__}'")
        return method(node)

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Constant(self, node: ast.Constant) -> Any:
        if isinstance(node.value, (bytes, complex)) or node.value is Ellipsis:
            raise EvaluationError("Unsupported literal")
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        identifier = node.id
        if identifier.startswith("_"):
            raise EvaluationError(f"Name '{identifier}' is not permitted")
        if identifier in self._scope:
            return self._scope[identifier]
        if identifier in NAME_CONSTANTS:
            return NAME_CONSTANTS[identifier]
        if identifier in self._functions:
            return self._functions[identifier]
        raise EvaluationError(f"Unknown name '{identifier}'")

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        if isinstance(op, ast.And):
            for value_node in node.values:
                result = self.visit(value_node)
                if not result:
                    return result
            return result
        for value_node in node.values:
            result = self.visit(value_node)
            if result:
                return result
        return result

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(op, ast.UAdd):
            return +operand
        if isinstance(op, ast.USub):
            return -operand
        if isinstance(op, ast.Not):
            return not operand
        raise EvaluationError("Unsupported unary operator")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        result = self._apply_binop(node.op, self.visit(node.left), self.visit(node.right))
        if isinstance(result, int) and result.bit_length() > MAX_INT_BITS:
            raise EvaluationError("Result too large")
        return result

    def _apply_binop(self, op: ast.operator, left: Any, right: Any) -> Any:
        try:
            if isinstance(op, ast.Add):
                if isinstance(left, str) != isinstance(right, str):
                    return to_display_string(left) + to_display_string(right)
                return left + right
            if isinstance(op, ast.Sub):
                return left - right
            if isinstance(op, ast.Mult):
                for operand, count in ((left, right), (right, left)):
                    if isinstance(operand, (str, list)) and isinstance(count, int):
                        if len(operand) * count > MAX_REPEAT_LENGTH:
                            raise EvaluationError("Repetition count too large")
                return left * right
            if isinstance(op, ast.Div):
                return left / right
            if isinstance(op, ast.FloorDiv):
                return left // right
            if isinstance(op, ast.Mod):
                return left % right
            if isinstance(op, ast.Pow):
                if isinstance(right, (int, float)) and abs(right) > MAX_POWER:
                    raise EvaluationError("Exponent too large")
                if isinstance(left, int) and isinstance(right, int):
                    if left.bit_length() * right > 2 * MAX_INT_BITS:
                        raise EvaluationError("Result too large")
                return left**right
        except (TypeError, ZeroDivisionError, OverflowError, ValueError) as e:
            raise EvaluationError(str(e)) from e
        raise EvaluationError("Unsupported binary operator")

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            try:
                if isinstance(op, ast.Eq):
                    ok = left == right
                elif isinstance(op, ast.NotEq):
                    ok = left != right
                elif isinstance(op, ast.Lt):
                    ok = left < right
                elif isinstance(op, ast.LtE):
                    ok = left <= right
                elif isinstance(op, ast.Gt):
                    ok = left > right
                elif isinstance(op, ast.GtE):
                    ok = left >= right
                elif isinstance(op, ast.In):
                    ok = left in right
                elif isinstance(op, ast.NotIn):
                    ok = left not in right
                else:
                    raise EvaluationError("Unsupported comparison operator")
            except TypeError as e:
                raise EvaluationError(str(e)) from e
            if not ok:
                return False
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Call(self, node: ast.Call) -> Any:
        func = self.visit(node.func)
        if not self._is_safe_callable(func):
            raise EvaluationError("Call to unsupported function")
        args = [self.visit(arg) for arg in node.args]
        kwargs: dict[str, Any] = {}
        for kw in node.keywords:
            if kw.arg is None:
                raise EvaluationError("Argument unpacking is not permitted")
            kwargs[kw.arg] = self.visit(kw.value)
        try:
            return func(*args, **kwargs)
        except EvaluationError:
            raise
        except Exception as e:
            raise EvaluationError(str(e)) from e

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        value = self.visit(node.value)
        attr = node.attr
        if attr.startswith("_"):
            raise EvaluationError(f"Attribute '{attr}' is not permitted")
        if isinstance(value, str) and attr in SAFE_STR_METHODS:
            return getattr(value, attr)
        raise EvaluationError(f"Access to attribute '{attr}' is not permitted")

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        value = self.visit(node.value)
        if not isinstance(value, (str, list, tuple)):
            raise EvaluationError("Subscript is only permitted on strings and lists")
        slice_node = node.slice
        try:
            if isinstance(slice_node, ast.Slice):
                lower = self.visit(slice_node.lower) if slice_node.lower is not None else None
                upper = self.visit(slice_node.upper) if slice_node.upper is not None else None
                step = self.visit(slice_node.step) if slice_node.step is not None else None
                return value[slice(lower, upper, step)]
            return value[self.visit(slice_node)]
        except (IndexError, TypeError) as e:
            raise EvaluationError(str(e)) from e

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(element) for element in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(element) for element in node.elts)

    def generic_visit(self, node: ast.AST) -> Any:
        raise EvaluationError(f"Unsupported expression element '{type(node).__name__}'")

    def _is_safe_callable(self, func: Any) -> bool:
        if id(func) in self._safe_callables:
            return True
        owner = getattr(func, "__self__", None)
        return isinstance(owner, str) and getattr(func, "__name__", "") in SAFE_STR_METHODS


def referenced_names(expression: str) -> list[str]:
    """
    List the bare names an expression reads, in first-seen order.

    Unparseable expressions reference nothing; the parse error surfaces
    later when the expression is evaluated.
    """
    try:
        tree = ast.parse(expression.strip(), mode="eval")
    except SyntaxError:
        return []
    seen: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and node.id not in seen:
            seen.append(node.id)
    return seen


def evaluate_expression(
    expression: str,
    scope: Mapping[str, Any],
    *,
    clock: Clock | None = None,
    functions: Mapping[str, Callable[..., Any]] | None = None,
) -> Any:
    """
    Evaluate one expression against an explicit scope.

    Args:
        expression: Expression source text
        scope: Variable values visible to the expression
        clock: Clock used by the date helpers
        functions: Extra helper callables

    Returns:
        The raw evaluation result

    Raises:
        EvaluationError: If the expression is invalid, uses a forbidden
            construct, references an unknown name or fails at runtime
    """
    helpers = date_helpers(clock)
    if functions:
        helpers.update(functions)
    logger.debug("Evaluating expression: %s", expression)
    return SandboxedEvaluator(scope, helpers).evaluate(expression)


def to_display_string(value: Any) -> str:
    """
    Render an evaluated value as display text.

    Booleans render as ``true``/``false``, integral floats drop their
    fractional part and ``None`` renders as the empty string.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join(to_display_string(item) for item in value)
    return str(value)


def coerce_scalar(raw: str) -> Any:
    """
    Coerce a plain variable's raw text into a scalar for expression scopes.

    Numeric text is converted only when its canonical rendering round-trips
    to the same text, so ``"007"`` and ``"1e3"`` stay strings.
    """
    lowered = raw.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        as_int = int(raw)
        if str(as_int) == raw:
            return as_int
    except ValueError:
        pass
    try:
        as_float = float(raw)
    except ValueError:
        return raw
    if not math.isfinite(as_float):
        return raw
    if to_display_string(as_float) == raw or repr(as_float) == raw:
        return as_float
    return raw


__all__ = [
    "Clock",
    "SandboxedEvaluator",
    "coerce_scalar",
    "date_helpers",
    "evaluate_expression",
    "referenced_names",
    "to_display_string",
]
