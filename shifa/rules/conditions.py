"""Declarative condition expressions for triage rules and skip predicates.

Conditions are written in a small subset of Python expression syntax:

    breathing == 'severe' and consciousness in ['pain', 'unresponsive']
    4 <= pain <= 6
    'chest' in injuries or between(vital_signs.heart_rate, 40, 130)

Expressions are parsed with the standard ``ast`` module and checked against a
whitelist of node types when the configuration is loaded. The resulting tree is
walked by :class:`ConditionEvaluator`; it is never handed to ``eval`` or
``compile``, so a condition cannot call arbitrary code or modify the record.

Any comparison that references a field missing from the patient record
evaluates to False. Malformed expressions and runtime failures (type
mismatches, division by zero) are reported as diagnostics and also evaluate to
False, so a single bad rule never aborts an assessment.
"""

import ast
import logging
import operator
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from shifa.core.exceptions import (
    ConditionError,
    ConditionEvaluationError,
    ConditionSyntaxError,
)

logger = logging.getLogger(__name__)

# Root name that refers to the record itself (``patient.breathing``)
RECORD_ROOT = "patient"

# Maximum diagnostics retained per evaluator
MAX_DIAGNOSTICS = 100


class _Missing:
    """Marker for a field that has not been answered."""

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


COMPARISON_OPERATORS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}

ARITHMETIC_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

# name -> number of arguments
FUNCTIONS = {
    "is_set": 1,
    "len": 1,
    "between": 3,
    "any_of": 2,
}

LITERAL_TYPES = (str, int, float, bool, type(None))


@dataclass(frozen=True)
class Condition:
    """A compiled condition expression.

    ``tree`` is None when the source failed to compile; ``error`` then holds
    the reason and the condition never matches.
    """

    source: str
    tree: ast.Expression | None = None
    error: str | None = None

    @property
    def is_valid(self) -> bool:
        return self.tree is not None

    def __str__(self) -> str:
        return self.source


@dataclass(frozen=True)
class ConditionDiagnostic:
    """A condition that could not be evaluated."""

    expression: str
    message: str


def parse_condition(source: str) -> ast.Expression:
    """Parse and validate a condition expression.

    Args:
        source: Expression text

    Returns:
        Validated expression tree

    Raises:
        ConditionSyntaxError: If the text is not a valid expression or uses a
            construct outside the condition grammar
    """
    if not isinstance(source, str) or not source.strip():
        raise ConditionSyntaxError("Condition must be a non-empty string", str(source))

    try:
        tree = ast.parse(source.strip(), mode="eval")
        _validate_node(tree.body, source)
    except SyntaxError as exc:
        raise ConditionSyntaxError(f"Invalid syntax: {exc.msg}", source) from exc
    except (RecursionError, MemoryError) as exc:
        raise ConditionSyntaxError("Expression nested too deeply", source) from exc

    return tree


@lru_cache(maxsize=512)
def _compile_cached(source: str) -> Condition:
    try:
        return Condition(source=source, tree=parse_condition(source))
    except ConditionSyntaxError as exc:
        return Condition(source=source, error=str(exc))


def compile_condition(source: Any) -> Condition:
    """Compile a condition, capturing syntax errors instead of raising.

    Args:
        source: Expression text (non-strings produce an invalid condition)

    Returns:
        Condition, valid or carrying its compile error
    """
    if isinstance(source, Condition):
        return source
    if not isinstance(source, str):
        return Condition(source=repr(source), error="Condition must be a non-empty string")
    return _compile_cached(source)


def _field_path(node: ast.expr) -> tuple[str, ...] | None:
    """Return the dotted field path of a Name/Attribute chain, or None."""
    parts: list[str] = []
    while isinstance(node, ast.Attribute):
        parts.append(node.attr)
        node = node.value
    if not isinstance(node, ast.Name):
        return None
    parts.append(node.id)
    parts.reverse()

    if parts[0] == RECORD_ROOT and len(parts) > 1:
        parts = parts[1:]
    return tuple(parts)


def _validate_node(node: ast.AST, source: str) -> None:
    """Reject any construct outside the condition grammar."""
    if isinstance(node, ast.BoolOp):
        for value in node.values:
            _validate_node(value, source)

    elif isinstance(node, ast.UnaryOp):
        if not isinstance(node.op, (ast.Not, ast.USub, ast.UAdd)):
            raise ConditionSyntaxError(
                f"Unsupported unary operator: {type(node.op).__name__}", source
            )
        _validate_node(node.operand, source)

    elif isinstance(node, ast.BinOp):
        if type(node.op) not in ARITHMETIC_OPERATORS:
            raise ConditionSyntaxError(
                f"Unsupported operator: {type(node.op).__name__}", source
            )
        _validate_node(node.left, source)
        _validate_node(node.right, source)

    elif isinstance(node, ast.Compare):
        for op in node.ops:
            if type(op) not in COMPARISON_OPERATORS:
                raise ConditionSyntaxError(
                    f"Unsupported comparison: {type(op).__name__}", source
                )
        _validate_node(node.left, source)
        for comparator in node.comparators:
            _validate_node(comparator, source)

    elif isinstance(node, (ast.Name, ast.Attribute)):
        if _field_path(node) is None:
            raise ConditionSyntaxError("Invalid field reference", source)

    elif isinstance(node, ast.Constant):
        if not isinstance(node.value, LITERAL_TYPES):
            raise ConditionSyntaxError(
                f"Unsupported literal: {node.value!r}", source
            )

    elif isinstance(node, (ast.List, ast.Tuple, ast.Set)):
        for element in node.elts:
            if isinstance(element, ast.UnaryOp) and isinstance(element.op, ast.USub):
                element = element.operand
            if not isinstance(element, ast.Constant):
                raise ConditionSyntaxError(
                    "Collections may only contain literal values", source
                )
            _validate_node(element, source)

    elif isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in FUNCTIONS:
            raise ConditionSyntaxError("Unknown function call", source)
        name = node.func.id
        if node.keywords or len(node.args) != FUNCTIONS[name]:
            raise ConditionSyntaxError(
                f"{name}() takes {FUNCTIONS[name]} positional argument(s)", source
            )
        if name == "is_set" and not isinstance(node.args[0], (ast.Name, ast.Attribute)):
            raise ConditionSyntaxError("is_set() expects a field name", source)
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                raise ConditionSyntaxError("Starred arguments are not allowed", source)
            _validate_node(arg, source)

    else:
        raise ConditionSyntaxError(
            f"Unsupported construct: {type(node).__name__}", source
        )


def _is_missing(value: Any) -> bool:
    return value is MISSING or value is None


def _require_number(value: Any, source: str) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConditionEvaluationError(
            f"Expected a number, got {type(value).__name__}", source
        )
    return value


class _Interpreter:
    """Walks a validated expression tree against one patient record."""

    def __init__(self, record: Mapping[str, Any], source: str) -> None:
        self.record = record
        self.source = source

    def visit(self, node: ast.AST) -> Any:
        if isinstance(node, ast.BoolOp):
            return self._bool_op(node)
        if isinstance(node, ast.UnaryOp):
            return self._unary_op(node)
        if isinstance(node, ast.BinOp):
            return self._bin_op(node)
        if isinstance(node, ast.Compare):
            return self._compare(node)
        if isinstance(node, (ast.Name, ast.Attribute)):
            return self._resolve(_field_path(node) or ())
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, (ast.List, ast.Tuple, ast.Set)):
            return tuple(self.visit(element) for element in node.elts)
        if isinstance(node, ast.Call):
            return self._call(node)
        raise ConditionEvaluationError(
            f"Unsupported construct: {type(node).__name__}", self.source
        )

    def _resolve(self, path: tuple[str, ...]) -> Any:
        current: Any = self.record
        for part in path:
            if isinstance(current, Mapping) and part in current:
                current = current[part]
            else:
                return MISSING
        return current

    def _bool_op(self, node: ast.BoolOp) -> bool:
        if isinstance(node.op, ast.And):
            return all(_truthy(self.visit(value)) for value in node.values)
        return any(_truthy(self.visit(value)) for value in node.values)

    def _unary_op(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not _truthy(operand)
        if _is_missing(operand):
            return MISSING
        number = _require_number(operand, self.source)
        return -number if isinstance(node.op, ast.USub) else number

    def _bin_op(self, node: ast.BinOp) -> Any:
        left = self.visit(node.left)
        right = self.visit(node.right)
        if _is_missing(left) or _is_missing(right):
            return MISSING

        func = ARITHMETIC_OPERATORS[type(node.op)]
        try:
            return func(
                _require_number(left, self.source),
                _require_number(right, self.source),
            )
        except ZeroDivisionError as exc:
            raise ConditionEvaluationError("Division by zero", self.source) from exc

    def _compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if _is_missing(left) or _is_missing(right):
                return False
            try:
                if not COMPARISON_OPERATORS[type(op)](left, right):
                    return False
            except (TypeError, ValueError) as exc:
                raise ConditionEvaluationError(
                    f"Cannot compare {left!r} and {right!r}: {exc}", self.source
                ) from exc
            left = right
        return True

    def _call(self, node: ast.Call) -> Any:
        name = node.func.id  # type: ignore[attr-defined]
        args = [self.visit(arg) for arg in node.args]

        if name == "is_set":
            return not _is_missing(args[0])

        if name == "len":
            if _is_missing(args[0]):
                return MISSING
            try:
                return len(args[0])
            except TypeError as exc:
                raise ConditionEvaluationError(
                    f"len() of {type(args[0]).__name__}", self.source
                ) from exc

        if name == "between":
            value, low, high = args
            if any(_is_missing(arg) for arg in args):
                return False
            return (
                _require_number(low, self.source)
                <= _require_number(value, self.source)
                <= _require_number(high, self.source)
            )

        # any_of
        value, options = args
        if _is_missing(value) or _is_missing(options):
            return False
        if not isinstance(options, (tuple, list)):
            raise ConditionEvaluationError("any_of() expects a list of values", self.source)
        if isinstance(value, (list, tuple, set, frozenset)):
            return any(item in options for item in value)
        return value in options


def _truthy(value: Any) -> bool:
    if _is_missing(value):
        return False
    return bool(value)


class ConditionEvaluator:
    """Evaluates condition expressions against partial patient records.

    ``evaluate`` never raises. Failures are logged, recorded in
    ``diagnostics`` and reported as a non-match.
    """

    def __init__(self) -> None:
        self.diagnostics: deque[ConditionDiagnostic] = deque(maxlen=MAX_DIAGNOSTICS)

    def evaluate(self, expression: "str | Condition", record: Mapping[str, Any]) -> bool:
        """Evaluate an expression against a patient record.

        Args:
            expression: Expression text or a compiled Condition
            record: Patient record (possibly incomplete)

        Returns:
            True if the condition holds; False if it does not hold, references
            unanswered fields, or could not be evaluated
        """
        condition = compile_condition(expression)

        if condition.tree is None:
            self._report(condition.source, condition.error or "Invalid condition")
            return False

        try:
            return _truthy(_Interpreter(record, condition.source).visit(condition.tree.body))
        except ConditionError as exc:
            self._report(condition.source, str(exc))
        except RecursionError:
            self._report(condition.source, "Expression nested too deeply")
        return False

    def _report(self, expression: str, message: str) -> None:
        logger.warning(f"Condition evaluation failed: {message} (expression: {expression!r})")
        self.diagnostics.append(ConditionDiagnostic(expression=expression, message=message))

    def clear_diagnostics(self) -> None:
        """Forget recorded diagnostics."""
        self.diagnostics.clear()


def evaluate_condition(expression: "str | Condition", record: Mapping[str, Any]) -> bool:
    """Convenience function to evaluate one expression with a fresh evaluator."""
    return ConditionEvaluator().evaluate(expression, record)
