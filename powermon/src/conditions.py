"""
Restricted boolean expressions for ``?condition|true|false?`` template spans.

Conditions are configuration, not code.  They are parsed with :mod:`ast` in
``eval`` mode and every node is checked against a whitelist when the
template is loaded; evaluation walks the tree itself and never calls
:func:`eval`.  The only things an expression can do are:

- read fields of the current display record by name,
- use number, string and ``true``/``false`` literals,
- do arithmetic (``+ - * / %``) on numbers only,
- combine values with comparisons (``== != ~= < <= > >=``), ``and`` /
  ``or`` / ``not`` and parentheses.

Attribute access, calls, subscripts, comprehensions and lambdas are
rejected, so a template cannot reach engine state or cause side effects.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import ast
import operator
from collections.abc import Callable, Mapping
from typing import Any

from powermon.src.errors import ConfigurationError, TemplateError

_COMPARE_OPS: dict[type[ast.cmpop], Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
}

_BINARY_OPS: dict[type[ast.operator], Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type[ast.unaryop], Callable[[Any], Any]] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}

_LITERAL_NAMES: dict[str, bool] = {"true": True, "false": False}


class _Validator(ast.NodeVisitor):
    """Reject every node outside the expression whitelist."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.fields: set[str] = set()

    def _reject(self, node: ast.AST) -> None:
        raise ConfigurationError(
            f"unsupported construct '{type(node).__name__}' in condition '{self.source}'"
        )

    def generic_visit(self, node: ast.AST) -> None:
        self._reject(node)

    def visit_Expression(self, node: ast.Expression) -> None:
        self.visit(node.body)

    def visit_BoolOp(self, node: ast.BoolOp) -> None:
        for value in node.values:
            self.visit(value)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if type(node.op) not in _UNARY_OPS:
            self._reject(node.op)
        self.visit(node.operand)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if type(node.op) not in _BINARY_OPS:
            self._reject(node.op)
        for operand in (node.left, node.right):
            if isinstance(operand, ast.Constant) and isinstance(operand.value, str):
                raise ConfigurationError(
                    f"arithmetic on a string literal in condition '{self.source}'"
                )
        self.visit(node.left)
        self.visit(node.right)

    def visit_Compare(self, node: ast.Compare) -> None:
        for op in node.ops:
            if type(op) not in _COMPARE_OPS:
                self._reject(op)
        self.visit(node.left)
        for comparator in node.comparators:
            self.visit(comparator)

    def visit_Name(self, node: ast.Name) -> None:
        if not isinstance(node.ctx, ast.Load):
            self._reject(node)
        if node.id not in _LITERAL_NAMES:
            self.fields.add(node.id)

    def visit_Constant(self, node: ast.Constant) -> None:
        if not isinstance(node.value, (int, float, str)):
            self._reject(node)


class Condition:
    """A compiled, side-effect free boolean expression over record fields.

    Args:
        source: Expression text, e.g. ``"(percent<99.9 and charge>0)"``.

    Raises:
        ConfigurationError: The expression does not parse or uses a
            construct outside the whitelist.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        # "~=" is accepted as an alias of "!=".
        text = source.replace("~=", "!=").strip()
        if not text:
            raise ConfigurationError("empty condition in template")
        try:
            tree = ast.parse(text, mode="eval")
        except SyntaxError as exc:
            raise ConfigurationError(
                f"invalid condition '{source}': {exc.msg}"
            ) from None
        validator = _Validator(source)
        validator.visit(tree)
        self._tree = tree.body
        self.fields: frozenset[str] = frozenset(validator.fields)

    def __repr__(self) -> str:
        return f"Condition({self.source!r})"

    def evaluate(self, record: Mapping[str, object]) -> bool:
        """Evaluate against *record*.

        Raises:
            TemplateError: A referenced field is missing from the record or
                an operation is invalid for its operand types.
        """
        try:
            return bool(self._eval(self._tree, record))
        except TemplateError:
            raise
        except (TypeError, ArithmeticError) as exc:
            raise TemplateError(f"cannot evaluate condition '{self.source}': {exc}") from exc

    def _eval(self, node: ast.AST, record: Mapping[str, object]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in record:
                return record[node.id]
            if node.id in _LITERAL_NAMES:
                return _LITERAL_NAMES[node.id]
            raise TemplateError(
                f"condition '{self.source}' references undefined field '{node.id}'"
            )
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                result: Any = True
                for value in node.values:
                    result = self._eval(value, record)
                    if not result:
                        return result
                return result
            result = False
            for value in node.values:
                result = self._eval(value, record)
                if result:
                    return result
            return result
        if isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, record))
        if isinstance(node, ast.BinOp):
            left = self._eval(node.left, record)
            right = self._eval(node.right, record)
            if not (isinstance(left, (int, float)) and isinstance(right, (int, float))):
                raise TemplateError(
                    f"cannot evaluate condition '{self.source}': arithmetic needs numbers"
                )
            return _BINARY_OPS[type(node.op)](left, right)
        if isinstance(node, ast.Compare):
            left = self._eval(node.left, record)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._eval(comparator, record)
                if not _COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True
        raise TemplateError(f"unsupported node in condition '{self.source}'")
