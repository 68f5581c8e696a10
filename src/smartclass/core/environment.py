"""Runtime environment consulted by ``platformConfig`` and ``responsiveConfig``.

The environment holds a set of platform tags (``desktop``, ``phone``,
``tablet`` ...) and a free-form responsive state (``width``/``height`` by
default). Every mutation bumps ``version`` so the config system can tell
whether defaults resolved at finalization are still current.

Platform predicates
    ``"phone"`` matches when the tag is present; ``"phone,tablet"`` matches
    when any listed tag is present; a leading ``!`` negates one tag.

Responsive rules
    Python boolean expressions over names: the responsive state, the derived
    flags ``landscape``/``portrait``/``wide``/``tall`` and every platform tag
    (``True`` when active). ``&&``/``||`` are accepted as ``and``/``or``.
    Only names, constants, comparisons, arithmetic and boolean operators are
    allowed; names that are not known evaluate to ``False``. A rule whose
    evaluation fails (division by zero, mismatched operand types) does not
    match.
"""

from __future__ import annotations

import ast
import operator
from functools import lru_cache
from typing import Any, Callable, Dict, FrozenSet, Iterable, Optional

__all__ = ["Environment", "compile_rule"]

_COMPARE: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda left, right: left in right,
    ast.NotIn: lambda left, right: left not in right,
}

_BINARY: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}


@lru_cache(maxsize=256)
def compile_rule(expression: str) -> ast.Expression:
    """Parse and vet a responsive rule; raises ``ValueError`` when malformed."""
    source = expression.replace("&&", " and ").replace("||", " or ").strip()
    if not source:
        raise ValueError("empty responsive rule")
    try:
        tree = ast.parse(source, mode="eval")
    except SyntaxError as exc:
        raise ValueError(f"invalid responsive rule {expression!r}: {exc.msg}") from exc
    for node in ast.walk(tree):
        if isinstance(
            node,
            (
                ast.Expression,
                ast.BoolOp,
                ast.And,
                ast.Or,
                ast.UnaryOp,
                ast.Not,
                ast.USub,
                ast.UAdd,
                ast.Compare,
                ast.BinOp,
                ast.Name,
                ast.Load,
                ast.Constant,
                ast.Tuple,
            ),
        ):
            continue
        if type(node) in _COMPARE or type(node) in _BINARY:
            continue
        raise ValueError(f"unsupported syntax {type(node).__name__} in rule {expression!r}")
    return tree


class Environment:
    """Platform tags plus responsive state, versioned on every change."""

    def __init__(self, platforms: Iterable[str] = ("desktop",), **state: Any) -> None:
        self._platforms: FrozenSet[str] = _tags(platforms)
        self._state: Dict[str, Any] = {"width": 1024, "height": 768}
        self._state.update(state)
        self.version = 0

    @property
    def platforms(self) -> FrozenSet[str]:
        return self._platforms

    @property
    def state(self) -> Dict[str, Any]:
        return dict(self._state)

    def set_platform(self, *platforms: str) -> None:
        self._platforms = _tags(platforms)
        self.version += 1

    def update(self, **state: Any) -> None:
        self._state.update(state)
        self.version += 1

    def names(self) -> Dict[str, Any]:
        scope: Dict[str, Any] = {tag: True for tag in self._platforms}
        scope.update(self._state)
        width = self._state.get("width")
        height = self._state.get("height")
        if isinstance(width, (int, float)) and isinstance(height, (int, float)):
            landscape = width > height
            scope.setdefault("landscape", landscape)
            scope.setdefault("portrait", not landscape)
            scope.setdefault("wide", landscape)
            scope.setdefault("tall", not landscape)
        scope.setdefault("platform", sorted(self._platforms))
        return scope

    def matches_platform(self, predicate: str) -> bool:
        for token in predicate.split(","):
            token = token.strip()
            if not token:
                continue
            if token.startswith("!"):
                if token[1:].strip() not in self._platforms:
                    return True
            elif token in self._platforms:
                return True
        return False

    def evaluate(self, expression: str) -> bool:
        tree = compile_rule(expression)
        try:
            return bool(_Evaluator(self.names()).visit(tree.body))
        except (ArithmeticError, TypeError):
            return False

    def __repr__(self) -> str:
        return f"Environment(platforms={sorted(self._platforms)!r}, state={self._state!r})"


class _Evaluator:
    def __init__(self, scope: Dict[str, Any]) -> None:
        self._scope = scope

    def visit(self, node: ast.AST) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            return self._scope.get(node.id, False)
        if isinstance(node, ast.Tuple):
            return tuple(self.visit(item) for item in node.elts)
        if isinstance(node, ast.BoolOp):
            if isinstance(node.op, ast.And):
                return all(self.visit(value) for value in node.values)
            return any(self.visit(value) for value in node.values)
        if isinstance(node, ast.UnaryOp):
            operand = self.visit(node.operand)
            if isinstance(node.op, ast.Not):
                return not operand
            if isinstance(node.op, ast.USub):
                return -operand
            return +operand
        if isinstance(node, ast.BinOp):
            return _BINARY[type(node.op)](self.visit(node.left), self.visit(node.right))
        if isinstance(node, ast.Compare):
            left = self.visit(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = self.visit(comparator)
                try:
                    if not _COMPARE[type(op)](left, right):
                        return False
                except TypeError:
                    return False
                left = right
            return True
        raise ValueError(f"unsupported rule node {type(node).__name__}")  # pragma: no cover


def _tags(platforms: Optional[Iterable[str]]) -> FrozenSet[str]:
    if platforms is None:
        return frozenset()
    if isinstance(platforms, str):
        platforms = platforms.split(",")
    return frozenset(tag.strip() for tag in platforms if tag and tag.strip())
