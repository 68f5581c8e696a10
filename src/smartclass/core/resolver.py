"""Dependency resolver: admission, readiness and propagation (source of truth).

Admission
---------
``admit(directives, replace=False)`` creates a pending :class:`ClassNode`,
stores it in the registry (``DuplicateDefinition`` is reported and raised
unless ``replace``), and records its edges:

- hard edges (``extend``, every mixin, every ``requires``): a name counts as
  unresolved until a finalized node answers to it (path or alternate name);
  waiters are indexed by the awaited name;
- soft edges (``uses``): only recorded on the descriptor, never blocking.

``admitted`` listeners run before readiness is evaluated, so overrides held
for the path are attached to the node before its first build.

Cycles
------
After recording the edges the resolver walks the hard edges of pending nodes
starting from the new node. When the walk returns to the new node, a single
``CyclicDependency`` (cycle path, first == last) is reported and attached to
every node in the cycle; all of them stay pending. A cycle error is cleared
when the node's hard edges are all satisfied later (the cycle was broken by a
corrected redefinition).

Worklist
--------
``_drain`` processes ready nodes (pending, no unresolved names, no blocking
error) in FIFO order. Each is finalized by the builder, its names are
published, ``finalized`` listeners run, and every waiter of the node's path
or alternate names loses that edge; waiters reaching zero edges join the
queue. A builder failure is attached to the node and reported (exceptions
that are not ``ClassSystemError`` are wrapped in ``InvalidDirective``); the
node stays pending and nothing else is affected.

Rebuild
-------
``rebuild(node)`` re-finalizes a finalized node and then, to a fixed point,
every finalized node whose ``extend`` or mixins reference a rebuilt path.
Replacing a finalized definition triggers the same propagation once the new
node finalizes. Names (aliases, xtype, alternate names) are published only at
first finalization; a rebuild never re-claims them. A failed rebuild is
reported, attaches no error and leaves the previous descriptor live.
"""

from __future__ import annotations

import itertools
from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Set, Tuple

from .builder import ClassBuilder
from .directives import DirectiveSet
from .errors import ClassSystemError, CyclicDependency, ErrorChannel, InvalidDirective
from .registry import ClassNode, ClassRegistry

__all__ = ["DependencyResolver"]

NodeListener = Callable[[ClassNode], None]


class DependencyResolver:
    """Synchronous, worklist-driven dependency graph over class nodes."""

    def __init__(self, registry: ClassRegistry, builder: ClassBuilder, channel: ErrorChannel) -> None:
        self._registry = registry
        self._builder = builder
        self._channel = channel
        self._waiting: Dict[str, Set[str]] = {}
        self._sequence = itertools.count(1)
        self._finalized_order = itertools.count(1)
        self._admitted: List[NodeListener] = []
        self._finalized: List[Callable[[ClassNode, bool], None]] = []

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------
    def on_admitted(self, listener: NodeListener) -> None:
        self._admitted.append(listener)

    def on_finalized(self, listener: Callable[[ClassNode, bool], None]) -> None:
        """Register ``listener(node, rebuilt)`` run after each successful build."""
        self._finalized.append(listener)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def admit(self, directives: DirectiveSet, *, replace: bool = False) -> ClassNode:
        node = ClassNode(directives=directives, sequence=next(self._sequence))
        try:
            previous = self._registry.add(node, replace=replace)
        except ClassSystemError as exc:
            raise self._channel.report(exc)
        if previous is not None:
            node.overrides.extend(previous.overrides)
            node.replaces = previous.is_finalized

        for name in directives.hard_dependencies:
            if not self._is_satisfied(name):
                node.unresolved.add(name)
                self._waiting.setdefault(name, set()).add(node.path)

        for listener in list(self._admitted):
            listener(node)

        cycle = self._find_cycle(node)
        if cycle is not None:
            error = CyclicDependency(node.path, cycle)
            for path in set(cycle):
                member = self._registry.get(path)
                if member is not None and member.is_pending:
                    member.error = error
            self._channel.report(error)
            return node

        if not node.unresolved:
            self._drain([node])
        return node

    def _is_satisfied(self, name: str) -> bool:
        node = self._registry.get(name)
        return node is not None and node.is_finalized

    def _find_cycle(self, start: ClassNode) -> Optional[Tuple[str, ...]]:
        """Depth-first walk over pending hard edges looking for ``start``."""
        visited: Set[str] = set()

        def walk(node: ClassNode, trail: List[str]) -> Optional[List[str]]:
            for name in sorted(node.unresolved):
                target = self._registry.get(name)
                if target is None or not target.is_pending:
                    continue
                if target is start:
                    return trail + [start.path]
                if target.path in visited:
                    continue
                visited.add(target.path)
                found = walk(target, trail + [target.path])
                if found is not None:
                    return found
            return None

        found = walk(start, [start.path])
        return tuple(found) if found is not None else None

    # ------------------------------------------------------------------
    # Worklist
    # ------------------------------------------------------------------
    def _ready(self, node: ClassNode) -> bool:
        if not node.is_pending or node.unresolved:
            return False
        if self._registry.get(node.path) is not node:
            return False
        if isinstance(node.error, CyclicDependency):
            node.error = None
        return node.error is None

    def _drain(self, ready: Iterable[ClassNode]) -> None:
        queue: Deque[ClassNode] = deque(ready)
        while queue:
            node = queue.popleft()
            if not self._ready(node):
                continue
            try:
                self._builder.finalize(node)
            except Exception as exc:
                error = _build_error(node, exc)
                node.error = error
                self._channel.report(error)
                continue
            node.finalized_order = next(self._finalized_order)
            self._registry.register_names(node)
            self._notify_finalized(node, rebuilt=False)
            for name in (node.path,) + node.directives.alternate_class_name:
                for waiter_path in sorted(self._waiting.pop(name, ())):
                    waiter = self._registry.get(waiter_path)
                    if waiter is None or name not in waiter.unresolved:
                        continue
                    waiter.unresolved.discard(name)
                    if not waiter.unresolved:
                        queue.append(waiter)
            if node.replaces:
                node.replaces = False
                self._propagate({node.path})

    def _notify_finalized(self, node: ClassNode, *, rebuilt: bool) -> None:
        for listener in list(self._finalized):
            listener(node, rebuilt)

    # ------------------------------------------------------------------
    # Rebuild / propagation
    # ------------------------------------------------------------------
    def rebuild(self, node: ClassNode) -> Set[str]:
        """Re-finalize ``node`` and every finalized descendant; return rebuilt paths."""
        if not node.is_finalized:
            return set()
        if not self._refinalize(node):
            return set()
        return self._propagate({node.path})

    def _propagate(self, rebuilt: Set[str]) -> Set[str]:
        rebuilt = set(rebuilt)
        changed = True
        while changed:
            changed = False
            for other in self._registry.finalized():
                if other.path in rebuilt:
                    continue
                if self._merge_inputs(other) & rebuilt:
                    rebuilt.add(other.path)
                    changed = True
                    self._refinalize(other)
        return rebuilt

    def _merge_inputs(self, node: ClassNode) -> Set[str]:
        names = []
        if node.directives.extend:
            names.append(node.directives.extend)
        names.extend(node.directives.mixin_paths)
        resolved = set()
        for name in names:
            target = self._registry.get(name)
            if target is not None:
                resolved.add(target.path)
        return resolved

    def _refinalize(self, node: ClassNode) -> bool:
        """Rebuild ``node`` in place; on failure the previous descriptor stays live."""
        try:
            self._builder.finalize(node)
        except Exception as exc:
            self._channel.report(_build_error(node, exc))
            return False
        self._notify_finalized(node, rebuilt=True)
        return True

    def waiting_on(self, name: str) -> Tuple[str, ...]:
        return tuple(sorted(self._waiting.get(name, ())))


def _build_error(node: ClassNode, exc: Exception) -> ClassSystemError:
    if isinstance(exc, ClassSystemError):
        return exc
    error = InvalidDirective(node.path, f"build failed: {type(exc).__name__}: {exc}")
    error.__cause__ = exc
    return error
