"""Class registry, alias index and class nodes (source of truth).

ClassNode
---------
Mutable bookkeeping for one primary definition: the immutable
``DirectiveSet``, lifecycle ``state`` (``PENDING`` → ``FINALIZING`` →
``FINALIZED``), the set of ``unresolved`` hard dependency names, the attached
``error`` (re-raised on every later instantiation attempt), the applied
``overrides`` (kept sorted by arrival sequence) and, once finalized, the
``descriptor``. ``finalized_order`` records when the node first finalized so
descendants can be rebuilt in dependency order. Nodes are only mutated by the
resolver, the builder and the override manager.

AliasIndex
----------
Two many-to-one maps: alias → path and xtype → path. Registering the same
name for the same path is idempotent. Registering it for another path reports
``AliasConflict`` through the error channel and rebinds it (last registration
wins). ``release(path)`` drops every name owned by a path (used when a
definition is explicitly replaced).

ClassRegistry
-------------
Owns nodes keyed by path plus alternate class names (registered once the
node finalizes). ``resolve(name)`` maps a name to a primary path, trying in
order: path, alternate name, alias, xtype. ``add(node, replace=False)`` raises
``DuplicateDefinition`` unless ``replace`` is set, in which case the previous
node is returned after its names are released. ``reset()`` clears everything.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Optional, Set, Tuple

from .directives import DirectiveSet
from .errors import AliasConflict, ClassSystemError, DuplicateDefinition, ErrorChannel

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .builder import ClassDescriptor
    from .overrides import OverrideRecord

__all__ = ["NodeState", "ClassNode", "AliasIndex", "ClassRegistry"]


class NodeState(str, Enum):
    PENDING = "pending"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"


@dataclass(eq=False)
class ClassNode:
    """Registry entry for one class path."""

    directives: DirectiveSet
    sequence: int
    state: NodeState = NodeState.PENDING
    unresolved: Set[str] = field(default_factory=set)
    error: Optional[ClassSystemError] = None
    descriptor: Optional["ClassDescriptor"] = None
    overrides: List["OverrideRecord"] = field(default_factory=list)
    finalized_order: int = 0
    builds: int = 0
    replaces: bool = False

    @property
    def path(self) -> str:
        return self.directives.path

    @property
    def is_finalized(self) -> bool:
        return self.state is NodeState.FINALIZED

    @property
    def is_pending(self) -> bool:
        return self.state is NodeState.PENDING

    def add_override(self, record: "OverrideRecord") -> None:
        self.overrides.append(record)
        self.overrides.sort(key=lambda item: item.sequence)

    def discard_override(self, record: "OverrideRecord") -> None:
        self.overrides[:] = [item for item in self.overrides if item is not record]

    def __repr__(self) -> str:
        return f"<ClassNode {self.path} {self.state.value}>"


class AliasIndex:
    """alias → path and xtype → path lookup tables."""

    def __init__(self, channel: ErrorChannel) -> None:
        self._channel = channel
        self._aliases: Dict[str, str] = {}
        self._xtypes: Dict[str, str] = {}

    def register_alias(self, alias: str, path: str) -> None:
        self._bind(self._aliases, alias, path)

    def register_xtype(self, xtype: str, path: str) -> None:
        self._bind(self._xtypes, xtype, path)

    def _bind(self, table: Dict[str, str], name: str, path: str) -> None:
        existing = table.get(name)
        if existing is not None and existing != path:
            self._channel.report(AliasConflict(name, existing, path))
        table[name] = path

    def alias(self, alias: str) -> Optional[str]:
        return self._aliases.get(alias)

    def xtype(self, xtype: str) -> Optional[str]:
        return self._xtypes.get(xtype)

    def aliases_for(self, path: str) -> Tuple[str, ...]:
        return tuple(name for name, target in self._aliases.items() if target == path)

    def xtypes_for(self, path: str) -> Tuple[str, ...]:
        return tuple(name for name, target in self._xtypes.items() if target == path)

    def release(self, path: str) -> None:
        for table in (self._aliases, self._xtypes):
            for name in [name for name, target in table.items() if target == path]:
                del table[name]

    def clear(self) -> None:
        self._aliases.clear()
        self._xtypes.clear()


class ClassRegistry:
    """Primary definitions keyed by path, plus alternate names and aliases."""

    def __init__(self, channel: ErrorChannel) -> None:
        self._channel = channel
        self.aliases = AliasIndex(channel)
        self._nodes: Dict[str, ClassNode] = {}
        self._alternates: Dict[str, str] = {}

    def add(self, node: ClassNode, *, replace: bool = False) -> Optional[ClassNode]:
        previous = self._nodes.get(node.path)
        if previous is not None:
            if not replace:
                raise DuplicateDefinition(node.path, "already defined; pass replace=True to redefine")
            self.release(node.path)
        self._nodes[node.path] = node
        return previous

    def release(self, path: str) -> None:
        self.aliases.release(path)
        for name in [name for name, target in self._alternates.items() if target == path]:
            del self._alternates[name]

    def register_names(self, node: ClassNode) -> None:
        """Publish alternate names, aliases and xtype of a finalized node."""
        directives = node.directives
        for name in directives.alternate_class_name:
            existing = self._alternates.get(name)
            if existing is not None and existing != node.path:
                self._channel.report(AliasConflict(name, existing, node.path))
            self._alternates[name] = node.path
        for alias in directives.alias:
            self.aliases.register_alias(alias, node.path)
        if directives.xtype:
            self.aliases.register_xtype(directives.xtype, node.path)

    def get(self, name: str) -> Optional[ClassNode]:
        node = self._nodes.get(name)
        if node is not None:
            return node
        target = self._alternates.get(name)
        if target is not None:
            return self._nodes.get(target)
        return None

    def resolve(self, name: str) -> Optional[str]:
        if name in self._nodes:
            return name
        for lookup in (self._alternates.get, self.aliases.alias, self.aliases.xtype):
            target = lookup(name)
            if target is not None and target in self._nodes:
                return target
        return None

    def alternates_for(self, path: str) -> Tuple[str, ...]:
        return tuple(name for name, target in self._alternates.items() if target == path)

    def nodes(self) -> List[ClassNode]:
        return list(self._nodes.values())

    def finalized(self) -> List[ClassNode]:
        done = [node for node in self._nodes.values() if node.is_finalized]
        return sorted(done, key=lambda node: node.finalized_order)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._nodes))

    def __len__(self) -> int:
        return len(self._nodes)

    def reset(self) -> None:
        self._nodes.clear()
        self._alternates.clear()
        self.aliases.clear()
