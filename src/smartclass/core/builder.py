"""Class builder and finalized class descriptors (source of truth).

ClassDescriptor
---------------
Merged, read-only view of a finalized class. Tables are ``MappingProxyType``
instances; only ``metadata`` (a plain dict reserved for plugins) is mutable.

- ``member_chain``: name → tuple of :class:`Member` from lowest to highest
  precedence. ``members`` exposes the winning member per name; privates are
  never part of either table.
- ``privates``: declaring path → private members. A descriptor keeps the
  private tables of its ancestors and mixins so their own methods keep
  working on subclass instances, but none of them is exported.
- ``statics`` (own + overrides, not inherited) and ``inheritable_statics``
  (member precedence, separate namespace).
- ``configs``/``rules``/``cached_values``/``defaults``/``accessors``: produced
  by the config system; ``env_version`` is the environment version the
  ``defaults`` were resolved against.
- ``kinds``: every path this class "is" (itself, ancestors, mixins and their
  ancestry) for ``is_subclass_of``.

Merge order
-----------
Lowest to highest, later wins on a name collision:

1. inherited members from the ``extend`` chain, root first;
2. each mixin's exported members in ``mixins`` declaration order (members a
   mixin shares with the chain already present are not duplicated);
3. own members; ``privates`` are recorded under the class's own path and
   flagged non-exported;
3b. ``debugHooks`` when the builder runs in debug mode;
4. override members, in override arrival order.

``finalize(node)`` is deterministic for a given directive history, so
re-finalizing without new overrides yields a descriptor whose ``snapshot()``
equals the previous one. A node already ``FINALIZING`` raises
``InternalConsistencyError``; on failure the node returns to its previous
state and keeps its previous descriptor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .config import ConditionalRule, ConfigAccessor, ConfigProperty, ConfigSystem, _Deferred
from .errors import InternalConsistencyError, NotReady
from .registry import ClassNode, ClassRegistry, NodeState

__all__ = ["Member", "ClassDescriptor", "ClassBuilder"]

_MISSING = object()


@dataclass(frozen=True)
class Member:
    """One declared member and where it came from."""

    name: str
    value: Any
    owner: str
    origin: str  # "own" | "override" | "debug"
    private: bool = False


@dataclass(eq=False)
class ClassDescriptor:
    path: str
    superclass: Optional[str]
    ancestry: Tuple[str, ...]
    mixins: Tuple[Tuple[str, str], ...]
    member_chain: Mapping[str, Tuple[Member, ...]]
    members: Mapping[str, Member]
    privates: Mapping[str, Mapping[str, Member]]
    statics: Mapping[str, Any]
    inheritable_statics: Mapping[str, Any]
    configs: Mapping[str, ConfigProperty]
    rules: Tuple[ConditionalRule, ...]
    cached_values: Mapping[str, Any]
    defaults: Mapping[str, Any]
    env_version: int
    accessors: Mapping[str, ConfigAccessor]
    aliases: Tuple[str, ...] = ()
    xtype: Optional[str] = None
    alternate_names: Tuple[str, ...] = ()
    singleton: bool = False
    deprecated: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    requires: Tuple[str, ...] = ()
    uses: Tuple[str, ...] = ()
    kinds: FrozenSet[str] = frozenset()
    build: int = 1
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_member(self, name: str) -> Optional[Member]:
        return self.members.get(name)

    def private_member(self, owner: str, name: str) -> Optional[Member]:
        return self.privates.get(owner, {}).get(name)

    def parent_member(self, member: Member) -> Optional[Member]:
        """Return the member ``member`` shadows in the merge chain, if any."""
        chain = self.member_chain.get(member.name, ())
        for index, candidate in enumerate(chain):
            if candidate is member:
                return chain[index - 1] if index > 0 else None
        return None

    def get_static(self, name: str, default: Any = _MISSING) -> Any:
        if name in self.statics:
            return self.statics[name]
        if name in self.inheritable_statics:
            return self.inheritable_statics[name]
        if default is _MISSING:
            raise KeyError(f"No static {name!r} on {self.path}")
        return default

    def is_subclass_of(self, path: str) -> bool:
        return path in self.kinds

    def snapshot(self) -> Dict[str, Any]:
        """Structural view used to compare two builds of the same class."""
        return {
            "path": self.path,
            "superclass": self.superclass,
            "ancestry": self.ancestry,
            "mixins": self.mixins,
            "members": {
                name: tuple((m.owner, m.origin, m.value) for m in chain)
                for name, chain in self.member_chain.items()
            },
            "privates": {
                owner: {name: member.value for name, member in table.items()}
                for owner, table in self.privates.items()
            },
            "statics": dict(self.statics),
            "inheritable_statics": dict(self.inheritable_statics),
            "configs": dict(self.configs),
            "rules": self.rules,
            "cached_values": dict(self.cached_values),
            "defaults": {
                name: value.factory if isinstance(value, _Deferred) else value
                for name, value in self.defaults.items()
            },
            "aliases": self.aliases,
            "xtype": self.xtype,
            "alternate_names": self.alternate_names,
            "singleton": self.singleton,
            "deprecated": dict(self.deprecated),
        }

    def __repr__(self) -> str:
        return f"<ClassDescriptor {self.path} build={self.build}>"


class ClassBuilder:
    """Turns resolvable class nodes into :class:`ClassDescriptor` objects."""

    def __init__(self, registry: ClassRegistry, config: ConfigSystem, *, debug: bool = False) -> None:
        self._registry = registry
        self._config = config
        self.debug = debug

    def finalize(self, node: ClassNode) -> ClassDescriptor:
        if node.state is NodeState.FINALIZING:
            raise InternalConsistencyError(node.path, "finalization already in progress")
        if node.unresolved:
            raise NotReady(node.path, "waiting on " + ", ".join(sorted(node.unresolved)))
        previous = node.state
        node.state = NodeState.FINALIZING
        try:
            descriptor = self._build(node)
        except Exception:
            node.state = previous
            raise
        node.descriptor = descriptor
        node.builds = descriptor.build
        node.state = NodeState.FINALIZED
        return descriptor

    def _dependency(self, path: str, name: str) -> ClassDescriptor:
        node = self._registry.get(name)
        if node is None or not node.is_finalized or node.descriptor is None:
            raise InternalConsistencyError(path, f"dependency {name!r} is not finalized")
        return node.descriptor

    def _build(self, node: ClassNode) -> ClassDescriptor:
        directives = node.directives
        path = directives.path
        parent = self._dependency(path, directives.extend) if directives.extend else None
        mixins = [(name, self._dependency(path, target)) for name, target in directives.mixins]
        layers = [directives] + [record.directives for record in node.overrides]

        chains: Dict[str, List[Member]] = {}
        privates: Dict[str, Dict[str, Member]] = {}
        statics: Dict[str, Any] = {}
        inheritable: Dict[str, Any] = {}
        deprecated: Dict[str, str] = {}
        kinds = {path}

        # (1) inherited
        if parent is not None:
            for name, chain in parent.member_chain.items():
                chains[name] = list(chain)
            privates.update({owner: dict(table) for owner, table in parent.privates.items()})
            inheritable.update(parent.inheritable_statics)
            deprecated.update(parent.deprecated)
            kinds.update(parent.kinds)

        # (2) mixins, declaration order
        for _, mixin in mixins:
            for name, chain in mixin.member_chain.items():
                target = chains.setdefault(name, [])
                for member in chain:
                    if not any(member is existing for existing in target):
                        target.append(member)
            for owner, table in mixin.privates.items():
                privates.setdefault(owner, {}).update(table)
            inheritable.update(mixin.inheritable_statics)
            deprecated.update(mixin.deprecated)
            kinds.update(mixin.kinds)

        # (3) own, (3b) debug hooks, (4) overrides
        for index, layer in enumerate(layers):
            origin = "own" if index == 0 else "override"
            for name, value in layer.members.items():
                chains.setdefault(name, []).append(Member(name, value, path, origin))
            own_privates = privates.setdefault(path, {})
            for name, value in layer.privates.items():
                own_privates[name] = Member(name, value, path, origin, private=True)
            if index == 0 and self.debug:
                for name, value in directives.debug_hooks.items():
                    chains.setdefault(name, []).append(Member(name, value, path, "debug"))
            statics.update(layer.statics)
            inheritable.update(layer.inheritable_statics)
            deprecated.update(layer.deprecated)
        if not privates.get(path):
            privates.pop(path, None)

        configs, rules = self._config.merge(path, parent, [mixin for _, mixin in mixins], layers)
        cached_values = self._config.compute_cached(path, configs)
        defaults = self._config.resolve(configs, cached_values, rules)

        member_chain = {name: tuple(chain) for name, chain in chains.items()}
        return ClassDescriptor(
            path=path,
            superclass=parent.path if parent is not None else None,
            ancestry=(parent.ancestry + (parent.path,)) if parent is not None else (),
            mixins=tuple((name, mixin.path) for name, mixin in mixins),
            member_chain=MappingProxyType(member_chain),
            members=MappingProxyType({name: chain[-1] for name, chain in member_chain.items()}),
            privates=MappingProxyType(
                {owner: MappingProxyType(table) for owner, table in privates.items()}
            ),
            statics=MappingProxyType(statics),
            inheritable_statics=MappingProxyType(inheritable),
            configs=MappingProxyType(configs),
            rules=rules,
            cached_values=MappingProxyType(cached_values),
            defaults=MappingProxyType(defaults),
            env_version=self._config.environment.version,
            accessors=self._config.build_accessors(configs),
            aliases=directives.alias,
            xtype=directives.xtype,
            alternate_names=directives.alternate_class_name,
            singleton=directives.singleton,
            deprecated=MappingProxyType(deprecated),
            requires=directives.requires,
            uses=directives.uses,
            kinds=frozenset(kinds),
            build=node.builds + 1,
        )
