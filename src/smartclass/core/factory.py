"""Instance factory (source of truth).

Resolution
----------
``resolve(name)`` maps a name to a class node, trying the path, alternate
names, aliases and xtypes in that order. A miss reports ``UnknownType``. A
node that is not finalized fails as follows:

- an attached resolver/builder error (cycle, invalid directive ...) is raised
  again, unchanged, on every attempt;
- hard dependencies that no definition answers to → ``UnresolvedDependency``;
- otherwise → ``NotReady`` listing what the node waits on.

Construction
------------
``create(name, config=None)`` also accepts a single mapping carrying
``xclass`` (class path) or ``xtype`` (xtype, then ``"widget.<xtype>"`` alias).
The construct step is wrapped by the plugin pipeline supplied by the manager
and performs, in order: resolved defaults, construction-time values (validated
and applied), ``listeners`` registration, ``items`` materialization, and the
``init`` member. Undeclared values become instance ``properties``.

Singletons are cached per class node. Later calls return the cached instance;
a supplied config is ignored with a warning on the ``smartclass`` logger. A
destroyed singleton is dropped from the cache and the next call builds a new
one.

Deprecation notices are logged once per ``(class path, member)``.
"""

from __future__ import annotations

import logging
import weakref
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple, Union

from .config import ConfigSystem
from .errors import ClassSystemError, ErrorChannel, NotReady, UnknownType, UnresolvedDependency
from .instance import Instance, is_instance
from .registry import ClassNode, ClassRegistry

__all__ = ["InstanceFactory"]

logger = logging.getLogger("smartclass")

Construct = Callable[[ClassNode, Dict[str, Any]], Instance]
Pipeline = Callable[[ClassNode, Construct], Construct]


class InstanceFactory:
    """Builds instances of finalized classes."""

    def __init__(
        self,
        registry: ClassRegistry,
        config: ConfigSystem,
        channel: ErrorChannel,
        *,
        template_compiler: Optional[Callable[[Any], Callable[[Any], str]]] = None,
        pipeline: Optional[Pipeline] = None,
    ) -> None:
        self._registry = registry
        self._config = config
        self._channel = channel
        self._pipeline = pipeline
        self.template_compiler = template_compiler
        self._singletons: "weakref.WeakKeyDictionary[ClassNode, Instance]" = weakref.WeakKeyDictionary()
        self._warned: Set[Tuple[str, str]] = set()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    def resolve(self, name: str) -> ClassNode:
        if not isinstance(name, str):
            raise TypeError(f"class name must be a string, got {type(name).__name__}")
        path = self._registry.resolve(name)
        if path is None:
            raise self.report(UnknownType(name, "not a class path, alternate name, alias or xtype"))
        node = self._registry.get(path)
        if node.is_finalized:
            return node
        if node.error is not None:
            raise node.error
        missing = [dep for dep in node.unresolved if self._registry.get(dep) is None]
        if missing:
            raise self.report(UnresolvedDependency(path, missing))
        raise self.report(NotReady(path, "waiting on " + ", ".join(sorted(node.unresolved))))

    def _type_from(self, spec: Dict[str, Any]) -> str:
        xclass = spec.pop("xclass", None)
        xtype = spec.pop("xtype", None)
        if xclass:
            return xclass
        if xtype:
            path = self._registry.aliases.xtype(xtype) or self._registry.aliases.alias(f"widget.{xtype}")
            if path is None:
                raise self.report(UnknownType(xtype, "no class registered for this xtype"))
            return path
        raise self.report(UnknownType(None, "a config mapping needs 'xclass' or 'xtype'"))

    def canonical(self, name: str) -> Optional[str]:
        return self._registry.resolve(name)

    def current_node(self, path: str) -> Optional[ClassNode]:
        return self._registry.get(path)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def create(
        self, name: Union[str, Mapping[str, Any]], config: Optional[Mapping[str, Any]] = None
    ) -> Instance:
        if isinstance(name, Mapping):
            if config is not None:
                raise TypeError("pass either a typed config mapping or a name plus config")
            supplied = dict(name)
            name = self._type_from(supplied)
        else:
            supplied = dict(config or {})
        node = self.resolve(name)
        descriptor = node.descriptor
        if descriptor.singleton:
            cached = self._singletons.get(node)
            if cached is not None and not cached.is_destroyed:
                if supplied:
                    logger.warning(
                        "singleton %s already created; ignoring config keys %s",
                        node.path,
                        ", ".join(sorted(supplied)),
                    )
                return cached
        construct: Construct = self._construct
        if self._pipeline is not None:
            construct = self._pipeline(node, construct)
        instance = construct(node, supplied)
        if descriptor.singleton:
            self._singletons[node] = instance
        return instance

    def _construct(self, node: ClassNode, supplied: Dict[str, Any]) -> Instance:
        instance = Instance(node, self._config, self)
        instance._initialize(supplied)
        return instance

    def materialize(self, item: Any) -> Any:
        """Turn a typed ``items`` entry into an instance; other values pass through."""
        if is_instance(item):
            return item
        if isinstance(item, Mapping) and ("xclass" in item or "xtype" in item):
            return self.create(item)
        return item

    def forget(self, instance: Instance) -> None:
        for node, cached in list(self._singletons.items()):
            if cached is instance:
                del self._singletons[node]

    def singleton(self, node: ClassNode) -> Optional[Instance]:
        return self._singletons.get(node)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def warn_deprecated(self, path: str, name: str, note: str) -> None:
        key = (path, name)
        if key in self._warned:
            return
        self._warned.add(key)
        logger.warning("%s.%s is deprecated: %s", path, name, note)

    def report(self, error: ClassSystemError) -> ClassSystemError:
        return self._channel.report(error)

    def reset(self) -> None:
        self._singletons.clear()
        self._warned.clear()
