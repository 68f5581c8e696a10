"""Override manager (source of truth).

``OverrideRecord(target_path, directives, sequence)`` patches a class after
its declaration. ``queue(record)`` routes a record by the state of its
target:

- override ``requires`` not all finalized → blocked until they are;
- target unknown → held until a node for that path is admitted;
- target pending → attached to the node, folded into its first build;
- target finalized → attached and applied at once through
  ``DependencyResolver.rebuild`` (re-finalization plus propagation to every
  finalized descendant). When that rebuild fails the error is reported, the
  record is dropped and the previous descriptor stays live.

Records attached to a node are kept sorted by ``sequence`` so overrides apply
in arrival order with own-member precedence, last writer wins. The builder
reads them on every build, which keeps re-finalization deterministic.
Already-constructed instances keep their resolved config values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .directives import DirectiveSet
from .registry import ClassNode, ClassRegistry
from .resolver import DependencyResolver

__all__ = ["OverrideRecord", "OverrideManager"]

logger = logging.getLogger("smartclass")


@dataclass(frozen=True)
class OverrideRecord:
    target_path: str
    directives: DirectiveSet
    sequence: int


class OverrideManager:
    """Queues override records and applies them in arrival order."""

    def __init__(self, registry: ClassRegistry, resolver: DependencyResolver) -> None:
        self._registry = registry
        self._resolver = resolver
        self._held: Dict[str, List[OverrideRecord]] = {}
        self._blocked: List[OverrideRecord] = []
        resolver.on_admitted(self._attach_held)
        resolver.on_finalized(self._release_blocked)

    def queue(self, record: OverrideRecord) -> bool:
        """Queue ``record``; return True when it was applied to a finalized class."""
        if self._missing_requirements(record):
            logger.debug("override #%s for %s blocked on requires", record.sequence, record.target_path)
            self._blocked.append(record)
            return False
        return self._route(record)

    def _route(self, record: OverrideRecord) -> bool:
        node = self._registry.get(record.target_path)
        if node is None:
            self._held.setdefault(record.target_path, []).append(record)
            return False
        node.add_override(record)
        if not node.is_finalized:
            return False
        if not self._resolver.rebuild(node):
            node.discard_override(record)
            logger.warning("override #%s for %s rejected", record.sequence, record.target_path)
            return False
        return True

    def _missing_requirements(self, record: OverrideRecord) -> List[str]:
        missing = []
        for name in record.directives.requires:
            node = self._registry.get(name)
            if node is None or not node.is_finalized:
                missing.append(name)
        return missing

    def _attach_held(self, node: ClassNode) -> None:
        for record in self._held.pop(node.path, []):
            node.add_override(record)

    def _release_blocked(self, node: ClassNode, rebuilt: bool) -> None:
        if rebuilt or not self._blocked:
            return
        ready = [record for record in self._blocked if not self._missing_requirements(record)]
        if not ready:
            return
        self._blocked = [record for record in self._blocked if record not in ready]
        for record in ready:
            self._route(record)

    def held(self, path: str) -> Tuple[OverrideRecord, ...]:
        return tuple(self._held.get(path, ()))

    def blocked(self) -> Tuple[OverrideRecord, ...]:
        return tuple(self._blocked)
