"""Structured error taxonomy and reporting channel (source of truth).

Every failure of the class runtime is an instance of :class:`ClassSystemError`
carrying ``kind``, ``path`` and ``detail``. Each concrete kind also derives
from the builtin exception a caller would naturally catch (``ValueError``,
``LookupError``, ``RuntimeError``, ``TypeError``).

Kinds
-----
- ``DuplicateDefinition``: a path defined twice without ``replace=True``.
- ``CyclicDependency``: a hard edge closed a cycle among pending classes;
  ``cycle`` holds the offending path sequence (first == last).
- ``UnresolvedDependency``: a hard dependency that nobody ever defined,
  surfaced only when instantiation is attempted; ``missing`` lists the names.
- ``UnknownType``: a name that is neither a path, an alternate name, an alias
  nor an xtype.
- ``NotReady``: instantiation of a class that is still pending.
- ``AliasConflict``: alias or xtype re-registered for a different path.
- ``DestroyedInstance``: config write on a destroyed instance.
- ``InvalidConfigValue``: setter/construction value rejected by a validator.
- ``InvalidDirective``: malformed directive body or conditional rule.
- ``InternalConsistencyError``: re-entrant finalization of the same node.

ErrorChannel
------------
``report(error)`` records the error, logs it on the ``smartclass`` logger and
forwards it synchronously to every subscriber, then returns it so call sites
can write ``raise channel.report(SomeError(...))``. Subscriber exceptions
propagate. ``records`` is an immutable snapshot; ``for_path`` filters it.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

__all__ = [
    "ClassSystemError",
    "DuplicateDefinition",
    "CyclicDependency",
    "UnresolvedDependency",
    "UnknownType",
    "NotReady",
    "AliasConflict",
    "DestroyedInstance",
    "InvalidConfigValue",
    "InvalidDirective",
    "InternalConsistencyError",
    "ErrorChannel",
]

logger = logging.getLogger("smartclass")


class ClassSystemError(Exception):
    """Base class of every runtime failure."""

    kind = "ClassSystemError"

    def __init__(self, path: Optional[str], detail: str = "") -> None:
        self.path = path
        self.detail = detail
        prefix = f"{self.kind} [{path}]" if path else self.kind
        super().__init__(f"{prefix}: {detail}" if detail else prefix)

    def as_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "path": self.path, "detail": self.detail}


class DuplicateDefinition(ClassSystemError, ValueError):
    kind = "DuplicateDefinition"


class CyclicDependency(ClassSystemError):
    kind = "CyclicDependency"

    def __init__(self, path: str, cycle: Iterable[str]) -> None:
        self.cycle: Tuple[str, ...] = tuple(cycle)
        super().__init__(path, " -> ".join(self.cycle))


class UnresolvedDependency(ClassSystemError, LookupError):
    kind = "UnresolvedDependency"

    def __init__(self, path: str, missing: Iterable[str]) -> None:
        self.missing: Tuple[str, ...] = tuple(sorted(missing))
        super().__init__(path, "never defined: " + ", ".join(self.missing))


class UnknownType(ClassSystemError, LookupError):
    kind = "UnknownType"


class NotReady(ClassSystemError, RuntimeError):
    kind = "NotReady"


class AliasConflict(ClassSystemError, ValueError):
    kind = "AliasConflict"

    def __init__(self, alias: str, existing: str, requested: str) -> None:
        self.alias = alias
        self.existing = existing
        self.requested = requested
        super().__init__(
            requested, f"{alias!r} already points to {existing!r}, rebound to {requested!r}"
        )


class DestroyedInstance(ClassSystemError, RuntimeError):
    kind = "DestroyedInstance"


class InvalidConfigValue(ClassSystemError, ValueError):
    kind = "InvalidConfigValue"

    def __init__(self, path: str, key: str, value: Any, reason: str = "") -> None:
        self.key = key
        self.value = value
        detail = f"{key}={value!r} rejected"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(path, detail)


class InvalidDirective(ClassSystemError, TypeError):
    kind = "InvalidDirective"


class InternalConsistencyError(ClassSystemError, RuntimeError):
    kind = "InternalConsistencyError"


class ErrorChannel:
    """Single structured reporting channel shared by all runtime components."""

    def __init__(self) -> None:
        self._records: List[ClassSystemError] = []
        self._listeners: List[Callable[[ClassSystemError], None]] = []

    def report(self, error: ClassSystemError) -> ClassSystemError:
        self._records.append(error)
        logger.warning("%s", error)
        for listener in list(self._listeners):
            listener(error)
        return error

    def subscribe(self, listener: Callable[[ClassSystemError], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[ClassSystemError], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def records(self) -> Tuple[ClassSystemError, ...]:
        return tuple(self._records)

    def for_path(self, path: str) -> Tuple[ClassSystemError, ...]:
        return tuple(error for error in self._records if error.path == path)

    def kinds(self) -> List[str]:
        return [error.kind for error in self._records]

    def clear(self) -> None:
        self._records.clear()
