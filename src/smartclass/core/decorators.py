"""Decorator helpers for declaring classes from Python bodies (source of truth).

Marker helpers only set attributes; nothing is registered at decoration time
except through ``declare``.

``private(func)``
    Sets ``PRIVATE_ATTR_NAME`` on the function. When the class body is read,
    marked members move to ``privates``: reachable from the declaring class's
    own members through ``self``, never exported or inherited.

``deprecated(message)``
    Stores ``message`` under ``DEPRECATED_ATTR_NAME``. Reading the member from
    an instance logs the message once per class and member.

``declare(path, *, manager=None, replace=False, **directives)``
    Class decorator. Reads the decorated class body with
    ``DirectiveSet.from_class`` (dunders skipped, ``staticmethod`` and
    ``classmethod`` objects become ``statics``), merges keyword ``directives``
    and defines it on ``manager`` (default manager when omitted). The class is
    returned unchanged with ``__smartclass_path__`` set to ``path``.
"""

from __future__ import annotations

from typing import Any, Callable, Optional, TypeVar

from .directives import DEPRECATED_ATTR_NAME, PRIVATE_ATTR_NAME
from .manager import ClassManager, get_manager

__all__ = ["declare", "private", "deprecated"]

F = TypeVar("F", bound=Callable[..., Any])
T = TypeVar("T", bound=type)


def private(func: F) -> F:
    setattr(func, PRIVATE_ATTR_NAME, True)
    return func


def deprecated(message: str = "deprecated") -> Callable[[F], F]:
    def decorator(func: F) -> F:
        setattr(func, DEPRECATED_ATTR_NAME, message)
        return func

    return decorator


def declare(
    path: str,
    *,
    manager: Optional[ClassManager] = None,
    replace: bool = False,
    **directives: Any,
) -> Callable[[T], T]:
    """Define ``path`` from the decorated class body."""

    def decorator(source: T) -> T:
        target = manager if manager is not None else get_manager()
        target.define_class(path, source, replace=replace, **directives)
        source.__smartclass_path__ = path
        return source

    return decorator
