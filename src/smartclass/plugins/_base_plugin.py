"""Plugin contract used by the ClassManager runtime.

Source of truth
---------------
If this module were wiped except for this docstring, the implementation must be
reconstructed exactly as described below.

``BasePlugin``
    Base class every plugin subclasses. Responsibilities:

    - offer config helpers that delegate to the owning manager's
      ``_plugin_info`` store (no hidden per-plugin globals)
    - provide the optional hooks listed below, called by the manager only for
      classes on which the plugin is enabled

    Required class attributes:

    - ``plugin_code`` – unique identifier used for registration (e.g. "logging")
    - ``plugin_description`` – human-readable description of the plugin

    Constructor signature: ``BasePlugin(manager, **config)``; ``**config`` is
    passed to ``configure()``.

    ``configure(**config)``
        Declares accepted parameters through its signature. ``__init_subclass__``
        wraps it to:

        - parse ``flags`` (e.g. "enabled,before:off") into booleans
        - honour ``_target``: ``"--base--"`` (default) for manager-level config,
          a class path for per-class config, ``"A,B"`` for several classes
        - validate the remaining kwargs with Pydantic's ``validate_call``
        - write the validated kwargs to the store

    ``configuration(path=None)``
        Merged configuration: manager-level bucket updated with the per-class
        bucket of ``path`` when given.

Hooks (all optional)
~~~~~~~~~~~~~~~~~~~~
``on_finalize(manager, descriptor)``
    After every successful build (first finalization and rebuilds). Plugins
    may annotate ``descriptor.metadata``.
``wrap_create(manager, descriptor, call_next)``
    Middleware around instance construction. ``call_next(node, config)``
    returns the new instance; the returned callable keeps that signature.
``validate_config(manager, descriptor, prop, value)``
    Returns the (possibly coerced) value about to be stored for config
    ``prop``; raising ``InvalidConfigValue`` rejects it.
``describe_class(manager, descriptor)``
    Extra fields for ``manager.describe()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from pydantic import validate_call

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from smartclass.core.builder import ClassDescriptor
    from smartclass.core.config import ConfigProperty
    from smartclass.core.manager import ClassManager

__all__ = ["BasePlugin", "BASE_TARGET"]

BASE_TARGET = "--base--"


def _wrap_configure(original_configure: Callable) -> Callable:
    """Wrap a plugin's configure() to handle flags, _target, validation and storage."""
    validated = validate_call(original_configure)

    def wrapper(self: "BasePlugin", *, _target: str = BASE_TARGET, flags: Optional[str] = None, **kwargs: Any) -> None:
        if flags:
            kwargs.update(self._parse_flags(flags))

        if "," in _target:
            for target in [t.strip() for t in _target.split(",") if t.strip()]:
                wrapper(self, _target=target, **kwargs)
            return

        validated(self, **kwargs)
        self._write_config(_target, kwargs)

    return wrapper


class BasePlugin:
    """Hook interface + configuration helpers for manager plugins."""

    __slots__ = ("name", "_manager")

    plugin_code: str = ""
    plugin_description: str = ""

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if "configure" in cls.__dict__:
            cls.configure = _wrap_configure(cls.__dict__["configure"])

    def __init__(self, manager: "ClassManager", **config: Any):
        self.name = self.plugin_code
        self._manager = manager
        self._init_store()
        self.configure(**config)

    def _init_store(self) -> None:
        store = self._get_store()
        store.setdefault(self.name, {}).setdefault(
            BASE_TARGET, {"config": {"enabled": True}, "locals": {}}
        )

    def configure(self, *, _target: str = BASE_TARGET, flags: Optional[str] = None) -> None:
        """Accept only ``flags``; subclasses declare their own parameters."""
        if flags:
            self._write_config(_target, self._parse_flags(flags))

    def _write_config(self, target: str, config: Dict[str, Any]) -> None:
        if not config:
            return
        store = self._get_store()
        bucket = store.setdefault(self.name, {}).setdefault(target, {"config": {}, "locals": {}})
        bucket["config"].update(config)

    def configuration(self, path: Optional[str] = None) -> Dict[str, Any]:
        plugin_bucket = self._get_store().get(self.name)
        if not plugin_bucket:
            return {}
        merged = dict(plugin_bucket.get(BASE_TARGET, {}).get("config", {}))
        if path:
            merged.update(plugin_bucket.get(path, {}).get("config", {}))
        return merged

    def _parse_flags(self, flags: str) -> Dict[str, bool]:
        mapping: Dict[str, bool] = {}
        for chunk in flags.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            if ":" in chunk:
                name, value = chunk.split(":", 1)
                mapping[name.strip()] = value.strip().lower() != "off"
            else:
                mapping[chunk] = True
        return mapping

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    def on_finalize(
        self, manager: "ClassManager", descriptor: "ClassDescriptor"
    ) -> None:  # pragma: no cover - default no-op
        """Hook run after a class is (re)finalized."""

    def wrap_create(
        self, manager: "ClassManager", descriptor: "ClassDescriptor", call_next: Callable
    ) -> Callable:
        return call_next

    def validate_config(
        self,
        manager: "ClassManager",
        descriptor: "ClassDescriptor",
        prop: "ConfigProperty",
        value: Any,
    ) -> Any:
        return value

    def describe_class(self, manager: "ClassManager", descriptor: "ClassDescriptor") -> Dict[str, Any]:
        return {}

    def _get_store(self) -> Dict[str, Any]:
        return getattr(self._manager, "_plugin_info")
