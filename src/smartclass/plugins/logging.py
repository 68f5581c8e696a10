"""Logging plugin (source of truth).

Rebuild behaviour exactly as described; no hidden defaults beyond this text.

Responsibilities
----------------
- Wrap each instance construction and emit configurable messages:
  * ``before`` (default True): ``"create <path> start"``
  * ``after`` (default True): ``"create <path> end (<ms> ms)"`` with elapsed
    time in milliseconds formatted ``{elapsed:.2f}``.
- After each build (``on_finalize``) emit ``"<path> finalized (build <n>)"``
  when ``finalize`` is true (default True).
- Sinks:
  * when ``print`` is true → always ``print(message)``;
  * else when ``log`` is true → ``logger.info(message)`` if the logger reports
    handlers via ``hasHandlers()``, otherwise ``print(message)`` to avoid drops;
  * else → no output.
- ``enabled`` gates the plugin entirely (default True).
- Use a provided ``logging.Logger`` (default ``logging.getLogger("smartclass")``).

Configuration
-------------
Accepted keys (manager-level or per class path): ``enabled``, ``before``,
``after``, ``finalize``, ``log``, ``print``; also as ``flags``, e.g.
``manager.configure("logging/Widget.*", flags="before:off")``.

Exceptions raised by the construction propagate; the end message is skipped.

Registration
------------
At module import the plugin registers itself as ``"logging"`` via
``ClassManager.register_plugin(LoggingPlugin)``.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

from smartclass.core.manager import ClassManager
from smartclass.plugins._base_plugin import BasePlugin

_DEFAULTS = {
    "enabled": True,
    "before": True,
    "after": True,
    "finalize": True,
    "log": True,
    "print": False,
}


class LoggingPlugin(BasePlugin):
    """Logs class builds and instance construction with timing."""

    plugin_code = "logging"
    plugin_description = "Logs class finalization and instance creation with timing"

    __slots__ = ("_logger",)

    def __init__(self, manager, *, logger: Optional[logging.Logger] = None, **cfg):
        self._logger = logger or logging.getLogger("smartclass")
        super().__init__(manager, **cfg)

    def configure(
        self,
        enabled: bool = True,
        before: bool = True,
        after: bool = True,
        finalize: bool = True,
        log: bool = True,
        print: bool = False,  # noqa: A002 - shadowing builtin intentionally
    ):
        """Storage is handled by the wrapper added in ``__init_subclass__``."""
        pass

    def _emit(self, message: str, *, cfg: Optional[dict] = None):
        if cfg is None:
            return
        if cfg.get("print"):
            print(message)
            return
        if cfg.get("log"):
            logger = self._logger
            has_handlers = getattr(logger, "hasHandlers", None) or getattr(
                logger, "has_handlers", None
            )
            if callable(has_handlers) and has_handlers():
                logger.info(message)
            else:
                print(message)

    def on_finalize(self, manager, descriptor) -> None:
        cfg = self._effective_config(descriptor.path)
        if cfg["enabled"] and cfg["finalize"]:
            self._emit(f"{descriptor.path} finalized (build {descriptor.build})", cfg=cfg)

    def wrap_create(self, manager, descriptor, call_next: Callable):
        path = descriptor.path

        def logged(node, supplied):
            cfg = self._effective_config(path)
            if not cfg["enabled"]:
                return call_next(node, supplied)
            if cfg["before"]:
                self._emit(f"create {path} start", cfg=cfg)
            t0 = time.perf_counter()
            instance = call_next(node, supplied)
            elapsed = (time.perf_counter() - t0) * 1000
            if cfg["after"]:
                self._emit(f"create {path} end ({elapsed:.2f} ms)", cfg=cfg)
            return instance

        return logged

    def _effective_config(self, path: str) -> Dict[str, bool]:
        cfg: Dict[str, Any] = _DEFAULTS | self.configuration(path)
        return {key: default if cfg.get(key) is None else bool(cfg[key]) for key, default in _DEFAULTS.items()}


ClassManager.register_plugin(LoggingPlugin)
