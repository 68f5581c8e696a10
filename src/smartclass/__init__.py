"""SmartClass public API surface (source of truth).

Recreate the module with these rules:

- Public exports: ``ClassManager``, module-level ``define``/``create``/
  ``get_alias``/``reset``/``get_manager``, decorators ``declare``/``private``/
  ``deprecated``, ``ConfigSpec``, ``ConfigChange``, ``Instance`` and the error
  taxonomy.
- Plugin registration: import built-in plugins (``logging``, ``pydantic``) for
  their side effect of calling ``ClassManager.register_plugin(<class>)``.
  Imports are done via ``import_module`` to avoid cycles.

Constraints
-----------
- Import must stay lightweight: no manager instantiation beyond plugin
  registration.
- Version string lives here as ``__version__``.
"""

from importlib import import_module

__version__ = "0.1.0"

from .core import (
    AliasConflict,
    ClassManager,
    ClassSystemError,
    ConfigChange,
    ConfigSpec,
    CyclicDependency,
    DestroyedInstance,
    DuplicateDefinition,
    Instance,
    InvalidConfigValue,
    InvalidDirective,
    NotReady,
    UnknownType,
    UnresolvedDependency,
    create,
    declare,
    define,
    deprecated,
    get_alias,
    get_manager,
    private,
    reset,
)

for _plugin in ("logging", "pydantic"):
    import_module(f"{__name__}.plugins.{_plugin}")
del _plugin

__all__ = [
    "AliasConflict",
    "ClassManager",
    "ClassSystemError",
    "ConfigChange",
    "ConfigSpec",
    "CyclicDependency",
    "DestroyedInstance",
    "DuplicateDefinition",
    "Instance",
    "InvalidConfigValue",
    "InvalidDirective",
    "NotReady",
    "UnknownType",
    "UnresolvedDependency",
    "create",
    "declare",
    "define",
    "deprecated",
    "get_alias",
    "get_manager",
    "private",
    "reset",
]
