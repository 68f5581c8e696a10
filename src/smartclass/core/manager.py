"""Class manager: owned runtime state, public API and plugin pipeline.

Source of truth
---------------
``ClassManager(**options)`` owns one complete runtime: error channel,
environment, registry/alias index, config system, builder, resolver, override
manager and instance factory. Nothing is module-global except the plugin class
registry and the lazily created default manager behind the module-level
helpers ``define``/``create``/``get_alias``/``reset``.

Options
~~~~~~~
Merged with ``smartseeds.SmartOptions`` over these defaults: ``platform``
(``"desktop"``; string, comma separated string or iterable), ``width``
(1024), ``height`` (768), ``debug`` (False, includes ``debugHooks`` members)
and ``template_compiler`` (None; ``callable(tpl) -> (data -> markup)``).

Definition API
~~~~~~~~~~~~~~
- ``define(path, body=None, *, replace=False, **directives)``: validates the
  body into a ``DirectiveSet``. A body carrying ``override`` is queued as an
  override of that target instead of being admitted. Otherwise the node is
  admitted (and finalized when ready); each entry of its ``overrides``
  directive is then queued. Returns the class node (the target node for
  overrides, ``None`` when the target is still unknown).
- ``define_class(path, cls, ...)``: same, reading a Python class body.
- ``override(target, body=None, **directives)``: queues one override record
  with the next arrival sequence; returns True when applied at once.
- ``create``/``get_alias``/``get_xtype``/``get_class``/``get_node``: lookups
  and construction through the factory and registry.
- ``errors()``/``on_error(listener)``: error channel access.
- ``set_platform(*names)``/``update_environment(**state)``: environment
  changes; later constructions re-evaluate rules.
- ``reset()``: discards every definition, instance cache, queued override,
  recorded error and environment change; attached plugins and their config
  stay.

Plugins
~~~~~~~
``ClassManager.register_plugin(plugin_class, name=None)`` validates and stores
a ``BasePlugin`` subclass globally (a different class under an existing code
raises ``ValueError`` unless ``name`` is given). ``plug(name, **config)``
instantiates it for this manager, runs ``on_finalize`` for every already
finalized class and returns the manager. ``__getattr__`` exposes plugins by
name. Per-plugin state lives in ``_plugin_info[plugin]`` with a
``"--base--"`` bucket plus one bucket per class path (``config`` and
``locals``). ``set_plugin_enabled(path, plugin, enabled)`` toggles a plugin
for one class (``"--base--"`` for every class).

Pipeline: ``on_finalize`` after each build, ``validate_config`` on every
value about to be stored, ``wrap_create`` middleware around construction built
in reverse plug order (first plugged = outermost) with an enabled-guard per
layer.

Configuration entrypoint
~~~~~~~~~~~~~~~~~~~~~~~~
``configure(target, **options)`` accepts a list (each element configured, no
shared options), a dict carrying ``"target"``, ``"?"`` (``describe()`` of every
class) or ``"plugin/selector"``. The selector is a comma separated list of
``fnmatch`` patterns over class paths; ``_all_`` (default) writes the
manager-level bucket. Unknown plugins raise ``AttributeError``, missing
options ``ValueError`` and unmatched selectors ``KeyError``.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from fnmatch import fnmatchcase
from functools import wraps
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Type, Union

from smartseeds import SmartOptions

from smartclass.plugins._base_plugin import BASE_TARGET, BasePlugin

from .builder import ClassBuilder, ClassDescriptor
from .config import ConfigProperty, ConfigSystem
from .directives import DirectiveSet
from .environment import Environment
from .errors import ClassSystemError, ErrorChannel, InvalidDirective
from .factory import Construct, InstanceFactory
from .instance import Instance
from .overrides import OverrideManager, OverrideRecord
from .registry import ClassNode, ClassRegistry
from .resolver import DependencyResolver

__all__ = ["ClassManager", "get_manager", "define", "create", "get_alias", "reset"]

_PLUGIN_REGISTRY: Dict[str, Type[BasePlugin]] = {}

_MANAGER_DEFAULTS: Dict[str, Any] = {
    "platform": "desktop",
    "width": 1024,
    "height": 768,
    "debug": False,
    "template_compiler": None,
}


@dataclass
class _PluginSpec:
    factory: Type[BasePlugin]
    kwargs: Dict[str, Any]

    def instantiate(self, manager: "ClassManager") -> BasePlugin:
        return self.factory(manager, **self.kwargs)


def _platforms(value: Union[str, Iterable[str]]) -> Tuple[str, ...]:
    if isinstance(value, str):
        value = value.split(",")
    return tuple(name.strip() for name in value if name and name.strip())


class ClassManager:
    """Process-scoped owner of class definitions, instances and plugins."""

    def __init__(self, **options: Any) -> None:
        opts = SmartOptions(options, defaults=_MANAGER_DEFAULTS)
        self._platform = _platforms(getattr(opts, "platform", "desktop") or "desktop")
        self._width = getattr(opts, "width", 1024)
        self._height = getattr(opts, "height", 768)
        self.debug = bool(getattr(opts, "debug", False))
        self.template_compiler = getattr(opts, "template_compiler", None)
        self._plugin_specs: List[_PluginSpec] = []
        self._plugins: List[BasePlugin] = []
        self._plugins_by_name: Dict[str, BasePlugin] = {}
        self._plugin_info: Dict[str, Dict[str, Any]] = {}
        self.channel = ErrorChannel()
        self._build_runtime()

    def _build_runtime(self) -> None:
        self.environment = Environment(self._platform, width=self._width, height=self._height)
        self.registry = ClassRegistry(self.channel)
        self.config = ConfigSystem(self.environment, self.channel, validate_hook=self._validate_config)
        self.builder = ClassBuilder(self.registry, self.config, debug=self.debug)
        self.resolver = DependencyResolver(self.registry, self.builder, self.channel)
        self.overrides = OverrideManager(self.registry, self.resolver)
        self.factory = InstanceFactory(
            self.registry,
            self.config,
            self.channel,
            template_compiler=self.template_compiler,
            pipeline=self._wrap_create,
        )
        self.resolver.on_finalized(self._after_finalize)
        self._sequence = itertools.count(1)

    # ------------------------------------------------------------------
    # Definition
    # ------------------------------------------------------------------
    def define(
        self,
        path: str,
        body: Optional[Mapping[str, Any]] = None,
        *,
        replace: bool = False,
        **directives: Any,
    ) -> Optional[ClassNode]:
        try:
            directive_set = DirectiveSet.from_body(path, body, **directives)
        except InvalidDirective as exc:
            raise self.channel.report(exc)
        return self._submit(directive_set, replace=replace)

    def define_class(self, path: str, source: type, *, replace: bool = False, **directives: Any) -> Optional[ClassNode]:
        try:
            directive_set = DirectiveSet.from_class(path, source, **directives)
        except InvalidDirective as exc:
            raise self.channel.report(exc)
        return self._submit(directive_set, replace=replace)

    def _submit(self, directive_set: DirectiveSet, *, replace: bool) -> Optional[ClassNode]:
        if directive_set.is_override:
            self._queue(directive_set.override, directive_set)
            return self.registry.get(directive_set.override)
        node = self.resolver.admit(directive_set, replace=replace)
        for target, body in directive_set.overrides.items():
            self.override(target, body)
        return node

    def override(self, target: str, body: Optional[Mapping[str, Any]] = None, **directives: Any) -> bool:
        try:
            directive_set = DirectiveSet.from_body(target, body, **directives)
        except InvalidDirective as exc:
            raise self.channel.report(exc)
        return self._queue(target, directive_set)

    def _queue(self, target: str, directive_set: DirectiveSet) -> bool:
        record = OverrideRecord(target_path=target, directives=directive_set, sequence=next(self._sequence))
        return self.overrides.queue(record)

    # ------------------------------------------------------------------
    # Lookup / construction
    # ------------------------------------------------------------------
    def create(self, name: Union[str, Mapping[str, Any]], config: Optional[Mapping[str, Any]] = None) -> Instance:
        return self.factory.create(name, config)

    def get_alias(self, alias: str) -> Optional[str]:
        return self.registry.aliases.alias(alias)

    def get_xtype(self, xtype: str) -> Optional[str]:
        return self.registry.aliases.xtype(xtype)

    def get_node(self, name: str) -> Optional[ClassNode]:
        path = self.registry.resolve(name)
        return self.registry.get(path) if path is not None else None

    def get_class(self, name: str) -> Optional[ClassDescriptor]:
        node = self.get_node(name)
        if node is None or not node.is_finalized:
            return None
        return node.descriptor

    def errors(self) -> Tuple[ClassSystemError, ...]:
        return self.channel.records

    def on_error(self, listener: Callable[[ClassSystemError], None]) -> None:
        self.channel.subscribe(listener)

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------
    def set_platform(self, *platforms: str) -> None:
        self.environment.set_platform(*platforms)

    def update_environment(self, **state: Any) -> None:
        self.environment.update(**state)

    def reset(self) -> None:
        self.channel.clear()
        self._build_runtime()

    # ------------------------------------------------------------------
    # Plugin registration
    # ------------------------------------------------------------------
    @classmethod
    def register_plugin(cls, plugin_class: Type[BasePlugin], name: Optional[str] = None) -> None:
        if not isinstance(plugin_class, type) or not issubclass(plugin_class, BasePlugin):
            raise TypeError("plugin_class must be a BasePlugin subclass")
        if not getattr(plugin_class, "plugin_code", None):
            raise ValueError(
                f"Plugin {plugin_class.__name__} not following standards: missing plugin_code"
            )
        code = name or plugin_class.plugin_code
        if name is None:
            existing = _PLUGIN_REGISTRY.get(code)
            if existing is not None and existing is not plugin_class:
                raise ValueError(f"Plugin '{code}' already registered")
        _PLUGIN_REGISTRY[code] = plugin_class

    @classmethod
    def available_plugins(cls) -> Dict[str, Type[BasePlugin]]:
        return dict(_PLUGIN_REGISTRY)

    def plug(self, plugin: str, **config: Any) -> "ClassManager":
        """Attach a plugin by its registered name."""
        if not isinstance(plugin, str):
            raise TypeError(
                f"Plugin must be referenced by name string, got {type(plugin).__name__}"
            )
        plugin_class = _PLUGIN_REGISTRY.get(plugin)
        if plugin_class is None:
            available = ", ".join(sorted(_PLUGIN_REGISTRY)) or "none"
            raise ValueError(
                f"Unknown plugin '{plugin}'. Register it first. Available plugins: {available}"
            )
        if plugin in self._plugins_by_name:
            raise ValueError(f"Plugin '{plugin}' already attached")
        spec = _PluginSpec(plugin_class, dict(config))
        self._plugin_specs.append(spec)
        instance = spec.instantiate(self)
        self._plugins.append(instance)
        self._plugins_by_name[instance.name] = instance
        for node in self.registry.finalized():
            if self.is_plugin_enabled(node.path, instance.name):
                instance.on_finalize(self, node.descriptor)
        return self

    def iter_plugins(self) -> List[BasePlugin]:
        return list(self._plugins)

    def get_config(self, plugin_name: str, path: Optional[str] = None) -> Dict[str, Any]:
        return self._plugin(plugin_name).configuration(path)

    def _plugin(self, name: str) -> BasePlugin:
        plugin = self.__dict__.get("_plugins_by_name", {}).get(name)
        if plugin is None:
            raise AttributeError(f"No plugin named '{name}' attached to this manager")
        return plugin

    def __getattr__(self, name: str) -> Any:
        return self._plugin(name)

    def _bucket(self, plugin_name: str) -> Dict[str, Any]:
        self._plugin(plugin_name)
        bucket = self._plugin_info.setdefault(plugin_name, {})
        bucket.setdefault(BASE_TARGET, {"config": {}, "locals": {}})
        return bucket

    def set_plugin_enabled(self, path: str, plugin_name: str, enabled: bool = True) -> None:
        entry = self._bucket(plugin_name).setdefault(path, {"config": {}, "locals": {}})
        entry.setdefault("locals", {})["enabled"] = bool(enabled)

    def is_plugin_enabled(self, path: str, plugin_name: str) -> bool:
        bucket = self._bucket(plugin_name)
        entry_locals = bucket.get(path, {}).get("locals", {})
        if "enabled" in entry_locals:
            return bool(entry_locals["enabled"])
        return bool(bucket[BASE_TARGET].get("locals", {}).get("enabled", True))

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    def _after_finalize(self, node: ClassNode, rebuilt: bool) -> None:
        for plugin in self._plugins:
            if self.is_plugin_enabled(node.path, plugin.name):
                plugin.on_finalize(self, node.descriptor)

    def _validate_config(self, descriptor: ClassDescriptor, prop: ConfigProperty, value: Any) -> Any:
        for plugin in self._plugins:
            if self.is_plugin_enabled(descriptor.path, plugin.name):
                value = plugin.validate_config(self, descriptor, prop, value)
        return value

    def _wrap_create(self, node: ClassNode, construct: Construct) -> Construct:
        wrapped = construct
        for plugin in reversed(self._plugins):
            plugin_call = plugin.wrap_create(self, node.descriptor, wrapped)
            wrapped = self._create_wrapper(plugin, node.path, plugin_call, wrapped)
        return wrapped

    def _create_wrapper(
        self, plugin: BasePlugin, path: str, plugin_call: Construct, next_call: Construct
    ) -> Construct:
        @wraps(next_call)
        def wrapper(node: ClassNode, supplied: Dict[str, Any]) -> Instance:
            if not self.is_plugin_enabled(path, plugin.name):
                return next_call(node, supplied)
            return plugin_call(node, supplied)

        return wrapper

    # ------------------------------------------------------------------
    # Introspection / configuration
    # ------------------------------------------------------------------
    def describe(self, name: Optional[str] = None) -> Dict[str, Any]:
        if name is None:
            return {node.path: self._describe_node(node) for node in self.registry.nodes()}
        node = self.get_node(name)
        if node is None:
            raise KeyError(f"No class named {name!r}")
        return self._describe_node(node)

    def _describe_node(self, node: ClassNode) -> Dict[str, Any]:
        description: Dict[str, Any] = {
            "path": node.path,
            "state": node.state.value,
            "waiting_on": sorted(node.unresolved),
            "error": node.error.as_dict() if node.error is not None else None,
            "overrides": len(node.overrides),
        }
        descriptor = node.descriptor
        if descriptor is None:
            return description
        description.update(
            {
                "build": descriptor.build,
                "superclass": descriptor.superclass,
                "mixins": dict(descriptor.mixins),
                "aliases": list(descriptor.aliases),
                "xtype": descriptor.xtype,
                "alternate_names": list(descriptor.alternate_names),
                "singleton": descriptor.singleton,
                "members": sorted(descriptor.members),
                "statics": sorted(set(descriptor.statics) | set(descriptor.inheritable_statics)),
                "config": {name: prop.cached for name, prop in descriptor.configs.items()},
                "deprecated": dict(descriptor.deprecated),
            }
        )
        plugins: Dict[str, Dict[str, Any]] = {}
        for plugin in self._plugins:
            plugin_data: Dict[str, Any] = {"enabled": self.is_plugin_enabled(node.path, plugin.name)}
            config = plugin.configuration(node.path)
            if config:
                plugin_data["config"] = config
            meta = plugin.describe_class(self, descriptor)
            if meta:
                plugin_data["metadata"] = meta
            plugins[plugin.name] = plugin_data
        if plugins:
            description["plugins"] = plugins
        return description

    def configure(self, target: Any, **options: Any) -> Any:
        if isinstance(target, (list, tuple)):
            if options:
                raise ValueError("Do not mix shared kwargs with list targets")
            return [self.configure(entry) for entry in target]
        if isinstance(target, dict):
            entry = dict(target)
            try:
                entry_target = entry.pop("target")
            except KeyError:
                raise ValueError("Dict targets must include 'target'")
            return self.configure(entry_target, **entry)
        if not isinstance(target, str):
            raise TypeError("Target must be a string, dict, or list")
        target = target.strip()
        if target == "?":
            if options:
                raise ValueError("Options are not allowed with '?'")
            return self.describe()
        plugin_name, selector = self._parse_target(target)
        plugin = self._plugin(plugin_name)
        if not options:
            raise ValueError("No configuration options provided")
        if selector.lower() == "_all_":
            plugin.configure(_target=BASE_TARGET, **options)
            return {"target": target, "updated": ["_all_"]}
        matches = self._match_classes(selector)
        if not matches:
            raise KeyError(f"No classes matching '{selector}'")
        for path in matches:
            plugin.configure(_target=path, **options)
        return {"target": target, "updated": matches}

    def _parse_target(self, target: str) -> Tuple[str, str]:
        if "/" in target:
            plugin_part, selector = target.split("/", 1)
        else:
            plugin_part, selector = target, "_all_"
        plugin_part = plugin_part.strip()
        if not plugin_part:
            raise ValueError("Plugin name cannot be empty")
        return plugin_part, selector.strip() or "_all_"

    def _match_classes(self, selector: str) -> List[str]:
        patterns = [token.strip() for token in selector.split(",") if token.strip()]
        return sorted(
            {path for path in self.registry for pattern in patterns if fnmatchcase(path, pattern)}
        )

    def __repr__(self) -> str:
        return f"<ClassManager classes={len(self.registry)} plugins={[p.name for p in self._plugins]}>"


_default_manager: Optional[ClassManager] = None


def get_manager() -> ClassManager:
    """Return the default manager, creating it on first use."""
    global _default_manager
    if _default_manager is None:
        _default_manager = ClassManager()
    return _default_manager


def define(path: str, body: Optional[Mapping[str, Any]] = None, **directives: Any) -> Optional[ClassNode]:
    return get_manager().define(path, body, **directives)


def create(name: Union[str, Mapping[str, Any]], config: Optional[Mapping[str, Any]] = None) -> Instance:
    return get_manager().create(name, config)


def get_alias(alias: str) -> Optional[str]:
    return get_manager().get_alias(alias)


def reset() -> None:
    if _default_manager is not None:
        _default_manager.reset()
