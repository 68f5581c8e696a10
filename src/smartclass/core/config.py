"""Config system: declared properties, conditional rules and accessors.

Source of truth
---------------
Declarations
~~~~~~~~~~~~
A ``config``/``cachedConfig`` value is either a plain default or a
:class:`ConfigSpec` (``default``, ``factory``, ``validator``, ``type``).
``merge()`` folds declarations in precedence order (inherited, mixins in
declaration order, own, overrides in arrival order). Redeclaring a key with a
plain value only replaces its default; the validator, type and cached flag of
the earlier declaration are kept. A ``ConfigSpec`` redeclaration replaces the
fields it sets.

Rules
~~~~~
``platformConfig``/``responsiveConfig`` entries become
:class:`ConditionalRule` objects, ordered: inherited, mixins, own platform,
own responsive, override layers. Rules may only name declared keys and
responsive expressions must parse; both are checked at finalization
(``InvalidDirective``). ``resolve()`` starts from the base defaults and
merges every matching rule in order, later wins.

Defaults
~~~~~~~~
``cachedConfig`` defaults are computed once per class build
(``compute_cached``) and shared by instances. ``config`` defaults are
materialized per instance: factories are called, dict/list/set defaults are
deep-copied. ``defaults_for(descriptor)`` returns the defaults resolved at
finalization unless the environment changed since, in which case rules are
re-evaluated (memoized per descriptor and environment version).

Accessors and setters
~~~~~~~~~~~~~~~~~~~~~
``build_accessors`` produces ``{key: ConfigAccessor(getter, setter,
default_resolver)}``. ``assign`` implements the setter pipeline:
destroyed check → validator → plugin ``validate_hook`` → ``apply_<key>``
member → identical-value short-circuit → store → ``update_<key>`` member →
synchronous :class:`ConfigChange` notification. Every failure is reported
through the error channel and raised; it never affects other keys.
"""

from __future__ import annotations

import copy
import weakref
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from .directives import DirectiveSet
from .environment import Environment, compile_rule
from .errors import (
    ClassSystemError,
    DestroyedInstance,
    ErrorChannel,
    InvalidConfigValue,
    InvalidDirective,
)

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .builder import ClassDescriptor
    from .instance import Instance

__all__ = [
    "ConfigSpec",
    "ConfigProperty",
    "ConditionalRule",
    "ConfigAccessor",
    "ConfigChange",
    "ConfigSystem",
]

_UNSET = object()


@dataclass(frozen=True)
class ConfigSpec:
    """Rich declaration of a config property."""

    default: Any = None
    factory: Optional[Callable[[], Any]] = None
    validator: Optional[Callable[[Any], Any]] = None
    type: Any = None


@dataclass(frozen=True)
class ConfigProperty:
    name: str
    default: Any
    owner: str
    cached: bool = False
    factory: Optional[Callable[[], Any]] = None
    validator: Optional[Callable[[Any], Any]] = None
    type: Any = None


@dataclass(frozen=True)
class ConditionalRule:
    kind: str  # "platform" | "responsive"
    predicate: str
    values: Mapping[str, Any]
    owner: str


@dataclass(frozen=True)
class ConfigAccessor:
    name: str
    getter: Callable[["Instance"], Any]
    setter: Callable[["Instance", Any], None]
    default_resolver: Callable[["ClassDescriptor"], Any]


@dataclass(frozen=True)
class ConfigChange:
    """Payload delivered to config listeners."""

    key: str
    old_value: Any
    new_value: Any
    instance: Any = None


class _Deferred:
    __slots__ = ("factory",)

    def __init__(self, factory: Callable[[], Any]) -> None:
        self.factory = factory


def _fresh(value: Any) -> Any:
    if isinstance(value, _Deferred):
        return value.factory()
    if isinstance(value, (dict, list, set)):
        return copy.deepcopy(value)
    return value


def _same(old: Any, new: Any) -> bool:
    if old is new:
        return True
    if type(old) is not type(new):
        return False
    return bool(old == new)


class ConfigSystem:
    """Synthesizes config behaviour for finalized classes and their instances."""

    def __init__(
        self,
        environment: Environment,
        channel: ErrorChannel,
        *,
        validate_hook: Optional[Callable[["ClassDescriptor", ConfigProperty, Any], Any]] = None,
    ) -> None:
        self.environment = environment
        self._channel = channel
        self._validate_hook = validate_hook
        self._resolved: "weakref.WeakKeyDictionary[Any, Tuple[int, Dict[str, Any]]]" = (
            weakref.WeakKeyDictionary()
        )

    # ------------------------------------------------------------------
    # Class-level synthesis
    # ------------------------------------------------------------------
    def merge(
        self,
        path: str,
        parent: Optional["ClassDescriptor"],
        mixins: Sequence["ClassDescriptor"],
        layers: Iterable[DirectiveSet],
    ) -> Tuple[Dict[str, ConfigProperty], Tuple[ConditionalRule, ...]]:
        configs: Dict[str, ConfigProperty] = {}
        rules: List[ConditionalRule] = []
        if parent is not None:
            configs.update(parent.configs)
            rules.extend(parent.rules)
        for mixin in mixins:
            configs.update(mixin.configs)
            rules.extend(rule for rule in mixin.rules if rule not in rules)
        for layer in layers:
            for name, value in layer.config.items():
                configs[name] = self._declare(path, name, value, configs.get(name), cached=False)
            for name, value in layer.cached_config.items():
                configs[name] = self._declare(path, name, value, configs.get(name), cached=True)
            rules.extend(self._rules(path, "platform", layer.platform_config))
            rules.extend(self._rules(path, "responsive", layer.responsive_config))
        self._check_rules(path, configs, rules)
        return configs, tuple(rules)

    def _declare(
        self,
        path: str,
        name: str,
        value: Any,
        previous: Optional[ConfigProperty],
        *,
        cached: bool,
    ) -> ConfigProperty:
        cached = cached or bool(previous and previous.cached)
        if isinstance(value, ConfigSpec):
            return ConfigProperty(
                name=name,
                default=value.default,
                owner=path,
                cached=cached,
                factory=value.factory,
                validator=value.validator or (previous.validator if previous else None),
                type=value.type if value.type is not None else (previous.type if previous else None),
            )
        if previous is not None:
            return replace(previous, default=value, owner=path, cached=cached, factory=None)
        return ConfigProperty(name=name, default=value, owner=path, cached=cached)

    def _rules(
        self, path: str, kind: str, declared: Mapping[str, Mapping[str, Any]]
    ) -> List[ConditionalRule]:
        return [
            ConditionalRule(kind=kind, predicate=predicate, values=MappingProxyType(dict(values)), owner=path)
            for predicate, values in declared.items()
        ]

    def _check_rules(
        self, path: str, configs: Mapping[str, ConfigProperty], rules: Iterable[ConditionalRule]
    ) -> None:
        for rule in rules:
            unknown = sorted(set(rule.values) - set(configs))
            if unknown:
                raise InvalidDirective(
                    path,
                    f"{rule.kind}Config[{rule.predicate!r}] targets undeclared config: {', '.join(unknown)}",
                )
            if rule.kind == "responsive":
                try:
                    compile_rule(rule.predicate)
                except ValueError as exc:
                    raise InvalidDirective(path, str(exc)) from exc

    def compute_cached(self, path: str, configs: Mapping[str, ConfigProperty]) -> Dict[str, Any]:
        cached: Dict[str, Any] = {}
        for name, prop in configs.items():
            if not prop.cached:
                continue
            if prop.factory is None:
                cached[name] = prop.default
                continue
            try:
                cached[name] = prop.factory()
            except Exception as exc:
                raise InvalidConfigValue(path, name, None, f"cached factory failed: {exc}") from exc
        return cached

    def resolve(
        self,
        configs: Mapping[str, ConfigProperty],
        cached: Mapping[str, Any],
        rules: Iterable[ConditionalRule],
    ) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        for name, prop in configs.items():
            if prop.cached:
                values[name] = cached[name]
            elif prop.factory is not None:
                values[name] = _Deferred(prop.factory)
            else:
                values[name] = prop.default
        for rule in rules:
            if self.matches(rule):
                values.update(rule.values)
        return values

    def matches(self, rule: ConditionalRule) -> bool:
        if rule.kind == "platform":
            return self.environment.matches_platform(rule.predicate)
        return self.environment.evaluate(rule.predicate)

    def build_accessors(self, configs: Mapping[str, ConfigProperty]) -> Mapping[str, ConfigAccessor]:
        return MappingProxyType({name: self._make_accessor(name) for name in configs})

    def _make_accessor(self, name: str) -> ConfigAccessor:
        def getter(instance: "Instance") -> Any:
            return self.read(instance, name)

        def setter(instance: "Instance", value: Any) -> None:
            self.assign(instance, name, value)

        def default_resolver(descriptor: "ClassDescriptor") -> Any:
            value = self.defaults_for(descriptor)[name]
            return value if descriptor.configs[name].cached else _fresh(value)

        return ConfigAccessor(name=name, getter=getter, setter=setter, default_resolver=default_resolver)

    def defaults_for(self, descriptor: "ClassDescriptor") -> Dict[str, Any]:
        version = self.environment.version
        if descriptor.env_version == version:
            return dict(descriptor.defaults)
        cached = self._resolved.get(descriptor)
        if cached is None or cached[0] != version:
            values = self.resolve(descriptor.configs, descriptor.cached_values, descriptor.rules)
            cached = (version, values)
            self._resolved[descriptor] = cached
        return dict(cached[1])

    # ------------------------------------------------------------------
    # Instance-level behaviour
    # ------------------------------------------------------------------
    def initial_values(
        self, instance: "Instance", supplied: Mapping[str, Any]
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Return ``(config values, undeclared extras)`` for a new instance."""
        descriptor = instance.descriptor
        configs = descriptor.configs
        values = {
            name: value if configs[name].cached else _fresh(value)
            for name, value in self.defaults_for(descriptor).items()
        }
        extras: Dict[str, Any] = {}
        for name, value in supplied.items():
            if name not in descriptor.configs:
                extras[name] = value
                continue
            values[name] = self.coerce(instance, name, value, values.get(name))
        return values, extras

    def coerce(self, instance: "Instance", name: str, value: Any, old: Any = None) -> Any:
        descriptor = instance.descriptor
        prop = descriptor.configs[name]
        try:
            if prop.validator is not None:
                try:
                    verdict = prop.validator(value)
                except ClassSystemError:
                    raise
                except Exception as exc:
                    raise InvalidConfigValue(instance.path, name, value, str(exc)) from exc
                if verdict is False:
                    raise InvalidConfigValue(instance.path, name, value, "validator returned False")
            if self._validate_hook is not None:
                value = self._validate_hook(descriptor, prop, value)
        except ClassSystemError as exc:
            raise self._channel.report(exc)
        applier = instance._find_member(f"apply_{name}")
        if applier is not None:
            value = applier(value, old)
        return value

    def read(self, instance: "Instance", name: str) -> Any:
        instance._note_deprecated(name)
        values = instance._values
        if name in values:
            return values[name]
        accessor = instance.descriptor.accessors[name]
        return accessor.default_resolver(instance.descriptor)

    def assign(self, instance: "Instance", name: str, value: Any) -> None:
        if instance.is_destroyed:
            raise self._channel.report(
                DestroyedInstance(instance.path, f"cannot set {name!r} on a destroyed instance")
            )
        instance._note_deprecated(name)
        old = instance._values.get(name, _UNSET)
        previous = None if old is _UNSET else old
        value = self.coerce(instance, name, value, previous)
        if old is not _UNSET and _same(old, value):
            return
        instance._values[name] = value
        updater = instance._find_member(f"update_{name}")
        if updater is not None:
            updater(value, previous)
        instance._notify(ConfigChange(key=name, old_value=previous, new_value=value, instance=instance))
