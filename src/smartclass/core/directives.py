"""Directive sets: the validated, immutable body of one class declaration.

Source of truth
---------------
``DirectiveSet`` is a frozen dataclass. Mapping-valued fields are stored as
``MappingProxyType`` copies so a submitted declaration can never be mutated
afterwards; corrections arrive only as override directive sets.

Accepted keys
~~~~~~~~~~~~~
Both spellings are accepted for every directive (``inheritableStatics`` and
``inheritable_statics``, ``cachedConfig`` and ``cached_config`` ...). Any key
that is not a directive is a directly-declared member and lands in
``members``. Giving the same directive under both spellings raises
``InvalidDirective``.

Normalization
~~~~~~~~~~~~~
- ``requires``/``uses``/``alias``/``alternateClassName``: string or iterable of
  strings, stripped, empty entries dropped, duplicates removed (first wins).
- ``mixins``: mapping name → path keeps declaration order; a list of paths
  derives each name from the last dotted segment. Duplicate names are errors.
- ``platformConfig``/``responsiveConfig``: predicate → mapping of config
  values; ``overrides``: target path → override body.
- ``deprecated``: member name → message; ``True`` becomes a generic message,
  a mapping contributes its ``"message"`` entry.
- Members carrying the ``private`` marker move to ``privates``; members
  carrying the ``deprecated`` marker add a deprecation note.
- Member names reserved by the instance API (``get``, ``set``, ``destroy`` ...)
  are rejected.

``from_class(path, cls)`` reads a plain Python class body the same way:
dunder names are skipped and ``staticmethod``/``classmethod`` objects become
``statics``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .errors import InvalidDirective

__all__ = [
    "DirectiveSet",
    "PRIVATE_ATTR_NAME",
    "DEPRECATED_ATTR_NAME",
    "RESERVED_MEMBER_NAMES",
]

PRIVATE_ATTR_NAME = "__smartclass_private__"
DEPRECATED_ATTR_NAME = "__smartclass_deprecated__"

RESERVED_MEMBER_NAMES = frozenset(
    {
        "call_parent",
        "descriptor",
        "destroy",
        "get",
        "get_config",
        "get_static",
        "is_destroyed",
        "is_instance_of",
        "items",
        "markup",
        "on",
        "path",
        "properties",
        "render",
        "set",
        "set_config",
        "state",
        "statics",
        "un",
    }
)

_DIRECTIVE_KEYS: Dict[str, str] = {
    "extend": "extend",
    "requires": "requires",
    "uses": "uses",
    "mixins": "mixins",
    "alias": "alias",
    "xtype": "xtype",
    "statics": "statics",
    "inheritableStatics": "inheritable_statics",
    "inheritable_statics": "inheritable_statics",
    "privates": "privates",
    "config": "config",
    "cachedConfig": "cached_config",
    "cached_config": "cached_config",
    "platformConfig": "platform_config",
    "platform_config": "platform_config",
    "responsiveConfig": "responsive_config",
    "responsive_config": "responsive_config",
    "alternateClassName": "alternate_class_name",
    "alternate_class_name": "alternate_class_name",
    "singleton": "singleton",
    "override": "override",
    "overrides": "overrides",
    "deprecated": "deprecated",
    "debugHooks": "debug_hooks",
    "debug_hooks": "debug_hooks",
}

_EMPTY: Mapping[str, Any] = MappingProxyType({})


def _frozen(values: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class DirectiveSet:
    """Validated representation of one class's declarative body."""

    path: str
    extend: Optional[str] = None
    requires: Tuple[str, ...] = ()
    uses: Tuple[str, ...] = ()
    mixins: Tuple[Tuple[str, str], ...] = ()
    alias: Tuple[str, ...] = ()
    xtype: Optional[str] = None
    statics: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    inheritable_statics: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    privates: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    config: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    cached_config: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    platform_config: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: _EMPTY)
    responsive_config: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: _EMPTY)
    alternate_class_name: Tuple[str, ...] = ()
    singleton: bool = False
    override: Optional[str] = None
    overrides: Mapping[str, Mapping[str, Any]] = field(default_factory=lambda: _EMPTY)
    deprecated: Mapping[str, str] = field(default_factory=lambda: _EMPTY)
    debug_hooks: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)
    members: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------
    @property
    def mixin_paths(self) -> Tuple[str, ...]:
        return tuple(path for _, path in self.mixins)

    @property
    def hard_dependencies(self) -> Tuple[str, ...]:
        """``extend``, mixins and ``requires`` in that order, without repeats."""
        ordered: List[str] = []
        if self.extend:
            ordered.append(self.extend)
        ordered.extend(self.mixin_paths)
        ordered.extend(self.requires)
        return tuple(dict.fromkeys(ordered))

    @property
    def is_override(self) -> bool:
        return self.override is not None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_body(
        cls, path: str, body: Optional[Mapping[str, Any]] = None, **directives: Any
    ) -> "DirectiveSet":
        """Validate a raw declaration body (plus keyword directives)."""
        if not isinstance(path, str) or not path.strip():
            raise InvalidDirective(None, "class path must be a non-empty string")
        path = path.strip()
        if body is not None and not isinstance(body, Mapping):
            raise InvalidDirective(path, f"declaration body must be a mapping, got {type(body).__name__}")
        raw: Dict[str, Any] = dict(body or {})
        for key, value in directives.items():
            if key in raw:
                raise InvalidDirective(path, f"{key!r} given both in body and as keyword")
            raw[key] = value

        values: Dict[str, Any] = {}
        members: Dict[str, Any] = {}
        for key, value in raw.items():
            if not isinstance(key, str):
                raise InvalidDirective(path, f"declaration keys must be strings, got {key!r}")
            field_name = _DIRECTIVE_KEYS.get(key)
            if field_name is None:
                members[key] = value
                continue
            if field_name in values:
                raise InvalidDirective(path, f"directive {field_name!r} given twice")
            values[field_name] = value

        privates = _mapping(path, "privates", values.get("privates"))
        deprecated = _deprecations(path, values.get("deprecated"))
        exported: Dict[str, Any] = {}
        for name, value in members.items():
            if name in RESERVED_MEMBER_NAMES:
                raise InvalidDirective(path, f"member name {name!r} is reserved by the instance API")
            note = getattr(value, DEPRECATED_ATTR_NAME, None)
            if note is not None:
                deprecated.setdefault(name, note)
            if getattr(value, PRIVATE_ATTR_NAME, False):
                privates[name] = value
            else:
                exported[name] = value
        for name in privates:
            if name in RESERVED_MEMBER_NAMES:
                raise InvalidDirective(path, f"member name {name!r} is reserved by the instance API")

        return cls(
            path=path,
            extend=_optional_name(path, "extend", values.get("extend")),
            requires=_names(path, "requires", values.get("requires")),
            uses=_names(path, "uses", values.get("uses")),
            mixins=_mixins(path, values.get("mixins")),
            alias=_names(path, "alias", values.get("alias")),
            xtype=_optional_name(path, "xtype", values.get("xtype")),
            statics=_frozen(_mapping(path, "statics", values.get("statics"))),
            inheritable_statics=_frozen(
                _mapping(path, "inheritableStatics", values.get("inheritable_statics"))
            ),
            privates=_frozen(privates),
            config=_frozen(_mapping(path, "config", values.get("config"))),
            cached_config=_frozen(_mapping(path, "cachedConfig", values.get("cached_config"))),
            platform_config=_rules(path, "platformConfig", values.get("platform_config")),
            responsive_config=_rules(path, "responsiveConfig", values.get("responsive_config")),
            alternate_class_name=_names(
                path, "alternateClassName", values.get("alternate_class_name")
            ),
            singleton=_flag(path, "singleton", values.get("singleton", False)),
            override=_optional_name(path, "override", values.get("override")),
            overrides=_rules(path, "overrides", values.get("overrides")),
            deprecated=_frozen(deprecated),
            debug_hooks=_frozen(_mapping(path, "debugHooks", values.get("debug_hooks"))),
            members=_frozen(exported),
        )

    @classmethod
    def from_class(cls, path: str, source: type, **directives: Any) -> "DirectiveSet":
        """Read directives and members from a plain Python class body."""
        body: Dict[str, Any] = {}
        statics: Dict[str, Any] = {}
        for name, value in vars(source).items():
            if name.startswith("__") and name.endswith("__"):
                continue
            if isinstance(value, (staticmethod, classmethod)):
                statics[name] = value.__func__
                continue
            body[name] = value
        if statics:
            declared = _mapping(path, "statics", body.pop("statics", None))
            statics.update(declared)
            body["statics"] = statics
        return cls.from_body(path, body, **directives)


# ----------------------------------------------------------------------
# Normalization helpers
# ----------------------------------------------------------------------
def _optional_name(path: str, key: str, value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise InvalidDirective(path, f"{key!r} must be a non-empty string")
    return value.strip()


def _names(path: str, key: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items: Iterable[Any] = [value]
    elif isinstance(value, Iterable) and not isinstance(value, Mapping):
        items = value
    else:
        raise InvalidDirective(path, f"{key!r} must be a string or a list of strings")
    cleaned: List[str] = []
    for item in items:
        if not isinstance(item, str):
            raise InvalidDirective(path, f"{key!r} entries must be strings, got {item!r}")
        item = item.strip()
        if item and item not in cleaned:
            cleaned.append(item)
    return tuple(cleaned)


def _mixins(path: str, value: Any) -> Tuple[Tuple[str, str], ...]:
    if value is None:
        return ()
    if isinstance(value, Mapping):
        pairs = list(value.items())
    else:
        pairs = [(target.rsplit(".", 1)[-1], target) for target in _names(path, "mixins", value)]
    seen: Dict[str, str] = {}
    for name, target in pairs:
        if not isinstance(name, str) or not name:
            raise InvalidDirective(path, f"mixin names must be non-empty strings, got {name!r}")
        if not isinstance(target, str) or not target.strip():
            raise InvalidDirective(path, f"mixin {name!r} must name a class path")
        if name in seen:
            raise InvalidDirective(path, f"mixin name {name!r} used twice")
        seen[name] = target.strip()
    return tuple(seen.items())


def _mapping(path: str, key: str, value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidDirective(path, f"{key!r} must be a mapping, got {type(value).__name__}")
    result: Dict[str, Any] = {}
    for name, item in value.items():
        if not isinstance(name, str) or not name:
            raise InvalidDirective(path, f"{key!r} keys must be non-empty strings, got {name!r}")
        result[name] = item
    return result


def _rules(path: str, key: str, value: Any) -> Mapping[str, Mapping[str, Any]]:
    rules = _mapping(path, key, value)
    return MappingProxyType(
        {predicate: _frozen(_mapping(path, f"{key}[{predicate!r}]", body)) for predicate, body in rules.items()}
    )


def _deprecations(path: str, value: Any) -> Dict[str, str]:
    notes: Dict[str, str] = {}
    for name, note in _mapping(path, "deprecated", value).items():
        if note is True:
            notes[name] = f"{name} is deprecated"
        elif isinstance(note, str):
            notes[name] = note
        elif isinstance(note, Mapping):
            notes[name] = str(note.get("message") or f"{name} is deprecated")
        else:
            raise InvalidDirective(path, f"deprecated[{name!r}] must be True, a message or a mapping")
    return notes


def _flag(path: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise InvalidDirective(path, f"{key!r} must be a boolean")
    return value
