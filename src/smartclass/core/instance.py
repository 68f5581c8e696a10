"""Instances of finalized classes (source of truth).

An :class:`Instance` owns its evaluated config map and a *weak* reference to
its class node; the current descriptor is always read through the node, so
member lookups see overrides applied after construction while config values
resolved at construction stay untouched.

Attribute lookup (``__getattr__``)
----------------------------------
1. exported members of the descriptor; functions are bound to a
   :class:`_MemberScope` for the declaring class;
2. generated accessors ``get_<key>()`` / ``set_<key>(value)``;
3. undeclared construction values stored in ``properties``.

Member scope
------------
Inside a member, ``self`` is a scope proxy: attribute reads check the
declaring class's private members first, then fall through to the instance;
writes go to the instance. ``self.call_parent(*args)`` invokes the member
this one shadows in the merge chain (inherited, mixin or pre-override
implementation). Privates are unreachable from outside a member.

Lifecycle
---------
``CREATED`` → ``RENDERED`` (after ``render``) → ``DESTROYED``. After
destruction getters return the last value, setters and ``render`` raise
``DestroyedInstance``, listeners are dropped and child ``items`` are
destroyed. Hooks: ``init()`` after construction, ``on_destroy()`` before
destruction, ``apply_<key>(value, old)`` / ``update_<key>(value, old)`` around
config writes.

Rendering
---------
``render(engine=None)`` passes the ``data`` config to a template function:
``engine`` if given, else ``tpl`` when callable, else
``template_compiler(tpl)`` (compiled once per ``tpl`` value). Without a
template the ``html`` config is used. The result is stored on ``markup``.
Changing ``data`` on a rendered instance renders again.
"""

from __future__ import annotations

import inspect
import types
import weakref
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from smartseeds.typeutils import safe_is_instance

from .builder import ClassDescriptor, Member
from .config import ConfigAccessor, ConfigChange, ConfigSystem
from .errors import DestroyedInstance

if TYPE_CHECKING:  # pragma: no cover - import for typing only
    from .factory import InstanceFactory
    from .registry import ClassNode

__all__ = ["Instance", "InstanceState", "is_instance"]

_INSTANCE_CLASS = "smartclass.core.instance.Instance"

_INTERNAL = frozenset(
    {
        "_node_ref",
        "_config",
        "_factory",
        "_values",
        "_listeners",
        "_state",
        "_compiled",
        "path",
        "properties",
        "items",
        "markup",
    }
)


class InstanceState(str, Enum):
    CREATED = "created"
    RENDERED = "rendered"
    DESTROYED = "destroyed"


class _MemberScope:
    """``self`` as seen from inside a member declared by ``member.owner``."""

    __slots__ = ("_instance", "_member")

    def __init__(self, instance: "Instance", member: Member) -> None:
        object.__setattr__(self, "_instance", instance)
        object.__setattr__(self, "_member", member)

    @property
    def instance(self) -> "Instance":
        return self._instance

    def __getattr__(self, name: str) -> Any:
        instance = self._instance
        private = instance.descriptor.private_member(self._member.owner, name)
        if private is not None:
            return instance._bind(private)
        return getattr(instance, name)

    def __setattr__(self, name: str, value: Any) -> None:
        setattr(self._instance, name, value)

    def call_parent(self, *args: Any, **kwargs: Any) -> Any:
        instance = self._instance
        parent = instance.descriptor.parent_member(self._member)
        if parent is None:
            raise AttributeError(
                f"{self._member.name!r} has no parent implementation on {instance.path!r}"
            )
        return instance._bind(parent)(*args, **kwargs)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, _MemberScope):
            return other._instance is self._instance
        return other is self._instance

    def __hash__(self) -> int:
        return hash(self._instance)

    def __repr__(self) -> str:
        return f"<scope of {self._member.owner}.{self._member.name} on {self._instance!r}>"


class Instance:
    """One constructed object of a finalized class."""

    def __init__(self, node: "ClassNode", config: ConfigSystem, factory: "InstanceFactory") -> None:
        self._node_ref = weakref.ref(node)
        self._config = config
        self._factory = factory
        self._values: Dict[str, Any] = {}
        self._listeners: Dict[str, List[Callable[[ConfigChange], Any]]] = {}
        self._state = InstanceState.CREATED
        self._compiled: Optional[tuple] = None
        self.path = node.path
        self.properties: Dict[str, Any] = {}
        self.items: List[Any] = []
        self.markup: Optional[str] = None

    # ------------------------------------------------------------------
    # Construction (driven by InstanceFactory)
    # ------------------------------------------------------------------
    def _initialize(self, supplied: Mapping[str, Any]) -> None:
        values, extras = self._config.initial_values(self, supplied)
        self._values = values
        self.properties = extras
        listeners = self._take("listeners")
        if listeners:
            for key, listener in dict(listeners).items():
                for callback in listener if isinstance(listener, (list, tuple)) else [listener]:
                    self.on(key, callback)
        items = self._take("items")
        if items is not None:
            self.items = [self._factory.materialize(item) for item in items]
            if "items" in self.descriptor.configs:
                self._values["items"] = list(self.items)
        init = self._find_member("init")
        if init is not None:
            init()

    def _take(self, key: str) -> Any:
        if key in self.descriptor.configs:
            return self._values.get(key)
        return self.properties.pop(key, None)

    # ------------------------------------------------------------------
    # Class access
    # ------------------------------------------------------------------
    @property
    def descriptor(self) -> ClassDescriptor:
        node = self._node_ref()
        if node is None or node.descriptor is None:
            node = self._factory.current_node(self.path)
            if node is None or node.descriptor is None:
                raise ReferenceError(f"class {self.path!r} is no longer registered")
            self._node_ref = weakref.ref(node)
        return node.descriptor

    @property
    def state(self) -> InstanceState:
        return self._state

    @property
    def is_destroyed(self) -> bool:
        return self._state is InstanceState.DESTROYED

    @property
    def statics(self) -> Dict[str, Any]:
        descriptor = self.descriptor
        merged = dict(descriptor.inheritable_statics)
        merged.update(descriptor.statics)
        return merged

    def get_static(self, name: str) -> Any:
        return self.descriptor.get_static(name)

    def is_instance_of(self, name: str) -> bool:
        return self.descriptor.is_subclass_of(self._factory.canonical(name) or name)

    # ------------------------------------------------------------------
    # Member lookup
    # ------------------------------------------------------------------
    def __getattr__(self, name: str) -> Any:
        if name in _INTERNAL or (name.startswith("__") and name.endswith("__")):
            raise AttributeError(name)
        descriptor = self.descriptor
        member = descriptor.members.get(name)
        if member is not None:
            self._note_deprecated(name)
            return self._bind(member)
        if name.startswith(("get_", "set_")):
            accessor = descriptor.accessors.get(name[4:])
            if accessor is not None:
                if name.startswith("get_"):
                    return partial(accessor.getter, self)
                return partial(accessor.setter, self)
        properties = self.__dict__.get("properties", {})
        if name in properties:
            return properties[name]
        raise AttributeError(f"{self.path!r} instance has no attribute {name!r}")

    def _bind(self, member: Member) -> Any:
        value = member.value
        if inspect.isfunction(value):
            return types.MethodType(value, _MemberScope(self, member))
        return value

    def _find_member(self, name: str) -> Optional[Any]:
        descriptor = self.descriptor
        member = descriptor.members.get(name) or descriptor.private_member(descriptor.path, name)
        if member is None:
            return None
        return self._bind(member)

    def _note_deprecated(self, name: str) -> None:
        note = self.descriptor.deprecated.get(name)
        if note:
            self._factory.warn_deprecated(self.path, name, note)

    # ------------------------------------------------------------------
    # Config surface
    # ------------------------------------------------------------------
    def _accessor(self, key: str) -> ConfigAccessor:
        accessor = self.descriptor.accessors.get(key)
        if accessor is None:
            raise KeyError(f"{self.path!r} declares no config {key!r}")
        return accessor

    def get(self, key: str) -> Any:
        return self._accessor(key).getter(self)

    def set(self, key: str, value: Any) -> None:
        self._accessor(key).setter(self, value)

    def get_config(self, key: Optional[str] = None) -> Any:
        if key is not None:
            return self.get(key)
        return dict(self._values)

    def set_config(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        updates = dict(values or {})
        updates.update(kwargs)
        for key, value in updates.items():
            self.set(key, value)

    def on(self, key: str, listener: Callable[[ConfigChange], Any]) -> None:
        """Register ``listener`` for changes of ``key`` (``"*"`` for every key)."""
        bucket = self._listeners.setdefault(key, [])
        if listener not in bucket:
            bucket.append(listener)

    def un(self, key: str, listener: Callable[[ConfigChange], Any]) -> None:
        bucket = self._listeners.get(key, [])
        if listener in bucket:
            bucket.remove(listener)

    def _notify(self, change: ConfigChange) -> None:
        listeners = list(self._listeners.get(change.key, ())) + list(self._listeners.get("*", ()))
        for listener in listeners:
            listener(change)
        if change.key == "data" and self._state is InstanceState.RENDERED:
            self.render()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def render(self, engine: Optional[Callable[[Any], str]] = None) -> str:
        if self.is_destroyed:
            raise self._factory.report(DestroyedInstance(self.path, "cannot render a destroyed instance"))
        tpl = self._lookup("tpl")
        data = self._lookup("data")
        if engine is None and tpl is not None:
            if callable(tpl):
                engine = tpl
            else:
                engine = self._compile(tpl)
        if engine is not None:
            markup = engine(data)
        else:
            html = self._lookup("html")
            markup = "" if html is None else str(html)
        self.markup = markup
        self._state = InstanceState.RENDERED
        return markup

    def _lookup(self, key: str) -> Any:
        if key in self._values:
            return self._values[key]
        return self.properties.get(key)

    def _compile(self, tpl: Any) -> Callable[[Any], str]:
        if self._compiled is not None and self._compiled[0] is tpl:
            return self._compiled[1]
        compiler = self._factory.template_compiler
        if compiler is None:
            raise TypeError(f"{self.path!r}: 'tpl' is template source but no template_compiler is configured")
        compiled = compiler(tpl)
        self._compiled = (tpl, compiled)
        return compiled

    def destroy(self) -> None:
        if self.is_destroyed:
            return
        hook = self._find_member("on_destroy")
        if hook is not None:
            hook()
        for item in self.items:
            if is_instance(item):
                item.destroy()
        self._state = InstanceState.DESTROYED
        self._listeners.clear()
        self._factory.forget(self)

    def __repr__(self) -> str:
        return f"<{self.path} instance {self._state.value}>"


def is_instance(obj: Any) -> bool:
    """Return True when ``obj`` is a runtime :class:`Instance`."""
    return safe_is_instance(obj, _INSTANCE_CLASS)
