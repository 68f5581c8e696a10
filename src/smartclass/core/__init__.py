"""Core runtime aggregator (source of truth).

Purpose: expose the runtime building blocks from a single module. No extra
logic beyond imports/exports; importing it neither registers plugins nor
creates the default manager.

- ``manager`` → ``ClassManager`` and the default-manager helpers
- ``decorators`` → ``declare``, ``private``, ``deprecated``
- ``config`` → ``ConfigSpec``, ``ConfigChange``
- ``instance`` → ``Instance``, ``InstanceState``
- ``errors`` → the error taxonomy and ``ErrorChannel``
"""

from .builder import ClassDescriptor
from .config import ConfigChange, ConfigSpec
from .decorators import declare, deprecated, private
from .directives import DirectiveSet
from .environment import Environment
from .errors import (
    AliasConflict,
    ClassSystemError,
    CyclicDependency,
    DestroyedInstance,
    DuplicateDefinition,
    ErrorChannel,
    InternalConsistencyError,
    InvalidConfigValue,
    InvalidDirective,
    NotReady,
    UnknownType,
    UnresolvedDependency,
)
from .instance import Instance, InstanceState, is_instance
from .manager import ClassManager, create, define, get_alias, get_manager, reset
from .registry import ClassNode, NodeState

__all__ = [
    "AliasConflict",
    "ClassDescriptor",
    "ClassManager",
    "ClassNode",
    "ClassSystemError",
    "ConfigChange",
    "ConfigSpec",
    "CyclicDependency",
    "DestroyedInstance",
    "DirectiveSet",
    "DuplicateDefinition",
    "Environment",
    "ErrorChannel",
    "Instance",
    "InstanceState",
    "InternalConsistencyError",
    "InvalidConfigValue",
    "InvalidDirective",
    "NodeState",
    "NotReady",
    "UnknownType",
    "UnresolvedDependency",
    "create",
    "declare",
    "define",
    "deprecated",
    "get_alias",
    "get_manager",
    "is_instance",
    "private",
    "reset",
]
