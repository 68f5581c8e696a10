"""Pydantic validation plugin (source of truth).

Rebuild exactly from this contract; no hidden behaviour.

Responsibilities
----------------
- At finalization (``on_finalize``) collect every config property declared
  with ``ConfigSpec(type=...)`` and build a Pydantic model
  ``<path with dots as underscores>_Config`` via ``create_model``. Each field
  is optional (default ``None``) so one key can be validated at a time.
  Names starting with ``_`` or ``model_`` are skipped. The model is stored in
  ``descriptor.metadata["pydantic"]`` as ``{"model": model, "fields": names}``;
  a class without typed configs gets no entry.
- On every construction-time or setter value (``validate_config``) for a
  typed key, validate ``{key: value}`` with the model and return the coerced
  field value. A ``ValidationError`` becomes ``InvalidConfigValue`` whose
  reason is the first error message; the original error is chained.
- ``disabled`` (default False) turns validation into a passthrough at call
  time.
- ``describe_class`` reports the model name and typed fields.

Registration
------------
Registers itself as ``"pydantic"`` during module import via
``ClassManager.register_plugin(PydanticPlugin)``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import ValidationError, create_model

from smartclass.core.errors import InvalidConfigValue
from smartclass.core.manager import ClassManager
from smartclass.plugins._base_plugin import BasePlugin

if TYPE_CHECKING:
    from smartclass.core.builder import ClassDescriptor
    from smartclass.core.config import ConfigProperty


class PydanticPlugin(BasePlugin):
    """Validate and coerce typed config values with Pydantic."""

    plugin_code = "pydantic"
    plugin_description = "Validates config values using ConfigSpec types"

    def __init__(self, manager, **config: Any):
        super().__init__(manager, **config)

    def configure(self, disabled: bool = False):
        """Storage is handled by the wrapper added in ``__init_subclass__``."""
        pass

    def on_finalize(self, manager, descriptor: "ClassDescriptor") -> None:
        fields = {
            name: (prop.type, None)
            for name, prop in descriptor.configs.items()
            if prop.type is not None and not name.startswith(("_", "model_"))
        }
        if not fields:
            descriptor.metadata.pop("pydantic", None)
            return
        model = create_model(f"{descriptor.path.replace('.', '_')}_Config", **fields)  # type: ignore
        descriptor.metadata["pydantic"] = {"model": model, "fields": tuple(fields)}

    def validate_config(
        self, manager, descriptor: "ClassDescriptor", prop: "ConfigProperty", value: Any
    ) -> Any:
        model = self.get_model(descriptor)
        if model is None or prop.name not in descriptor.metadata["pydantic"]["fields"]:
            return value
        try:
            validated = model(**{prop.name: value})
        except ValidationError as exc:
            errors = exc.errors()
            reason = errors[0]["msg"] if errors else str(exc)
            raise InvalidConfigValue(descriptor.path, prop.name, value, reason) from exc
        return getattr(validated, prop.name)

    def get_model(self, descriptor: "ClassDescriptor") -> Optional[Any]:
        """Return the config model of ``descriptor`` unless validation is disabled."""
        if self.configuration(descriptor.path).get("disabled"):
            return None
        meta = descriptor.metadata.get("pydantic", {})
        return meta.get("model")

    def describe_class(self, manager, descriptor: "ClassDescriptor") -> Dict[str, Any]:
        meta = descriptor.metadata.get("pydantic", {})
        if not meta:
            return {}
        return {"model": meta["model"].__name__, "fields": list(meta["fields"])}


ClassManager.register_plugin(PydanticPlugin)
