"""Tests for the manager surface: plugins, configure, describe, reset."""

import pytest

import smartclass
from smartclass import ClassManager
from smartclass.plugins._base_plugin import BasePlugin


class RecordingPlugin(BasePlugin):
    plugin_code = "recording"
    plugin_description = "Records pipeline hooks"

    def configure(self, tag: str = "", enabled: bool = True):
        pass

    def on_finalize(self, manager, descriptor):
        descriptor.metadata.setdefault("finalized", []).append(descriptor.build)

    def wrap_create(self, manager, descriptor, call_next):
        def wrapper(node, supplied):
            instance = call_next(node, supplied)
            instance.properties["created_by"] = self.configuration(descriptor.path).get("tag")
            return instance

        return wrapper

    def describe_class(self, manager, descriptor):
        return {"builds": list(descriptor.metadata.get("finalized", []))}


ClassManager.register_plugin(RecordingPlugin)


def test_builtin_plugins_are_registered():
    available = ClassManager.available_plugins()
    assert {"logging", "pydantic", "recording"} <= set(available)


def test_register_plugin_validates_classes_and_collisions():
    with pytest.raises(TypeError):
        ClassManager.register_plugin(object)  # type: ignore[arg-type]

    class NoCode(BasePlugin):
        pass

    with pytest.raises(ValueError):
        ClassManager.register_plugin(NoCode)

    class Clash(BasePlugin):
        plugin_code = "recording"

    with pytest.raises(ValueError):
        ClassManager.register_plugin(Clash)
    ClassManager.register_plugin(RecordingPlugin)


def test_plug_unknown_or_non_string_plugin_fails():
    manager = ClassManager()
    with pytest.raises(ValueError):
        manager.plug("nope")
    with pytest.raises(TypeError):
        manager.plug(RecordingPlugin)  # type: ignore[arg-type]


def test_plug_runs_on_finalize_for_existing_and_future_classes():
    manager = ClassManager()
    manager.define("Early")
    manager.plug("recording", tag="base")
    manager.define("Late")
    assert manager.get_class("Early").metadata["finalized"] == [1]
    assert manager.get_class("Late").metadata["finalized"] == [1]
    assert manager.recording is manager.iter_plugins()[0]
    with pytest.raises(AttributeError):
        manager.missing_plugin


def test_wrap_create_and_per_class_configuration():
    manager = ClassManager().plug("recording", tag="base")
    manager.define("Widget.A")
    manager.define("Widget.B")
    manager.define("Other")
    result = manager.configure("recording/Widget.*", tag="widget")
    assert result == {"target": "recording/Widget.*", "updated": ["Widget.A", "Widget.B"]}
    assert manager.create("Widget.A").created_by == "widget"
    assert manager.create("Other").created_by == "base"
    assert manager.get_config("recording", "Widget.B")["tag"] == "widget"


def test_plugin_can_be_disabled_per_class():
    manager = ClassManager().plug("recording", tag="base")
    manager.define("Quiet")
    manager.set_plugin_enabled("Quiet", "recording", False)
    assert not manager.is_plugin_enabled("Quiet", "recording")
    assert "created_by" not in manager.create("Quiet").properties


def test_configure_validates_targets_and_options():
    manager = ClassManager().plug("recording")
    manager.define("Widget.A")
    assert manager.configure("recording", tag="all") == {"target": "recording", "updated": ["_all_"]}
    assert manager.get_config("recording")["tag"] == "all"
    with pytest.raises(ValueError):
        manager.configure("recording/Widget.A")
    with pytest.raises(KeyError):
        manager.configure("recording/Nope.*", tag="x")
    with pytest.raises(AttributeError):
        manager.configure("unknown/Widget.A", tag="x")
    with pytest.raises(TypeError):
        manager.configure(42)
    with pytest.raises(ValueError):
        manager.configure({"tag": "x"})
    with pytest.raises(ValueError):
        manager.configure(["recording"], tag="x")
    updates = manager.configure(
        [{"target": "recording/Widget.A", "tag": "a"}, {"target": "recording", "flags": "enabled:off"}]
    )
    assert [update["updated"] for update in updates] == [["Widget.A"], ["_all_"]]
    assert manager.get_config("recording")["enabled"] is False


def test_configure_validates_option_types_with_pydantic():
    from pydantic import ValidationError

    manager = ClassManager().plug("recording")
    with pytest.raises(ValidationError):
        manager.configure("recording", tag=["not", "a", "string"])


def test_describe_reports_pending_finalized_and_plugin_data():
    manager = ClassManager().plug("recording")
    manager.define("Widget.A", alias="widget.a", config={"color": "red"}, cachedConfig={"store": None})
    manager.define("Widget.B", extend="Widget.Missing")
    everything = manager.configure("?")
    assert set(everything) == {"Widget.A", "Widget.B"}
    pending = everything["Widget.B"]
    assert pending["state"] == "pending" and pending["waiting_on"] == ["Widget.Missing"]
    described = manager.describe("widget.a")
    assert described["aliases"] == ["widget.a"]
    assert described["config"] == {"color": False, "store": True}
    assert described["plugins"]["recording"]["metadata"] == {"builds": [1]}
    with pytest.raises(KeyError):
        manager.describe("Nope")


def test_reset_discards_definitions_but_keeps_plugins():
    manager = ClassManager().plug("recording")
    manager.define("Widget.A", alias="widget.a")
    manager.set_platform("phone")
    manager.reset()
    assert manager.get_node("Widget.A") is None
    assert manager.errors() == ()
    assert manager.environment.platforms == frozenset({"desktop"})
    assert manager.iter_plugins()[0].name == "recording"
    manager.define("Widget.A")
    assert manager.create("Widget.A").path == "Widget.A"


def test_manager_options_are_merged_with_defaults():
    manager = ClassManager(platform=["tablet", "android"], width=800)
    assert manager.environment.platforms == frozenset({"tablet", "android"})
    assert manager.environment.state == {"width": 800, "height": 768}
    assert manager.debug is False


def test_module_level_helpers_use_the_default_manager():
    smartclass.reset()
    smartclass.define("Global.Widget", alias="widget.global", config={"n": 1})
    assert smartclass.get_alias("widget.global") == "Global.Widget"
    assert smartclass.create("widget.global", {"n": 2}).get("n") == 2
    assert smartclass.get_manager().get_class("Global.Widget") is not None
    smartclass.reset()
    assert smartclass.get_alias("widget.global") is None
