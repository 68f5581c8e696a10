"""Tests for queued overrides, re-finalization and propagation."""

from smartclass import ClassManager, ConfigSpec


def test_override_after_instance_exists_affects_only_new_instances():
    manager = ClassManager()
    manager.define("Widget.A", alias="widget.a", config={"color": "red"})
    existing = manager.create("widget.a")

    applied = manager.override("Widget.A", config={"color": "green"})
    assert applied is True
    assert existing.get("color") == "red"
    assert manager.create("Widget.A").get("color") == "green"
    assert manager.get_class("Widget.A").build == 2


def test_existing_instances_see_overridden_members():
    manager = ClassManager()
    manager.define("Widget.A", {"label": lambda self: "old"})
    widget = manager.create("Widget.A")
    manager.override("Widget.A", {"label": lambda self: "new"})
    assert widget.label() == "new"


def test_override_before_definition_is_held_and_applied_at_first_build():
    manager = ClassManager()
    assert manager.override("Widget.Late", config={"size": 2}) is False
    assert len(manager.overrides.held("Widget.Late")) == 1
    node = manager.define("Widget.Late", config={"size": 1})
    assert node.is_finalized
    assert node.descriptor.build == 1
    assert manager.create("Widget.Late").get("size") == 2
    assert manager.overrides.held("Widget.Late") == ()


def test_override_of_pending_target_is_folded_into_its_build():
    manager = ClassManager()
    node = manager.define("Widget.B", extend="Widget.Base", config={"size": 1})
    manager.override("Widget.B", config={"size": 3})
    assert node.is_pending and len(node.overrides) == 1
    manager.define("Widget.Base")
    assert manager.create("Widget.B").get("size") == 3


def test_overrides_apply_in_arrival_order_last_wins():
    manager = ClassManager()
    manager.define("Widget.A", {"name": lambda self: "own"})
    manager.override("Widget.A", {"name": lambda self: "first"})
    manager.override("Widget.A", {"name": lambda self: "second"})
    widget = manager.create("Widget.A")
    assert widget.name() == "second"
    assert [m.origin for m in widget.descriptor.member_chain["name"]] == ["own", "override", "override"]


def test_override_propagates_to_finalized_descendants():
    manager = ClassManager()
    manager.define("Base", {"greet": lambda self: "hello"})
    manager.define("Mid", extend="Base")
    manager.define("Leaf", extend="Mid")
    manager.define("Mixer", mixins=["Base"])
    manager.override("Base", {"greet": lambda self: "patched"})
    assert manager.create("Leaf").greet() == "patched"
    assert manager.create("Mixer").greet() == "patched"
    assert manager.get_class("Leaf").build == 2


def test_override_wins_over_inherited_and_mixin_members():
    manager = ClassManager()
    manager.define("Base", {"speak": lambda self: "base"})
    manager.define("Mix", {"speak": lambda self: "mix"})
    manager.define("Child", extend="Base", mixins=["Mix"])
    manager.override("Child", {"speak": lambda self: "override"})
    assert manager.create("Child").speak() == "override"


def test_override_directive_in_a_definition_body_targets_another_class():
    manager = ClassManager()
    manager.define("Widget.A", config={"color": "red"})
    result = manager.define("Patch.A", override="Widget.A", config={"color": "blue"})
    assert result is manager.get_node("Widget.A")
    assert "Patch.A" not in manager.registry
    assert manager.create("Widget.A").get("color") == "blue"


def test_overrides_directive_queues_one_override_per_target():
    manager = ClassManager()
    manager.define("Widget.A", config={"color": "red"})
    manager.define(
        "Theme.Dark",
        overrides={"Widget.A": {"config": {"color": "black"}}, "Widget.B": {"config": {"color": "grey"}}},
    )
    assert manager.create("Widget.A").get("color") == "black"
    manager.define("Widget.B", config={"color": "white"})
    assert manager.create("Widget.B").get("color") == "grey"


def test_override_requires_hold_the_override_until_finalized():
    manager = ClassManager()
    manager.define("Widget.A", config={"color": "red"})
    applied = manager.override("Widget.A", requires="Theme.Palette", config={"color": "teal"})
    assert applied is False
    assert len(manager.overrides.blocked()) == 1
    assert manager.create("Widget.A").get("color") == "red"
    manager.define("Theme.Palette")
    assert manager.overrides.blocked() == ()
    assert manager.create("Widget.A").get("color") == "teal"


def test_failed_override_is_dropped_and_the_previous_build_stays_live():
    def broken_icon():
        raise RuntimeError("icon store offline")

    manager = ClassManager()
    manager.define("Widget.A", config={"color": "red"})
    assert manager.override("Widget.A", cachedConfig={"icon": ConfigSpec(factory=broken_icon)}) is False
    node = manager.get_node("Widget.A")
    assert node.is_finalized and node.error is None
    assert node.overrides == [] and node.descriptor.build == 1
    assert manager.errors()[-1].kind == "InvalidConfigValue"

    assert manager.override("Widget.A", config={"color": "green"}) is True
    assert manager.create("Widget.A").get("color") == "green"

    manager.define("Widget.A", config={"color": "blue", "size": 1}, replace=True)
    assert manager.get_node("Widget.A").is_finalized
    widget = manager.create("Widget.A")
    assert widget.get("color") == "green" and widget.get("size") == 1
