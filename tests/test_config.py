"""Tests for config defaults, conditional rules and the setter pipeline."""

import pytest

from smartclass import ClassManager, ConfigChange, ConfigSpec, DestroyedInstance, InvalidConfigValue


def _color_classes(manager):
    manager.define("Base", config={"color": "red"})
    manager.define("Child", extend="Base", platformConfig={"phone": {"color": "blue"}})


def test_platform_rule_applies_on_phone_only():
    phone = ClassManager(platform="phone")
    _color_classes(phone)
    assert phone.create("Child").get("color") == "blue"
    assert phone.create("Base").get("color") == "red"

    desktop = ClassManager(platform="desktop")
    _color_classes(desktop)
    assert desktop.create("Child").get("color") == "red"


def test_environment_change_after_finalization_is_seen_at_construction():
    manager = ClassManager()
    _color_classes(manager)
    assert manager.create("Child").get("color") == "red"
    manager.set_platform("phone")
    assert manager.create("Child").get("color") == "blue"
    manager.set_platform("desktop")
    assert manager.create("Child").get("color") == "red"


def test_later_matching_rule_wins_and_responsive_follows_platform():
    manager = ClassManager(platform="phone,ios", width=400, height=800)
    manager.define(
        "Panel",
        config={"layout": "hbox", "padding": 10},
        platformConfig={"phone": {"layout": "vbox"}, "ios": {"layout": "card"}},
        responsiveConfig={"width < 600": {"padding": 2, "layout": "fit"}, "landscape": {"padding": 50}},
    )
    panel = manager.create("Panel")
    assert panel.get("layout") == "fit"
    assert panel.get("padding") == 2
    manager.update_environment(width=1200)
    wide = manager.create("Panel")
    assert wide.get("layout") == "card"
    assert wide.get("padding") == 50


def test_rules_for_undeclared_keys_fail_finalization():
    manager = ClassManager()
    node = manager.define("Panel", config={"a": 1}, responsiveConfig={"wide": {"b": 2}})
    assert node.is_pending
    assert node.error.kind == "InvalidDirective"


def test_config_defaults_are_fresh_per_instance_and_cached_config_is_shared():
    manager = ClassManager()
    calls = []

    def make_store():
        calls.append(1)
        return {"hits": 0}

    manager.define(
        "Widget",
        config={"tags": [], "state": ConfigSpec(factory=dict)},
        cachedConfig={"store": ConfigSpec(factory=make_store)},
    )
    first = manager.create("Widget")
    second = manager.create("Widget")
    first.get("tags").append("x")
    assert second.get("tags") == []
    assert first.get("state") is not second.get("state")
    assert first.get("store") is second.get("store")
    assert len(calls) == 1
    own = manager.create("Widget", {"store": {"hits": 9}})
    assert own.get("store") == {"hits": 9}


def test_accessor_pairs_are_generated_per_key():
    manager = ClassManager()
    manager.define("Widget", config={"title": "untitled"})
    widget = manager.create("Widget", {"title": "hello"})
    assert widget.get_title() == "hello"
    widget.set_title("bye")
    assert widget.get("title") == "bye"
    assert widget.get_config() == {"title": "bye"}
    accessor = widget.descriptor.accessors["title"]
    assert accessor.default_resolver(widget.descriptor) == "untitled"
    with pytest.raises(KeyError):
        widget.get("missing")


def test_setter_pipeline_runs_apply_update_and_listeners_in_order():
    events = []

    def apply_size(self, value, old):
        events.append(("apply", value, old))
        return int(value)

    def update_size(self, value, old):
        events.append(("update", value, old))

    manager = ClassManager()
    manager.define("Box", {"apply_size": apply_size, "update_size": update_size}, config={"size": 1})
    box = manager.create("Box")
    box.on("size", lambda change: events.append(("listener", change.old_value, change.new_value)))
    box.on("*", lambda change: events.append(("any", change.key)))

    box.set("size", "5")
    assert box.get("size") == 5
    assert events == [
        ("apply", "5", 1),
        ("update", 5, 1),
        ("listener", 1, 5),
        ("any", "size"),
    ]

    events.clear()
    box.set("size", 5)
    assert events == [("apply", 5, 5)]


def test_unregistered_listener_is_not_called():
    seen = []
    manager = ClassManager()
    manager.define("Box", config={"size": 1})
    box = manager.create("Box")

    def listener(change):
        seen.append(change)

    box.on("size", listener)
    box.un("size", listener)
    box.set("size", 2)
    assert seen == []


def test_validator_rejection_is_local_to_the_call():
    manager = ClassManager()
    manager.define(
        "Box",
        config={
            "size": ConfigSpec(default=1, validator=lambda value: value > 0),
            "label": "box",
        },
    )
    box = manager.create("Box")
    with pytest.raises(InvalidConfigValue) as excinfo:
        box.set("size", -1)
    assert excinfo.value.key == "size"
    assert box.get("size") == 1
    box.set("label", "still works")
    assert box.get("label") == "still works"
    assert manager.errors()[-1].kind == "InvalidConfigValue"

    with pytest.raises(InvalidConfigValue):
        manager.create("Box", {"size": 0})


def test_redeclaring_a_key_keeps_the_validator():
    manager = ClassManager()
    manager.define("Base", config={"size": ConfigSpec(default=1, validator=lambda value: value > 0)})
    manager.define("Child", extend="Base", config={"size": 10})
    child = manager.create("Child")
    assert child.get("size") == 10
    with pytest.raises(InvalidConfigValue):
        child.set("size", -5)


def test_destroyed_instance_keeps_last_value_and_rejects_sets():
    manager = ClassManager()
    manager.define("Box", config={"size": 1})
    box = manager.create("Box", {"size": 3})
    box.destroy()
    assert box.get("size") == 3
    with pytest.raises(DestroyedInstance):
        box.set("size", 4)


def test_change_event_payload():
    manager = ClassManager()
    manager.define("Box", config={"size": 1})
    box = manager.create("Box")
    received = []
    box.on("size", received.append)
    box.set("size", 2)
    assert received == [ConfigChange(key="size", old_value=1, new_value=2, instance=box)]


def test_validator_raising_any_exception_is_reported_as_invalid_value():
    def known_kind(value):
        return {"a": True, "b": True}[value]

    manager = ClassManager()
    manager.define("Box", config={"kind": ConfigSpec(default="a", validator=known_kind)})
    box = manager.create("Box")
    box.set("kind", "b")
    with pytest.raises(InvalidConfigValue) as excinfo:
        box.set("kind", "zzz")
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert box.get("kind") == "b"
    assert manager.errors()[-1] is excinfo.value
