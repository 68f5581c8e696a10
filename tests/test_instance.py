"""Tests for instance member scope, rendering and lifecycle."""

import pytest

from smartclass import ClassManager, DestroyedInstance, private
from smartclass.core.instance import InstanceState


def test_private_members_are_visible_only_inside_declaring_class_members():
    @private
    def _secret(self):
        return "secret"

    def reveal(self):
        return self._secret()

    def peek(self):
        return self._secret()

    manager = ClassManager()
    manager.define("Base", {"_secret": _secret, "reveal": reveal})
    manager.define("Child", {"peek": peek}, extend="Base")
    child = manager.create("Child")
    assert child.reveal() == "secret"
    with pytest.raises(AttributeError):
        child._secret()
    with pytest.raises(AttributeError):
        child.peek()


def test_call_parent_reaches_the_next_lower_member():
    def base_describe(self, suffix):
        return f"base{suffix}"

    def mixin_describe(self, suffix):
        return "mixin+" + self.call_parent(suffix)

    def own_describe(self, suffix):
        return "own+" + self.call_parent(suffix)

    manager = ClassManager()
    manager.define("Base", {"describe": base_describe})
    manager.define("Mix", {"describe": mixin_describe}, extend="Base")
    manager.define("Child", {"describe": own_describe}, extend="Base", mixins=["Mix"])
    assert manager.create("Child").describe("!") == "own+mixin+base!"

    def lonely(self):
        return self.call_parent()

    manager.define("Lonely", {"lonely": lonely})
    with pytest.raises(AttributeError):
        manager.create("Lonely").lonely()


def test_member_writes_land_on_the_instance():
    def remember(self, value):
        self.remembered = value
        return self

    manager = ClassManager()
    manager.define("Memo", {"remember": remember})
    memo = manager.create("Memo")
    scope = memo.remember(5)
    assert memo.remembered == 5
    assert scope == memo


def test_plain_values_and_statics_are_exposed():
    manager = ClassManager()
    manager.define("Shape", {"sides": 0}, statics={"unit": "cm"}, inheritableStatics={"family": "shape"})
    manager.define("Square", {"sides": 4}, extend="Shape")
    square = manager.create("Square")
    assert square.sides == 4
    assert square.statics == {"family": "shape"}
    assert square.get_static("family") == "shape"
    assert square.is_instance_of("Shape")
    assert not square.is_instance_of("Circle")


def test_render_uses_callable_tpl_then_compiler_then_html():
    manager = ClassManager(template_compiler=lambda source: lambda data: source.format(**data))
    manager.define("Card", config={"tpl": None, "data": None, "html": None})

    callable_tpl = manager.create("Card", {"tpl": lambda data: f"<b>{data['name']}</b>", "data": {"name": "x"}})
    assert callable_tpl.render() == "<b>x</b>"
    assert callable_tpl.state is InstanceState.RENDERED
    assert callable_tpl.markup == "<b>x</b>"

    compiled = manager.create("Card", {"tpl": "<i>{name}</i>", "data": {"name": "y"}})
    assert compiled.render() == "<i>y</i>"

    html = manager.create("Card", {"html": "<p>static</p>"})
    assert html.render() == "<p>static</p>"
    assert manager.create("Card").render() == ""
    assert html.render(lambda data: "engine") == "engine"


def test_markup_source_without_compiler_is_an_error():
    manager = ClassManager()
    manager.define("Card", config={"tpl": "{name}", "data": {}})
    with pytest.raises(TypeError):
        manager.create("Card").render()


def test_changing_data_rerenders_a_rendered_instance():
    manager = ClassManager()
    manager.define("Label", config={"tpl": lambda data: f"[{data}]", "data": "a"})
    label = manager.create("Label")
    label.set("data", "b")
    assert label.markup is None
    label.render()
    label.set("data", "c")
    assert label.markup == "[c]"


def test_destroy_runs_hook_cascades_to_items_and_is_idempotent():
    destroyed = []

    def on_destroy(self):
        destroyed.append(self.get("name"))

    manager = ClassManager()
    manager.define("Node", {"on_destroy": on_destroy}, xtype="node", config={"name": ""})
    parent = manager.create("Node", {"name": "parent", "items": [{"xtype": "node", "name": "child"}]})
    parent.on("name", lambda change: destroyed.append("listener"))
    parent.destroy()
    parent.destroy()
    assert destroyed == ["parent", "child"]
    assert parent.is_destroyed and parent.items[0].is_destroyed
    with pytest.raises(DestroyedInstance):
        parent.render()
    assert repr(parent) == "<Node instance destroyed>"
