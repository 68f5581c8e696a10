"""Tests for the class-body decorators."""

import logging

import pytest

import smartclass
from smartclass import ClassManager, declare, deprecated, private


def test_declare_reads_class_body_into_directives():
    manager = ClassManager()

    @declare("Shop.Item", manager=manager, alias="widget.item")
    class Item:
        config = {"price": 0}

        def total(self, quantity):
            return self.get("price") * quantity

        @staticmethod
        def currency():
            return "EUR"

    assert Item.__smartclass_path__ == "Shop.Item"
    item = manager.create("widget.item", {"price": 3})
    assert item.total(2) == 6
    assert item.get_static("currency")() == "EUR"
    assert "currency" not in manager.describe("Shop.Item")["members"]


def test_declare_supports_extend_and_call_parent():
    manager = ClassManager()

    @declare("Shop.Base", manager=manager)
    class Base:
        def label(self):
            return "base"

    @declare("Shop.Special", manager=manager, extend="Shop.Base")
    class Special:
        def label(self):
            return "special/" + self.call_parent()

    assert manager.create("Shop.Special").label() == "special/base"


def test_private_and_deprecated_markers():
    manager = ClassManager()

    @declare("Shop.Cart", manager=manager)
    class Cart:
        @private
        def _discount(self):
            return 5

        def price(self):
            return 100 - self._discount()

        @deprecated("use price()")
        def cost(self):
            return self.price()

    cart = manager.create("Shop.Cart")
    assert cart.price() == 95
    with pytest.raises(AttributeError):
        cart._discount()
    assert manager.describe("Shop.Cart")["deprecated"] == {"cost": "use price()"}


def test_deprecated_marker_logs_on_use(caplog):
    manager = ClassManager()

    @declare("Shop.Legacy", manager=manager)
    class Legacy:
        @deprecated()
        def old(self):
            return "old"

    legacy = manager.create("Shop.Legacy")
    with caplog.at_level(logging.WARNING, logger="smartclass"):
        assert legacy.old() == "old"
    assert caplog.messages == ["Shop.Legacy.old is deprecated: deprecated"]


def test_declare_without_manager_uses_the_default_one():
    smartclass.reset()

    @declare("Global.Thing", xtype="thing")
    class Thing:
        config = {"size": 1}

    assert smartclass.create({"xtype": "thing", "size": 4}).get("size") == 4
    smartclass.reset()
