"""
Example showing how to declare classes, overrides and plugins with SmartClass.
"""

from __future__ import annotations

from smartclass import ClassManager, ConfigSpec, declare, private

manager = ClassManager(platform="desktop", width=1280).plug("logging").plug("pydantic")

# Declared before its superclass and mixin exist; finalized once both are.
manager.define(
    "App.view.Grid",
    {"columns": ("id", "name")},
    extend="App.view.Panel",
    mixins=["App.mixin.Badged"],
    config={"tpl": lambda data: f"<table>{len(data or [])} rows</table>", "data": None},
)


@declare("App.view.Panel", manager=manager, alias="widget.panel", xtype="panel")
class Panel:
    config = {
        "title": "",
        "width": ConfigSpec(default=400, type=int),
    }
    platformConfig = {"phone": {"width": 320}}
    responsiveConfig = {"width < 800": {"title": "compact"}}

    def summary(self):
        return f"{self.get('title')} ({self.get('width')}px)"

    def apply_title(self, value, old):
        return value.strip()


@declare("App.mixin.Badged", manager=manager)
class Badged:
    def summary(self):
        return f"{self.call_parent()} [{self._badge()}]"

    @private
    def _badge(self):
        return "new"


manager.override("App.view.Panel", config={"title": "Untitled"})


if __name__ == "__main__":
    grid = manager.create({"xclass": "App.view.Grid", "width": "640", "data": [1, 2]})
    print(grid.summary())
    print(grid.render())
    manager.set_platform("phone")
    print(manager.create("panel").get("width"))
    print(manager.describe("widget.panel")["plugins"])
