"""Tests for admission, readiness, cycles and propagation."""

import pytest

from smartclass import ClassManager, CyclicDependency, DuplicateDefinition, NotReady
from smartclass.core.errors import InternalConsistencyError
from smartclass.core.registry import NodeState


def test_definition_waits_for_hard_dependencies_then_finalizes():
    manager = ClassManager()
    child = manager.define("App.Child", extend="App.Base", requires="App.Util")
    assert child.state is NodeState.PENDING
    assert child.unresolved == {"App.Base", "App.Util"}

    manager.define("App.Base")
    assert child.is_pending
    assert manager.resolver.waiting_on("App.Util") == ("App.Child",)

    manager.define("App.Util")
    assert child.is_finalized
    assert child.descriptor.superclass == "App.Base"


def test_uses_never_blocks_finalization():
    manager = ClassManager()
    node = manager.define("App.A", uses=["App.NeverDefined"])
    assert node.is_finalized
    assert node.descriptor.uses == ("App.NeverDefined",)


def test_chain_finalizes_in_dependency_order_regardless_of_arrival():
    manager = ClassManager()
    manager.define("App.C", extend="App.B")
    manager.define("App.B", extend="App.A")
    manager.define("App.A")
    order = [node.path for node in manager.registry.finalized()]
    assert order == ["App.A", "App.B", "App.C"]
    assert manager.get_class("App.C").ancestry == ("App.A", "App.B")


def test_alternate_class_name_satisfies_dependents():
    manager = ClassManager()
    dependent = manager.define("App.Dependent", requires="App.LegacyName")
    manager.define("App.Modern", alternateClassName="App.LegacyName")
    assert dependent.is_finalized


def test_cycle_is_reported_once_and_leaves_nodes_pending():
    manager = ClassManager()
    a = manager.define("App.A", requires="App.B")
    b = manager.define("App.B", requires="App.A")
    cycles = [error for error in manager.errors() if isinstance(error, CyclicDependency)]
    assert len(cycles) == 1
    assert cycles[0].cycle == ("App.B", "App.A", "App.B")
    assert a.is_pending and b.is_pending
    assert a.error is cycles[0] and b.error is cycles[0]


def test_transitive_cycle_is_detected():
    manager = ClassManager()
    manager.define("App.A", extend="App.B")
    manager.define("App.B", mixins=["App.C"])
    manager.define("App.C", requires="App.A")
    [cycle] = [error for error in manager.errors() if error.kind == "CyclicDependency"]
    assert set(cycle.cycle) == {"App.A", "App.B", "App.C"}
    assert cycle.cycle[0] == cycle.cycle[-1] == "App.C"


def test_corrected_redefinition_breaks_the_cycle():
    manager = ClassManager()
    a = manager.define("App.A", requires="App.B")
    manager.define("App.B", requires="App.A")
    fixed = manager.define("App.B", replace=True)
    assert fixed.is_finalized
    assert a.is_finalized
    assert a.error is None


def test_duplicate_definition_is_reported_and_raised():
    manager = ClassManager()
    manager.define("App.A")
    with pytest.raises(DuplicateDefinition):
        manager.define("App.A")
    assert manager.errors()[-1].kind == "DuplicateDefinition"


def test_builder_failure_stays_local_to_the_node():
    manager = ClassManager()
    broken = manager.define("App.Broken", config={"a": 1}, platformConfig={"phone": {"b": 2}})
    ok = manager.define("App.Ok")
    assert broken.is_pending
    assert broken.error.kind == "InvalidDirective"
    assert ok.is_finalized


def test_finalizing_node_is_never_ready_and_rejects_reentry():
    manager = ClassManager()
    node = manager.define("App.A")
    node.state = NodeState.FINALIZING
    with pytest.raises(InternalConsistencyError):
        manager.builder.finalize(node)
    node.state = NodeState.FINALIZED


def test_builder_refuses_nodes_with_unresolved_dependencies():
    manager = ClassManager()
    node = manager.define("App.A", extend="App.Missing")
    with pytest.raises(NotReady):
        manager.builder.finalize(node)


def test_replacing_a_finalized_base_rebuilds_descendants():
    manager = ClassManager()
    manager.define("App.Base", {"greet": lambda self: "v1"})
    child = manager.define("App.Child", extend="App.Base")
    first_build = child.descriptor.build
    manager.define("App.Base", {"greet": lambda self: "v2"}, replace=True)
    assert child.descriptor.build == first_build + 1
    assert manager.create("App.Child").greet() == "v2"


def test_failing_rule_does_not_strand_waiting_classes():
    manager = ClassManager(width=800)
    manager.update_environment(height=0)
    manager.define("App.Left", extend="App.Base")
    manager.define("App.Right", extend="App.Base")
    manager.define("App.Base", config={"title": ""}, responsiveConfig={"width / height > 1": {"title": "wide"}})
    assert all(manager.get_node(path).is_finalized for path in ("App.Base", "App.Left", "App.Right"))
    assert manager.create("App.Left").get("title") == ""
    assert manager.errors() == ()


def test_unexpected_builder_exception_is_attached_and_reported(monkeypatch):
    manager = ClassManager()

    def explode(node):
        raise RuntimeError("boom")

    monkeypatch.setattr(manager.builder, "_build", explode)
    node = manager.define("App.A")
    assert node.is_pending
    assert node.error.kind == "InvalidDirective"
    assert isinstance(node.error.__cause__, RuntimeError)
    assert manager.errors() == (node.error,)
