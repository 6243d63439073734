"""Tests for the dependency graph."""

from __future__ import annotations

from declgraph.graph import DependencyGraph
from declgraph.models import DiscoveredDependency, DiscoverySnapshot, ModuleAnalysis


def _snapshot(key: str, *deps: str) -> DiscoverySnapshot:
    return DiscoverySnapshot(
        file_path=key,
        normalized_key=key,
        analyzer_id="regex",
        signature="sig",
        created_at_ms=0,
        analysis=ModuleAnalysis(file_path=key, signature="sig"),
        dependencies=tuple(DiscoveredDependency(f"./{dep}", dep, False) for dep in deps)
        + (DiscoveredDependency("react", None, True),),
    )


def test_build_from_snapshots_keeps_both_directions() -> None:
    graph = DependencyGraph.build([_snapshot("/a", "/b"), _snapshot("/b", "/c"), _snapshot("/c")])

    assert graph.dependencies_of("/a") == {"/b"}
    assert graph.dependents_of("/c") == {"/b"}
    assert graph.files == {"/a", "/b", "/c"}
    assert graph.edge_count == 2
    for source, targets in graph.forward.items():
        for target in targets:
            assert source in graph.reverse[target]


def test_edges_to_unknown_files_are_kept() -> None:
    graph = DependencyGraph(["/a"], {"/a": ["/ghost", "/a"]})

    assert graph.dependencies_of("/a") == {"/ghost"}
    assert graph.nodes == {"/a", "/ghost"}
    assert graph.files == {"/a"}


def test_affected_by_walks_reverse_edges() -> None:
    graph = DependencyGraph(
        ["/a", "/b", "/c", "/d"],
        {"/a": ["/b"], "/b": ["/c"], "/d": []},
    )

    assert graph.affected_by(["/c"]) == {"/a", "/b", "/c"}
    assert graph.affected_by(["/d"]) == {"/d"}
    assert graph.affected_by([]) == set()


def test_topological_order_is_dependency_first() -> None:
    graph = DependencyGraph(
        ["/app", "/lib", "/util", "/z"],
        {"/app": ["/lib", "/util"], "/lib": ["/util"]},
    )

    order, cycles = graph.topological_order()

    assert order.index("/util") < order.index("/lib") < order.index("/app")
    assert set(order) == {"/app", "/lib", "/util", "/z"}
    assert cycles == []


def test_cycles_are_grouped_and_reported() -> None:
    graph = DependencyGraph(
        ["/a", "/b", "/c"],
        {"/a": ["/b"], "/b": ["/a"], "/c": ["/a"]},
    )

    order, cycles = graph.topological_order()

    assert order == ["/a", "/b", "/c"]
    assert cycles == [("/a", "/b")]


def test_topological_order_can_be_restricted() -> None:
    graph = DependencyGraph(["/a", "/b", "/c"], {"/a": ["/b"], "/b": ["/c"]})

    order, _ = graph.topological_order(["/a", "/c"])

    assert order == ["/a", "/c"] or order == ["/c", "/a"]
    assert set(order) == {"/a", "/c"}


def test_without_drops_nodes_and_edges() -> None:
    graph = DependencyGraph(["/a", "/b", "/c"], {"/a": ["/b"], "/b": ["/c"]})

    smaller = graph.without(["/b"])

    assert smaller.files == {"/a", "/c"}
    assert smaller.dependencies_of("/a") == frozenset()
    assert smaller.dependents_of("/c") == frozenset()
    assert graph.dependencies_of("/a") == {"/b"}


def test_empty_graph() -> None:
    graph = DependencyGraph.empty()

    assert graph.topological_order() == ([], [])
    assert graph.edge_count == 0
