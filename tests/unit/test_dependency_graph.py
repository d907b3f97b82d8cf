"""Tests for the DependencyGraph: registration, cycles, ordering, closure."""

from __future__ import annotations

import pytest

from installforge.core.dependency_graph import (
    CycleDetectedError,
    DependencyGraph,
    DuplicateIdentifierError,
    GraphFrozenError,
    UnknownIdentifierError,
)


@pytest.fixture
def diamond(graph: DependencyGraph, make_target) -> DependencyGraph:
    """top depends on left and right, which both depend on base."""
    for tid in ("base", "left", "right", "top"):
        graph.add_target(make_target(tid))
    graph.add_dependency("left", "base")
    graph.add_dependency("right", "base")
    graph.add_dependency("top", "left")
    graph.add_dependency("top", "right")
    return graph


class TestConstruction:
    def test_add_target(self, graph, make_target):
        graph.add_target(make_target("a"))
        assert "a" in graph
        assert len(graph) == 1
        assert graph.get_target("a").target_id == "a"

    def test_duplicate_id_rejected(self, graph, make_target):
        graph.add_target(make_target("a"))
        with pytest.raises(DuplicateIdentifierError) as exc_info:
            graph.add_target(make_target("a"))
        assert exc_info.value.target_id == "a"
        assert len(graph) == 1

    def test_unknown_dependency_rejected(self, graph, make_target):
        graph.add_target(make_target("a"))
        with pytest.raises(UnknownIdentifierError):
            graph.add_dependency("a", "ghost")
        with pytest.raises(UnknownIdentifierError):
            graph.add_dependency("ghost", "a")

    def test_duplicate_edge_is_ignored(self, graph, make_target):
        graph.add_target(make_target("a"))
        graph.add_target(make_target("b"))
        graph.add_dependency("b", "a")
        graph.add_dependency("b", "a")
        assert graph.get_dependencies("b") == ["a"]
        assert graph.get_direct_dependents("a") == ["b"]

    def test_get_target_unknown(self, graph):
        with pytest.raises(UnknownIdentifierError):
            graph.get_target("nope")


class TestCycles:
    def test_self_edge_is_a_cycle(self, graph, make_target):
        graph.add_target(make_target("a"))
        with pytest.raises(CycleDetectedError):
            graph.add_dependency("a", "a")

    def test_two_node_cycle(self, graph, make_target):
        graph.add_target(make_target("a"))
        graph.add_target(make_target("b"))
        graph.add_dependency("b", "a")
        with pytest.raises(CycleDetectedError) as exc_info:
            graph.add_dependency("a", "b")
        assert exc_info.value.cycle == ["a", "b", "a"]

    def test_rejected_edge_leaves_graph_untouched(self, diamond):
        before = {tid: diamond.get_dependencies(tid) for tid in diamond.target_ids}
        with pytest.raises(CycleDetectedError) as exc_info:
            diamond.add_dependency("base", "top")
        assert "top" in exc_info.value.cycle
        assert {tid: diamond.get_dependencies(tid) for tid in diamond.target_ids} == before
        assert diamond.get_direct_dependents("top") == []

    def test_cycle_message_names_the_path(self, graph, make_target):
        for tid in ("a", "b", "c"):
            graph.add_target(make_target(tid))
        graph.add_dependency("b", "a")
        graph.add_dependency("c", "b")
        with pytest.raises(CycleDetectedError, match="a -> c -> b -> a"):
            graph.add_dependency("a", "c")


class TestQueries:
    def test_topological_order(self, diamond):
        order = diamond.topological_order()
        assert order == ["base", "left", "right", "top"]

    def test_ties_broken_by_insertion_order(self, graph, make_target):
        for tid in ("z", "y", "x"):
            graph.add_target(make_target(tid))
        assert graph.topological_order() == ["z", "y", "x"]

    def test_dependencies_precede_dependents(self, graph, make_target):
        for tid in ("install", "image", "binary"):
            graph.add_target(make_target(tid))
        graph.add_dependency("install", "image")
        graph.add_dependency("image", "binary")
        order = graph.topological_order()
        assert order.index("binary") < order.index("image") < order.index("install")

    def test_topological_order_of_subset(self, diamond):
        assert diamond.topological_order({"top", "left"}) == ["left", "top"]

    def test_transitive_dependents(self, diamond):
        assert set(diamond.get_dependents("base")) == {"left", "right", "top"}
        assert diamond.get_dependents("top") == []

    def test_closure(self, diamond):
        assert diamond.closure(["left"]) == {"left", "base"}
        assert diamond.closure(["top"]) == {"base", "left", "right", "top"}

    def test_closure_unknown(self, diamond):
        with pytest.raises(UnknownIdentifierError):
            diamond.closure(["nope"])

    def test_iteration_in_insertion_order(self, diamond):
        assert [t.target_id for t in diamond] == ["base", "left", "right", "top"]


class TestFreeze:
    def test_frozen_graph_rejects_mutation(self, diamond, make_target):
        diamond.freeze()
        assert diamond.frozen
        with pytest.raises(GraphFrozenError):
            diamond.add_target(make_target("late"))
        with pytest.raises(GraphFrozenError):
            diamond.add_dependency("top", "base")

    def test_frozen_graph_still_answers_queries(self, diamond):
        diamond.freeze()
        assert diamond.topological_order()[0] == "base"
