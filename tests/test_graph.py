"""
Tests for the resource dependency graph.
"""

import pytest

from shipyard.assembly.graph import build_graph, topological_order
from shipyard.errors import (
    CyclicDependencyError,
    DanglingDependencyError,
    DuplicateIDError,
    GraphError,
)
from tests.conftest import k8s, tf


ID_A = "v1:ConfigMap:default:a"
ID_B = "v1:ConfigMap:default:b"
ID_C = "v1:ConfigMap:default:c"


class TestBuildGraph:
    """Test graph construction and validation."""

    def test_empty_graph(self):
        graph = build_graph([])
        assert len(graph) == 0
        assert topological_order(graph) == []

    def test_edges(self):
        graph = build_graph([k8s("a"), k8s("b", [ID_A]), k8s("c", [ID_A, ID_B])])
        assert graph.dependencies(ID_C) == [ID_A, ID_B]
        assert graph.dependents(ID_A) == [ID_B, ID_C]
        assert ID_A in graph
        assert "missing" not in graph
        assert graph.index_of(ID_B) == 1

    def test_duplicate_id(self):
        with pytest.raises(DuplicateIDError) as exc_info:
            build_graph([k8s("a"), k8s("a")])
        assert exc_info.value.resource_id == ID_A

    def test_dangling_dependency(self):
        with pytest.raises(DanglingDependencyError) as exc_info:
            build_graph([k8s("a", ["nope"])])
        assert exc_info.value.resource_id == ID_A
        assert exc_info.value.missing == "nope"

    def test_non_strict_drops_dangling_dependency(self):
        graph = build_graph([k8s("a", ["nope"]), k8s("b", [ID_A])], strict=False)
        assert graph.dependencies(ID_A) == []
        assert topological_order(graph) == [ID_A, ID_B]

    def test_cycle_reported_as_closed_path(self):
        with pytest.raises(CyclicDependencyError) as exc_info:
            build_graph([k8s("a", [ID_B]), k8s("b", [ID_A])])
        assert exc_info.value.cycle == [ID_A, ID_B, ID_A]

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CyclicDependencyError) as exc_info:
            build_graph([k8s("a", [ID_A])])
        assert exc_info.value.cycle == [ID_A, ID_A]

    def test_graph_errors_share_a_base(self):
        with pytest.raises(GraphError):
            build_graph([k8s("a"), k8s("a")])


class TestOrdering:
    """Test apply and destroy order."""

    def test_dependencies_come_first(self):
        graph = build_graph([k8s("c", [ID_B]), k8s("b", [ID_A]), k8s("a")])
        assert topological_order(graph) == [ID_A, ID_B, ID_C]

    def test_ties_broken_by_insertion_order(self):
        graph = build_graph([k8s("b"), k8s("c"), k8s("a")])
        assert topological_order(graph) == [ID_B, ID_C, ID_A]

    def test_order_is_deterministic(self):
        resources = [k8s("c", [ID_A]), k8s("a"), k8s("b", [ID_A])]
        orders = {tuple(topological_order(build_graph(resources))) for _ in range(5)}
        assert orders == {(ID_A, ID_C, ID_B)}

    def test_destroy_order_is_reverse(self):
        graph = build_graph([k8s("a"), k8s("b", [ID_A]), tf("pw")])
        assert graph.destroy_order() == list(reversed(graph.topological_order()))
        assert graph.destroy_order().index(ID_B) < graph.destroy_order().index(ID_A)

    def test_mixed_backends(self):
        password = "hashicorp:random:random_password:pw"
        graph = build_graph([k8s("secret", [password]), tf("pw")])
        assert topological_order(graph) == [password, "v1:ConfigMap:default:secret"]
