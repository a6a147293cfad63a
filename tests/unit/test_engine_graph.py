from __future__ import annotations

import pytest

from hetzner_provisioner.engine.errors import (
    DanglingReferenceError,
    DependencyCycleError,
    DuplicateResourceError,
)
from hetzner_provisioner.engine.graph import DependencyGraph, build_graph
from hetzner_provisioner.resources import Ref, ResourceDescriptor


def _d(rid: str, *deps: str, **inputs: object) -> ResourceDescriptor:
    return ResourceDescriptor(id=rid, kind="dummy", inputs=inputs, depends_on=frozenset(deps))


def test_topological_order_deterministic() -> None:
    graph = DependencyGraph(nodes=["c", "a", "b"], dependencies={"b": ["a"], "c": ["a"]})
    assert graph.topological_order() == ["a", "b", "c"]


def test_ties_broken_by_ascending_id() -> None:
    graph = DependencyGraph(nodes=["zeta", "alpha", "mid"], dependencies={})
    assert graph.topological_order() == ["alpha", "mid", "zeta"]


def test_dependencies_override_id_order() -> None:
    graph = DependencyGraph(nodes=["z", "b", "y"], dependencies={"b": ["z"]})
    assert graph.topological_order() == ["y", "z", "b"]


def test_cycle_detection_names_members_only() -> None:
    graph = DependencyGraph(
        nodes=["a", "b", "c", "d"],
        dependencies={"a": ["b"], "b": ["a"], "c": ["a"], "d": []},
    )
    with pytest.raises(DependencyCycleError) as exc_info:
        graph.topological_order()
    assert exc_info.value.resource_ids == ["a", "b"]


def test_self_reference_is_a_cycle() -> None:
    graph = DependencyGraph(nodes=["a"], dependencies={"a": ["a"]})
    with pytest.raises(DependencyCycleError) as exc_info:
        graph.topological_order()
    assert exc_info.value.resource_ids == ["a"]


def test_dangling_dependency() -> None:
    with pytest.raises(DanglingReferenceError) as exc_info:
        DependencyGraph(nodes=["a"], dependencies={"a": ["ghost"]})
    assert exc_info.value.references == [("a", "ghost")]


def test_descendants_are_transitive() -> None:
    graph = DependencyGraph(
        nodes=["a", "b", "c", "d"], dependencies={"b": ["a"], "c": ["b"], "d": []}
    )
    assert graph.descendants("a") == {"b", "c"}
    assert graph.descendants("d") == set()


class TestBuildGraph:
    def test_references_become_edges(self) -> None:
        graph = build_graph(
            [
                _d("dns", host=Ref("server", "ipv4_address")),
                _d("server", keys=[Ref("key", "id")]),
                _d("key"),
            ]
        )
        assert graph.order == ["key", "server", "dns"]
        assert graph.dependencies("dns") == ["server"]
        assert graph.dependents("key") == ["server"]

    def test_explicit_dependencies_become_edges(self) -> None:
        graph = build_graph([_d("container", "caddyfile"), _d("caddyfile")])
        assert graph.order == ["caddyfile", "container"]

    def test_reverse_order(self) -> None:
        graph = build_graph([_d("b", "a"), _d("a")])
        assert graph.reverse_order() == ["b", "a"]

    def test_every_resource_after_its_dependencies(self) -> None:
        descriptors = [
            _d("app", "net", "img"),
            _d("img", "ready"),
            _d("net", "ready"),
            _d("ready", host=Ref("server", "ip")),
            _d("server", "key", "fw"),
            _d("fw"),
            _d("key"),
        ]
        graph = build_graph(descriptors)
        position = {rid: i for i, rid in enumerate(graph.order)}
        for d in descriptors:
            for dep in d.dependencies():
                assert position[dep] < position[d.id]

    def test_duplicate_id(self) -> None:
        with pytest.raises(DuplicateResourceError):
            build_graph([_d("a"), _d("a")])

    def test_dangling_reference(self) -> None:
        with pytest.raises(DanglingReferenceError, match="dns -> server"):
            build_graph([_d("dns", host=Ref("server", "ipv4_address"))])

    def test_cycle_through_references(self) -> None:
        with pytest.raises(DependencyCycleError):
            build_graph([_d("a", x=Ref("b", "out")), _d("b", x=Ref("a", "out"))])

    def test_resource_graph_lookup(self) -> None:
        graph = build_graph([_d("a")])
        assert "a" in graph
        assert "b" not in graph
        assert len(graph) == 1
        assert graph["a"].kind == "dummy"
