from __future__ import annotations

import pytest
from pydantic import ValidationError

from hetzner_provisioner.engine.errors import UnresolvedOutputError
from hetzner_provisioner.engine.references import resolve_inputs, strip_refs
from hetzner_provisioner.resources import ExecutionDomain, Ref, ResourceDescriptor, collect_refs


class TestResourceDescriptor:
    def test_defaults(self) -> None:
        d = ResourceDescriptor(id="server", kind="hcloud_server")
        assert d.inputs == {}
        assert d.depends_on == frozenset()
        assert d.domain == ExecutionDomain.LOCAL

    def test_dependencies_merge_explicit_and_referenced(self) -> None:
        d = ResourceDescriptor(
            id="caddy",
            kind="docker_container",
            inputs={"networks": [Ref("net", "name")], "host": Ref("server", "ip")},
            depends_on=frozenset({"caddyfile", "server"}),
        )
        assert d.dependencies() == ["caddyfile", "net", "server"]

    def test_frozen(self) -> None:
        d = ResourceDescriptor(id="a", kind="x")
        with pytest.raises(ValidationError):
            d.kind = "y"  # type: ignore[misc]

    @pytest.mark.parametrize("rid", ["", "Server", "-a", "a b", "a.b"])
    def test_invalid_ids(self, rid: str) -> None:
        with pytest.raises(ValidationError):
            ResourceDescriptor(id=rid, kind="x")

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ResourceDescriptor(id="a", kind="x", extra=1)  # type: ignore[call-arg]


def test_ref_str() -> None:
    assert str(Ref("server", "ipv4_address")) == "${server.ipv4_address}"


def test_collect_refs_nested() -> None:
    value = {"a": [1, {"b": Ref("x", "o")}], "c": (Ref("y", "p"),), "d": "plain"}
    assert collect_refs(value) == [Ref("x", "o"), Ref("y", "p")]


class TestResolveInputs:
    def test_replaces_nested_refs(self) -> None:
        outputs = {"server": {"id": 7, "ipv4_address": "203.0.113.7"}}
        value = {"host": Ref("server", "ipv4_address"), "ids": [Ref("server", "id")], "n": 1}
        assert resolve_inputs(value, outputs) == {
            "host": "203.0.113.7",
            "ids": [7],
            "n": 1,
        }

    def test_does_not_mutate_input(self) -> None:
        value = {"ids": [Ref("server", "id")]}
        resolve_inputs(value, {"server": {"id": 7}})
        assert value == {"ids": [Ref("server", "id")]}

    def test_missing_output(self) -> None:
        with pytest.raises(UnresolvedOutputError, match="'server' has no output 'ip'"):
            resolve_inputs(Ref("server", "ip"), {"server": {"id": 7}})

    def test_missing_resource(self) -> None:
        with pytest.raises(UnresolvedOutputError):
            resolve_inputs([Ref("server", "id")], {})


def test_strip_refs() -> None:
    value = {
        "name": "x",
        "host": Ref("s", "ip"),
        "ids": [1, Ref("s", "id")],
        "nested": {"r": Ref("a", "b")},
    }
    assert strip_refs(value) == {"name": "x", "ids": [1], "nested": {}}
