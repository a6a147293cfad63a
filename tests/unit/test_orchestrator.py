from __future__ import annotations

import threading
from typing import Any
from unittest.mock import MagicMock

import pytest
from pydantic import BaseModel, ConfigDict

from hetzner_provisioner.engine import (
    RUN_CANCELLED,
    UPSTREAM_FAILURE,
    Orchestrator,
    RemoteConnectionError,
    ResourceHandler,
    ResourceStatus,
    ResourceTypeRegistry,
    UnknownResourceTypeError,
    build_graph,
)
from hetzner_provisioner.engine.types import ResourceResult
from hetzner_provisioner.resources import Ref, ResourceDescriptor


class DummyInputs(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str


class InMemoryHandler(ResourceHandler[DummyInputs]):
    inputs_model = DummyInputs

    def __init__(
        self,
        *,
        fail: set[str] | None = None,
        unreachable: set[str] | None = None,
        existing: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail = fail or set()
        self.unreachable = unreachable or set()
        self.existing = existing or {}
        self.received: dict[str, Any] = {}
        self._lock = threading.Lock()

    def _record(self, op: str, name: str) -> None:
        with self._lock:
            self.calls.append((op, name))

    def read(self, ctx: Any, inputs: DummyInputs) -> dict[str, Any] | None:
        _ = ctx
        return self.existing.get(inputs.name)

    def create(self, ctx: Any, inputs: DummyInputs) -> dict[str, Any]:
        _ = ctx
        self._record("create", inputs.name)
        if inputs.name in self.fail:
            raise RuntimeError(f"boom {inputs.name}")
        if inputs.name in self.unreachable:
            raise RemoteConnectionError("203.0.113.7", "Connection refused", attempts=30)
        return {"id": f"{inputs.name}-id", "inputs": inputs.model_dump()}

    def update(self, ctx: Any, inputs: DummyInputs, current: dict[str, Any]) -> dict[str, Any]:
        _ = ctx
        self._record("update", inputs.name)
        return current

    def delete(self, ctx: Any, inputs: dict[str, Any]) -> None:
        _ = ctx
        self._record("delete", inputs["name"])
        self.received[inputs["name"]] = inputs
        if inputs["name"] in self.fail:
            raise RuntimeError(f"cannot delete {inputs['name']}")


def _d(rid: str, *deps: str, **inputs: Any) -> ResourceDescriptor:
    return ResourceDescriptor(
        id=rid, kind="dummy", inputs={"name": rid, **inputs}, depends_on=frozenset(deps)
    )


def _orchestrator(handler: ResourceHandler[Any], **kwargs: Any) -> Orchestrator:
    registry = ResourceTypeRegistry()
    registry.register("dummy", handler)
    return Orchestrator(registry=registry, ctx=MagicMock(), **kwargs)


def _stack() -> list[ResourceDescriptor]:
    return [
        _d("ssh_key"),
        _d("firewall"),
        _d("server", keys=[Ref("ssh_key", "id")]),
        _d("attachment", firewall=Ref("firewall", "id"), server=Ref("server", "id")),
        _d("dns", "server", content=Ref("server", "id")),
    ]


class TestRun:
    def test_creates_in_dependency_order(self) -> None:
        handler = InMemoryHandler()
        result = _orchestrator(handler).run(build_graph(_stack()))

        assert result.succeeded
        assert result.order == ["firewall", "ssh_key", "server", "attachment", "dns"]
        assert handler.calls == [("create", rid) for rid in result.order]
        assert all(r.status == ResourceStatus.CREATED for r in result.results.values())

    def test_references_resolved_from_outputs(self) -> None:
        handler = InMemoryHandler()
        result = _orchestrator(handler).run(build_graph(_stack()))

        assert result["server"].outputs["inputs"]["keys"] == ["ssh_key-id"]
        assert result["attachment"].outputs["inputs"]["firewall"] == "firewall-id"
        assert result.outputs()["dns"]["inputs"]["content"] == "server-id"

    def test_failure_skips_descendants_only(self) -> None:
        handler = InMemoryHandler(fail={"server"})
        result = _orchestrator(handler).run(build_graph(_stack()))

        assert not result.succeeded
        assert result.failed_ids() == ["server"]
        assert result["server"].error == "boom server"
        assert result["server"].error_type == "AdapterError"
        for rid in ("attachment", "dns"):
            assert result[rid].status == ResourceStatus.SKIPPED
            assert result[rid].reason == UPSTREAM_FAILURE
            assert result[rid].upstream == "server"
            assert ("create", rid) not in handler.calls
        assert result["firewall"].status == ResourceStatus.CREATED
        assert result["ssh_key"].status == ResourceStatus.CREATED

    def test_connection_failure_keeps_its_type(self) -> None:
        handler = InMemoryHandler(unreachable={"server"})
        result = _orchestrator(handler).run(build_graph(_stack()))

        assert result.failed_ids() == ["server"]
        assert result["server"].error_type == "RemoteConnectionError"
        assert "203.0.113.7" in result["server"].error
        for rid in ("attachment", "dns"):
            assert result[rid].status == ResourceStatus.SKIPPED
            assert result[rid].upstream == "server"
            assert ("create", rid) not in handler.calls
        assert result["firewall"].status == ResourceStatus.CREATED
        assert result["ssh_key"].status == ResourceStatus.CREATED

    def test_skip_propagates_transitively_with_root_cause(self) -> None:
        handler = InMemoryHandler(fail={"a"})
        graph = build_graph([_d("a"), _d("b", "a"), _d("c", "b"), _d("d", x=Ref("c", "id"))])
        result = _orchestrator(handler).run(graph)

        assert result.skipped_ids() == ["b", "c", "d"]
        assert {result[rid].upstream for rid in ("b", "c", "d")} == {"a"}
        assert handler.calls == [("create", "a")]

    def test_existing_resource_is_reconciled_not_created(self) -> None:
        handler = InMemoryHandler(existing={"ssh_key": {"id": 42}})
        result = _orchestrator(handler).run(build_graph(_stack()))

        assert ("update", "ssh_key") in handler.calls
        assert ("create", "ssh_key") not in handler.calls
        assert result["server"].outputs["inputs"]["keys"] == [42]

    def test_missing_output_fails_resource(self) -> None:
        handler = InMemoryHandler()
        graph = build_graph([_d("a"), _d("b", x=Ref("a", "nope"))])
        result = _orchestrator(handler).run(graph)

        assert result["b"].status == ResourceStatus.FAILED
        assert result["b"].error_type == "UnresolvedOutputError"
        assert ("create", "b") not in handler.calls

    def test_invalid_inputs_fail_resource(self) -> None:
        handler = InMemoryHandler()
        graph = build_graph([ResourceDescriptor(id="a", kind="dummy", inputs={})])
        result = _orchestrator(handler).run(graph)

        assert result["a"].status == ResourceStatus.FAILED
        assert result["a"].error_type == "ValidationError"
        assert handler.calls == []

    def test_unknown_kind_fails_before_any_work(self) -> None:
        handler = InMemoryHandler()
        graph = build_graph([_d("a"), ResourceDescriptor(id="b", kind="mystery")])

        with pytest.raises(UnknownResourceTypeError, match="mystery"):
            _orchestrator(handler).run(graph)
        assert handler.calls == []

    def test_outputs_are_isolated_from_handler(self) -> None:
        shared = {"id": 1}

        class SharingHandler(InMemoryHandler):
            def create(self, ctx: Any, inputs: DummyInputs) -> dict[str, Any]:
                return shared

        result = _orchestrator(SharingHandler()).run(build_graph([_d("a")]))
        shared["id"] = 2
        assert result["a"].outputs == {"id": 1}

    def test_dependents_cannot_mutate_outputs(self) -> None:
        class MutatingHandler(InMemoryHandler):
            def create(self, ctx: Any, inputs: DummyInputs) -> dict[str, Any]:
                if inputs.name == "a":
                    return {"tags": ["x"]}
                inputs.model_extra["tags"].append("y")
                return {}

        graph = build_graph([_d("a"), _d("b", tags=Ref("a", "tags"))])
        result = _orchestrator(MutatingHandler()).run(graph)

        assert result["b"].status == ResourceStatus.CREATED
        assert result["a"].outputs == {"tags": ["x"]}

    def test_repeated_runs_are_deterministic(self) -> None:
        runs = [
            _orchestrator(InMemoryHandler(fail={"firewall"})).run(build_graph(_stack()))
            for _ in range(2)
        ]
        assert runs[0].order == runs[1].order
        assert {k: v.status for k, v in runs[0].results.items()} == {
            k: v.status for k, v in runs[1].results.items()
        }

    def test_progress_events(self) -> None:
        events: list[tuple[str, str, ResourceStatus]] = []

        def on_progress(result: ResourceResult, event: str) -> None:
            events.append((result.resource_id, event, result.status))

        handler = InMemoryHandler(fail={"a"})
        _orchestrator(handler, progress=on_progress).run(build_graph([_d("a"), _d("b", "a")]))

        assert events == [
            ("a", "start", ResourceStatus.EXECUTING),
            ("a", "done", ResourceStatus.FAILED),
            ("b", "done", ResourceStatus.SKIPPED),
        ]

    def test_max_workers_must_be_positive(self) -> None:
        with pytest.raises(ValueError, match="max_workers"):
            _orchestrator(InMemoryHandler(), max_workers=0)


class TestCancel:
    def test_not_started_resources_are_skipped(self) -> None:
        handler = InMemoryHandler()
        running: list[Orchestrator] = []

        def on_progress(result: ResourceResult, event: str) -> None:
            if result.resource_id == "firewall" and event == "done":
                running[0].cancel()

        orchestrator = _orchestrator(handler, progress=on_progress)
        running.append(orchestrator)
        result = orchestrator.run(build_graph(_stack()))

        assert result.cancelled
        assert result["firewall"].status == ResourceStatus.CREATED
        for rid in ("ssh_key", "server", "attachment", "dns"):
            assert result[rid].status == ResourceStatus.SKIPPED
            assert result[rid].reason == RUN_CANCELLED
        assert handler.calls == [("create", "firewall")]
        assert result.succeeded

    def test_in_flight_resource_finishes(self) -> None:
        class CancellingHandler(InMemoryHandler):
            orchestrator: Orchestrator

            def create(self, ctx: Any, inputs: DummyInputs) -> dict[str, Any]:
                self.orchestrator.cancel()
                return super().create(ctx, inputs)

        handler = CancellingHandler()
        orchestrator = _orchestrator(handler)
        handler.orchestrator = orchestrator
        result = orchestrator.run(build_graph([_d("a"), _d("b")]))

        assert result["a"].status == ResourceStatus.CREATED
        assert result["b"].reason == RUN_CANCELLED


class TestConcurrentRun:
    def test_independent_branches_run_in_parallel(self) -> None:
        barrier = threading.Barrier(2, timeout=5)

        class BarrierHandler(InMemoryHandler):
            def create(self, ctx: Any, inputs: DummyInputs) -> dict[str, Any]:
                if inputs.name in {"a", "b"}:
                    # Both must be in flight at once to pass the barrier.
                    barrier.wait()
                return super().create(ctx, inputs)

        handler = BarrierHandler()
        graph = build_graph([_d("a"), _d("b"), _d("c", x=Ref("a", "id"), y=Ref("b", "id"))])
        result = _orchestrator(handler, max_workers=4).run(graph)

        assert result.succeeded
        assert handler.calls[-1] == ("create", "c")
        assert result["c"].outputs["inputs"] == {"name": "c", "x": "a-id", "y": "b-id"}

    def test_failure_propagation_matches_serial_run(self) -> None:
        serial = _orchestrator(InMemoryHandler(fail={"server"})).run(build_graph(_stack()))
        parallel = _orchestrator(InMemoryHandler(fail={"server"}), max_workers=3).run(
            build_graph(_stack())
        )
        assert {k: v.status for k, v in serial.results.items()} == {
            k: v.status for k, v in parallel.results.items()
        }
        assert parallel["dns"].reason == UPSTREAM_FAILURE


class TestDestroy:
    def test_deletes_dependents_first(self) -> None:
        handler = InMemoryHandler()
        result = _orchestrator(handler).destroy(build_graph(_stack()))

        assert [name for _, name in handler.calls] == [
            "dns",
            "attachment",
            "server",
            "ssh_key",
            "firewall",
        ]
        assert all(r.status == ResourceStatus.DELETED for r in result.results.values())
        assert result.summary()["deleted"] == 5

    def test_references_are_stripped(self) -> None:
        handler = InMemoryHandler()
        _orchestrator(handler).destroy(build_graph(_stack()))

        assert handler.received["dns"] == {"name": "dns"}
        assert handler.received["server"] == {"name": "server", "keys": []}

    def test_failed_delete_does_not_stop_the_rest(self) -> None:
        handler = InMemoryHandler(fail={"server"})
        result = _orchestrator(handler).destroy(build_graph(_stack()))

        assert result.failed_ids() == ["server"]
        assert ("delete", "firewall") in handler.calls


class TestResourceResult:
    def test_terminal_states_are_final(self) -> None:
        created = (
            ResourceResult(resource_id="a", kind="dummy")
            .transition(ResourceStatus.RESOLVING)
            .transition(ResourceStatus.EXECUTING)
            .transition(ResourceStatus.CREATED)
        )
        assert created.status.terminal
        with pytest.raises(ValueError, match="created -> failed"):
            created.transition(ResourceStatus.FAILED)

    def test_pending_cannot_jump_to_created(self) -> None:
        with pytest.raises(ValueError):
            ResourceResult(resource_id="a", kind="dummy").transition(ResourceStatus.CREATED)
