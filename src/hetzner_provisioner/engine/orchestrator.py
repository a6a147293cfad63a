"""Dependency-ordered provisioning engine."""

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from hetzner_provisioner.engine.errors import AdapterError, EngineError
from hetzner_provisioner.engine.references import resolve_inputs, strip_refs
from hetzner_provisioner.engine.types import (
    RUN_CANCELLED,
    UPSTREAM_FAILURE,
    DeploymentResult,
    ResourceResult,
    ResourceStatus,
)

if TYPE_CHECKING:
    from hetzner_provisioner.engine.graph import ResourceGraph
    from hetzner_provisioner.engine.handlers import EngineContext
    from hetzner_provisioner.engine.registry import ResourceTypeRegistry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ResourceResult, Literal["start", "done"]], None]


def _error_fields(exc: Exception) -> dict[str, str]:
    if isinstance(exc, (EngineError, ValidationError)):
        error_type = type(exc).__name__
    else:
        error_type = AdapterError.__name__
    return {"error": str(exc) or type(exc).__name__, "error_type": error_type}


class _RunState:
    """Per-run bookkeeping shared between worker threads."""

    def __init__(self, graph: ResourceGraph) -> None:
        self.lock = threading.Lock()
        self.results: dict[str, ResourceResult] = {
            rid: ResourceResult(resource_id=rid, kind=graph[rid].kind) for rid in graph.order
        }
        self.started: list[str] = []

    def get(self, resource_id: str) -> ResourceResult:
        with self.lock:
            return self.results[resource_id]

    def move(self, resource_id: str, status: ResourceStatus, **changes: Any) -> ResourceResult:
        with self.lock:
            result = self.results[resource_id].transition(status, **changes)
            self.results[resource_id] = result
            return result

    def outputs_of(self, resource_ids: list[str]) -> dict[str, dict[str, Any]]:
        with self.lock:
            return {
                rid: self.results[rid].outputs or {}
                for rid in resource_ids
                if self.results[rid].status == ResourceStatus.CREATED
            }


class Orchestrator:
    """Drive every resource of a graph through its lifecycle.

    Resources run in ``graph.order``. A failed resource does not stop the
    run: its descendants are skipped while unrelated branches proceed. With
    ``max_workers > 1`` independent branches run concurrently; a resource is
    never started before all of its dependencies are terminal.
    """

    def __init__(
        self,
        *,
        registry: ResourceTypeRegistry,
        ctx: EngineContext,
        max_workers: int = 1,
        progress: ProgressCallback | None = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._registry = registry
        self._ctx = ctx
        self._max_workers = max_workers
        self._progress = progress
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop starting new resources. In-flight resources finish normally."""
        if not self._cancelled.is_set():
            logger.warning("Run cancelled; waiting for in-flight resources to finish")
        self._cancelled.set()

    def _notify(self, result: ResourceResult, event: Literal["start", "done"]) -> None:
        if self._progress is not None:
            self._progress(result, event)

    def run(self, graph: ResourceGraph) -> DeploymentResult:
        """Create every resource of *graph*, returning a per-resource report."""
        self._registry.check(graph[rid].kind for rid in graph.order)
        logger.info("Provisioning %d resources (workers=%d)", len(graph), self._max_workers)

        state = _RunState(graph)
        if self._max_workers == 1:
            for rid in graph.order:
                if self._admit(graph, state, rid):
                    self._execute(graph, state, rid)
        else:
            self._run_concurrently(graph, state)

        result = DeploymentResult(
            results=dict(state.results),
            order=list(state.started),
            cancelled=self.cancelled,
        )
        logger.info("Run finished: %s", result.summary())
        return result

    def _run_concurrently(self, graph: ResourceGraph, state: _RunState) -> None:
        pending = graph.order
        running: dict[Future[None], str] = {}
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            while pending or running:
                waiting: list[str] = []
                for rid in pending:
                    deps_done = all(
                        state.get(dep).status.terminal for dep in graph.dependencies(rid)
                    )
                    if not deps_done:
                        waiting.append(rid)
                    elif self._admit(graph, state, rid):
                        running[pool.submit(self._execute, graph, state, rid)] = rid
                pending = waiting

                if not running:
                    if pending:
                        raise RuntimeError(f"Unschedulable resources: {', '.join(pending)}")
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in done:
                    running.pop(future)
                    future.result()

    def _admit(self, graph: ResourceGraph, state: _RunState, rid: str) -> bool:
        """Decide whether *rid* may start; record a skip otherwise."""
        if self.cancelled:
            result = state.move(rid, ResourceStatus.SKIPPED, reason=RUN_CANCELLED)
            self._notify(result, "done")
            return False

        for dep in graph.dependencies(rid):
            dep_result = state.get(dep)
            if dep_result.status != ResourceStatus.CREATED:
                upstream = dep_result.upstream or dep
                logger.info("Skipping %s: upstream %s did not complete", rid, upstream)
                result = state.move(
                    rid, ResourceStatus.SKIPPED, reason=UPSTREAM_FAILURE, upstream=upstream
                )
                self._notify(result, "done")
                return False

        with state.lock:
            state.started.append(rid)
        return True

    def _execute(self, graph: ResourceGraph, state: _RunState, rid: str) -> None:
        descriptor = graph[rid]
        handler = self._registry.get(descriptor.kind)

        state.move(rid, ResourceStatus.RESOLVING)
        try:
            resolved = resolve_inputs(
                descriptor.inputs, state.outputs_of(graph.dependencies(rid))
            )
            inputs = handler.validate(resolved)
        except Exception as exc:
            logger.error("Cannot resolve inputs of %s: %s", rid, exc)
            self._notify(state.move(rid, ResourceStatus.FAILED, **_error_fields(exc)), "done")
            return

        self._notify(state.move(rid, ResourceStatus.EXECUTING), "start")
        logger.debug("Executing %s (%s, %s)", rid, descriptor.kind, descriptor.domain.value)
        try:
            current = handler.read(self._ctx, inputs)
            if current is None:
                outputs = handler.create(self._ctx, inputs)
                logger.info("Created %s", rid)
            else:
                outputs = handler.update(self._ctx, inputs, current)
                logger.info("Reconciled existing %s", rid)
            handler.await_ready(self._ctx, inputs, outputs)
        except Exception as exc:
            logger.error("Failed %s: %s", rid, exc)
            logger.debug("Failure detail for %s", rid, exc_info=True)
            result = state.move(rid, ResourceStatus.FAILED, **_error_fields(exc))
        else:
            result = state.move(rid, ResourceStatus.CREATED, outputs=copy.deepcopy(outputs))
        self._notify(result, "done")

    def destroy(self, graph: ResourceGraph) -> DeploymentResult:
        """Delete every resource of *graph*, dependents first.

        A failed delete is recorded and does not stop the remaining deletes.
        """
        self._registry.check(graph[rid].kind for rid in graph.order)
        logger.info("Destroying %d resources", len(graph))

        state = _RunState(graph)
        for rid in graph.reverse_order():
            if self.cancelled:
                self._notify(state.move(rid, ResourceStatus.SKIPPED, reason=RUN_CANCELLED), "done")
                continue

            descriptor = graph[rid]
            handler = self._registry.get(descriptor.kind)
            state.started.append(rid)
            self._notify(state.move(rid, ResourceStatus.EXECUTING), "start")
            try:
                handler.delete(self._ctx, strip_refs(descriptor.inputs))
            except Exception as exc:
                logger.error("Failed to delete %s: %s", rid, exc)
                result = state.move(rid, ResourceStatus.FAILED, **_error_fields(exc))
            else:
                logger.info("Deleted %s", rid)
                result = state.move(rid, ResourceStatus.DELETED)
            self._notify(result, "done")

        return DeploymentResult(
            results={rid: state.results[rid] for rid in graph.reverse_order()},
            order=list(state.started),
            cancelled=self.cancelled,
        )
