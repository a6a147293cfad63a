"""Engine types (per-resource outcomes, run results)."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

UPSTREAM_FAILURE = "upstream failure"
RUN_CANCELLED = "run cancelled"


class ResourceStatus(str, Enum):
    PENDING = "pending"
    RESOLVING = "resolving"
    EXECUTING = "executing"
    CREATED = "created"
    FAILED = "failed"
    SKIPPED = "skipped"
    DELETED = "deleted"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset(
    {ResourceStatus.CREATED, ResourceStatus.FAILED, ResourceStatus.SKIPPED, ResourceStatus.DELETED}
)

_TRANSITIONS: dict[ResourceStatus, frozenset[ResourceStatus]] = {
    ResourceStatus.PENDING: frozenset(
        {
            ResourceStatus.RESOLVING,
            ResourceStatus.EXECUTING,
            ResourceStatus.SKIPPED,
        }
    ),
    ResourceStatus.RESOLVING: frozenset({ResourceStatus.EXECUTING, ResourceStatus.FAILED}),
    ResourceStatus.EXECUTING: frozenset(
        {ResourceStatus.CREATED, ResourceStatus.FAILED, ResourceStatus.DELETED}
    ),
}


class ResourceResult(BaseModel):
    """Outcome of one resource within a run. Instances are immutable."""

    model_config = ConfigDict(frozen=True)

    resource_id: str
    kind: str
    status: ResourceStatus = ResourceStatus.PENDING
    outputs: dict[str, Any] | None = None
    error: str | None = None
    error_type: str | None = None
    reason: str | None = None
    upstream: str | None = None

    def transition(self, status: ResourceStatus, **changes: Any) -> ResourceResult:
        """Return a copy moved to *status*; terminal states are final."""
        allowed = _TRANSITIONS.get(self.status, frozenset())
        if status not in allowed:
            raise ValueError(
                f"Invalid transition for {self.resource_id}: {self.status.value} -> {status.value}"
            )
        return self.model_copy(update={"status": status, **changes})


class DeploymentResult(BaseModel):
    """Per-resource report of a run, keyed by resource id in creation order."""

    results: dict[str, ResourceResult] = Field(default_factory=dict)
    order: list[str] = Field(default_factory=list)
    cancelled: bool = False

    def __getitem__(self, resource_id: str) -> ResourceResult:
        return self.results[resource_id]

    @property
    def succeeded(self) -> bool:
        """True unless some resource ended ``failed``."""
        return not self.failed_ids()

    def failed_ids(self) -> list[str]:
        return [rid for rid, r in self.results.items() if r.status == ResourceStatus.FAILED]

    def skipped_ids(self) -> list[str]:
        return [rid for rid, r in self.results.items() if r.status == ResourceStatus.SKIPPED]

    def outputs(self) -> dict[str, dict[str, Any]]:
        """Outputs of every created resource."""
        return {
            rid: dict(r.outputs)
            for rid, r in self.results.items()
            if r.status == ResourceStatus.CREATED and r.outputs is not None
        }

    def summary(self) -> dict[str, int]:
        counts = {s.value: 0 for s in _TERMINAL}
        for r in self.results.values():
            if r.status.terminal:
                counts[r.status.value] += 1
        return counts
