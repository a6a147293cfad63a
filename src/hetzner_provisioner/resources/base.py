"""Resource descriptors and deferred output references.

A descriptor is pure data: it names a resource, selects a handler through
``kind`` and carries the inputs that handler needs. Input values are either
literals or ``Ref`` markers pointing at another resource's output; markers
may be nested anywhere inside lists, tuples and dicts.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExecutionDomain(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True, slots=True)
class Ref:
    """Deferred reference to ``output`` of the resource ``resource_id``."""

    resource_id: str
    output: str

    def __str__(self) -> str:
        return f"${{{self.resource_id}.{self.output}}}"


class ResourceDescriptor(BaseModel):
    """Desired state of a single infrastructure object."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(pattern=r"^[a-z0-9][a-z0-9_-]*$")
    kind: str = Field(min_length=1)
    inputs: dict[str, Any] = Field(default_factory=dict)
    depends_on: frozenset[str] = frozenset()
    domain: ExecutionDomain = ExecutionDomain.LOCAL

    def references(self) -> list[Ref]:
        """Deferred references found anywhere in the inputs, in discovery order."""
        return collect_refs(self.inputs)

    def dependencies(self) -> list[str]:
        """Explicit dependencies plus every id referenced from the inputs."""
        deps = set(self.depends_on)
        deps.update(ref.resource_id for ref in self.references())
        return sorted(deps)


def collect_refs(value: Any) -> list[Ref]:
    """Collect ``Ref`` markers from an arbitrarily nested value."""
    if isinstance(value, Ref):
        return [value]
    if isinstance(value, Mapping):
        return [ref for v in value.values() for ref in collect_refs(v)]
    if isinstance(value, list | tuple):
        return [ref for v in value for ref in collect_refs(v)]
    return []

