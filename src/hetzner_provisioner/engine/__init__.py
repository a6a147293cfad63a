"""Dependency graph and provisioning engine."""

from hetzner_provisioner.engine.errors import (
    AdapterError,
    DanglingReferenceError,
    DependencyCycleError,
    DuplicateResourceError,
    EngineError,
    RemoteCommandError,
    RemoteConnectionError,
    RemovalRetainedError,
    UnknownResourceTypeError,
    UnresolvedOutputError,
)
from hetzner_provisioner.engine.graph import DependencyGraph, ResourceGraph, build_graph
from hetzner_provisioner.engine.handlers import EngineContext, ResourceHandler
from hetzner_provisioner.engine.orchestrator import Orchestrator, ProgressCallback
from hetzner_provisioner.engine.registry import ResourceTypeRegistry
from hetzner_provisioner.engine.types import (
    RUN_CANCELLED,
    UPSTREAM_FAILURE,
    DeploymentResult,
    ResourceResult,
    ResourceStatus,
)

__all__ = [
    "RUN_CANCELLED",
    "UPSTREAM_FAILURE",
    "AdapterError",
    "DanglingReferenceError",
    "DependencyCycleError",
    "DependencyGraph",
    "DeploymentResult",
    "DuplicateResourceError",
    "EngineContext",
    "EngineError",
    "Orchestrator",
    "ProgressCallback",
    "RemoteCommandError",
    "RemoteConnectionError",
    "RemovalRetainedError",
    "ResourceGraph",
    "ResourceHandler",
    "ResourceResult",
    "ResourceStatus",
    "ResourceTypeRegistry",
    "UnknownResourceTypeError",
    "UnresolvedOutputError",
    "build_graph",
]
