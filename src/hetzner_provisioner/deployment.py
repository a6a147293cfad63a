"""Top-level API: plan, deploy and destroy one stage."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from hetzner_provisioner.engine.errors import RemovalRetainedError
from hetzner_provisioner.engine.graph import build_graph
from hetzner_provisioner.engine.handlers import EngineContext
from hetzner_provisioner.engine.orchestrator import Orchestrator
from hetzner_provisioner.providers.clients import ProviderClients
from hetzner_provisioner.providers.registry import default_registry
from hetzner_provisioner.remote.executor import RemoteExecutor
from hetzner_provisioner.remote.transport import SSHTransport
from hetzner_provisioner.stack import build_stack

if TYPE_CHECKING:
    from hetzner_provisioner.config.settings import DeploymentConfig
    from hetzner_provisioner.engine.graph import ResourceGraph
    from hetzner_provisioner.engine.orchestrator import ProgressCallback
    from hetzner_provisioner.engine.registry import ResourceTypeRegistry
    from hetzner_provisioner.engine.types import DeploymentResult

logger = logging.getLogger(__name__)


def plan(config: DeploymentConfig, *, registry: ResourceTypeRegistry | None = None) -> ResourceGraph:
    """Build and validate the resource graph without touching anything.

    Raises:
        DanglingReferenceError, DependencyCycleError, UnknownResourceTypeError
    """
    graph = build_graph(build_stack(config))
    (registry or default_registry()).check(graph[rid].kind for rid in graph.order)
    return graph


def create_executor(config: DeploymentConfig) -> RemoteExecutor:
    ssh = config.project.ssh
    return RemoteExecutor(
        SSHTransport(connect_timeout=ssh.connect_timeout), max_attempts=ssh.max_attempts
    )


def create_orchestrator(
    config: DeploymentConfig,
    *,
    registry: ResourceTypeRegistry | None = None,
    clients: ProviderClients | None = None,
    executor: RemoteExecutor | None = None,
    max_workers: int = 1,
    progress: ProgressCallback | None = None,
) -> Orchestrator:
    """Wire an orchestrator for *config*; defaults talk to the real services."""
    ctx = EngineContext(
        config=config,
        clients=clients or ProviderClients(config.secrets),
        executor=executor or create_executor(config),
    )
    return Orchestrator(
        registry=registry or default_registry(),
        ctx=ctx,
        max_workers=max_workers,
        progress=progress,
    )


def deploy(
    config: DeploymentConfig, *, orchestrator: Orchestrator | None = None
) -> DeploymentResult:
    """Provision every resource of the stage."""
    graph = plan(config)
    logger.info("Deploying stage %s to %s", config.stage.name, config.domain)
    return (orchestrator or create_orchestrator(config)).run(graph)


def destroy(
    config: DeploymentConfig,
    *,
    force: bool = False,
    orchestrator: Orchestrator | None = None,
) -> DeploymentResult:
    """Delete the stage's resources, dependents first.

    Raises:
        RemovalRetainedError: The stage retains its resources and *force* is not set.
    """
    if config.stage.removal_policy == "retain" and not force:
        raise RemovalRetainedError(config.stage.name)
    graph = plan(config)
    logger.info("Destroying stage %s", config.stage.name)
    return (orchestrator or create_orchestrator(config)).destroy(graph)
