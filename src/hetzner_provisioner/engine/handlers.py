"""Engine-facing handler interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel

if TYPE_CHECKING:
    from hetzner_provisioner.config.settings import DeploymentConfig
    from hetzner_provisioner.providers.clients import ProviderClients
    from hetzner_provisioner.remote.executor import RemoteExecutor

I = TypeVar("I", bound=BaseModel)


@dataclass(frozen=True)
class EngineContext:
    """Context passed to handlers."""

    config: DeploymentConfig
    clients: ProviderClients
    executor: RemoteExecutor


class ResourceHandler(Generic[I]):
    """Base class for resource handlers.

    Handlers translate resolved descriptor inputs into provider calls.
    The engine calls ``read`` first. When it finds the object, ``update``
    reconciles it with the desired inputs; otherwise ``create`` makes it.
    Re-running a deployment is therefore safe. ``await_ready``, ``update``
    and ``delete`` are optional.
    """

    inputs_model: ClassVar[type[BaseModel]]

    def validate(self, inputs: dict[str, Any]) -> I:
        """Validate resolved inputs. Raises ``pydantic.ValidationError``."""
        return self.inputs_model.model_validate(inputs)  # type: ignore[return-value]

    def read(self, ctx: EngineContext, inputs: I) -> dict[str, Any] | None:
        """Return outputs of the existing object, or None if it does not exist."""
        _ = ctx, inputs
        return None

    def create(self, ctx: EngineContext, inputs: I) -> dict[str, Any]:
        """Create the object. Return its outputs."""
        raise NotImplementedError

    def update(
        self, ctx: EngineContext, inputs: I, current: dict[str, Any]
    ) -> dict[str, Any]:
        """Reconcile an existing object. Return its outputs (default: unchanged)."""
        _ = ctx, inputs
        return current

    def await_ready(self, ctx: EngineContext, inputs: I, outputs: dict[str, Any]) -> None:
        """Block until the created object is usable."""
        _ = ctx, inputs, outputs

    def delete(self, ctx: EngineContext, inputs: dict[str, Any]) -> None:
        """Delete the object.

        *inputs* holds only literal values, since outputs of other resources
        are not available during cleanup. Missing objects are not an error.
        """
        _ = ctx, inputs
