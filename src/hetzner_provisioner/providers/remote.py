"""Handlers that act on the server over SSH (commands and files).

Every remote descriptor carries the connection fields of ``RemoteInputs``;
``host`` and ``private_key_path`` are usually references to the server's
address and the local keypair.
"""

from __future__ import annotations

import hashlib
import json
import logging
import shlex
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from hetzner_provisioner.engine.handlers import ResourceHandler
from hetzner_provisioner.remote.types import RemoteConnection

if TYPE_CHECKING:
    from hetzner_provisioner.engine.handlers import EngineContext
    from hetzner_provisioner.remote.types import CommandResult

logger = logging.getLogger(__name__)

CONNECTION_FIELDS = frozenset({"host", "user", "port", "private_key_path"})


def compute_digest(obj: Any) -> str:
    """Stable SHA-256 of a JSON-compatible value."""
    payload = json.dumps(obj, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class RemoteInputs(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host: str
    user: str = "root"
    port: int = 22
    private_key_path: Path

    def connection(self) -> RemoteConnection:
        return RemoteConnection(
            host=self.host, user=self.user, port=self.port, private_key_path=self.private_key_path
        )

    def settings(self) -> dict[str, Any]:
        """Inputs without the connection fields."""
        return self.model_dump(mode="json", exclude=set(CONNECTION_FIELDS))


class RemoteHandler(ResourceHandler[Any]):
    """Shared helpers for handlers running commands on the server."""

    def run(
        self, ctx: EngineContext, inputs: RemoteInputs, command: str, *, stdin: bytes | None = None
    ) -> CommandResult:
        return ctx.executor.execute(inputs.connection(), command, stdin=stdin)

    def run_checked(
        self, ctx: EngineContext, inputs: RemoteInputs, command: str, *, stdin: bytes | None = None
    ) -> CommandResult:
        return self.run(ctx, inputs, command, stdin=stdin).check()


class RemoteCommandInputs(RemoteInputs):
    create: str


class RemoteCommandHandler(RemoteHandler):
    """Runs ``create`` on every deployment.

    Commands are expected to be idempotent, typically an idle-poll loop
    such as ``until systemctl is-active --quiet docker; do sleep 5; done``.
    """

    inputs_model = RemoteCommandInputs

    def create(self, ctx: EngineContext, inputs: RemoteCommandInputs) -> dict[str, Any]:
        result = self.run_checked(ctx, inputs, inputs.create)
        return {"stdout": result.stdout, "stderr": result.stderr}


class RemoteFileInputs(RemoteInputs):
    path: str
    content: str
    mode: str = "600"


class RemoteFileHandler(RemoteHandler):
    """A file on the server with exactly ``content``."""

    inputs_model = RemoteFileInputs

    @staticmethod
    def _outputs(inputs: RemoteFileInputs) -> dict[str, Any]:
        return {"path": inputs.path, "digest": compute_digest(inputs.content)}

    def read(self, ctx: EngineContext, inputs: RemoteFileInputs) -> dict[str, Any] | None:
        current = self.run(ctx, inputs, f"sha256sum {shlex.quote(inputs.path)}")
        if not current.ok:
            return None
        remote_digest = current.stdout.split(" ", 1)[0]
        local_digest = hashlib.sha256(inputs.content.encode("utf-8")).hexdigest()
        return self._outputs(inputs) if remote_digest == local_digest else None

    def create(self, ctx: EngineContext, inputs: RemoteFileInputs) -> dict[str, Any]:
        ctx.executor.upload(inputs.connection(), inputs.path, inputs.content, mode=inputs.mode)
        logger.info("Wrote %s on %s", inputs.path, inputs.host)
        return self._outputs(inputs)
