"""Remote connection and command result types."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from hetzner_provisioner.engine.errors import RemoteCommandError


class RemoteConnection(BaseModel):
    """Target of remote commands: an SSH endpoint plus its private key file."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    user: str = "root"
    port: int = 22
    private_key_path: Path

    @property
    def address(self) -> str:
        return f"{self.user}@{self.host}"

    @property
    def key(self) -> tuple[str, str, int]:
        return (self.user, self.host, self.port)


class CommandResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self) -> CommandResult:
        """Return self, or raise ``RemoteCommandError`` on a non-zero exit code."""
        if not self.ok:
            raise RemoteCommandError(self.command, self.exit_code, self.stderr)
        return self
