"""SSH transport: run one command on a remote host through the system ssh client."""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

from hetzner_provisioner.engine.errors import RemoteConnectionError
from hetzner_provisioner.remote.types import CommandResult

if TYPE_CHECKING:
    from hetzner_provisioner.remote.types import RemoteConnection

logger = logging.getLogger(__name__)

# ssh reserves this exit status for its own (connection/auth) errors.
SSH_ERROR_EXIT_CODE = 255


def ssh_base_args(
    connection: RemoteConnection, *, connect_timeout: int = 10, ssh_binary: str = "ssh"
) -> list[str]:
    """Build base SSH arguments."""
    args = [
        ssh_binary,
        "-o", "StrictHostKeyChecking=no",
        "-o", "UserKnownHostsFile=/dev/null",
        "-o", "BatchMode=yes",
        "-o", "LogLevel=ERROR",
        "-o", f"ConnectTimeout={connect_timeout}",
        "-o", "ServerAliveInterval=60",
        "-o", "ServerAliveCountMax=5",
        "-i", str(connection.private_key_path),
    ]  # fmt: skip
    if connection.port != 22:
        args += ["-p", str(connection.port)]
    args.append(connection.address)
    return args


class SSHTransport:
    """Single-attempt command execution over SSH.

    Raises ``RemoteConnectionError`` when the host cannot be reached; any
    other outcome, including a failing command, is returned as a
    ``CommandResult``.
    """

    def __init__(self, *, connect_timeout: int = 10, ssh_binary: str = "ssh") -> None:
        self._connect_timeout = connect_timeout
        self._ssh_binary = ssh_binary

    def run(
        self, connection: RemoteConnection, command: str, *, stdin: bytes | None = None
    ) -> CommandResult:
        args = ssh_base_args(
            connection, connect_timeout=self._connect_timeout, ssh_binary=self._ssh_binary
        )
        args.append(command)

        try:
            proc = subprocess.run(
                args,
                input=stdin,
                stdin=subprocess.DEVNULL if stdin is None else None,
                capture_output=True,
                check=False,
                # Own process group: a Ctrl-C at the terminal must not kill in-flight commands.
                start_new_session=True,
            )
        except FileNotFoundError as e:
            raise RemoteConnectionError(
                connection.host, f"'{self._ssh_binary}' not found. Is it installed and on PATH?"
            ) from e

        stdout = proc.stdout.decode(errors="replace") if proc.stdout else ""
        stderr = proc.stderr.decode(errors="replace") if proc.stderr else ""
        if proc.returncode == SSH_ERROR_EXIT_CODE:
            reason = stderr.strip().splitlines()[-1] if stderr.strip() else "ssh exited with 255"
            raise RemoteConnectionError(connection.host, reason)

        return CommandResult(
            command=command, exit_code=proc.returncode, stdout=stdout, stderr=stderr
        )
