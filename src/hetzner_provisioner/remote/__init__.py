"""Remote command execution over SSH."""

from hetzner_provisioner.remote.executor import RemoteExecutor, Transport, wait_until_command
from hetzner_provisioner.remote.transport import SSHTransport, ssh_base_args
from hetzner_provisioner.remote.types import CommandResult, RemoteConnection

__all__ = [
    "CommandResult",
    "RemoteConnection",
    "RemoteExecutor",
    "SSHTransport",
    "Transport",
    "ssh_base_args",
    "wait_until_command",
]
