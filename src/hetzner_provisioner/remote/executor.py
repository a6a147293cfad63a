"""Remote command execution with connection retry and per-host serialization.

A freshly created server does not accept SSH connections right away. Before
the first command to a host, a no-op ``true`` is retried with exponential
backoff up to a fixed number of attempts; the command itself then runs
exactly once. Once connected, a command runs until it exits: there is no
deadline. Idle-poll commands (see ``wait_until_command``) therefore block
until their remote condition holds.
"""

from __future__ import annotations

import logging
import shlex
import threading
from typing import TYPE_CHECKING, Protocol

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from hetzner_provisioner.engine.errors import RemoteConnectionError
from hetzner_provisioner.remote.transport import SSHTransport

if TYPE_CHECKING:
    from tenacity.wait import WaitBaseT

    from hetzner_provisioner.remote.types import CommandResult, RemoteConnection

logger = logging.getLogger(__name__)

REACHABILITY_COMMAND = "true"


class Transport(Protocol):
    def run(
        self, connection: RemoteConnection, command: str, *, stdin: bytes | None = None
    ) -> CommandResult: ...


def wait_until_command(condition: str, *, interval: int = 5) -> str:
    """Build an idle-poll command that exits zero once *condition* succeeds.

    *condition* is a shell command line, e.g. ``systemctl is-active --quiet docker``.
    """
    return f"until {condition}; do sleep {interval}; done"


def _log_retry(state: RetryCallState) -> None:
    exc = state.outcome.exception() if state.outcome is not None else None
    logger.info(
        "Connection attempt %d failed (%s); retrying", state.attempt_number, exc
    )


class RemoteExecutor:
    """Execute shell commands on remote hosts.

    Commands against the same ``(user, host, port)`` are serialized: at most
    one command is in flight per connection.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        *,
        max_attempts: int = 30,
        wait: WaitBaseT | None = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._transport = transport or SSHTransport()
        self._max_attempts = max_attempts
        self._wait = wait if wait is not None else wait_exponential(multiplier=1, min=1, max=10)
        self._locks: dict[tuple[str, str, int], threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._reachable: set[tuple[str, str, int]] = set()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def _lock_for(self, connection: RemoteConnection) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(connection.key, threading.Lock())

    def _await_reachable(self, connection: RemoteConnection) -> None:
        """Retry a no-op command until the host accepts SSH. Called with the host lock held."""
        if connection.key in self._reachable:
            return
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(RemoteConnectionError),
            before_sleep=_log_retry,
            reraise=True,
        )
        try:
            retrying(self._transport.run, connection, REACHABILITY_COMMAND)
        except RemoteConnectionError as exc:
            raise RemoteConnectionError(
                connection.host, exc.reason, attempts=self._max_attempts
            ) from exc
        logger.debug("ssh %s is reachable", connection.address)
        self._reachable.add(connection.key)

    def execute(
        self, connection: RemoteConnection, command: str, *, stdin: bytes | None = None
    ) -> CommandResult:
        """Run *command* once on the host, after waiting for the host to accept SSH.

        Only connection establishment is retried. A connection lost while
        *command* runs is reported, never retried, since the command may
        already have taken effect.

        Raises:
            RemoteConnectionError: The host did not accept SSH within
                ``max_attempts``, or the session failed during *command*.
        """
        with self._lock_for(connection):
            self._await_reachable(connection)
            logger.debug("ssh %s: %s", connection.address, command)
            try:
                result = self._transport.run(connection, command, stdin=stdin)
            except RemoteConnectionError:
                # The host may have rebooted; check reachability before the next command.
                self._reachable.discard(connection.key)
                raise

        if not result.ok:
            logger.debug("ssh %s exited %d: %s", connection.address, result.exit_code, command)
        return result

    def upload(
        self,
        connection: RemoteConnection,
        remote_path: str,
        content: str | bytes,
        *,
        mode: str = "600",
    ) -> CommandResult:
        """Write *content* to *remote_path*.

        The content travels on the command's stdin and is never interpreted
        by the remote shell; only the path is quoted into the command line.
        """
        payload = content.encode("utf-8") if isinstance(content, str) else content
        path = shlex.quote(remote_path)
        command = f"umask 077 && cat > {path} && chmod {shlex.quote(mode)} {path}"
        return self.execute(connection, command, stdin=payload).check()
