"""Engine error types."""

from __future__ import annotations


class EngineError(Exception):
    """Base exception for engine errors."""


class UnknownResourceTypeError(EngineError):
    """Raised when a resource kind has no registered handler."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"Unknown resource kind: {kind}")
        self.kind = kind


class DuplicateResourceError(EngineError):
    """Raised when multiple descriptors share the same id."""

    def __init__(self, resource_id: str) -> None:
        super().__init__(f"Duplicate resource id: {resource_id}")
        self.resource_id = resource_id


class DanglingReferenceError(EngineError):
    """Raised when a descriptor references or depends on an unknown id.

    ``references`` holds ``(resource_id, missing_id)`` pairs.
    """

    def __init__(self, references: list[tuple[str, str]]) -> None:
        self.references = references
        details = ", ".join(f"{src} -> {dst}" for src, dst in references)
        super().__init__(f"Reference to unknown resource: {details}")


class DependencyCycleError(EngineError):
    """Raised when dependencies contain a cycle."""

    def __init__(self, resource_ids: list[str]) -> None:
        msg = "Dependency cycle detected"
        if resource_ids:
            msg += f": {', '.join(resource_ids)}"
        super().__init__(msg)
        self.resource_ids = resource_ids


class UnresolvedOutputError(EngineError):
    """Raised when a reference names an output its resource did not produce."""

    def __init__(self, resource_id: str, output: str) -> None:
        super().__init__(f"Resource '{resource_id}' has no output '{output}'")
        self.resource_id = resource_id
        self.output = output


class AdapterError(EngineError):
    """A provider rejected a create/read/delete request."""

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        super().__init__(message)
        self.kind = kind


class RemoteConnectionError(EngineError):
    """The remote host could not be reached (after every retry, when raised by the executor)."""

    def __init__(self, host: str, reason: str, *, attempts: int = 1) -> None:
        msg = f"Cannot connect to {host}: {reason}"
        if attempts > 1:
            msg += f" (gave up after {attempts} attempts)"
        super().__init__(msg)
        self.host = host
        self.reason = reason
        self.attempts = attempts


class RemoteCommandError(EngineError):
    """A remote command exited with a non-zero status."""

    def __init__(self, command: str, exit_code: int, stderr: str) -> None:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(f"Remote command failed with exit code {exit_code}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class RemovalRetainedError(EngineError):
    """Raised when destroying a stage whose removal policy is ``retain``."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"Stage '{stage}' retains its resources; pass --force to destroy them")
        self.stage = stage
