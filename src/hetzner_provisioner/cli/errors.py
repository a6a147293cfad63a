"""Map exceptions to clean stderr messages and exit codes."""

from __future__ import annotations

import typer


def _err(msg: str, *, fg: str | None) -> None:
    """Print a styled message to stderr."""
    typer.echo(typer.style(msg, fg=fg), err=True)


def handle_error(exc: Exception, *, color: bool = True) -> int:
    """Print a clean error message to stderr and return an exit code.

    All errors map to exit code 1.  No tracebacks are printed.
    """
    from hetzner_provisioner.config.errors import ConfigError, MissingConfigurationError
    from hetzner_provisioner.engine.errors import (
        DanglingReferenceError,
        DependencyCycleError,
        RemovalRetainedError,
    )

    fg = typer.colors.RED if color else None

    if isinstance(exc, MissingConfigurationError):
        _err("Missing required environment variables:", fg=fg)
        for name in exc.missing:
            _err(f"  - {name}", fg=fg)
    elif isinstance(exc, ConfigError):
        _err(f"Configuration error: {exc}", fg=fg)
    elif isinstance(exc, DependencyCycleError | DanglingReferenceError):
        _err(f"Invalid resource graph: {exc}", fg=fg)
    elif isinstance(exc, RemovalRetainedError):
        _err(f"Destroy refused: {exc}", fg=fg)
    else:
        _err(f"Error: {exc}", fg=fg)

    return 1
