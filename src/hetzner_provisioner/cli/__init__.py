"""CLI application for hetzner-provisioner."""

from __future__ import annotations

import logging
import os
import sys

import typer

from hetzner_provisioner import __version__

app = typer.Typer(
    name="hprov",
    no_args_is_help=True,
    add_completion=False,
)

LOG_ENV_VAR = "HPROV_LOG"
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"hetzner-provisioner {__version__}")
        raise typer.Exit


def _log_level(verbose: int) -> int | None:
    """Level from ``HPROV_LOG``, else from the ``-v`` count. None leaves logging alone."""
    name = os.environ.get(LOG_ENV_VAR, "").upper()
    if name:
        if name in _VALID_LEVELS:
            return logging.getLevelName(name)
        typer.echo(
            f"WARNING: invalid {LOG_ENV_VAR} level '{name}', "
            f"expected one of {', '.join(_VALID_LEVELS)}; defaulting to INFO",
            err=True,
        )
        return logging.INFO
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return None


def _configure_logging(verbose: int) -> None:
    """Send package logs to stderr; other libraries stay at WARNING."""
    level = _log_level(verbose)
    if level is None:
        return
    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT, stream=sys.stderr, force=True)
    logging.getLogger("hetzner_provisioner").setLevel(level)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase log verbosity (-v info, -vv debug).",
    ),
) -> None:
    """Provision a Hetzner server running an app behind Caddy, one stack per stage."""
    _ = version
    _configure_logging(verbose)


# Commands import this module's ``app``.
from hetzner_provisioner.cli import commands as _commands  # noqa: E402, F401
