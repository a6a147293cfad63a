"""CLI command implementations."""

from __future__ import annotations

import os
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Literal

import typer

from hetzner_provisioner.cli import app
from hetzner_provisioner.cli.errors import handle_error

if TYPE_CHECKING:
    from hetzner_provisioner.config.settings import DeploymentConfig
    from hetzner_provisioner.engine.orchestrator import Orchestrator
    from hetzner_provisioner.engine.types import DeploymentResult, ResourceResult

StageArg = Annotated[
    str,
    typer.Argument(help="Deployment stage, e.g. production, dev or pr-42."),
]

ConfigPath = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to the project file (default: hetzner-provisioner.yaml if present).",
    ),
]

NoColor = Annotated[
    bool,
    typer.Option("--no-color", help="Disable colored output."),
]

AutoApprove = Annotated[
    bool,
    typer.Option("--auto-approve", help="Skip interactive approval."),
]


def _use_color(no_color: bool) -> bool:
    """Determine whether to use color output."""
    return not (no_color or os.environ.get("NO_COLOR"))


def _load(stage: str, config: Path | None) -> DeploymentConfig:
    """Collect the environment bag once and build the run configuration."""
    from hetzner_provisioner.config import (
        DEFAULT_CONFIG_FILE,
        collect_environment,
        load_deployment,
    )

    if config is None and DEFAULT_CONFIG_FILE.is_file():
        config = DEFAULT_CONFIG_FILE
    config_dir = config.parent if config is not None else Path()
    env = collect_environment(os.environ, config_dir)
    return load_deployment(stage, env, config_path=config, base_dir=config_dir)


def _run_with_progress(
    cfg: DeploymentConfig,
    *,
    color: bool,
    workers: int,
    destroying: bool = False,
) -> DeploymentResult:
    """Run a deploy or destroy with a Rich progress bar and per-resource status lines.

    Ctrl-C cancels the run: resources already started finish, the rest are skipped.
    """
    from rich.console import Console
    from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

    from hetzner_provisioner import deployment
    from hetzner_provisioner.cli.formatting import format_result_line

    console = Console(no_color=not color, highlight=False)
    total = len(deployment.plan(cfg))
    verb = "Destroying" if destroying else "Creating"

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(verb, total=total)

        def on_progress(result: ResourceResult, event: Literal["start", "done"]) -> None:
            if event == "start":
                progress.update(task, description=f"{result.resource_id}: {verb}...")
            elif event == "done":
                progress.console.print(format_result_line(result, color=False), markup=False)
                progress.advance(task)

        orchestrator: Orchestrator = deployment.create_orchestrator(
            cfg, max_workers=workers, progress=on_progress
        )

        def on_interrupt(signum: int, frame: object) -> None:
            _ = signum, frame
            orchestrator.cancel()

        previous = signal.signal(signal.SIGINT, on_interrupt)
        try:
            if destroying:
                return deployment.destroy(cfg, force=True, orchestrator=orchestrator)
            return deployment.deploy(cfg, orchestrator=orchestrator)
        finally:
            signal.signal(signal.SIGINT, previous)


def _finish(result: DeploymentResult, *, color: bool, action: str) -> None:
    from hetzner_provisioner.cli.formatting import format_report, format_summary

    typer.echo()
    typer.echo(format_report(result, color=color))
    typer.echo()
    typer.echo(format_summary(result, color=color, action=action))
    if not result.succeeded or result.cancelled:
        raise typer.Exit(1)


@app.command()
def plan(
    stage: StageArg,
    config: ConfigPath = None,
    no_color: NoColor = False,
) -> None:
    """Validate the configuration and show the execution order."""
    from hetzner_provisioner import deployment
    from hetzner_provisioner.cli.formatting import format_plan

    color = _use_color(no_color)
    try:
        cfg = _load(stage, config)
        graph = deployment.plan(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(f"Stage {cfg.stage.name} -> {cfg.domain}")
    typer.echo()
    typer.echo(format_plan(graph, color=color))
    typer.echo()
    typer.echo(f"Plan: {len(graph)} resources.")


@app.command()
def deploy(
    stage: StageArg,
    config: ConfigPath = None,
    workers: Annotated[
        int,
        typer.Option("--workers", "-w", min=1, help="Resources to provision concurrently."),
    ] = 1,
    no_color: NoColor = False,
) -> None:
    """Provision every resource of STAGE."""
    color = _use_color(no_color)
    try:
        cfg = _load(stage, config)
        result = _run_with_progress(cfg, color=color, workers=workers)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _finish(result, color=color, action="Deploy")


@app.command()
def render(
    stage: StageArg,
    config: ConfigPath = None,
    no_color: NoColor = False,
) -> None:
    """Print the Caddyfile for STAGE."""
    from hetzner_provisioner.stack import proxy_config

    color = _use_color(no_color)
    try:
        cfg = _load(stage, config)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(proxy_config(cfg), nl=False)


@app.command()
def destroy(
    stage: StageArg,
    config: ConfigPath = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Destroy even if the stage retains its resources."),
    ] = False,
    auto_approve: AutoApprove = False,
    no_color: NoColor = False,
) -> None:
    """Delete every resource of STAGE, dependents first."""
    from hetzner_provisioner import deployment
    from hetzner_provisioner.engine.errors import RemovalRetainedError

    color = _use_color(no_color)
    try:
        cfg = _load(stage, config)
        if cfg.stage.removal_policy == "retain" and not force:
            raise RemovalRetainedError(cfg.stage.name)
        graph = deployment.plan(cfg)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    typer.echo(f"The following resources of stage {cfg.stage.name} will be destroyed:")
    for rid in graph.reverse_order():
        typer.echo(f"  - {rid}")
    typer.echo()

    if not auto_approve:
        try:
            typer.confirm("Do you really want to destroy all resources?", abort=True)
        except typer.Abort as e:
            typer.echo("Destroy canceled.", err=True)
            raise typer.Exit(1) from e

    try:
        result = _run_with_progress(cfg, color=color, workers=1, destroying=True)
    except Exception as exc:
        raise typer.Exit(handle_error(exc, color=color)) from exc

    _finish(result, color=color, action="Destroy")
