"""Plan and run report rendering."""

from __future__ import annotations

from typing import TYPE_CHECKING, NamedTuple

import typer

from hetzner_provisioner.engine.types import ResourceStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from hetzner_provisioner.engine.graph import ResourceGraph
    from hetzner_provisioner.engine.types import DeploymentResult, ResourceResult


class _StatusStyle(NamedTuple):
    color: str
    symbol: str


_STATUS_STYLES: dict[ResourceStatus, _StatusStyle] = {
    ResourceStatus.CREATED: _StatusStyle("green", "+"),
    ResourceStatus.DELETED: _StatusStyle("red", "-"),
    ResourceStatus.FAILED: _StatusStyle("red", "!"),
    ResourceStatus.SKIPPED: _StatusStyle("yellow", "~"),
}

_SUMMARY_COLORS: dict[ResourceStatus, str] = {
    ResourceStatus.CREATED: "green",
    ResourceStatus.DELETED: "green",
    ResourceStatus.FAILED: "red",
    ResourceStatus.SKIPPED: "yellow",
}


def styler(color: bool) -> Callable[..., str]:
    """Return ``typer.style`` when *color* is True, otherwise a passthrough."""
    if color:
        return typer.style
    return lambda text, **_kw: text


# ---------------------------------------------------------------------------
# Plan rendering
# ---------------------------------------------------------------------------


def format_plan(graph: ResourceGraph, *, color: bool = True) -> str:
    """Render the execution order with each resource's dependencies."""
    style = styler(color)
    width = len(str(len(graph)))
    lines = []
    for index, rid in enumerate(graph.order, start=1):
        descriptor = graph[rid]
        head = style(f"{index:>{width}}. {rid}", bold=True)
        lines.append(f"  {head} ({descriptor.kind}, {descriptor.domain.value})")
        deps = graph.dependencies(rid)
        if deps:
            lines.append(style(f"  {'':>{width}}  after: {', '.join(deps)}", fg="bright_black"))
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Run reports
# ---------------------------------------------------------------------------


def _detail(result: ResourceResult) -> str:
    if result.status == ResourceStatus.FAILED:
        return f" ({result.error_type}: {result.error})"
    if result.status == ResourceStatus.SKIPPED:
        if result.upstream:
            return f" ({result.reason}: {result.upstream})"
        return f" ({result.reason})"
    return ""


def format_result_line(result: ResourceResult, *, color: bool = True) -> str:
    """Render ``  + server: created`` style lines."""
    status_style = _STATUS_STYLES.get(result.status, _StatusStyle("white", " "))
    text = f"  {status_style.symbol} {result.resource_id}: {result.status.value}{_detail(result)}"
    return styler(color)(text, fg=status_style.color)


def format_report(result: DeploymentResult, *, color: bool = True) -> str:
    """Render one line per resource, in report order."""
    return "\n".join(format_result_line(r, color=color) for r in result.results.values())


def format_summary(result: DeploymentResult, *, color: bool = True, action: str = "Deploy") -> str:
    """Render ``Deploy complete! Resources: 5 created, 0 failed, 0 skipped.``"""
    style = styler(color)
    summary = result.summary()
    done = ResourceStatus.DELETED if action == "Destroy" else ResourceStatus.CREATED
    parts = []
    for status in (done, ResourceStatus.FAILED, ResourceStatus.SKIPPED):
        n = summary[status.value]
        text = f"{n} {status.value}"
        parts.append(style(text, fg=_SUMMARY_COLORS[status]) if n else text)

    if not result.succeeded:
        header = style(f"{action} failed!", fg="red", bold=True)
    elif result.cancelled:
        header = style(f"{action} cancelled.", fg="yellow", bold=True)
    else:
        header = style(f"{action} complete!", fg="green", bold=True)
    return f"{header} Resources: {', '.join(parts)}."
