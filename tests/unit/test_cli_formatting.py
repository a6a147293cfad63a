from __future__ import annotations

from hetzner_provisioner.cli.formatting import (
    format_plan,
    format_report,
    format_result_line,
    format_summary,
    styler,
)
from hetzner_provisioner.engine.graph import build_graph
from hetzner_provisioner.engine.types import DeploymentResult, ResourceResult, ResourceStatus
from hetzner_provisioner.resources.base import ExecutionDomain, ResourceDescriptor


def _r(rid: str, status: ResourceStatus, **kw: str) -> ResourceResult:
    return ResourceResult(resource_id=rid, kind="test", status=status, **kw)


class TestStyler:
    def test_passthrough_without_color(self) -> None:
        assert styler(False)("text", fg="red", bold=True) == "text"

    def test_styles_with_color(self) -> None:
        assert "\x1b[" in styler(True)("text", fg="red")


class TestFormatPlan:
    def test_order_and_dependencies(self) -> None:
        graph = build_graph(
            [
                ResourceDescriptor(id="server", kind="hcloud_server"),
                ResourceDescriptor(
                    id="network",
                    kind="docker_network",
                    depends_on=frozenset({"server"}),
                    domain=ExecutionDomain.REMOTE,
                ),
            ]
        )

        assert format_plan(graph, color=False).splitlines() == [
            "  1. server (hcloud_server, local)",
            "  2. network (docker_network, remote)",
            "     after: server",
        ]


class TestFormatResultLine:
    def test_created(self) -> None:
        line = format_result_line(_r("server", ResourceStatus.CREATED), color=False)
        assert line == "  + server: created"

    def test_failed(self) -> None:
        result = _r("server", ResourceStatus.FAILED, error="quota exceeded", error_type="AdapterError")
        assert format_result_line(result, color=False) == (
            "  ! server: failed (AdapterError: quota exceeded)"
        )

    def test_skipped_names_upstream(self) -> None:
        result = _r("dns_record", ResourceStatus.SKIPPED, reason="upstream failure", upstream="server")
        assert format_result_line(result, color=False) == (
            "  ~ dns_record: skipped (upstream failure: server)"
        )

    def test_skipped_on_cancel(self) -> None:
        result = _r("app_container", ResourceStatus.SKIPPED, reason="run cancelled")
        assert format_result_line(result, color=False) == "  ~ app_container: skipped (run cancelled)"

    def test_deleted(self) -> None:
        assert format_result_line(_r("server", ResourceStatus.DELETED), color=False) == (
            "  - server: deleted"
        )


class TestFormatReport:
    def test_one_line_per_resource(self) -> None:
        result = DeploymentResult(
            results={
                "a": _r("a", ResourceStatus.CREATED),
                "b": _r("b", ResourceStatus.FAILED, error="x", error_type="E"),
            }
        )
        assert format_report(result, color=False).splitlines() == [
            "  + a: created",
            "  ! b: failed (E: x)",
        ]


class TestFormatSummary:
    def test_complete(self) -> None:
        result = DeploymentResult(results={"a": _r("a", ResourceStatus.CREATED)})
        assert format_summary(result, color=False) == (
            "Deploy complete! Resources: 1 created, 0 failed, 0 skipped."
        )

    def test_failed(self) -> None:
        result = DeploymentResult(
            results={
                "a": _r("a", ResourceStatus.FAILED, error="x", error_type="E"),
                "b": _r("b", ResourceStatus.SKIPPED, reason="upstream failure", upstream="a"),
            }
        )
        assert format_summary(result, color=False) == (
            "Deploy failed! Resources: 0 created, 1 failed, 1 skipped."
        )

    def test_cancelled(self) -> None:
        result = DeploymentResult(results={"a": _r("a", ResourceStatus.CREATED)}, cancelled=True)
        assert format_summary(result, color=False).startswith("Deploy cancelled.")

    def test_destroy_counts_deleted(self) -> None:
        result = DeploymentResult(results={"a": _r("a", ResourceStatus.DELETED)})
        assert format_summary(result, color=False, action="Destroy") == (
            "Destroy complete! Resources: 1 deleted, 0 failed, 0 skipped."
        )
