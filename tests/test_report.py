"""Tests for report rendering and serialization."""

from __future__ import annotations

from skipsetup.errors import AnchorNotFound, InstallFailed
from skipsetup.report import format_report
from skipsetup.types import ActivationOutcome, ActivationReport, InstallResult, OperationRecord


def _op(plugin: str, path: str, changed: bool = True) -> OperationRecord:
    return OperationRecord(plugin, "file", path, "create", changed)


class TestFormatReport:
    """Plain-text report rendering."""

    def test_success(self):
        report = ActivationReport(
            root_dir="/tmp/app",
            outcomes=[
                ActivationOutcome("compose", "applied", [_op("compose", "docker-compose.yml")]),
                ActivationOutcome("stripe", "noop_already_applied"),
            ],
            success=True,
            installed=["stripe@^16.12.0"],
            already_satisfied=["zod"],
        )

        text = format_report(report)

        assert "Target: /tmp/app" in text
        assert "compose  applied (1 changed)" in text
        assert "stripe   already applied" in text
        assert "Installed: stripe@^16.12.0" in text
        assert "Already declared: zod" in text
        assert text.endswith("Activation succeeded.")

    def test_plugin_failure_lists_written_files(self):
        error = AnchorNotFound("src/server/api/root.ts", "appRouter")
        report = ActivationReport(
            root_dir="/tmp/app",
            outcomes=[
                ActivationOutcome("compose", "applied", [_op("compose", "docker-compose.yml")]),
                ActivationOutcome(
                    "stripe", "failed", [_op("stripe", "src/utils/stripe.ts")], error
                ),
                ActivationOutcome("redis", "skipped"),
            ],
            error=error,
            failed_plugin="stripe",
        )

        text = format_report(report)

        assert "Activation FAILED." in text
        assert "Failing plugin: stripe" in text
        assert "Error: AnchorNotFound: Anchor 'appRouter' not found" in text
        assert "  docker-compose.yml" in text
        assert "  src/utils/stripe.ts" in text
        assert "redis" in text and "skipped" in text
        assert "succeeded" not in text

    def test_install_failure_shows_output(self):
        report = ActivationReport(
            root_dir="/tmp/app",
            outcomes=[ActivationOutcome("stripe", "noop_already_applied")],
            error=InstallFailed("pnpm add failed (exit 1): 404", returncode=1),
            install=InstallResult(
                command=["pnpm", "add", "stripe"],
                requirements=["stripe"],
                returncode=1,
                stdout="Progress: resolved 1\n",
                stderr="ERR_PNPM_FETCH_404\n",
            ),
        )

        text = format_report(report)

        assert "Installer exit status: 1" in text
        assert "Progress: resolved 1" in text
        assert "ERR_PNPM_FETCH_404" in text


class TestToDict:
    """JSON-ready report serialization."""

    def test_serializes_errors_and_install(self):
        error = AnchorNotFound("a.ts", "x")
        report = ActivationReport(
            root_dir="/tmp/app",
            outcomes=[ActivationOutcome("p", "failed", [_op("p", "a.ts", False)], error)],
            error=error,
            failed_plugin="p",
            install=InstallResult(["pnpm", "add"], [], 0),
        )

        data = report.to_dict()

        assert data["success"] is False
        assert data["error"] == {"type": "AnchorNotFound", "message": str(error)}
        assert data["plugins"][0]["operations"] == [
            {"kind": "file", "path": "a.ts", "action": "create", "changed": False}
        ]
        assert data["install"]["command"] == ["pnpm", "add"]

    def test_outcome_reason(self):
        assert ActivationOutcome("p", "applied").reason is None
        error = AnchorNotFound("a.ts", "x")
        assert ActivationOutcome("p", "failed", error=error).reason == str(error)

    def test_written_paths_dedupes(self):
        report = ActivationReport(
            root_dir="/r",
            outcomes=[
                ActivationOutcome("a", "applied", [_op("a", "x"), _op("a", "y", False)]),
                ActivationOutcome("b", "applied", [_op("b", "x")]),
            ],
        )
        assert report.written_paths() == ["x"]
