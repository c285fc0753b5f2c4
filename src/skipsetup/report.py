"""Plain-text rendering of an ActivationReport for the CLI."""

from __future__ import annotations

from skipsetup.types import ActivationReport

_STATUS_LABELS = {
    "applied": "applied",
    "noop_already_applied": "already applied",
    "failed": "FAILED",
    "skipped": "skipped",
}


def format_report(report: ActivationReport) -> str:
    lines = [f"Target: {report.root_dir}"]
    width = max((len(o.plugin_id) for o in report.outcomes), default=0)
    for outcome in report.outcomes:
        changed = sum(1 for op in outcome.operations if op.changed)
        label = _STATUS_LABELS[outcome.status]
        suffix = f" ({changed} changed)" if changed else ""
        lines.append(f"  {outcome.plugin_id.ljust(width)}  {label}{suffix}")

    if report.installed:
        lines.append(f"Installed: {', '.join(report.installed)}")
    if report.already_satisfied:
        lines.append(f"Already declared: {', '.join(report.already_satisfied)}")

    if report.success:
        lines.append("Activation succeeded.")
        return "\n".join(lines)

    lines.append("Activation FAILED.")
    if report.failed_plugin:
        lines.append(f"Failing plugin: {report.failed_plugin}")
    if report.error is not None:
        lines.append(f"Error: {type(report.error).__name__}: {report.error}")

    written = report.written_paths()
    if written:
        lines.append("Files written before the failure (inspect or clean up):")
        lines.extend(f"  {path}" for path in written)

    if report.install is not None and (report.install.stdout or report.install.stderr):
        lines.append(f"Installer exit status: {report.install.returncode}")
        if report.install.stdout.strip():
            lines.append("Installer stdout:")
            lines.append(report.install.stdout.rstrip())
        if report.install.stderr.strip():
            lines.append("Installer stderr:")
            lines.append(report.install.stderr.rstrip())
    return "\n".join(lines)
