"""Activation orchestrator: runs plugins in order against one target root.

Plugins run strictly sequentially in the order the caller supplies. The
first failure stops the loop: later plugins are reported ``skipped`` and no
dependencies are installed. Files already written by earlier plugins stay
on disk so the user can inspect them. When every plugin succeeds the
dependency merger runs exactly once.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from pathlib import Path

import structlog

from skipsetup.config import Settings, get_settings
from skipsetup.context import ActivationContext
from skipsetup.dependencies import DependencyMerger
from skipsetup.errors import (
    ActivationCancelled,
    ActivationError,
    DependencyConflict,
    InstallFailed,
    PluginActivationFailed,
    PreconditionFailed,
)
from skipsetup.fs_gateway import FilesystemGateway
from skipsetup.logger import logger, set_level
from skipsetup.package_manager import PackageManager, create_package_manager
from skipsetup.types import ActivationOutcome, ActivationReport, InstallResult, PluginDescriptor


class ActivationOrchestrator:
    """Top-level driver. One instance may run many times; each run is independent."""

    def __init__(
        self,
        *,
        package_manager: PackageManager | None = None,
        settings: Settings | None = None,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._package_manager = package_manager
        self._settings = settings
        self.cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Stop before the next plugin starts (in-flight writes still finish)."""
        self.cancel_event.set()

    def run(self, plugins: Sequence[PluginDescriptor], root_dir: Path | str) -> ActivationReport:
        _check_unique_ids(plugins)
        s = self._settings or get_settings()
        set_level(s.logging.level)

        gateway = FilesystemGateway(root_dir, io_timeout=s.engine.io_timeout_s)
        report = ActivationReport(root_dir=str(gateway.root))
        try:
            try:
                gateway.check_root()
            except PreconditionFailed as exc:
                logger.error("Target directory unusable", root=str(gateway.root), reason=exc.reason)
                report.error = exc
                report.outcomes = [ActivationOutcome(p.id, "skipped") for p in plugins]
                return report

            ctx = ActivationContext(
                gateway,
                max_workers=s.engine.max_workers,
                cancel_event=self.cancel_event,
            )
            logger.info(
                "Activation started", root=str(gateway.root), plugins=[p.id for p in plugins]
            )

            if not self._run_plugins(ctx, plugins, report):
                return report

            if ctx.cancelled:
                report.error = ActivationCancelled("cancel requested before dependency install")
                return report

            self._install_dependencies(ctx, s, report)
            return report
        finally:
            gateway.close()
            _log_summary(report)

    # --- plugin loop ---

    def _run_plugins(
        self,
        ctx: ActivationContext,
        plugins: Sequence[PluginDescriptor],
        report: ActivationReport,
    ) -> bool:
        for index, plugin in enumerate(plugins):
            if ctx.cancelled:
                report.error = ActivationCancelled(f"cancel requested before plugin '{plugin.id}'")
                report.outcomes.extend(ActivationOutcome(p.id, "skipped") for p in plugins[index:])
                logger.warning("Activation cancelled", next_plugin=plugin.id)
                return False

            outcome = activate_plugin(ctx, plugin)
            report.outcomes.append(outcome)
            if outcome.status == "failed":
                report.error = outcome.error
                report.failed_plugin = plugin.id
                report.outcomes.extend(
                    ActivationOutcome(p.id, "skipped") for p in plugins[index + 1 :]
                )
                return False
        return True

    # --- dependency pass ---

    def _install_dependencies(
        self,
        ctx: ActivationContext,
        s: Settings,
        report: ActivationReport,
    ) -> None:
        pm = self._package_manager or create_package_manager(ctx.root_dir, s.installer)
        merger = DependencyMerger(pm, backup_manifest=s.engine.manifest_backup)
        try:
            result = merger.reconcile(ctx.pending_dependencies)
        except ActivationError as exc:
            report.error = exc
            if isinstance(exc, DependencyConflict):
                report.failed_plugin = exc.plugin_id
            if isinstance(exc, InstallFailed):
                report.install = InstallResult(
                    command=exc.command,
                    requirements=exc.requirements,
                    returncode=exc.returncode if exc.returncode is not None else -1,
                    stdout=exc.stdout,
                    stderr=exc.stderr,
                )
            logger.error("Dependency pass failed", error_type=type(exc).__name__, error=str(exc))
            return

        report.installed = result.to_install
        report.already_satisfied = result.already_satisfied
        report.install = result.install
        report.success = True


def activate_plugin(ctx: ActivationContext, plugin: PluginDescriptor) -> ActivationOutcome:
    """Run one plugin's activate procedure and classify the result.

    Engine errors raised inside the plugin keep their type; anything else is
    wrapped in PluginActivationFailed. A create the plugin left on foreign
    content without overwriting it fails the plugin with PathCollision. A
    plugin whose operations were all already present is
    ``noop_already_applied``.
    """
    ctx.begin_plugin(plugin.id)
    error: ActivationError | None = None
    with structlog.contextvars.bound_contextvars(plugin=plugin.id):
        try:
            plugin.activate(ctx)
            ctx.check_collisions(plugin.id)
        except ActivationError as exc:
            error = exc
        except KeyboardInterrupt:
            ctx.cancel_event.set()
            error = ActivationCancelled("interrupted")
        except Exception as exc:
            logger.exception("Plugin raised")
            error = PluginActivationFailed(plugin.id, exc)

        operations = ctx.operations(plugin.id)
        if error is not None:
            ctx.abandon_plugin()
            logger.error(
                "Plugin failed",
                error_type=type(error).__name__,
                error=str(error),
                written=[op.path for op in operations if op.changed],
            )
            return ActivationOutcome(plugin.id, "failed", operations, error)

        ctx.commit_plugin(plugin.id, plugin.dependencies)
        status = "applied" if any(op.changed for op in operations) else "noop_already_applied"
        logger.info("Plugin finished", status=status, operations=len(operations))
        return ActivationOutcome(plugin.id, status, operations)


def run(
    plugins: Sequence[PluginDescriptor],
    root_dir: Path | str,
    *,
    package_manager: PackageManager | None = None,
    settings: Settings | None = None,
    cancel_event: threading.Event | None = None,
) -> ActivationReport:
    """Apply ``plugins`` to ``root_dir`` in order and return the report."""
    orchestrator = ActivationOrchestrator(
        package_manager=package_manager,
        settings=settings,
        cancel_event=cancel_event,
    )
    return orchestrator.run(plugins, root_dir)


def _check_unique_ids(plugins: Sequence[PluginDescriptor]) -> None:
    seen: set[str] = set()
    for plugin in plugins:
        if plugin.id in seen:
            raise ValueError(f"Duplicate plugin id in run: {plugin.id!r}")
        seen.add(plugin.id)


def _log_summary(report: ActivationReport) -> None:
    statuses = {o.plugin_id: o.status for o in report.outcomes}
    if report.success:
        logger.info("Activation complete", plugins=statuses, installed=report.installed)
    else:
        logger.error(
            "Activation failed",
            plugins=statuses,
            failed_plugin=report.failed_plugin,
            error_type=type(report.error).__name__ if report.error else None,
        )
