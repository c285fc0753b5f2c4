"""skipsetup: plugin activation engine for project scaffolding.

Usage::

    from skipsetup import run
    from skipsetup.plugin import collect_plugins, get_plugin_manager
    from skipsetup.profiles import get_profile, resolve_plugins

    available = collect_plugins(get_plugin_manager())
    plugins = resolve_plugins(get_profile("medium"), available, name="medium")
    report = run(plugins, "./my-app")
"""

from skipsetup.context import ActivationContext
from skipsetup.orchestrator import ActivationOrchestrator, run
from skipsetup.types import (
    ActivationOutcome,
    ActivationReport,
    DependencyRequirement,
    FileOperation,
    PatchOperation,
    PluginDescriptor,
)

__all__ = [
    "ActivationContext",
    "ActivationOrchestrator",
    "ActivationOutcome",
    "ActivationReport",
    "DependencyRequirement",
    "FileOperation",
    "PatchOperation",
    "PluginDescriptor",
    "run",
]
