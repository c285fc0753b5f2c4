"""Plugin discovery for skipsetup.

Built on pluggy (pytest's plugin framework). Built-in plugins come from a
static registry; third-party packages register objects under the
``skipsetup`` entry-point group in their pyproject.toml.

Usage:
    from skipsetup.plugin import collect_plugins, get_plugin_manager

    pm = get_plugin_manager()
    available = collect_plugins(pm)  # {plugin_id: PluginDescriptor}
"""

from __future__ import annotations

import importlib

import pluggy

from skipsetup.config import Settings, get_settings
from skipsetup.logger import logger
from skipsetup.plugin.hookspecs import SkipsetupSpec, hookimpl
from skipsetup.types import PluginDescriptor

__all__ = [
    "collect_plugins",
    "get_plugin_manager",
    "hookimpl",
]

# Static registry of built-in plugin providers.
# Each entry: (module_path, class_name, config_key)
# config_key is checked against [plugins.<key>].enabled in skipsetup.toml.
_BUILTIN_PLUGIN_SPECS: list[tuple[str, str, str]] = [
    ("skipsetup.plugins.compose", "ComposePlugins", "compose"),
    ("skipsetup.plugins.stripe", "StripePlugin", "stripe"),
]


def get_plugin_manager(settings: Settings | None = None) -> pluggy.PluginManager:
    """Create and configure the plugin manager.

    Discovers plugin providers from the static registry and entry points.
    All hook specifications are validated at registration time.

    Returns:
        Configured PluginManager ready to call hooks
    """
    pm = pluggy.PluginManager("skipsetup")
    pm.add_hookspecs(SkipsetupSpec)

    s = settings or get_settings()

    for module_path, class_name, config_key in _BUILTIN_PLUGIN_SPECS:
        if not s.plugin_enabled(config_key):
            logger.info("Plugin disabled via config", plugin=config_key)
            continue
        mod = importlib.import_module(module_path)
        cls = getattr(mod, class_name)
        pm.register(cls(), name=f"builtin-{config_key}")
        logger.debug("Registered built-in plugin", name=config_key)

    discovered = pm.load_setuptools_entrypoints("skipsetup")
    if discovered:
        logger.info("Discovered third-party plugins", count=discovered)

    # Entry points may resolve to plugin classes instead of instances,
    # which then fail hook invocation with missing `self`.
    for plugin in list(pm.get_plugins()):
        if isinstance(plugin, type):
            plugin_name = pm.get_name(plugin) or plugin.__name__
            pm.unregister(plugin=plugin)
            logger.warning("Unregistered invalid class-based plugin object", plugin=plugin_name)

    logger.debug("Plugin manager ready", providers=[pm.get_name(p) for p in pm.get_plugins()])
    return pm


def collect_plugins(
    pm: pluggy.PluginManager,
    settings: Settings | None = None,
) -> dict[str, PluginDescriptor]:
    """Gather every descriptor from every provider, keyed by plugin id.

    Descriptors whose id is disabled in settings are dropped.

    Raises:
        ValueError: two providers supplied the same plugin id
    """
    s = settings or get_settings()
    available: dict[str, PluginDescriptor] = {}
    for batch in pm.hook.skipsetup_plugins():
        for descriptor in batch or []:
            if descriptor.id in available:
                raise ValueError(f"Duplicate plugin id {descriptor.id!r}")
            if not s.plugin_enabled(descriptor.id):
                logger.info("Plugin disabled via config", plugin=descriptor.id)
                continue
            available[descriptor.id] = descriptor
    return available
