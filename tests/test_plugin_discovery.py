"""Tests for plugin discovery system with pluggy."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import make_plugin, make_settings

from skipsetup.config import PluginConfig
from skipsetup.plugin import collect_plugins, get_plugin_manager, hookimpl


class _ExtraPlugins:
    @hookimpl
    def skipsetup_plugins(self):
        return [make_plugin("sentry"), make_plugin("posthog")]


class _ShadowsStripe:
    @hookimpl
    def skipsetup_plugins(self):
        return [make_plugin("stripe")]


class TestPluginManager:
    """Tests for plugin manager initialization and discovery."""

    def test_plugin_manager_initialization(self):
        """Plugin manager initializes successfully."""
        pm = get_plugin_manager()
        assert pm is not None
        assert pm.project_name == "skipsetup"

    def test_built_in_providers_registered(self):
        pm = get_plugin_manager()
        names = {pm.get_name(p) for p in pm.get_plugins()}
        assert {"builtin-compose", "builtin-stripe"} <= names

    def test_plugin_manager_has_hookspecs(self):
        pm = get_plugin_manager()
        assert hasattr(pm.hook, "skipsetup_plugins")

    def test_disabled_provider_not_registered(self):
        s = make_settings(plugins={"stripe": PluginConfig(enabled=False)})
        pm = get_plugin_manager(s)
        names = {pm.get_name(p) for p in pm.get_plugins()}
        assert "builtin-stripe" not in names
        assert "builtin-compose" in names

    def test_entry_points_group_is_skipsetup(self):
        with patch(
            "pluggy.PluginManager.load_setuptools_entrypoints", return_value=0
        ) as mock_load:
            get_plugin_manager()
        mock_load.assert_called_once_with("skipsetup")

    def test_class_based_entry_point_unregistered(self):
        def _load(self, group):
            self.register(_ExtraPlugins, name="extra-class")
            return 1

        with patch(
            "pluggy.PluginManager.load_setuptools_entrypoints", autospec=True, side_effect=_load
        ):
            pm = get_plugin_manager()

        assert _ExtraPlugins not in pm.get_plugins()
        assert "sentry" not in collect_plugins(pm)


class TestCollectPlugins:
    """Flattening provider hooks into descriptors by id."""

    def test_builtin_plugin_ids(self):
        available = collect_plugins(get_plugin_manager())
        assert {"stripe", "compose", "postgres", "redis", "queue", "minio"} <= set(available)

    def test_descriptors_carry_dependencies(self):
        available = collect_plugins(get_plugin_manager())
        names = [d.name for d in available["stripe"].dependencies]
        assert names == ["stripe", "@stripe/react-stripe-js", "@tanstack/react-query"]

    def test_third_party_provider(self):
        pm = get_plugin_manager()
        pm.register(_ExtraPlugins(), name="extra")
        available = collect_plugins(pm)
        assert "sentry" in available
        assert "posthog" in available

    def test_duplicate_ids_rejected(self):
        pm = get_plugin_manager()
        pm.register(_ShadowsStripe(), name="shadow")
        with pytest.raises(ValueError, match="Duplicate plugin id 'stripe'"):
            collect_plugins(pm)

    def test_disabled_plugin_id_dropped(self):
        s = make_settings(plugins={"redis": PluginConfig(enabled=False)})
        available = collect_plugins(get_plugin_manager(s), s)
        assert "redis" not in available
        assert "postgres" in available

    def test_provider_returning_nothing(self):
        class _Empty:
            @hookimpl
            def skipsetup_plugins(self):
                return []

        pm = get_plugin_manager()
        pm.register(_Empty(), name="empty")
        assert "stripe" in collect_plugins(pm)
