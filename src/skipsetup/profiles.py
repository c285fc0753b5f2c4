"""Project profiles: named, ordered plugin lists plus feature modules.

A profile is what the CLI turns a ``--size`` flag into. Order matters:
plugins that patch a file come after the plugin that creates it.
Entries under ``[profiles.<name>]`` in skipsetup.toml replace built-ins of
the same name or add new ones.
"""

from __future__ import annotations

from collections.abc import Mapping

from skipsetup.config import ProfileConfig, Settings, get_settings
from skipsetup.plugins.modules import profile_plugins
from skipsetup.types import PluginDescriptor

BUILTIN_PROFILES: dict[str, ProfileConfig] = {
    "small": ProfileConfig(
        description="Minimal MVP: Auth + DB basics.",
        plugins=[],
        modules=["auth", "db", "email-resend"],
    ),
    "medium": ProfileConfig(
        description="SaaS-ready: Admin + monitoring.",
        plugins=["compose", "postgres", "redis", "stripe"],
        modules=["auth", "db", "admin", "stripe", "email", "monitoring-dashboard"],
    ),
    "large": ProfileConfig(
        description="Enterprise: Orgs + scale.",
        plugins=["compose", "postgres", "redis", "queue", "minio", "stripe"],
        modules=["auth", "db", "admin", "orgs", "payments", "monitoring"],
    ),
}


def available_profiles(settings: Settings | None = None) -> dict[str, ProfileConfig]:
    s = settings or get_settings()
    return {**BUILTIN_PROFILES, **s.profiles}


def get_profile(name: str, settings: Settings | None = None) -> ProfileConfig:
    """Look up a profile by name.

    Raises:
        KeyError: unknown profile (message lists the valid names)
    """
    profiles = available_profiles(settings)
    try:
        return profiles[name]
    except KeyError:
        raise KeyError(f"Unknown profile {name!r}. Must be one of: {sorted(profiles)}") from None


def resolve_plugins(
    profile: ProfileConfig,
    available: Mapping[str, PluginDescriptor],
    *,
    name: str | None = None,
) -> list[PluginDescriptor]:
    """Map a profile's plugin ids to descriptors, keeping profile order.

    The module stubs plugin (when the profile lists modules) and, if ``name``
    is given, the profile record plugin follow the profile's own plugins.
    """
    missing = [pid for pid in profile.plugins if pid not in available]
    if missing:
        raise KeyError(f"Profile references unknown plugins: {missing}")
    return [available[pid] for pid in profile.plugins] + profile_plugins(profile, name)
