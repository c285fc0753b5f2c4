"""Profile-derived plugins: feature module stubs and the profile record.

Unlike the compose and stripe plugins these are not registered through
pluggy; they are built from a profile by :func:`profile_plugins` and
appended after the profile's own plugins.
"""

from __future__ import annotations

import json

from skipsetup.config import ProfileConfig
from skipsetup.context import ActivationContext
from skipsetup.types import FileOperation, PluginDescriptor

MODULES_DIR = "src/modules"
PROFILE_FILE = "skipsetup.json"

MODULE_STUB = """\
// {module} module stub
// Add your {module} implementation here
export function {function}() {{
  return "{module} module";
}}
"""


def module_function_name(module: str) -> str:
    """``email-resend`` -> ``emailResend``."""
    head, *rest = module.split("-")
    return head + "".join(part.capitalize() for part in rest)


def module_stub(module: str) -> str:
    return MODULE_STUB.format(module=module, function=module_function_name(module))


def module_stubs_plugin(modules: list[str]) -> PluginDescriptor:
    def activate(ctx: ActivationContext) -> None:
        ctx.write_many(
            [FileOperation(f"{MODULES_DIR}/{module}.ts", module_stub(module)) for module in modules]
        )

    return PluginDescriptor(
        id="modules",
        activate=activate,
        description=f"Module stubs under {MODULES_DIR}/",
    )


def profile_record(name: str, profile: ProfileConfig) -> str:
    return json.dumps({"profile": name, **profile.model_dump()}, indent=2) + "\n"


def profile_config_plugin(name: str, profile: ProfileConfig) -> PluginDescriptor:
    content = profile_record(name, profile)

    def activate(ctx: ActivationContext) -> None:
        ctx.write(PROFILE_FILE, content, "overwrite")

    return PluginDescriptor(
        id="profile-config",
        activate=activate,
        description=f"Record of the applied profile in {PROFILE_FILE}",
    )


def profile_plugins(profile: ProfileConfig, name: str | None = None) -> list[PluginDescriptor]:
    """Plugins a profile implies beyond its plugin list."""
    plugins: list[PluginDescriptor] = []
    if profile.modules:
        plugins.append(module_stubs_plugin(list(profile.modules)))
    if name is not None:
        plugins.append(profile_config_plugin(name, profile))
    return plugins
