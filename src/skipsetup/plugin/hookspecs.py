"""Pluggy hook specifications for skipsetup plugins.

All hooks use the "skipsetup" namespace and are validated by pluggy at
registration time.
"""

from __future__ import annotations

import pluggy

from skipsetup.types import PluginDescriptor

hookspec = pluggy.HookspecMarker("skipsetup")
hookimpl = pluggy.HookimplMarker("skipsetup")


class SkipsetupSpec:
    """Hook specifications for skipsetup plugins.

    A single registered object can contribute several plugin descriptors.
    """

    @hookspec
    def skipsetup_plugins(self) -> list[PluginDescriptor]:
        """Provide plugin descriptors.

        Each descriptor carries a unique ``id``, the dependencies it needs
        and an ``activate(ctx)`` procedure that writes files and patches
        through the ActivationContext.

        Returns:
            List of PluginDescriptor objects (may be empty)
        """
