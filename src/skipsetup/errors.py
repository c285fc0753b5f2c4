"""Typed errors raised by the activation engine.

Every failure the orchestrator can report is one of these classes, so the
report (and the CLI rendering it) can tell a collision from a missing anchor
without parsing messages.
"""

from __future__ import annotations

from collections.abc import Sequence


class ActivationError(Exception):
    """Base class for every engine failure."""


class PreconditionFailed(ActivationError):
    """The target root directory is missing, not a directory, or unwritable."""

    def __init__(self, root: str, reason: str) -> None:
        self.root = root
        self.reason = reason
        super().__init__(f"Target directory {root} is unusable: {reason}")


class PathOutsideRoot(ActivationError):
    """A relative path resolved outside the target root."""

    def __init__(self, path: str, root: str) -> None:
        self.path = path
        self.root = root
        super().__init__(f"Path {path!r} escapes target root {root}")


class PathCollision(ActivationError):
    """A Create operation hit a file this plugin did not create in this run."""

    def __init__(self, path: str, plugin_id: str | None, owner: str | None = None) -> None:
        self.path = path
        self.plugin_id = plugin_id
        self.owner = owner
        if owner:
            detail = f"already created by plugin '{owner}' in this run"
        else:
            detail = "already exists with different content"
        super().__init__(f"Cannot create {path}: {detail}")


class AnchorNotFound(ActivationError):
    """A patch target is missing, or does not contain its anchor."""

    def __init__(self, path: str, anchor: str) -> None:
        self.path = path
        self.anchor = anchor
        super().__init__(f"Anchor {anchor!r} not found in {path}")


class InvalidRequirement(ActivationError, ValueError):
    """A dependency requirement or version range could not be parsed."""


class DependencyConflict(ActivationError):
    """Two or more plugins require non-overlapping ranges of the same package."""

    def __init__(
        self,
        name: str,
        constraints: Sequence[tuple[str, str]],
        *,
        plugin_id: str | None = None,
    ) -> None:
        self.name = name
        # (plugin_id, range) pairs, in declaration order
        self.constraints = list(constraints)
        # plugin whose requirement emptied the intersection
        self.plugin_id = plugin_id
        detail = ", ".join(f"{plugin} wants {rng!r}" for plugin, rng in self.constraints)
        super().__init__(f"Conflicting requirements for {name}: {detail}")

    @property
    def plugin_ids(self) -> list[str]:
        return [plugin for plugin, _ in self.constraints]


class InstallFailed(ActivationError):
    """The package manager exited non-zero (or could not be started)."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        requirements: list[str] | None = None,
        returncode: int | None = None,
        stdout: str = "",
        stderr: str = "",
    ) -> None:
        self.command = list(command or [])
        self.requirements = list(requirements or [])
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(message)


class ActivationTimeout(ActivationError, TimeoutError):
    """A filesystem call or the installer ran past its deadline."""

    def __init__(self, operation: str, timeout: float) -> None:
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s")


# Short alias matching the taxonomy name used in reports.
Timeout = ActivationTimeout


class ActivationCancelled(ActivationError):
    """The run was cancelled (user interrupt) before all plugins ran."""

    def __init__(self, reason: str = "cancelled") -> None:
        self.reason = reason
        super().__init__(f"Activation cancelled: {reason}")


class PluginActivationFailed(ActivationError):
    """Plugin code raised something that is not an engine error."""

    def __init__(self, plugin_id: str, cause: BaseException) -> None:
        self.plugin_id = plugin_id
        self.cause = cause
        super().__init__(f"Plugin '{plugin_id}' failed: {type(cause).__name__}: {cause}")
