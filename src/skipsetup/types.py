"""Data models for the activation engine."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from skipsetup.errors import ActivationError, InvalidRequirement

if TYPE_CHECKING:
    from skipsetup.context import ActivationContext

WriteMode = Literal["create", "overwrite", "append_if_missing"]
PatchPosition = Literal["after", "before"]
PluginStatus = Literal["applied", "noop_already_applied", "failed", "skipped"]

WRITE_MODES: frozenset[str] = frozenset({"create", "overwrite", "append_if_missing"})

# name followed by a PEP 440-ish operator, e.g. "requests>=2,<3"
_PY_REQ_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)\s*((?:[<>=!~^]|\d).*)?$")


@dataclass(frozen=True)
class DependencyRequirement:
    name: str
    version_range: str | None = None  # None = any version

    @classmethod
    def parse(cls, spec: str) -> DependencyRequirement:
        """Parse ``stripe@^16.12.0``, ``@scope/pkg@~2.1.0`` or ``requests>=2,<3``."""
        value = spec.strip()
        if not value:
            raise InvalidRequirement("Empty dependency requirement")

        if value.startswith("@"):
            # Scoped npm package: the version separator is the second "@"
            at = value.find("@", 1)
            if at == -1:
                return cls(value)
            return cls(value[:at], value[at + 1 :].strip() or None)
        if "@" in value:
            name, _, rng = value.partition("@")
            return cls(name.strip(), rng.strip() or None)

        match = _PY_REQ_RE.match(value)
        if match is None:
            raise InvalidRequirement(f"Cannot parse dependency requirement {spec!r}")
        name, rng = match.group(1), match.group(2)
        return cls(name, rng.strip() if rng else None)

    def __str__(self) -> str:
        return f"{self.name}@{self.version_range}" if self.version_range else self.name


@dataclass(frozen=True)
class FileOperation:
    path: str  # relative to the target root
    content: bytes
    mode: WriteMode = "create"

    def __post_init__(self) -> None:
        if isinstance(self.content, str):
            object.__setattr__(self, "content", self.content.encode("utf-8"))
        if self.mode not in WRITE_MODES:
            raise ValueError(
                f"Invalid write mode {self.mode!r}. Must be one of: {sorted(WRITE_MODES)}"
            )


@dataclass(frozen=True)
class PatchOperation:
    target_path: str
    anchor: str | re.Pattern[str]
    insertion: str
    idempotency_token: str
    position: PatchPosition = "after"
    optional: bool = False  # missing anchor becomes a no-op instead of an error

    def __post_init__(self) -> None:
        if not self.idempotency_token:
            raise ValueError("PatchOperation requires a non-empty idempotency_token")
        if self.position not in ("after", "before"):
            raise ValueError(f"Invalid patch position {self.position!r}")

    @property
    def anchor_text(self) -> str:
        if isinstance(self.anchor, re.Pattern):
            return self.anchor.pattern
        return self.anchor


@dataclass(frozen=True)
class OperationRecord:
    """One committed (or confirmed already-present) file or patch operation."""

    plugin_id: str
    kind: Literal["file", "patch"]
    path: str
    action: str  # write mode for files, "patch" for patches
    changed: bool  # False = already applied, nothing written


@dataclass
class ActivationOutcome:
    plugin_id: str
    status: PluginStatus
    operations: list[OperationRecord] = field(default_factory=list)
    error: ActivationError | None = None

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error is not None else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_id": self.plugin_id,
            "status": self.status,
            "operations": [
                {
                    "kind": op.kind,
                    "path": op.path,
                    "action": op.action,
                    "changed": op.changed,
                }
                for op in self.operations
            ],
            "error": _error_dict(self.error),
        }


@dataclass
class InstallResult:
    """Captured result of the single batched installer invocation."""

    command: list[str]
    requirements: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""


@dataclass
class ActivationReport:
    root_dir: str
    outcomes: list[ActivationOutcome] = field(default_factory=list)
    success: bool = False
    error: ActivationError | None = None
    failed_plugin: str | None = None
    installed: list[str] = field(default_factory=list)  # requirement strings handed to installer
    already_satisfied: list[str] = field(default_factory=list)
    install: InstallResult | None = None

    def outcome(self, plugin_id: str) -> ActivationOutcome:
        for item in self.outcomes:
            if item.plugin_id == plugin_id:
                return item
        raise KeyError(plugin_id)

    def written_paths(self) -> list[str]:
        """Paths actually changed on disk during this run, in write order."""
        seen: dict[str, None] = {}
        for item in self.outcomes:
            for op in item.operations:
                if op.changed:
                    seen.setdefault(op.path, None)
        return list(seen)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "root_dir": self.root_dir,
            "success": self.success,
            "failed_plugin": self.failed_plugin,
            "error": _error_dict(self.error),
            "plugins": [item.to_dict() for item in self.outcomes],
            "installed": list(self.installed),
            "already_satisfied": list(self.already_satisfied),
            "install": None,
        }
        if self.install is not None:
            data["install"] = {
                "command": list(self.install.command),
                "requirements": list(self.install.requirements),
                "returncode": self.install.returncode,
                "stdout": self.install.stdout,
                "stderr": self.install.stderr,
            }
        return data


def _error_dict(error: ActivationError | None) -> dict[str, str] | None:
    if error is None:
        return None
    return {"type": type(error).__name__, "message": str(error)}


@dataclass(frozen=True)
class PluginDescriptor:
    """A plugin as seen by the orchestrator.

    ``activate`` receives the run's ActivationContext and performs all of its
    file writes and patches through it. Its return value is ignored; raising
    fails the plugin (and the run).
    """

    id: str
    activate: Callable[[ActivationContext], Any]
    dependencies: tuple[DependencyRequirement, ...] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if not self.id:
            raise ValueError("Plugin must have an id")
        deps = tuple(
            DependencyRequirement.parse(d) if isinstance(d, str) else d for d in self.dependencies
        )
        object.__setattr__(self, "dependencies", deps)
