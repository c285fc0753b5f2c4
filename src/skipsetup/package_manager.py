"""Package manager boundary.

The engine only needs two things from a package manager: which names the
target manifest already declares, and a single batched install call. The
install shells out to the configured command (``pnpm add ...``,
``uv add ...``) which also updates the manifest itself.
"""

from __future__ import annotations

import json
import subprocess
import tomllib
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Protocol, runtime_checkable

from packaging.requirements import InvalidRequirement as InvalidPep508
from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from skipsetup.config import InstallerConfig
from skipsetup.errors import ActivationTimeout, InstallFailed
from skipsetup.logger import logger
from skipsetup.types import InstallResult
from skipsetup.versions import RangeStyle

_NODE_DEP_SECTIONS = (
    "dependencies",
    "devDependencies",
    "peerDependencies",
    "optionalDependencies",
)

# Commands whose "add a dependency" verb is not "add"
_NODE_ADD_VERB = {"npm": "install"}
_NODE_DEV_FLAG = {"npm": "--save-dev"}
_PYTHON_DEV_FLAG = {"uv": ["--dev"], "poetry": ["--group", "dev"], "pdm": ["-d"]}


@runtime_checkable
class PackageManager(Protocol):
    """What the dependency merger needs from a package manager.

    Attributes:
        style: how requirement ranges are rendered ("node" or "python")
        manifest_path: the dependency declaration file under the target root
    """

    style: RangeStyle
    manifest_path: Path

    def installed(self, names: Iterable[str]) -> set[str]:
        """Return the subset of ``names`` the manifest already declares."""
        ...

    def install(self, requirements: Sequence[str]) -> InstallResult:
        """Install ``requirements`` in one invocation.

        Raises:
            InstallFailed: non-zero exit or the command could not start
            ActivationTimeout: the command ran past its timeout
        """
        ...


class CommandPackageManager:
    """Shared subprocess plumbing for command-line package managers."""

    style: RangeStyle = "node"
    manifest_name = ""

    def __init__(
        self,
        root: Path | str,
        *,
        command: str,
        timeout: float = 300.0,
        dev: bool = False,
    ) -> None:
        self.root = Path(root)
        self.command = command
        self.timeout = timeout
        self.dev = dev
        self.manifest_path = self.root / self.manifest_name

    def install_command(self, requirements: Sequence[str]) -> list[str]:
        raise NotImplementedError

    def declared_names(self) -> set[str]:
        raise NotImplementedError

    def installed(self, names: Iterable[str]) -> set[str]:
        declared = self.declared_names()
        return {name for name in names if self._key(name) in declared}

    def _key(self, name: str) -> str:
        return name

    def install(self, requirements: Sequence[str]) -> InstallResult:
        cmd = self.install_command(requirements)
        logger.info("Installing dependencies", command=cmd[0], count=len(requirements))
        try:
            result = subprocess.run(
                cmd,
                cwd=str(self.root),
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise ActivationTimeout(f"{self.command} install", self.timeout) from None
        except OSError as exc:
            raise InstallFailed(
                f"Could not run {self.command}: {exc}",
                command=cmd,
                requirements=list(requirements),
            ) from exc

        stdout = result.stdout or ""
        stderr = result.stderr or ""
        logger.debug("Installer output", stdout=stdout[-2000:], stderr=stderr[-2000:])
        if result.returncode != 0:
            raise InstallFailed(
                f"{' '.join(cmd[:2])} failed (exit {result.returncode}): {stderr.strip()[-500:]}",
                command=cmd,
                requirements=list(requirements),
                returncode=result.returncode,
                stdout=stdout,
                stderr=stderr,
            )
        return InstallResult(
            command=cmd,
            requirements=list(requirements),
            returncode=result.returncode,
            stdout=stdout,
            stderr=stderr,
        )


class NodePackageManager(CommandPackageManager):
    """pnpm / npm / yarn / bun against ``package.json``."""

    style: RangeStyle = "node"
    manifest_name = "package.json"

    def __init__(self, root: Path | str, *, command: str = "pnpm", **kwargs) -> None:
        super().__init__(root, command=command, **kwargs)

    def install_command(self, requirements: Sequence[str]) -> list[str]:
        cmd = [self.command, _NODE_ADD_VERB.get(self.command, "add")]
        if self.dev:
            cmd.append(_NODE_DEV_FLAG.get(self.command, "-D"))
        return [*cmd, *requirements]

    def declared_names(self) -> set[str]:
        if not self.manifest_path.exists():
            return set()
        try:
            data = json.loads(self.manifest_path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise InstallFailed(f"Cannot read {self.manifest_path.name}: {exc}") from exc
        if not isinstance(data, dict):
            raise InstallFailed(f"{self.manifest_path.name} must contain a JSON object")
        names: set[str] = set()
        for section in _NODE_DEP_SECTIONS:
            deps = data.get(section)
            if isinstance(deps, dict):
                names.update(deps)
        return names


class PythonPackageManager(CommandPackageManager):
    """uv / poetry / pdm against ``pyproject.toml``."""

    style: RangeStyle = "python"
    manifest_name = "pyproject.toml"

    def __init__(self, root: Path | str, *, command: str = "uv", **kwargs) -> None:
        super().__init__(root, command=command, **kwargs)

    def install_command(self, requirements: Sequence[str]) -> list[str]:
        cmd = [self.command, "add"]
        if self.dev:
            cmd.extend(_PYTHON_DEV_FLAG.get(self.command, ["--dev"]))
        return [*cmd, *requirements]

    def _key(self, name: str) -> str:
        return canonicalize_name(name)

    def declared_names(self) -> set[str]:
        if not self.manifest_path.exists():
            return set()
        try:
            with open(self.manifest_path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise InstallFailed(f"Cannot read {self.manifest_path.name}: {exc}") from exc

        try:
            project = data.get("project", {})
            specs: list[str] = list(project.get("dependencies", []))
            for group in project.get("optional-dependencies", {}).values():
                specs.extend(group)
            for group in data.get("dependency-groups", {}).values():
                specs.extend(s for s in group if isinstance(s, str))
        except (AttributeError, TypeError) as exc:
            name = self.manifest_path.name
            raise InstallFailed(f"Malformed dependency tables in {name}") from exc

        names: set[str] = set()
        for spec in specs:
            try:
                names.add(canonicalize_name(Requirement(spec).name))
            except InvalidPep508:
                logger.warning("Ignoring unparsable manifest requirement", requirement=spec)
        return names


def create_package_manager(root: Path | str, config: InstallerConfig) -> CommandPackageManager:
    """Build the package manager described by ``[installer]`` settings."""
    cls = NodePackageManager if config.kind == "node" else PythonPackageManager
    return cls(root, command=config.command, timeout=config.timeout_s, dev=config.dev)
