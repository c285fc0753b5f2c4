"""Shared test fixtures for skipsetup."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path

import pytest

from skipsetup.types import DependencyRequirement, InstallResult, PluginDescriptor

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures — importable by test files)
# ---------------------------------------------------------------------------


def make_settings(**overrides):
    """Create a Settings object with sensible defaults for testing.

    Usage::

        s = make_settings(engine=EngineConfig(max_workers=1))
        s = make_settings(plugins={"stripe": PluginConfig(enabled=False)})
    """
    from skipsetup.config import (
        EngineConfig,
        InstallerConfig,
        LoggingConfig,
        Settings,
    )

    defaults = {
        "engine": EngineConfig(),
        "installer": InstallerConfig(),
        "logging": LoggingConfig(),
        "plugins": {},
        "profiles": {},
    }
    defaults.update(overrides)
    return Settings.model_construct(**defaults)


def make_plugin(plugin_id: str, activate=None, dependencies: Sequence[str] = ()):
    """PluginDescriptor with a do-nothing activate unless one is given."""
    return PluginDescriptor(
        id=plugin_id,
        activate=activate or (lambda ctx: None),
        dependencies=tuple(dependencies),
    )


def snapshot_tree(root: Path) -> dict[str, bytes]:
    """Every file under ``root`` keyed by relative POSIX path."""
    files = (p for p in sorted(root.rglob("*")) if p.is_file())
    return {p.relative_to(root).as_posix(): p.read_bytes() for p in files}


class FakePackageManager:
    """In-memory package manager that records install calls.

    A successful install writes the requirement names into ``package.json``
    the way ``pnpm add`` would, so a second run sees them as declared.
    """

    style = "node"

    def __init__(
        self,
        root: Path,
        declared: Iterable[str] = (),
        *,
        fail: Exception | None = None,
        style: str = "node",
    ) -> None:
        self.root = root
        self.manifest_path = root / "package.json"
        self.declared = set(declared)
        self.fail = fail
        self.style = style
        self.calls: list[list[str]] = []

    def installed(self, names: Iterable[str]) -> set[str]:
        return {name for name in names if name in self.declared}

    def install(self, requirements: Sequence[str]) -> InstallResult:
        self.calls.append(list(requirements))
        if self.fail is not None:
            raise self.fail
        for spec in requirements:
            self.declared.add(DependencyRequirement.parse(spec).name)
        self.manifest_path.write_text(
            json.dumps({"dependencies": {name: "*" for name in sorted(self.declared)}}, indent=2)
        )
        return InstallResult(
            command=["fake", "add", *requirements],
            requirements=list(requirements),
            returncode=0,
            stdout="added\n",
        )


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def reset_settings(monkeypatch):
    """Ensure each test starts with a clean Settings singleton.

    Uses ``make_settings()`` to build from pure defaults — no skipsetup.toml,
    no .env, no file I/O.
    """
    safe = make_settings()
    monkeypatch.setattr("skipsetup.config._settings", safe)


# ---------------------------------------------------------------------------
# Reusable fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Empty target project directory."""
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def gateway(project: Path):
    from skipsetup.fs_gateway import FilesystemGateway

    gw = FilesystemGateway(project, io_timeout=5.0)
    yield gw
    gw.close()


@pytest.fixture
def ctx(gateway):
    """ActivationContext with a plugin already begun as ``p1``."""
    from skipsetup.context import ActivationContext

    context = ActivationContext(gateway, max_workers=4)
    context.begin_plugin("p1")
    return context
