"""Tests for package manager adapters (subprocess is always mocked)."""

from __future__ import annotations

import json
import subprocess
import textwrap
from pathlib import Path
from unittest.mock import patch

import pytest

from skipsetup.config import InstallerConfig
from skipsetup.errors import ActivationTimeout, InstallFailed
from skipsetup.package_manager import (
    NodePackageManager,
    PackageManager,
    PythonPackageManager,
    create_package_manager,
)

_RUN = "skipsetup.package_manager.subprocess.run"


def _completed(returncode: int = 0, stdout: str = "", stderr: str = ""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestNodePackageManager:
    """pnpm, npm and yarn against package.json."""

    def test_satisfies_protocol(self, tmp_path: Path):
        assert isinstance(NodePackageManager(tmp_path), PackageManager)

    def test_pnpm_command(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path)
        assert pm.install_command(["zod@^3.0.0"]) == ["pnpm", "add", "zod@^3.0.0"]

    def test_npm_dev_command(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path, command="npm", dev=True)
        assert pm.install_command(["zod"]) == ["npm", "install", "--save-dev", "zod"]

    def test_yarn_dev_command(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path, command="yarn", dev=True)
        assert pm.install_command(["zod"]) == ["yarn", "add", "-D", "zod"]

    def test_declared_names_from_all_sections(self, tmp_path: Path):
        (tmp_path / "package.json").write_text(
            json.dumps(
                {
                    "dependencies": {"next": "^14.0.0"},
                    "devDependencies": {"typescript": "^5.0.0"},
                    "peerDependencies": {"react": "^18.0.0"},
                }
            )
        )
        pm = NodePackageManager(tmp_path)
        assert pm.installed(["next", "typescript", "react", "stripe"]) == {
            "next",
            "typescript",
            "react",
        }

    def test_missing_manifest_declares_nothing(self, tmp_path: Path):
        assert NodePackageManager(tmp_path).installed(["next"]) == set()

    def test_unreadable_manifest(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("{not json")
        with pytest.raises(InstallFailed, match="package.json"):
            NodePackageManager(tmp_path).installed(["next"])

    def test_manifest_that_is_not_an_object(self, tmp_path: Path):
        (tmp_path / "package.json").write_text("[]")
        with pytest.raises(InstallFailed, match="JSON object"):
            NodePackageManager(tmp_path).installed(["next"])

    def test_install_runs_once_in_root(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path, timeout=42)
        with patch(_RUN, return_value=_completed(stdout="done\n")) as mock_run:
            result = pm.install(["stripe@^16.12.0", "zod"])

        mock_run.assert_called_once()
        args, kwargs = mock_run.call_args
        assert args[0] == ["pnpm", "add", "stripe@^16.12.0", "zod"]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["timeout"] == 42
        assert result.returncode == 0
        assert result.stdout == "done\n"
        assert result.requirements == ["stripe@^16.12.0", "zod"]

    def test_nonzero_exit_raises_install_failed(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path)
        with patch(_RUN, return_value=_completed(1, "partial\n", "ERR_PNPM_FETCH_404\n")):
            with pytest.raises(InstallFailed, match="ERR_PNPM_FETCH_404") as exc_info:
                pm.install(["nope@^1.0.0"])

        err = exc_info.value
        assert err.returncode == 1
        assert err.stdout == "partial\n"
        assert err.stderr == "ERR_PNPM_FETCH_404\n"
        assert err.command == ["pnpm", "add", "nope@^1.0.0"]

    def test_timeout_raises_activation_timeout(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path, timeout=5)
        with patch(_RUN, side_effect=subprocess.TimeoutExpired(cmd="pnpm", timeout=5)):
            with pytest.raises(ActivationTimeout, match="pnpm install"):
                pm.install(["zod"])

    def test_missing_binary_raises_install_failed(self, tmp_path: Path):
        pm = NodePackageManager(tmp_path)
        with patch(_RUN, side_effect=FileNotFoundError("pnpm")):
            with pytest.raises(InstallFailed, match="Could not run pnpm"):
                pm.install(["zod"])


class TestPythonPackageManager:
    """uv and poetry against pyproject.toml."""

    def test_uv_dev_command(self, tmp_path: Path):
        pm = PythonPackageManager(tmp_path, dev=True)
        assert pm.install_command(["pytest>=8"]) == ["uv", "add", "--dev", "pytest>=8"]

    def test_poetry_dev_command(self, tmp_path: Path):
        pm = PythonPackageManager(tmp_path, command="poetry", dev=True)
        assert pm.install_command(["x"]) == ["poetry", "add", "--group", "dev", "x"]

    def test_declared_names_are_canonicalized(self, tmp_path: Path):
        (tmp_path / "pyproject.toml").write_text(
            textwrap.dedent("""\
                [project]
                name = "app"
                dependencies = ["Requests>=2.28", "pydantic_settings"]

                [project.optional-dependencies]
                docs = ["mkdocs"]

                [dependency-groups]
                dev = ["pytest>=8", {include-group = "docs"}]
            """)
        )
        pm = PythonPackageManager(tmp_path)
        assert pm.installed(["requests", "Pydantic-Settings", "mkdocs", "pytest", "httpx"]) == {
            "requests",
            "Pydantic-Settings",
            "mkdocs",
            "pytest",
        }

    def test_malformed_project_table(self, tmp_path: Path):
        (tmp_path / "pyproject.toml").write_text('project = "app"\n')
        with pytest.raises(InstallFailed, match="Malformed"):
            PythonPackageManager(tmp_path).installed(["requests"])

    def test_style(self, tmp_path: Path):
        assert PythonPackageManager(tmp_path).style == "python"
        assert PythonPackageManager(tmp_path).manifest_path == tmp_path / "pyproject.toml"


class TestCreatePackageManager:
    """Building a package manager from [installer] settings."""

    def test_node_default(self, tmp_path: Path):
        pm = create_package_manager(tmp_path, InstallerConfig())
        assert isinstance(pm, NodePackageManager)
        assert pm.command == "pnpm"
        assert pm.timeout == 300.0

    def test_python(self, tmp_path: Path):
        pm = create_package_manager(
            tmp_path, InstallerConfig(kind="python", command="uv", timeout_s=60, dev=True)
        )
        assert isinstance(pm, PythonPackageManager)
        assert pm.timeout == 60
        assert pm.dev is True
