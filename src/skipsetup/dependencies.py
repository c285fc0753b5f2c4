"""Dependency merger: one reconciliation and at most one install per run.

Requirements from every successful plugin are grouped by package name and
their ranges intersected. Any empty intersection is a DependencyConflict,
raised before the package manager is touched. Names the manifest already
declares are dropped; what remains goes to the installer in a single call.
If that call fails the manifest is restored byte-for-byte.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from skipsetup.errors import ActivationError, DependencyConflict
from skipsetup.fs_gateway import atomic_write_bytes
from skipsetup.logger import logger
from skipsetup.package_manager import PackageManager
from skipsetup.types import DependencyRequirement, InstallResult
from skipsetup.versions import RangeStyle, VersionRange, parse_range


@dataclass
class ResolvedRequirement:
    name: str
    range: VersionRange
    # (plugin_id, original range text) in declaration order
    sources: list[tuple[str, str | None]] = field(default_factory=list)

    @property
    def plugin_ids(self) -> list[str]:
        return list(dict.fromkeys(plugin for plugin, _ in self.sources))

    def spec(self, style: RangeStyle) -> str:
        """Requirement string for the installer command line."""
        texts = (rng.strip() for _, rng in self.sources if rng and rng.strip())
        distinct = list(dict.fromkeys(texts))
        if style == "node":
            if len(distinct) == 1 and "," not in distinct[0]:
                rng = distinct[0]
            else:
                rng = self.range.render("node")
            return f"{self.name}@{rng}" if rng else self.name
        return f"{self.name}{self.range.render('python')}"


@dataclass
class MergeResult:
    resolved: list[ResolvedRequirement]
    to_install: list[str]  # rendered specs handed to the installer
    already_satisfied: list[str]  # names the manifest already declares
    install: InstallResult | None = None


class DependencyMerger:
    def __init__(self, package_manager: PackageManager, *, backup_manifest: bool = True) -> None:
        self.package_manager = package_manager
        self.backup_manifest = backup_manifest
        self._install_calls = 0

    def merge(
        self, requirements: Sequence[tuple[str, DependencyRequirement]]
    ) -> list[ResolvedRequirement]:
        """Group by name and intersect ranges.

        Args:
            requirements: (plugin_id, requirement) pairs in plugin order

        Raises:
            DependencyConflict: two ranges for one name do not overlap
            InvalidRequirement: a range could not be parsed
        """
        groups: dict[str, ResolvedRequirement] = {}
        for plugin_id, req in requirements:
            rng = parse_range(req.version_range)
            group = groups.get(req.name)
            if group is None:
                groups[req.name] = ResolvedRequirement(
                    req.name, rng, [(plugin_id, req.version_range)]
                )
                continue

            group.sources.append((plugin_id, req.version_range))
            group.range = group.range.intersect(rng)
            if group.range.is_empty():
                raise DependencyConflict(
                    req.name,
                    [(p, r or "*") for p, r in group.sources],
                    plugin_id=plugin_id,
                )
        return list(groups.values())

    def reconcile(
        self, requirements: Sequence[tuple[str, DependencyRequirement]]
    ) -> MergeResult:
        """Merge, diff against the manifest, and install the delta once."""
        resolved = self.merge(requirements)
        satisfied = self.package_manager.installed([r.name for r in resolved])
        delta = [r for r in resolved if r.name not in satisfied]
        specs = [r.spec(self.package_manager.style) for r in delta]
        result = MergeResult(
            resolved=resolved,
            to_install=specs,
            already_satisfied=[r.name for r in resolved if r.name in satisfied],
        )

        if not specs:
            logger.info("All dependencies already declared", count=len(resolved))
            return result

        result.install = self._install_once(specs)
        return result

    def _install_once(self, specs: list[str]) -> InstallResult:
        if self._install_calls:
            raise RuntimeError("Dependency install already ran for this activation run")
        self._install_calls += 1

        manifest = self.package_manager.manifest_path
        existed = manifest.exists()
        snapshot = manifest.read_bytes() if self.backup_manifest and existed else None

        try:
            return self.package_manager.install(specs)
        except ActivationError:
            if self.backup_manifest:
                self._restore_manifest(existed, snapshot)
            raise

    def _restore_manifest(self, existed: bool, snapshot: bytes | None) -> None:
        manifest = self.package_manager.manifest_path
        if not existed:
            if manifest.exists():
                manifest.unlink()
                logger.warning("Removed manifest created by failed install", manifest=str(manifest))
            return
        if snapshot is not None and (not manifest.exists() or manifest.read_bytes() != snapshot):
            atomic_write_bytes(manifest, snapshot)
            logger.warning("Restored manifest after failed install", manifest=str(manifest))
