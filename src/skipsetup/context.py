"""Activation context: the shared, per-run state plugins write through.

One context is created per run and thrown away afterwards; nothing in it
survives between runs. The write-ahead log and the dependency accumulator
are guarded by a single mutex. Writes to the same path are additionally
serialized by a per-path lock handed out by the log.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from skipsetup.errors import ActivationCancelled, PathCollision
from skipsetup.fs_gateway import FilesystemGateway
from skipsetup.logger import logger
from skipsetup.materializer import TemplateMaterializer
from skipsetup.patcher import SourcePatcher
from skipsetup.types import (
    DependencyRequirement,
    FileOperation,
    OperationRecord,
    PatchOperation,
    WriteMode,
)


class ActivationContext:
    """Handle passed to every plugin's ``activate``.

    Plugins call :meth:`write`, :meth:`write_many`, :meth:`patch` and
    :meth:`require`; the orchestrator owns everything else.
    """

    def __init__(
        self,
        gateway: FilesystemGateway,
        *,
        max_workers: int = 4,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self.gateway = gateway
        self.max_workers = max(1, max_workers)
        self.cancel_event = cancel_event or threading.Event()
        self.materializer = TemplateMaterializer(gateway)
        self.patcher = SourcePatcher(gateway, self.materializer)

        self._lock = threading.Lock()
        self._log: list[OperationRecord] = []
        self._created_by: dict[str, str] = {}
        self._collisions: dict[str, str] = {}
        self._path_locks: dict[str, threading.RLock] = {}
        self._pending: list[tuple[str, DependencyRequirement]] = []
        self._staged: list[DependencyRequirement] = []
        self.current_plugin: str | None = None

    @property
    def root_dir(self) -> Path:
        return self.gateway.root

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    # --- plugin-facing API ---

    def write(self, path: str, content: bytes | str, mode: WriteMode = "create") -> OperationRecord:
        return self.apply_file(FileOperation(path, content, mode))

    def apply_file(self, op: FileOperation) -> OperationRecord:
        return self.materializer.write(self, op)

    def write_many(self, ops: Sequence[FileOperation]) -> list[OperationRecord]:
        """Apply file operations, running disjoint paths concurrently.

        Operations on the same path keep their relative order and run on one
        worker. Every submitted operation finishes before this returns (or
        raises), so no write is ever abandoned half-way.
        """
        if self.cancelled:
            raise ActivationCancelled("cancel requested before writes started")

        groups: dict[str, list[int]] = {}
        for index, op in enumerate(ops):
            groups.setdefault(self.gateway.relative(op.path), []).append(index)

        results: list[OperationRecord | None] = [None] * len(ops)

        def _run_group(indexes: list[int]) -> None:
            for i in indexes:
                results[i] = self.apply_file(ops[i])

        if self.max_workers == 1 or len(groups) <= 1:
            for indexes in groups.values():
                _run_group(indexes)
            return [r for r in results if r is not None]

        errors: list[BaseException] = []
        with ThreadPoolExecutor(
            max_workers=min(self.max_workers, len(groups)),
            thread_name_prefix="skipsetup-write",
        ) as pool:
            futures = [pool.submit(_run_group, indexes) for indexes in groups.values()]
            for future in futures:
                exc = future.exception()
                if exc is not None:
                    errors.append(exc)
        if errors:
            raise errors[0]
        return [r for r in results if r is not None]

    def patch(self, op: PatchOperation) -> OperationRecord:
        return self.patcher.patch(self, op)

    def require(self, *requirements: DependencyRequirement | str) -> None:
        """Stage extra dependencies; they count only if the plugin succeeds."""
        parsed = [
            DependencyRequirement.parse(r) if isinstance(r, str) else r for r in requirements
        ]
        with self._lock:
            self._staged.extend(parsed)

    def exists(self, path: str) -> bool:
        return self.gateway.exists(path)

    def read_text(self, path: str) -> str | None:
        return self.gateway.read_text(path)

    # --- write-ahead log ---

    def path_lock(self, rel_path: str) -> threading.RLock:
        with self._lock:
            lock = self._path_locks.get(rel_path)
            if lock is None:
                lock = self._path_locks[rel_path] = threading.RLock()
            return lock

    def creator_of(self, rel_path: str) -> str | None:
        with self._lock:
            return self._created_by.get(rel_path)

    def claim_created(self, rel_path: str, plugin_id: str) -> None:
        with self._lock:
            self._created_by.setdefault(rel_path, plugin_id)

    def defer_collision(self, rel_path: str, plugin_id: str) -> None:
        """Note a Create that met foreign content; fatal unless the plugin overwrites it."""
        with self._lock:
            self._collisions.setdefault(rel_path, plugin_id)

    def collision_pending(self, rel_path: str) -> bool:
        with self._lock:
            return rel_path in self._collisions

    def resolve_collision(self, rel_path: str, plugin_id: str) -> None:
        with self._lock:
            if self._collisions.get(rel_path) == plugin_id:
                del self._collisions[rel_path]

    def check_collisions(self, plugin_id: str) -> None:
        """Raise PathCollision for the first unresolved Create of ``plugin_id``."""
        with self._lock:
            unresolved = [p for p, owner in self._collisions.items() if owner == plugin_id]
        if unresolved:
            raise PathCollision(unresolved[0], plugin_id)

    def record(self, record: OperationRecord) -> OperationRecord:
        with self._lock:
            self._log.append(record)
        logger.debug(
            "Operation committed" if record.changed else "Operation already applied",
            kind=record.kind,
            path=record.path,
            action=record.action,
        )
        return record

    def operations(self, plugin_id: str | None = None) -> list[OperationRecord]:
        with self._lock:
            if plugin_id is None:
                return list(self._log)
            return [r for r in self._log if r.plugin_id == plugin_id]

    def written_paths(self) -> list[str]:
        seen: dict[str, None] = {}
        for record in self.operations():
            if record.changed:
                seen.setdefault(record.path, None)
        return list(seen)

    # --- dependency accumulator ---

    def begin_plugin(self, plugin_id: str) -> None:
        with self._lock:
            self.current_plugin = plugin_id
            self._staged = []

    def commit_plugin(self, plugin_id: str, declared: Iterable[DependencyRequirement]) -> None:
        """Move a successful plugin's declared and staged requirements into pending."""
        with self._lock:
            for req in [*declared, *self._staged]:
                self._pending.append((plugin_id, req))
            self._staged = []
            self.current_plugin = None

    def abandon_plugin(self) -> None:
        with self._lock:
            self._staged = []
            plugin_id = self.current_plugin
            self._collisions = {p: o for p, o in self._collisions.items() if o != plugin_id}
            self.current_plugin = None

    @property
    def pending_dependencies(self) -> list[tuple[str, DependencyRequirement]]:
        with self._lock:
            return list(self._pending)
