"""Filesystem gateway: every disk access the engine makes goes through here.

All paths are relative to a single target root and may not escape it.
Writes go to a temp file in the destination directory and are moved into
place with ``os.replace`` so a crash mid-write never leaves a truncated file.
Each primitive runs on a small I/O pool so a hung filesystem surfaces as an
``ActivationTimeout`` instead of blocking the run forever.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from pathlib import Path
from typing import TypeVar

from skipsetup.errors import ActivationTimeout, PathOutsideRoot, PreconditionFailed
from skipsetup.logger import logger

T = TypeVar("T")

_DEFAULT_FILE_MODE = 0o644


class FilesystemGateway:
    """Scoped, failure-safe file primitives bound to one target root."""

    def __init__(
        self,
        root: Path | str,
        *,
        io_timeout: float = 10.0,
        io_workers: int = 8,
        fsync: bool = True,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.io_timeout = io_timeout
        self._fsync = fsync
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, io_workers), thread_name_prefix="skipsetup-io"
        )

    # --- lifecycle ---

    def close(self) -> None:
        # wait=True: in-flight writes drain rather than being abandoned mid-move
        self._pool.shutdown(wait=True)

    def __enter__(self) -> FilesystemGateway:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # --- path handling ---

    def check_root(self) -> None:
        """Raise PreconditionFailed unless the root is an existing, writable directory."""
        root = str(self.root)
        if not self.root.exists():
            raise PreconditionFailed(root, "does not exist")
        if not self.root.is_dir():
            raise PreconditionFailed(root, "is not a directory")
        if not os.access(self.root, os.W_OK | os.X_OK):
            raise PreconditionFailed(root, "is not writable")

    def resolve(self, rel_path: str | Path) -> Path:
        """Resolve ``rel_path`` under the root, rejecting anything that escapes it."""
        candidate = (self.root / rel_path).resolve()
        if not candidate.is_relative_to(self.root):
            raise PathOutsideRoot(str(rel_path), str(self.root))
        return candidate

    def relative(self, rel_path: str | Path) -> str:
        """Normalized root-relative POSIX form, used as the write-ahead log key."""
        return self.resolve(rel_path).relative_to(self.root).as_posix()

    # --- primitives ---

    def exists(self, rel_path: str | Path) -> bool:
        target = self.resolve(rel_path)
        return self._call("exists", target.exists)

    def read_bytes(self, rel_path: str | Path) -> bytes | None:
        """File content, or None if the file does not exist."""
        target = self.resolve(rel_path)

        def _read() -> bytes | None:
            try:
                return target.read_bytes()
            except FileNotFoundError:
                return None

        return self._call("read", _read)

    def read_text(self, rel_path: str | Path) -> str | None:
        data = self.read_bytes(rel_path)
        return None if data is None else data.decode("utf-8")

    def write_atomic(self, rel_path: str | Path, data: bytes) -> Path:
        target = self.resolve(rel_path)
        self._call("write", lambda: atomic_write_bytes(target, data, fsync=self._fsync))
        logger.debug("File written", path=self.relative(target), bytes=len(data))
        return target

    def append(self, rel_path: str | Path, data: bytes) -> Path:
        """Append by rewriting the whole file atomically (old content + data)."""
        existing = self.read_bytes(rel_path) or b""
        return self.write_atomic(rel_path, existing + data)

    # --- internals ---

    def _call(self, operation: str, fn: Callable[[], T]) -> T:
        future = self._pool.submit(fn)
        try:
            return future.result(timeout=self.io_timeout)
        except FutureTimeout:
            raise ActivationTimeout(f"filesystem {operation}", self.io_timeout) from None


def atomic_write_bytes(path: Path, payload: bytes, *, fsync: bool = True) -> None:
    """Write ``payload`` to a sibling temp file, then ``os.replace`` it into place."""
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        mode = path.stat().st_mode & 0o777
    except FileNotFoundError:
        mode = _DEFAULT_FILE_MODE

    tmp_fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
    )
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(tmp_fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            if fsync:
                os.fsync(handle.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        # Only left behind if something above failed before the move
        if tmp_path.exists():
            tmp_path.unlink()
