"""Template materializer: turns FileOperations into gateway writes.

Idempotency rules per mode:

- ``create``: a file that already holds the template (byte-identical, or
  with every template line still present in order because later patches
  added to it) is a no-op. Other content already on disk is left alone and
  becomes a PathCollision when the plugin finishes, unless the same plugin
  overwrites that path first. A path created by another plugin in this run
  collides immediately.
- ``overwrite``: always ends with the requested bytes; identical bytes is a
  no-op.
- ``append_if_missing``: appends only when the content is not already a
  substring of the file.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from skipsetup.errors import PathCollision
from skipsetup.fs_gateway import FilesystemGateway
from skipsetup.types import FileOperation, OperationRecord

if TYPE_CHECKING:
    from skipsetup.context import ActivationContext


class TemplateMaterializer:
    def __init__(self, gateway: FilesystemGateway) -> None:
        self.gateway = gateway

    def write(self, ctx: ActivationContext, op: FileOperation) -> OperationRecord:
        rel = self.gateway.relative(op.path)
        plugin_id = ctx.current_plugin or "<none>"

        with ctx.path_lock(rel):
            existing = self.gateway.read_bytes(rel)

            if op.mode == "create":
                changed = self._create(ctx, rel, plugin_id, existing, op.content)
            elif op.mode == "overwrite":
                ctx.resolve_collision(rel, plugin_id)
                changed = existing != op.content
                if changed:
                    self.commit(rel, op.content)
            else:
                if ctx.collision_pending(rel):
                    raise PathCollision(rel, plugin_id)
                changed = bool(op.content) and op.content not in (existing or b"")
                if changed:
                    self.gateway.append(rel, op.content)

            return ctx.record(
                OperationRecord(
                    plugin_id=plugin_id,
                    kind="file",
                    path=rel,
                    action=op.mode,
                    changed=changed,
                )
            )

    def _create(
        self,
        ctx: ActivationContext,
        rel: str,
        plugin_id: str,
        existing: bytes | None,
        content: bytes,
    ) -> bool:
        owner = ctx.creator_of(rel)
        if owner is not None and owner != plugin_id:
            raise PathCollision(rel, plugin_id, owner=owner)
        if ctx.collision_pending(rel):
            return False
        if existing is not None and owner is None:
            if not contains_template(existing, content):
                # Left untouched; check_collisions raises unless this plugin overwrites it
                ctx.defer_collision(rel, plugin_id)
            ctx.claim_created(rel, plugin_id)
            return False

        ctx.claim_created(rel, plugin_id)
        if existing == content:
            return False
        self.commit(rel, content)
        return True

    def commit(self, rel_path: str, data: bytes) -> None:
        """Atomic write; parent directories are created as needed."""
        self.gateway.write_atomic(rel_path, data)


def contains_template(existing: bytes, template: bytes) -> bool:
    """True if every line of ``template`` appears in ``existing``, in order.

    Identifies a file generated from ``template`` in an earlier run that has
    since only gained lines (patches, appends).
    """
    if existing == template:
        return True
    remaining = iter(existing.splitlines())
    return all(any(line == candidate for candidate in remaining) for line in template.splitlines())
