"""Source patcher: anchored, idempotent insertions into generated files.

A patch names an anchor that must already exist in the target and a token
whose presence means the patch was applied before. The insertion goes
directly after (or before) the first anchor match.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from skipsetup.errors import AnchorNotFound, PathCollision
from skipsetup.fs_gateway import FilesystemGateway
from skipsetup.logger import logger
from skipsetup.materializer import TemplateMaterializer
from skipsetup.types import OperationRecord, PatchOperation

if TYPE_CHECKING:
    from skipsetup.context import ActivationContext


def find_anchor(text: str, op: PatchOperation) -> tuple[int, int] | None:
    """Return the (start, end) span of the first anchor match, or None."""
    if isinstance(op.anchor, re.Pattern):
        match = op.anchor.search(text)
        return match.span() if match else None
    start = text.find(op.anchor)
    if start == -1:
        return None
    return start, start + len(op.anchor)


def apply_insertion(text: str, op: PatchOperation) -> str | None:
    """Pure form of a patch: the new text, or None if the anchor is missing."""
    span = find_anchor(text, op)
    if span is None:
        return None
    at = span[1] if op.position == "after" else span[0]
    return text[:at] + op.insertion + text[at:]


class SourcePatcher:
    def __init__(self, gateway: FilesystemGateway, materializer: TemplateMaterializer) -> None:
        self.gateway = gateway
        self.materializer = materializer

    def patch(self, ctx: ActivationContext, op: PatchOperation) -> OperationRecord:
        rel = self.gateway.relative(op.target_path)
        plugin_id = ctx.current_plugin or "<none>"

        with ctx.path_lock(rel):
            if ctx.collision_pending(rel):
                raise PathCollision(rel, plugin_id)
            text = self.gateway.read_text(rel)
            patched = apply_insertion(text, op) if text is not None else None

            if patched is None:
                if not op.optional:
                    raise AnchorNotFound(rel, op.anchor_text)
                logger.info(
                    "Optional patch skipped, anchor missing", path=rel, anchor=op.anchor_text
                )
                changed = False
            elif op.idempotency_token in text:
                changed = False
            else:
                self.materializer.commit(rel, patched.encode("utf-8"))
                changed = True

            return ctx.record(
                OperationRecord(
                    plugin_id=plugin_id,
                    kind="patch",
                    path=rel,
                    action="patch",
                    changed=changed,
                )
            )
