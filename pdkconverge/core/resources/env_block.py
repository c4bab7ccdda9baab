"""
Env block resources — the delimited region in a shell startup file.

Startup files belong to the user: every write is preceded by a
timestamped backup of the current file, and a file is only rewritten
when its text actually changes.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pdkconverge.core.context import RunContext
from pdkconverge.core.engine import envblock
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind
from pdkconverge.core.resources.base import ResourceHandler

logger = logging.getLogger(__name__)


def markers(resource: ManagedResource, ctx: RunContext) -> tuple[str, str]:
    return (
        resource.opt("begin", ctx.settings.block_begin),
        resource.opt("end", ctx.settings.block_end),
    )


def write_user_file(ctx: RunContext, path: Path, old: str | None, new: str) -> bool:
    """Back up ``path`` (when it exists) and write ``new``.

    Returns False without touching anything when the text is unchanged.
    """
    if old == new:
        return False
    if old is not None:
        backup = ctx.fs.backup(path)
        if backup is not None:
            ctx.backups.append(backup)
    ctx.fs.write(path, new)
    return True


class EnvBlockHandler(ResourceHandler):
    kind = ResourceKind.ENV_BLOCK

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        path = Path(resource.identifier)
        if not ctx.fs.exists(path):
            return ProbeResult.absent(resource.name, "file missing", path=str(path))
        begin, end = markers(resource, ctx)
        found = envblock.scan(ctx.fs.read(path), begin, end, resource.opt("legacy_patterns", []))
        evidence = {"blocks": found.count, "legacy_lines": len(found.legacy_lines)}
        if found.count == 0 and not found.legacy_lines and not found.orphans:
            return ProbeResult.absent(resource.name, "no block", path=str(path), evidence=evidence)

        body = (resource.desired.content or "").strip("\n")
        if (
            found.count == 1
            and found.bodies[0] == body
            and not found.legacy_lines
            and not found.orphans
        ):
            return ProbeResult.present(resource.name, path=str(path), evidence=evidence)

        if found.count > 1:
            detail = f"{found.count} blocks"
        elif found.legacy_lines or found.orphans:
            detail = "stray lines outside the block"
        else:
            detail = "block content differs"
        return ProbeResult.divergent(resource.name, detail, path=str(path), evidence=evidence)

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        old = ctx.fs.read(path) if ctx.fs.exists(path) else None
        begin, end = markers(resource, ctx)
        new = envblock.insert_block(
            old or "", begin, end, resource.desired.content or "",
            resource.opt("legacy_patterns", []),
        )
        if write_user_file(ctx, path, old, new):
            logger.info("Env block written to %s", path)

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        if not ctx.fs.exists(path):
            return
        old = ctx.fs.read(path)
        begin, end = markers(resource, ctx)
        new = envblock.strip_blocks(old, begin, end, resource.opt("legacy_patterns", []))
        if write_user_file(ctx, path, old, new):
            logger.info("Env block removed from %s", path)

    def describe(self, resource: ManagedResource, action: str) -> str:
        verb = {"install": "insert", "repair": "rewrite"}.get(action, action)
        return f"{verb} env block in {resource.identifier}"
