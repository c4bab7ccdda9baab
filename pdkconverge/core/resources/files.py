"""
File resources — config files and launcher scripts.

Config files are compared by SHA-256 of the declared content, or by a
marker substring when only a fragment is ours (``mode: append``).
A file declared with ``owned_marker`` that lacks that marker was not
written by us: it probes as absent and is never removed.

Launchers are executable scripts, typically in a system ``bin``
directory, written through the privilege broker when ``needs_sudo``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from pdkconverge.core.context import RunContext
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind, content_hash
from pdkconverge.core.resources.base import ResourceHandler, run_commands
from pdkconverge.core.resources.env_block import write_user_file

logger = logging.getLogger(__name__)


class ConfigFileHandler(ResourceHandler):
    kind = ResourceKind.CONFIG_FILE

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        path = Path(resource.identifier)
        if not ctx.fs.exists(path):
            return ProbeResult.absent(resource.name, "file missing", path=str(path))
        text = ctx.fs.read(path)

        owned = resource.opt("owned_marker")
        if owned and owned not in text:
            return ProbeResult.absent(
                resource.name, "present but not ours", path=str(path),
                evidence={"foreign": True},
            )

        marker = resource.desired.marker
        if marker is not None:
            if marker in text:
                return ProbeResult.present(resource.name, path=str(path), evidence={"marker": marker})
            return ProbeResult.divergent(resource.name, f"marker {marker!r} missing", path=str(path))

        wanted = resource.desired.content_hash
        if wanted is None:
            return ProbeResult.present(resource.name, path=str(path))
        actual = content_hash(text)
        if actual != wanted:
            return ProbeResult.divergent(
                resource.name, "content differs", path=str(path),
                evidence={"sha256": actual},
            )
        return ProbeResult.present(resource.name, path=str(path), evidence={"sha256": actual})

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        old = ctx.fs.read(path) if ctx.fs.exists(path) else None
        content = resource.desired.content or ""

        if resource.opt("mode") == "append":
            marker = resource.desired.marker
            if old is not None and marker and marker in old:
                return
            base = old or ""
            if base and not base.endswith("\n"):
                base += "\n"
            new = base + content
        else:
            new = content

        if resource.opt("user_owned", False):
            write_user_file(ctx, path, old, new)
        elif old != new:
            ctx.fs.write(path, new)

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        if not ctx.fs.exists(path):
            return
        owned = resource.opt("owned_marker")
        if owned and owned not in ctx.fs.read(path):
            logger.warning("%s not removed (custom or not ours)", path)
            return
        if resource.opt("user_owned", False):
            backup = ctx.fs.backup(path)
            if backup is not None:
                ctx.backups.append(backup)
        ctx.fs.remove(path)

    def describe(self, resource: ManagedResource, action: str) -> str:
        return f"{action} config file {resource.identifier}"


class LauncherHandler(ResourceHandler):
    kind = ResourceKind.LAUNCHER

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        path = Path(resource.identifier)
        if not ctx.fs.exists(path):
            return ProbeResult.absent(resource.name, "launcher missing", path=str(path))
        actual = content_hash(ctx.fs.read(path))
        if resource.desired.content_hash and actual != resource.desired.content_hash:
            return ProbeResult.divergent(
                resource.name, "content differs", path=str(path), evidence={"sha256": actual},
            )
        if not ctx.fs.is_executable(path):
            return ProbeResult.divergent(resource.name, "not executable", path=str(path))
        return ProbeResult.present(resource.name, path=str(path), evidence={"sha256": actual})

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        content = resource.desired.content or ""
        mode = int(str(resource.opt("file_mode", "755")), 8)
        if not resource.needs_sudo:
            ctx.fs.write(path, content, mode=mode)
            return

        fd, tmp = tempfile.mkstemp(prefix="pdkconverge-launcher-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            run_commands(
                ctx,
                [
                    ["install", "-d", "-m", "755", str(path.parent)],
                    ["install", "-m", f"{mode:o}", tmp, str(path)],
                ],
                label=f"install launcher {path}", elevated=True,
            )
        finally:
            Path(tmp).unlink(missing_ok=True)

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        if not ctx.fs.exists(path):
            return
        if resource.needs_sudo:
            run_commands(ctx, [["rm", "-f", str(path)]], label=f"remove {path}", elevated=True)
        else:
            ctx.fs.remove(path)

    def describe(self, resource: ManagedResource, action: str) -> str:
        return f"{action} launcher {resource.identifier}"
