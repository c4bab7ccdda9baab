"""
Directory resources — trees such as the PDK install or a source cache.

Present means the directory exists and, when declared, contains its
relative marker file. Trees that come out of a build declare the build
as ``install_commands``; they run in the resource's ``cwd`` (defaulting
to the run's work directory).
"""

from __future__ import annotations

from pathlib import Path

from pdkconverge.core.context import RunContext
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind
from pdkconverge.core.resources.base import ResourceHandler, run_commands


class DirectoryHandler(ResourceHandler):
    kind = ResourceKind.DIRECTORY

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        path = Path(resource.identifier)
        if not ctx.fs.is_dir(path):
            return ProbeResult.absent(resource.name, "directory missing", path=str(path))
        marker = resource.desired.marker
        if marker and not ctx.fs.exists(path / marker):
            return ProbeResult.divergent(
                resource.name, f"marker {marker} missing", path=str(path),
            )
        return ProbeResult.present(resource.name, path=str(path))

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        commands = resource.opt("install_commands", [])
        if not commands:
            ctx.fs.mkdir(Path(resource.identifier))
            return
        run_commands(
            ctx, commands, label=f"build {resource.name}",
            cwd=resource.opt("cwd", ctx.var("workdir")),
        )

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        path = Path(resource.identifier)
        commands = resource.opt("remove_commands", [])
        if commands:
            run_commands(
                ctx, commands, label=f"remove {resource.name}",
                cwd=resource.opt("cwd", ctx.var("workdir")), elevated=resource.needs_sudo,
            )
        elif resource.needs_sudo:
            run_commands(ctx, [["rm", "-rf", str(path)]], label=f"remove {path}", elevated=True)
        else:
            ctx.fs.remove(path)

    def describe(self, resource: ManagedResource, action: str) -> str:
        if action in ("install", "repair") and resource.opt("install_commands"):
            return f"{action} {resource.identifier} (build {resource.name})"
        return f"{action} directory {resource.identifier}"
