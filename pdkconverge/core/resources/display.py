"""
Display server resources — the X11 server GUI tools need.

Not installed → run the declared install commands. Installed but not
reachable → divergent; repair clears cached preferences and restarts.
"""

from __future__ import annotations

import logging

from pdkconverge.core.context import RunContext
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind
from pdkconverge.core.resources.base import ResourceHandler, run_commands

logger = logging.getLogger(__name__)


class DisplayServerHandler(ResourceHandler):
    kind = ResourceKind.DISPLAY_SERVER

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        display = ctx.registry.display
        if display is None or not display.is_installed():
            return ProbeResult.absent(resource.name, f"{resource.identifier} not installed")
        if not display.is_reachable():
            return ProbeResult.divergent(resource.name, f"{resource.identifier} not reachable")
        return ProbeResult.present(resource.name)

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        display = ctx.registry.require_display()
        if not display.is_installed():
            run_commands(
                ctx, resource.opt("install_commands", []),
                label=f"install {resource.identifier}",
                cwd=ctx.var("workdir"), elevated=resource.needs_sudo,
            )
        if not display.is_reachable():
            display.restart()

    def repair(self, resource: ManagedResource, ctx: RunContext) -> None:
        display = ctx.registry.require_display()
        if not display.is_installed():
            self.install(resource, ctx)
            return
        display.reset_preferences()
        display.restart()

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        run_commands(
            ctx, resource.opt("remove_commands", []),
            label=f"remove {resource.identifier}",
            cwd=ctx.var("workdir"), elevated=resource.needs_sudo,
        )
