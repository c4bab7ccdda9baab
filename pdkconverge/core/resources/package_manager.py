"""
Package manager resources — the manager itself (MacPorts, Homebrew).

Missing → bootstrap. Installed but broken → the manager's own repair.
Managers are never removed, whatever the flow.
"""

from __future__ import annotations

from pdkconverge.core.context import RunContext
from pdkconverge.core.errors import ExternalToolFailure
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind
from pdkconverge.core.resources.base import ResourceHandler


class PackageManagerHandler(ResourceHandler):
    kind = ResourceKind.PACKAGE_MANAGER

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        manager = ctx.registry.get(resource.identifier)
        if manager is None or not manager.is_installed():
            return ProbeResult.absent(resource.name, f"{resource.identifier} not installed")
        if not manager.is_ready():
            return ProbeResult.divergent(
                resource.name, f"{resource.identifier} installed but not working",
            )
        return ProbeResult.present(resource.name)

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        ctx.registry.manager(resource.identifier).bootstrap()

    def repair(self, resource: ManagedResource, ctx: RunContext) -> None:
        ctx.registry.manager(resource.identifier).repair()

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        raise ExternalToolFailure(f"{resource.identifier}: package managers are not removed")

    def describe(self, resource: ManagedResource, action: str) -> str:
        verb = {"install": "bootstrap", "repair": "repair"}.get(action, action)
        return f"{verb} package manager {resource.identifier}"
