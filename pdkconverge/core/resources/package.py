"""
Package resources — one package from one package manager.

Membership is an exact, case-sensitive name match against the
manager's installed list. A version mismatch makes the package
divergent; packages are atomic, so divergence means remove + install.
"""

from __future__ import annotations

import logging

from pdkconverge.core.context import RunContext
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind
from pdkconverge.core.resources.base import ResourceHandler

logger = logging.getLogger(__name__)

# Options forwarded to PackageManager.install / remove
_INSTALL_OPTIONS = ("variants", "enforce_variants", "cask")
_REMOVE_OPTIONS = ("cask", "follow_dependents")


class PackageHandler(ResourceHandler):
    kind = ResourceKind.PACKAGE
    atomic = True

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        manager_name = resource.opt("manager", "macports")
        manager = ctx.registry.get(manager_name)
        evidence = {"manager": manager_name}
        if manager is None or not manager.is_installed():
            return ProbeResult.absent(
                resource.name, f"{manager_name} not installed", evidence=evidence,
            )
        if not manager.is_ready():
            return ProbeResult.absent(
                resource.name, f"{manager_name} not ready", evidence=evidence,
            )
        # Busy or failing listings propagate to the probe stage, which retries
        installed = manager.list_installed()

        version = installed.get(resource.identifier)
        if version is None:
            return ProbeResult.absent(resource.name, evidence=evidence)

        wanted = resource.desired.version
        if wanted and version != wanted:
            return ProbeResult.divergent(
                resource.name, f"version {version}, want {wanted}",
                version=version, evidence=evidence,
            )
        return ProbeResult.present(resource.name, version=version, evidence=evidence)

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        manager = ctx.registry.manager(resource.opt("manager", "macports"))
        options = {k: resource.options[k] for k in _INSTALL_OPTIONS if k in resource.options}
        if resource.desired.version:
            options["version"] = resource.desired.version
        manager.install(resource.identifier, **options)

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        manager = ctx.registry.manager(resource.opt("manager", "macports"))
        options = {k: resource.options[k] for k in _REMOVE_OPTIONS if k in resource.options}
        manager.remove(resource.identifier, **options)

    def describe(self, resource: ManagedResource, action: str) -> str:
        manager = resource.opt("manager", "macports")
        variants = " ".join(resource.opt("variants", []))
        target = f"{resource.identifier} {variants}".strip()
        return f"{action} {manager} package {target}"
