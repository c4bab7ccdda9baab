"""
Resource handler base — one handler per resource kind.

A handler knows how to probe, install, remove and repair resources of
its kind. The engine stages (probe, plan, apply, verify) dispatch to
handlers by kind and never special-case a kind themselves.

Handlers raise :mod:`pdkconverge.core.errors` exceptions on failure;
the reconciler turns them into outcome records.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pdkconverge.adapters.shell.command import CommandResult, as_argv, raise_for_result
from pdkconverge.core.context import RunContext
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind

logger = logging.getLogger(__name__)


class ResourceHandler(ABC):
    """Probe / install / remove / repair for one resource kind."""

    kind: ResourceKind
    # Divergent atomic resources are replaced (remove + install), not repaired
    atomic: bool = False
    # Checks only act through the verify stage's single repair
    check_only: bool = False

    @abstractmethod
    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        """Observe the resource. Must not change anything."""

    @abstractmethod
    def install(self, resource: ManagedResource, ctx: RunContext) -> None: ...

    @abstractmethod
    def remove(self, resource: ManagedResource, ctx: RunContext) -> None: ...

    def repair(self, resource: ManagedResource, ctx: RunContext) -> None:
        """Re-apply the desired state. Atomic kinds replace the resource."""
        if self.atomic:
            self.remove(resource, ctx)
        self.install(resource, ctx)

    def satisfied(self, resource: ManagedResource, probe: ProbeResult) -> bool:
        """Whether ``probe`` matches what ``resource`` declares."""
        if resource.desired.present:
            return probe.is_present
        return probe.is_absent

    def describe(self, resource: ManagedResource, action: str) -> str:
        """One-line description of an action, for plans and dry runs."""
        return f"{action} {resource.kind.value} {resource.identifier}"


def run_commands(
    ctx: RunContext,
    commands: Sequence[Any],
    *,
    label: str,
    cwd: str | None = None,
    elevated: bool = False,
) -> list[CommandResult]:
    """Run manifest commands in order, stopping at the first failure.

    Each entry is a shell string, an argv list, or a mapping
    ``{run: <str|list>, sudo: bool}`` overriding ``elevated`` for that
    one command.

    Raises:
        ExternalToolFailure: A command exited non-zero.
        PermissionDenied: An elevated command could not get root.
    """
    if cwd:
        Path(cwd).mkdir(parents=True, exist_ok=True)
    results: list[CommandResult] = []
    for entry in commands:
        sudo = elevated
        if isinstance(entry, dict):
            sudo = bool(entry.get("sudo", elevated))
            entry = entry["run"]
        argv = as_argv(entry)
        if sudo:
            result = ctx.registry.privilege.run_elevated(argv, cwd=cwd)
        else:
            result = ctx.registry.runner.run(argv, cwd=cwd)
        raise_for_result(result, label=label)
        results.append(result)
    return results
