"""
Smoke test resources — read-only checks that the toolchain works.

Probing runs the declared command and looks for the expected text in
its output. A failing check is divergent. Checks are check-only:
apply leaves them alone and the verify stage makes the single repair. GUI checks repair
the display server (clear preferences, restart) before the re-check.
"""

from __future__ import annotations

import logging

from pdkconverge.adapters.shell.command import as_argv
from pdkconverge.core.context import RunContext
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource, ResourceKind
from pdkconverge.core.resources.base import ResourceHandler

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 120.0


class SmokeTestHandler(ResourceHandler):
    kind = ResourceKind.SMOKE_TEST
    check_only = True

    def probe(self, resource: ManagedResource, ctx: RunContext) -> ProbeResult:
        command = resource.opt("command")
        if not command:
            return ProbeResult.present(resource.name, "no command declared")
        result = ctx.registry.runner.run(
            as_argv(command),
            cwd=resource.opt("cwd"),
            timeout=float(resource.opt("timeout", _DEFAULT_TIMEOUT)),
        )
        expect = resource.opt("expect", "")
        evidence = {"returncode": result.returncode}
        if result.ok and expect in result.output:
            return ProbeResult.present(resource.name, evidence=evidence)
        if result.timed_out:
            detail = "timed out"
        elif result.ok:
            detail = f"expected output {expect!r} missing"
        else:
            tail = result.output.strip().splitlines()[-1:] or [""]
            detail = f"exit {result.returncode}: {tail[0]}"
        return ProbeResult.divergent(resource.name, detail, evidence=evidence)

    def install(self, resource: ManagedResource, ctx: RunContext) -> None:
        logger.debug("%s: nothing to install for a check", resource.name)

    def repair(self, resource: ManagedResource, ctx: RunContext) -> None:
        if not resource.opt("gui", False):
            logger.debug("%s: headless check, nothing to repair", resource.name)
            return
        display = ctx.registry.require_display()
        display.reset_preferences()
        display.restart()

    def remove(self, resource: ManagedResource, ctx: RunContext) -> None:
        logger.debug("%s: smoke tests leave nothing to remove", resource.name)

    def describe(self, resource: ManagedResource, action: str) -> str:
        return f"check {resource.name}"
