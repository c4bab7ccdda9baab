"""
Verify — re-probe the resource just changed and compare.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pdkconverge.core.context import RunContext
from pdkconverge.core.engine.apply import run_action
from pdkconverge.core.engine.planner import Action
from pdkconverge.core.engine.probe import probe_resource
from pdkconverge.core.models.probe import ProbeResult
from pdkconverge.core.models.resource import ManagedResource
from pdkconverge.core.resources import handler_for

logger = logging.getLogger(__name__)


@dataclass
class Verification:
    ok: bool
    probe: ProbeResult


def verify(resource: ManagedResource, ctx: RunContext) -> Verification:
    result = probe_resource(resource, ctx)
    ok = handler_for(resource.kind).satisfied(resource, result)
    logger.debug("verify %s: %s (%s)", resource.label, "ok" if ok else "mismatch", result.status)
    return Verification(ok=ok, probe=result)


def repair_once(resource: ManagedResource, ctx: RunContext) -> None:
    """One repair cycle. Resources meant to be gone get another removal."""
    action = Action.REPAIR if resource.desired.present else Action.REMOVE
    run_action(resource, action, ctx)
