"""
Apply — run the planned actions of one entry.

Each action goes to the resource kind's handler. Retryable errors
(package manager busy, command timeout) are retried with backoff;
everything else propagates to the reconciler.
"""

from __future__ import annotations

import logging

from pdkconverge.core.context import RunContext
from pdkconverge.core.engine.planner import Action, PlanEntry
from pdkconverge.core.errors import ExternalToolFailure
from pdkconverge.core.models.resource import ManagedResource
from pdkconverge.core.reliability.retry import call_with_retry
from pdkconverge.core.resources import handler_for

logger = logging.getLogger(__name__)


def run_action(resource: ManagedResource, action: Action, ctx: RunContext) -> None:
    """Run one action with retry.

    Raises:
        ReconcileError: The action failed for good.
    """
    handler = handler_for(resource.kind)
    step = {
        Action.INSTALL: handler.install,
        Action.REMOVE: handler.remove,
        Action.REPAIR: handler.repair,
    }.get(action)
    if step is None:
        return

    def attempt() -> None:
        try:
            step(resource, ctx)
        except OSError as e:
            raise ExternalToolFailure(f"{resource.name}: {e}") from e

    logger.info("%s %s", action.value, resource.label)
    call_with_retry(attempt, ctx.retry, label=f"{action.value} {resource.name}", sleep=ctx.sleep)


def apply_entry(entry: PlanEntry, ctx: RunContext) -> None:
    """Run every action of ``entry`` in order, stopping at the first failure.

    Check-only resources are left alone here; their one repair runs
    from the verify stage if the re-check still fails.
    """
    if handler_for(entry.resource.kind).check_only:
        logger.debug("%s: check only, deferring to verify", entry.resource.label)
        return
    for action in entry.actions:
        run_action(entry.resource, action, ctx)
