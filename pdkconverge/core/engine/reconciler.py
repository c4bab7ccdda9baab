"""
Reconciler — the Probe → Plan → Confirm → Apply → Verify loop.

Flow per run:
    probe every resource → build the plan → for each entry in order:
        dependencies satisfied?  no → blocked
        skip?                    yes → skipped
        dry run?                 yes → logged, skipped
        confirmed?               no → skipped (declined)
        re-probe: satisfied?     yes → verified (nothing to do)
        apply → verify → (one repair → verify) → verified | failed

Every resource ends in exactly one terminal Outcome. A failure is
contained to its own entry and to the entries depending on it.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from pdkconverge.core.context import RunContext
from pdkconverge.core.engine.apply import apply_entry
from pdkconverge.core.engine.confirm import Confirmer
from pdkconverge.core.engine.planner import ActionPlan, PlanEntry, build_plan
from pdkconverge.core.engine.probe import probe_all, probe_resource
from pdkconverge.core.engine.verify import repair_once, verify
from pdkconverge.core.errors import PermissionDenied, ReconcileError
from pdkconverge.core.models.outcome import ErrorKind, Outcome, ResourceState
from pdkconverge.core.models.probe import InstallRoot
from pdkconverge.core.models.resource import ManagedResource
from pdkconverge.core.persistence.ledger import OutcomeLedger
from pdkconverge.core.resources import handler_for

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_FAILURES = 2
EXIT_CANCELLED = 130


@dataclass
class RunReport:
    """Result of one reconcile run."""

    run_id: str = ""
    flow: str = "install"
    dry_run: bool = False
    outcomes: list[Outcome] = field(default_factory=list)
    plan: ActionPlan | None = None
    install_root: InstallRoot | None = None
    log_path: Path | None = None
    backups: list[Path] = field(default_factory=list)
    cancelled: bool = False

    def by_state(self, state: ResourceState) -> list[Outcome]:
        return [o for o in self.outcomes if o.state == state]

    def get(self, name: str) -> Outcome | None:
        for outcome in self.outcomes:
            if outcome.resource == name:
                return outcome
        return None

    @property
    def failed(self) -> list[Outcome]:
        return self.by_state(ResourceState.FAILED)

    @property
    def root_failures(self) -> list[Outcome]:
        return [o for o in self.failed if o.root]

    @property
    def permission_denied(self) -> bool:
        return any(o.error_kind == ErrorKind.PERMISSION_DENIED for o in self.outcomes)

    @property
    def exit_code(self) -> int:
        if self.cancelled:
            return EXIT_CANCELLED
        if self.permission_denied or self.root_failures:
            return EXIT_ABORTED
        if self.failed:
            return EXIT_FAILURES
        return EXIT_OK

    @property
    def status(self) -> str:
        if self.cancelled:
            return "cancelled"
        if self.exit_code == EXIT_OK:
            return "ok"
        if self.exit_code == EXIT_ABORTED:
            return "aborted"
        return "partial"

    def counts(self) -> dict[str, int]:
        return {state.value: len(self.by_state(state)) for state in (
            ResourceState.VERIFIED, ResourceState.SKIPPED,
            ResourceState.BLOCKED, ResourceState.FAILED,
        )}

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "flow": self.flow,
            "dry_run": self.dry_run,
            "status": self.status,
            "exit_code": self.exit_code,
            "counts": self.counts(),
            "install_root": self.install_root.model_dump() if self.install_root else None,
            "log": str(self.log_path) if self.log_path else None,
            "backups": [str(p) for p in self.backups],
            "outcomes": [o.model_dump(mode="json") for o in self.outcomes],
        }


def generate_run_id() -> str:
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    return f"run-{now}-{uuid.uuid4().hex[:6]}"


class Reconciler:
    """Drives a set of resources to their declared state."""

    def __init__(
        self,
        ctx: RunContext,
        confirmer: Confirmer | None = None,
        ledger: OutcomeLedger | None = None,
    ):
        self.ctx = ctx
        self.confirmer = confirmer or Confirmer(assume_yes=ctx.assume_yes)
        self.ledger = ledger

    # ── Public ──────────────────────────────────────────────────

    def plan(self, resources: Sequence[ManagedResource]) -> ActionPlan:
        """Probe and plan without touching anything."""
        probes = probe_all(resources, self.ctx)
        return build_plan(resources, probes, flow=self.ctx.flow)

    def run(self, resources: Sequence[ManagedResource]) -> RunReport:
        ctx = self.ctx
        report = RunReport(
            run_id=generate_run_id(),
            flow=ctx.flow,
            dry_run=ctx.dry_run,
            install_root=ctx.install_root,
            log_path=ctx.log_path,
            backups=ctx.backups,
        )
        logger.info(
            "%s run %s%s: %d resources", ctx.flow, report.run_id,
            " (dry run)" if ctx.dry_run else "", len(resources),
        )

        outcomes: dict[str, Outcome] = {
            r.name: Outcome(
                resource=r.name, kind=r.kind.value, identifier=r.identifier,
                root=r.root, dry_run=ctx.dry_run,
            )
            for r in resources
        }

        probes = probe_all(resources, ctx)
        for name, probe in probes.items():
            outcomes[name].advance(ResourceState.PROBED)
            outcomes[name].evidence["probe"] = probe.summary()

        plan = build_plan(resources, probes, flow=ctx.flow)
        report.plan = plan
        for entry in plan:
            outcome = outcomes[entry.name]
            outcome.actions = [a.value for a in entry.actions]
            outcome.advance(ResourceState.PLANNED)

        for entry in plan:
            outcome = outcomes[entry.name]
            start = time.monotonic()
            if ctx.cancelled:
                self._finish(outcome, ResourceState.SKIPPED, "cancelled before start", ErrorKind.CANCELLED)
            else:
                self._process(entry, outcome, outcomes)
            outcome.duration_ms = int((time.monotonic() - start) * 1000)
            report.outcomes.append(outcome)
            if self.ledger is not None:
                self.ledger.write(outcome, run_id=report.run_id)

        report.cancelled = any(o.error_kind == ErrorKind.CANCELLED for o in report.outcomes)
        logger.info("%s run %s finished: %s %s", ctx.flow, report.run_id, report.status, report.counts())
        return report

    # ── Per entry ───────────────────────────────────────────────

    def _process(self, entry: PlanEntry, outcome: Outcome, outcomes: dict[str, Outcome]) -> None:
        ctx = self.ctx
        resource = entry.resource

        unmet = [
            dep for dep in resource.depends_on
            if dep in outcomes and not outcomes[dep].satisfied
        ]
        if unmet:
            self._finish(
                outcome, ResourceState.BLOCKED,
                f"blocked by {', '.join(unmet)}", ErrorKind.DEPENDENCY_ABORTED,
            )
            return

        if entry.is_skip:
            self._finish(outcome, ResourceState.SKIPPED, "already converged")
            return

        if ctx.dry_run:
            outcome.advance(ResourceState.APPROVED)
            logger.info("[dry-run] would %s", entry.describe())
            self._finish(outcome, ResourceState.SKIPPED, f"would {entry.describe()}")
            return

        if not self.confirmer.approve(entry):
            self._finish(outcome, ResourceState.SKIPPED, "declined", ErrorKind.USER_DECLINED)
            return
        outcome.advance(ResourceState.APPROVED)

        if ctx.cancelled:
            self._finish(outcome, ResourceState.SKIPPED, "cancelled before start", ErrorKind.CANCELLED)
            return

        # Actions are idempotent: re-probe right before acting
        handler = handler_for(resource.kind)
        outcome.advance(ResourceState.APPLYING)
        fresh = probe_resource(resource, ctx)
        if handler.satisfied(resource, fresh):
            outcome.evidence["after"] = fresh.summary()
            self._finish(outcome, ResourceState.VERIFIED, "already converged")
            return

        error: ReconcileError | None = None
        try:
            apply_entry(entry, ctx)
        except PermissionDenied as e:
            self._finish(outcome, ResourceState.FAILED, str(e), e.kind)
            return
        except ReconcileError as e:
            logger.warning("%s: %s", resource.label, e)
            error = e

        check = verify(resource, ctx)
        if check.ok:
            outcome.evidence["after"] = check.probe.summary()
            self._finish(outcome, ResourceState.VERIFIED, entry.describe())
            return

        outcome.advance(ResourceState.REPAIR_ATTEMPTED)
        logger.info("%s not converged (%s), repairing", resource.label, check.probe.detail or check.probe.status)
        try:
            repair_once(resource, ctx)
        except PermissionDenied as e:
            self._finish(outcome, ResourceState.FAILED, str(e), e.kind)
            return
        except ReconcileError as e:
            logger.warning("%s: repair failed: %s", resource.label, e)
            error = e

        check = verify(resource, ctx)
        outcome.evidence["after"] = check.probe.summary()
        if check.ok:
            self._finish(outcome, ResourceState.VERIFIED, f"{entry.describe()} (repaired)")
            return

        if error is not None:
            self._finish(outcome, ResourceState.FAILED, str(error), error.kind)
        else:
            detail = check.probe.detail or check.probe.status.value
            self._finish(outcome, ResourceState.FAILED, f"still not converged: {detail}", ErrorKind.DIVERGENT)

    def _finish(
        self,
        outcome: Outcome,
        state: ResourceState,
        message: str,
        error_kind: ErrorKind | None = None,
    ) -> None:
        outcome.advance(state)
        outcome.message = message
        outcome.error_kind = error_kind
        log = logger.warning if state in (ResourceState.FAILED, ResourceState.BLOCKED) else logger.info
        log("%s %s: %s", outcome.resource, state.value, message)
