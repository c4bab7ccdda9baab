"""
Reconcile use case — install or uninstall the toolchain.

This is the top-level orchestrator: it loads the manifest, locates the
PDK install root, renders the resources, opens the run log, and drives
the reconciler. The full vertical slice from CLI flags to outcomes.
"""

from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pdkconverge.adapters.registry import AdapterRegistry, build_registry
from pdkconverge.core.config.loader import ConfigError, load_manifest
from pdkconverge.core.context import RunContext
from pdkconverge.core.engine.confirm import Confirmer
from pdkconverge.core.engine.probe import find_install_root
from pdkconverge.core.engine.reconciler import EXIT_ABORTED, Reconciler, RunReport
from pdkconverge.core.models.manifest import Manifest
from pdkconverge.core.observability.logging_config import (
    attach_run_log,
    detach_run_log,
    run_log_path,
)
from pdkconverge.core.persistence.ledger import OutcomeLedger
from pdkconverge.core.reliability.retry import RetryPolicy
from pdkconverge.core.services.catalog import base_variables, build_resources, run_variables

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result of an install / uninstall run."""

    report: RunReport | None = None
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error:
            return EXIT_ABORTED
        assert self.report is not None
        return self.report.exit_code

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error}
        assert self.report is not None
        return self.report.to_dict()


def prepare_context(
    manifest: Manifest,
    flow: str,
    *,
    registry: AdapterRegistry | None = None,
    env: Mapping[str, str] | None = None,
    dry_run: bool = False,
    assume_yes: bool = False,
    retry: RetryPolicy | None = None,
) -> RunContext:
    """Locate the install root and build the context for a run."""
    settings = manifest.settings
    variables = base_variables(settings)
    if registry is None:
        registry = build_registry(
            manager_prefix=variables["manager_prefix"], workdir=variables["workdir"],
        )
    root = find_install_root(registry.filesystem, settings, variables, env)
    return RunContext(
        registry=registry,
        settings=settings,
        variables=run_variables(settings, root),
        install_root=root,
        flow=flow,
        dry_run=dry_run,
        assume_yes=assume_yes,
        retry=retry or RetryPolicy(),
    )


def run_reconcile(
    flow: str,
    *,
    manifest_path: Path | None = None,
    dry_run: bool = False,
    assume_yes: bool = False,
    registry: AdapterRegistry | None = None,
    confirmer: Confirmer | None = None,
    env: Mapping[str, str] | None = None,
    retry: RetryPolicy | None = None,
    write_log: bool = True,
) -> ReconcileResult:
    """Converge the machine towards the manifest.

    Args:
        flow: ``install`` or ``uninstall``.
        manifest_path: Optional explicit manifest path.
        dry_run: Log the plan, change nothing.
        assume_yes: Approve every confirm prompt.
        registry: Pre-built adapters (tests). None = real host adapters.
        confirmer: Custom confirmer (tests). None = stdin prompts.
        env: Environment mapping for overrides. None = ``os.environ``.
        retry: Backoff policy for busy package managers.
        write_log: Open a per-run log file and outcome ledger.

    Returns:
        ReconcileResult with the run report.
    """
    result = ReconcileResult()

    # ── Load manifest and render resources ───────────────────────
    try:
        manifest = load_manifest(manifest_path)
        ctx = prepare_context(
            manifest, flow, registry=registry, env=env,
            dry_run=dry_run, assume_yes=assume_yes, retry=retry,
        )
        resources = build_resources(manifest, flow, ctx.variables)
    except ConfigError as e:
        result.error = str(e)
        return result

    # ── Run log ─────────────────────────────────────────────────
    ledger: OutcomeLedger | None = None
    if write_log:
        ctx.log_path = attach_run_log(run_log_path(Path(ctx.variables["log_dir"])))
        ledger = OutcomeLedger(ctx.log_path.with_suffix(".ndjson"))
        logger.info("Run log: %s", ctx.log_path)
    assert ctx.install_root is not None
    logger.info("PDK root: %s (%s)", ctx.install_root.path, ctx.install_root.source)

    reconciler = Reconciler(
        ctx, confirmer or Confirmer(assume_yes=assume_yes), ledger,
    )
    restore = _install_interrupt_handler(ctx.cancel)
    try:
        result.report = reconciler.run(resources)
    except ConfigError as e:
        result.error = str(e)
    finally:
        restore()
        close = getattr(ctx.registry.privilege, "close", None)
        if close is not None:
            close()
        if write_log:
            detach_run_log()
    return result


def _install_interrupt_handler(cancel: threading.Event):
    """Turn SIGINT into a cancel request; returns a function restoring the old handler."""
    if threading.current_thread() is not threading.main_thread():
        return lambda: None

    def on_interrupt(signum, frame):
        if cancel.is_set():
            raise KeyboardInterrupt
        logger.warning("Interrupted: finishing the current step, then stopping")
        cancel.set()

    previous = signal.signal(signal.SIGINT, on_interrupt)
    return lambda: signal.signal(signal.SIGINT, previous)
