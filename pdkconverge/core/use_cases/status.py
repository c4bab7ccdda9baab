"""
Status use case — probe and plan without changing anything.

Answers "what would an install (or uninstall) do right now?" and
"where is the PDK?". No run log, no ledger, no prompts.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pdkconverge.adapters.registry import AdapterRegistry
from pdkconverge.core.config.loader import ConfigError, load_manifest
from pdkconverge.core.engine.planner import ActionPlan
from pdkconverge.core.engine.reconciler import Reconciler
from pdkconverge.core.models.probe import InstallRoot
from pdkconverge.core.models.resource import ResourceKind
from pdkconverge.core.services.catalog import build_resources
from pdkconverge.core.use_cases.reconcile import prepare_context

logger = logging.getLogger(__name__)


@dataclass
class StatusResult:
    """Observed state of every resource plus the plan that follows."""

    plan: ActionPlan | None = None
    install_root: InstallRoot | None = None
    env_blocks: dict[str, str] = field(default_factory=dict)
    error: str | None = None

    @property
    def converged(self) -> bool:
        return self.plan is not None and self.plan.all_skip

    def to_dict(self) -> dict[str, Any]:
        if self.error:
            return {"error": self.error}
        return {
            "converged": self.converged,
            "install_root": self.install_root.model_dump() if self.install_root else None,
            "plan": self.plan.to_dict() if self.plan else None,
        }


def get_status(
    flow: str = "install",
    *,
    manifest_path: Path | None = None,
    registry: AdapterRegistry | None = None,
    env: Mapping[str, str] | None = None,
    probe: bool = True,
) -> StatusResult:
    """Probe and plan ``flow``.

    Args:
        flow: ``install`` or ``uninstall``.
        manifest_path: Optional explicit manifest path.
        registry: Pre-built adapters (tests). None = real host adapters.
        env: Environment mapping for overrides. None = ``os.environ``.
        probe: If False, only locate the install root and render env blocks.
    """
    result = StatusResult()
    try:
        manifest = load_manifest(manifest_path)
        ctx = prepare_context(manifest, flow, registry=registry, env=env)
        resources = build_resources(manifest, flow, ctx.variables)
        result.install_root = ctx.install_root
        result.env_blocks = {
            r.identifier: r.desired.content or ""
            for r in resources if r.kind == ResourceKind.ENV_BLOCK
        }
        if probe:
            result.plan = Reconciler(ctx).plan(resources)
    except ConfigError as e:
        result.error = str(e)
    return result
