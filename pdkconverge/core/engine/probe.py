"""
State probe — observe resources and locate the PDK install root.

Probing is read-only and safe to repeat: the reconciler probes every
resource at the start of a run, again right before acting on it, and
once more to verify the change.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

from pdkconverge.adapters.base import Filesystem
from pdkconverge.core.config.templating import render_template
from pdkconverge.core.context import RunContext
from pdkconverge.core.errors import ExternalToolFailure, ReconcileError
from pdkconverge.core.models.manifest import Settings
from pdkconverge.core.models.probe import InstallRoot, ProbeResult
from pdkconverge.core.models.resource import ManagedResource
from pdkconverge.core.reliability.retry import call_with_retry
from pdkconverge.core.resources import handler_for

logger = logging.getLogger(__name__)


def probe_resource(resource: ManagedResource, ctx: RunContext) -> ProbeResult:
    """Probe one resource.

    A busy package manager or a timed-out command is retried with the
    run's backoff. A probe that still fails reads as divergent, with the
    error as evidence: the resource could not be observed, so it is
    neither converged nor known to be gone.
    """
    handler = handler_for(resource.kind)

    def attempt() -> ProbeResult:
        try:
            return handler.probe(resource, ctx)
        except OSError as e:
            raise ExternalToolFailure(f"{resource.name}: {e}") from e

    try:
        result = call_with_retry(
            attempt, ctx.retry, label=f"probe {resource.name}", sleep=ctx.sleep,
        )
    except ReconcileError as e:
        logger.warning("Probe of %s failed: %s", resource.label, e)
        return ProbeResult.divergent(
            resource.name, f"probe failed: {e}", evidence={"error": str(e)},
        )
    logger.debug("probe %s → %s %s", resource.label, result.status, result.detail)
    return result


def probe_all(resources: Sequence[ManagedResource], ctx: RunContext) -> dict[str, ProbeResult]:
    return {r.name: probe_resource(r, ctx) for r in resources}


# ── Install root ────────────────────────────────────────────────


def _prefix_of(root: str, suffix: str, fallback: str) -> str:
    """``/x/share/pdk`` → ``/x``; roots not ending in the suffix keep ``fallback``."""
    tail = "/" + suffix.strip("/")
    trimmed = root.rstrip("/")
    if trimmed.endswith(tail):
        return trimmed[: -len(tail)] or "/"
    return fallback


def find_install_root(
    fs: Filesystem,
    settings: Settings,
    variables: Mapping[str, str],
    env: Mapping[str, str] | None = None,
) -> InstallRoot:
    """Locate the PDK root.

    Search order, first match wins:

        1. ``$PDK_ROOT``, used as-is when it holds the marker file
        2. ``($PDK_PREFIX or default prefix)/share/pdk``
        3. each configured search path, in order

    A candidate matches when ``<candidate>/<marker>`` is a file. When
    nothing matches, the derived root from step 2 is returned with
    ``source="default"`` so an install has somewhere to go.
    """
    env = os.environ if env is None else env
    marker = render_template(settings.pdk_marker, variables)
    default_prefix = render_template(settings.default_prefix, variables)
    prefix = env.get(settings.env_prefix) or default_prefix
    derived = str(Path(prefix) / settings.root_suffix)
    tried: list[str] = []

    root_env = env.get(settings.env_root)
    if root_env:
        tried.append(root_env)
        if fs.search([Path(root_env)], marker) is not None:
            logger.info("PDK root from $%s: %s", settings.env_root, root_env)
            return InstallRoot(
                path=root_env, prefix=_prefix_of(root_env, settings.root_suffix, prefix),
                source="env", candidates=tried,
            )
        logger.warning("$%s=%s has no %s, ignoring it", settings.env_root, root_env, marker)

    tried.append(derived)
    if fs.search([Path(derived)], marker) is not None:
        logger.info("PDK root from prefix: %s", derived)
        return InstallRoot(path=derived, prefix=prefix, source="prefix", candidates=tried)

    bases = [render_template(p, variables) for p in settings.search_paths]
    tried.extend(bases)
    found = fs.search([Path(b) for b in bases], marker)
    if found is not None:
        path = str(found)
        logger.info("PDK root found by search: %s", path)
        return InstallRoot(
            path=path, prefix=_prefix_of(path, settings.root_suffix, prefix),
            source="search", candidates=tried,
        )

    logger.info("No PDK found, defaulting to %s", derived)
    return InstallRoot(
        path=derived, prefix=prefix, source="default", found=False, candidates=tried,
    )
