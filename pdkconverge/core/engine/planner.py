"""
Planner — diff probe results against declarations.

Produces the ActionPlan: one entry per resource, in execution order,
each carrying the actions that converge it.

    present  & wanted   → skip
    absent   & wanted   → install
    divergent & wanted  → repair (atomic kinds: remove, install)
    present/divergent & unwanted → remove
    absent   & unwanted → skip

Install runs follow dependency order (Kahn's algorithm, ties broken by
declaration order). Uninstall runs walk the declarations backwards.
"""

from __future__ import annotations

import heapq
import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from pdkconverge.core.config.loader import ConfigError
from pdkconverge.core.models.probe import ProbeResult, ProbeStatus
from pdkconverge.core.models.resource import ManagedResource
from pdkconverge.core.resources import handler_for

logger = logging.getLogger(__name__)


class Action(StrEnum):
    SKIP = "skip"
    INSTALL = "install"
    REMOVE = "remove"
    REPAIR = "repair"


# Actions that need operator consent
CONFIRM_ACTIONS = frozenset({Action.INSTALL, Action.REMOVE})


@dataclass
class PlanEntry:
    """One resource and what to do about it."""

    resource: ManagedResource
    probe: ProbeResult
    actions: tuple[Action, ...] = (Action.SKIP,)

    @property
    def name(self) -> str:
        return self.resource.name

    @property
    def is_skip(self) -> bool:
        return self.actions == (Action.SKIP,)

    @property
    def needs_confirm(self) -> bool:
        return any(a in CONFIRM_ACTIONS for a in self.actions)

    @property
    def label(self) -> str:
        """``install``, ``repair``, ``remove+install``, ..."""
        return "+".join(a.value for a in self.actions)

    def describe(self) -> str:
        handler = handler_for(self.resource.kind)
        return ", then ".join(handler.describe(self.resource, a.value) for a in self.actions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resource": self.resource.name,
            "kind": self.resource.kind.value,
            "identifier": self.resource.identifier,
            "actions": [a.value for a in self.actions],
            "probe": self.probe.summary(),
        }


@dataclass
class ActionPlan:
    """Ordered plan for one run."""

    flow: str = "install"
    entries: list[PlanEntry] = field(default_factory=list)

    def __iter__(self) -> Iterator[PlanEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def pending(self) -> list[PlanEntry]:
        return [e for e in self.entries if not e.is_skip]

    @property
    def all_skip(self) -> bool:
        return not self.pending

    def get(self, name: str) -> PlanEntry | None:
        for entry in self.entries:
            if entry.name == name:
                return entry
        return None

    def names(self) -> list[str]:
        return [e.name for e in self.entries]

    def to_dict(self) -> dict[str, Any]:
        return {
            "flow": self.flow,
            "pending": len(self.pending),
            "entries": [e.to_dict() for e in self.entries],
        }


def decide(resource: ManagedResource, probe: ProbeResult) -> tuple[Action, ...]:
    """Actions that take ``resource`` from ``probe`` to its desired state."""
    wanted = resource.desired.present
    status = probe.status
    if wanted:
        if status == ProbeStatus.PRESENT:
            return (Action.SKIP,)
        if status == ProbeStatus.ABSENT:
            return (Action.INSTALL,)
        if handler_for(resource.kind).atomic:
            return (Action.REMOVE, Action.INSTALL)
        return (Action.REPAIR,)
    if status == ProbeStatus.ABSENT:
        return (Action.SKIP,)
    return (Action.REMOVE,)


def topological_order(resources: Sequence[ManagedResource]) -> list[ManagedResource]:
    """Dependencies first; among ready resources, declaration order wins.

    Raises:
        ConfigError: Unknown dependency or a dependency cycle.
    """
    index = {r.name: i for i, r in enumerate(resources)}
    in_degree = {r.name: 0 for r in resources}
    dependents: dict[str, list[str]] = {r.name: [] for r in resources}
    for r in resources:
        for dep in r.depends_on:
            if dep not in index:
                raise ConfigError(f"Resource '{r.name}' depends on unknown resource '{dep}'")
            in_degree[r.name] += 1
            dependents[dep].append(r.name)

    ready = [index[name] for name, deg in in_degree.items() if deg == 0]
    heapq.heapify(ready)
    ordered: list[ManagedResource] = []
    while ready:
        node = resources[heapq.heappop(ready)]
        ordered.append(node)
        for successor in dependents[node.name]:
            in_degree[successor] -= 1
            if in_degree[successor] == 0:
                heapq.heappush(ready, index[successor])

    if len(ordered) < len(resources):
        stuck = sorted(name for name, deg in in_degree.items() if deg > 0)
        raise ConfigError(f"Dependency cycle among: {', '.join(stuck)}")
    return ordered


def build_plan(
    resources: Sequence[ManagedResource],
    probes: dict[str, ProbeResult],
    *,
    flow: str = "install",
) -> ActionPlan:
    """Diff every resource against its probe, in execution order."""
    if flow == "uninstall":
        ordered = list(reversed(resources))
    else:
        ordered = topological_order(resources)

    plan = ActionPlan(flow=flow)
    for resource in ordered:
        probe = probes[resource.name]
        entry = PlanEntry(resource=resource, probe=probe, actions=decide(resource, probe))
        plan.entries.append(entry)
        logger.info("plan: %-16s %-14s %s", resource.name, entry.label, probe.status)
    return plan
