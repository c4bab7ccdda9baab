"""
Outcome models — structured per-resource results.

Every resource that passes through the pipeline ends in exactly one
Outcome. Outcomes replace exit codes and free-form log text: the final
summary, the NDJSON ledger and the tests all read these records.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ResourceState(StrEnum):
    """Per-resource lifecycle.

    unprobed → probed → planned → {skipped | approved} → applying
        → {verified | repair_attempted → {verified | failed}} | blocked
    """

    UNPROBED = "unprobed"
    PROBED = "probed"
    PLANNED = "planned"
    APPROVED = "approved"
    APPLYING = "applying"
    REPAIR_ATTEMPTED = "repair_attempted"
    SKIPPED = "skipped"
    VERIFIED = "verified"
    FAILED = "failed"
    BLOCKED = "blocked"


TERMINAL_STATES = frozenset({
    ResourceState.SKIPPED,
    ResourceState.VERIFIED,
    ResourceState.FAILED,
    ResourceState.BLOCKED,
})

# Legal transitions of the per-resource state machine.
TRANSITIONS: dict[ResourceState, frozenset[ResourceState]] = {
    ResourceState.UNPROBED: frozenset({ResourceState.PROBED}),
    ResourceState.PROBED: frozenset({ResourceState.PLANNED}),
    ResourceState.PLANNED: frozenset({
        ResourceState.SKIPPED, ResourceState.APPROVED, ResourceState.BLOCKED,
    }),
    ResourceState.APPROVED: frozenset({ResourceState.APPLYING, ResourceState.SKIPPED}),
    ResourceState.APPLYING: frozenset({
        ResourceState.VERIFIED, ResourceState.REPAIR_ATTEMPTED, ResourceState.FAILED,
    }),
    ResourceState.REPAIR_ATTEMPTED: frozenset({ResourceState.VERIFIED, ResourceState.FAILED}),
}


class ErrorKind(StrEnum):
    """Error taxonomy recorded on outcomes."""

    NOT_FOUND = "not_found"
    DIVERGENT = "divergent"
    EXTERNAL_TOOL_FAILURE = "external_tool_failure"
    PERMISSION_DENIED = "permission_denied"
    DEPENDENCY_ABORTED = "dependency_aborted"
    USER_DECLINED = "user_declined"
    CANCELLED = "cancelled"


class Outcome(BaseModel):
    """Terminal record for one resource."""

    resource: str
    kind: str
    identifier: str
    actions: list[str] = Field(default_factory=list)
    state: ResourceState = ResourceState.UNPROBED
    error_kind: ErrorKind | None = None
    message: str = ""
    evidence: dict[str, Any] = Field(default_factory=dict)
    history: list[ResourceState] = Field(default_factory=list)
    dry_run: bool = False
    root: bool = False

    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""
    duration_ms: int = 0

    def advance(self, state: ResourceState) -> None:
        """Move to ``state``, enforcing the state machine."""
        allowed = TRANSITIONS.get(self.state, frozenset())
        if state not in allowed:
            raise ValueError(
                f"{self.resource}: illegal transition {self.state} → {state}"
            )
        self.history.append(self.state)
        self.state = state
        if state in TERMINAL_STATES:
            self.ended_at = _now_iso()

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def satisfied(self) -> bool:
        """Whether dependents of this resource may proceed.

        Verified resources and no-op skips satisfy dependents; dry-run
        approvals count as satisfied for planning purposes. Declined,
        cancelled, failed and blocked resources do not.
        """
        if self.state == ResourceState.VERIFIED:
            return True
        if self.state == ResourceState.SKIPPED:
            return self.error_kind is None
        return False

    @property
    def marker(self) -> str:
        """Console marker: ok / warn / fail."""
        if self.state == ResourceState.FAILED:
            return "fail"
        if self.state == ResourceState.VERIFIED or self.satisfied:
            return "ok"
        return "warn"
