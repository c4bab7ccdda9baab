"""
Error taxonomy — what can go wrong while converging a resource.

Handlers and adapters raise these; the reconciler catches them per
resource and turns them into Outcome records. Only a failed root
dependency or a refused privilege grant reaches the exit code.
"""

from __future__ import annotations

from pdkconverge.core.models.outcome import ErrorKind


class ReconcileError(Exception):
    """Base class for per-resource errors."""

    kind: ErrorKind = ErrorKind.EXTERNAL_TOOL_FAILURE
    retryable: bool = False


class NotFound(ReconcileError):
    """Resource absent. Expected during probing, not a failure."""

    kind = ErrorKind.NOT_FOUND


class Divergent(ReconcileError):
    """Resource present with the wrong version or content."""

    kind = ErrorKind.DIVERGENT


class ExternalToolFailure(ReconcileError):
    """An external command exited non-zero."""

    kind = ErrorKind.EXTERNAL_TOOL_FAILURE

    def __init__(self, message: str, *, returncode: int | None = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class ManagerBusy(ExternalToolFailure):
    """The package manager holds its lock. Retry later."""

    retryable = True


class CommandTimeout(ExternalToolFailure):
    """An external command ran past its timeout. Retry later."""

    retryable = True


class PermissionDenied(ReconcileError):
    """Privilege escalation refused or unavailable."""

    kind = ErrorKind.PERMISSION_DENIED


class DependencyAborted(ReconcileError):
    """A prerequisite did not reach a satisfied state."""

    kind = ErrorKind.DEPENDENCY_ABORTED


class UserDeclined(ReconcileError):
    """The operator answered no at the confirm prompt."""

    kind = ErrorKind.USER_DECLINED
