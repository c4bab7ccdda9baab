"""
Domain models — Pydantic types for the reconciler.

All models are re-exported here for convenient access:

    from pdkconverge.core.models import ManagedResource, ProbeResult, Outcome
"""

from pdkconverge.core.models.manifest import Manifest, ResourceDecl, Settings
from pdkconverge.core.models.outcome import (
    TERMINAL_STATES,
    ErrorKind,
    Outcome,
    ResourceState,
)
from pdkconverge.core.models.probe import InstallRoot, ProbeResult, ProbeStatus
from pdkconverge.core.models.resource import (
    DesiredState,
    ManagedResource,
    ResourceKind,
    content_hash,
)

__all__ = [
    # resource.py
    "DesiredState",
    "ErrorKind",
    "InstallRoot",
    "ManagedResource",
    # manifest.py
    "Manifest",
    # outcome.py
    "Outcome",
    # probe.py
    "ProbeResult",
    "ProbeStatus",
    "ResourceDecl",
    "ResourceKind",
    "ResourceState",
    "Settings",
    "TERMINAL_STATES",
    "content_hash",
]
