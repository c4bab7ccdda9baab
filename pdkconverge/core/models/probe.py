"""
Probe models — observed state of a resource.

A ProbeResult is produced fresh every run and never persisted. It
answers one question: how does the machine look right now, compared
to what the resource declares?
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ProbeStatus(StrEnum):
    """Observed state of a resource."""

    ABSENT = "absent"
    PRESENT = "present"
    DIVERGENT = "divergent"   # present, but wrong version / content


class ProbeResult(BaseModel):
    """Current state of one ManagedResource plus the evidence for it."""

    resource: str
    status: ProbeStatus
    path: str | None = None
    version: str | None = None
    detail: str = ""
    evidence: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @classmethod
    def absent(cls, resource: str, detail: str = "", **kwargs: Any) -> ProbeResult:
        return cls(resource=resource, status=ProbeStatus.ABSENT, detail=detail, **kwargs)

    @classmethod
    def present(cls, resource: str, detail: str = "", **kwargs: Any) -> ProbeResult:
        return cls(resource=resource, status=ProbeStatus.PRESENT, detail=detail, **kwargs)

    @classmethod
    def divergent(cls, resource: str, detail: str = "", **kwargs: Any) -> ProbeResult:
        return cls(resource=resource, status=ProbeStatus.DIVERGENT, detail=detail, **kwargs)

    @property
    def is_present(self) -> bool:
        return self.status == ProbeStatus.PRESENT

    @property
    def is_absent(self) -> bool:
        return self.status == ProbeStatus.ABSENT

    def summary(self) -> dict[str, Any]:
        """Compact evidence dict for outcome records."""
        data: dict[str, Any] = {"status": self.status.value}
        if self.path:
            data["path"] = self.path
        if self.version:
            data["version"] = self.version
        if self.detail:
            data["detail"] = self.detail
        data.update(self.evidence)
        return data


class InstallRoot(BaseModel):
    """Where the PDK lives for this run.

    ``source`` records how it was found: ``env`` (root override),
    ``prefix`` (derived from the prefix), ``search`` (candidate list)
    or ``default`` (nothing found, the derived default is used).
    """

    path: str
    prefix: str
    source: str
    found: bool = True
    candidates: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}
