"""
Managed resource model — the unit of reconciliation.

A ManagedResource is a declaration of intent: "this package / file /
directory / block should exist (or not) in this shape." It is declared
statically in the manifest, rendered once per run, and never mutated.
The observed state of a resource lives in a ProbeResult instead.
"""

from __future__ import annotations

import hashlib
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


class ResourceKind(StrEnum):
    """Kinds of managed resources."""

    PACKAGE = "package"
    PACKAGE_MANAGER = "package-manager"
    DISPLAY_SERVER = "display-server"
    ENV_BLOCK = "env-block"
    CONFIG_FILE = "config-file"
    DIRECTORY = "directory"
    LAUNCHER = "launcher"
    SMOKE_TEST = "smoke-test"


def content_hash(content: str) -> str:
    """SHA-256 hex digest of text content (UTF-8)."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class DesiredState(BaseModel):
    """What a resource should look like after the run."""

    state: Literal["present", "absent"] = "present"
    version: str | None = None      # packages: exact version wanted
    content: str | None = None      # files/blocks: full managed content
    marker: str | None = None       # files: substring proving our content is there

    @property
    def present(self) -> bool:
        return self.state == "present"

    @property
    def content_hash(self) -> str | None:
        if self.content is None:
            return None
        return content_hash(self.content)


class ManagedResource(BaseModel):
    """A named unit under reconciliation.

    ``options`` carries the kind-specific knobs (package manager name,
    install variants, commands, file mode, legacy patterns, ...). Handlers
    read them with :meth:`opt`.
    """

    name: str
    kind: ResourceKind
    identifier: str
    desired: DesiredState = Field(default_factory=DesiredState)
    depends_on: list[str] = Field(default_factory=list)
    root: bool = False
    needs_sudo: bool = False
    description: str = ""
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    def opt(self, key: str, default: Any = None) -> Any:
        """Look up a kind-specific option."""
        return self.options.get(key, default)

    @property
    def label(self) -> str:
        """Short human label: ``kind:name``."""
        return f"{self.kind.value}:{self.name}"
