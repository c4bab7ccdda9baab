"""
Manifest model — the declaration file.

Loaded from a YAML manifest, this is the canonical list of everything
the reconciler manages on a machine: where the PDK lives, which shell
files carry the env block, which packages come from which manager,
and what every tool-owned file contains. String values may contain
``{var}`` placeholders, rendered once the install root is known.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from pdkconverge.core.models.resource import ResourceKind


class Settings(BaseModel):
    """Global knobs: paths, markers and environment overrides."""

    pdk: str = "sky130A"
    pdk_marker: str = "{pdk}/libs.tech/magic/{pdk}.magicrc"
    default_prefix: str = "{home}/eda/pdks"
    root_suffix: str = "share/pdk"
    search_paths: list[str] = Field(default_factory=list)

    env_root: str = "PDK_ROOT"
    env_prefix: str = "PDK_PREFIX"

    manager_prefix: str = "/opt/local"
    log_dir: str = "{home}/.local/state/pdkconverge/logs"
    config_dir: str = "{home}/.config/sky130"
    workdir: str = "{home}/.eda-bootstrap"

    block_begin: str = "# BEGIN SKY130 ENV"
    block_end: str = "# END SKY130 ENV"

    variables: dict[str, str] = Field(default_factory=dict)


class ResourceDecl(BaseModel):
    """One resource as written in the manifest.

    Unknown keys are kept as kind-specific options.
    """

    name: str
    kind: ResourceKind
    identifier: str
    description: str = ""
    depends_on: list[str] = Field(default_factory=list)
    root: bool = False
    needs_sudo: bool = False
    flows: list[Literal["install", "uninstall"]] = Field(
        default_factory=lambda: ["install", "uninstall"]
    )
    version: str | None = None
    content: str | None = None
    marker: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "allow"}

    @model_validator(mode="after")
    def _collect_extras(self) -> ResourceDecl:
        extras = self.model_extra or {}
        for key, value in extras.items():
            self.options.setdefault(key, value)
        return self


class Manifest(BaseModel):
    """Root declaration — loaded from manifest YAML."""

    version: int = 1
    name: str = ""
    description: str = ""
    settings: Settings = Field(default_factory=Settings)
    resources: list[ResourceDecl] = Field(default_factory=list)

    def for_flow(self, flow: str) -> list[ResourceDecl]:
        """Declarations taking part in ``flow`` (install / uninstall)."""
        return [r for r in self.resources if flow in r.flows]

    def get(self, name: str) -> ResourceDecl | None:
        for decl in self.resources:
            if decl.name == name:
                return decl
        return None
