"""
Resource catalog — turn manifest declarations into ManagedResources.

Rendering happens once per run, after the install root is known:
every ``{var}`` in identifiers, contents, markers and options is
substituted, so handlers only ever see concrete paths and commands.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

from pdkconverge.core.config.templating import (
    builtin_variables,
    render_template,
    render_value,
    shell_export_line,
)
from pdkconverge.core.models.manifest import Manifest, ResourceDecl, Settings
from pdkconverge.core.models.probe import InstallRoot
from pdkconverge.core.models.resource import DesiredState, ManagedResource, ResourceKind

logger = logging.getLogger(__name__)

# Kinds whose identifier is a filesystem path
_PATH_KINDS = frozenset({
    ResourceKind.ENV_BLOCK,
    ResourceKind.CONFIG_FILE,
    ResourceKind.DIRECTORY,
    ResourceKind.LAUNCHER,
})


def base_variables(settings: Settings) -> dict[str, str]:
    """Variables known before the install root is located."""
    variables = builtin_variables()
    variables["pdk"] = settings.pdk
    for key, value in settings.variables.items():
        variables[key] = render_template(str(value), variables)
    for key in ("manager_prefix", "config_dir", "workdir", "log_dir"):
        variables[key] = render_template(getattr(settings, key), variables)
    return variables


def run_variables(settings: Settings, root: InstallRoot) -> dict[str, str]:
    """All template variables for a run."""
    variables = base_variables(settings)
    variables["pdk_root"] = root.path
    variables["pdk_prefix"] = root.prefix
    return variables


def env_block_body(decl: ResourceDecl, variables: Mapping[str, Any]) -> str:
    """Body of an env block: explicit ``content``, or ``exports`` + ``lines``."""
    if decl.content is not None:
        return render_template(decl.content, variables).strip("\n")
    shell = decl.options.get("shell", "zsh")
    lines = [
        shell_export_line(name, render_template(str(value), variables), shell)
        for name, value in (decl.options.get("exports") or {}).items()
    ]
    lines += [render_template(str(line), variables) for line in decl.options.get("lines", [])]
    return "\n".join(lines)


def build_resource(
    decl: ResourceDecl,
    flow: str,
    variables: Mapping[str, Any],
    known: set[str],
) -> ManagedResource:
    identifier = render_template(decl.identifier, variables)
    if decl.kind in _PATH_KINDS:
        identifier = os.path.expanduser(identifier)

    if decl.kind == ResourceKind.ENV_BLOCK:
        content: str | None = env_block_body(decl, variables)
    else:
        content = render_template(decl.content, variables) if decl.content is not None else None

    desired = DesiredState(
        state="present" if flow == "install" else "absent",
        version=decl.version,
        content=content,
        marker=render_template(decl.marker, variables) if decl.marker is not None else None,
    )

    depends_on: list[str] = []
    if flow == "install":
        for dep in decl.depends_on:
            if dep in known:
                depends_on.append(dep)
            else:
                logger.debug("%s: dependency %s is not part of the %s flow", decl.name, dep, flow)

    return ManagedResource(
        name=decl.name,
        kind=decl.kind,
        identifier=identifier,
        desired=desired,
        depends_on=depends_on,
        root=decl.root,
        needs_sudo=decl.needs_sudo,
        description=decl.description,
        options=render_value(dict(decl.options), variables),
    )


def build_resources(
    manifest: Manifest,
    flow: str,
    variables: Mapping[str, Any],
) -> list[ManagedResource]:
    """Rendered resources taking part in ``flow``, in declaration order.

    Uninstall resources want to be absent and carry no dependency
    edges: removing one resource never waits on another.
    """
    decls = manifest.for_flow(flow)
    known = {d.name for d in decls}
    return [build_resource(d, flow, variables, known) for d in decls]
