"""
CLI commands for the PDK install root and environment.

Thin wrappers over ``pdkconverge.core.use_cases.status``.
"""

from __future__ import annotations

import json
import sys

import click


@click.group("pdk", context_settings={"help_option_names": ["-h", "--help"]})
def pdk() -> None:
    """PDK — locate the install root, show the shell environment."""


@pdk.command("root")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def root(ctx: click.Context, as_json: bool) -> None:
    """Show where the PDK was found and how."""
    from pdkconverge.core.use_cases.status import get_status

    result = get_status(manifest_path=ctx.obj.get("manifest_path"), probe=False)
    if result.error:
        click.secho(f"✗ {result.error}", fg="red", err=True)
        sys.exit(1)

    install_root = result.install_root
    assert install_root is not None

    if as_json:
        click.echo(json.dumps(install_root.model_dump(), indent=2))
        return

    click.echo(install_root.path)
    if ctx.obj.get("quiet", False):
        return
    state = "found" if install_root.found else "not installed yet"
    click.echo(f"   prefix: {install_root.prefix}")
    click.echo(f"   source: {install_root.source} ({state})")
    for candidate in install_root.candidates:
        click.echo(f"   searched: {candidate}")


@pdk.command("env")
@click.pass_context
def env(ctx: click.Context) -> None:
    """Print the env block written into shell startup files."""
    from pdkconverge.core.use_cases.status import get_status

    result = get_status(manifest_path=ctx.obj.get("manifest_path"), probe=False)
    if result.error:
        click.secho(f"✗ {result.error}", fg="red", err=True)
        sys.exit(1)

    bodies = list(dict.fromkeys(result.env_blocks.values()))
    if not bodies:
        click.secho("No env block declared.", fg="yellow")
        return
    for body in bodies:
        click.echo(body)
