"""
pdkconverge — CLI entrypoint.

Usage:
    pdkconverge --help
    pdkconverge install [-y] [--dry-run]
    pdkconverge uninstall [-y] [--dry-run]
    pdkconverge status
    pdkconverge pdk root
"""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click

from pdkconverge import __version__
from pdkconverge.core.observability.logging_config import setup_logging

logger = logging.getLogger(__name__)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

# install / uninstall tolerate unknown flags (warned about, then ignored)
LENIENT_SETTINGS = {
    **CONTEXT_SETTINGS,
    "ignore_unknown_options": True,
    "allow_extra_args": True,
}

# ctx.meta key for unknown options given before the sub-command
_UNKNOWN_GLOBAL = "pdkconverge.unknown_global"

_MARKERS = {
    "ok": ("✓", "green"),
    "warn": ("!", "yellow"),
    "fail": ("✗", "red"),
}

_UNINSTALL_HINTS = """\
Hints:
- If Magic still auto-loads a tech, check for a project-local .magicrc in your design folders.
- To clear the environment of this shell: unset PDK_ROOT PDK_PREFIX PDK
- Open a new terminal to use a clean environment."""


def _option_arity(ctx: click.Context, command: click.Command) -> dict[str, bool]:
    """Option string → whether it takes a value."""
    arity: dict[str, bool] = {}
    for param in command.get_params(ctx):
        if isinstance(param, click.Option):
            for name in (*param.opts, *param.secondary_opts):
                arity[name] = not (param.is_flag or param.count)
    return arity


def _is_known(arg: str, arity: dict[str, bool]) -> bool:
    if arg.split("=", 1)[0] in arity:
        return True
    if arg.startswith("--") or len(arg) < 3:
        return False
    # -mPATH, or a cluster of short flags such as -vq
    if arity.get(arg[:2]):
        return True
    return all(arity.get(f"-{c}") is False for c in arg[1:])


class LenientGroup(click.Group):
    """Group that drops unknown options given before the sub-command.

    Dropped tokens are parked in ``ctx.meta`` and warned about once
    logging is configured.
    """

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        arity = _option_arity(ctx, self)
        kept: list[str] = []
        dropped: list[str] = []
        i = 0
        while i < len(args) and args[i].startswith("-") and args[i] != "--":
            arg = args[i]
            if _is_known(arg, arity):
                kept.append(arg)
                if arity.get(arg) and i + 1 < len(args):
                    i += 1
                    kept.append(args[i])
            else:
                dropped.append(arg)
            i += 1
        ctx.meta[_UNKNOWN_GLOBAL] = dropped
        return super().parse_args(ctx, kept + args[i:])


@click.group(cls=LenientGroup, context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, "--version", prog_name="pdkconverge")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--manifest",
    "-m",
    "manifest_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to a manifest YAML (default: $PDKCONVERGE_MANIFEST or the bundled one).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    manifest_path: str | None,
) -> None:
    """pdkconverge — converge an IC design toolchain and PDK onto this machine."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["manifest_path"] = Path(manifest_path) if manifest_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PDKCONVERGE_LOG_LEVEL", "WARNING")

    setup_logging(level=level, quiet_third_party=not debug)
    _warn_unknown(ctx.meta.pop(_UNKNOWN_GLOBAL, []))


def _warn_unknown(args: list[str]) -> None:
    for arg in args:
        logger.warning("Ignoring unknown argument: %s", arg)
        click.secho(f"! ignoring unknown argument: {arg}", fg="yellow", err=True)


def _print_report(report, quiet: bool) -> None:
    """Every outcome with its marker, then the summary and the log pointer."""
    if not quiet:
        click.echo()
    for outcome in report.outcomes:
        symbol, color = _MARKERS[outcome.marker]
        if quiet and outcome.marker == "ok":
            continue
        click.secho(f"  {symbol} ", fg=color, nl=False)
        click.echo(f"{outcome.resource:<18} {outcome.state.value:<9} {outcome.message}")

    counts = report.counts()
    summary = ", ".join(f"{n} {state}" for state, n in counts.items() if n)
    click.echo()
    label = {"ok": "PASS", "partial": "FAIL", "aborted": "ABORTED", "cancelled": "CANCELLED"}[report.status]
    color = "green" if report.status == "ok" else "red"
    prefix = "[dry-run] " if report.dry_run else ""
    click.secho(f"{prefix}{report.flow}: {label}", fg=color, bold=True, nl=False)
    click.echo(f" ({summary or 'nothing to do'})")
    if report.backups:
        click.echo(f"  Backups: {', '.join(str(p) for p in report.backups)}")
    if report.log_path:
        click.echo(f"  Full log: {report.log_path}")


def _reconcile(ctx: click.Context, flow: str, yes: bool, dry_run: bool, as_json: bool) -> None:
    from pdkconverge.core.use_cases.reconcile import run_reconcile

    _warn_unknown(ctx.args)
    result = run_reconcile(
        flow,
        manifest_path=ctx.obj.get("manifest_path"),
        dry_run=dry_run,
        assume_yes=yes,
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"✗ {result.error}", fg="red", err=True)
        sys.exit(result.exit_code)

    assert result.report is not None
    _print_report(result.report, ctx.obj.get("quiet", False))
    if flow == "uninstall" and not dry_run and not ctx.obj.get("quiet", False):
        click.echo()
        click.echo(_UNINSTALL_HINTS)
    sys.exit(result.exit_code)


@cli.command(context_settings=LENIENT_SETTINGS)
@click.option("--yes", "-y", is_flag=True, help="Non-interactive: approve every action.")
@click.option("--dry-run", is_flag=True, help="Log what would be done, change nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, yes: bool, dry_run: bool, as_json: bool) -> None:
    """Install the toolchain, PDK and environment."""
    _reconcile(ctx, "install", yes, dry_run, as_json)


@cli.command(context_settings=LENIENT_SETTINGS)
@click.option("--yes", "-y", is_flag=True, help="Non-interactive: approve every removal.")
@click.option("--dry-run", is_flag=True, help="Log what would be removed, change nothing.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(ctx: click.Context, yes: bool, dry_run: bool, as_json: bool) -> None:
    """Remove the toolchain packages, PDK, env blocks and files we created."""
    _reconcile(ctx, "uninstall", yes, dry_run, as_json)


@cli.command()
@click.option(
    "--flow",
    type=click.Choice(["install", "uninstall"]),
    default="install",
    show_default=True,
    help="Which run to plan.",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, flow: str, as_json: bool) -> None:
    """Probe every resource and show what a run would do."""
    from pdkconverge.core.use_cases.status import get_status

    result = get_status(flow, manifest_path=ctx.obj.get("manifest_path"))

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(1 if result.error else 0)

    if result.error:
        click.secho(f"✗ {result.error}", fg="red", err=True)
        sys.exit(1)

    assert result.plan is not None and result.install_root is not None
    root = result.install_root
    click.secho(f"PDK root: {root.path}", fg="cyan", bold=True, nl=False)
    click.echo(f" ({root.source})")
    click.echo()
    for entry in result.plan:
        if entry.is_skip:
            click.secho("  ✓ ", fg="green", nl=False)
        else:
            click.secho("  • ", fg="yellow", nl=False)
        click.echo(f"{entry.name:<18} {entry.probe.status.value:<10} {entry.label:<15} {entry.probe.detail}")
    click.echo()
    if result.converged:
        click.secho(f"Converged: {flow} has nothing to do.", fg="green")
    else:
        click.echo(f"{len(result.plan.pending)} resource(s) would change on {flow}.")


# ── Register sub-command groups from ui/cli/ ─────────────────────

from pdkconverge.ui.cli.pdk import pdk  # noqa: E402

cli.add_command(pdk)


if __name__ == "__main__":
    cli()
