"""
Template rendering for manifest values.

Renders ``{var}`` placeholders in paths, file bodies and commands, and
generates shell export lines for env blocks.
"""

from __future__ import annotations

import logging
import os
import platform
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def builtin_variables() -> dict[str, str]:
    """Environment-sourced variables available to every template.

    - ``{user}`` — current username
    - ``{home}`` — home directory
    - ``{arch}`` — machine architecture (``x86_64``, ``arm64``)
    - ``{nproc}`` — CPU core count
    """
    return {
        "user": os.getenv("USER", os.getenv("LOGNAME", "unknown")),
        "home": str(Path.home()),
        "arch": platform.machine().lower(),
        "nproc": str(os.cpu_count() or 1),
    }


def render_template(template: str, variables: dict[str, Any]) -> str:
    """Substitute ``{var}`` placeholders with values.

    Simple string replacement — no Jinja, no escaping. Only known keys
    are replaced, so Tcl braces and ``${SHELL_VARS}`` pass through.
    """
    result = template
    for key, value in variables.items():
        result = result.replace(f"{{{key}}}", str(value))
    return result


def render_value(value: Any, variables: dict[str, Any]) -> Any:
    """Render strings nested anywhere inside lists and dicts."""
    if isinstance(value, str):
        return render_template(value, variables)
    if isinstance(value, list):
        return [render_value(v, variables) for v in value]
    if isinstance(value, dict):
        return {k: render_value(v, variables) for k, v in value.items()}
    return value


def shell_export_line(name: str, value: str, shell_type: str = "zsh") -> str:
    """Generate a shell-specific env export line."""
    if shell_type == "fish":
        return f"set -gx {name} {value}"
    return f'export {name}="{value}"'
