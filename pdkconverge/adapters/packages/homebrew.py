"""
Homebrew adapter — formulae and casks under a user-owned prefix.

``brew`` refuses to run as root, so nothing here goes through the
privilege broker. Casks are addressed with ``cask: true`` in the
resource options.
"""

from __future__ import annotations

import logging
import platform
from pathlib import Path
from typing import Any

from pdkconverge.adapters.base import PackageManager
from pdkconverge.adapters.shell.command import CommandRunner, raise_for_result, shell_command
from pdkconverge.core.errors import ExternalToolFailure

logger = logging.getLogger(__name__)

_INSTALL_SCRIPT = "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"

BUSY_PATTERNS = (
    r"has already locked",
    r"another active homebrew",
    r"process has already locked",
)


def default_brew_prefix(arch: str | None = None) -> str:
    """Standard prefix: ``/opt/homebrew`` on Apple silicon, else ``/usr/local``."""
    machine = (arch or platform.machine()).lower()
    return "/opt/homebrew" if machine == "arm64" else "/usr/local"


def parse_versions(output: str) -> dict[str, str]:
    """Parse ``brew list --versions`` (``name v1 [v2 ...]``), newest last."""
    installed: dict[str, str] = {}
    for line in output.splitlines():
        parts = line.split()
        if not parts:
            continue
        installed[parts[0]] = parts[-1] if len(parts) > 1 else ""
    return installed


class HomebrewManager(PackageManager):
    """Homebrew via ``brew``."""

    def __init__(self, runner: CommandRunner, *, prefix: str | None = None):
        self._runner = runner
        self._prefix = prefix

    @property
    def name(self) -> str:
        return "homebrew"

    @property
    def brew(self) -> str | None:
        """Path of the ``brew`` binary, searched in the known prefixes."""
        candidates = [self._prefix] if self._prefix else []
        candidates += [default_brew_prefix(), "/opt/homebrew", "/usr/local"]
        for prefix in candidates:
            path = Path(prefix) / "bin" / "brew"
            if path.is_file():
                return str(path)
        return None

    def is_installed(self) -> bool:
        return self.brew is not None

    def is_ready(self) -> bool:
        brew = self.brew
        if brew is None:
            return False
        return self._runner.run([brew, "--version"]).ok

    def list_installed(self) -> dict[str, str]:
        brew = self.brew
        if brew is None:
            return {}
        installed: dict[str, str] = {}
        for flag in ("--formula", "--cask"):
            result = self._runner.run([brew, "list", flag, "--versions"])
            raise_for_result(result, label=f"brew list {flag}", busy_patterns=BUSY_PATTERNS)
            installed.update(parse_versions(result.output))
        return installed

    def install(self, package: str, **options: Any) -> None:
        cmd = [self._require(), "install"]
        if options.get("cask"):
            cmd.append("--cask")
        cmd.append(package)
        raise_for_result(
            self._runner.run(cmd), label=f"brew install {package}", busy_patterns=BUSY_PATTERNS,
        )

    def remove(self, package: str, **options: Any) -> None:
        cmd = [self._require(), "uninstall"]
        if options.get("cask"):
            cmd.append("--cask")
        else:
            cmd.append("--ignore-dependencies")
        cmd.append(package)
        raise_for_result(
            self._runner.run(cmd), label=f"brew uninstall {package}", busy_patterns=BUSY_PATTERNS,
        )

    def bootstrap(self) -> None:
        logger.info("Installing Homebrew")
        result = self._runner.run(
            shell_command(f'/bin/bash -c "$(curl -fsSL {_INSTALL_SCRIPT})"'),
            env={"NONINTERACTIVE": "1"},
        )
        raise_for_result(result, label="Homebrew installer")

    def repair(self) -> None:
        brew = self._require()
        raise_for_result(
            self._runner.run([brew, "update-reset"]), label="brew update-reset",
            busy_patterns=BUSY_PATTERNS,
        )

    def _require(self) -> str:
        brew = self.brew
        if brew is None:
            raise ExternalToolFailure("brew: Homebrew is not installed", returncode=127)
        return brew
