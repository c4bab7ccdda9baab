"""
Mock adapters — in-memory test doubles for every host collaborator.

Each fake keeps a ``call_log`` and can be configured to fail, to report
busy, or to "succeed" without the change sticking (which exercises
the verify/repair path).
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from pdkconverge.adapters.base import DisplayServer, PackageManager, PrivilegeBroker
from pdkconverge.adapters.shell.command import CommandResult, CommandRunner
from pdkconverge.core.errors import ExternalToolFailure, ManagerBusy, PermissionDenied


class FakePackageManager(PackageManager):
    """Package manager backed by a dict of installed packages."""

    def __init__(
        self,
        name: str = "fake",
        installed: dict[str, str] | None = None,
        *,
        present: bool = True,
        ready: bool = True,
        default_version: str = "1.0",
        privilege: PrivilegeBroker | None = None,
    ):
        self._name = name
        self.installed: dict[str, str] = dict(installed or {})
        self.present = present
        self.ready = ready
        self.default_version = default_version
        self.privilege = privilege

        self.fail_install: set[str] = set()
        self.fail_remove: set[str] = set()
        self.not_sticky: set[str] = set()
        self.busy: dict[str, int] = {}
        # Listings that report busy before answering; fail_list never answers
        self.list_busy = 0
        self.fail_list = False
        self.fail_bootstrap = False
        self.fail_repair = False
        self.call_log: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    def is_installed(self) -> bool:
        return self.present

    def is_ready(self) -> bool:
        return self.present and self.ready

    def list_installed(self) -> dict[str, str]:
        self.call_log.append(("list", ""))
        if self.list_busy > 0:
            self.list_busy -= 1
            raise ManagerBusy(f"{self._name} installed: waiting for lock", returncode=1)
        if self.fail_list:
            raise ExternalToolFailure(f"{self._name} installed: exit 1", returncode=1)
        return dict(self.installed)

    def install(self, package: str, **options: Any) -> None:
        self.call_log.append(("install", package))
        self._elevate("install", package)
        self._check_busy(package)
        if package in self.fail_install:
            raise ExternalToolFailure(f"install {package}: exit 1", returncode=1)
        if package in self.not_sticky:
            return
        self.installed[package] = str(options.get("version") or self.default_version)

    def remove(self, package: str, **options: Any) -> None:
        self.call_log.append(("remove", package))
        self._elevate("uninstall", package)
        self._check_busy(package)
        if package in self.fail_remove:
            raise ExternalToolFailure(f"remove {package}: exit 1", returncode=1)
        self.installed.pop(package, None)

    def bootstrap(self) -> None:
        self.call_log.append(("bootstrap", self._name))
        self._elevate("bootstrap", self._name)
        if self.fail_bootstrap:
            raise ExternalToolFailure(f"bootstrap {self._name}: exit 1", returncode=1)
        self.present = True
        self.ready = True

    def repair(self) -> None:
        self.call_log.append(("repair", self._name))
        if self.fail_repair:
            raise ExternalToolFailure(f"repair {self._name}: exit 1", returncode=1)
        self.ready = True

    def calls(self, op: str) -> list[str]:
        """Arguments of every call to ``op``."""
        return [arg for name, arg in self.call_log if name == op]

    def _check_busy(self, package: str) -> None:
        remaining = self.busy.get(package, 0)
        if remaining > 0:
            self.busy[package] = remaining - 1
            raise ManagerBusy(f"{package}: waiting for lock", returncode=1)

    def _elevate(self, verb: str, package: str) -> None:
        if self.privilege is not None:
            self.privilege.run_elevated([self._name, verb, package])


class FakePrivilegeBroker(PrivilegeBroker):
    """Grants (or refuses) elevation without running anything."""

    def __init__(self, grant: bool = True):
        self.grant = grant
        self.requests = 0
        self.commands: list[list[str]] = []

    def run_elevated(self, command: Sequence[str], *, cwd: str | None = None) -> CommandResult:
        self.requests += 1
        if not self.grant:
            raise PermissionDenied("administrator access was refused or is unavailable")
        cmd = [str(c) for c in command]
        self.commands.append(cmd)
        return CommandResult(command=cmd, returncode=0)


class FakeDisplayServer(DisplayServer):
    """Display server with switchable install/reachability state."""

    def __init__(
        self,
        *,
        installed: bool = True,
        reachable: bool = True,
        restart_fixes: bool = True,
    ):
        self.installed = installed
        self.reachable = reachable
        self.restart_fixes = restart_fixes
        self.call_log: list[str] = []

    @property
    def name(self) -> str:
        return "fake-display"

    def is_installed(self) -> bool:
        return self.installed

    def is_reachable(self) -> bool:
        return self.installed and self.reachable

    def restart(self) -> None:
        self.call_log.append("restart")
        if self.restart_fixes and self.installed:
            self.reachable = True

    def reset_preferences(self) -> None:
        self.call_log.append("reset_preferences")


Responder = Callable[[list[str]], CommandResult | None]


class FakeRunner(CommandRunner):
    """Command runner that answers from registered responders.

    Responders are tried newest first; the first one that returns a
    result wins. Commands nobody answers succeed with empty output.
    """

    def __init__(self):
        self.calls: list[list[str]] = []
        self._responders: list[Responder] = []

    def on(self, needle: str, *, returncode: int = 0, output: str = "",
           effect: Callable[[], None] | None = None, times: int | None = None) -> None:
        """Answer any command whose joined argv contains ``needle``.

        With ``times`` set, only the first ``times`` matches are answered.
        """
        remaining = [times]

        def responder(cmd: list[str]) -> CommandResult | None:
            if needle not in " ".join(cmd) or remaining[0] == 0:
                return None
            if remaining[0] is not None:
                remaining[0] -= 1
            if effect is not None:
                effect()
            return CommandResult(command=cmd, returncode=returncode, output=output)

        self._responders.insert(0, responder)

    def run(self, command: Sequence[str], **kwargs: Any) -> CommandResult:
        cmd = [str(c) for c in command]
        self.calls.append(cmd)
        for responder in self._responders:
            result = responder(cmd)
            if result is not None:
                return result
        return CommandResult(command=cmd, returncode=0)

    def ran(self, needle: str) -> bool:
        return any(needle in " ".join(c) for c in self.calls)
