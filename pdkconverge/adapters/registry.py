"""
Adapter registry — the set of host collaborators for one run.

Resource handlers never construct adapters themselves; they look them
up here. Tests build a registry out of the fakes in
:mod:`pdkconverge.adapters.mock`, the CLI builds the real one with
:func:`build_registry`.
"""

from __future__ import annotations

import logging

from pdkconverge.adapters.base import DisplayServer, Filesystem, PackageManager, PrivilegeBroker
from pdkconverge.adapters.shell.command import CommandRunner
from pdkconverge.core.errors import ExternalToolFailure

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Lookup table for package managers plus the singleton collaborators."""

    def __init__(
        self,
        *,
        filesystem: Filesystem,
        runner: CommandRunner,
        privilege: PrivilegeBroker,
        display: DisplayServer | None = None,
    ):
        self.filesystem = filesystem
        self.runner = runner
        self.privilege = privilege
        self.display = display
        self._managers: dict[str, PackageManager] = {}

    def register(self, manager: PackageManager) -> None:
        """Register a package manager under its name."""
        name = manager.name
        if name in self._managers:
            logger.warning("Overwriting existing package manager: %s", name)
        self._managers[name] = manager
        logger.debug("Registered package manager: %s", name)

    def get(self, name: str) -> PackageManager | None:
        return self._managers.get(name)

    def manager(self, name: str) -> PackageManager:
        """Look up a package manager, failing loudly when unknown."""
        manager = self._managers.get(name)
        if manager is None:
            raise ExternalToolFailure(f"No package manager registered for '{name}'")
        return manager

    def list_managers(self) -> list[str]:
        return list(self._managers.keys())

    def require_display(self) -> DisplayServer:
        if self.display is None:
            raise ExternalToolFailure("No display server configured")
        return self.display


def build_registry(*, manager_prefix: str, workdir: str) -> AdapterRegistry:
    """Real adapters for the local machine."""
    from pdkconverge.adapters.display.xquartz import XQuartzServer
    from pdkconverge.adapters.packages.homebrew import HomebrewManager
    from pdkconverge.adapters.packages.macports import MacPortsManager
    from pdkconverge.adapters.shell.filesystem import LocalFilesystem
    from pdkconverge.adapters.shell.privilege import SudoBroker

    runner = CommandRunner()
    privilege = SudoBroker(runner)
    registry = AdapterRegistry(
        filesystem=LocalFilesystem(),
        runner=runner,
        privilege=privilege,
        display=XQuartzServer(runner),
    )
    registry.register(MacPortsManager(runner, privilege, prefix=manager_prefix, workdir=workdir))
    registry.register(HomebrewManager(runner))
    return registry
