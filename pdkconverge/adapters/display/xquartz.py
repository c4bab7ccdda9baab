"""
XQuartz adapter — the X11 server GUI tools render to on macOS.
"""

from __future__ import annotations

import glob
import logging
import time
from collections.abc import Callable
from pathlib import Path

from pdkconverge.adapters.base import DisplayServer
from pdkconverge.adapters.shell.command import CommandRunner, raise_for_result

logger = logging.getLogger(__name__)

APP_PATHS = (
    Path("/Applications/Utilities/XQuartz.app"),
    Path("/Applications/XQuartz.app"),
)

PREFERENCES_DOMAIN = "org.xquartz.X11"

# launchd-managed DISPLAY socket
_SOCKET_GLOB = "/private/tmp/com.apple.launchd.*/org.xquartz:0"


class XQuartzServer(DisplayServer):
    """Control XQuartz through ``pgrep`` / ``open`` / ``defaults``."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        app_paths: tuple[Path, ...] = APP_PATHS,
        settle_seconds: float = 3.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._runner = runner
        self._app_paths = app_paths
        self._settle = settle_seconds
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "xquartz"

    def is_installed(self) -> bool:
        return any(p.is_dir() for p in self._app_paths)

    def is_reachable(self) -> bool:
        if self._runner.run(["pgrep", "-f", "XQuartz"]).ok:
            return True
        return bool(glob.glob(_SOCKET_GLOB))

    def display(self) -> str:
        """DISPLAY value for X11 clients: the launchd socket, else ``:0``."""
        sockets = sorted(glob.glob(_SOCKET_GLOB))
        return sockets[0] if sockets else ":0"

    def restart(self) -> None:
        logger.info("Restarting XQuartz")
        self._runner.run(["pkill", "-x", "XQuartz"])
        self._runner.run(["pkill", "-x", "Xquartz"])
        raise_for_result(self._runner.run(["open", "-a", "XQuartz"]), label="open XQuartz")
        self._sleep(self._settle)

    def reset_preferences(self) -> None:
        logger.info("Clearing cached XQuartz preferences (%s)", PREFERENCES_DOMAIN)
        # Exit 1 means the domain was already empty
        self._runner.run(["defaults", "delete", PREFERENCES_DOMAIN])
