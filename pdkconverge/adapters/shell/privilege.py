"""
Privilege broker — runs commands as root through sudo.

Escalation is requested at most once per run:

    - Already root:   commands run directly
    - Terminal:       ``sudo -v`` prompts once, later calls use ``sudo -n``
    - No terminal:    a graphical askpass helper (``osascript`` dialog)
                      is handed to ``sudo -A``

The first grant or refusal is cached for the rest of the run. While a
grant is held a background thread refreshes the sudo timestamp with
``sudo -n -v`` every minute. A command that still finds the timestamp
expired revalidates once and is re-run.
"""

from __future__ import annotations

import logging
import os
import stat
import sys
import tempfile
import threading
from collections.abc import Sequence
from pathlib import Path

from pdkconverge.adapters.base import PrivilegeBroker
from pdkconverge.adapters.shell.command import CommandResult, CommandRunner
from pdkconverge.core.errors import PermissionDenied

logger = logging.getLogger(__name__)

_ASKPASS_SCRIPT = """#!/bin/sh
exec /usr/bin/osascript \\
  -e 'display dialog "pdkconverge needs administrator access to install the toolchain." with title "pdkconverge" default answer "" with hidden answer buttons {"Cancel", "OK"} default button "OK"' \\
  -e 'text returned of result'
"""

# sudo -n output when the cached timestamp is gone
_EXPIRED = "a password is required"

KEEPALIVE_SECONDS = 60.0


class SudoBroker(PrivilegeBroker):
    """Elevate through sudo, prompting once per run."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        interactive: bool | None = None,
        is_root: bool | None = None,
        keepalive_seconds: float | None = KEEPALIVE_SECONDS,
    ):
        self._runner = runner
        self._interactive = sys.stdin.isatty() if interactive is None else interactive
        self._is_root = (os.geteuid() == 0) if is_root is None else is_root
        self._granted: bool | None = None
        self._askpass: Path | None = None
        self._keepalive_seconds = keepalive_seconds
        self._keepalive: threading.Thread | None = None
        self._stop = threading.Event()

    @property
    def granted(self) -> bool | None:
        """Cached result of the escalation request (None = not asked yet)."""
        return self._granted

    @property
    def keeping_alive(self) -> bool:
        """Whether the timestamp refresh thread is running."""
        return self._keepalive is not None and self._keepalive.is_alive()

    def run_elevated(self, command: Sequence[str], *, cwd: str | None = None) -> CommandResult:
        cmd = [str(c) for c in command]
        if self._is_root:
            return self._runner.run(cmd, cwd=cwd)

        self._acquire()
        result = self._runner.run(self._prefix() + cmd, cwd=cwd, env=self._env())
        if not result.ok and _EXPIRED in result.output:
            logger.info("sudo timestamp expired, revalidating")
            self._revalidate()
            result = self._runner.run(self._prefix() + cmd, cwd=cwd, env=self._env())
        return result

    # ── Internals ───────────────────────────────────────────────

    def _acquire(self) -> None:
        if self._granted is None:
            self._granted = self._request()
            if self._granted:
                logger.info("Administrator access granted for this run")
                self._start_keepalive()
            else:
                logger.warning("Administrator access refused")
        if not self._granted:
            raise PermissionDenied("administrator access was refused or is unavailable")

    def _request(self) -> bool:
        # Cached credentials from an earlier sudo call count as a grant
        if self._runner.run(["sudo", "-n", "true"]).ok:
            return True
        if self._interactive:
            return self._runner.run(["sudo", "-v"]).ok
        if sys.platform != "darwin":
            logger.warning("No terminal and no graphical prompt available for sudo")
            return False
        return self._runner.run(["sudo", "-A", "-v"], env=self._env()).ok

    def _revalidate(self) -> None:
        if self._interactive:
            ok = self._runner.run(["sudo", "-v"]).ok
        else:
            ok = self._runner.run(["sudo", "-A", "-v"], env=self._env()).ok
        if not ok:
            self._granted = False
            logger.warning("Administrator access refused on revalidation")
            raise PermissionDenied("administrator access expired and was not renewed")

    def _start_keepalive(self) -> None:
        if not self._keepalive_seconds or self.keeping_alive:
            return
        self._stop.clear()
        self._keepalive = threading.Thread(
            target=self._refresh_loop, name="sudo-keepalive", daemon=True,
        )
        self._keepalive.start()

    def _refresh_loop(self) -> None:
        while not self._stop.wait(self._keepalive_seconds):
            if not self._runner.run(["sudo", "-n", "-v"]).ok:
                logger.debug("sudo timestamp refresh failed")

    def _prefix(self) -> list[str]:
        if self._interactive:
            return ["sudo", "-n"]
        return ["sudo", "-A"]

    def _env(self) -> dict[str, str]:
        if self._interactive or sys.platform != "darwin":
            return {}
        return {"SUDO_ASKPASS": str(self._askpass_helper())}

    def _askpass_helper(self) -> Path:
        if self._askpass is None:
            fd, name = tempfile.mkstemp(prefix="pdkconverge-askpass-", suffix=".sh")
            with os.fdopen(fd, "w") as f:
                f.write(_ASKPASS_SCRIPT)
            path = Path(name)
            path.chmod(stat.S_IRWXU)
            self._askpass = path
        return self._askpass

    def close(self) -> None:
        """Stop the timestamp refresh and remove the askpass helper."""
        self._stop.set()
        if self._keepalive is not None:
            self._keepalive.join(timeout=5)
            self._keepalive = None
        if self._askpass is not None:
            self._askpass.unlink(missing_ok=True)
            self._askpass = None
