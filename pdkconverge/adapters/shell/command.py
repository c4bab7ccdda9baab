"""
Shell command runner — the single place external commands are spawned.

Output is streamed line by line into the run log (``pdkconverge.tool``
logger) as it is produced, with stderr merged into stdout. The last
part of the output is kept on the result for error messages and
marker checks.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
import threading
import time
from collections import deque
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from pdkconverge.core.errors import CommandTimeout, ExternalToolFailure, ManagerBusy

logger = logging.getLogger(__name__)
tool_logger = logging.getLogger("pdkconverge.tool")

# How many trailing output lines a result keeps
_TAIL_LINES = 200


@dataclass
class CommandResult:
    """Outcome of one external command."""

    command: list[str]
    returncode: int
    output: str = ""
    elapsed_ms: int = 0
    timed_out: bool = False
    metadata: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def shell_command(script: str) -> list[str]:
    """Wrap a shell snippet for execution through bash."""
    return ["/bin/bash", "-c", script]


def as_argv(command: str | Sequence[str]) -> list[str]:
    """Normalize a manifest command: strings run through bash, lists as-is."""
    if isinstance(command, str):
        return shell_command(command)
    return [str(part) for part in command]


class CommandRunner:
    """Run commands and stream their output to the run log.

    Waits are blocking. ``timeout`` is optional; when it expires the
    process is killed and the result is flagged ``timed_out``.
    """

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float | None = None,
        input_text: str | None = None,
    ) -> CommandResult:
        cmd = [str(c) for c in command]
        full_env = os.environ.copy()
        if env:
            for key, value in env.items():
                full_env[key] = os.path.expandvars(value)

        logger.debug("Executing: %s (cwd=%s)", " ".join(cmd), cwd)
        tool_logger.info("$ %s", " ".join(cmd))
        start = time.monotonic()

        try:
            proc = subprocess.Popen(
                cmd,
                cwd=cwd,
                env=full_env,
                stdin=subprocess.PIPE if input_text is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError:
            tool_logger.info("command not found: %s", cmd[0])
            return CommandResult(command=cmd, returncode=127, output=f"command not found: {cmd[0]}")
        except OSError as e:
            tool_logger.info("cannot execute %s: %s", cmd[0], e)
            return CommandResult(command=cmd, returncode=126, output=str(e))

        tail: deque[str] = deque(maxlen=_TAIL_LINES)
        if input_text is not None and proc.stdin:
            proc.stdin.write(input_text)
            proc.stdin.close()

        timed_out = False
        timer: threading.Timer | None = None
        if timeout is not None:
            timer = threading.Timer(timeout, proc.kill)
            timer.start()
        try:
            if proc.stdout:
                for line in proc.stdout:
                    line = line.rstrip("\n")
                    tail.append(line)
                    tool_logger.info("%s", line)
            proc.wait()
        finally:
            if timer is not None:
                timed_out = not timer.is_alive() and proc.returncode != 0
                timer.cancel()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        tool_logger.info("exit %s (%dms)", proc.returncode, elapsed_ms)
        return CommandResult(
            command=cmd,
            returncode=proc.returncode,
            output="\n".join(tail),
            elapsed_ms=elapsed_ms,
            timed_out=timed_out,
        )


def raise_for_result(
    result: CommandResult,
    *,
    label: str,
    busy_patterns: Sequence[str] = (),
) -> CommandResult:
    """Turn a failed result into the matching error.

    Raises:
        CommandTimeout: The command was killed after its timeout.
        ManagerBusy: Output matches one of ``busy_patterns``.
        ExternalToolFailure: Any other non-zero exit.
    """
    if result.ok:
        return result
    if result.timed_out:
        raise CommandTimeout(
            f"{label}: timed out", returncode=result.returncode, output=result.output,
        )
    for pattern in busy_patterns:
        if re.search(pattern, result.output, re.IGNORECASE):
            raise ManagerBusy(
                f"{label}: package manager is busy", returncode=result.returncode,
                output=result.output,
            )
    last = result.output.strip().splitlines()[-1:] or [""]
    raise ExternalToolFailure(
        f"{label}: exit {result.returncode} {last[0]}".rstrip(),
        returncode=result.returncode,
        output=result.output,
    )
