"""
MacPorts adapter — ports under a system prefix (``/opt/local``).

Every mutating ``port`` call needs root and goes through the privilege
broker. ``port`` holds a registry lock while it works; lock messages
are reported as ``ManagerBusy`` so the caller can retry.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Any

from pdkconverge.adapters.base import PackageManager, PrivilegeBroker
from pdkconverge.adapters.shell.command import CommandRunner, raise_for_result, shell_command
from pdkconverge.core.errors import ExternalToolFailure

logger = logging.getLogger(__name__)

MACPORTS_VERSION = "2.10.4"

# macOS major version → installer package
_PKG_BY_MACOS: dict[str, str] = {
    "15": f"MacPorts-{MACPORTS_VERSION}-15-Sequoia.pkg",
    "14": f"MacPorts-{MACPORTS_VERSION}-14-Sonoma.pkg",
    "13": f"MacPorts-{MACPORTS_VERSION}-13-Ventura.pkg",
    "12": f"MacPorts-{MACPORTS_VERSION}-12-Monterey.pkg",
}

_DISTFILES = "https://distfiles.macports.org/MacPorts"

BUSY_PATTERNS = (
    r"waiting for lock",
    r"another process is using",
    r"registry.*locked",
)

# ``  magic @8.3.500_0+x11 (active)``
_INSTALLED_RE = re.compile(r"^\s*(\S+)\s+@(\S+?)(?:[+\s]|$).*$")


def parse_installed(output: str) -> dict[str, str]:
    """Parse ``port -q installed`` into name → version (active ports only)."""
    installed: dict[str, str] = {}
    for line in output.splitlines():
        if "(active)" not in line:
            continue
        m = _INSTALLED_RE.match(line)
        if m:
            installed[m.group(1)] = m.group(2)
    return installed


def pkg_for_macos(product_version: str) -> str | None:
    """Installer package for a ``sw_vers -productVersion`` string."""
    major = product_version.strip().split(".")[0]
    return _PKG_BY_MACOS.get(major)


class MacPortsManager(PackageManager):
    """MacPorts via ``port``."""

    def __init__(
        self,
        runner: CommandRunner,
        privilege: PrivilegeBroker,
        *,
        prefix: str = "/opt/local",
        workdir: str = "/tmp",
    ):
        self._runner = runner
        self._privilege = privilege
        self._prefix = Path(prefix)
        self._workdir = workdir

    @property
    def name(self) -> str:
        return "macports"

    @property
    def port(self) -> str:
        return str(self._prefix / "bin" / "port")

    def is_installed(self) -> bool:
        return Path(self.port).is_file()

    def is_ready(self) -> bool:
        if not self.is_installed():
            return False
        # Clean environment so a broken user PATH does not mask the check
        clean_path = f"{self._prefix}/bin:{self._prefix}/sbin:/usr/bin:/bin:/usr/sbin:/sbin"
        result = self._runner.run(
            ["/usr/bin/env", "-i", f"PATH={clean_path}", f"HOME={Path.home()}", self.port, "version"],
        )
        return result.ok

    def list_installed(self) -> dict[str, str]:
        if not self.is_installed():
            return {}
        result = self._runner.run([self.port, "-q", "installed"])
        raise_for_result(result, label="port installed", busy_patterns=BUSY_PATTERNS)
        return parse_installed(result.output)

    def install(self, package: str, **options: Any) -> None:
        variants = [str(v) for v in options.get("variants", [])]
        if options.get("enforce_variants") and variants:
            upgrade = [self.port, "-N", "upgrade", "--enforce-variants", package, *variants]
            if self._privilege.run_elevated(upgrade).ok:
                return
        cmd = [self.port, "-N", "install", package, *variants]
        raise_for_result(
            self._privilege.run_elevated(cmd),
            label=f"port install {package}", busy_patterns=BUSY_PATTERNS,
        )

    def remove(self, package: str, **options: Any) -> None:
        cmd = [self.port, "-N", "uninstall"]
        if options.get("follow_dependents", True):
            cmd.append("--follow-dependents")
        cmd.append(package)
        raise_for_result(
            self._privilege.run_elevated(cmd),
            label=f"port uninstall {package}", busy_patterns=BUSY_PATTERNS,
        )

    def bootstrap(self) -> None:
        version = self._runner.run(["sw_vers", "-productVersion"])
        raise_for_result(version, label="sw_vers")
        pkg = pkg_for_macos(version.output)
        if pkg is None:
            raise ExternalToolFailure(
                f"macports bootstrap: unsupported macOS {version.output.strip()}"
            )
        Path(self._workdir).mkdir(parents=True, exist_ok=True)
        target = f"{self._workdir}/{pkg}"
        logger.info("Installing MacPorts via %s", pkg)
        raise_for_result(
            self._runner.run(
                ["curl", "-fL", "--retry", "3", f"{_DISTFILES}/{pkg}", "-o", target],
            ),
            label="download MacPorts",
        )
        raise_for_result(
            self._privilege.run_elevated(["installer", "-pkg", target, "-target", "/"]),
            label="MacPorts installer",
        )
        try:
            self._selfupdate()
        except ExternalToolFailure as e:
            if e.retryable:
                raise
            logger.warning("selfupdate after install failed: %s", e)
            self.repair()

    def repair(self) -> None:
        """Clear quarantine and re-sign the Tcl runtime, then selfupdate.

        Recent macOS releases refuse unsigned MacPorts Tcl modules with a
        Team-ID mismatch, which leaves ``port`` unusable. When selfupdate
        still fails after the fix, MacPorts is rebuilt from source.
        """
        self._fix_signing()
        try:
            self._selfupdate()
        except ExternalToolFailure as e:
            if e.retryable:
                raise
            logger.warning("MacPorts still failing (%s), rebuilding from source", e)
            self.rebuild_from_source()

    def rebuild_from_source(self) -> None:
        """Wipe the prefix and build MacPorts from the release tarball.

        Raises:
            ExternalToolFailure: Download, build or install failed.
        """
        tarball = f"MacPorts-{MACPORTS_VERSION}.tar.bz2"
        workdir = Path(self._workdir)
        src = workdir / f"MacPorts-{MACPORTS_VERSION}"
        logger.info("Rebuilding MacPorts %s from source", MACPORTS_VERSION)

        self._privilege.run_elevated(shell_command(
            f"rm -rf {self._prefix} /Applications/MacPorts /Library/Tcl/macports1.0 "
            "/Library/LaunchDaemons/org.macports.*"
        ))
        workdir.mkdir(parents=True, exist_ok=True)
        steps = [
            (["curl", "-fL", f"{_DISTFILES}/{tarball}", "-o", tarball], workdir, "download MacPorts source"),
            (["tar", "xf", tarball], workdir, "unpack MacPorts source"),
            (["./configure", f"--prefix={self._prefix}"], src, "configure MacPorts"),
            (["make", f"-j{os.cpu_count() or 1}"], src, "build MacPorts"),
        ]
        for cmd, cwd, label in steps:
            raise_for_result(self._runner.run(cmd, cwd=str(cwd)), label=label)
        raise_for_result(
            self._privilege.run_elevated(["make", "install"], cwd=str(src)),
            label="install MacPorts",
        )
        self._selfupdate()

    def _fix_signing(self) -> None:
        logger.info("Applying MacPorts signing/quarantine fix")
        self._privilege.run_elevated(["xattr", "-dr", "com.apple.quarantine", str(self._prefix)])
        script = (
            f"find {self._prefix}/bin -maxdepth 1 -type f -name 'tclsh*' -print0; "
            f"find {self._prefix}/libexec/macports/lib -type f -name '*.dylib' -print0; "
            f"find {self._prefix}/lib -type f \\( -name 'libtcl*.dylib' -o -name 'libtk*.dylib' \\) -print0"
        )
        sign = f"({script}) | xargs -0 -n 1 /usr/bin/codesign --force --sign -"
        self._privilege.run_elevated(shell_command(sign))

    def _selfupdate(self) -> None:
        raise_for_result(
            self._privilege.run_elevated([self.port, "-v", "selfupdate"]),
            label="port selfupdate", busy_patterns=BUSY_PATTERNS,
        )
