"""
Adapter base — the protocol contract between the reconciler and the host.

These are the external collaborators: package managers, the
filesystem, the privilege mechanism and the window server. The core
only talks to them through these interfaces, never directly to
external tools.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from pdkconverge.adapters.shell.command import CommandResult


class PackageManager(ABC):
    """A host package manager (MacPorts, Homebrew, ...).

    ``install`` / ``remove`` / ``bootstrap`` / ``repair`` raise
    ``ExternalToolFailure`` (or the retryable ``ManagerBusy``) on
    failure and ``PermissionDenied`` when root is needed but refused.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The manager identifier used in manifests (e.g. 'macports')."""

    @abstractmethod
    def is_installed(self) -> bool:
        """Whether the manager's binary exists at all. Never raises."""

    @abstractmethod
    def is_ready(self) -> bool:
        """Whether the manager runs correctly. Never raises."""

    @abstractmethod
    def list_installed(self) -> dict[str, str]:
        """Installed package names mapped to version strings."""

    @abstractmethod
    def install(self, package: str, **options: Any) -> None:
        """Install one package."""

    @abstractmethod
    def remove(self, package: str, **options: Any) -> None:
        """Remove one package."""

    @abstractmethod
    def bootstrap(self) -> None:
        """Install the package manager itself."""

    @abstractmethod
    def repair(self) -> None:
        """Fix a manager that is installed but not ready."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class Filesystem(ABC):
    """File operations confined to declared managed paths."""

    @abstractmethod
    def exists(self, path: Path) -> bool: ...

    @abstractmethod
    def is_dir(self, path: Path) -> bool: ...

    @abstractmethod
    def is_executable(self, path: Path) -> bool: ...

    @abstractmethod
    def read(self, path: Path) -> str:
        """Read text content. Raises FileNotFoundError if missing."""

    @abstractmethod
    def write(self, path: Path, content: str, mode: int | None = None) -> None:
        """Write text content, creating parent directories."""

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Remove a file or a directory tree. Missing paths are ignored."""

    @abstractmethod
    def mkdir(self, path: Path) -> None: ...

    @abstractmethod
    def backup(self, path: Path) -> Path | None:
        """Copy ``path`` to a new timestamped sibling.

        Returns the backup path, or None when ``path`` does not exist.
        """

    @abstractmethod
    def search(self, roots: Sequence[Path], relative_marker: str) -> Path | None:
        """First root (in order) containing ``relative_marker``."""


class PrivilegeBroker(ABC):
    """Runs commands with elevated privileges."""

    @abstractmethod
    def run_elevated(self, command: Sequence[str], *, cwd: str | None = None) -> CommandResult:
        """Run ``command`` as root.

        Raises:
            PermissionDenied: If privilege cannot be obtained.
        """


class DisplayServer(ABC):
    """The windowing system GUI tools render to."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def is_installed(self) -> bool: ...

    @abstractmethod
    def is_reachable(self) -> bool: ...

    @abstractmethod
    def restart(self) -> None: ...

    @abstractmethod
    def reset_preferences(self) -> None: ...

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
