"""
Run context — everything one reconcile run shares.

Built once by the use case (or a test) and handed to every handler
and engine stage. Apart from the cancel token and the backup list it
is read-only for the duration of the run.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pdkconverge.adapters.registry import AdapterRegistry
from pdkconverge.core.models.manifest import Settings
from pdkconverge.core.models.probe import InstallRoot
from pdkconverge.core.reliability.retry import RetryPolicy


@dataclass
class RunContext:
    """Shared state of one reconcile run."""

    registry: AdapterRegistry
    settings: Settings = field(default_factory=Settings)
    variables: dict[str, str] = field(default_factory=dict)
    install_root: InstallRoot | None = None

    flow: str = "install"
    dry_run: bool = False
    assume_yes: bool = False

    retry: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable[[float], None] = time.sleep
    cancel: threading.Event = field(default_factory=threading.Event)

    log_path: Path | None = None
    backups: list[Path] = field(default_factory=list)

    @property
    def fs(self):
        return self.registry.filesystem

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def var(self, key: str, default: Any = None) -> Any:
        return self.variables.get(key, default)
