"""Adapters — bindings to the host's package managers, files, sudo and X11.

Public re-exports for convenient access.
"""

from pdkconverge.adapters.base import DisplayServer, Filesystem, PackageManager, PrivilegeBroker
from pdkconverge.adapters.registry import AdapterRegistry, build_registry

__all__ = [
    "AdapterRegistry",
    "DisplayServer",
    "Filesystem",
    "PackageManager",
    "PrivilegeBroker",
    "build_registry",
]
