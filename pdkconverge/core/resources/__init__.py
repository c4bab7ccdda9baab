"""Resource handlers — one per ResourceKind.

    from pdkconverge.core.resources import handler_for
"""

from pdkconverge.core.models.resource import ResourceKind
from pdkconverge.core.resources.base import ResourceHandler
from pdkconverge.core.resources.directory import DirectoryHandler
from pdkconverge.core.resources.display import DisplayServerHandler
from pdkconverge.core.resources.env_block import EnvBlockHandler
from pdkconverge.core.resources.files import ConfigFileHandler, LauncherHandler
from pdkconverge.core.resources.package import PackageHandler
from pdkconverge.core.resources.package_manager import PackageManagerHandler
from pdkconverge.core.resources.smoke import SmokeTestHandler

HANDLERS: dict[ResourceKind, ResourceHandler] = {
    handler.kind: handler
    for handler in (
        PackageHandler(),
        PackageManagerHandler(),
        DisplayServerHandler(),
        EnvBlockHandler(),
        ConfigFileHandler(),
        LauncherHandler(),
        DirectoryHandler(),
        SmokeTestHandler(),
    )
}


def handler_for(kind: ResourceKind) -> ResourceHandler:
    """The handler for ``kind``. Every ResourceKind has one."""
    return HANDLERS[kind]


__all__ = ["HANDLERS", "ResourceHandler", "handler_for"]
