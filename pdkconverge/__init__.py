"""pdkconverge — converge a desktop machine onto an IC design toolchain + PDK."""

__version__ = "0.1.0"
