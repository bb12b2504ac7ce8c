"""Desktop command surface: one async handler per UI command."""

from tracker.desktop.commands import CommandError, DesktopCommands

__all__ = ["CommandError", "DesktopCommands"]
