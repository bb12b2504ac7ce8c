"""Command-line interface for the tracker.

The main Typer app is exported for use as the entry point:
    tracker = "tracker.cli.__main__:main"
"""

from tracker.cli.app import app

__all__ = ["app"]
