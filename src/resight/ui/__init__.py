"""Command-line client for a running ReSight service.

The CLI can be run directly:
    python -m resight.ui.cli ask "find vanilla ice cream on target"

CLI components are not exported here so the module loads cleanly when run
as a script.
"""

__all__: list[str] = []
