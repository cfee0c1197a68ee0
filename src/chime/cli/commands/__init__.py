"""CLI command modules."""

from chime.cli.commands import paths, serve, task

__all__ = [
    "paths",
    "serve",
    "task",
]
