"""CLI commands for scalper."""

from scalper.cli.main import cli, main

__all__ = ["cli", "main"]
