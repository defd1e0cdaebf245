"""Main CLI entry point for scalper.

Commands are loaded lazily so ``scalper trades`` does not pay for the
engine and HTTP imports that ``scalper run`` needs.
"""

from pathlib import Path

import click
from rich.console import Console

# Console for rich output
console = Console()


class LazyGroup(click.Group):
    """A click Group that lazily loads commands."""

    def __init__(self, *args, lazy_subcommands: dict[str, str] | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._lazy_subcommands = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        """List all available commands."""
        base = super().list_commands(ctx)
        lazy = list(self._lazy_subcommands.keys())
        return sorted(set(base + lazy))

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        """Get a command by name, lazily loading if needed."""
        if cmd_name in self.commands:
            return self.commands[cmd_name]
        if cmd_name in self._lazy_subcommands:
            return self._lazy_load(cmd_name)
        return None

    def _lazy_load(self, cmd_name: str) -> click.Command:
        """Lazily load a command from its module path."""
        import importlib

        module_path = self._lazy_subcommands[cmd_name]
        module = importlib.import_module(module_path)

        cmd = getattr(module, cmd_name, None)
        if not isinstance(cmd, click.Command):
            raise click.ClickException(f"Could not find command '{cmd_name}' in {module_path}")

        self.add_command(cmd)
        return cmd


LAZY_SUBCOMMANDS = {
    "run": "scalper.cli.run",
    "trades": "scalper.cli.history",
    "candles": "scalper.cli.history",
    "prune": "scalper.cli.history",
}


CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}


@click.group(cls=LazyGroup, lazy_subcommands=LAZY_SUBCOMMANDS, context_settings=CONTEXT_SETTINGS)
@click.version_option(package_name="scalper")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/scalper/config.toml).",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Scalper - single-pair candle/RSI/Bollinger trading loop.

    \b
    Quick Start:
      scalper run              # Start the loop (simulation orders)
      scalper trades           # Show the trade ledger
      scalper candles -n 20    # Show recent candles with indicators
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def load_context_config(ctx: click.Context):
    """Load the config named on the command line, exiting cleanly on errors."""
    from pydantic import ValidationError
    import toml

    from scalper.config import load_config

    try:
        return load_config(ctx.obj.get("config_path") if ctx.obj else None)
    except (toml.TomlDecodeError, ValidationError) as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise SystemExit(1)


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
