"""Commands that read or maintain the history store."""

from datetime import datetime
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from scalper.cli.main import load_context_config

console = Console()


def _get_data_store(ctx: click.Context):
    """Open the configured store or exit with a readable error."""
    from scalper.db.store import open_store
    from scalper.errors import StartupError

    config = load_context_config(ctx)
    try:
        return open_store(config.storage.db_path, attempts=1)
    except StartupError as e:
        console.print(f"[red]{e.message}[/red]")
        raise SystemExit(1)


def _fmt(value: Optional[float], spec: str = ",.2f") -> str:
    return "--" if value is None else format(value, spec)


@click.command()
@click.pass_context
def trades(ctx: click.Context) -> None:
    """Show the trade ledger and realized P&L."""
    store = _get_data_store(ctx)
    ledger = store.get_trades()

    if not ledger:
        console.print("[yellow]No trades recorded yet.[/yellow]")
        return

    table = Table(title="Trade Ledger", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Time", style="dim")
    table.add_column("Side", justify="center")
    table.add_column("Qty", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("P&L", justify="right")
    table.add_column("Reason")

    for record in ledger:
        side_color = "green" if record.action == "BUY" else "red"
        pnl = record.realized_profit
        pnl_str = "" if record.action == "BUY" else f"[{'green' if pnl >= 0 else 'red'}]{pnl:+,.2f}[/]"
        table.add_row(
            str(record.id),
            record.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{side_color}]{record.action}[/{side_color}]",
            f"{record.quantity:.8f}",
            f"{record.price:,.2f}",
            pnl_str,
            record.reason,
        )

    console.print(table)
    total = store.realized_profit_total()
    color = "green" if total >= 0 else "red"
    console.print(f"\nRealized P&L: [{color}]{total:+,.2f}[/{color}]")


@click.command()
@click.option("--limit", "-n", type=int, default=20, show_default=True, help="Candles to show.")
@click.pass_context
def candles(ctx: click.Context, limit: int) -> None:
    """Show the most recent stored candles with their indicators."""
    store = _get_data_store(ctx)
    rows = store.recent_stored_candles(limit)

    if not rows:
        console.print("[yellow]No candles stored yet.[/yellow]")
        return

    table = Table(title="Recent Candles", show_header=True, header_style="bold cyan")
    table.add_column("Bucket", style="dim")
    for name in ("Open", "High", "Low", "Close", "RSI", "BB Low", "BB High"):
        table.add_column(name, justify="right")

    for row in rows:
        table.add_row(
            datetime.fromtimestamp(row.bucket_start / 1000).strftime("%Y-%m-%d %H:%M"),
            _fmt(row.open),
            _fmt(row.high),
            _fmt(row.low),
            _fmt(row.close),
            _fmt(row.rsi, ".1f"),
            _fmt(row.band_lower),
            _fmt(row.band_upper),
        )

    console.print(table)


@click.command()
@click.option(
    "--max-age-ms",
    type=int,
    default=None,
    help="Keep candles newer than this (default: engine.candle_max_age_ms).",
)
@click.pass_context
def prune(ctx: click.Context, max_age_ms: Optional[int]) -> None:
    """Delete old candles. The trade ledger is never pruned."""
    config = load_context_config(ctx)
    store = _get_data_store(ctx)
    deleted = store.prune(max_age_ms or config.engine.candle_max_age_ms)
    console.print(Panel(
        f"Deleted [bold]{deleted}[/bold] candles, {store.count_candles()} remain.",
        title="[bold green]Pruned[/bold green]",
        border_style="green",
    ))
