"""The ``scalper run`` command: wire collaborators and start the loop."""

import asyncio
import logging
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel

from scalper.cli.main import load_context_config

console = Console()


async def _run_engine(config, store, cycles: Optional[int]) -> None:
    from scalper.brokers import CoinDCXMarketData, PaperBroker
    from scalper.engine import CycleScheduler, PositionStateMachine, ShutdownHandler, SnapshotHolder

    snapshot = SnapshotHolder(log_ring_size=config.engine.log_ring_size)
    broker = PaperBroker(
        base_asset=config.market.base_asset,
        quote_asset=config.market.quote_asset,
        starting_balances=config.paper.starting_balances,
    )
    market = CoinDCXMarketData(pair=config.market.pair, timeout=config.engine.http_timeout)
    machine = PositionStateMachine(config.strategy, store, broker, snapshot)
    scheduler = CycleScheduler(config, store, market, broker, machine, snapshot)

    await scheduler.bootstrap()

    engine_task = asyncio.create_task(scheduler.run(max_cycles=cycles), name="scalper-cycle")
    shutdown = ShutdownHandler(snapshot, broker, store)
    try:
        shutdown.install(asyncio.get_running_loop(), engine_task)
    except NotImplementedError:
        # add_signal_handler is unavailable on Windows event loops
        logging.getLogger("scalper.cli").warning("Signal handlers unsupported; no liquidation on exit")

    try:
        await engine_task
    except asyncio.CancelledError:
        pass
    finally:
        closed = await shutdown.record_closing()
        snap = snapshot.read()
        realized = snap.realized_pl_total + (closed.realized_profit if closed else 0.0)
        console.print(Panel(
            f"Status:        [bold]{snap.status_text}[/bold]\n"
            f"Price:         {snap.price:,.2f}\n"
            f"Entry:         {snap.entry_price:,.2f}\n"
            f"Realized P&L:  {realized:+,.2f}\n"
            f"Cycles run:    {scheduler.cycles}",
            title="[bold cyan]Scalper stopped[/bold cyan]",
            border_style="cyan",
        ))


@click.command()
@click.option("--cycles", "-n", type=int, default=None, help="Stop after N cycles.")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging.")
@click.pass_context
def run(ctx: click.Context, cycles: Optional[int], verbose: bool) -> None:
    """Start the trading loop.

    Prices come from CoinDCX public market data; orders are simulated
    against a paper wallet. Ctrl+C closes any open position first.

    \b
    Examples:
      scalper run              # Run until interrupted
      scalper run --cycles 12  # One minute at the default cadence
    """
    from scalper.db.store import open_store
    from scalper.errors import StartupError
    from scalper.log import setup_logging

    config = load_context_config(ctx)
    setup_logging(logging.DEBUG if verbose else logging.INFO, config.engine.log_path)

    try:
        store = open_store(
            config.storage.db_path,
            attempts=config.storage.startup_attempts,
            backoff_seconds=config.storage.startup_backoff_seconds,
        )
    except StartupError as e:
        console.print(Panel(
            f"[red]{e.message}[/red]\n"
            f"[dim]{e.code}: "
            f"{'another scalper may hold the store, retry shortly' if e.retryable else 'not retryable'}[/dim]",
            title="[bold red]Startup failed[/bold red]",
            border_style="red",
        ))
        raise SystemExit(1)

    console.print(
        f"[bold cyan]Scalper[/bold cyan] {config.market.pair} "
        f"{config.market.interval} candles, store: [dim]{config.storage.db_path}[/dim]"
    )
    asyncio.run(_run_engine(config, store, cycles))
