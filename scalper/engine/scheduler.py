"""Cycle scheduler: the single task that drives the engine.

Each cycle runs, in order: prune (if due), balance refresh (if due), price
fetch, aggregation, persistence, indicator recompute, the state machine
step and snapshot publishing. Blocking collaborators run in worker threads
via ``asyncio.to_thread``; those awaits are the only suspension points.
A failed price fetch skips the rest of the cycle.
"""

import asyncio
import logging
import signal
import time
from datetime import datetime
from typing import Callable, Optional

from scalper.brokers.base import BalanceClient, MarketDataClient, OrderClient
from scalper.config import BotConfig
from scalper.db.store import DataStore
from scalper.engine.aggregator import CandleAggregator
from scalper.engine.snapshot import SnapshotHolder
from scalper.engine.state_machine import Decision, PositionStateMachine
from scalper.errors import OrderExecutionError, PersistenceError, TransientFetchError
from scalper.indicators import BollingerAccumulator, RsiAccumulator, compute_indicators
from scalper.log import get_logger
from scalper.models import Candle, Order, TradeRecord

logger = get_logger("scheduler")


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


def merge_current(window: list[Candle], current: Candle, limit: int) -> list[Candle]:
    """Replace or append ``current`` in an oldest-first window, keeping ``limit`` rows."""
    merged = [c for c in window if c.bucket_start != current.bucket_start]
    merged.append(current)
    merged.sort(key=lambda c: c.bucket_start)
    return merged[-limit:]


class CycleScheduler:
    """Runs fetch → aggregate → persist → indicators → decide → publish."""

    def __init__(
        self,
        config: BotConfig,
        store: DataStore,
        market: MarketDataClient,
        balances: BalanceClient,
        machine: PositionStateMachine,
        snapshot: SnapshotHolder,
        clock: Callable[[], int] = _wall_clock_ms,
    ):
        self.config = config
        self._store = store
        self._market = market
        self._balances = balances
        self._machine = machine
        self._snapshot = snapshot
        self._clock = clock
        self.aggregator = CandleAggregator(config.market.bucket_width_ms)
        self._window: list[Candle] = []
        self._last_prune_ms = clock()
        self._last_balance_ms: Optional[int] = None
        self.cycles = 0

    # ==================== Startup ====================

    async def bootstrap(self) -> int:
        """Seed the store with recent bars and their indicators.

        Returns:
            Number of candles synced; 0 when the fetch or write failed.
        """
        market = self.config.market
        strategy = self.config.strategy
        try:
            bars = await asyncio.to_thread(
                self._market.fetch_recent_bars, market.pair, market.interval
            )
        except TransientFetchError as e:
            self._snapshot.add_log(f"History sync failed: {e.message}", logging.WARNING)
            return 0

        rsi = RsiAccumulator(strategy.rsi_period)
        bands = BollingerAccumulator(strategy.band_period, strategy.band_width)
        rows = []
        for bar in bars:
            upper, _, lower = bands.next(bar.close)
            rows.append((bar, rsi.next(bar.close), lower, upper))

        try:
            synced = await asyncio.to_thread(self._store.upsert_candles, rows)
        except PersistenceError as e:
            self._snapshot.add_log(f"History sync not stored ({e.operation}): {e.message}", logging.ERROR)
            self._window = bars[-self.config.engine.history_window:]
            return 0

        self._window = bars[-self.config.engine.history_window:]
        self._snapshot.add_log(f"Synced {synced} candles to DB")
        return synced

    # ==================== Loop ====================

    async def run(self, max_cycles: Optional[int] = None) -> None:
        """Run cycles on the configured cadence until cancelled."""
        cadence = self.config.engine.cycle_seconds
        while max_cycles is None or self.cycles < max_cycles:
            await self.run_cycle()
            if max_cycles is not None and self.cycles >= max_cycles:
                break
            await asyncio.sleep(cadence)

    async def run_cycle(self) -> Optional[Decision]:
        """Run one cycle.

        Returns:
            The state machine decision, or None when the cycle was skipped.
        """
        self.cycles += 1
        await self._maybe_prune()
        await self._maybe_refresh_balances()

        try:
            price = await asyncio.to_thread(self._market.fetch_latest_price)
        except TransientFetchError as e:
            self._snapshot.add_log(f"Tick error: {e.message}", logging.WARNING)
            return None
        if price is None or price <= 0:
            self._snapshot.add_log("No trades found in recent history", logging.WARNING)
            return None

        now_ms = self._clock()
        candle = self.aggregator.observe(price, now_ms)
        if self.aggregator.last_closed is not None:
            logger.debug("Candle %d closed at %.2f", self.aggregator.last_closed.bucket_start,
                         self.aggregator.last_closed.close)

        await self._persist(candle)
        window = await self._read_window(candle)

        strategy = self.config.strategy
        reading = compute_indicators(
            [c.close for c in window],
            rsi_period=strategy.rsi_period,
            band_period=strategy.band_period,
            band_width=strategy.band_width,
        )
        await self._persist(candle, reading.rsi, reading.band_lower, reading.band_upper)

        self._snapshot.publish_market(
            price=price,
            candle=candle,
            rsi=reading.rsi,
            band_lower=reading.band_lower,
            band_upper=reading.band_upper,
        )
        return await asyncio.to_thread(self._machine.step, price, reading)

    async def _persist(
        self,
        candle: Candle,
        rsi: Optional[float] = None,
        band_lower: Optional[float] = None,
        band_upper: Optional[float] = None,
    ) -> None:
        try:
            await asyncio.to_thread(
                self._store.upsert_candle, candle, rsi, band_lower, band_upper
            )
        except PersistenceError as e:
            self._snapshot.add_log(f"Candle not stored ({e.operation}): {e.message}", logging.ERROR)

    async def _read_window(self, candle: Candle) -> list[Candle]:
        limit = self.config.engine.history_window
        try:
            window = await asyncio.to_thread(self._store.recent_candles, limit)
        except PersistenceError as e:
            self._snapshot.add_log(
                f"History read failed ({e.operation}), using in-memory window: {e.message}", logging.ERROR
            )
            window = self._window
        self._window = merge_current(window, candle, limit)
        return self._window

    async def _maybe_prune(self) -> None:
        engine = self.config.engine
        now_ms = self._clock()
        if now_ms - self._last_prune_ms < engine.prune_interval_seconds * 1000:
            return
        self._last_prune_ms = now_ms
        try:
            deleted = await asyncio.to_thread(self._store.prune, engine.candle_max_age_ms, now_ms)
        except PersistenceError as e:
            self._snapshot.add_log(f"Prune failed ({e.operation}): {e.message}", logging.ERROR)
            return
        self._snapshot.add_log(f"Pruned {deleted} old candles")

    async def _maybe_refresh_balances(self) -> None:
        now_ms = self._clock()
        interval_ms = self.config.engine.balance_refresh_seconds * 1000
        if self._last_balance_ms is not None and now_ms - self._last_balance_ms < interval_ms:
            return
        self._last_balance_ms = now_ms
        try:
            balances = await asyncio.to_thread(self._balances.fetch_balances)
        except TransientFetchError as e:
            self._snapshot.add_log(f"Balance refresh failed: {e.message}", logging.WARNING)
            return
        self._snapshot.publish_balances(balances)


class ShutdownHandler:
    """Closes any open position once when the process is interrupted.

    Works from the last published snapshot, which may be a cycle old, and
    never writes engine state while the engine task runs. A filled closing
    sell is held until :meth:`record_closing`, which the caller runs after
    the engine task has finished so the ledger keeps a single writer.
    """

    def __init__(
        self,
        snapshot: SnapshotHolder,
        orders: OrderClient,
        store: Optional[DataStore] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._snapshot = snapshot
        self._orders = orders
        self._store = store
        self._clock = clock
        self._fired = False
        self._tasks: set[asyncio.Task] = set()
        self.closing: Optional[TradeRecord] = None

    async def liquidate(self) -> Optional[Order]:
        """Issue one best-effort SELL for the open position, if any.

        Returns:
            The order sent, or None when flat or already fired.
        """
        if self._fired:
            return None
        self._fired = True

        snap = self._snapshot.read()
        logger.warning("SHUTDOWN: checking open positions...")
        if snap.entry_price <= 0 or snap.position_quantity <= 0 or snap.price <= 0:
            return None

        order = Order(side="SELL", price=snap.price, quantity=snap.position_quantity)
        logger.warning("EMERGENCY SELL: closing %.8f at %.2f", order.quantity, order.price)
        try:
            result = await asyncio.to_thread(self._orders.submit_order, order)
        except OrderExecutionError as e:
            logger.error("Emergency sell failed: %s", e.message)
            return order
        if result.status != "COMPLETE":
            logger.error("Emergency sell rejected: %s", result.message or result.status)
            return order

        self.closing = TradeRecord(
            action="SELL",
            price=order.price,
            quantity=order.quantity,
            realized_profit=(order.price - snap.entry_price) * order.quantity,
            timestamp=self._clock(),
            reason="shutdown",
        )
        return order

    async def record_closing(self) -> Optional[TradeRecord]:
        """Append the filled closing sell to the trade ledger, once.

        Returns:
            The stored record, or None when nothing was sold.
        """
        record, self.closing = self.closing, None
        if record is None or self._store is None:
            return None
        try:
            trade_id = await asyncio.to_thread(self._store.append_trade, record)
        except PersistenceError as e:
            logger.error("Closing sell not recorded (%s): %s", e.operation, e.message)
            return record
        logger.warning("Closing sell recorded, P&L %+.2f", record.realized_profit)
        return record.model_copy(update={"id": trade_id})

    def install(self, loop: asyncio.AbstractEventLoop, main_task: asyncio.Task) -> None:
        """Run :meth:`liquidate` then cancel ``main_task`` on SIGINT/SIGTERM."""

        async def _on_signal() -> None:
            try:
                await self.liquidate()
            finally:
                main_task.cancel()

        def _handler() -> None:
            task = loop.create_task(_on_signal())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _handler)
