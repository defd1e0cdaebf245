"""Two-state position machine: Idle <-> InPosition.

Entry: RSI below the panic level, or RSI below the buy level while price is
under the lower band. Exit: trailing stop first, then overbought RSI.

The machine trusts its own accounting. Once a transition is decided it is
committed in memory before the ledger write and the order submission, and a
failure in either is reported, never rolled back.
"""

import logging
from datetime import datetime
from typing import Callable, Literal, Optional

from pydantic import BaseModel

from scalper.brokers.base import OrderClient
from scalper.config import StrategyConfig
from scalper.db.store import DataStore
from scalper.engine.snapshot import SnapshotHolder
from scalper.errors import OrderExecutionError, PersistenceError
from scalper.indicators import IndicatorReading
from scalper.log import get_logger
from scalper.models import Idle, InPosition, Order, PositionState, TradeRecord

logger = get_logger("state_machine")

STATUS_SCANNING = "IDLE (Scanning)"
STATUS_WARMING_UP = "IDLE (Warming up)"
STATUS_HOLDING = "HOLDING"


class Decision(BaseModel):
    """What one step of the machine did."""

    action: Literal["SCAN", "BUY", "HOLD", "SELL"]
    reason: str = ""
    record: Optional[TradeRecord] = None

    model_config = {"frozen": True}


class PositionStateMachine:
    """Decides entries and exits and keeps realized P&L.

    Every entry rule, the panic-RSI buy included, applies only to a ready
    reading. A panic RSI computed over fewer closes than the band period
    buys nothing; once warmed up it buys regardless of band position.
    Exits ignore readiness.
    """

    def __init__(
        self,
        strategy: StrategyConfig,
        store: DataStore,
        orders: OrderClient,
        snapshot: SnapshotHolder,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.strategy = strategy
        self._store = store
        self._orders = orders
        self._snapshot = snapshot
        self._clock = clock
        self.state: PositionState = Idle()
        self.realized_pl_total = 0.0

    @property
    def entry_price(self) -> float:
        """Entry price of the open position, 0 when idle."""
        return self.state.entry_price if isinstance(self.state, InPosition) else 0.0

    def unrealized_pl_pct(self, price: float) -> float:
        if isinstance(self.state, InPosition):
            return self.state.unrealized_pl_pct(price)
        return 0.0

    def should_enter(self, price: float, reading: IndicatorReading) -> bool:
        if not reading.ready:
            return False
        s = self.strategy
        return reading.rsi < s.rsi_panic or (reading.rsi < s.rsi_buy and price < reading.band_lower)

    def step(self, price: float, reading: IndicatorReading) -> Decision:
        """Advance the machine by one observation and publish its state."""
        if isinstance(self.state, InPosition):
            decision = self._step_in_position(self.state, price, reading)
        else:
            decision = self._step_idle(price, reading)
        self._publish(price, decision)
        return decision

    def _step_idle(self, price: float, reading: IndicatorReading) -> Decision:
        if not self.should_enter(price, reading):
            return Decision(action="SCAN", reason="" if reading.ready else "warming up")

        quantity = self.strategy.trade_capital / price
        self.state = InPosition(entry_price=price, highest_price_seen=price, quantity=quantity)
        self._snapshot.add_log(f"BUY SIGNAL @ ${price:.2f} (RSI {reading.rsi:.1f})")

        record = TradeRecord(
            action="BUY",
            price=price,
            quantity=quantity,
            realized_profit=0.0,
            timestamp=self._clock(),
            reason="signal",
        )
        record = self._record(record)
        self._submit("BUY", price, quantity)
        return Decision(action="BUY", reason="signal", record=record)

    def _step_in_position(
        self, position: InPosition, price: float, reading: IndicatorReading
    ) -> Decision:
        position = position.model_copy(
            update={"highest_price_seen": max(position.highest_price_seen, price)}
        )
        self.state = position

        if price < position.stop_price(self.strategy.trailing_stop_pct):
            return self._exit(position, price, "stop")
        if reading.rsi > self.strategy.rsi_sell:
            return self._exit(position, price, "profit")
        return Decision(action="HOLD")

    def _exit(self, position: InPosition, price: float, reason: str) -> Decision:
        profit = (price - position.entry_price) * position.quantity
        self.state = Idle()
        self.realized_pl_total += profit

        label = "STOP LOSS" if reason == "stop" else "PROFIT TAKE"
        self._snapshot.add_log(f"{label} @ ${price:.2f} (P&L {profit:+.2f})")

        record = TradeRecord(
            action="SELL",
            price=price,
            quantity=position.quantity,
            realized_profit=profit,
            timestamp=self._clock(),
            reason=reason,
        )
        record = self._record(record)
        self._submit("SELL", price, position.quantity)
        return Decision(action="SELL", reason=reason, record=record)

    def _record(self, record: TradeRecord) -> TradeRecord:
        try:
            trade_id = self._store.append_trade(record)
        except PersistenceError as e:
            self._snapshot.add_log(f"Trade ledger write failed ({e.operation}): {e.message}", logging.ERROR)
            return record
        return record.model_copy(update={"id": trade_id})

    def _submit(self, side: str, price: float, quantity: float) -> None:
        try:
            result = self._orders.submit_order(Order(side=side, price=price, quantity=quantity))
        except OrderExecutionError as e:
            self._report_discrepancy(side, e.message)
            return
        if result.status != "COMPLETE":
            self._report_discrepancy(side, result.message or result.status)

    def _report_discrepancy(self, side: str, detail: str) -> None:
        # position state already reflects the order; needs manual reconciliation
        self._snapshot.add_log(
            f"{side} order failed, position state kept (reconcile manually): {detail}",
            logging.ERROR,
        )

    def _publish(self, price: float, decision: Decision) -> None:
        if isinstance(self.state, InPosition):
            status = STATUS_HOLDING
            quantity = self.state.quantity
        else:
            status = STATUS_WARMING_UP if decision.reason == "warming up" else STATUS_SCANNING
            quantity = 0.0
        self._snapshot.publish_position(
            status_text=status,
            entry_price=self.entry_price,
            position_quantity=quantity,
            unrealized_pl_pct=self.unrealized_pl_pct(price),
            realized_pl_total=self.realized_pl_total,
        )
