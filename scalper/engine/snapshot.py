"""Shared snapshot holder read by the presentation layer and shutdown handler.

The engine task is the only writer. Each ``publish_*`` call swaps in a new
frozen :class:`Snapshot` under the lock, so a reader sees either every field
of a group from one update or none of them. The lock is never held across
I/O; readers pay only the copy.
"""

import logging
import threading
from datetime import datetime
from typing import Optional

from scalper.log import get_logger
from scalper.models import Candle, Snapshot

logger = get_logger("snapshot")


class SnapshotHolder:
    """Single owner of the current :class:`Snapshot`."""

    def __init__(self, log_ring_size: int = 30, initial: Optional[Snapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = initial or Snapshot()
        self._log_ring_size = log_ring_size

    def read(self) -> Snapshot:
        """Return a private copy of the current snapshot."""
        with self._lock:
            return self._snapshot.model_copy(deep=True)

    def query(self) -> str:
        """Serialized snapshot for external readers."""
        return self.read().model_dump_json()

    def _swap(self, **fields) -> None:
        with self._lock:
            self._snapshot = self._snapshot.model_copy(
                update={**fields, "updated_at": datetime.now()}
            )

    def publish_market(
        self,
        price: float,
        candle: Candle,
        rsi: float,
        band_lower: float,
        band_upper: float,
    ) -> None:
        """Publish price, current candle and indicators together."""
        self._swap(
            price=price,
            bucket_start=candle.bucket_start,
            candle_high=candle.high,
            candle_low=candle.low,
            rsi=rsi,
            band_lower=band_lower,
            band_upper=band_upper,
        )

    def publish_position(
        self,
        status_text: str,
        entry_price: float,
        position_quantity: float,
        unrealized_pl_pct: float,
        realized_pl_total: float,
    ) -> None:
        """Publish the position field group together."""
        self._swap(
            status_text=status_text,
            entry_price=entry_price,
            position_quantity=position_quantity,
            unrealized_pl_pct=unrealized_pl_pct,
            realized_pl_total=realized_pl_total,
        )

    def publish_balances(self, balances: dict[str, float]) -> None:
        self._swap(balances=dict(balances))

    def add_log(self, message: str, level: int = logging.INFO) -> None:
        """Log ``message`` and push it onto the front of the bounded ring."""
        logger.log(level, message)
        line = f"{datetime.now():%H:%M:%S} | {message}"
        with self._lock:
            logs = (line,) + self._snapshot.logs[: self._log_ring_size - 1]
            self._snapshot = self._snapshot.model_copy(update={"logs": logs})
