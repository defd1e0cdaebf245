"""Data models for scalper."""

from scalper.models.candle import Candle, StoredCandle
from scalper.models.order import Order, OrderResult
from scalper.models.position import Idle, InPosition, PositionState
from scalper.models.snapshot import Snapshot
from scalper.models.trade import TradeRecord

__all__ = [
    "Candle",
    "Idle",
    "InPosition",
    "Order",
    "OrderResult",
    "PositionState",
    "Snapshot",
    "StoredCandle",
    "TradeRecord",
]
