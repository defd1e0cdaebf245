"""Externally visible market/position snapshot."""

from datetime import datetime

from pydantic import BaseModel, Field


class Snapshot(BaseModel):
    """Read-only view of the engine, replaced wholesale on every update."""

    # market group
    price: float = Field(default=0.0, description="Last observed price")
    rsi: float = Field(default=0.0, description="Momentum oscillator")
    band_lower: float = Field(default=0.0)
    band_upper: float = Field(default=0.0)
    bucket_start: int = Field(default=0, description="Current candle bucket, epoch ms")
    candle_high: float = Field(default=0.0)
    candle_low: float = Field(default=0.0)

    # position group
    status_text: str = Field(default="Starting...")
    entry_price: float = Field(default=0.0, description="0 when no position is open")
    position_quantity: float = Field(default=0.0)
    unrealized_pl_pct: float = Field(default=0.0)
    realized_pl_total: float = Field(default=0.0)

    balances: dict[str, float] = Field(default_factory=dict)
    logs: tuple[str, ...] = Field(default=(), description="Most recent first")
    updated_at: datetime = Field(default_factory=datetime.now)

    model_config = {"frozen": True}
