"""Trade ledger data model."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class TradeRecord(BaseModel):
    """One executed BUY or SELL decision."""

    id: Optional[int] = Field(default=None, description="Ledger ID")
    action: Literal["BUY", "SELL"] = Field(..., description="Trade side")
    price: float = Field(..., gt=0, description="Decision price")
    quantity: float = Field(..., gt=0, description="Base asset quantity")
    realized_profit: float = Field(default=0.0, description="Booked P&L, 0 for buys")
    timestamp: datetime = Field(..., description="Decision time")
    reason: str = Field(default="signal", description="signal, stop, profit or shutdown")

    model_config = {"frozen": True}
