"""Candle (OHLC) data models."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class Candle(BaseModel):
    """A fixed-width OHLC bucket of price ticks."""

    bucket_start: int = Field(..., ge=0, description="Bucket start, epoch ms, aligned to the width")
    open: float = Field(..., ge=0, description="First price in the bucket")
    high: float = Field(..., ge=0, description="Highest price in the bucket")
    low: float = Field(..., ge=0, description="Lowest price in the bucket")
    close: float = Field(..., ge=0, description="Last price in the bucket")

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_range(self) -> "Candle":
        if self.low > min(self.open, self.close) or self.high < max(self.open, self.close):
            raise ValueError(
                f"OHLC out of range: o={self.open} h={self.high} l={self.low} c={self.close}"
            )
        return self


class StoredCandle(Candle):
    """A candle row as persisted, with the indicators computed for it."""

    rsi: Optional[float] = Field(default=None, description="Momentum oscillator at this candle")
    band_lower: Optional[float] = Field(default=None, description="Lower volatility band")
    band_upper: Optional[float] = Field(default=None, description="Upper volatility band")
