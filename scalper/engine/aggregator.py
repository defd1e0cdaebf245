"""Fold price ticks into fixed-width OHLC candles."""

from typing import Optional

from scalper.models import Candle


def bucket_start(now_ms: int, width_ms: int) -> int:
    """Floor ``now_ms`` to the start of its bucket."""
    return (now_ms // width_ms) * width_ms


def fold_tick(current: Optional[Candle], price: float, now_ms: int, width_ms: int) -> Candle:
    """Return the candle after observing ``price`` at ``now_ms``.

    A tick in a different bucket than ``current`` opens a new candle;
    otherwise close moves to the price and high/low widen to include it.
    Ticks are trusted to arrive in time order.
    """
    bucket = bucket_start(now_ms, width_ms)
    if current is None or current.bucket_start != bucket:
        return Candle(bucket_start=bucket, open=price, high=price, low=price, close=price)
    return current.model_copy(
        update={
            "close": price,
            "high": max(current.high, price),
            "low": min(current.low, price),
        }
    )


class CandleAggregator:
    """Holds the candle being built and detects bucket rollover."""

    def __init__(self, bucket_width_ms: int):
        if bucket_width_ms <= 0:
            raise ValueError(f"Bucket width must be positive, got {bucket_width_ms}")
        self.bucket_width_ms = bucket_width_ms
        self.current: Optional[Candle] = None
        # candle that was completed by the latest observe(), if any
        self.last_closed: Optional[Candle] = None

    def observe(self, price: float, now_ms: int) -> Candle:
        """Fold one tick in and return the current candle."""
        previous = self.current
        self.current = fold_tick(previous, price, now_ms, self.bucket_width_ms)
        if previous is not None and previous.bucket_start != self.current.bucket_start:
            self.last_closed = previous
        else:
            self.last_closed = None
        return self.current
