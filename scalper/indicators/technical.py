"""Momentum and volatility indicators over candle closes.

Two forms of each indicator are provided and produce identical values for
the same input:

* ``calculate_rsi`` / ``calculate_bollinger_bands`` rebuild the whole series
  from a list of closes. The engine uses these every cycle.
* ``RsiAccumulator`` / ``BollingerAccumulator`` take one close at a time.
  The startup history sync streams bars through these.

Warm-up uses partial-window statistics: before ``period`` samples exist the
bands are computed over the closes seen so far and RSI averages the changes
seen so far. A reading only counts as ``ready`` once both windows are full.
"""

from collections import deque
from typing import Optional

from pydantic import BaseModel, Field

NEUTRAL_RSI = 50.0


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0 if avg_gain > 0 else NEUTRAL_RSI
    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def _band(window: list[float], std_dev: float) -> tuple[float, float, float]:
    """Return (upper, middle, lower) over ``window`` with population sigma."""
    n = len(window)
    total = 0.0
    for x in window:
        total += x
    mean = total / n

    squares = 0.0
    for x in window:
        squares += (x - mean) ** 2
    std = (squares / n) ** 0.5

    return mean + std_dev * std, mean, mean - std_dev * std


class RsiAccumulator:
    """Streaming Wilder RSI.

    The first ``period`` changes are averaged arithmetically; after that
    each average is smoothed as ``(avg * (period - 1) + x) / period``.
    """

    def __init__(self, period: int = 14):
        if period < 1:
            raise ValueError(f"RSI period must be >= 1, got {period}")
        self.period = period
        self._prev: Optional[float] = None
        self._changes = 0
        self._gain_sum = 0.0
        self._loss_sum = 0.0
        self._avg_gain = 0.0
        self._avg_loss = 0.0

    @property
    def changes(self) -> int:
        """Number of close-to-close changes folded in so far."""
        return self._changes

    def next(self, close: float) -> float:
        """Fold in one close and return the current RSI."""
        if self._prev is None:
            self._prev = close
            return NEUTRAL_RSI

        change = close - self._prev
        self._prev = close
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0
        self._changes += 1

        if self._changes <= self.period:
            self._gain_sum += gain
            self._loss_sum += loss
            self._avg_gain = self._gain_sum / self._changes
            self._avg_loss = self._loss_sum / self._changes
        else:
            self._avg_gain = (self._avg_gain * (self.period - 1) + gain) / self.period
            self._avg_loss = (self._avg_loss * (self.period - 1) + loss) / self.period

        return _rsi_from_averages(self._avg_gain, self._avg_loss)


class BollingerAccumulator:
    """Streaming Bollinger Bands over the trailing ``period`` closes."""

    def __init__(self, period: int = 20, std_dev: float = 2.0):
        if period < 1:
            raise ValueError(f"Band period must be >= 1, got {period}")
        self.period = period
        self.std_dev = std_dev
        self._window: deque[float] = deque(maxlen=period)

    def next(self, close: float) -> tuple[float, float, float]:
        """Fold in one close and return (upper, middle, lower)."""
        self._window.append(close)
        return _band(list(self._window), self.std_dev)


def calculate_rsi(prices: list[float], period: int = 14) -> list[float]:
    """Calculate Relative Strength Index.

    Args:
        prices: Close prices, oldest first.
        period: RSI period (default 14).

    Returns:
        One RSI value (0-100) per price. The first value is neutral (50)
        and the next ``period`` values average the changes available.
    """
    if period < 1:
        raise ValueError(f"RSI period must be >= 1, got {period}")
    if not prices:
        return []

    result = [NEUTRAL_RSI]
    gain_sum = 0.0
    loss_sum = 0.0
    avg_gain = 0.0
    avg_loss = 0.0

    for i in range(1, len(prices)):
        change = prices[i] - prices[i - 1]
        gain = change if change > 0 else 0.0
        loss = -change if change < 0 else 0.0

        if i <= period:
            gain_sum += gain
            loss_sum += loss
            avg_gain = gain_sum / i
            avg_loss = loss_sum / i
        else:
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period

        result.append(_rsi_from_averages(avg_gain, avg_loss))

    return result


def calculate_bollinger_bands(
    prices: list[float],
    period: int = 20,
    std_dev: float = 2.0
) -> tuple[list[float], list[float], list[float]]:
    """Calculate Bollinger Bands.

    Args:
        prices: Close prices, oldest first.
        period: SMA period (default 20)
        std_dev: Standard deviation multiplier (default 2.0)

    Returns:
        Tuple of (upper_band, middle_band, lower_band). Positions before
        ``period`` use the closes available so far.
    """
    if period < 1:
        raise ValueError(f"Band period must be >= 1, got {period}")

    upper_band = []
    middle_band = []
    lower_band = []

    for i in range(len(prices)):
        window = prices[max(0, i - period + 1):i + 1]
        upper, middle, lower = _band(window, std_dev)
        upper_band.append(upper)
        middle_band.append(middle)
        lower_band.append(lower)

    return upper_band, middle_band, lower_band


class IndicatorReading(BaseModel):
    """Indicator values at the newest close of a window."""

    rsi: float = Field(..., ge=0, le=100)
    band_lower: float
    band_middle: float
    band_upper: float
    samples: int = Field(..., ge=1, description="Closes in the window")
    ready: bool = Field(..., description="Both indicator windows are full")

    model_config = {"frozen": True}


def compute_indicators(
    closes: list[float],
    rsi_period: int = 14,
    band_period: int = 20,
    band_width: float = 2.0,
) -> IndicatorReading:
    """Rebuild both indicators from scratch over ``closes``.

    Args:
        closes: Window of close prices, oldest first.
        rsi_period: RSI period.
        band_period: Bollinger period.
        band_width: Bollinger standard deviation multiplier.

    Returns:
        Reading for the newest close.

    Raises:
        ValueError: If ``closes`` is empty.
    """
    if not closes:
        raise ValueError("Cannot compute indicators over an empty window")

    rsi = calculate_rsi(closes, rsi_period)
    upper, middle, lower = calculate_bollinger_bands(closes, band_period, band_width)
    samples = len(closes)

    return IndicatorReading(
        rsi=rsi[-1],
        band_lower=lower[-1],
        band_middle=middle[-1],
        band_upper=upper[-1],
        samples=samples,
        ready=samples > rsi_period and samples >= band_period,
    )
