"""Technical indicators module."""

from scalper.indicators.technical import (
    BollingerAccumulator,
    IndicatorReading,
    RsiAccumulator,
    calculate_bollinger_bands,
    calculate_rsi,
    compute_indicators,
)

__all__ = [
    "BollingerAccumulator",
    "IndicatorReading",
    "RsiAccumulator",
    "calculate_bollinger_bands",
    "calculate_rsi",
    "compute_indicators",
]
