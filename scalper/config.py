"""Configuration for the scalper engine.

Settings live in a TOML file (``~/.config/scalper/config.toml`` by default)
with one table per section::

    [market]
    pair = "B-BTC_USDT"
    interval = "1m"

    [strategy]
    trade_capital = 10000.0
    trailing_stop_pct = 0.005

Any key or section left out falls back to its default.
"""

import re
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

CONFIG_DIR = Path.home() / ".config" / "scalper"
DEFAULT_CONFIG_PATH = CONFIG_DIR / "config.toml"

_INTERVAL_UNITS_MS = {
    "s": 1_000,
    "m": 60_000,
    "h": 3_600_000,
    "d": 86_400_000,
}


def interval_to_ms(interval: str) -> int:
    """Convert an interval string such as ``1m`` or ``4h`` to milliseconds.

    Raises:
        ValueError: If the interval is not ``<positive int><s|m|h|d>``.
    """
    match = re.fullmatch(r"(\d+)([smhd])", interval.strip())
    if match is None or int(match.group(1)) == 0:
        raise ValueError(f"Invalid candle interval: {interval!r}")
    return int(match.group(1)) * _INTERVAL_UNITS_MS[match.group(2)]


class MarketConfig(BaseModel):
    """Which pair to trade and how wide a candle is."""

    pair: str = Field(default="B-BTC_USDT", min_length=1, description="Market data pair code")
    market: str = Field(default="BTCUSDT", min_length=1, description="Order market code")
    base_asset: str = Field(default="BTC", min_length=1)
    quote_asset: str = Field(default="USDT", min_length=1)
    interval: str = Field(default="1m", description="Candle width")

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value: str) -> str:
        interval_to_ms(value)
        return value

    @property
    def bucket_width_ms(self) -> int:
        return interval_to_ms(self.interval)


class StrategyConfig(BaseModel):
    """Entry/exit thresholds and indicator periods."""

    trade_capital: float = Field(default=10000.0, gt=0, description="Quote amount per entry")
    trailing_stop_pct: float = Field(default=0.005, gt=0, lt=1)
    rsi_buy: float = Field(default=30.0, ge=0, le=100)
    rsi_sell: float = Field(default=70.0, ge=0, le=100)
    rsi_panic: float = Field(default=20.0, ge=0, le=100, description="Buy regardless of band")
    rsi_period: int = Field(default=14, ge=1)
    band_period: int = Field(default=20, ge=1)
    band_width: float = Field(default=2.0, gt=0)


class EngineConfig(BaseModel):
    """Loop cadence and housekeeping intervals."""

    cycle_seconds: float = Field(default=5.0, gt=0)
    balance_refresh_seconds: float = Field(default=60.0, gt=0)
    prune_interval_seconds: float = Field(default=300.0, gt=0)
    candle_max_age_ms: int = Field(default=60 * 60 * 1000, gt=0)
    history_window: int = Field(default=50, ge=1)
    log_ring_size: int = Field(default=30, ge=1)
    http_timeout: float = Field(default=10.0, gt=0)
    log_path: Path = Field(default=CONFIG_DIR / "scalper.log", description="Rotating engine log")


class StorageConfig(BaseModel):
    """Where the history store lives and how hard to try opening it."""

    db_path: Path = Field(default=CONFIG_DIR / "scalper.db")
    startup_attempts: int = Field(default=5, ge=1)
    startup_backoff_seconds: float = Field(default=1.0, ge=0)


class PaperConfig(BaseModel):
    """Virtual wallet used in simulation mode."""

    starting_balances: dict[str, float] = Field(
        default_factory=lambda: {"USDT": 10500.0, "BTC": 0.05}
    )


class BotConfig(BaseModel):
    """Top-level configuration."""

    market: MarketConfig = Field(default_factory=MarketConfig)
    strategy: StrategyConfig = Field(default_factory=StrategyConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    paper: PaperConfig = Field(default_factory=PaperConfig)


def load_config(path: Optional[Path] = None) -> BotConfig:
    """Load configuration from a TOML file.

    Args:
        path: Config file path. Defaults to ``~/.config/scalper/config.toml``.

    Returns:
        The parsed configuration, or defaults when the file does not exist.

    Raises:
        toml.TomlDecodeError: If the file is not valid TOML.
        pydantic.ValidationError: If a value is out of range.
    """
    import toml

    config_path = path or DEFAULT_CONFIG_PATH
    if not config_path.exists():
        return BotConfig()
    return BotConfig.model_validate(toml.load(config_path))
