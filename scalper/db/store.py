"""SQLite history store for scalper."""

import sqlite3
import time
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from scalper.errors import PersistenceError, StartupError
from scalper.log import get_logger
from scalper.models import Candle, StoredCandle, TradeRecord

logger = get_logger("store")

# sqlite3.OperationalError messages worth retrying at startup
_TRANSIENT_MARKERS = ("locked", "busy")


def _now_ms() -> int:
    return int(time.time() * 1000)


class DataStore:
    """SQLite-backed candle history and trade ledger.

    Candles are keyed by bucket start and upserted; trades are append-only
    and never pruned. Each call opens its own connection and every write is
    a single transaction, so readers never see a partially-written row.
    Any ``sqlite3.Error`` surfaces as :class:`PersistenceError`.
    """

    REQUIRED_TABLES = [
        "candles",
        "trades",
    ]

    def __init__(self, db_path: Path):
        """Initialize the data store.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = db_path
        self._ensure_db_dir()
        self._init_schema()

    def _ensure_db_dir(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection."""
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        """Initialize database schema on first run."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            # WAL lets CLI readers run while the engine writes
            cursor.execute("PRAGMA journal_mode=WAL")

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS candles (
                    bucket_start INTEGER PRIMARY KEY,
                    open REAL NOT NULL,
                    high REAL NOT NULL,
                    low REAL NOT NULL,
                    close REAL NOT NULL,
                    rsi REAL,
                    band_lower REAL,
                    band_upper REAL
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS trades (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    action TEXT NOT NULL,
                    price REAL NOT NULL,
                    quantity REAL NOT NULL,
                    realized_profit REAL NOT NULL DEFAULT 0,
                    reason TEXT NOT NULL,
                    timestamp TEXT NOT NULL
                )
            """)

            conn.commit()
        finally:
            conn.close()

    def get_tables(self) -> list[str]:
        """Get list of all tables in the database."""
        conn = self._get_connection()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%'"
            )
            return [row["name"] for row in cursor.fetchall()]
        finally:
            conn.close()

    # ==================== Candles ====================

    def upsert_candle(
        self,
        candle: Candle,
        rsi: Optional[float] = None,
        band_lower: Optional[float] = None,
        band_upper: Optional[float] = None,
    ) -> None:
        """Insert or replace the row for ``candle.bucket_start``.

        Args:
            candle: Candle to store. The last write for a bucket wins.
            rsi: Momentum oscillator value, if computed.
            band_lower: Lower volatility band, if computed.
            band_upper: Upper volatility band, if computed.

        Raises:
            PersistenceError: If the write fails.
        """
        self.upsert_candles([(candle, rsi, band_lower, band_upper)])

    def upsert_candles(
        self,
        rows: Iterable[tuple[Candle, Optional[float], Optional[float], Optional[float]]],
    ) -> int:
        """Upsert many candles in one transaction.

        Args:
            rows: ``(candle, rsi, band_lower, band_upper)`` tuples.

        Returns:
            Number of rows written.

        Raises:
            PersistenceError: If the write fails; nothing is committed.
        """
        params = [
            (
                candle.bucket_start,
                candle.open,
                candle.high,
                candle.low,
                candle.close,
                rsi,
                band_lower,
                band_upper,
            )
            for candle, rsi, band_lower, band_upper in rows
        ]
        try:
            conn = self._get_connection()
            try:
                with conn:
                    conn.executemany(
                        """
                        INSERT OR REPLACE INTO candles
                        (bucket_start, open, high, low, close, rsi, band_lower, band_upper)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        params,
                    )
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Candle upsert failed: {e}", operation="upsert_candles") from e
        return len(params)

    def recent_candles(self, n: int) -> list[Candle]:
        """Get the most recent ``n`` candles, oldest first.

        Raises:
            PersistenceError: If the read fails.
        """
        return [
            Candle(
                bucket_start=row.bucket_start,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
            )
            for row in self.recent_stored_candles(n)
        ]

    def recent_stored_candles(self, n: int) -> list[StoredCandle]:
        """Get the most recent ``n`` candle rows with their indicators, oldest first.

        Raises:
            PersistenceError: If the read fails.
        """
        if n <= 0:
            return []
        try:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT bucket_start, open, high, low, close, rsi, band_lower, band_upper
                    FROM candles
                    ORDER BY bucket_start DESC
                    LIMIT ?
                    """,
                    (n,),
                )
                rows = cursor.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Candle read failed: {e}", operation="recent_candles") from e

        return [
            StoredCandle(
                bucket_start=row["bucket_start"],
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                rsi=row["rsi"],
                band_lower=row["band_lower"],
                band_upper=row["band_upper"],
            )
            for row in reversed(rows)
        ]

    def count_candles(self) -> int:
        """Number of stored candles."""
        try:
            conn = self._get_connection()
            try:
                return conn.execute("SELECT COUNT(*) FROM candles").fetchone()[0]
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Candle count failed: {e}", operation="count_candles") from e

    def prune(self, max_age_ms: int, now_ms: Optional[int] = None) -> int:
        """Delete candles whose bucket starts before ``now - max_age``.

        The trade ledger is never touched.

        Args:
            max_age_ms: Maximum candle age to keep, in milliseconds.
            now_ms: Reference time; defaults to the wall clock.

        Returns:
            Number of candles deleted.

        Raises:
            PersistenceError: If the delete fails.
        """
        threshold = (now_ms if now_ms is not None else _now_ms()) - max_age_ms
        try:
            conn = self._get_connection()
            try:
                with conn:
                    cursor = conn.execute(
                        "DELETE FROM candles WHERE bucket_start < ?", (threshold,)
                    )
                    deleted = cursor.rowcount
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Prune failed: {e}", operation="prune") from e

        logger.debug("Pruned %d candles older than %d", deleted, threshold)
        return deleted

    # ==================== Trades ====================

    def append_trade(self, record: TradeRecord) -> int:
        """Append a trade to the ledger.

        Args:
            record: Trade to log. Its ``id`` is ignored.

        Returns:
            The ledger ID assigned to the trade.

        Raises:
            PersistenceError: If the insert fails.
        """
        try:
            conn = self._get_connection()
            try:
                with conn:
                    cursor = conn.execute(
                        """
                        INSERT INTO trades
                        (action, price, quantity, realized_profit, reason, timestamp)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            record.action,
                            record.price,
                            record.quantity,
                            record.realized_profit,
                            record.reason,
                            record.timestamp.isoformat(),
                        ),
                    )
                    trade_id = cursor.lastrowid
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Trade append failed: {e}", operation="append_trade") from e
        return trade_id

    def get_trades(self) -> list[TradeRecord]:
        """Get the full trade ledger in insertion order.

        Raises:
            PersistenceError: If the read fails.
        """
        try:
            conn = self._get_connection()
            try:
                cursor = conn.cursor()
                cursor.execute(
                    """
                    SELECT id, action, price, quantity, realized_profit, reason, timestamp
                    FROM trades
                    ORDER BY id
                    """
                )
                rows = cursor.fetchall()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Trade read failed: {e}", operation="get_trades") from e

        return [
            TradeRecord(
                id=row["id"],
                action=row["action"],
                price=row["price"],
                quantity=row["quantity"],
                realized_profit=row["realized_profit"],
                reason=row["reason"],
                timestamp=datetime.fromisoformat(row["timestamp"]),
            )
            for row in rows
        ]

    def realized_profit_total(self) -> float:
        """Sum of realized profit over every SELL in the ledger."""
        try:
            conn = self._get_connection()
            try:
                row = conn.execute(
                    "SELECT COALESCE(SUM(realized_profit), 0) FROM trades WHERE action = 'SELL'"
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Trade sum failed: {e}", operation="realized_profit_total") from e
        return float(row[0])


def open_store(db_path: Path, attempts: int = 5, backoff_seconds: float = 1.0) -> DataStore:
    """Open the history store, retrying while the database file is busy.

    Args:
        db_path: Path to the SQLite database file.
        attempts: Total attempts before giving up.
        backoff_seconds: Delay before the second attempt; doubles each retry.

    Returns:
        An initialized DataStore.

    Raises:
        StartupError: If the store cannot be opened. ``retryable`` is True
            when the last failure was contention that outlasted the retries.
    """
    delay = backoff_seconds
    for attempt in range(1, attempts + 1):
        try:
            return DataStore(db_path)
        except sqlite3.OperationalError as e:
            transient = any(marker in str(e).lower() for marker in _TRANSIENT_MARKERS)
            if not transient:
                raise StartupError(f"Cannot open store at {db_path}: {e}") from e
            if attempt == attempts:
                raise StartupError(
                    f"Store at {db_path} still busy after {attempts} attempts: {e}",
                    retryable=True,
                ) from e
            logger.warning("Store busy (%s), retrying in %.1fs", e, delay)
            time.sleep(delay)
            delay *= 2
        except (sqlite3.Error, OSError) as e:
            raise StartupError(f"Cannot open store at {db_path}: {e}") from e
    raise StartupError(f"Cannot open store at {db_path}: no attempts made")
