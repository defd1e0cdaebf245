"""Property-based tests for the history store.

**Feature: scalper**
"""

import sqlite3
import tempfile
from datetime import datetime
from pathlib import Path
from unittest.mock import patch

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from scalper.db.store import DataStore, open_store
from scalper.errors import PersistenceError, StartupError
from scalper.models import Candle, TradeRecord

WIDTH = 60_000


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        yield DataStore(db_path)


def make_candle(bucket: int, close: float = 100.0) -> Candle:
    return Candle(
        bucket_start=bucket * WIDTH,
        open=close,
        high=close + 1,
        low=close - 1,
        close=close,
    )


def make_trade(action: str = "BUY", price: float = 100.0, profit: float = 0.0) -> TradeRecord:
    return TradeRecord(
        action=action,
        price=price,
        quantity=1.0,
        realized_profit=profit,
        timestamp=datetime(2025, 1, 1, 12, 0, 0),
        reason="signal" if action == "BUY" else "stop",
    )


class TestDatabaseSchemaCompleteness:
    """
    **Feature: scalper, Property 2: Database Schema Completeness**

    *For any* fresh database, the candle and trade tables exist.
    """

    def test_schema_completeness(self, temp_db: DataStore):
        tables = temp_db.get_tables()
        for table in DataStore.REQUIRED_TABLES:
            assert table in tables, f"Required table '{table}' is missing"

    def test_reopen_keeps_data(self, temp_db: DataStore):
        temp_db.upsert_candle(make_candle(1))
        temp_db.append_trade(make_trade())

        reopened = DataStore(temp_db.db_path)
        assert len(reopened.recent_candles(10)) == 1
        assert len(reopened.get_trades()) == 1


class TestCandleUpsert:
    """
    **Feature: scalper, Property 3: One Row Per Bucket**

    *For any* sequence of writes to the same bucket, exactly one row
    exists and it holds the latest values.
    """

    @given(closes=st.lists(
        st.floats(min_value=1.0, max_value=100_000.0, allow_nan=False, allow_infinity=False),
        min_size=1,
        max_size=10,
    ))
    @settings(max_examples=30, deadline=None)
    def test_last_write_wins(self, closes: list[float]):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DataStore(Path(tmpdir) / "test.db")
            for i, close in enumerate(closes):
                store.upsert_candle(make_candle(7, close), rsi=float(i), band_lower=1.0, band_upper=2.0)

            rows = store.recent_stored_candles(10)
            assert len(rows) == 1
            assert rows[0].close == closes[-1]
            assert rows[0].rsi == float(len(closes) - 1)

    def test_indicators_nullable(self, temp_db: DataStore):
        temp_db.upsert_candle(make_candle(1))
        row = temp_db.recent_stored_candles(1)[0]
        assert row.rsi is None
        assert row.band_lower is None
        assert row.band_upper is None


class TestRecentCandles:
    """Window reads are bounded and ordered oldest to newest."""

    @given(
        buckets=st.lists(st.integers(min_value=0, max_value=10_000), min_size=0, max_size=40, unique=True),
        n=st.integers(min_value=1, max_value=60),
    )
    @settings(max_examples=30, deadline=None)
    def test_ordered_and_bounded(self, buckets: list[int], n: int):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DataStore(Path(tmpdir) / "test.db")
            store.upsert_candles([(make_candle(b), None, None, None) for b in buckets])

            window = store.recent_candles(n)
            expected = sorted(buckets)[-n:] if buckets else []

            assert [c.bucket_start // WIDTH for c in window] == expected

    def test_zero_limit(self, temp_db: DataStore):
        temp_db.upsert_candle(make_candle(1))
        assert temp_db.recent_candles(0) == []


class TestPruning:
    """
    **Feature: scalper, Property 4: Age-Based Pruning**

    Pruning removes candles older than ``now - max_age``, keeps the rest
    and never touches the trade ledger.
    """

    def test_prune_one_hour(self, temp_db: DataStore):
        now = 10_000_000
        max_age = 3_600_000
        threshold = now - max_age
        starts = [threshold - WIDTH, threshold - 1, threshold, threshold + 1, now]
        temp_db.upsert_candles([
            (Candle(bucket_start=s, open=1.0, high=1.0, low=1.0, close=1.0), None, None, None)
            for s in starts
        ])
        temp_db.append_trade(make_trade("BUY"))
        temp_db.append_trade(make_trade("SELL", profit=5.0))

        deleted = temp_db.prune(max_age, now_ms=now)

        assert deleted == 2
        remaining = [c.bucket_start for c in temp_db.recent_candles(100)]
        assert remaining == [threshold, threshold + 1, now]
        assert len(temp_db.get_trades()) == 2

    def test_prune_empty_store(self, temp_db: DataStore):
        assert temp_db.prune(1000, now_ms=5000) == 0


class TestTradeLedger:
    """
    **Feature: scalper, Property 5: Append-Only Ledger**

    *For any* sequence of appended trades, the ledger returns them in order
    with increasing IDs, and the realized total sums SELL rows only.
    """

    @given(profits=st.lists(
        st.floats(min_value=-1000.0, max_value=1000.0, allow_nan=False, allow_infinity=False),
        min_size=0,
        max_size=15,
    ))
    @settings(max_examples=30, deadline=None)
    def test_append_and_sum(self, profits: list[float]):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = DataStore(Path(tmpdir) / "test.db")
            ids = []
            for profit in profits:
                ids.append(store.append_trade(make_trade("BUY")))
                ids.append(store.append_trade(make_trade("SELL", profit=profit)))

            ledger = store.get_trades()
            assert [t.id for t in ledger] == ids
            assert ids == sorted(ids)
            assert store.realized_profit_total() == pytest.approx(sum(profits), abs=1e-6)

    def test_round_trip_fields(self, temp_db: DataStore):
        record = make_trade("SELL", price=105.5, profit=5.5)
        trade_id = temp_db.append_trade(record)
        stored = temp_db.get_trades()[0]
        assert stored == record.model_copy(update={"id": trade_id})


class TestPersistenceErrors:
    """sqlite failures surface as PersistenceError."""

    def test_write_failure_wrapped(self, temp_db: DataStore):
        with patch.object(temp_db, "_get_connection", side_effect=sqlite3.OperationalError("disk I/O error")):
            with pytest.raises(PersistenceError) as exc:
                temp_db.upsert_candle(make_candle(1))
        assert exc.value.operation == "upsert_candles"

    def test_read_failure_wrapped(self, temp_db: DataStore):
        with patch.object(temp_db, "_get_connection", side_effect=sqlite3.DatabaseError("malformed")):
            with pytest.raises(PersistenceError):
                temp_db.recent_candles(5)

    def test_trade_failure_wrapped(self, temp_db: DataStore):
        with patch.object(temp_db, "_get_connection", side_effect=sqlite3.OperationalError("locked")):
            with pytest.raises(PersistenceError):
                temp_db.append_trade(make_trade())


class TestOpenStore:
    """Startup retries contention and fails fast otherwise."""

    def test_opens_fresh_store(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            store = open_store(Path(tmpdir) / "sub" / "bot.db", attempts=1)
            assert set(DataStore.REQUIRED_TABLES) <= set(store.get_tables())

    def test_retries_busy_database(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            db_path = Path(tmpdir) / "bot.db"
            real_init = DataStore._init_schema
            calls = {"n": 0}

            def flaky(self):
                calls["n"] += 1
                if calls["n"] < 3:
                    raise sqlite3.OperationalError("database is locked")
                real_init(self)

            with patch.object(DataStore, "_init_schema", flaky), patch("scalper.db.store.time.sleep") as sleep:
                store = open_store(db_path, attempts=5, backoff_seconds=0.5)

            assert isinstance(store, DataStore)
            assert calls["n"] == 3
            assert [c.args[0] for c in sleep.call_args_list] == [0.5, 1.0]

    def test_gives_up_after_attempts(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.object(DataStore, "_init_schema", side_effect=sqlite3.OperationalError("database is locked")), \
                    patch("scalper.db.store.time.sleep"):
                with pytest.raises(StartupError) as exc:
                    open_store(Path(tmpdir) / "bot.db", attempts=3)
            assert exc.value.retryable is True

    def test_non_transient_is_fatal(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with patch.object(DataStore, "_init_schema", side_effect=sqlite3.OperationalError("no such column")), \
                    patch("scalper.db.store.time.sleep") as sleep:
                with pytest.raises(StartupError) as exc:
                    open_store(Path(tmpdir) / "bot.db", attempts=3)
            assert exc.value.retryable is False
            sleep.assert_not_called()
