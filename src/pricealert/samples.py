"""
Price Alert Engine - Sample Stores

Per-symbol price history with bounded retention:
- SampleStore protocol defines the interface
- InMemorySampleStore keeps ring buffers in memory
- SQLiteSampleStore persists samples to a local database

Unknown symbols read as an empty history. Backend failures are raised
as StoreUnavailableError.
"""

import sqlite3
import threading
from collections import deque
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Deque, Dict, Iterator, List, Optional, Protocol

from .errors import StoreUnavailableError
from .models import Sample


DEFAULT_MAX_SAMPLES = 1000


class SampleStore(Protocol):
    """Protocol defining the sample store interface."""

    def append(self, symbol: str, price: float, timestamp: Optional[datetime] = None) -> Sample:
        """Append a sample to the symbol's history."""
        ...

    def recent(self, symbol: str, limit: int) -> List[Sample]:
        """Up to ``limit`` most recent samples, most recent last."""
        ...

    def symbols(self) -> List[str]:
        """Symbols with at least one sample."""
        ...


class InMemorySampleStore:
    """
    Thread-safe in-memory ring buffers.

    Each symbol has its own bounded deque; the oldest samples are
    dropped once ``max_samples`` is reached.
    """

    def __init__(self, max_samples: int = DEFAULT_MAX_SAMPLES):
        self.max_samples = max_samples
        self._buffers: Dict[str, Deque[Sample]] = {}
        self._lock = threading.RLock()

    def append(self, symbol: str, price: float, timestamp: Optional[datetime] = None) -> Sample:
        sample = Sample(price=float(price), timestamp=timestamp or datetime.now())
        with self._lock:
            if symbol not in self._buffers:
                self._buffers[symbol] = deque(maxlen=self.max_samples)
            self._buffers[symbol].append(sample)
        return sample

    def recent(self, symbol: str, limit: int) -> List[Sample]:
        if limit <= 0:
            return []
        with self._lock:
            buffer = self._buffers.get(symbol)
            if not buffer:
                return []
            data = list(buffer)
        return data[-limit:]

    def symbols(self) -> List[str]:
        with self._lock:
            return [s for s, buffer in self._buffers.items() if buffer]

    def count(self, symbol: str) -> int:
        with self._lock:
            return len(self._buffers.get(symbol, ()))

    def clear(self) -> None:
        with self._lock:
            self._buffers.clear()


class SQLiteSampleStore:
    """
    SQLite implementation of SampleStore.

    Samples are trimmed to ``max_samples`` per symbol after every append.
    Rows are read back in insertion order, which is the canonical order.
    """

    def __init__(self, db_path: str = "data/prices.db", max_samples: int = DEFAULT_MAX_SAMPLES):
        """
        Initialize the SQLite store.

        Args:
            db_path: Path to the SQLite database file
            max_samples: Samples retained per symbol
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.max_samples = max_samples
        self._write_lock = threading.Lock()
        self._init_db()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreUnavailableError(f"Sample store error: {e}") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS price_samples (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    symbol VARCHAR(40) NOT NULL,
                    price REAL NOT NULL,
                    timestamp TIMESTAMP NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_price_samples_symbol
                ON price_samples(symbol, seq)
            """)

    def append(self, symbol: str, price: float, timestamp: Optional[datetime] = None) -> Sample:
        sample = Sample(price=float(price), timestamp=timestamp or datetime.now())
        with self._write_lock, self._get_connection() as conn:
            conn.execute(
                "INSERT INTO price_samples (symbol, price, timestamp) VALUES (?, ?, ?)",
                (symbol, sample.price, sample.timestamp.isoformat()),
            )
            conn.execute(
                """
                DELETE FROM price_samples
                WHERE symbol = ? AND seq NOT IN (
                    SELECT seq FROM price_samples
                    WHERE symbol = ?
                    ORDER BY seq DESC
                    LIMIT ?
                )
                """,
                (symbol, symbol, self.max_samples),
            )
        return sample

    def recent(self, symbol: str, limit: int) -> List[Sample]:
        if limit <= 0:
            return []
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT price, timestamp FROM price_samples
                WHERE symbol = ?
                ORDER BY seq DESC
                LIMIT ?
                """,
                (symbol, limit),
            )
            rows = cursor.fetchall()
        return [
            Sample(price=row["price"], timestamp=datetime.fromisoformat(row["timestamp"]))
            for row in reversed(rows)
        ]

    def symbols(self) -> List[str]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT DISTINCT symbol FROM price_samples ORDER BY symbol")
            return [row["symbol"] for row in cursor.fetchall()]

    def count(self, symbol: str) -> int:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT COUNT(*) FROM price_samples WHERE symbol = ?", (symbol,)
            )
            return cursor.fetchone()[0]
