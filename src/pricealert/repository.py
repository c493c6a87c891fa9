"""
Price Alert Engine - Repository Layer

Persists the alert registry snapshot between restarts:
- ConditionRepository protocol defines the interface
- JSONConditionRepository writes a pretty-printed JSON file
- SQLiteConditionRepository stores one row per condition
- InMemoryConditionRepository keeps records for tests

Records use the snapshot format produced by AlertCondition.to_dict().
"""

import copy
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Protocol


logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class ConditionRepository(Protocol):
    """Protocol defining the condition snapshot repository interface."""

    def load(self) -> List[Record]:
        """Load all persisted condition records."""
        ...

    def save(self, records: List[Record]) -> None:
        """Replace the persisted records."""
        ...


class JSONConditionRepository:
    """
    JSON file implementation of ConditionRepository.

    A missing file loads as an empty snapshot. Writes go to a temporary
    file that is then moved over the target.
    """

    def __init__(self, path: str = "data/alerts.json"):
        self.path = Path(path)
        self._lock = threading.Lock()

    def load(self) -> List[Record]:
        if not self.path.exists():
            logger.info(f"No saved alerts at {self.path}, starting fresh")
            return []
        with self.path.open("r", encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError(f"{self.path} does not contain a list of alerts")
        logger.info(f"Loaded {len(records)} alerts from {self.path}")
        return records

    def save(self, records: List[Record]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with self._lock:
            with tmp_path.open("w", encoding="utf-8") as f:
                json.dump(records, f, indent=2)
            tmp_path.replace(self.path)
        logger.debug(f"Saved {len(records)} alerts to {self.path}")


class SQLiteConditionRepository:
    """
    SQLite implementation of ConditionRepository.

    Each save replaces the table contents inside one transaction.
    """

    def __init__(self, db_path: str = "data/alerts.db"):
        """
        Initialize the SQLite repository.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS alert_conditions (
                    position INTEGER NOT NULL,
                    id VARCHAR(36) PRIMARY KEY,
                    symbol VARCHAR(40) NOT NULL,
                    threshold REAL NOT NULL,
                    direction VARCHAR(10) NOT NULL,
                    state VARCHAR(10) NOT NULL DEFAULT 'active',
                    created_at TIMESTAMP NOT NULL,
                    triggered_at TIMESTAMP
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_alert_conditions_symbol
                ON alert_conditions(symbol)
            """)

    def _row_to_record(self, row: sqlite3.Row) -> Record:
        return {
            "id": row["id"],
            "symbol": row["symbol"],
            "threshold": row["threshold"],
            "direction": row["direction"],
            "state": row["state"],
            "createdAt": row["created_at"],
            "triggeredAt": row["triggered_at"],
        }

    def load(self) -> List[Record]:
        with self._get_connection() as conn:
            cursor = conn.execute("SELECT * FROM alert_conditions ORDER BY position")
            return [self._row_to_record(row) for row in cursor.fetchall()]

    def save(self, records: List[Record]) -> None:
        with self._get_connection() as conn:
            conn.execute("DELETE FROM alert_conditions")
            conn.executemany(
                """
                INSERT INTO alert_conditions (
                    position, id, symbol, threshold, direction,
                    state, created_at, triggered_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        position,
                        r["id"],
                        r["symbol"],
                        r["threshold"],
                        r["direction"],
                        r["state"],
                        r["createdAt"],
                        r.get("triggeredAt"),
                    )
                    for position, r in enumerate(records)
                ],
            )

    def count_by_state(self) -> dict:
        """Get count of conditions by state."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                SELECT state, COUNT(*) as count
                FROM alert_conditions
                GROUP BY state
                """
            )
            return {row["state"]: row["count"] for row in cursor.fetchall()}


class InMemoryConditionRepository:
    """
    In-memory implementation of ConditionRepository for testing.

    Records are deep-copied in and out, mimicking a real round trip.
    """

    def __init__(self):
        self._records: List[Record] = []
        self.save_count = 0

    def load(self) -> List[Record]:
        return copy.deepcopy(self._records)

    def save(self, records: List[Record]) -> None:
        self._records = copy.deepcopy(list(records))
        self.save_count += 1
