"""Durable per-placeholder failure counters."""

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from fantastic_probe.config import ProbeConfig

logger = logging.getLogger(__name__)


@dataclass
class FailureCacheEntry:
    """One failing placeholder."""

    file_path: str
    failure_count: int
    last_failure_time: int | None
    last_error_message: str | None


class FailureCache:
    """SQLite-backed retry counter keyed by placeholder path.

    Callers are serialized by the scan lock, so no locking happens here.
    """

    def __init__(
        self,
        config: ProbeConfig,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.db_path = config.failure_cache_db
        self.max_retries = config.max_retry_count
        self.clock = clock
        self._init_database()

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection that is properly closed with transaction support."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS failure_cache (
                    file_path TEXT PRIMARY KEY,
                    failure_count INTEGER DEFAULT 0,
                    last_failure_time INTEGER,
                    last_error_message TEXT,
                    created_at INTEGER DEFAULT (strftime('%s', 'now'))
                )
                """,
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_failure_count ON failure_cache(failure_count)",
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_last_failure_time "
                "ON failure_cache(last_failure_time)",
            )

    def record(self, file_path: str, error_message: str | None = None) -> int:
        """Insert or increment the counter for ``file_path``; return the new count."""
        now = int(self.clock())
        message = error_message or "Unknown error"
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO failure_cache
                    (file_path, failure_count, last_failure_time, last_error_message)
                VALUES (?, 1, ?, ?)
                ON CONFLICT(file_path) DO UPDATE SET
                    failure_count = failure_count + 1,
                    last_failure_time = excluded.last_failure_time,
                    last_error_message = excluded.last_error_message
                """,
                (file_path, now, message),
            )
            row = conn.execute(
                "SELECT failure_count FROM failure_cache WHERE file_path = ?",
                (file_path,),
            ).fetchone()

        count = int(row["failure_count"])
        logger.warning(f"Processing failed ({count}/{self.max_retries}): {file_path}")
        return count

    def get_failure_count(self, file_path: str) -> int:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT failure_count FROM failure_cache WHERE file_path = ?",
                (file_path,),
            ).fetchone()
        return int(row["failure_count"]) if row else 0

    def should_skip(self, file_path: str) -> bool:
        """True once the path has failed ``max_retry_count`` times."""
        count = self.get_failure_count(file_path)
        if count >= self.max_retries:
            logger.debug(f"Skipping (failed {count} times): {file_path}")
            return True
        return False

    def get_entry(self, file_path: str) -> FailureCacheEntry | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM failure_cache WHERE file_path = ?",
                (file_path,),
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def reset(self, file_path: str) -> bool:
        """Forget a path's failures. Returns True if an entry existed."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM failure_cache WHERE file_path = ?",
                (file_path,),
            )
            removed = cursor.rowcount > 0
        if removed:
            logger.info(f"Reset failure record: {file_path}")
        return removed

    def clear(self) -> int:
        """Delete every entry; returns how many were removed."""
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM failure_cache")
            removed = cursor.rowcount
        logger.info("Failure cache cleared")
        return removed

    def stats(self) -> dict[str, int]:
        with self._get_connection() as conn:
            total = conn.execute("SELECT COUNT(*) FROM failure_cache").fetchone()[0]
            permanent = conn.execute(
                "SELECT COUNT(*) FROM failure_cache WHERE failure_count >= ?",
                (self.max_retries,),
            ).fetchone()[0]
        return {"total": int(total), "permanent": int(permanent)}

    def permanent_failures(self) -> list[FailureCacheEntry]:
        """Entries at or above the retry ceiling, newest failure first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM failure_cache
                WHERE failure_count >= ?
                ORDER BY last_failure_time DESC
                """,
                (self.max_retries,),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def _row_to_entry(self, row: sqlite3.Row) -> FailureCacheEntry:
        return FailureCacheEntry(
            file_path=row["file_path"],
            failure_count=int(row["failure_count"]),
            last_failure_time=row["last_failure_time"],
            last_error_message=row["last_error_message"],
        )
