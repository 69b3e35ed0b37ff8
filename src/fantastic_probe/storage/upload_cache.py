"""Durable per-artifact upload status."""

import logging
import sqlite3
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from fantastic_probe.config import ProbeConfig

logger = logging.getLogger(__name__)


class UploadStatus(Enum):
    """Status of an artifact copy to remote storage."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class UploadCacheEntry:
    """Upload record for one generated artifact."""

    source_path: str
    target_path: str
    status: UploadStatus
    upload_count: int
    last_upload_time: int | None
    last_error_message: str | None


class UploadCache:
    """SQLite-backed upload status store keyed by source path."""

    def __init__(
        self,
        config: ProbeConfig,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.db_path = config.upload_cache_db
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
                CREATE TABLE IF NOT EXISTS upload_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    source_path TEXT NOT NULL UNIQUE,
                    target_path TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    upload_count INTEGER DEFAULT 0,
                    last_upload_time INTEGER,
                    last_error_message TEXT,
                    created_at INTEGER DEFAULT (strftime('%s', 'now')),
                    updated_at INTEGER DEFAULT (strftime('%s', 'now'))
                )
                """,
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_upload_status ON upload_cache(status)",
            )

    def mark_pending(self, source_path: str, target_path: str) -> None:
        now = int(self.clock())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO upload_cache
                    (source_path, target_path, status, created_at, updated_at)
                VALUES (?, ?, 'pending', ?, ?)
                ON CONFLICT(source_path) DO UPDATE SET
                    target_path = excluded.target_path,
                    status = 'pending',
                    updated_at = excluded.updated_at
                """,
                (source_path, target_path, now, now),
            )
        logger.debug(f"Upload pending: {source_path}")

    def mark_success(self, source_path: str) -> None:
        now = int(self.clock())
        with self._get_connection() as conn:
            conn.execute(
                """
                UPDATE upload_cache
                SET status = 'success',
                    upload_count = upload_count + 1,
                    last_upload_time = ?,
                    last_error_message = NULL,
                    updated_at = ?
                WHERE source_path = ?
                """,
                (now, now, source_path),
            )

    def mark_failed(
        self,
        source_path: str,
        error_message: str,
        target_path: str = "",
    ) -> None:
        """Record a failed attempt, creating the row if mapping never got that far."""
        now = int(self.clock())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO upload_cache
                    (source_path, target_path, status, upload_count,
                     last_upload_time, last_error_message, created_at, updated_at)
                VALUES (?, ?, 'failed', 1, ?, ?, ?, ?)
                ON CONFLICT(source_path) DO UPDATE SET
                    status = 'failed',
                    upload_count = upload_count + 1,
                    last_upload_time = excluded.last_upload_time,
                    last_error_message = excluded.last_error_message,
                    updated_at = excluded.updated_at
                """,
                (source_path, target_path, now, error_message, now, now),
            )
        logger.error(f"Upload failed: {source_path} - {error_message}")

    def get(self, source_path: str) -> UploadCacheEntry | None:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM upload_cache WHERE source_path = ?",
                (source_path,),
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def status_of(self, source_path: str) -> UploadStatus | None:
        entry = self.get(source_path)
        return entry.status if entry else None

    def entries_by_status(self, status: UploadStatus) -> list[UploadCacheEntry]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM upload_cache WHERE status = ? ORDER BY updated_at, id",
                (status.value,),
            ).fetchall()
        return [self._row_to_entry(row) for row in rows]

    def reset(self, source_path: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM upload_cache WHERE source_path = ?",
                (source_path,),
            )
            return cursor.rowcount > 0

    def cleanup(self, days_to_keep: int = 30) -> int:
        """Drop successful records older than ``days_to_keep`` days."""
        cutoff = int(self.clock()) - days_to_keep * 86400
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM upload_cache WHERE status = 'success' AND updated_at < ?",
                (cutoff,),
            )
            removed = cursor.rowcount
        logger.info(f"Removed {removed} upload records older than {days_to_keep} days")
        return removed

    def stats(self) -> dict[str, int]:
        counts = {status.value: 0 for status in UploadStatus}
        with self._get_connection() as conn:
            for row in conn.execute(
                "SELECT status, COUNT(*) AS n FROM upload_cache GROUP BY status",
            ):
                counts[row["status"]] = int(row["n"])
        counts["total"] = sum(counts.values())
        return counts

    def _row_to_entry(self, row: sqlite3.Row) -> UploadCacheEntry:
        return UploadCacheEntry(
            source_path=row["source_path"],
            target_path=row["target_path"],
            status=UploadStatus(row["status"]),
            upload_count=int(row["upload_count"] or 0),
            last_upload_time=row["last_upload_time"],
            last_error_message=row["last_error_message"],
        )
