"""SQLite persistence for per-shortcut spaced-repetition state."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping
from datetime import UTC, datetime
from pathlib import Path

from .models import ProgressRecord

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1
MEMORY_DB = ":memory:"


class ProgressStore:
    """Database access layer for the progress map.

    Read and write failures are logged and never raised: an unreadable file
    degrades the store to an in-memory database for the rest of the process.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Open the database and apply migrations."""
        self.degraded = False
        try:
            self._conn = self._connect(db_path)
        except (sqlite3.Error, OSError, RuntimeError) as exc:
            logger.warning("Progress store %s is unreadable (%s); keeping progress in memory only", db_path, exc)
            self.degraded = True
            self._conn = self._connect(MEMORY_DB)

    def _connect(self, db_path: Path | str) -> sqlite3.Connection:
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        conn = sqlite3.connect(target)
        conn.row_factory = sqlite3.Row
        try:
            self._apply_migrations(conn)
        except BaseException:
            conn.close()
            raise
        return conn

    def _apply_migrations(self, conn: sqlite3.Connection) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    applied_at TEXT NOT NULL
                )
                """)

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1(conn)
            with conn:
                conn.execute(f"PRAGMA user_version = {version}")
                conn.execute(
                    "INSERT OR REPLACE INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(UTC).isoformat()),
                )

    def _migrate_to_v1(self, conn: sqlite3.Connection) -> None:
        """Create the progress table."""
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS progress (
                    item_id TEXT PRIMARY KEY,
                    ease REAL NOT NULL,
                    interval_days INTEGER NOT NULL,
                    due_at TEXT NOT NULL,
                    correct_streak INTEGER NOT NULL DEFAULT 0,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    correct INTEGER NOT NULL DEFAULT 0,
                    avg_response_ms REAL NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
                """)

    def load_all(self) -> dict[str, ProgressRecord]:
        """Return all stored records keyed by item id, or an empty map on failure."""
        try:
            rows = self._conn.execute("""
                SELECT item_id, ease, interval_days, due_at, correct_streak, attempts, correct, avg_response_ms
                FROM progress
                ORDER BY item_id
                """).fetchall()
        except sqlite3.Error as exc:
            logger.warning("Could not read progress (%s); starting empty", exc)
            return {}

        records: dict[str, ProgressRecord] = {}
        for row in rows:
            try:
                record = _record_from_row(row)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping unreadable progress row %r (%s)", row["item_id"], exc)
                continue
            records[record.id] = record
        return records

    def save_all(self, progress: Mapping[str, ProgressRecord]) -> bool:
        """Upsert every record in one transaction; return False if the write failed."""
        now = datetime.now(UTC).isoformat()
        rows = [
            (
                record.id,
                record.ease,
                record.interval_days,
                _format_timestamp(record.due_at),
                record.correct_streak,
                record.attempts,
                record.correct,
                record.avg_response_ms,
                now,
            )
            for record in progress.values()
        ]
        try:
            with self._conn:
                self._conn.executemany(
                    """
                    INSERT INTO progress (
                        item_id,
                        ease,
                        interval_days,
                        due_at,
                        correct_streak,
                        attempts,
                        correct,
                        avg_response_ms,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(item_id) DO UPDATE SET
                        ease = excluded.ease,
                        interval_days = excluded.interval_days,
                        due_at = excluded.due_at,
                        correct_streak = excluded.correct_streak,
                        attempts = excluded.attempts,
                        correct = excluded.correct,
                        avg_response_ms = excluded.avg_response_ms,
                        updated_at = excluded.updated_at
                    """,
                    rows,
                )
        except (sqlite3.Error, OverflowError) as exc:
            logger.warning("Could not save progress (%s); changes kept in memory", exc)
            return False
        return True

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def _record_from_row(row: sqlite3.Row) -> ProgressRecord:
    return ProgressRecord(
        id=str(row["item_id"]),
        ease=float(row["ease"]),
        interval_days=int(row["interval_days"]),
        due_at=parse_timestamp(str(row["due_at"])),
        correct_streak=int(row["correct_streak"]),
        attempts=int(row["attempts"]),
        correct=int(row["correct"]),
        avg_response_ms=float(row["avg_response_ms"]),
    )


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(text: str) -> datetime:
    """Parse a stored ISO timestamp, treating naive values as UTC."""
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value
