"""SQLite-backed store for tracked series, their states, and pending syncs.

The pending mutation queue is what lets offline changes survive a restart:
rows are ordered by an AUTOINCREMENT sequence that is never reused, and a
series has at most one row, replaced whenever a newer change is queued.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..models import SeriesConfig, SeriesState, SyncMutation

if TYPE_CHECKING:
    from collections.abc import Iterator


class TrackerStore:
    """SQLite-backed store for series configs, watch states and the sync queue.

    Connections are kept per thread, which SQLite requires, and the database
    runs in WAL mode so a background sync can write while the CLI reads.

    Example:
        store = TrackerStore(Path("~/.local/share/seriestrack/tracker.db"))
        store.save_state(SeriesState(series_id=21, progress=3))
        store.enqueue(21, store.load_state(21))
    """

    SCHEMA_VERSION = 2

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._local = threading.local()
        self._init_db()

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        if getattr(self._local, "connection", None) is None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            connection = sqlite3.connect(self._db_path)
            connection.execute("PRAGMA journal_mode=WAL")
            connection.row_factory = sqlite3.Row
            self._local.connection = connection
        return self._local.connection

    def _init_db(self) -> None:
        conn = self._get_connection()
        conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER PRIMARY KEY)")
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        current_version = row["version"] if row else 0
        if current_version < self.SCHEMA_VERSION:
            self._migrate_schema(current_version)

    def _migrate_schema(self, from_version: int) -> None:
        conn = self._get_connection()

        if from_version < 1:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS series_configs (
                    nickname TEXT PRIMARY KEY,
                    series_id INTEGER NOT NULL,
                    path TEXT NOT NULL,
                    pattern TEXT,
                    episodes INTEGER,
                    player_args TEXT NOT NULL DEFAULT '[]'
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS series_states (
                    series_id INTEGER PRIMARY KEY,
                    progress INTEGER NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    start_date TEXT,
                    end_date TEXT,
                    rewatch_count INTEGER NOT NULL DEFAULT 0,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pending_mutations (
                    sequence INTEGER PRIMARY KEY AUTOINCREMENT,
                    series_id INTEGER NOT NULL UNIQUE,
                    state TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)

        if from_version < 2:
            # Schema v2: remember the last series that was watched
            conn.execute("""
                CREATE TABLE IF NOT EXISTS app_state (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)

        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,))
        conn.commit()

    # Series configs

    def save_config(self, config: SeriesConfig) -> None:
        conn = self._get_connection()
        with conn:
            conn.execute(
                """
                INSERT INTO series_configs (nickname, series_id, path, pattern, episodes, player_args)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(nickname) DO UPDATE SET
                    series_id = excluded.series_id,
                    path = excluded.path,
                    pattern = excluded.pattern,
                    episodes = excluded.episodes,
                    player_args = excluded.player_args
                """,
                (
                    config.nickname,
                    config.series_id,
                    str(config.path),
                    config.pattern,
                    config.episodes,
                    json.dumps(config.player_args),
                ),
            )

    def get_config(self, nickname: str) -> Optional[SeriesConfig]:
        row = self._get_connection().execute(
            "SELECT * FROM series_configs WHERE nickname = ?", (nickname,)
        ).fetchone()
        return self._row_to_config(row) if row else None

    def list_configs(self) -> list[SeriesConfig]:
        cursor = self._get_connection().execute("SELECT * FROM series_configs ORDER BY nickname")
        return [self._row_to_config(row) for row in cursor]

    def delete_config(self, nickname: str) -> bool:
        conn = self._get_connection()
        with conn:
            cursor = conn.execute("DELETE FROM series_configs WHERE nickname = ?", (nickname,))
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_config(row: sqlite3.Row) -> SeriesConfig:
        return SeriesConfig(
            nickname=row["nickname"],
            series_id=row["series_id"],
            path=Path(row["path"]),
            pattern=row["pattern"],
            episodes=row["episodes"],
            player_args=list(json.loads(row["player_args"] or "[]")),
        )

    # Series states

    def save_state(self, state: SeriesState) -> None:
        data = state.to_dict()
        conn = self._get_connection()
        with conn:
            conn.execute(
                """
                INSERT INTO series_states
                    (series_id, progress, status, start_date, end_date, rewatch_count, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(series_id) DO UPDATE SET
                    progress = excluded.progress,
                    status = excluded.status,
                    start_date = excluded.start_date,
                    end_date = excluded.end_date,
                    rewatch_count = excluded.rewatch_count,
                    updated_at = excluded.updated_at
                """,
                (
                    data["series_id"],
                    data["progress"],
                    data["status"],
                    data["start_date"],
                    data["end_date"],
                    data["rewatch_count"],
                    _now(),
                ),
            )

    def load_state(self, series_id: int) -> Optional[SeriesState]:
        row = self._get_connection().execute(
            "SELECT * FROM series_states WHERE series_id = ?", (series_id,)
        ).fetchone()
        if row is None:
            return None
        return SeriesState.from_dict(dict(row))

    # Pending mutations

    def enqueue(self, series_id: int, state: SeriesState) -> SyncMutation:
        """Queue ``state`` for the remote, replacing any older unsent change."""
        conn = self._get_connection()
        with conn:
            conn.execute("DELETE FROM pending_mutations WHERE series_id = ?", (series_id,))
            cursor = conn.execute(
                "INSERT INTO pending_mutations (series_id, state, created_at) VALUES (?, ?, ?)",
                (series_id, json.dumps(state.to_dict()), _now()),
            )
        return SyncMutation(series_id=series_id, state=state, sequence=int(cursor.lastrowid))

    def pending(self) -> list[SyncMutation]:
        return list(self._iter_pending())

    def _iter_pending(self) -> Iterator[SyncMutation]:
        cursor = self._get_connection().execute("SELECT * FROM pending_mutations ORDER BY sequence ASC")
        for row in cursor:
            yield self._row_to_mutation(row)

    def pending_for(self, series_id: int) -> Optional[SyncMutation]:
        row = self._get_connection().execute(
            "SELECT * FROM pending_mutations WHERE series_id = ?", (series_id,)
        ).fetchone()
        return self._row_to_mutation(row) if row else None

    def discard(self, series_id: int, up_to_sequence: Optional[int] = None) -> int:
        """Drop the pending change for a series.

        With ``up_to_sequence`` only a change at or before that sequence is
        dropped, so a newer change queued meanwhile survives.
        """
        conn = self._get_connection()
        with conn:
            if up_to_sequence is None:
                cursor = conn.execute("DELETE FROM pending_mutations WHERE series_id = ?", (series_id,))
            else:
                cursor = conn.execute(
                    "DELETE FROM pending_mutations WHERE series_id = ? AND sequence <= ?",
                    (series_id, up_to_sequence),
                )
        return cursor.rowcount

    def pending_count(self) -> int:
        row = self._get_connection().execute("SELECT COUNT(*) AS count FROM pending_mutations").fetchone()
        return int(row["count"])

    @staticmethod
    def _row_to_mutation(row: sqlite3.Row) -> SyncMutation:
        return SyncMutation(
            series_id=row["series_id"],
            state=SeriesState.from_dict(json.loads(row["state"])),
            sequence=row["sequence"],
        )

    # Misc

    def get_last_watched(self) -> Optional[str]:
        row = self._get_connection().execute(
            "SELECT value FROM app_state WHERE key = 'last_watched'"
        ).fetchone()
        return row["value"] if row else None

    def set_last_watched(self, nickname: str) -> bool:
        """Remember ``nickname``; returns True when it differs from the stored one."""
        if self.get_last_watched() == nickname:
            return False
        conn = self._get_connection()
        with conn:
            conn.execute(
                "INSERT INTO app_state (key, value) VALUES ('last_watched', ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (nickname,),
            )
        return True

    def close(self) -> None:
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
