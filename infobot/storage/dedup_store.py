"""SQLite-backed deduplication ledger.

Owns the three persistent tables:
- source_check_state: per-source check cursor
- sent_notification: items already delivered, unique per (source_id, content_id)
- bot_settings: runtime key/value settings (persisted check interval)

The public API is async. Each call runs the sqlite work in a worker thread
behind a lock; every sqlite3.Error surfaces as PersistenceError.
"""

import asyncio
import sqlite3
from datetime import datetime, timedelta, timezone
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Optional, TypeVar

import structlog

from infobot.models.state import SentNotification, SourceCheckState, StoreStats
from infobot.utils.exceptions import PersistenceError

logger = structlog.get_logger()

T = TypeVar("T")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS source_check_state (
        source_id TEXT PRIMARY KEY,
        last_check_time TEXT NOT NULL,
        last_content_id TEXT,
        last_content_timestamp TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sent_notification (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_id TEXT NOT NULL,
        content_id TEXT NOT NULL,
        content_url TEXT,
        external_message_id TEXT,
        sent_at TEXT NOT NULL,
        UNIQUE(source_id, content_id)
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_sent_notification_lookup
        ON sent_notification(source_id, content_id)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_sent_notification_sent_at
        ON sent_notification(sent_at)
    """,
    """
    CREATE TABLE IF NOT EXISTS bot_settings (
        key TEXT PRIMARY KEY,
        value TEXT,
        updated_at TEXT NOT NULL
    )
    """,
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(dt: datetime) -> str:
    """Fixed-width UTC ISO string so lexical order matches time order."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class DedupStore:
    """Persistent check cursors, sent-notification ledger and settings."""

    def __init__(
        self,
        db_path: Path | str,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the store (no I/O until initialize()).

        Args:
            db_path: SQLite database file; ":memory:" is accepted for tests
            now_fn: Clock returning timezone-aware UTC datetimes
        """
        self.db_path = str(db_path)
        self._now = now_fn or _utc_now
        self._lock = Lock()
        self._conn: Optional[sqlite3.Connection] = None

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Run func(conn, *args) in a worker thread under the lock."""

        def _call() -> T:
            with self._lock:
                conn = self._require_connection()
                try:
                    return func(conn, *args)
                except sqlite3.Error as e:
                    conn.rollback()
                    raise PersistenceError(f"{operation} failed: {e}") from e

        try:
            return await asyncio.to_thread(_call)
        except PersistenceError as e:
            logger.error("dedup_store_error", operation=operation, error=str(e))
            raise

    def _require_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise PersistenceError("Dedup store is not initialized")
        return self._conn

    def _open(self) -> None:
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        for statement in _SCHEMA:
            conn.execute(statement)
        conn.commit()
        self._conn = conn

    async def initialize(self) -> None:
        """Open the database and create the schema.

        Raises:
            PersistenceError: Database cannot be opened or schema created
        """

        def _init() -> None:
            with self._lock:
                if self._conn is not None:
                    return
                try:
                    self._open()
                except (sqlite3.Error, OSError) as e:
                    raise PersistenceError(
                        f"Cannot open dedup store at {self.db_path}: {e}"
                    ) from e

        await asyncio.to_thread(_init)
        logger.info("dedup_store_initialized", path=self.db_path)

    async def close(self) -> None:
        def _close() -> None:
            with self._lock:
                if self._conn is not None:
                    self._conn.close()
                    self._conn = None

        await asyncio.to_thread(_close)

    # ------------------------------------------------------------------
    # Check state
    # ------------------------------------------------------------------

    async def get_check_state(self, source_id: str) -> Optional[SourceCheckState]:
        def _get(conn: sqlite3.Connection) -> Optional[SourceCheckState]:
            row = conn.execute(
                "SELECT * FROM source_check_state WHERE source_id = ?",
                (source_id,),
            ).fetchone()
            if row is None:
                return None
            return SourceCheckState(
                source_id=row["source_id"],
                last_check_time=_from_iso(row["last_check_time"]),
                last_content_id=row["last_content_id"],
                last_content_timestamp=_from_iso(row["last_content_timestamp"]),
                created_at=_from_iso(row["created_at"]),
                updated_at=_from_iso(row["updated_at"]),
            )

        return await self._run("get_check_state", _get)

    async def list_check_states(self) -> list[SourceCheckState]:
        """All cursors, ordered by source_id."""

        def _list(conn: sqlite3.Connection) -> list[SourceCheckState]:
            rows = conn.execute(
                "SELECT * FROM source_check_state ORDER BY source_id"
            ).fetchall()
            return [
                SourceCheckState(
                    source_id=row["source_id"],
                    last_check_time=_from_iso(row["last_check_time"]),
                    last_content_id=row["last_content_id"],
                    last_content_timestamp=_from_iso(row["last_content_timestamp"]),
                    created_at=_from_iso(row["created_at"]),
                    updated_at=_from_iso(row["updated_at"]),
                )
                for row in rows
            ]

        return await self._run("list_check_states", _list)

    async def update_check_state(
        self,
        source_id: str,
        content_id: Optional[str] = None,
        content_timestamp: Optional[datetime] = None,
    ) -> None:
        """Upsert the cursor for a source.

        last_check_time always advances (never moves backwards). When
        content_id is None the stored content fields are left as they are.
        """
        now = self._now()

        def _update(conn: sqlite3.Connection) -> None:
            row = conn.execute(
                "SELECT last_check_time FROM source_check_state WHERE source_id = ?",
                (source_id,),
            ).fetchone()
            check_time = now
            if row is not None:
                previous = _from_iso(row["last_check_time"])
                if previous is not None and previous > check_time:
                    check_time = previous

            stamp = _to_iso(now)
            if content_id is None:
                conn.execute(
                    """
                    INSERT INTO source_check_state
                        (source_id, last_check_time, created_at, updated_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(source_id) DO UPDATE SET
                        last_check_time = excluded.last_check_time,
                        updated_at = excluded.updated_at
                    """,
                    (source_id, _to_iso(check_time), stamp, stamp),
                )
            else:
                conn.execute(
                    """
                    INSERT INTO source_check_state
                        (source_id, last_check_time, last_content_id,
                         last_content_timestamp, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(source_id) DO UPDATE SET
                        last_check_time = excluded.last_check_time,
                        last_content_id = excluded.last_content_id,
                        last_content_timestamp = excluded.last_content_timestamp,
                        updated_at = excluded.updated_at
                    """,
                    (
                        source_id,
                        _to_iso(check_time),
                        content_id,
                        _to_iso(content_timestamp) if content_timestamp else None,
                        stamp,
                        stamp,
                    ),
                )
            conn.commit()

        await self._run("update_check_state", _update)
        logger.debug(
            "check_state_updated",
            source=source_id,
            content_id=content_id,
        )

    async def reset_check_states(self, source_id: Optional[str] = None) -> int:
        """Delete cursors for one source, or all of them.

        Returns:
            Number of rows removed
        """

        def _reset(conn: sqlite3.Connection) -> int:
            if source_id is None:
                cursor = conn.execute("DELETE FROM source_check_state")
            else:
                cursor = conn.execute(
                    "DELETE FROM source_check_state WHERE source_id = ?",
                    (source_id,),
                )
            conn.commit()
            return cursor.rowcount

        removed = await self._run("reset_check_states", _reset)
        logger.info("check_states_reset", source=source_id or "all", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Sent notifications
    # ------------------------------------------------------------------

    async def is_notification_sent(self, source_id: str, content_id: str) -> bool:
        def _exists(conn: sqlite3.Connection) -> bool:
            row = conn.execute(
                """
                SELECT 1 FROM sent_notification
                WHERE source_id = ? AND content_id = ?
                """,
                (source_id, content_id),
            ).fetchone()
            return row is not None

        return await self._run("is_notification_sent", _exists)

    async def get_sent_notification(
        self, source_id: str, content_id: str
    ) -> Optional[SentNotification]:
        """The delivery record for an item, or None if it was never sent."""

        def _get(conn: sqlite3.Connection) -> Optional[SentNotification]:
            row = conn.execute(
                """
                SELECT source_id, content_id, content_url, external_message_id, sent_at
                FROM sent_notification
                WHERE source_id = ? AND content_id = ?
                """,
                (source_id, content_id),
            ).fetchone()
            if row is None:
                return None
            return SentNotification(
                source_id=row["source_id"],
                content_id=row["content_id"],
                content_url=row["content_url"],
                external_message_id=row["external_message_id"],
                sent_at=_from_iso(row["sent_at"]),
            )

        return await self._run("get_sent_notification", _get)

    async def record_sent_notification(
        self,
        source_id: str,
        content_id: str,
        content_url: Optional[str] = None,
        external_message_id: Optional[str] = None,
    ) -> None:
        """Record a delivered item; a repeat for the same key overwrites it."""
        sent_at = _to_iso(self._now())

        def _record(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO sent_notification
                    (source_id, content_id, content_url, external_message_id, sent_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(source_id, content_id) DO UPDATE SET
                    content_url = excluded.content_url,
                    external_message_id = excluded.external_message_id,
                    sent_at = excluded.sent_at
                """,
                (source_id, content_id, content_url, external_message_id, sent_at),
            )
            conn.commit()

        await self._run("record_sent_notification", _record)

    async def sweep_expired(self, max_age_days: int = 30) -> int:
        """Delete sent notifications older than max_age_days.

        Returns:
            Number of rows removed
        """
        cutoff = _to_iso(self._now() - timedelta(days=max_age_days))

        def _sweep(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "DELETE FROM sent_notification WHERE sent_at < ?", (cutoff,)
            )
            conn.commit()
            return cursor.rowcount

        return await self._run("sweep_expired", _sweep)

    async def get_stats(self) -> StoreStats:
        now = self._now()
        day_ago = _to_iso(now - timedelta(hours=24))
        week_ago = _to_iso(now - timedelta(days=7))

        def _stats(conn: sqlite3.Connection) -> StoreStats:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    COALESCE(SUM(CASE WHEN sent_at >= ? THEN 1 ELSE 0 END), 0) AS day,
                    COALESCE(SUM(CASE WHEN sent_at >= ? THEN 1 ELSE 0 END), 0) AS week
                FROM sent_notification
                """,
                (day_ago, week_ago),
            ).fetchone()
            sources = conn.execute(
                """
                SELECT COUNT(*) AS active, MAX(last_check_time) AS last_check
                FROM source_check_state
                """
            ).fetchone()
            return StoreStats(
                total_notifications=row["total"],
                notifications_24h=row["day"],
                notifications_7d=row["week"],
                active_sources=sources["active"],
                last_global_check=_from_iso(sources["last_check"]),
            )

        return await self._run("get_stats", _stats)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_setting(self, key: str) -> Optional[str]:
        def _get(conn: sqlite3.Connection) -> Optional[str]:
            row = conn.execute(
                "SELECT value FROM bot_settings WHERE key = ?", (key,)
            ).fetchone()
            return None if row is None else row["value"]

        return await self._run("get_setting", _get)

    async def set_setting(self, key: str, value: str) -> None:
        stamp = _to_iso(self._now())

        def _set(conn: sqlite3.Connection) -> None:
            conn.execute(
                "INSERT OR REPLACE INTO bot_settings (key, value, updated_at) "
                "VALUES (?, ?, ?)",
                (key, value, stamp),
            )
            conn.commit()

        await self._run("set_setting", _set)
        logger.info("setting_updated", key=key, value=value)
