"""
Notification store for Tidings.

SQLite mirror of the remote notification feed. The store is the source of
truth for rendering: the UI only ever reads from here, background sync and
actions only ever write here.

Every public method runs in its own connection and transaction, so a reader
never sees a half-applied patch or a half-replaced table.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from tidings.config import get_db_path
from tidings.models import (
    PATCHABLE_FIELDS,
    Facets,
    Notification,
    SyncStatus,
    ViewCounts,
    to_iso,
    utcnow,
)

logger = logging.getLogger(__name__)

# Schema version for migrations
SCHEMA_VERSION = 1

NOTIFICATIONS = "notifications"
CACHE_TTL = timedelta(minutes=5)
VIEWS = ("inbox", "starred", "archived", "all")

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- Mirrored notifications, one row per remote id
CREATE TABLE IF NOT EXISTS notifications (
    id INTEGER PRIMARY KEY,
    github_id TEXT,
    reason TEXT,
    unread INTEGER NOT NULL DEFAULT 1,
    archived INTEGER NOT NULL DEFAULT 0,
    starred INTEGER NOT NULL DEFAULT 0,
    muted INTEGER NOT NULL DEFAULT 0,
    url TEXT,
    web_url TEXT,
    subject_title TEXT,
    subject_url TEXT,
    subject_type TEXT,
    subject_state TEXT,
    subject_author TEXT,
    repo_id INTEGER,
    repo_name TEXT,                         -- owner/name
    repo_owner TEXT,
    repo_url TEXT,
    created_at TEXT,                        -- ISO 8601, UTC
    updated_at TEXT,
    last_read_at TEXT,
    fetched_at TEXT                         -- Local write time
);

-- Per-resource sync bookkeeping
CREATE TABLE IF NOT EXISTS sync_status (
    resource TEXT PRIMARY KEY,
    last_sync TEXT,
    error TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_notifications_archived ON notifications(archived);
CREATE INDEX IF NOT EXISTS idx_notifications_starred ON notifications(starred);
CREATE INDEX IF NOT EXISTS idx_notifications_updated ON notifications(updated_at);
"""

COLUMNS = (
    "id", "github_id", "reason", "unread", "archived", "starred", "muted",
    "url", "web_url", "subject_title", "subject_url", "subject_type",
    "subject_state", "subject_author", "repo_id", "repo_name", "repo_owner",
    "repo_url", "created_at", "updated_at", "last_read_at", "fetched_at",
)

INSERT_SQL = (
    f"INSERT INTO notifications ({', '.join(COLUMNS)}) "
    f"VALUES ({', '.join(':' + c for c in COLUMNS)})"
)

UPSERT_SQL = INSERT_SQL + " ON CONFLICT(id) DO UPDATE SET " + ", ".join(
    f"{c} = excluded.{c}" for c in COLUMNS if c != "id"
)

VIEW_WHERE = {
    "inbox": "archived = 0 AND muted = 0",
    "starred": "starred = 1",
    "archived": "archived = 1",
    "all": "1=1",
}

BOT_SQL = """
    subject_author IS NOT NULL AND subject_author != ''
    AND (lower(subject_author) LIKE '%[bot]%' OR lower(subject_author) LIKE '%-bot')
"""


class Store:
    """SQLite-backed notification cache."""

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db_path = db_path or get_db_path()
        self.clock = clock
        self._ensure_db()
        logger.info(f"Store initialized: {self.db_path}")

    def _ensure_db(self) -> None:
        """Ensure database exists and schema is current."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(SCHEMA)
            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,)
            )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # Writes

    def replace_all(self, notifications: Iterable[Notification]) -> int:
        """
        Drop every cached notification and insert the given set.

        One transaction: readers see either the old table or the new one.
        Also stamps the notifications sync status.
        """
        now = self.clock()
        # Pages can overlap while the remote inbox shifts; the last copy of an id wins.
        by_id = {n.id: n.to_row(fetched_at=now) for n in notifications}
        rows = list(by_id.values())

        with self._connect() as conn:
            conn.execute("DELETE FROM notifications")
            conn.executemany(INSERT_SQL, rows)
            self._write_sync_status(conn, NOTIFICATIONS, now, None)

        logger.info(f"Replaced cache with {len(rows)} notifications")
        return len(rows)

    def upsert(self, notifications: Iterable[Notification]) -> tuple[int, int]:
        """Insert new notifications and update existing ones. Returns (inserted, updated)."""
        now = self.clock()
        rows = [n.to_row(fetched_at=now) for n in notifications]
        if not rows:
            return 0, 0

        with self._connect() as conn:
            ids = [row["id"] for row in rows]
            placeholders = ", ".join("?" for _ in ids)
            existing = {
                r[0] for r in conn.execute(
                    f"SELECT id FROM notifications WHERE id IN ({placeholders})", ids
                )
            }
            conn.executemany(UPSERT_SQL, rows)
            self._write_sync_status(conn, NOTIFICATIONS, now, None)

        updated = len(existing)
        inserted = len({row["id"] for row in rows}) - updated
        logger.info(f"Upserted notifications: {inserted} inserted, {updated} updated")
        return inserted, updated

    def patch(self, notification_id: int, **fields: bool) -> bool:
        """
        Update status flags on one notification.

        Only unread/archived/starred/muted may be patched. Returns False if
        the id is not cached (a no-op, not an error).
        """
        if not fields:
            return False
        unknown = set(fields) - set(PATCHABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot patch fields: {', '.join(sorted(unknown))}")

        assignments = ", ".join(f"{name} = ?" for name in fields)
        params: list[Any] = [int(bool(v)) for v in fields.values()]
        params += [to_iso(self.clock()), notification_id]

        with self._connect() as conn:
            cursor = conn.execute(
                f"UPDATE notifications SET {assignments}, fetched_at = ? WHERE id = ?",
                params,
            )
            changed = cursor.rowcount > 0

        if changed:
            logger.debug(f"Patched notification {notification_id}: {fields}")
        else:
            logger.debug(f"Patch skipped, notification {notification_id} not cached")
        return changed

    # Reads

    def get(self, notification_id: int) -> Notification | None:
        """Get a single notification by id."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM notifications WHERE id = ?", (notification_id,)
            ).fetchone()
            if row:
                return Notification.from_row(dict(row))
        return None

    def load_view(self, view: str = "inbox") -> list[Notification]:
        """
        Load one of the tab views, most recently updated first.

        inbox: not archived and not muted
        starred: starred, archived or not
        archived: archived
        all: everything
        """
        if view not in VIEW_WHERE:
            raise ValueError(f"Unknown view: {view}")

        with self._connect() as conn:
            rows = conn.execute(f"""
                SELECT * FROM notifications
                WHERE {VIEW_WHERE[view]}
                ORDER BY updated_at DESC, id ASC
            """).fetchall()

        notifications = [Notification.from_row(dict(row)) for row in rows]
        logger.debug(f"Loaded {len(notifications)} notifications (view: {view})")
        return notifications

    def counts(self) -> ViewCounts:
        """Tab badge counts, in one query."""
        with self._connect() as conn:
            row = conn.execute("""
                SELECT
                    COALESCE(SUM(archived = 0 AND muted = 0), 0) AS inbox,
                    COALESCE(SUM(starred = 1), 0) AS starred,
                    COALESCE(SUM(archived = 1), 0) AS archived
                FROM notifications
            """).fetchone()
        return ViewCounts(inbox=row["inbox"], starred=row["starred"], archived=row["archived"])

    def facets(self) -> Facets:
        """Grouped counts over the inbox view, for the sidebar."""
        inbox = VIEW_WHERE["inbox"]

        def grouped(conn: sqlite3.Connection, column: str) -> dict[str, int]:
            rows = conn.execute(f"""
                SELECT {column} AS value, COUNT(*) AS n FROM notifications
                WHERE {inbox} AND {column} IS NOT NULL
                GROUP BY {column}
                ORDER BY n DESC, value ASC
            """).fetchall()
            return {row["value"]: row["n"] for row in rows}

        with self._connect() as conn:
            owners = grouped(conn, "repo_owner")
            repos = grouped(conn, "repo_name")
            types = grouped(conn, "subject_type")
            reasons = grouped(conn, "reason")
            states = grouped(conn, "subject_state")

            totals = conn.execute(f"""
                SELECT
                    COALESCE(SUM(unread = 1), 0) AS unread,
                    COALESCE(SUM(unread = 0), 0) AS read,
                    COALESCE(SUM({BOT_SQL}), 0) AS bots,
                    COUNT(*) AS total
                FROM notifications
                WHERE {inbox}
            """).fetchone()

            pairs = conn.execute(f"""
                SELECT DISTINCT repo_owner, repo_name FROM notifications
                WHERE {inbox} AND repo_owner IS NOT NULL AND repo_name IS NOT NULL
            """).fetchall()

        # Build owner -> short repo names tree
        repos_by_owner: dict[str, set[str]] = {}
        for row in pairs:
            short = row["repo_name"].split("/")[-1]
            repos_by_owner.setdefault(row["repo_owner"], set()).add(short)

        return Facets(
            owners=owners,
            repos=repos,
            repos_by_owner={owner: sorted(names) for owner, names in repos_by_owner.items()},
            types=types,
            reasons=reasons,
            states=states,
            unread=totals["unread"],
            read=totals["read"],
            bots=totals["bots"],
            humans=totals["total"] - totals["bots"],
        )

    # Sync bookkeeping

    def _write_sync_status(
        self,
        conn: sqlite3.Connection,
        resource: str,
        last_sync: datetime,
        error: str | None,
    ) -> None:
        conn.execute("""
            INSERT INTO sync_status (resource, last_sync, error) VALUES (?, ?, ?)
            ON CONFLICT(resource) DO UPDATE SET last_sync = excluded.last_sync, error = excluded.error
        """, (resource, to_iso(last_sync), error))

    def mark_synced(self, resource: str = NOTIFICATIONS, error: str | None = None) -> None:
        """Record a sync of `resource` at the current time."""
        with self._connect() as conn:
            self._write_sync_status(conn, resource, self.clock(), error)

    def mark_sync_error(self, resource: str, error: str) -> None:
        """Record a failed sync without refreshing `last_sync`."""
        with self._connect() as conn:
            conn.execute("""
                INSERT INTO sync_status (resource, last_sync, error) VALUES (?, NULL, ?)
                ON CONFLICT(resource) DO UPDATE SET error = excluded.error
            """, (resource, error))

    def sync_status(self, resource: str = NOTIFICATIONS) -> SyncStatus | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM sync_status WHERE resource = ?", (resource,)
            ).fetchone()
            if row:
                return SyncStatus(**dict(row))
        return None

    def last_sync_time(self, resource: str = NOTIFICATIONS) -> datetime | None:
        status = self.sync_status(resource)
        return status.last_sync if status else None

    def is_stale(self, resource: str = NOTIFICATIONS, ttl: timedelta = CACHE_TTL) -> bool:
        """True if `resource` was never synced or was synced more than `ttl` ago."""
        last_sync = self.last_sync_time(resource)
        if last_sync is None:
            return True
        return self.clock() - last_sync > ttl
