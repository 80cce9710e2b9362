"""
SQLite store for sessions, the tag catalog and session-tag associations.

Tag filters (tag_filters/) read through SqliteStore, a thin wrapper that
exposes the query_one/query_all interface over a connection.

DB location: data/tags.db, overridable with SESSION_TAGS_DB_PATH
(WAL mode for concurrent reads during writes).
"""

from __future__ import annotations

import logging
import os
import sqlite3
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from tag_filters import TagStore, SQLITE

logger = logging.getLogger("session-tags.db")

DB_PATH = Path(os.getenv("SESSION_TAGS_DB_PATH", str(Path(__file__).parent / "data" / "tags.db")))

DEFAULT_TAG_COLOR = "#6b7280"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------
_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id         TEXT PRIMARY KEY,
    project    TEXT NOT NULL DEFAULT '',
    title      TEXT,
    started_at TEXT,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS tags (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    name       TEXT NOT NULL UNIQUE COLLATE NOCASE,
    color      TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS session_tags (
    id         INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    tag_id     INTEGER NOT NULL,
    added_at   TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
    added_by   TEXT DEFAULT 'user',
    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE,
    FOREIGN KEY (tag_id) REFERENCES tags(id) ON DELETE CASCADE,
    UNIQUE(session_id, tag_id)
);

CREATE INDEX IF NOT EXISTS idx_session_tags_session ON session_tags(session_id);
CREATE INDEX IF NOT EXISTS idx_session_tags_tag ON session_tags(tag_id);
"""


def get_connection(db_path: Path | None = None) -> sqlite3.Connection:
    """Get a SQLite connection with WAL mode, foreign keys and row factory."""
    path = db_path or DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=10)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db() -> sqlite3.Connection:
    """Create schema and return connection."""
    conn = get_connection()
    conn.executescript(_SCHEMA)
    conn.commit()
    return conn


class SqliteStore(TagStore):
    """TagStore over an open sqlite3 connection."""

    dialect = SQLITE

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        return self.conn.execute(sql, tuple(params)).fetchone()

    def query_all(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        return self.conn.execute(sql, tuple(params)).fetchall()


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
def upsert_session(
    conn: sqlite3.Connection,
    session_id: str,
    project: str = "",
    title: str | None = None,
    started_at: str | None = None,
) -> None:
    """Register a session (or update its display columns)."""
    conn.execute(
        """INSERT INTO sessions (id, project, title, started_at, created_at)
           VALUES (?, ?, ?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET
               project=excluded.project, title=excluded.title,
               started_at=excluded.started_at""",
        (session_id, project, title, started_at, datetime.now(timezone.utc).isoformat()),
    )


def get_session_list(
    conn: sqlite3.Connection, session_ids: Iterable[str] | None = None
) -> list[dict[str, Any]]:
    """Get session summaries, newest first, optionally limited to ``session_ids``."""
    where = ""
    params: tuple[str, ...] = ()
    if session_ids is not None:
        params = tuple(dict.fromkeys(session_ids))
        if not params:
            return []
        where = f"WHERE id IN ({', '.join('?' * len(params))})"

    rows = conn.execute(
        f"""SELECT id, project, title, started_at
            FROM sessions
            {where}
            ORDER BY started_at DESC, id""",
        params,
    ).fetchall()
    return [dict(row) for row in rows]


def get_filtered_sessions(
    conn: sqlite3.Connection, where_clause: str, params: Sequence[Any] = ()
) -> list[dict[str, Any]]:
    """Get session summaries matching a compiled tag filter, newest first."""
    rows = conn.execute(
        f"""SELECT s.id, s.project, s.title, s.started_at
            FROM sessions s
            {where_clause}
            ORDER BY s.started_at DESC, s.id""",
        tuple(params),
    ).fetchall()
    return [dict(row) for row in rows]


def get_session_count(conn: sqlite3.Connection) -> int:
    """Return total number of sessions."""
    row = conn.execute("SELECT COUNT(*) as cnt FROM sessions").fetchone()
    return row["cnt"] if row else 0


# ---------------------------------------------------------------------------
# Tag catalog
# ---------------------------------------------------------------------------
def get_all_tags(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    rows = conn.execute("SELECT id, name, color FROM tags ORDER BY name").fetchall()
    return [dict(row) for row in rows]


def get_tag(conn: sqlite3.Connection, tag_id: int) -> dict[str, Any] | None:
    row = conn.execute("SELECT id, name, color FROM tags WHERE id = ?", (tag_id,)).fetchone()
    return dict(row) if row else None


def get_tag_by_name(conn: sqlite3.Connection, name: str) -> dict[str, Any] | None:
    """Case-insensitive lookup by tag name."""
    row = conn.execute(
        "SELECT id, name, color FROM tags WHERE name = ? COLLATE NOCASE", (name,)
    ).fetchone()
    return dict(row) if row else None


def lookup_tag(conn: sqlite3.Connection, name_or_id: str) -> dict[str, Any] | None:
    """Find a tag by name, or by id when given a plain number."""
    if name_or_id.isdigit():
        tag = get_tag(conn, int(name_or_id))
        if tag:
            return tag
    return get_tag_by_name(conn, name_or_id)


def create_tag(conn: sqlite3.Connection, name: str, color: str = DEFAULT_TAG_COLOR) -> bool:
    """Create a tag. Returns False if a tag with that name already exists."""
    try:
        cur = conn.execute(
            "INSERT OR IGNORE INTO tags (name, color) VALUES (?, ?)", (name, color)
        )
    except sqlite3.Error:
        logger.error("Failed to create tag name=%r color=%r", name, color, exc_info=True)
        raise
    conn.commit()
    return cur.rowcount > 0


def delete_tag(conn: sqlite3.Connection, tag_id: int) -> None:
    conn.execute("DELETE FROM session_tags WHERE tag_id = ?", (tag_id,))
    conn.execute("DELETE FROM tags WHERE id = ?", (tag_id,))
    conn.commit()


# ---------------------------------------------------------------------------
# Session-tag associations
# ---------------------------------------------------------------------------
def add_tag_to_session(
    conn: sqlite3.Connection, session_id: str, tag_id: int, added_by: str = "user"
) -> bool:
    """Attach a tag to a session. Returns False if it was already attached."""
    try:
        cur = conn.execute(
            """INSERT OR IGNORE INTO session_tags (session_id, tag_id, added_by)
               VALUES (?, ?, ?)""",
            (session_id, tag_id, added_by),
        )
    except sqlite3.Error:
        logger.error(
            "Failed to add tag to session session_id=%r tag_id=%r",
            session_id, tag_id, exc_info=True,
        )
        raise
    conn.commit()
    return cur.rowcount > 0


def remove_tag_from_session(conn: sqlite3.Connection, session_id: str, tag_id: int) -> None:
    conn.execute(
        "DELETE FROM session_tags WHERE session_id = ? AND tag_id = ?", (session_id, tag_id)
    )
    conn.commit()


def get_session_tags(conn: sqlite3.Connection, session_id: str) -> list[dict[str, Any]]:
    rows = conn.execute(
        """SELECT t.id, t.name, t.color FROM tags t
           JOIN session_tags st ON t.id = st.tag_id
           WHERE st.session_id = ?
           ORDER BY t.name""",
        (session_id,),
    ).fetchall()
    return [dict(row) for row in rows]
