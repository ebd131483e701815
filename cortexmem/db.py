from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import sqlite_vec

REQUIRED_TABLES = (
    "fragments",
    "sessions",
    "save_points",
    "automation_state",
    "session_summaries",
)


def sqlite_vec_version(conn: sqlite3.Connection) -> str | None:
    try:
        row = conn.execute("select vec_version()").fetchone()
    except sqlite3.Error:
        return None
    if not row or row[0] is None:
        return None
    return str(row[0])


def _load_sqlite_vec(conn: sqlite3.Connection) -> None:
    try:
        conn.enable_load_extension(True)
    except AttributeError as exc:
        raise RuntimeError(
            "sqlite-vec requires a Python SQLite build that supports extension loading. "
            "Install a Python build with enable_load_extension (mise/homebrew) and try again."
        ) from exc
    try:
        sqlite_vec.load(conn)
        if sqlite_vec_version(conn) is None:
            raise RuntimeError("sqlite-vec loaded but version check failed")
    except Exception as exc:  # pragma: no cover
        message = (
            "Failed to load sqlite-vec extension. "
            "Vector recall requires sqlite-vec; see README for platform-specific setup."
        )
        if "ELFCLASS32" in str(exc):
            message = (
                "Failed to load sqlite-vec extension (ELFCLASS32). "
                "On Linux aarch64, PyPI may ship a 32-bit vec0.so; replace it with the 64-bit "
                "aarch64 loadable."
            )
        raise RuntimeError(message) from exc
    finally:
        try:
            conn.enable_load_extension(False)
        except AttributeError:
            pass


def connect(db_path: Path | str) -> sqlite3.Connection:
    path = Path(db_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    # Writes are batched into one transaction per invocation; commit is explicit.
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        conn.execute("PRAGMA journal_mode = WAL")
    except sqlite3.OperationalError:
        conn.execute("PRAGMA journal_mode = DELETE")
    conn.execute("PRAGMA synchronous = NORMAL")
    _load_sqlite_vec(conn)
    return conn


def initialize_schema(conn: sqlite3.Connection, *, enable_fts: bool = True) -> bool:
    """Create tables if missing. Returns whether the FTS5 index is usable."""
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS fragments (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            content TEXT NOT NULL,
            content_hash TEXT NOT NULL UNIQUE,
            embedding BLOB NOT NULL,
            project_id TEXT,
            source_session TEXT NOT NULL,
            timestamp TEXT NOT NULL,
            created_at TEXT NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_fragments_project ON fragments(project_id);
        CREATE INDEX IF NOT EXISTS idx_fragments_timestamp ON fragments(timestamp DESC);

        CREATE TABLE IF NOT EXISTS sessions (
            id INTEGER PRIMARY KEY,
            session_key TEXT NOT NULL UNIQUE,
            project_id TEXT,
            started_at TEXT NOT NULL,
            ended_at TEXT,
            peak_context_percent INTEGER NOT NULL DEFAULT 0,
            clear_count INTEGER NOT NULL DEFAULT 0,
            recall_count INTEGER NOT NULL DEFAULT 0,
            fragments_created INTEGER NOT NULL DEFAULT 0,
            restoration_used INTEGER NOT NULL DEFAULT 0
        );
        CREATE INDEX IF NOT EXISTS idx_sessions_active ON sessions(ended_at);
        CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_id);

        CREATE TABLE IF NOT EXISTS save_points (
            id INTEGER PRIMARY KEY,
            session_id INTEGER NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
            created_at TEXT NOT NULL,
            context_percent INTEGER NOT NULL,
            fragments_saved INTEGER NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_save_points_session ON save_points(session_id);

        CREATE TABLE IF NOT EXISTS automation_state (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            last_auto_save_at TEXT,
            last_auto_save_context INTEGER NOT NULL DEFAULT 0,
            transcript_path TEXT,
            has_saved_this_session INTEGER NOT NULL DEFAULT 0,
            has_reached_warning_threshold INTEGER NOT NULL DEFAULT 0,
            warning_context_percent INTEGER NOT NULL DEFAULT 0
        );

        CREATE TABLE IF NOT EXISTS session_summaries (
            id INTEGER PRIMARY KEY,
            project_id TEXT,
            source_session TEXT NOT NULL,
            summary TEXT NOT NULL,
            key_decisions TEXT,
            key_outcomes TEXT,
            blockers TEXT,
            fragments_saved INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            UNIQUE(project_id, source_session)
        );
        """
    )
    fts_ready = False
    if enable_fts:
        fts_ready = _initialize_fts(conn)
    conn.commit()
    return fts_ready


def _initialize_fts(conn: sqlite3.Connection) -> bool:
    try:
        conn.executescript(
            """
            CREATE VIRTUAL TABLE IF NOT EXISTS fragments_fts USING fts5(
                content,
                content='fragments',
                content_rowid='id'
            );

            CREATE TRIGGER IF NOT EXISTS fragments_ai AFTER INSERT ON fragments BEGIN
                INSERT INTO fragments_fts(rowid, content) VALUES (new.id, new.content);
            END;

            CREATE TRIGGER IF NOT EXISTS fragments_ad AFTER DELETE ON fragments BEGIN
                INSERT INTO fragments_fts(fragments_fts, rowid, content)
                VALUES('delete', old.id, old.content);
            END;

            CREATE TRIGGER IF NOT EXISTS fragments_au AFTER UPDATE ON fragments BEGIN
                INSERT INTO fragments_fts(fragments_fts, rowid, content)
                VALUES('delete', old.id, old.content);
                INSERT INTO fragments_fts(rowid, content) VALUES (new.id, new.content);
            END;
            """
        )
    except sqlite3.OperationalError:
        return False
    return has_table(conn, "fragments_fts")


def has_table(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE name = ? AND type IN ('table', 'view') LIMIT 1",
        (name,),
    ).fetchone()
    return row is not None


def list_tables(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
    ).fetchall()
    return [str(row["name"]) for row in rows]


def database_size(conn: sqlite3.Connection) -> int:
    page_count = conn.execute("PRAGMA page_count").fetchone()[0]
    page_size = conn.execute("PRAGMA page_size").fetchone()[0]
    return int(page_count) * int(page_size)


def to_json(data: Any) -> str:
    if data is None:
        payload: Any = []
    else:
        payload = data
    return json.dumps(payload, ensure_ascii=False)


def from_json_list(text: str | None) -> list[str]:
    if not text:
        return []
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return []
    if not isinstance(data, list):
        return []
    return [str(item) for item in data]


def rows_to_dicts(rows: Iterable[sqlite3.Row]) -> list[dict[str, Any]]:
    return [dict(r) for r in rows]
