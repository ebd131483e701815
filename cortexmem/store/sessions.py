from __future__ import annotations

import datetime as dt
import secrets
import string
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .. import db
from .utils import now_iso, parse_iso8601

if TYPE_CHECKING:
    from ._store import FragmentStore

MAX_SESSIONS = 100

_BASE36 = string.digits + string.ascii_lowercase


@dataclass
class AutoSaveState:
    last_auto_save_at: str | None = None
    last_auto_save_context: int = 0
    transcript_path: str | None = None
    has_saved_this_session: bool = False
    has_reached_warning_threshold: bool = False
    warning_context_percent: int = 0


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_session_key() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(6))
    return f"{_base36(int(time.time() * 1000))}-{suffix}"


def _session_dict(store: FragmentStore, row: Any) -> dict[str, Any]:
    data = dict(row)
    data["restoration_used"] = bool(data["restoration_used"])
    points = store.conn.execute(
        """
        SELECT created_at, context_percent, fragments_saved
        FROM save_points WHERE session_id = ? ORDER BY id
        """,
        (data["id"],),
    ).fetchall()
    data["save_points"] = db.rows_to_dicts(points)
    return data


def _active_row(store: FragmentStore) -> Any:
    return store.conn.execute(
        "SELECT * FROM sessions WHERE ended_at IS NULL ORDER BY id DESC LIMIT 1"
    ).fetchone()


def start_session(store: FragmentStore, project_id: str | None) -> dict[str, Any]:
    end_session(store)
    cur = store.conn.execute(
        "INSERT INTO sessions(session_key, project_id, started_at) VALUES (?, ?, ?)",
        (generate_session_key(), project_id, now_iso()),
    )
    row = store.conn.execute("SELECT * FROM sessions WHERE id = ?", (cur.lastrowid,)).fetchone()
    return _session_dict(store, row)


def end_session(store: FragmentStore) -> dict[str, Any] | None:
    row = _active_row(store)
    if row is None:
        return None
    # Only one session may be open; close any stragglers as well.
    store.conn.execute("UPDATE sessions SET ended_at = ? WHERE ended_at IS NULL", (now_iso(),))
    prune_sessions(store)
    ended = store.conn.execute("SELECT * FROM sessions WHERE id = ?", (row["id"],)).fetchone()
    return _session_dict(store, ended) if ended else None


def active_session(store: FragmentStore) -> dict[str, Any] | None:
    row = _active_row(store)
    return _session_dict(store, row) if row else None


def current_session(store: FragmentStore, project_id: str | None) -> dict[str, Any]:
    session = active_session(store)
    if session is None:
        return start_session(store, project_id)
    return session


def prune_sessions(store: FragmentStore, keep: int = MAX_SESSIONS) -> int:
    cur = store.conn.execute(
        """
        DELETE FROM sessions
        WHERE ended_at IS NOT NULL
          AND id NOT IN (
            SELECT id FROM sessions WHERE ended_at IS NOT NULL ORDER BY id DESC LIMIT ?
          )
        """,
        (keep,),
    )
    return cur.rowcount


def update_context_percent(store: FragmentStore, percent: int) -> None:
    store.conn.execute(
        """
        UPDATE sessions SET peak_context_percent = ?
        WHERE ended_at IS NULL AND peak_context_percent < ?
        """,
        (percent, percent),
    )


def record_save_point(store: FragmentStore, context_percent: int, fragments_saved: int) -> None:
    row = _active_row(store)
    if row is None:
        return
    store.conn.execute(
        """
        INSERT INTO save_points(session_id, created_at, context_percent, fragments_saved)
        VALUES (?, ?, ?, ?)
        """,
        (row["id"], now_iso(), context_percent, fragments_saved),
    )
    store.conn.execute(
        "UPDATE sessions SET fragments_created = fragments_created + ? WHERE id = ?",
        (fragments_saved, row["id"]),
    )


def _bump(store: FragmentStore, column: str) -> None:
    store.conn.execute(f"UPDATE sessions SET {column} = {column} + 1 WHERE ended_at IS NULL")


def record_clear(store: FragmentStore) -> None:
    _bump(store, "clear_count")


def record_recall(store: FragmentStore) -> None:
    _bump(store, "recall_count")


def record_restoration_used(store: FragmentStore) -> None:
    store.conn.execute("UPDATE sessions SET restoration_used = 1 WHERE ended_at IS NULL")


def analytics_summary(store: FragmentStore) -> dict[str, Any]:
    """Rollup over ended sessions."""
    sessions = [
        _session_dict(store, row)
        for row in store.conn.execute(
            "SELECT * FROM sessions WHERE ended_at IS NOT NULL ORDER BY id"
        ).fetchall()
    ]
    week_ago = dt.datetime.now(dt.UTC) - dt.timedelta(days=7)
    this_week = []
    for session in sessions:
        started = parse_iso8601(str(session["started_at"]))
        if started is not None and started >= week_ago:
            this_week.append(session)
    save_points = [point for session in sessions for point in session["save_points"]]
    average = (
        sum(point["context_percent"] for point in save_points) / len(save_points)
        if save_points
        else 0.0
    )
    return {
        "total_sessions": len(sessions),
        "total_fragments": sum(s["fragments_created"] for s in sessions),
        "average_context_at_save": average,
        "sessions_prolonged": sum(
            1 for s in sessions if s["save_points"] and s["clear_count"] > 0
        ),
        "this_week": {
            "sessions": len(this_week),
            "fragments_created": sum(s["fragments_created"] for s in this_week),
            "recalls_used": sum(s["recall_count"] for s in this_week),
        },
    }


def recent_project_sessions(
    store: FragmentStore, project_id: str | None, limit: int = 5
) -> list[dict[str, Any]]:
    rows = store.conn.execute(
        """
        SELECT * FROM sessions
        WHERE ended_at IS NOT NULL AND project_id IS ?
        ORDER BY id DESC
        LIMIT ?
        """,
        (project_id, limit),
    ).fetchall()
    return [_session_dict(store, row) for row in reversed(rows)]


def load_auto_save_state(store: FragmentStore) -> AutoSaveState:
    row = store.conn.execute("SELECT * FROM automation_state WHERE id = 1").fetchone()
    if row is None:
        return AutoSaveState()
    return AutoSaveState(
        last_auto_save_at=row["last_auto_save_at"],
        last_auto_save_context=int(row["last_auto_save_context"]),
        transcript_path=row["transcript_path"],
        has_saved_this_session=bool(row["has_saved_this_session"]),
        has_reached_warning_threshold=bool(row["has_reached_warning_threshold"]),
        warning_context_percent=int(row["warning_context_percent"]),
    )


def save_auto_save_state(store: FragmentStore, state: AutoSaveState) -> None:
    store.conn.execute(
        """
        INSERT INTO automation_state(
            id, last_auto_save_at, last_auto_save_context, transcript_path,
            has_saved_this_session, has_reached_warning_threshold, warning_context_percent
        ) VALUES (1, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            last_auto_save_at = excluded.last_auto_save_at,
            last_auto_save_context = excluded.last_auto_save_context,
            transcript_path = excluded.transcript_path,
            has_saved_this_session = excluded.has_saved_this_session,
            has_reached_warning_threshold = excluded.has_reached_warning_threshold,
            warning_context_percent = excluded.warning_context_percent
        """,
        (
            state.last_auto_save_at,
            state.last_auto_save_context,
            state.transcript_path,
            int(state.has_saved_this_session),
            int(state.has_reached_warning_threshold),
            state.warning_context_percent,
        ),
    )


def upsert_session_summary(
    store: FragmentStore,
    *,
    project_id: str | None,
    source_session: str,
    summary: str,
    key_decisions: list[str],
    key_outcomes: list[str],
    blockers: list[str],
    fragments_saved: int,
) -> None:
    # NULL never conflicts under UNIQUE, so global summaries are replaced by hand.
    store.conn.execute(
        "DELETE FROM session_summaries WHERE project_id IS ? AND source_session = ?",
        (project_id, source_session),
    )
    store.conn.execute(
        """
        INSERT INTO session_summaries(
            project_id, source_session, summary, key_decisions, key_outcomes,
            blockers, fragments_saved, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            project_id,
            source_session,
            summary,
            db.to_json(key_decisions),
            db.to_json(key_outcomes),
            db.to_json(blockers),
            fragments_saved,
            now_iso(),
        ),
    )


def latest_session_summary(store: FragmentStore, project_id: str | None) -> dict[str, Any] | None:
    row = store.conn.execute(
        """
        SELECT * FROM session_summaries
        WHERE project_id IS ?
        ORDER BY created_at DESC, id DESC
        LIMIT 1
        """,
        (project_id,),
    ).fetchone()
    if row is None:
        return None
    data = dict(row)
    for key in ("key_decisions", "key_outcomes", "blockers"):
        data[key] = db.from_json_list(data[key])
    return data
