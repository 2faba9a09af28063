"""SQLite database layer — schema creation, migrations, and connections."""

from __future__ import annotations

import sqlite3
from pathlib import Path

_SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    feature_id TEXT NOT NULL,
    description TEXT NOT NULL,
    scope TEXT NOT NULL,
    work_type TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    completed_at TEXT,
    total_active_seconds INTEGER NOT NULL DEFAULT 0,
    satisfaction INTEGER,
    notes TEXT
);

CREATE TABLE IF NOT EXISTS segments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    sequence INTEGER NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT,
    pause_reason TEXT,
    start_trigger TEXT NOT NULL DEFAULT 'session_start',
    end_trigger TEXT,
    UNIQUE (session_id, sequence),
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE TABLE IF NOT EXISTS metric_snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    work_type TEXT,
    complexity_rating INTEGER,
    files_touched INTEGER,
    lines_added INTEGER,
    lines_removed INTEGER,
    extra TEXT,
    FOREIGN KEY (session_id) REFERENCES sessions(id)
);

CREATE INDEX IF NOT EXISTS idx_sessions_scope ON sessions(scope);
CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
CREATE INDEX IF NOT EXISTS idx_segments_session ON segments(session_id);
CREATE INDEX IF NOT EXISTS idx_metrics_session ON metric_snapshots(session_id);
"""


def init_db(db_path: Path) -> None:
    """Create tables if they don't exist, then run any needed migrations.

    Also switches the file to WAL so readers never block on the writer.
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(db_path)
    try:
        con.execute("PRAGMA journal_mode=WAL")
        con.executescript(_SCHEMA)
        con.commit()
    finally:
        con.close()
    _migrate_db(db_path)


def _migrate_db(db_path: Path) -> None:
    """Add columns that may be missing from older databases."""
    con = sqlite3.connect(db_path)
    try:
        cols = {row[1] for row in con.execute("PRAGMA table_info(segments)").fetchall()}
        if "start_trigger" not in cols:
            con.execute(
                "ALTER TABLE segments ADD COLUMN start_trigger TEXT NOT NULL DEFAULT 'session_start'"
            )
        if "end_trigger" not in cols:
            con.execute("ALTER TABLE segments ADD COLUMN end_trigger TEXT")
        cols = {row[1] for row in con.execute("PRAGMA table_info(metric_snapshots)").fetchall()}
        if "lines_removed" not in cols:
            con.execute("ALTER TABLE metric_snapshots ADD COLUMN lines_removed INTEGER")
        if "extra" not in cols:
            con.execute("ALTER TABLE metric_snapshots ADD COLUMN extra TEXT")
        con.commit()
    finally:
        con.close()


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Get a connection with row_factory = sqlite3.Row.

    isolation_level is None so callers manage transactions with explicit BEGIN.
    """
    con = sqlite3.connect(db_path, timeout=30, isolation_level=None)
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys = ON")
    return con
