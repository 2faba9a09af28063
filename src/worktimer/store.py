"""Session store — lifecycle transitions and queries over the SQLite file.

Every transition runs inside one BEGIN IMMEDIATE transaction while holding the
store's writer lock, so readers never see a half-applied transition (a session
marked paused with its segment still open, for instance). Reads open their own
connection and see the last committed state.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from worktimer.db import get_connection, init_db
from worktimer.errors import (
    InvalidInputError,
    InvalidTransitionError,
    SessionNotFoundError,
    StorageError,
)
from worktimer.models import (
    ACTIVE,
    COMPLETED,
    METRIC_FIELDS,
    PAUSED,
    MetricSnapshot,
    Segment,
    Session,
)

logger = logging.getLogger(__name__)

_INT_METRIC_FIELDS = ("complexity_rating", "files_touched", "lines_added", "lines_removed")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _require_int(name: str, value: Any) -> None:
    # bool is an int subclass but never a valid count or rating
    if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
        raise InvalidInputError(f"{name} must be an integer, got {type(value).__name__}")


def _require_str(name: str, value: Any, optional: bool = False) -> None:
    if value is None and optional:
        return
    if not isinstance(value, str):
        raise InvalidInputError(f"{name} must be a string, got {type(value).__name__}")


def _split_metrics(metrics: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    """Separate known metric fields from caller-defined extras.

    Known fields are type-checked; extras must be JSON-serialisable.
    """
    if not isinstance(metrics, dict):
        raise InvalidInputError(f"metrics must be a mapping, got {type(metrics).__name__}")
    known = {k: metrics[k] for k in METRIC_FIELDS if metrics.get(k) is not None}
    extra = {k: v for k, v in metrics.items() if k not in METRIC_FIELDS and v is not None}

    _require_str("work_type", known.get("work_type"), optional=True)
    for name in _INT_METRIC_FIELDS:
        _require_int(name, known.get(name))
    try:
        json.dumps(extra)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"extra metrics must be JSON-serialisable: {exc}") from exc
    return known, extra


class SessionStore:
    """Persistent store of work sessions, their segments and metric snapshots.

    Args:
        db_path: SQLite file to open (created if missing).
        clock: Returns the current time; defaults to timezone-aware UTC now.
    """

    def __init__(self, db_path: Path | str, clock: Callable[[], datetime] | None = None):
        self.db_path = Path(db_path).expanduser()
        self._clock = clock or _utcnow
        self._write_lock = threading.Lock()
        self._closed = False
        try:
            init_db(self.db_path)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Could not open session store at %s: %s", self.db_path, exc)
            raise StorageError(f"Could not open {self.db_path}: {exc}") from exc

    def __enter__(self) -> SessionStore:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        """Mark the store closed. All state is already committed to disk."""
        self._closed = True

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(self, write: bool) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StorageError("Session store is closed")
        try:
            con = get_connection(self.db_path)
        except sqlite3.Error as exc:
            raise StorageError(f"Could not open {self.db_path}: {exc}") from exc
        try:
            con.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            yield con
            con.execute("COMMIT")
        except (sqlite3.InterfaceError, sqlite3.ProgrammingError) as exc:
            # Unbindable parameter: the caller's value, not the database
            if con.in_transaction:
                con.execute("ROLLBACK")
            raise InvalidInputError(str(exc)) from exc
        except sqlite3.Error as exc:
            if con.in_transaction:
                con.execute("ROLLBACK")
            logger.error("Storage failure on %s: %s", self.db_path, exc)
            raise StorageError(str(exc)) from exc
        except BaseException:
            if con.in_transaction:
                con.execute("ROLLBACK")
            raise
        finally:
            con.close()

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            with self._transaction(write=True) as con:
                yield con

    def _read(self):
        return self._transaction(write=False)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_session(
        self,
        feature_id: str,
        description: str,
        scope: str,
        work_type: str | None = None,
    ) -> Session:
        """Insert a new active session together with its first open segment.

        When work_type is given, an initial metric snapshot recording it is
        appended as well.
        """
        _require_str("feature_id", feature_id)
        _require_str("description", description)
        _require_str("scope", scope)
        _require_str("work_type", work_type, optional=True)
        session_id = str(uuid.uuid4())
        with self._write() as con:
            now = self._clock().isoformat()
            con.execute(
                """INSERT INTO sessions (
                    id, feature_id, description, scope, work_type, status,
                    created_at, updated_at, total_active_seconds
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)""",
                (session_id, feature_id, description, scope, work_type, ACTIVE, now, now),
            )
            con.execute(
                """INSERT INTO segments (session_id, sequence, start_time, start_trigger)
                VALUES (?, 0, ?, 'session_start')""",
                (session_id, now),
            )
            if work_type:
                self._insert_metrics(con, session_id, {"work_type": work_type}, {})
            session = self._load(con, session_id)
        logger.info("Created session %s (%s) in %s", session_id, feature_id, scope)
        return session

    def pause_session(self, session_id: str, reason: str = "unknown") -> Session:
        """Close the open segment and mark the session paused."""
        _require_str("reason", reason)
        with self._write() as con:
            session = self._load(con, session_id)
            if session.status != ACTIVE:
                raise InvalidTransitionError(session_id, session.status, "pause")
            now = self._clock()
            self._close_open_segment(con, session_id, now, reason, pause_reason=reason)
            self._update_status(con, session_id, PAUSED, now)
            session = self._load(con, session_id)
        logger.info("Paused session %s (%s)", session_id, reason)
        return session

    def resume_session(self, session_id: str) -> Session:
        """Open a new segment with the next sequence and mark the session active."""
        with self._write() as con:
            session = self._load(con, session_id)
            if session.status != PAUSED:
                raise InvalidTransitionError(session_id, session.status, "resume")
            last = con.execute(
                """SELECT sequence, end_time FROM segments
                WHERE session_id = ? ORDER BY sequence DESC LIMIT 1""",
                (session_id,),
            ).fetchone()
            now = self._clock()
            start = now
            if last is not None and last["end_time"]:
                # Never start before the previous segment ended
                start = max(now, datetime.fromisoformat(last["end_time"]))
            next_seq = last["sequence"] + 1 if last is not None else 0
            con.execute(
                """INSERT INTO segments (session_id, sequence, start_time, start_trigger)
                VALUES (?, ?, ?, 'resume')""",
                (session_id, next_seq, start.isoformat()),
            )
            self._update_status(con, session_id, ACTIVE, now)
            session = self._load(con, session_id)
        logger.info("Resumed session %s (segment %d)", session_id, next_seq)
        return session

    def complete_session(
        self,
        session_id: str,
        satisfaction: int | None = None,
        notes: str | None = None,
        metrics: dict[str, Any] | None = None,
    ) -> Session:
        """Close any open segment and mark the session completed.

        If metrics are given they are appended as the final snapshot; a
        missing work_type is taken from the session.
        """
        _require_int("satisfaction", satisfaction)
        _require_str("notes", notes, optional=True)
        known, extra = _split_metrics(metrics) if metrics else ({}, {})
        with self._write() as con:
            session = self._load(con, session_id)
            if session.status == COMPLETED:
                raise InvalidTransitionError(session_id, session.status, "complete")
            now = self._clock()
            self._close_open_segment(con, session_id, now, "session_complete")
            total = self._closed_seconds(con, session_id)
            con.execute(
                """UPDATE sessions
                SET status = ?, completed_at = ?, updated_at = ?,
                    total_active_seconds = ?,
                    satisfaction = COALESCE(?, satisfaction),
                    notes = COALESCE(?, notes)
                WHERE id = ?""",
                (COMPLETED, now.isoformat(), now.isoformat(), total, satisfaction, notes, session_id),
            )
            if known or extra:
                if "work_type" not in known and session.work_type:
                    known["work_type"] = session.work_type
                self._insert_metrics(con, session_id, known, extra, recorded_at=now)
            session = self._load(con, session_id)
        logger.info(
            "Completed session %s after %d active seconds", session_id, session.total_active_seconds
        )
        return session

    def add_metrics(self, session_id: str, **fields: Any) -> MetricSnapshot:
        """Append a metric snapshot to a session that is not yet completed."""
        known, extra = _split_metrics(fields)
        with self._write() as con:
            session = self._load(con, session_id)
            if session.status == COMPLETED:
                raise InvalidTransitionError(session_id, session.status, "record metrics for")
            snapshot = self._insert_metrics(con, session_id, known, extra)
            con.execute(
                "UPDATE sessions SET updated_at = ? WHERE id = ?",
                (snapshot.recorded_at.isoformat(), session_id),
            )
        return snapshot

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Session:
        with self._read() as con:
            return self._load(con, session_id)

    def get_active_session(self, scope: str) -> Session | None:
        """Most recently touched active or paused session in a scope, if any."""
        with self._read() as con:
            row = con.execute(
                """SELECT * FROM sessions
                WHERE scope = ? AND status IN (?, ?)
                ORDER BY updated_at DESC, rowid DESC
                LIMIT 1""",
                (scope, ACTIVE, PAUSED),
            ).fetchone()
        return self._to_session(row) if row else None

    def list_sessions(
        self,
        scope: str | None = None,
        status: str | None = None,
        work_type: str | None = None,
        limit: int | None = None,
    ) -> list[Session]:
        """Sessions matching every given filter, newest first."""
        query = "SELECT * FROM sessions WHERE 1=1"
        params: list[Any] = []
        if scope is not None:
            query += " AND scope = ?"
            params.append(scope)
        if status is not None:
            query += " AND status = ?"
            params.append(status)
        if work_type is not None:
            query += " AND work_type = ?"
            params.append(work_type)
        query += " ORDER BY created_at DESC, rowid DESC"
        if limit is not None:
            _require_int("limit", limit)
            if limit < 0:
                raise InvalidInputError(f"limit must not be negative, got {limit}")
            query += " LIMIT ?"
            params.append(limit)

        with self._read() as con:
            rows = con.execute(query, params).fetchall()
        return [self._to_session(r) for r in rows]

    def get_segments(self, session_id: str) -> list[Segment]:
        """All segments of a session in sequence order."""
        with self._read() as con:
            self._load(con, session_id)
            rows = con.execute(
                "SELECT * FROM segments WHERE session_id = ? ORDER BY sequence",
                (session_id,),
            ).fetchall()
        return [self._to_segment(r) for r in rows]

    def get_metrics(self, session_id: str) -> list[MetricSnapshot]:
        """All metric snapshots in append order; the last one is authoritative."""
        with self._read() as con:
            self._load(con, session_id)
            rows = con.execute(
                "SELECT * FROM metric_snapshots WHERE session_id = ? ORDER BY id",
                (session_id,),
            ).fetchall()
        return [self._to_metrics(r) for r in rows]

    def get_final_metrics(self, session_id: str) -> MetricSnapshot | None:
        """The authoritative (most recently appended) snapshot, or None."""
        with self._read() as con:
            self._load(con, session_id)
            row = con.execute(
                """SELECT * FROM metric_snapshots WHERE session_id = ?
                ORDER BY id DESC LIMIT 1""",
                (session_id,),
            ).fetchone()
        return self._to_metrics(row) if row else None

    def get_duration_seconds(self, session_id: str) -> int:
        """Sum of closed segment durations. The open segment is not counted."""
        with self._read() as con:
            self._load(con, session_id)
            return self._closed_seconds(con, session_id)

    def elapsed_seconds(self, session: Session) -> int:
        """Closed duration plus the running time of the open segment, if any."""
        segments = self.get_segments(session.id)
        total = sum(s.duration_seconds for s in segments if s.end_time is not None)
        open_segments = [s for s in segments if s.end_time is None]
        if open_segments:
            running = self._clock() - open_segments[0].start_time
            total += max(0, int(running.total_seconds()))
        return total

    # ------------------------------------------------------------------
    # Internals (all take the connection of the enclosing transaction)
    # ------------------------------------------------------------------

    def _load(self, con: sqlite3.Connection, session_id: str) -> Session:
        row = con.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        return self._to_session(row)

    def _close_open_segment(
        self,
        con: sqlite3.Connection,
        session_id: str,
        now: datetime,
        end_trigger: str,
        pause_reason: str | None = None,
    ) -> None:
        row = con.execute(
            "SELECT id, start_time FROM segments WHERE session_id = ? AND end_time IS NULL",
            (session_id,),
        ).fetchone()
        if row is None:
            return
        end = max(now, datetime.fromisoformat(row["start_time"]))
        con.execute(
            """UPDATE segments SET end_time = ?, pause_reason = ?, end_trigger = ?
            WHERE id = ?""",
            (end.isoformat(), pause_reason, end_trigger, row["id"]),
        )

    def _closed_seconds(self, con: sqlite3.Connection, session_id: str) -> int:
        rows = con.execute(
            """SELECT start_time, end_time FROM segments
            WHERE session_id = ? AND end_time IS NOT NULL""",
            (session_id,),
        ).fetchall()
        return sum(
            int(
                (
                    datetime.fromisoformat(r["end_time"]) - datetime.fromisoformat(r["start_time"])
                ).total_seconds()
            )
            for r in rows
        )

    def _update_status(
        self, con: sqlite3.Connection, session_id: str, status: str, now: datetime
    ) -> None:
        con.execute(
            """UPDATE sessions SET status = ?, total_active_seconds = ?, updated_at = ?
            WHERE id = ?""",
            (status, self._closed_seconds(con, session_id), now.isoformat(), session_id),
        )

    def _insert_metrics(
        self,
        con: sqlite3.Connection,
        session_id: str,
        known: dict[str, Any],
        extra: dict[str, Any],
        recorded_at: datetime | None = None,
    ) -> MetricSnapshot:
        snapshot = MetricSnapshot(
            session_id=session_id,
            recorded_at=recorded_at or self._clock(),
            extra=extra,
            **known,
        )
        con.execute(
            """INSERT INTO metric_snapshots (
                session_id, recorded_at, work_type, complexity_rating,
                files_touched, lines_added, lines_removed, extra
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                session_id,
                snapshot.recorded_at.isoformat(),
                snapshot.work_type,
                snapshot.complexity_rating,
                snapshot.files_touched,
                snapshot.lines_added,
                snapshot.lines_removed,
                json.dumps(extra) if extra else None,
            ),
        )
        return snapshot

    # ------------------------------------------------------------------
    # Row conversion
    # ------------------------------------------------------------------

    @staticmethod
    def _to_session(row: sqlite3.Row) -> Session:
        return Session(
            id=row["id"],
            feature_id=row["feature_id"],
            description=row["description"],
            scope=row["scope"],
            status=row["status"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            work_type=row["work_type"],
            completed_at=_parse_ts(row["completed_at"]),
            total_active_seconds=row["total_active_seconds"],
            satisfaction=row["satisfaction"],
            notes=row["notes"],
        )

    @staticmethod
    def _to_segment(row: sqlite3.Row) -> Segment:
        return Segment(
            session_id=row["session_id"],
            sequence=row["sequence"],
            start_time=datetime.fromisoformat(row["start_time"]),
            end_time=_parse_ts(row["end_time"]),
            pause_reason=row["pause_reason"],
            start_trigger=row["start_trigger"],
            end_trigger=row["end_trigger"],
        )

    @staticmethod
    def _to_metrics(row: sqlite3.Row) -> MetricSnapshot:
        return MetricSnapshot(
            session_id=row["session_id"],
            recorded_at=datetime.fromisoformat(row["recorded_at"]),
            work_type=row["work_type"],
            complexity_rating=row["complexity_rating"],
            files_touched=row["files_touched"],
            lines_added=row["lines_added"],
            lines_removed=row["lines_removed"],
            extra=json.loads(row["extra"]) if row["extra"] else {},
        )
