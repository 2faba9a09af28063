"""Shared data models — the contract between the store, the predictor, and adapters.

SessionStore produces Session, Segment and MetricSnapshot objects.
Predictor consumes them and produces Estimate objects (never persisted).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

ACTIVE = "active"
PAUSED = "paused"
COMPLETED = "completed"

SESSION_STATUSES = (ACTIVE, PAUSED, COMPLETED)

WORK_TYPES = ("feature", "bugfix", "refactor", "docs", "other")
PAUSE_REASONS = ("context_switch", "break", "end_of_day", "unknown")

# Fields of a metric snapshot that get their own column
METRIC_FIELDS = ("work_type", "complexity_rating", "files_touched", "lines_added", "lines_removed")


@dataclass
class Session:
    """One tracked unit of work, from creation to completion."""

    id: str
    feature_id: str
    description: str
    scope: str
    status: str  # active, paused, completed
    created_at: datetime
    updated_at: datetime
    work_type: str | None = None
    completed_at: datetime | None = None
    total_active_seconds: int = 0
    satisfaction: int | None = None
    notes: str | None = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat()
        d["updated_at"] = self.updated_at.isoformat()
        d["completed_at"] = self.completed_at.isoformat() if self.completed_at else None
        return d


@dataclass
class Segment:
    """A contiguous interval during which a session was actively worked.

    end_time is None only for the currently open segment.
    """

    session_id: str
    sequence: int  # 0-based within the session
    start_time: datetime
    end_time: datetime | None = None
    pause_reason: str | None = None
    start_trigger: str = "session_start"  # session_start, resume
    end_trigger: str | None = None  # pause reason or session_complete

    @property
    def duration_seconds(self) -> int | None:
        if self.end_time is None:
            return None
        return int((self.end_time - self.start_time).total_seconds())

    def to_dict(self) -> dict:
        d = asdict(self)
        d["start_time"] = self.start_time.isoformat()
        d["end_time"] = self.end_time.isoformat() if self.end_time else None
        d["duration_seconds"] = self.duration_seconds
        return d


@dataclass
class MetricSnapshot:
    """Append-only record of measurements attached to a session.

    Known fields are typed; anything else the caller records lands in extra.
    """

    session_id: str
    recorded_at: datetime
    work_type: str | None = None
    complexity_rating: int | None = None
    files_touched: int | None = None
    lines_added: int | None = None
    lines_removed: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["recorded_at"] = self.recorded_at.isoformat()
        return d


@dataclass
class SimilarSession:
    feature_id: str
    description: str
    duration_seconds: int


@dataclass
class Estimate:
    """Derived read model produced by Predictor.get_estimate."""

    confidence: str  # low, medium, high
    sample_count: int
    message: str
    similar_sessions: list[SimilarSession] = field(default_factory=list)
    min_seconds: int = 0
    max_seconds: int = 0

    def to_dict(self) -> dict:
        return asdict(self)
