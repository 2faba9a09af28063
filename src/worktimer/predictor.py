"""Duration predictor — estimates how long work will take from completed sessions.

Read-only: every call queries the store afresh and keeps no state between calls.
Missing history never raises; it only lowers the confidence tier.
"""

from __future__ import annotations

import logging
import math
from statistics import median, pstdev

from worktimer.models import COMPLETED, Estimate, MetricSnapshot, Session, SimilarSession
from worktimer.store import SessionStore

logger = logging.getLogger(__name__)

MEDIUM_CONFIDENCE_SAMPLES = 5
HIGH_CONFIDENCE_SAMPLES = 15
SIMILAR_SESSION_LIMIT = 3

NEW_TERRITORY_MESSAGE = "Hard to say, this is new territory for us."


def get_confidence(sample_count: int) -> str:
    """Map a sample count onto the low / medium / high confidence tiers."""
    if sample_count < MEDIUM_CONFIDENCE_SAMPLES:
        return "low"
    if sample_count < HIGH_CONFIDENCE_SAMPLES:
        return "medium"
    return "high"


def format_duration(seconds: float) -> str:
    """Human-readable duration: '45 seconds', '12 minutes', '2 hours', '1h 30m'."""
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds} seconds"
    minutes = int(math.floor(seconds / 60 + 0.5))
    if minutes == 1:
        return "1 minute"
    if minutes < 60:
        return f"{minutes} minutes"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} hour{'s' if hours > 1 else ''}"
    return f"{hours}h {remaining}m"


def _percentile(sorted_values: list[int], fraction: float) -> int:
    return sorted_values[int(len(sorted_values) * fraction)]


def _matches(
    snapshot: MetricSnapshot | None,
    work_type: str | None,
    complexity_rating: int | None,
) -> bool:
    if work_type is not None:
        if snapshot is None or snapshot.work_type != work_type:
            return False
    if complexity_rating is not None:
        if snapshot is None or snapshot.complexity_rating is None:
            return False
        if abs(snapshot.complexity_rating - complexity_rating) > 1:
            return False
    return True


class Predictor:
    """Confidence-tiered duration estimates backed by a SessionStore."""

    def __init__(self, store: SessionStore):
        self.store = store

    def similar_sessions(
        self,
        work_type: str | None = None,
        complexity_rating: int | None = None,
    ) -> list[Session]:
        """Completed sessions whose final metrics match the filter, most recent first."""
        completed = self.store.list_sessions(status=COMPLETED)
        if work_type is None and complexity_rating is None:
            matched = completed
        else:
            matched = [
                s
                for s in completed
                if _matches(self.store.get_final_metrics(s.id), work_type, complexity_rating)
            ]
        # Stable sort keeps the store's newest-created-first order for ties
        return sorted(matched, key=lambda s: s.completed_at, reverse=True)

    def get_estimate(
        self,
        work_type: str | None = None,
        complexity_rating: int | None = None,
    ) -> Estimate:
        """Estimate the duration of work like the given filter describes.

        The central tendency reported for medium and high confidence is the
        median active duration of the matching sessions.
        """
        sessions = self.similar_sessions(work_type, complexity_rating)
        sample_count = len(sessions)
        confidence = get_confidence(sample_count)
        similar = [
            SimilarSession(
                feature_id=s.feature_id,
                description=s.description,
                duration_seconds=s.total_active_seconds,
            )
            for s in sessions[:SIMILAR_SESSION_LIMIT]
        ]
        logger.debug(
            "Estimate for work_type=%s complexity=%s: %d samples (%s)",
            work_type,
            complexity_rating,
            sample_count,
            confidence,
        )

        if sample_count == 0:
            return Estimate(
                confidence=confidence,
                sample_count=0,
                message=NEW_TERRITORY_MESSAGE,
                similar_sessions=[],
            )

        durations = sorted(s.total_active_seconds for s in sessions)
        mid = median(durations)

        if confidence == "low":
            low, high = durations[0], durations[-1]
            message = (
                f"{NEW_TERRITORY_MESSAGE} Similar work has taken anywhere from "
                f"{format_duration(low)} to {format_duration(high)}."
            )
        elif confidence == "medium":
            low, high = _percentile(durations, 0.25), _percentile(durations, 0.75)
            message = (
                f"Based on {sample_count} similar sessions, probably "
                f"{format_duration(low)} to {format_duration(high)}."
            )
        else:
            spread = pstdev(durations, mu=mid)
            low, high = max(0, mid - spread), mid + spread
            message = (
                f"Based on {sample_count} similar sessions, this usually takes about "
                f"{format_duration(mid)}."
            )

        return Estimate(
            confidence=confidence,
            sample_count=sample_count,
            message=message,
            similar_sessions=similar,
            min_seconds=int(round(low)),
            max_seconds=int(round(high)),
        )

    def compare(self, duration_seconds: int, work_type: str | None = None) -> str | None:
        """Compare a finished duration against the estimate for similar work.

        Returns None when there is no usable history to compare against.
        """
        estimate = self.get_estimate(work_type=work_type)
        if estimate.sample_count == 0 or estimate.min_seconds <= 0:
            return None
        typical = (estimate.min_seconds + estimate.max_seconds) / 2
        diff = (duration_seconds - typical) / typical * 100
        if diff < -10:
            return f"About {abs(round(diff))}% faster than similar work."
        if diff > 10:
            return f"About {round(diff)}% slower than similar work."
        return "Right in line with similar work."
