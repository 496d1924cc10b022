"""
Feedback Engine: records how each wake-up felt and reports on it.

Handles: creating a rating entry after a wake event, submitting the user's
scores, and exposing statistics, insights and algorithm adjustments
computed from the stored ratings.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from wakewise.config import DEFAULT_FEELING
from wakewise.data.models import (
    AlgorithmAdjustments,
    FeedbackRating,
    FeedbackStats,
    WakePrediction,
)
from wakewise.data.repository import Repository
from wakewise.ml import feedback

logger = logging.getLogger(__name__)

RATING_RANGE = range(1, 6)


class FeedbackEngine:
    """
    Thin service over the ratings log. Holds no state besides the repository;
    every read works on a fresh snapshot.
    """

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    # ── Recording ───────────────────────────────────────────────────────────

    def create_entry(
        self,
        prediction: WakePrediction,
        actual_wake_time: datetime,
        used_prediction: bool,
        now: Optional[datetime] = None,
    ) -> FeedbackRating:
        """Build an unsaved rating with a neutral feeling until the user answers."""
        now = now or datetime.now()
        return FeedbackRating(
            id=f"feedback_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:8]}",
            date=now.date().isoformat(),
            wake_time=actual_wake_time,
            predicted_wake_time=prediction.predicted_wake_time,
            actual_confidence=prediction.confidence,
            immediate_feeling=DEFAULT_FEELING,
            used_prediction=used_prediction,
        )

    def submit_rating(
        self,
        entry: FeedbackRating,
        immediate_feeling: int,
        alertness_after_30_min: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> FeedbackRating:
        """Finalize and persist the entry. Scores must be 1-5."""
        self._require_score(immediate_feeling, "immediate_feeling")
        if alertness_after_30_min is not None:
            self._require_score(alertness_after_30_min, "alertness_after_30_min")

        entry.immediate_feeling = immediate_feeling
        entry.alertness_after_30_min = alertness_after_30_min
        self.repo.add_feedback_rating(entry, now=now)
        logger.info("Stored rating %s: feeling=%d, used_prediction=%s",
                    entry.id, immediate_feeling, entry.used_prediction)
        return entry

    # ── Reporting ───────────────────────────────────────────────────────────

    def get_stats(self) -> FeedbackStats:
        return feedback.compute_stats(self.repo.list_feedback_ratings())

    def get_insights(self) -> List[str]:
        return feedback.build_insights(self.repo.list_feedback_ratings())

    def get_algorithm_adjustments(self) -> AlgorithmAdjustments:
        return feedback.compute_adjustments(self.repo.list_feedback_ratings())

    # ── Helpers ─────────────────────────────────────────────────────────────

    @staticmethod
    def _require_score(value: int, name: str) -> None:
        if value not in RATING_RANGE:
            raise ValueError(f"{name} must be between 1 and 5, got {value!r}.")


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The feedback side of the loop. After an alarm fires the app calls
#   create_entry(), asks the user how they feel, then submit_rating().
#   The stored ratings feed get_stats()/get_insights() for the user and
#   get_algorithm_adjustments() for the predictor.
#
# Data flow:
#   WakePrediction → create_entry() → user scores → submit_rating() →
#   Repository.add_feedback_rating() → ... → PredictionService reads
#   get_algorithm_adjustments() on the next prediction.
