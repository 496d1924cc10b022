"""
Prediction Service: wires storage to the analysis engine.

Every call re-reads sessions, ratings and settings from the Repository and
recomputes the pattern, so concurrent requests never share derived state.
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import Optional

from wakewise.config import DAY_ROLLOVER_HOUR, DEFAULT_BEDTIME_HOUR
from wakewise.data.models import AlarmPlan, SleepPattern, WakePrediction, WakeWindow
from wakewise.data.repository import Repository
from wakewise.ml import feedback
from wakewise.ml.pattern_analyzer import analyze_patterns
from wakewise.ml.predictor import generate_prediction, resolve_alarm_time

logger = logging.getLogger(__name__)


class PredictionService:
    """Produces tonight's WakePrediction and the AlarmPlan for the scheduler."""

    def __init__(self, repo: Repository, apply_feedback_multiplier: bool = True) -> None:
        self.repo = repo
        self.apply_feedback_multiplier = apply_feedback_multiplier

    def current_pattern(self) -> Optional[SleepPattern]:
        return analyze_patterns(self.repo.list_sleep_sessions())

    def generate_prediction(
        self, wake_window: WakeWindow, estimated_bedtime: Optional[datetime] = None
    ) -> WakePrediction:
        bedtime = estimated_bedtime or default_bedtime()
        ratings = self.repo.list_feedback_ratings()

        multiplier = 1.0
        if self.apply_feedback_multiplier:
            multiplier = feedback.compute_adjustments(ratings).confidence_multiplier

        return generate_prediction(
            wake_window,
            bedtime,
            self.current_pattern(),
            feedback=ratings,
            confidence_multiplier=multiplier,
        )

    def plan_alarm(
        self, wake_window: WakeWindow, estimated_bedtime: Optional[datetime] = None
    ) -> AlarmPlan:
        """
        Prediction plus the firing decision. A backup alarm at the hard wake
        time is only needed when the predicted time is used.
        """
        prediction = self.generate_prediction(wake_window, estimated_bedtime)
        threshold = self.repo.get_user_settings().confidence_threshold
        alarm_time, used_prediction = resolve_alarm_time(prediction, threshold)
        plan = AlarmPlan(
            alarm_time=alarm_time,
            used_prediction=used_prediction,
            backup_time=prediction.fallback_time if used_prediction else None,
            prediction=prediction,
        )
        logger.info("Alarm plan for %s: %s (%s)", wake_window.id,
                    alarm_time.isoformat(timespec="minutes"),
                    "predicted" if used_prediction else "fallback")
        return plan

    def active_wake_window(self, day: Optional[datetime] = None) -> Optional[WakeWindow]:
        """First enabled window scheduled for the given day (Sunday = 0)."""
        weekday = _sunday_first_weekday(day or datetime.now())
        for window in self.repo.list_wake_windows():
            if window.enabled and weekday in window.repeat_days:
                return window
        return None


def default_bedtime(
    reference: Optional[datetime] = None, hour: int = DEFAULT_BEDTIME_HOUR, minute: int = 0
) -> datetime:
    """
    Bedtime (23:00 unless given) for the night the reference falls in.

    Before the 04:00 rollover the night began the previous evening, and
    bedtimes earlier than the rollover land after midnight.
    """
    reference = reference or datetime.now()
    night = reference.date()
    if reference.hour < DAY_ROLLOVER_HOUR:
        night -= timedelta(days=1)
    bedtime = datetime.combine(night, time(hour, minute))
    if hour < DAY_ROLLOVER_HOUR:
        bedtime += timedelta(days=1)
    return bedtime


def _sunday_first_weekday(dt: datetime) -> int:
    # datetime.weekday(): Monday = 0
    return (dt.weekday() + 1) % 7


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The glue between the Repository and the pure engine. It loads a fresh
#   snapshot, runs analyze_patterns() → generate_prediction(), applies the
#   feedback multiplier, and turns the prediction into an AlarmPlan using
#   the user's confidence threshold.
#
# Data flow:
#   Repository → sessions/ratings/settings → PredictionService →
#   WakePrediction → AlarmPlan → scheduler
