"""
Wake Predictor: picks the best moment to wake inside a wake window.

Design philosophy:
  - Stateless: everything (pattern, feedback, multiplier) is passed in, so two
    calls with the same inputs return the same prediction.
  - Falls back gracefully: no pattern → hard wake time with 0 confidence.
  - Never claims more than MAX_CONFIDENCE.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence, Tuple

from wakewise.config import (
    BEDTIME_TOLERANCE_MINUTES,
    CHECK_INTERVAL_MINUTES,
    CONFIDENCE_BOOST_PER_DAY,
    EVENING_HOUR,
    MAX_BEDTIME_PENALTY,
    MAX_CONFIDENCE,
    MAX_DATA_BOOST,
    MIN_DATA_DAYS,
    RECENT_FEEDBACK_COUNT,
    TYPICAL_BEDTIME_MINUTE,
)
from wakewise.data.models import FeedbackRating, SleepPattern, StageType, WakePrediction, WakeWindow

from .numeric import minute_of_day, minutes_between, round_half_up
from .pattern_analyzer import most_likely_stage

logger = logging.getLogger(__name__)

# How acceptable waking from each stage is (deep sleep is strongly avoided)
STAGE_WEIGHTS = {
    StageType.LIGHT: 100,
    StageType.REM: 70,
    StageType.AWAKE: 60,
    StageType.DEEP: 20,
}
EARLINESS_BONUS = 10
SCORE_TO_CONFIDENCE = 0.8
CONSISTENCY_BONUS = 15
FEEDBACK_BONUS = 10
HIGH_CONFIDENCE = 70
LOW_CONFIDENCE = 30

NO_DATA_REASONING = "Not enough sleep data yet. Using your hard wake time."


def generate_prediction(
    wake_window: WakeWindow,
    estimated_bedtime: datetime,
    pattern: Optional[SleepPattern],
    feedback: Sequence[FeedbackRating] = (),
    confidence_multiplier: float = 1.0,
) -> WakePrediction:
    """
    Predict tonight's wake time.

    confidence_multiplier comes from the feedback loop's algorithm
    adjustments; it is applied after all other confidence adjustments.
    """
    hard_wake_time = parse_wake_time(wake_window.hard_wake_time, estimated_bedtime)
    if wake_window.earliest_wake_time:
        earliest_wake = parse_wake_time(wake_window.earliest_wake_time, estimated_bedtime)
    else:
        earliest_wake = hard_wake_time - timedelta(minutes=wake_window.window_duration_minutes)

    if pattern is None:
        return WakePrediction(
            predicted_wake_time=hard_wake_time,
            confidence=0,
            reasoning=NO_DATA_REASONING,
            fallback_time=hard_wake_time,
            predicted_stage=StageType.LIGHT,
        )

    optimal_time, stage, base_confidence = find_optimal_wake_time(
        earliest_wake, hard_wake_time, estimated_bedtime, pattern
    )
    confidence = adjust_confidence(base_confidence, pattern, feedback, estimated_bedtime)
    if confidence_multiplier != 1.0:
        confidence = _clamp_confidence(confidence * confidence_multiplier)

    prediction = WakePrediction(
        predicted_wake_time=optimal_time,
        confidence=confidence,
        reasoning=generate_reasoning(optimal_time, hard_wake_time, stage, confidence, pattern),
        fallback_time=hard_wake_time,
        predicted_stage=stage,
    )
    logger.info("Predicted %s (%s, %d%% confidence) for window %s",
                optimal_time.strftime("%H:%M"), stage, confidence, wake_window.id)
    return prediction


def parse_wake_time(time_str: str, reference: datetime) -> datetime:
    """
    "HH:MM" on the reference date, or the following day when the reference
    is an evening bedtime (18:00 or later).
    """
    try:
        hours, minutes = (int(part) for part in time_str.split(":"))
    except ValueError:
        raise ValueError(f"Invalid wake time '{time_str}', expected HH:MM.") from None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Invalid wake time '{time_str}', expected HH:MM.")

    wake_date = reference.date()
    if reference.hour >= EVENING_HOUR:
        wake_date += timedelta(days=1)
    return datetime(wake_date.year, wake_date.month, wake_date.day, hours, minutes,
                    tzinfo=reference.tzinfo)


def find_optimal_wake_time(
    earliest_wake: datetime,
    latest_wake: datetime,
    bedtime: datetime,
    pattern: SleepPattern,
) -> Tuple[datetime, str, int]:
    """
    Scan the window every 5 minutes and keep the best-scoring candidate.

    Returns (time, stage, base_confidence). Ties keep the earliest candidate.
    An empty or inverted window collapses to the latest wake time.
    """
    window_duration = max(0.0, minutes_between(earliest_wake, latest_wake))
    if window_duration == 0:
        earliest_wake = latest_wake

    best_time = latest_wake
    best_score = 0.0
    best_stage = StageType.LIGHT

    offset = 0
    while offset <= window_duration:
        candidate = earliest_wake + timedelta(minutes=offset)
        stage, probability = most_likely_stage(minutes_between(bedtime, candidate), pattern)

        score = probability * STAGE_WEIGHTS[stage]
        # slight preference for earlier times (more buffer)
        if window_duration > 0:
            score += (window_duration - offset) / window_duration * EARLINESS_BONUS

        if score > best_score:
            best_score = score
            best_time = candidate
            best_stage = stage
        offset += CHECK_INTERVAL_MINUTES

    base_confidence = min(MAX_CONFIDENCE, round_half_up(best_score * SCORE_TO_CONFIDENCE))
    return best_time, best_stage, base_confidence


def adjust_confidence(
    base_confidence: int,
    pattern: SleepPattern,
    feedback: Sequence[FeedbackRating],
    bedtime: datetime,
) -> int:
    confidence = float(base_confidence)

    # more history
    confidence += min(MAX_DATA_BOOST, (pattern.data_points - MIN_DATA_DAYS) * CONFIDENCE_BOOST_PER_DAY)

    # regular sleepers
    confidence += (pattern.consistency / 100) * CONSISTENCY_BONUS

    # unusual bedtime tonight
    deviation = abs(minute_of_day(bedtime) - TYPICAL_BEDTIME_MINUTE)
    if deviation > BEDTIME_TOLERANCE_MINUTES:
        confidence -= min(MAX_BEDTIME_PENALTY, (deviation - BEDTIME_TOLERANCE_MINUTES) / 2)

    if feedback:
        recent = list(feedback)[-RECENT_FEEDBACK_COUNT:]
        avg_feeling = sum(r.immediate_feeling for r in recent) / len(recent)
        if avg_feeling >= 4:
            confidence += FEEDBACK_BONUS
        elif avg_feeling <= 2:
            confidence -= FEEDBACK_BONUS

    return _clamp_confidence(confidence)


def generate_reasoning(
    optimal_time: datetime,
    hard_wake_time: datetime,
    stage: str,
    confidence: int,
    pattern: SleepPattern,
) -> str:
    buffer_minutes = round_half_up(minutes_between(optimal_time, hard_wake_time))

    if confidence < LOW_CONFIDENCE:
        return f"Limited data ({pattern.data_points} nights). Prediction is rough estimate."

    if buffer_minutes == 0:
        return "Your hard wake time aligns well with your sleep pattern."

    stage_desc = "light sleep" if stage == StageType.LIGHT else f"{stage} stage"
    time_str = format_clock(optimal_time)

    if confidence >= HIGH_CONFIDENCE:
        return (
            f"Based on {pattern.data_points} nights of data, you'll likely be in "
            f"{stage_desc} around {time_str}, {buffer_minutes} min before your deadline."
        )
    return (
        f"Estimated {stage_desc} around {time_str}. "
        f"Confidence is moderate due to pattern variability."
    )


def format_clock(dt: datetime) -> str:
    """12-hour clock without a leading zero, e.g. '6:45 AM'."""
    hour = dt.hour % 12 or 12
    return f"{hour}:{dt.minute:02d} {'AM' if dt.hour < 12 else 'PM'}"


def resolve_alarm_time(prediction: WakePrediction, confidence_threshold: int) -> Tuple[datetime, bool]:
    """
    The one place that decides which time the alarm actually fires at.

    Returns (alarm_time, used_prediction): the predicted time when confidence
    meets the user's threshold, otherwise the fallback (hard wake) time.
    """
    if prediction.confidence >= confidence_threshold:
        return prediction.predicted_wake_time, True
    return prediction.fallback_time, False


def _clamp_confidence(value: float) -> int:
    return round_half_up(max(0.0, min(float(MAX_CONFIDENCE), value)))


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Given tonight's wake window and bedtime, scores every 5-minute slot in
#   the window by how likely the user is to be in light sleep, picks the
#   best one, and attaches a 0-95 confidence and a one-line explanation.
#
# Key decisions:
#   - Scoring: light 100, REM 70, awake 60, deep 20 (times the stage
#     probability) plus up to 10 points for being early in the window.
#   - Confidence: 80% of the best score, then history, consistency,
#     bedtime and feedback adjustments, then the optional feedback
#     multiplier, clamped to [0, 95].
#   - resolve_alarm_time(): the predicted-vs-fallback decision shared by
#     the alarm plan and anything else that needs it.
#
# Data flow:
#   SleepPattern + WakeWindow + bedtime + ratings → generate_prediction() →
#   WakePrediction → resolve_alarm_time() → AlarmPlan
