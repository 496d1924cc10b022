"""
Feedback statistics: pure functions over a list of wake ratings.

The FeedbackEngine service loads ratings from the Repository and hands them
here; nothing in this module touches storage.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from wakewise.config import (
    GOOD_FEELING,
    MIN_RATINGS_FOR_ADJUSTMENT,
    MIN_RATINGS_FOR_INSIGHTS,
    MIN_RATINGS_FOR_TREND,
    RECENT_FEEDBACK_COUNT,
)
from wakewise.data.models import AlgorithmAdjustments, FeedbackRating, FeedbackStats

from .numeric import round_half_up, round_to_tenth

NEUTRAL_FEELING = 3.0
FEELING_GAP = 0.5
TREND_SCALE = 20  # one rating point between halves = 20 trend points


def compute_stats(ratings: Sequence[FeedbackRating]) -> FeedbackStats:
    if not ratings:
        return FeedbackStats()

    avg_feeling = float(np.mean([r.immediate_feeling for r in ratings]))

    alertness = [r.alertness_after_30_min for r in ratings if r.alertness_after_30_min is not None]
    avg_alertness = round_to_tenth(float(np.mean(alertness))) if alertness else None

    # % of good mornings when the predicted time was actually used
    used = [r for r in ratings if r.used_prediction]
    good = [r for r in used if r.immediate_feeling >= GOOD_FEELING]
    accuracy = len(good) / len(used) * 100 if used else 0

    return FeedbackStats(
        total_ratings=len(ratings),
        average_feeling=round_to_tenth(avg_feeling),
        average_alertness=avg_alertness,
        prediction_accuracy=round_half_up(accuracy),
        improvement_trend=calculate_trend(ratings),
    )


def calculate_trend(ratings: Sequence[FeedbackRating]) -> int:
    """Second-half minus first-half mean feeling, scaled to roughly ±100."""
    if len(ratings) < MIN_RATINGS_FOR_TREND:
        return 0

    ordered = sorted(ratings, key=lambda r: r.date)
    midpoint = len(ordered) // 2
    first_avg = np.mean([r.immediate_feeling for r in ordered[:midpoint]])
    second_avg = np.mean([r.immediate_feeling for r in ordered[midpoint:]])
    return round_half_up(float(second_avg - first_avg) * TREND_SCALE)


def build_insights(ratings: Sequence[FeedbackRating]) -> List[str]:
    """Templated observations; always at least one string."""
    if len(ratings) < MIN_RATINGS_FOR_INSIGHTS:
        remaining = MIN_RATINGS_FOR_INSIGHTS - len(ratings)
        return [
            f"Keep rating your wake quality! {remaining} more days until personalized insights."
        ]

    stats = compute_stats(ratings)
    insights: List[str] = []

    if stats.average_feeling >= 4:
        insights.append("You generally wake up feeling good! The predictions are working well.")
    elif stats.average_feeling <= 2.5:
        insights.append(
            "Your wake quality could be better. Consider going to bed earlier "
            "or checking your sleep environment."
        )

    if stats.prediction_accuracy >= 70:
        insights.append(
            f"Predictions are {stats.prediction_accuracy}% accurate at helping you wake refreshed."
        )
    elif 0 < stats.prediction_accuracy < 50:
        insights.append(
            "Predictions are still learning your patterns. Accuracy will improve with more data."
        )

    if stats.improvement_trend > 10:
        insights.append("Your wake quality has been improving over time!")
    elif stats.improvement_trend < -10:
        insights.append(
            "Wake quality has decreased recently. Any changes to your sleep schedule or habits?"
        )

    if stats.average_alertness is not None:
        if stats.average_alertness >= 4:
            insights.append("You maintain good alertness after waking. Great sleep hygiene!")
        elif stats.average_alertness <= 2.5:
            insights.append(
                "Your alertness 30 minutes after waking is low. "
                "Consider exposure to bright light or movement."
            )

    return insights or ["Keep tracking to unlock personalized insights!"]


def compute_adjustments(ratings: Sequence[FeedbackRating]) -> AlgorithmAdjustments:
    """
    Confidence multiplier from how predicted wake-ups compare with fallback
    wake-ups over the last 14 ratings.
    """
    if len(ratings) < MIN_RATINGS_FOR_ADJUSTMENT:
        return AlgorithmAdjustments()

    recent = list(ratings)[-RECENT_FEEDBACK_COUNT:]
    prediction_avg = _mean_feeling([r for r in recent if r.used_prediction])
    fallback_avg = _mean_feeling([r for r in recent if not r.used_prediction])

    multiplier = 1.0
    if prediction_avg < fallback_avg - FEELING_GAP:
        multiplier = 0.8
    elif prediction_avg > fallback_avg + FEELING_GAP:
        multiplier = 1.1

    return AlgorithmAdjustments(confidence_multiplier=multiplier, prefer_earlier_wake=False)


def _mean_feeling(ratings: List[FeedbackRating]) -> float:
    if not ratings:
        return NEUTRAL_FEELING
    return float(np.mean([r.immediate_feeling for r in ratings]))
