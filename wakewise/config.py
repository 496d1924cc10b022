"""
Engine-wide constants for WakeWise.

Everything tunable lives here so the analyzer, predictor and feedback loop
agree on thresholds.
"""

from __future__ import annotations

from pathlib import Path

# Default DB lives at the repo root
DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent / "wakewise.db"

# ── Sleep analysis ──────────────────────────────────────────────────────────
MIN_DATA_DAYS = 7              # nights needed before a pattern exists
AVERAGE_CYCLE_LENGTH = 90      # minutes, fallback when no cycle is detected
MIN_CYCLE_LENGTH = 60
MAX_CYCLE_LENGTH = 120
CONFIDENCE_BOOST_PER_DAY = 2
MAX_DATA_BOOST = 20
MAX_CONFIDENCE = 95            # never claim certainty

BUCKET_SIZE_MINUTES = 15
MAX_MINUTES_FROM_SLEEP = 600   # 10 hours
LIGHT_SLEEP_THRESHOLD = 0.4
OPEN_WINDOW_PROBABILITY = 0.5

MIN_SESSIONS_FOR_CONSISTENCY = 3
MAX_ACCEPTABLE_VARIATION = 60  # minutes of SD that costs 50 points
DAY_ROLLOVER_HOUR = 4          # times before 04:00 belong to the previous night

# ── Prediction ──────────────────────────────────────────────────────────────
CHECK_INTERVAL_MINUTES = 5
EVENING_HOUR = 18              # bedtimes from 18:00 wake up tomorrow
TYPICAL_BEDTIME_MINUTE = 23 * 60
DEFAULT_BEDTIME_HOUR = 23
BEDTIME_TOLERANCE_MINUTES = 60
MAX_BEDTIME_PENALTY = 30
RECENT_FEEDBACK_COUNT = 14

# ── Feedback loop ───────────────────────────────────────────────────────────
DEFAULT_FEELING = 3
MIN_RATINGS_FOR_TREND = 6
MIN_RATINGS_FOR_INSIGHTS = 7
MIN_RATINGS_FOR_ADJUSTMENT = 14
GOOD_FEELING = 4

# ── Storage ─────────────────────────────────────────────────────────────────
RETENTION_DAYS = 90

WINDOW_DURATION_OPTIONS = (15, 30, 45, 60)

DEFAULT_SETTINGS = {
    "onboarding_completed": False,
    "wearable_connected": False,
    "notifications_enabled": False,
    "confidence_threshold": 50,
    "gradual_volume_ramp": True,
    "haptic_feedback": True,
}
