"""
Data models for WakeWise.

Plain dataclasses shared by the storage layer, the analysis engine and the
services. Records coming from storage (sessions, windows, ratings) and values
derived by the engine (patterns, predictions) all live here so every layer
speaks the same "language."
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from wakewise.config import DEFAULT_SETTINGS


class StageType:
    """Sleep stage labels as delivered by the wearable."""
    DEEP = "deep"
    LIGHT = "light"
    REM = "rem"
    AWAKE = "awake"

    ALL = (DEEP, LIGHT, REM, AWAKE)


# ── Stored records ──────────────────────────────────────────────────────────

@dataclass
class SleepStage:
    """A classified interval within one night."""
    type: str = StageType.LIGHT
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_minutes: float = 0.0


@dataclass
class SleepSession:
    """One night's full sleep record. `date` (YYYY-MM-DD) is the natural key."""
    id: Optional[str] = None
    date: str = ""
    sleep_start: Optional[datetime] = None
    sleep_end: Optional[datetime] = None
    total_duration_minutes: float = 0.0
    stages: Optional[List[SleepStage]] = field(default_factory=list)
    deep_sleep_minutes: float = 0.0
    light_sleep_minutes: float = 0.0
    rem_sleep_minutes: float = 0.0
    awake_minutes: float = 0.0
    average_heart_rate: Optional[float] = None
    lowest_heart_rate: Optional[float] = None


@dataclass
class WakeWindow:
    """
    A user-configured alarm.

    hard_wake_time and earliest_wake_time are "HH:MM" strings; repeat_days
    uses 0-6 with Sunday = 0.
    """
    id: str = ""
    name: str = ""
    hard_wake_time: str = "07:00"
    window_duration_minutes: int = 30
    earliest_wake_time: Optional[str] = None
    enabled: bool = True
    repeat_days: List[int] = field(default_factory=list)


@dataclass
class UserSettings:
    onboarding_completed: bool = DEFAULT_SETTINGS["onboarding_completed"]
    wearable_connected: bool = DEFAULT_SETTINGS["wearable_connected"]
    notifications_enabled: bool = DEFAULT_SETTINGS["notifications_enabled"]
    confidence_threshold: int = DEFAULT_SETTINGS["confidence_threshold"]
    gradual_volume_ramp: bool = DEFAULT_SETTINGS["gradual_volume_ramp"]
    haptic_feedback: bool = DEFAULT_SETTINGS["haptic_feedback"]


@dataclass
class WearableTokens:
    """Opaque credentials for the wearable link."""
    access_token: str = ""
    access_token_secret: str = ""
    user_id: str = ""


@dataclass
class FeedbackRating:
    """A user's self-reported wake quality (1-5 scales)."""
    id: str = ""
    date: str = ""
    wake_time: Optional[datetime] = None
    predicted_wake_time: Optional[datetime] = None
    actual_confidence: int = 0
    immediate_feeling: int = 3
    alertness_after_30_min: Optional[int] = None
    used_prediction: bool = False
    sleep_session_id: Optional[str] = None


# ── Derived values ──────────────────────────────────────────────────────────

@dataclass
class TimeWindow:
    """Interval of elevated light-sleep probability, relative to sleep onset."""
    start_minutes_from_sleep: float
    end_minutes_from_sleep: float
    probability: float


@dataclass
class SleepPattern:
    average_sleep_duration: int
    average_cycle_length: int
    typical_light_sleep_windows: List[TimeWindow]
    consistency: int
    data_points: int


@dataclass
class WakePrediction:
    predicted_wake_time: datetime
    confidence: int
    reasoning: str
    fallback_time: datetime
    predicted_stage: str


@dataclass
class FeedbackStats:
    total_ratings: int = 0
    average_feeling: float = 0.0
    average_alertness: Optional[float] = None
    prediction_accuracy: int = 0
    improvement_trend: int = 0


@dataclass
class AlgorithmAdjustments:
    confidence_multiplier: float = 1.0
    prefer_earlier_wake: bool = False  # reserved, never set yet


@dataclass
class AlarmPlan:
    """What the scheduler should fire for one night."""
    alarm_time: datetime
    used_prediction: bool
    backup_time: Optional[datetime]
    prediction: WakePrediction


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Defines the "shape" of every object the engine touches. Stored records
#   (SleepSession, WakeWindow, FeedbackRating, UserSettings) come from the
#   Repository; derived values (SleepPattern, WakePrediction, FeedbackStats)
#   are computed fresh on every request and never persisted.
#
# Data flow:
#   Wearable payload → SleepSession → SleepPattern → WakePrediction →
#   AlarmPlan → scheduler.  After waking: FeedbackRating → FeedbackStats /
#   AlgorithmAdjustments → next WakePrediction.
