"""
Pattern Analyzer: turns a history of sleep sessions into a SleepPattern.

Design philosophy:
  - Pure functions: the caller supplies the sessions, nothing is cached.
  - No pattern at all below MIN_DATA_DAYS nights; the predictor degrades to
    the hard wake time instead.
  - Sessions without stage data still count toward duration averages.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from wakewise.config import (
    AVERAGE_CYCLE_LENGTH,
    BUCKET_SIZE_MINUTES,
    LIGHT_SLEEP_THRESHOLD,
    MAX_ACCEPTABLE_VARIATION,
    MAX_CYCLE_LENGTH,
    MAX_MINUTES_FROM_SLEEP,
    MIN_CYCLE_LENGTH,
    MIN_DATA_DAYS,
    MIN_SESSIONS_FOR_CONSISTENCY,
    OPEN_WINDOW_PROBABILITY,
)
from wakewise.data.models import SleepPattern, SleepSession, SleepStage, StageType, TimeWindow

from .numeric import minute_of_day, minutes_between, round_half_up

logger = logging.getLogger(__name__)

MIN_STAGES_FOR_CYCLES = 4


def analyze_patterns(sessions: Sequence[SleepSession]) -> Optional[SleepPattern]:
    """
    Build a SleepPattern from historical sessions.

    Returns None when there are fewer than MIN_DATA_DAYS sessions.
    """
    if len(sessions) < MIN_DATA_DAYS:
        logger.debug("Only %d sessions, need %d for a pattern", len(sessions), MIN_DATA_DAYS)
        return None

    pattern = SleepPattern(
        average_sleep_duration=average_duration(sessions),
        average_cycle_length=detect_cycle_length(sessions),
        typical_light_sleep_windows=find_light_sleep_windows(sessions),
        consistency=calculate_consistency(sessions),
        data_points=len(sessions),
    )
    logger.info(
        "Analyzed %d nights: cycle=%d min, %d light windows, consistency=%d",
        pattern.data_points, pattern.average_cycle_length,
        len(pattern.typical_light_sleep_windows), pattern.consistency,
    )
    return pattern


def average_duration(sessions: Sequence[SleepSession]) -> int:
    return round_half_up(float(np.mean([s.total_duration_minutes for s in sessions])))


def detect_cycle_length(sessions: Sequence[SleepSession]) -> int:
    """
    Median light → deep → light cycle length across all nights.

    Candidates outside [60, 120] minutes are dropped; with none left the
    textbook 90 minutes is returned.
    """
    cycle_lengths: List[float] = []

    for session in sessions:
        if not session.stages or len(session.stages) < MIN_STAGES_FOR_CYCLES:
            continue

        cycle_start = None
        in_deep_sleep = False

        for stage in _ordered_stages(session):
            if stage.type == StageType.LIGHT and not in_deep_sleep and cycle_start is None:
                cycle_start = stage.start_time
            elif stage.type == StageType.DEEP:
                in_deep_sleep = True
            elif stage.type == StageType.LIGHT and in_deep_sleep and cycle_start is not None:
                length = minutes_between(cycle_start, stage.start_time)
                if MIN_CYCLE_LENGTH <= length <= MAX_CYCLE_LENGTH:
                    cycle_lengths.append(length)
                # the closing light stage opens the next cycle
                cycle_start = stage.start_time
                in_deep_sleep = False

    if not cycle_lengths:
        return AVERAGE_CYCLE_LENGTH

    ordered = np.sort(np.asarray(cycle_lengths, dtype=float))
    # upper-middle element for even counts
    return round_half_up(float(ordered[len(ordered) // 2]))


def find_light_sleep_windows(sessions: Sequence[SleepSession]) -> List[TimeWindow]:
    """
    Histogram stage starts into 15-minute buckets from sleep onset and merge
    runs of buckets where light sleep is at least 40% of observed stages.
    """
    bucket_count = -(-MAX_MINUTES_FROM_SLEEP // BUCKET_SIZE_MINUTES)
    light_buckets = np.zeros(bucket_count, dtype=int)
    total_buckets = np.zeros(bucket_count, dtype=int)

    for session in sessions:
        if not session.stages:
            continue
        for stage in _ordered_stages(session):
            offset = minutes_between(session.sleep_start, stage.start_time)
            if offset < 0 or offset >= MAX_MINUTES_FROM_SLEEP:
                continue
            idx = int(offset // BUCKET_SIZE_MINUTES)
            total_buckets[idx] += 1
            if stage.type == StageType.LIGHT:
                light_buckets[idx] += 1

    windows: List[TimeWindow] = []
    window_start: Optional[int] = None  # bucket index

    for i in range(bucket_count):
        probability = light_buckets[i] / total_buckets[i] if total_buckets[i] > 0 else 0.0
        if probability >= LIGHT_SLEEP_THRESHOLD:
            if window_start is None:
                window_start = i
        elif window_start is not None:
            windows.append(TimeWindow(
                start_minutes_from_sleep=window_start * BUCKET_SIZE_MINUTES,
                end_minutes_from_sleep=i * BUCKET_SIZE_MINUTES,
                probability=float(light_buckets[window_start:i].sum()
                                  / total_buckets[window_start:i].sum()),
            ))
            window_start = None

    # nothing after the scan range to refine this one
    if window_start is not None:
        windows.append(TimeWindow(
            start_minutes_from_sleep=window_start * BUCKET_SIZE_MINUTES,
            end_minutes_from_sleep=MAX_MINUTES_FROM_SLEEP,
            probability=OPEN_WINDOW_PROBABILITY,
        ))

    return windows


def calculate_consistency(sessions: Sequence[SleepSession]) -> int:
    """0-100 regularity of duration, bedtime and wake time. 0 below 3 nights."""
    if len(sessions) < MIN_SESSIONS_FOR_CONSISTENCY:
        return 0

    durations = [s.total_duration_minutes for s in sessions]
    bedtimes = [minute_of_day(s.sleep_start) for s in sessions]
    waketimes = [minute_of_day(s.sleep_end) for s in sessions]

    scores = [_variation_score(values) for values in (durations, bedtimes, waketimes)]
    return round_half_up(sum(scores) / 3)


def most_likely_stage(minutes_from_sleep_start: float, pattern: SleepPattern) -> Tuple[str, float]:
    """
    Best guess of the sleep stage at an offset from sleep onset.

    Detected light-sleep windows win; otherwise an idealized cycle is used:
    0-20% light, 20-50% deep, 50-75% light, 75-100% REM.
    """
    for window in pattern.typical_light_sleep_windows:
        if window.start_minutes_from_sleep <= minutes_from_sleep_start <= window.end_minutes_from_sleep:
            return StageType.LIGHT, window.probability

    cycle_length = pattern.average_cycle_length
    cycle_fraction = (minutes_from_sleep_start % cycle_length) / cycle_length

    if cycle_fraction < 0.2:
        return StageType.LIGHT, 0.6
    elif cycle_fraction < 0.5:
        return StageType.DEEP, 0.5
    elif cycle_fraction < 0.75:
        return StageType.LIGHT, 0.5
    return StageType.REM, 0.5


# ── Internal ────────────────────────────────────────────────────────────────

def _variation_score(values: List[float]) -> float:
    sd = float(np.std(values))  # population SD
    return max(0.0, 100 - (sd / MAX_ACCEPTABLE_VARIATION) * 50)


def _ordered_stages(session: SleepSession) -> List[SleepStage]:
    """Stages in the order given, minus those whose end precedes their start."""
    kept = []
    for stage in session.stages or []:
        if stage.end_time is not None and stage.end_time < stage.start_time:
            logger.debug("Ignoring inverted %s stage at %s in session %s",
                         stage.type, stage.start_time, session.date)
            continue
        kept.append(stage)
    return kept


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Summarizes up to 90 nights of stage data into four numbers the predictor
#   needs: average duration, typical cycle length, windows after sleep onset
#   where light sleep is common, and how regular the schedule is.
#
# Key pieces:
#   - detect_cycle_length(): walks each night's stages as a tiny state
#     machine (waiting → in cycle → in deep) and takes the median length.
#   - find_light_sleep_windows(): a 40-bucket histogram of stage starts.
#   - calculate_consistency(): population SD of three series, each mapped to
#     a 0-100 sub-score where 60 min of SD costs 50 points.
#   - most_likely_stage(): the lookup the predictor calls for every
#     candidate wake time.
#
# Data flow:
#   Repository.list_sleep_sessions() → analyze_patterns() → SleepPattern →
#   predictor.generate_prediction()
