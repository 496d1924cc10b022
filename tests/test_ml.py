"""Unit tests for the pattern analyzer and the wake predictor."""

import pytest
from datetime import datetime, timedelta
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from wakewise.data.models import (
    FeedbackRating, SleepPattern, SleepSession, SleepStage, StageType,
    TimeWindow, WakeWindow,
)
from wakewise.ml.pattern_analyzer import (
    analyze_patterns, calculate_consistency, detect_cycle_length,
    find_light_sleep_windows, most_likely_stage,
)
from wakewise.ml.predictor import (
    adjust_confidence, format_clock, generate_prediction, parse_wake_time,
    resolve_alarm_time,
)

FIRST_NIGHT = datetime(2026, 9, 1, 23, 0)


def _session(day: int, stages, duration: float = 480, onset: datetime = None) -> SleepSession:
    """Night `day` after FIRST_NIGHT; stages are (type, start_offset, length) tuples."""
    start = onset or FIRST_NIGHT + timedelta(days=day)
    stage_objs = None
    if stages is not None:
        stage_objs = [
            SleepStage(t, start + timedelta(minutes=off),
                       start + timedelta(minutes=off + length), length)
            for t, off, length in stages
        ]
    return SleepSession(
        id=f"s{day}",
        date=(start + timedelta(hours=8)).date().isoformat(),
        sleep_start=start,
        sleep_end=start + timedelta(minutes=duration),
        total_duration_minutes=duration,
        stages=stage_objs,
    )


def _cycle_stages(cycle: int, count: int = 5):
    """light → deep repeated so every light stage closes a cycle of `cycle` minutes."""
    stages = []
    for i in range(count):
        base = i * cycle
        stages.append((StageType.LIGHT, base, 20))
        stages.append((StageType.DEEP, base + 20, cycle - 20))
    stages.append((StageType.LIGHT, count * cycle, 20))
    return stages


def _pattern(cycle: int = 90, windows=None, consistency: int = 0, data_points: int = 7):
    return SleepPattern(
        average_sleep_duration=480,
        average_cycle_length=cycle,
        typical_light_sleep_windows=windows or [],
        consistency=consistency,
        data_points=data_points,
    )


WINDOW = WakeWindow(id="w1", name="Weekday", hard_wake_time="07:00",
                    window_duration_minutes=30, enabled=True, repeat_days=[1, 2, 3, 4, 5])
BEDTIME = datetime(2026, 10, 18, 23, 0)
HARD_WAKE = datetime(2026, 10, 19, 7, 0)


class TestAnalyzePatterns:
    def test_too_few_sessions_returns_none(self):
        sessions = [_session(i, _cycle_stages(90)) for i in range(6)]
        assert analyze_patterns(sessions) is None

    def test_data_points_matches_sessions(self):
        sessions = [_session(i, _cycle_stages(90)) for i in range(9)]
        pattern = analyze_patterns(sessions)
        assert pattern is not None
        assert pattern.data_points == 9

    def test_average_duration_rounds(self):
        sessions = [_session(i, None, duration=420) for i in range(6)]
        sessions.append(_session(6, None, duration=425))
        # 420.71 → 421
        assert analyze_patterns(sessions).average_sleep_duration == 421

    def test_sessions_without_stages_still_count(self):
        sessions = [_session(i, None) for i in range(7)]
        pattern = analyze_patterns(sessions)
        assert pattern.data_points == 7
        assert pattern.average_cycle_length == 90
        assert pattern.typical_light_sleep_windows == []


class TestCycleLength:
    @pytest.mark.parametrize("cycle", [60, 84, 97, 120])
    def test_exact_cycle_is_recovered(self, cycle):
        sessions = [_session(i, _cycle_stages(cycle)) for i in range(8)]
        assert detect_cycle_length(sessions) == cycle

    def test_fallback_without_candidates(self):
        # cycles of 40 min are implausible and dropped
        sessions = [_session(i, _cycle_stages(40)) for i in range(7)]
        assert detect_cycle_length(sessions) == 90

    def test_short_stage_lists_ignored(self):
        stages = [(StageType.LIGHT, 0, 20), (StageType.DEEP, 20, 60), (StageType.LIGHT, 80, 20)]
        sessions = [_session(i, stages) for i in range(7)]
        assert detect_cycle_length(sessions) == 90

    def test_median_resists_outliers(self):
        sessions = [_session(0, _cycle_stages(70, count=1) + [(StageType.REM, 90, 10)])]
        sessions += [_session(i, _cycle_stages(95)) for i in range(1, 4)]
        sessions.append(_session(4, _cycle_stages(118, count=1) + [(StageType.REM, 138, 10)]))
        assert detect_cycle_length(sessions) == 95

    def test_inverted_stage_is_ignored(self):
        session = _session(0, _cycle_stages(90, count=1) + [(StageType.REM, 110, 10)])
        # a light stage ending before it starts would otherwise close a 70-min cycle
        start = session.sleep_start + timedelta(minutes=70)
        session.stages.insert(2, SleepStage(StageType.LIGHT, start, start - timedelta(minutes=5), -5))
        assert detect_cycle_length([session]) == 90


class TestLightSleepWindows:
    def _stages_with_light_block(self, block_start: int):
        stages = []
        for off in range(0, 480, 15):
            kind = StageType.LIGHT if block_start <= off < block_start + 30 else StageType.DEEP
            stages.append((kind, off, 15))
        return stages

    def test_single_block_detected(self):
        sessions = [_session(i, self._stages_with_light_block(120)) for i in range(7)]
        windows = find_light_sleep_windows(sessions)
        assert len(windows) == 1
        assert windows[0].start_minutes_from_sleep == 120
        assert windows[0].end_minutes_from_sleep == 150
        assert windows[0].probability == 1.0

    def test_window_probability_uses_summed_counts(self):
        # bucket 0: 2 light / 2 total, bucket 1: 1 light / 2 total → 3/4
        stages = [
            (StageType.LIGHT, 0, 5), (StageType.LIGHT, 5, 10),
            (StageType.LIGHT, 15, 5), (StageType.DEEP, 20, 10),
            (StageType.DEEP, 30, 15),
        ]
        windows = find_light_sleep_windows([_session(0, stages)])
        assert len(windows) == 1
        assert windows[0].start_minutes_from_sleep == 0
        assert windows[0].end_minutes_from_sleep == 30
        assert windows[0].probability == pytest.approx(0.75)

    def test_window_open_at_end_of_scan(self):
        stages = [(StageType.DEEP, off, 15) for off in range(0, 570, 15)]
        stages += [(StageType.LIGHT, 570, 15), (StageType.LIGHT, 585, 15)]
        windows = find_light_sleep_windows([_session(0, stages, duration=600)])
        assert len(windows) == 1
        assert windows[0].start_minutes_from_sleep == 570
        assert windows[0].end_minutes_from_sleep == 600
        assert windows[0].probability == 0.5

    def test_stages_outside_range_ignored(self):
        stages = [(StageType.DEEP, 0, 600), (StageType.LIGHT, 600, 30)]
        assert find_light_sleep_windows([_session(0, stages, duration=630)]) == []

    def test_inverted_light_stage_not_counted(self):
        session = _session(0, [(StageType.DEEP, off, 15) for off in range(0, 480, 15)])
        start = session.sleep_start + timedelta(minutes=300)
        # counted, it would make bucket 300-315 half light
        session.stages.append(
            SleepStage(StageType.LIGHT, start, start - timedelta(minutes=10), -10))
        assert find_light_sleep_windows([session]) == []


class TestConsistency:
    def test_needs_three_sessions(self):
        sessions = [_session(i, None) for i in range(2)]
        assert calculate_consistency(sessions) == 0

    def test_identical_nights_score_100(self):
        sessions = [_session(i, None) for i in range(7)]
        assert calculate_consistency(sessions) == 100

    def test_midnight_crossing_bedtimes(self):
        sessions = []
        for i in range(8):
            night = FIRST_NIGHT + timedelta(days=i)
            onset = night.replace(hour=23, minute=50) if i % 2 == 0 else \
                (night + timedelta(days=1)).replace(hour=0, minute=10)
            s = _session(i, None, onset=onset, duration=480)
            # same wake time and duration every night
            s.sleep_end = (night + timedelta(days=1)).replace(hour=7, minute=0)
            sessions.append(s)
        # bedtime SD 10 min → 91.67; duration/wake SD 0 → 100
        assert calculate_consistency(sessions) == 97

    def test_sub_scores_floor_at_zero(self):
        # durations 240/540 (SD 150) and wake times 03:00/08:00 both score 0;
        # the fixed 23:00 bedtime scores 100
        sessions = [_session(i, None, duration=240 + 300 * (i % 2)) for i in range(6)]
        assert calculate_consistency(sessions) == 33


class TestMostLikelyStage:
    @pytest.mark.parametrize("offset,expected", [
        (10, (StageType.LIGHT, 0.6)),
        (30, (StageType.DEEP, 0.5)),
        (60, (StageType.LIGHT, 0.5)),
        (80, (StageType.REM, 0.5)),
        (110, (StageType.LIGHT, 0.6)),
    ])
    def test_cycle_model(self, offset, expected):
        assert most_likely_stage(offset, _pattern(cycle=100)) == expected

    def test_detected_window_wins(self):
        pattern = _pattern(cycle=100, windows=[TimeWindow(30, 45, 0.83)])
        assert most_likely_stage(35, pattern) == (StageType.LIGHT, 0.83)
        # bounds are inclusive
        assert most_likely_stage(45, pattern) == (StageType.LIGHT, 0.83)
        assert most_likely_stage(46, pattern) == (StageType.DEEP, 0.5)


class TestPredictor:
    def test_no_pattern_falls_back(self):
        p = generate_prediction(WINDOW, BEDTIME, None)
        assert p.confidence == 0
        assert p.predicted_wake_time == p.fallback_time == HARD_WAKE
        assert p.predicted_stage == StageType.LIGHT
        assert "Not enough sleep data" in p.reasoning

    def test_evening_bedtime_rolls_to_next_day(self):
        assert parse_wake_time("07:00", datetime(2026, 10, 18, 21, 30)) == HARD_WAKE

    def test_after_midnight_bedtime_same_day(self):
        assert parse_wake_time("07:00", datetime(2026, 10, 19, 0, 30)) == HARD_WAKE

    def test_invalid_wake_time(self):
        with pytest.raises(ValueError):
            parse_wake_time("7am", BEDTIME)
        with pytest.raises(ValueError):
            parse_wake_time("25:00", BEDTIME)

    def test_picks_detected_light_window(self):
        # window 06:30-07:00 is 450-480 min after bedtime; light window at 470-480
        pattern = _pattern(cycle=100, windows=[TimeWindow(470, 480, 0.9)])
        p = generate_prediction(WINDOW, BEDTIME, pattern)
        assert p.predicted_wake_time == datetime(2026, 10, 19, 6, 50)
        assert p.predicted_stage == StageType.LIGHT
        assert p.confidence == 75
        assert p.fallback_time == HARD_WAKE
        assert p.reasoning == (
            "Based on 7 nights of data, you'll likely be in light sleep "
            "around 6:50 AM, 10 min before your deadline."
        )

    def test_avoids_deep_sleep_and_prefers_earliest(self):
        p = generate_prediction(WINDOW, BEDTIME, _pattern(cycle=90))
        assert p.predicted_wake_time == datetime(2026, 10, 19, 6, 30)
        assert p.predicted_stage == StageType.LIGHT
        assert p.confidence == 56
        assert p.reasoning.startswith("Estimated light sleep around 6:30 AM.")

    def test_equally_likely_slots_keep_earliest(self):
        pattern = _pattern(windows=[TimeWindow(0, 600, 1.0)])
        p = generate_prediction(WINDOW, BEDTIME, pattern)
        assert p.predicted_wake_time == datetime(2026, 10, 19, 6, 30)
        assert p.confidence == 88

    def test_explicit_earliest_wake_time(self):
        window = WakeWindow(id="w2", hard_wake_time="07:00", window_duration_minutes=60,
                            earliest_wake_time="06:45")
        pattern = _pattern(windows=[TimeWindow(0, 600, 1.0)])
        p = generate_prediction(window, BEDTIME, pattern)
        assert p.predicted_wake_time == datetime(2026, 10, 19, 6, 45)

    def test_inverted_window_collapses_to_deadline(self):
        window = WakeWindow(id="w3", hard_wake_time="07:00", window_duration_minutes=30,
                            earliest_wake_time="07:30")
        p = generate_prediction(window, BEDTIME, _pattern())
        assert p.predicted_wake_time == HARD_WAKE

    def test_deadline_alignment_reasoning(self):
        # only the last slot is light, and it is the deadline itself
        window = WakeWindow(id="w4", hard_wake_time="07:00", window_duration_minutes=15)
        pattern = _pattern(cycle=100, windows=[TimeWindow(480, 480, 1.0)], consistency=100,
                           data_points=27)
        p = generate_prediction(window, BEDTIME, pattern)
        assert p.predicted_wake_time == HARD_WAKE
        assert p.reasoning == "Your hard wake time aligns well with your sleep pattern."

    def test_low_confidence_reasoning(self):
        late = datetime(2026, 10, 19, 2, 30)  # 3.5 h past typical bedtime
        p = generate_prediction(WINDOW, late, _pattern(cycle=90))
        assert p.confidence < 30
        assert p.reasoning == "Limited data (7 nights). Prediction is rough estimate."

    @pytest.mark.parametrize("bed_hour,bed_minute", [(21, 0), (22, 45), (23, 10), (0, 20), (1, 55)])
    @pytest.mark.parametrize("duration", [15, 30, 45, 60])
    def test_bounds_hold(self, bed_hour, bed_minute, duration):
        day = 18 if bed_hour >= 18 else 19
        bedtime = datetime(2026, 10, day, bed_hour, bed_minute)
        window = WakeWindow(id="w", hard_wake_time="07:00", window_duration_minutes=duration)
        pattern = _pattern(cycle=95, windows=[TimeWindow(420, 435, 0.7)],
                           consistency=80, data_points=40)
        p = generate_prediction(window, bedtime, pattern)
        assert 0 <= p.confidence <= 95
        assert HARD_WAKE - timedelta(minutes=duration) <= p.predicted_wake_time <= HARD_WAKE
        assert p.fallback_time == HARD_WAKE

    def test_deterministic(self):
        pattern = _pattern(cycle=93, windows=[TimeWindow(440, 470, 0.66)], consistency=72,
                           data_points=21)
        feedback = [FeedbackRating(id=str(i), immediate_feeling=4) for i in range(5)]
        first = generate_prediction(WINDOW, BEDTIME, pattern, feedback)
        second = generate_prediction(WINDOW, BEDTIME, pattern, feedback)
        assert first == second

    def test_feedback_multiplier_applied_after_adjustments(self):
        # The feedback loop's multiplier is an extension on top of the
        # regular adjustments; 1.0 must leave predictions untouched.
        pattern = _pattern(cycle=100, windows=[TimeWindow(470, 480, 0.9)])
        assert generate_prediction(WINDOW, BEDTIME, pattern, confidence_multiplier=1.0).confidence == 75
        assert generate_prediction(WINDOW, BEDTIME, pattern, confidence_multiplier=0.8).confidence == 60
        assert generate_prediction(WINDOW, BEDTIME, pattern, confidence_multiplier=1.1).confidence == 83
        assert generate_prediction(WINDOW, BEDTIME, pattern, confidence_multiplier=5.0).confidence == 95


class TestAdjustConfidence:
    def test_data_boost_capped(self):
        assert adjust_confidence(40, _pattern(data_points=12), [], BEDTIME) == 50
        assert adjust_confidence(40, _pattern(data_points=60), [], BEDTIME) == 60

    def test_consistency_boost(self):
        assert adjust_confidence(40, _pattern(consistency=100), [], BEDTIME) == 55
        assert adjust_confidence(40, _pattern(consistency=50), [], BEDTIME) == 48  # 47.5 rounds up

    def test_bedtime_penalty(self):
        # 01:00 is 120 min after 23:00 → (120 - 60) / 2 = 30
        assert adjust_confidence(60, _pattern(), [], datetime(2026, 10, 19, 1, 0)) == 30
        # within an hour: no penalty
        assert adjust_confidence(60, _pattern(), [], datetime(2026, 10, 18, 22, 15)) == 60
        # capped at 30
        assert adjust_confidence(60, _pattern(), [], datetime(2026, 10, 18, 19, 0)) == 30

    def test_feedback_bonus_uses_last_14(self):
        bad_then_good = [FeedbackRating(id=f"b{i}", immediate_feeling=1) for i in range(10)]
        bad_then_good += [FeedbackRating(id=f"g{i}", immediate_feeling=5) for i in range(14)]
        assert adjust_confidence(50, _pattern(), bad_then_good, BEDTIME) == 60
        poor = [FeedbackRating(id=f"p{i}", immediate_feeling=2) for i in range(5)]
        assert adjust_confidence(50, _pattern(), poor, BEDTIME) == 40

    def test_clamped(self):
        assert adjust_confidence(95, _pattern(consistency=100, data_points=30), [], BEDTIME) == 95
        assert adjust_confidence(5, _pattern(), [], datetime(2026, 10, 18, 18, 0)) == 0


class TestAlarmPolicy:
    def _prediction(self, confidence):
        pattern = _pattern(cycle=100, windows=[TimeWindow(470, 480, 0.9)])
        p = generate_prediction(WINDOW, BEDTIME, pattern)
        p.confidence = confidence
        return p

    def test_meets_threshold_uses_prediction(self):
        p = self._prediction(50)
        assert resolve_alarm_time(p, 50) == (p.predicted_wake_time, True)

    def test_below_threshold_uses_fallback(self):
        p = self._prediction(49)
        assert resolve_alarm_time(p, 50) == (p.fallback_time, False)

    def test_format_clock(self):
        assert format_clock(datetime(2026, 1, 1, 6, 5)) == "6:05 AM"
        assert format_clock(datetime(2026, 1, 1, 0, 30)) == "12:30 AM"
        assert format_clock(datetime(2026, 1, 1, 13, 0)) == "1:00 PM"
