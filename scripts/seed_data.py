"""
Seed Data Generator: creates realistic fake nights, an alarm and ratings
for development and demos.

Run: python scripts/seed_data.py [nights]
"""

import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from wakewise.data.database import Database
from wakewise.data.models import FeedbackRating, SleepSession, SleepStage, StageType, WakeWindow
from wakewise.data.repository import Repository
from wakewise.services.sleep_sync import summarize_stages

# fraction of each cycle spent in light → deep → light → REM
CYCLE_SHAPE = [(StageType.LIGHT, 0.2), (StageType.DEEP, 0.3),
               (StageType.LIGHT, 0.25), (StageType.REM, 0.25)]


def make_night(day: datetime) -> SleepSession:
    onset = day.replace(hour=22, minute=0) + timedelta(minutes=random.randint(30, 90))
    cycle_len = random.uniform(82, 100)
    cycles = random.randint(4, 6)

    stages = []
    cursor = onset
    for _ in range(cycles):
        for stage_type, share in CYCLE_SHAPE:
            minutes = cycle_len * share * random.uniform(0.85, 1.15)
            end = cursor + timedelta(minutes=minutes)
            stages.append(SleepStage(stage_type, cursor, end, round(minutes)))
            cursor = end
        # occasional brief awakening between cycles
        if random.random() < 0.2:
            end = cursor + timedelta(minutes=random.randint(2, 6))
            stages.append(SleepStage(StageType.AWAKE, cursor, end,
                                     (end - cursor).total_seconds() / 60))
            cursor = end

    totals = summarize_stages(stages)
    return SleepSession(
        id=f"seed_{onset:%Y%m%d}",
        date=(onset + timedelta(hours=6)).date().isoformat(),
        sleep_start=onset,
        sleep_end=cursor,
        total_duration_minutes=round(
            totals["deep_sleep_minutes"] + totals["light_sleep_minutes"] + totals["rem_sleep_minutes"]
        ),
        stages=stages,
        average_heart_rate=random.randint(52, 62),
        lowest_heart_rate=random.randint(44, 51),
        **totals,
    )


def seed(num_nights: int = 30) -> None:
    db = Database()
    db.connect()
    repo = Repository(db.conn)
    now = datetime.now()

    # ── Nights ──────────────────────────────────────────────────────────
    for i in range(num_nights):
        repo.upsert_sleep_session(make_night(now - timedelta(days=num_nights - i)), now=now)

    # ── Alarm ───────────────────────────────────────────────────────────
    repo.save_wake_window(WakeWindow(
        id="weekday", name="Weekday Alarm", hard_wake_time="07:00",
        window_duration_minutes=30, enabled=True, repeat_days=[1, 2, 3, 4, 5],
    ))

    # ── Ratings ─────────────────────────────────────────────────────────
    for i in range(min(num_nights, 20)):
        day = now - timedelta(days=20 - i)
        wake = day.replace(hour=6, minute=random.choice([35, 40, 45, 50, 55]))
        used = random.random() < 0.7
        repo.add_feedback_rating(FeedbackRating(
            id=f"feedback_seed_{i}",
            date=day.date().isoformat(),
            wake_time=wake,
            predicted_wake_time=wake,
            actual_confidence=random.randint(40, 90),
            immediate_feeling=random.choice([3, 4, 4, 5] if used else [2, 3, 3, 4]),
            alertness_after_30_min=random.choice([None, 3, 4, 5]),
            used_prediction=used,
        ), now=now)

    db.close()
    print(f"Seeded {num_nights} nights, 1 wake window and feedback ratings.")


if __name__ == "__main__":
    count = int(sys.argv[1]) if len(sys.argv) > 1 else 30
    seed(count)
