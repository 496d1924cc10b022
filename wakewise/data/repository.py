"""
Repository: the single place where SQL lives.

Every other module talks to Repository, never to raw SQL. The engine only
ever reads snapshots from here; writes (sync, ratings, alarm edits) and
reads share one lock, so appends never lose updates and a read never sees a
half-written night.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from datetime import datetime, timedelta
from typing import List, Optional

from wakewise.config import DEFAULT_SETTINGS, RETENTION_DAYS, WINDOW_DURATION_OPTIONS

from .models import (
    FeedbackRating,
    SleepSession,
    SleepStage,
    UserSettings,
    WakeWindow,
    WearableTokens,
)

logger = logging.getLogger(__name__)

# helper: parse ISO datetime strings from SQLite
_parse_dt = lambda s: datetime.fromisoformat(s) if s else None


class Repository:
    """Data-access layer wrapping a sqlite3 connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = threading.Lock()

    # ── Sleep sessions ──────────────────────────────────────────────────────

    def upsert_sleep_session(
        self, session: SleepSession, now: Optional[datetime] = None
    ) -> None:
        """Insert or replace the night for session.date, then prune old nights."""
        cutoff = (now or datetime.now()) - timedelta(days=RETENTION_DAYS)
        with self._lock, self.conn:
            self.conn.execute(
                """INSERT INTO sleep_sessions (
                    date, id, sleep_start, sleep_end, total_duration_minutes,
                    has_stages, deep_sleep_minutes, light_sleep_minutes,
                    rem_sleep_minutes, awake_minutes, average_heart_rate,
                    lowest_heart_rate
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(date) DO UPDATE SET
                    id = excluded.id,
                    sleep_start = excluded.sleep_start,
                    sleep_end = excluded.sleep_end,
                    total_duration_minutes = excluded.total_duration_minutes,
                    has_stages = excluded.has_stages,
                    deep_sleep_minutes = excluded.deep_sleep_minutes,
                    light_sleep_minutes = excluded.light_sleep_minutes,
                    rem_sleep_minutes = excluded.rem_sleep_minutes,
                    awake_minutes = excluded.awake_minutes,
                    average_heart_rate = excluded.average_heart_rate,
                    lowest_heart_rate = excluded.lowest_heart_rate""",
                (
                    session.date,
                    session.id,
                    session.sleep_start.isoformat(),
                    session.sleep_end.isoformat(),
                    session.total_duration_minutes,
                    0 if session.stages is None else 1,
                    session.deep_sleep_minutes,
                    session.light_sleep_minutes,
                    session.rem_sleep_minutes,
                    session.awake_minutes,
                    session.average_heart_rate,
                    session.lowest_heart_rate,
                ),
            )
            self.conn.execute(
                "DELETE FROM sleep_stages WHERE session_date = ?", (session.date,)
            )
            self.conn.executemany(
                """INSERT INTO sleep_stages
                    (session_date, position, stage_type, start_time, end_time, duration_minutes)
                VALUES (?, ?, ?, ?, ?, ?)""",
                [
                    (session.date, i, st.type, st.start_time.isoformat(),
                     st.end_time.isoformat(), st.duration_minutes)
                    for i, st in enumerate(session.stages or [])
                ],
            )
            self._prune_sessions(cutoff)
        logger.debug("Stored sleep session for %s", session.date)

    def list_sleep_sessions(self) -> List[SleepSession]:
        """All retained nights, oldest first, with their stages."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM sleep_sessions ORDER BY date"
            ).fetchall()
            stage_rows = self.conn.execute(
                "SELECT * FROM sleep_stages ORDER BY session_date, position"
            ).fetchall()
        stages_by_date: dict = {}
        for r in stage_rows:
            stages_by_date.setdefault(r["session_date"], []).append(self._row_to_stage(r))
        return [
            self._row_to_session(r, stages_by_date.get(r["date"], []))
            for r in rows
        ]

    def get_sleep_session(self, date: str) -> Optional[SleepSession]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM sleep_sessions WHERE date = ?", (date,)
            ).fetchone()
            if not row:
                return None
            stage_rows = self.conn.execute(
                "SELECT * FROM sleep_stages WHERE session_date = ? ORDER BY position",
                (date,),
            ).fetchall()
        return self._row_to_session(row, [self._row_to_stage(r) for r in stage_rows])

    def count_sleep_sessions(self) -> int:
        with self._lock:
            row = self.conn.execute("SELECT COUNT(*) FROM sleep_sessions").fetchone()
        return row[0]

    def _prune_sessions(self, cutoff: datetime) -> None:
        self.conn.execute(
            "DELETE FROM sleep_stages WHERE session_date IN "
            "(SELECT date FROM sleep_sessions WHERE sleep_end <= ?)",
            (cutoff.isoformat(),),
        )
        cur = self.conn.execute(
            "DELETE FROM sleep_sessions WHERE sleep_end <= ?", (cutoff.isoformat(),)
        )
        if cur.rowcount:
            logger.info("Pruned %d sleep sessions older than %d days",
                        cur.rowcount, RETENTION_DAYS)

    # ── Feedback ratings ────────────────────────────────────────────────────

    def add_feedback_rating(
        self, rating: FeedbackRating, now: Optional[datetime] = None
    ) -> None:
        """Append a rating (replacing one with the same id) and prune old ones."""
        cutoff = (now or datetime.now()) - timedelta(days=RETENTION_DAYS)
        with self._lock, self.conn:
            row = self.conn.execute(
                "SELECT COALESCE(MAX(recorded_seq), 0) FROM feedback_ratings"
            ).fetchone()
            self.conn.execute(
                """INSERT OR REPLACE INTO feedback_ratings (
                    id, date, wake_time, predicted_wake_time, actual_confidence,
                    immediate_feeling, alertness_after_30_min, used_prediction,
                    sleep_session_id, recorded_seq
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    rating.id,
                    rating.date,
                    rating.wake_time.isoformat(),
                    rating.predicted_wake_time.isoformat(),
                    rating.actual_confidence,
                    rating.immediate_feeling,
                    rating.alertness_after_30_min,
                    int(rating.used_prediction),
                    rating.sleep_session_id,
                    row[0] + 1,
                ),
            )
            cur = self.conn.execute(
                "DELETE FROM feedback_ratings WHERE wake_time <= ?",
                (cutoff.isoformat(),),
            )
            if cur.rowcount:
                logger.info("Pruned %d feedback ratings older than %d days",
                            cur.rowcount, RETENTION_DAYS)

    def list_feedback_ratings(self) -> List[FeedbackRating]:
        """All retained ratings in submission order."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM feedback_ratings ORDER BY recorded_seq"
            ).fetchall()
        return [self._row_to_rating(r) for r in rows]

    # ── Wake windows ────────────────────────────────────────────────────────

    def save_wake_window(self, window: WakeWindow) -> None:
        if window.window_duration_minutes not in WINDOW_DURATION_OPTIONS:
            raise ValueError(
                f"Unsupported window duration {window.window_duration_minutes}; "
                f"expected one of {WINDOW_DURATION_OPTIONS}."
            )
        with self._lock, self.conn:
            self.conn.execute(
                """INSERT INTO wake_windows (
                    id, name, hard_wake_time, window_duration_minutes,
                    earliest_wake_time, enabled, repeat_days
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    hard_wake_time = excluded.hard_wake_time,
                    window_duration_minutes = excluded.window_duration_minutes,
                    earliest_wake_time = excluded.earliest_wake_time,
                    enabled = excluded.enabled,
                    repeat_days = excluded.repeat_days""",
                (
                    window.id, window.name, window.hard_wake_time,
                    window.window_duration_minutes, window.earliest_wake_time,
                    int(window.enabled), json.dumps(sorted(window.repeat_days)),
                ),
            )

    def get_wake_window(self, window_id: str) -> Optional[WakeWindow]:
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM wake_windows WHERE id = ?", (window_id,)
            ).fetchone()
        return self._row_to_window(row) if row else None

    def list_wake_windows(self) -> List[WakeWindow]:
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM wake_windows ORDER BY created_at, id"
            ).fetchall()
        return [self._row_to_window(r) for r in rows]

    def delete_wake_window(self, window_id: str) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM wake_windows WHERE id = ?", (window_id,))
        logger.info("Deleted wake window %s", window_id)

    # ── User settings ───────────────────────────────────────────────────────

    def get_user_settings(self) -> UserSettings:
        """Stored values layered over DEFAULT_SETTINGS."""
        values = dict(DEFAULT_SETTINGS)
        with self._lock:
            rows = self.conn.execute("SELECT key, value FROM user_settings").fetchall()
        for r in rows:
            if r["key"] in values:
                values[r["key"]] = json.loads(r["value"])
        return UserSettings(**values)

    def save_user_settings(self, **changes) -> UserSettings:
        """Partial update, e.g. save_user_settings(confidence_threshold=60)."""
        unknown = set(changes) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")
        with self._lock, self.conn:
            self.conn.executemany(
                "INSERT OR REPLACE INTO user_settings (key, value) VALUES (?, ?)",
                [(k, json.dumps(v)) for k, v in changes.items()],
            )
        return self.get_user_settings()

    # ── Wearable tokens ─────────────────────────────────────────────────────

    def get_wearable_tokens(self) -> Optional[WearableTokens]:
        with self._lock:
            row = self.conn.execute("SELECT * FROM wearable_tokens WHERE id = 1").fetchone()
        if not row:
            return None
        return WearableTokens(
            access_token=row["access_token"],
            access_token_secret=row["access_token_secret"],
            user_id=row["user_id"],
        )

    def save_wearable_tokens(self, tokens: WearableTokens) -> None:
        with self._lock, self.conn:
            self.conn.execute(
                "INSERT OR REPLACE INTO wearable_tokens "
                "(id, access_token, access_token_secret, user_id) VALUES (1, ?, ?, ?)",
                (tokens.access_token, tokens.access_token_secret, tokens.user_id),
            )

    def clear_wearable_tokens(self) -> None:
        with self._lock, self.conn:
            self.conn.execute("DELETE FROM wearable_tokens")

    # ── Reset ───────────────────────────────────────────────────────────────

    def reset_all_data(self) -> None:
        """Delete all data. Requires explicit confirmation by the caller."""
        with self._lock, self.conn:
            for table in ["sleep_stages", "sleep_sessions", "feedback_ratings",
                          "wake_windows", "user_settings", "wearable_tokens"]:
                self.conn.execute(f"DELETE FROM {table}")
        logger.warning("All data has been reset.")

    # ── Row mappers ─────────────────────────────────────────────────────────

    @staticmethod
    def _row_to_stage(row: sqlite3.Row) -> SleepStage:
        return SleepStage(
            type=row["stage_type"],
            start_time=_parse_dt(row["start_time"]),
            end_time=_parse_dt(row["end_time"]),
            duration_minutes=row["duration_minutes"],
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row, stages: List[SleepStage]) -> SleepSession:
        return SleepSession(
            id=row["id"], date=row["date"],
            sleep_start=_parse_dt(row["sleep_start"]),
            sleep_end=_parse_dt(row["sleep_end"]),
            total_duration_minutes=row["total_duration_minutes"],
            stages=stages if row["has_stages"] else None,
            deep_sleep_minutes=row["deep_sleep_minutes"] or 0.0,
            light_sleep_minutes=row["light_sleep_minutes"] or 0.0,
            rem_sleep_minutes=row["rem_sleep_minutes"] or 0.0,
            awake_minutes=row["awake_minutes"] or 0.0,
            average_heart_rate=row["average_heart_rate"],
            lowest_heart_rate=row["lowest_heart_rate"],
        )

    @staticmethod
    def _row_to_window(row: sqlite3.Row) -> WakeWindow:
        return WakeWindow(
            id=row["id"], name=row["name"],
            hard_wake_time=row["hard_wake_time"],
            window_duration_minutes=row["window_duration_minutes"],
            earliest_wake_time=row["earliest_wake_time"],
            enabled=bool(row["enabled"]),
            repeat_days=json.loads(row["repeat_days"]),
        )

    @staticmethod
    def _row_to_rating(row: sqlite3.Row) -> FeedbackRating:
        return FeedbackRating(
            id=row["id"], date=row["date"],
            wake_time=_parse_dt(row["wake_time"]),
            predicted_wake_time=_parse_dt(row["predicted_wake_time"]),
            actual_confidence=row["actual_confidence"],
            immediate_feeling=row["immediate_feeling"],
            alertness_after_30_min=row["alertness_after_30_min"],
            used_prediction=bool(row["used_prediction"]),
            sleep_session_id=row["sleep_session_id"],
        )


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   The Repository is the ONLY place raw SQL queries live. The engine calls
#   list_sleep_sessions() / list_feedback_ratings() / get_user_settings() to
#   get a fresh snapshot for each request; sync and feedback write through
#   upsert_sleep_session() / add_feedback_rating().
#
# Key methods:
#   - upsert_sleep_session(): one transaction replaces the night (keyed by
#     date), rewrites its stages and drops nights past the 90-day window.
#   - add_feedback_rating(): appends with a submission sequence number and
#     drops ratings past the 90-day window.
#   - save_user_settings(): partial update layered over DEFAULT_SETTINGS.
#
# Data flow:
#   Service layer → Repository.method() → SQL → sqlite3.Row → dataclass model
