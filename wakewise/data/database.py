"""
SQLite database initialization and connection management.

Single responsibility: own the connection, create tables.
All actual queries live in Repository.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from wakewise.config import DEFAULT_DB_PATH

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
-- Sleep sessions (one row per night, keyed by date) --------------------------
CREATE TABLE IF NOT EXISTS sleep_sessions (
    date                    TEXT    PRIMARY KEY,
    id                      TEXT,
    sleep_start             TEXT    NOT NULL,
    sleep_end               TEXT    NOT NULL,
    total_duration_minutes  REAL    NOT NULL DEFAULT 0,
    has_stages              INTEGER NOT NULL DEFAULT 1,
    deep_sleep_minutes      REAL    DEFAULT 0,
    light_sleep_minutes     REAL    DEFAULT 0,
    rem_sleep_minutes       REAL    DEFAULT 0,
    awake_minutes           REAL    DEFAULT 0,
    average_heart_rate      REAL,
    lowest_heart_rate       REAL
);

-- Sleep stages (ordered within a night) ---------------------------------------
CREATE TABLE IF NOT EXISTS sleep_stages (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    session_date        TEXT    NOT NULL REFERENCES sleep_sessions(date) ON DELETE CASCADE,
    position            INTEGER NOT NULL,
    stage_type          TEXT    NOT NULL,
    start_time          TEXT    NOT NULL,
    end_time            TEXT    NOT NULL,
    duration_minutes    REAL    NOT NULL DEFAULT 0
);

-- Wake windows (alarms) ---------------------------------------------------------
CREATE TABLE IF NOT EXISTS wake_windows (
    id                      TEXT    PRIMARY KEY,
    name                    TEXT    NOT NULL DEFAULT '',
    hard_wake_time          TEXT    NOT NULL,
    window_duration_minutes INTEGER NOT NULL,
    earliest_wake_time      TEXT,
    enabled                 INTEGER NOT NULL DEFAULT 1,
    repeat_days             TEXT    NOT NULL DEFAULT '[]',
    created_at              TEXT    NOT NULL DEFAULT (datetime('now'))
);

-- Feedback ratings ----------------------------------------------------------------
CREATE TABLE IF NOT EXISTS feedback_ratings (
    id                      TEXT    PRIMARY KEY,
    date                    TEXT    NOT NULL,
    wake_time               TEXT    NOT NULL,
    predicted_wake_time     TEXT    NOT NULL,
    actual_confidence       INTEGER NOT NULL DEFAULT 0,
    immediate_feeling       INTEGER NOT NULL,
    alertness_after_30_min  INTEGER,
    used_prediction         INTEGER NOT NULL DEFAULT 0,
    sleep_session_id        TEXT,
    recorded_seq            INTEGER NOT NULL DEFAULT 0
);

-- User settings (key/value, JSON-encoded values) -----------------------------------
CREATE TABLE IF NOT EXISTS user_settings (
    key     TEXT    PRIMARY KEY,
    value   TEXT    NOT NULL
);

-- Wearable link tokens (single row) -----------------------------------------------
CREATE TABLE IF NOT EXISTS wearable_tokens (
    id                  INTEGER PRIMARY KEY CHECK (id = 1),
    access_token        TEXT    NOT NULL,
    access_token_secret TEXT    NOT NULL,
    user_id             TEXT    NOT NULL
);

-- Indexes for common queries -------------------------------------------------------
CREATE INDEX IF NOT EXISTS idx_stages_session   ON sleep_stages(session_date, position);
CREATE INDEX IF NOT EXISTS idx_sessions_end     ON sleep_sessions(sleep_end);
CREATE INDEX IF NOT EXISTS idx_feedback_wake    ON feedback_ratings(wake_time);
"""


class Database:
    """Thin wrapper around a SQLite connection."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        self.db_path = db_path or DEFAULT_DB_PATH
        self.conn: Optional[sqlite3.Connection] = None

    # -- lifecycle -----------------------------------------------------------

    def connect(self) -> sqlite3.Connection:
        """Open (or return existing) connection and ensure schema exists."""
        if self.conn is not None:
            return self.conn
        logger.info("Connecting to SQLite at %s", self.db_path)
        self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        if str(self.db_path) != ":memory:":
            self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")
        self._create_tables()
        return self.conn

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed.")

    # -- internal ------------------------------------------------------------

    def _create_tables(self) -> None:
        assert self.conn is not None
        self.conn.executescript(SCHEMA_SQL)
        self.conn.commit()
        logger.info("Database schema ensured.")


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------
# What this file does:
#   Manages the SQLite connection and makes sure all tables exist on startup.
#   This is the storage collaborator the engine reads its history from.
#
# Key pieces:
#   - SCHEMA_SQL: full DDL, idempotent (CREATE IF NOT EXISTS).
#   - sleep_sessions is keyed by date so a re-synced night replaces the old
#     row; its stages cascade away with it.
#   - feedback_ratings.recorded_seq keeps submission order, which is what
#     "the last 14 ratings" means to the predictor and feedback loop.
#
# Data flow:
#   App start → Database.connect() → tables created → Repository uses conn
