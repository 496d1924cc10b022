"""
Sleep Sync: normalizes wearable sleep summaries into SleepSession records.

The wearable client does the fetching; this module only maps its JSON
(Garmin wellness field names) onto the canonical schema and stores it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional

from wakewise.data.models import SleepSession, SleepStage, StageType
from wakewise.data.repository import Repository
from wakewise.ml.numeric import minutes_between, round_half_up

logger = logging.getLogger(__name__)

# Garmin sleepLevels.activityLevel → stage; anything else is awake
ACTIVITY_LEVEL_STAGES = {
    0: StageType.DEEP,
    1: StageType.LIGHT,
    2: StageType.REM,
}

STAGE_MINUTE_FIELDS = {
    StageType.DEEP: "deep_sleep_minutes",
    StageType.LIGHT: "light_sleep_minutes",
    StageType.REM: "rem_sleep_minutes",
    StageType.AWAKE: "awake_minutes",
}


class SleepSyncService:
    """Stores normalized nights; re-syncing a date replaces it."""

    def __init__(self, repo: Repository) -> None:
        self.repo = repo

    def ingest(self, payloads: Iterable[dict], now: Optional[datetime] = None) -> List[SleepSession]:
        sessions = [normalize_sleep_payload(p) for p in payloads]
        for session in sessions:
            self.repo.upsert_sleep_session(session, now=now)
        logger.info("Synced %d sleep sessions", len(sessions))
        return sessions


def normalize_sleep_payload(item: dict) -> SleepSession:
    """Map one wearable sleep summary onto a SleepSession."""
    levels = item.get("sleepLevels")
    stages = [_parse_stage(level) for level in levels] if levels is not None else None

    session = SleepSession(
        id=str(item["summaryId"]) if item.get("summaryId") is not None else item["calendarDate"],
        date=item["calendarDate"],
        sleep_start=_parse_timestamp(item["sleepStartTimestampGMT"]),
        sleep_end=_parse_timestamp(item["sleepEndTimestampGMT"]),
        total_duration_minutes=round_half_up((item.get("sleepTimeSeconds") or 0) / 60),
        stages=stages,
        deep_sleep_minutes=round_half_up((item.get("deepSleepSeconds") or 0) / 60),
        light_sleep_minutes=round_half_up((item.get("lightSleepSeconds") or 0) / 60),
        rem_sleep_minutes=round_half_up((item.get("remSleepSeconds") or 0) / 60),
        awake_minutes=round_half_up((item.get("awakeSleepSeconds") or 0) / 60),
        average_heart_rate=item.get("averageHR"),
        lowest_heart_rate=item.get("lowestHR"),
    )

    # some devices only send the level timeline
    if stages and "sleepTimeSeconds" not in item:
        for name, minutes in summarize_stages(stages).items():
            setattr(session, name, minutes)
        session.total_duration_minutes = (
            session.deep_sleep_minutes + session.light_sleep_minutes + session.rem_sleep_minutes
        )
    return session


def summarize_stages(stages: Iterable[SleepStage]) -> Dict[str, float]:
    """Per-stage minute totals, keyed by the SleepSession field name."""
    totals = {name: 0.0 for name in STAGE_MINUTE_FIELDS.values()}
    for stage in stages:
        totals[STAGE_MINUTE_FIELDS.get(stage.type, "awake_minutes")] += stage.duration_minutes
    return totals


def _parse_stage(level: dict) -> SleepStage:
    start = _parse_timestamp(level["startGMT"])
    end = _parse_timestamp(level["endGMT"])
    return SleepStage(
        type=ACTIVITY_LEVEL_STAGES.get(level.get("activityLevel"), StageType.AWAKE),
        start_time=start,
        end_time=end,
        duration_minutes=round_half_up(minutes_between(start, end)),
    )


def _parse_timestamp(value) -> datetime:
    """
    GMT epoch milliseconds or ISO strings → naive local time, which is what
    bedtime/wake-time consistency is measured in.
    """
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000)
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone().replace(tzinfo=None)
