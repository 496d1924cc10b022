from .database import Database
from .models import (
    FeedbackRating, SleepPattern, SleepSession, SleepStage, StageType,
    UserSettings, WakePrediction, WakeWindow,
)
from .repository import Repository

__all__ = [
    "Database", "FeedbackRating", "SleepPattern", "SleepSession", "SleepStage",
    "StageType", "UserSettings", "WakePrediction", "WakeWindow", "Repository",
]
