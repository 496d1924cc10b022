"""
WakeWise: smart wake alarm powered by your sleep data.
Entry point: prints tonight's plan and feedback insights from the local DB.
"""

import argparse
import logging
import sys
from pathlib import Path

# Ensure the package is importable when run from a checkout
sys.path.insert(0, str(Path(__file__).resolve().parent))

from wakewise.data.database import Database
from wakewise.data.repository import Repository
from wakewise.services.feedback_engine import FeedbackEngine
from wakewise.services.prediction_service import PredictionService, default_bedtime


def setup_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler("wakewise.log", encoding="utf-8"),
        ],
    )


def bedtime_arg(value: str):
    """argparse type for --bedtime: "HH:MM" on a 24-hour clock."""
    try:
        hours, minutes = (int(part) for part in value.split(":"))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected HH:MM, got '{value}'") from None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise argparse.ArgumentTypeError(f"expected HH:MM, got '{value}'")
    return hours, minutes


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="wakewise", description=__doc__)
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    predict = sub.add_parser("predict", help="plan tonight's alarm")
    predict.add_argument("--bedtime", type=bedtime_arg, help="estimated bedtime, HH:MM (default 23:00)")
    predict.add_argument("--window", help="wake window id (default: today's active one)")

    sub.add_parser("pattern", help="show the detected sleep pattern")
    sub.add_parser("stats", help="show wake feedback statistics and insights")
    return parser.parse_args(argv)


def cmd_predict(repo: Repository, args: argparse.Namespace) -> int:
    service = PredictionService(repo)
    window = repo.get_wake_window(args.window) if args.window else service.active_wake_window()
    if window is None:
        print("No active wake window for today.")
        return 1

    if args.bedtime:
        hours, minutes = args.bedtime
        bedtime = default_bedtime(hour=hours, minute=minutes)
    else:
        bedtime = default_bedtime()

    plan = service.plan_alarm(window, bedtime)
    p = plan.prediction
    print(f"Wake window:  {window.name or window.id} (deadline {window.hard_wake_time})")
    print(f"Predicted:    {p.predicted_wake_time:%Y-%m-%d %H:%M} ({p.predicted_stage})")
    print(f"Confidence:   {p.confidence}%")
    print(f"Reasoning:    {p.reasoning}")
    print(f"Alarm fires:  {plan.alarm_time:%H:%M} ({'predicted' if plan.used_prediction else 'fallback'})")
    if plan.backup_time:
        print(f"Backup alarm: {plan.backup_time:%H:%M}")
    return 0


def cmd_pattern(repo: Repository) -> int:
    pattern = PredictionService(repo).current_pattern()
    if pattern is None:
        print(f"Not enough nights yet ({repo.count_sleep_sessions()} stored).")
        return 1
    print(f"Nights analyzed:  {pattern.data_points}")
    print(f"Average sleep:    {pattern.average_sleep_duration} min")
    print(f"Cycle length:     {pattern.average_cycle_length} min")
    print(f"Consistency:      {pattern.consistency}/100")
    for w in pattern.typical_light_sleep_windows:
        print(f"  light sleep {w.start_minutes_from_sleep:>4.0f}-{w.end_minutes_from_sleep:<4.0f} min "
              f"after onset (p={w.probability:.2f})")
    return 0


def cmd_stats(repo: Repository) -> int:
    engine = FeedbackEngine(repo)
    stats = engine.get_stats()
    print(f"Ratings:              {stats.total_ratings}")
    print(f"Average feeling:      {stats.average_feeling}")
    if stats.average_alertness is not None:
        print(f"Average alertness:    {stats.average_alertness}")
    print(f"Prediction accuracy:  {stats.prediction_accuracy}%")
    print(f"Improvement trend:    {stats.improvement_trend:+d}")
    for line in engine.get_insights():
        print(f"  - {line}")
    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    db = Database(args.db)
    repo = Repository(db.connect())
    try:
        if args.command == "predict":
            return cmd_predict(repo, args)
        if args.command == "pattern":
            return cmd_pattern(repo)
        return cmd_stats(repo)
    finally:
        db.close()
        logger.debug("Done.")


if __name__ == "__main__":
    sys.exit(main())
