import argparse
import datetime
import json
import logging
import shutil
import sys

from db import (
    PersistenceError,
    PersonalRecordRepository,
    ProgressCacheRepository,
    SettingsRepository,
    WorkoutRepository,
    WorkoutTemplateRepository,
)
from exercise_catalog import ExerciseCatalog
from gamification_service import GamificationService
from personal_record_service import PersonalRecordService
from recommendation_service import RecommendationService
from seed_templates import TemplateSeeder
from stats_service import StatisticsService
from tools import WeightConverter

logger = logging.getLogger(__name__)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


def seed(db_path: str, catalog_path: str | None = None) -> int:
    templates = WorkoutTemplateRepository(db_path)
    return TemplateSeeder(templates, ExerciseCatalog(catalog_path)).seed_if_needed()


def show_stats(db_path: str, user_id: str, days: int | None = None) -> dict:
    workouts = WorkoutRepository(db_path)
    start = None
    if days is not None:
        start = datetime.datetime.now() - datetime.timedelta(days=days)
    stats = StatisticsService(workouts).workout_stats(user_id, start)
    return {
        "total_workouts": stats.total_workouts,
        "completed_workouts": stats.completed_workouts,
        "completion_rate": stats.completion_rate,
        "total_volume": stats.total_volume,
        "total_sets": stats.total_sets,
        "average_duration_minutes": stats.average_duration_minutes,
        "volume_by_body_part": stats.volume_by_body_part,
    }


def show_progress(db_path: str, user_id: str, settings: SettingsRepository) -> dict:
    service = GamificationService(
        WorkoutRepository(db_path), ProgressCacheRepository(db_path), settings
    )
    snapshot = service.progress(user_id)
    return {
        "total_workouts": snapshot.total_workouts,
        "total_volume": snapshot.total_volume,
        "current_streak": snapshot.streak.current_streak,
        "longest_streak": snapshot.streak.longest_streak,
        "achievements": sorted(snapshot.achievement_ids),
        "body_areas": {
            area: {"level": p.level, "experience": p.experience}
            for area, p in sorted(snapshot.body_areas.items())
        },
    }


def show_records(db_path: str, user_id: str, unit: str) -> list[str]:
    service = PersonalRecordService(PersonalRecordRepository(db_path))
    return [
        f"{r.exercise_name} ({r.record_type.name.lower()}): {r.display_value(unit)}"
        for r in service.current_records(user_id)
    ]


def recommend(db_path: str, user_id: str) -> str:
    recommendation = RecommendationService(
        WorkoutTemplateRepository(db_path)
    ).todays_recommendation(user_id)
    if recommendation is None:
        return "No templates available"
    return f"{recommendation.template.name}: {recommendation.reason}"


def serve(db_path: str, yaml_path: str, host: str, port: int) -> None:
    import uvicorn

    from rest_api import LedgerAPI

    uvicorn.run(LedgerAPI(db_path=db_path, yaml_path=yaml_path).app, host=host, port=port)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Training ledger utility commands")
    parser.add_argument("--db", default="ledger.db")
    parser.add_argument("--yaml", default="settings.yaml")
    parser.add_argument("--user", default=None)
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default=None
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    sub.add_parser("seed")

    st = sub.add_parser("stats")
    st.add_argument("--days", type=int, default=None)

    sub.add_parser("progress")
    sub.add_parser("records")
    sub.add_parser("recommend")

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    srv = sub.add_parser("serve")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=["kg", "lb"], required=True)

    args = parser.parse_args(argv)

    try:
        if args.cmd == "backup":
            backup_db(args.db, args.out)
            return 0
        if args.cmd == "restore":
            restore_db(args.src, args.db)
            return 0
        if args.cmd == "convert":
            if args.unit == "kg":
                print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
            else:
                print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
            return 0

        settings = SettingsRepository(args.db, args.yaml)
        schema = settings.schema()
        logging.basicConfig(level=args.log_level or schema.log_level)
        user_id = args.user or schema.default_user_id

        if args.cmd == "seed":
            print(f"Seeded {seed(args.db, schema.exercise_catalog_path)} templates")
        elif args.cmd == "stats":
            print(json.dumps(show_stats(args.db, user_id, args.days), indent=2))
        elif args.cmd == "progress":
            print(json.dumps(show_progress(args.db, user_id, settings), indent=2))
        elif args.cmd == "records":
            for line in show_records(args.db, user_id, schema.weight_unit):
                print(line)
        elif args.cmd == "recommend":
            print(recommend(args.db, user_id))
        elif args.cmd == "serve":
            serve(args.db, args.yaml, args.host, args.port)
    except (ValueError, PersistenceError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
