import datetime
import logging
import sqlite3
from dataclasses import asdict
from typing import Callable, List

from fastapi import APIRouter, Body, FastAPI, HTTPException

from config import APP_VERSION
from db import (
    ConsistencyError,
    NotFoundError,
    PersistenceError,
    PersonalRecordRepository,
    ProgressCacheRepository,
    SettingsRepository,
    UserWorkoutRepository,
    WorkoutRepository,
    WorkoutTemplateRepository,
)
from exercise_catalog import ExerciseCatalog
from gamification_service import GamificationService, snapshot_to_dict
from models import (
    PersonalRecord,
    Recommendation,
    TemplateCategory,
    TemplateDifficulty,
    UserWorkout,
    Workout,
    WorkoutStatus,
    WorkoutTemplate,
)
from personal_record_service import PersonalRecordService
from planner_service import PlannerService
from recommendation_service import RecommendationService
from seed_templates import TemplateSeeder
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


def _error_status(error: Exception) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConsistencyError):
        return 409
    if isinstance(error, PersistenceError):
        return 503
    return 400


def _http_error(error: Exception) -> HTTPException:
    return HTTPException(status_code=_error_status(error), detail=str(error))


def _parse_datetime(value: str | None) -> datetime.datetime | None:
    if value is None:
        return None
    try:
        return datetime.datetime.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="dates must be in ISO 8601 format")


def _parse_status(value: str | None) -> WorkoutStatus | None:
    if value is None:
        return None
    try:
        return WorkoutStatus[value.upper()]
    except KeyError:
        raise HTTPException(status_code=400, detail=f"unknown status {value}")


def _workout_out(workout: Workout) -> dict:
    data = asdict(workout)
    data["status"] = workout.status.name.lower()
    data["total_volume"] = workout.total_volume
    data["total_sets"] = workout.total_sets
    data["completed_sets"] = workout.completed_sets
    data["duration_minutes"] = workout.duration_minutes
    return data


def _template_out(template: WorkoutTemplate) -> dict:
    data = asdict(template)
    data["category"] = template.category.value
    data["difficulty"] = template.difficulty.name.lower()
    data["is_system"] = template.is_system
    data["total_sets"] = template.total_sets
    return data


def _record_out(record: PersonalRecord, unit: str = "kg") -> dict:
    data = asdict(record)
    data["record_type"] = record.record_type.name.lower()
    data["display_value"] = record.display_value(unit)
    return data


def _recommendation_out(recommendation: Recommendation | None) -> dict | None:
    if recommendation is None:
        return None
    return {
        "template": _template_out(recommendation.template),
        "reason": recommendation.reason,
    }


class LedgerAPI:
    """Provides REST endpoints for the training ledger."""

    def __init__(
        self,
        db_path: str = "ledger.db",
        yaml_path: str | None = "settings.yaml",
        connection: sqlite3.Connection | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
        *,
        seed_templates: bool = True,
    ) -> None:
        self.db_path = db_path
        self.settings = SettingsRepository(db_path, yaml_path, connection=connection)
        self.workouts = WorkoutRepository(db_path, connection=connection, clock=clock)
        self.templates = WorkoutTemplateRepository(db_path, connection=connection, clock=clock)
        self.user_workouts = UserWorkoutRepository(db_path, connection=connection, clock=clock)
        self.records = PersonalRecordRepository(db_path, connection=connection, clock=clock)
        self.progress_cache = ProgressCacheRepository(db_path, connection=connection, clock=clock)
        self.catalog = ExerciseCatalog(self.settings.schema().exercise_catalog_path)
        self.statistics = StatisticsService(self.workouts)
        self.gamification = GamificationService(
            self.workouts, self.progress_cache, self.settings
        )
        self.personal_records = PersonalRecordService(self.records, settings_repo=self.settings)
        self.recommender = RecommendationService(self.templates)
        self.planner = PlannerService(
            self.templates,
            self.user_workouts,
            self.workouts,
            self.catalog,
            self.settings,
        )
        self.seeder = TemplateSeeder(self.templates, self.catalog)
        if seed_templates:
            self.seeder.seed_if_needed()
        self.app = FastAPI(
            title="Training Ledger API",
            description="REST API for workout logging, templates and progression",
            version=APP_VERSION,
        )
        self._setup_routes()

    def _user(self, user_id: str | None) -> str:
        return user_id or self.settings.schema().default_user_id

    def _unit(self) -> str:
        return self.settings.schema().weight_unit

    def _setup_routes(self) -> None:
        workouts_router = APIRouter(prefix="/workouts", tags=["Workouts"])
        templates_router = APIRouter(prefix="/templates", tags=["Templates"])
        user_workouts_router = APIRouter(prefix="/user_workouts", tags=["User Workouts"])
        stats_router = APIRouter(prefix="/stats", tags=["Statistics"])
        progress_router = APIRouter(prefix="/progress", tags=["Progress"])
        records_router = APIRouter(prefix="/personal_records", tags=["Personal Records"])
        recommendations_router = APIRouter(prefix="/recommendations", tags=["Recommendations"])

        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and database connectivity.",
        )
        def health():
            try:
                self.workouts.fetch_all("SELECT 1;")
                return {"status": "ok", "version": APP_VERSION}
            except PersistenceError as e:
                raise _http_error(e)

        @self.app.get("/settings")
        def get_settings():
            return self.settings.all_settings()

        @self.app.put("/settings/{key}")
        def set_setting(key: str, value: str):
            try:
                self.settings.set_text(key, value)
                return {"status": "updated"}
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        @self.app.get("/exercises")
        def search_exercises(query: str | None = None, body_part: str | None = None):
            if body_part:
                found = self.catalog.by_body_part(body_part)
            elif query:
                found = self.catalog.search(query)
            else:
                found = self.catalog.all()
            return [asdict(e) for e in found]

        # workouts --------------------------------------------------------
        @workouts_router.post(
            "",
            summary="Create workout",
            description="Plan a workout from catalog exercise ids.",
        )
        def create_workout(
            name: str,
            user_id: str | None = None,
            planned_duration_minutes: int | None = None,
            notes: str | None = None,
            exercise_ids: List[str] = Body([]),
        ):
            try:
                workout = self.planner.create_workout(
                    self._user(user_id),
                    name,
                    exercise_ids,
                    planned_duration_minutes,
                    notes,
                )
                return {"id": workout.workout_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.get(
            "",
            summary="List workouts",
            description="Workouts filtered by status and creation date range.",
        )
        def list_workouts(
            user_id: str | None = None,
            status: str | None = None,
            start_date: str | None = None,
            end_date: str | None = None,
            descending: bool = True,
            limit: int | None = None,
            offset: int | None = None,
        ):
            workouts = self.workouts.list(
                self._user(user_id),
                status=_parse_status(status),
                start=_parse_datetime(start_date),
                end=_parse_datetime(end_date),
                descending=descending,
                limit=limit,
                offset=offset,
            )
            return [_workout_out(w) for w in workouts]

        @workouts_router.get("/summaries")
        def list_workout_summaries(
            user_id: str | None = None,
            status: str | None = None,
            limit: int | None = None,
            offset: int | None = None,
        ):
            summaries = self.workouts.list_summaries(
                self._user(user_id), _parse_status(status), limit, offset
            )
            return [
                dict(asdict(s), status=s.status.name.lower()) for s in summaries
            ]

        @workouts_router.get("/{workout_id}")
        def get_workout(workout_id: str):
            workout = self.workouts.get(workout_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return _workout_out(workout)

        @workouts_router.delete("/{workout_id}")
        def delete_workout(workout_id: str):
            if not self.workouts.delete(workout_id):
                raise HTTPException(status_code=404, detail="workout not found")
            return {"status": "deleted"}

        @workouts_router.post("/{workout_id}/start")
        def start_workout(workout_id: str):
            try:
                return _workout_out(self.workouts.start(workout_id))
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.post(
            "/{workout_id}/complete",
            summary="Complete workout",
            description="Finish a session, detect personal records and update progress.",
        )
        def complete_workout(workout_id: str):
            try:
                workout, achievements = self.gamification.complete_workout(workout_id)
                records = self.personal_records.check_workout(workout)
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)
            unit = self._unit()
            return {
                "workout": _workout_out(workout),
                "achievements": [asdict(a) for a in achievements],
                "personal_records": [_record_out(r, unit) for r in records],
            }

        @workouts_router.post("/{workout_id}/cancel")
        def cancel_workout(workout_id: str):
            try:
                return _workout_out(self.workouts.cancel(workout_id))
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.post("/{workout_id}/exercises/{exercise_id}/sets")
        def add_set(
            workout_id: str,
            exercise_id: str,
            weight: float,
            reps: int,
            is_completed: bool = False,
            rest_time_seconds: int | None = None,
            notes: str | None = None,
        ):
            try:
                workout_set = self.workouts.add_set(
                    workout_id,
                    exercise_id,
                    weight,
                    reps,
                    is_completed=is_completed,
                    rest_time_seconds=rest_time_seconds,
                    notes=notes,
                )
                return asdict(workout_set)
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.put("/{workout_id}/exercises/{exercise_id}/sets/{set_number}")
        def update_set(
            workout_id: str,
            exercise_id: str,
            set_number: int,
            weight: float | None = None,
            reps: int | None = None,
            is_completed: bool | None = None,
            rest_time_seconds: int | None = None,
            notes: str | None = None,
        ):
            changes = {
                k: v
                for k, v in {
                    "weight": weight,
                    "reps": reps,
                    "is_completed": is_completed,
                    "rest_time_seconds": rest_time_seconds,
                    "notes": notes,
                }.items()
                if v is not None
            }
            try:
                return asdict(
                    self.workouts.update_set(workout_id, exercise_id, set_number, **changes)
                )
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.delete("/{workout_id}/exercises/{exercise_id}/sets/{set_number}")
        def remove_set(workout_id: str, exercise_id: str, set_number: int):
            try:
                self.workouts.remove_set(workout_id, exercise_id, set_number)
                return {"status": "deleted"}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.post("/{workout_id}/template")
        def template_from_workout(
            workout_id: str,
            name: str,
            description: str = "",
            category: str = TemplateCategory.CUSTOM.value,
        ):
            workout = self.workouts.get(workout_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            try:
                template_id = self.templates.create_from_workout(
                    workout, name, description, TemplateCategory(category)
                )
                return {"id": template_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @workouts_router.post("/{workout_id}/import")
        def import_workout(workout_id: str, name: str | None = None):
            try:
                return {"id": self.planner.import_workout(workout_id, name).user_workout_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        # templates -------------------------------------------------------
        @templates_router.post("")
        def create_template(
            name: str,
            user_id: str | None = None,
            description: str = "",
            category: str = TemplateCategory.CUSTOM.value,
            difficulty: int = int(TemplateDifficulty.BEGINNER),
            estimated_duration_minutes: int | None = None,
            exercise_ids: List[str] = Body([]),
        ):
            try:
                template = self.planner.create_template(
                    self._user(user_id),
                    name,
                    exercise_ids,
                    description,
                    TemplateCategory(category),
                    TemplateDifficulty(difficulty),
                    estimated_duration_minutes,
                )
                return {"id": template.template_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @templates_router.get(
            "",
            summary="List templates",
            description="Templates visible to a user, or one owner's templates filtered and sorted.",
        )
        def list_templates(
            user_id: str | None = None,
            owner_only: bool = False,
            category: str | None = None,
            difficulty: int | None = None,
            favorites_only: bool = False,
            search: str | None = None,
            order_by: str = "updated_at",
            ascending: bool = False,
            limit: int | None = None,
            offset: int | None = None,
        ):
            user = self._user(user_id)
            if not owner_only and category is None and difficulty is None and not favorites_only and not search:
                return [_template_out(t) for t in self.templates.list_visible(user)]
            try:
                templates = self.templates.list(
                    user_id=user,
                    category=TemplateCategory(category) if category else None,
                    difficulty=TemplateDifficulty(difficulty) if difficulty is not None else None,
                    is_favorite=True if favorites_only else None,
                    search=search,
                    order_by=order_by,
                    ascending=ascending,
                    limit=limit,
                    offset=offset,
                )
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))
            return [_template_out(t) for t in templates]

        @templates_router.get("/stats")
        def template_stats(user_id: str | None = None):
            stats = self.templates.stats(self._user(user_id))
            return dict(
                asdict(stats),
                average_usage=stats.average_usage,
                usage_rate=stats.usage_rate,
            )

        @templates_router.get("/popular")
        def popular_templates(user_id: str | None = None, limit: int = 5):
            return [_template_out(t) for t in self.templates.popular(self._user(user_id), limit)]

        @templates_router.get("/recent")
        def recent_templates(user_id: str | None = None, limit: int = 5):
            return [_template_out(t) for t in self.templates.recent(self._user(user_id), limit)]

        @templates_router.get("/by_category")
        def templates_by_category(user_id: str | None = None):
            grouped = self.templates.by_category(self._user(user_id))
            return {c.value: [_template_out(t) for t in ts] for c, ts in grouped.items()}

        @templates_router.post("/seed")
        def seed_system_templates():
            return {"seeded": self.seeder.seed_if_needed()}

        @templates_router.get("/{template_id}")
        def get_template(template_id: str):
            template = self.templates.get(template_id)
            if template is None:
                raise HTTPException(status_code=404, detail="template not found")
            return _template_out(template)

        @templates_router.put("/{template_id}")
        def update_template(
            template_id: str,
            name: str | None = None,
            description: str | None = None,
            category: str | None = None,
            difficulty: int | None = None,
        ):
            template = self.templates.get(template_id)
            if template is None:
                raise HTTPException(status_code=404, detail="template not found")
            changes: dict = {}
            try:
                if name is not None:
                    changes["name"] = name
                if description is not None:
                    changes["description"] = description
                if category is not None:
                    changes["category"] = TemplateCategory(category)
                if difficulty is not None:
                    changes["difficulty"] = TemplateDifficulty(difficulty)
                updated = self.templates.update(template.copy_with(**changes))
                return _template_out(updated)
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @templates_router.delete("/{template_id}")
        def delete_template(template_id: str):
            try:
                if not self.templates.delete(template_id):
                    raise NotFoundError("template not found")
                return {"status": "deleted"}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @templates_router.post("/{template_id}/favorite")
        def toggle_favorite(template_id: str):
            try:
                return {"is_favorite": self.templates.toggle_favorite(template_id)}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @templates_router.post("/{template_id}/use")
        def use_template(template_id: str):
            try:
                self.templates.record_usage(template_id)
                return {"status": "recorded"}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @templates_router.post("/{template_id}/user_workouts")
        def user_workout_from_template(
            template_id: str, user_id: str | None = None, name: str | None = None
        ):
            try:
                user_workout = self.planner.create_from_template(
                    template_id, self._user(user_id), name
                )
                return {"id": user_workout.user_workout_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @templates_router.post("/{template_id}/start")
        def start_from_template(
            template_id: str, user_id: str | None = None, prefill_sets: bool = False
        ):
            try:
                workout = self.planner.start_from_template(
                    template_id, self._user(user_id), prefill_sets
                )
                return {"id": workout.workout_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        # user workouts ---------------------------------------------------
        def user_workout_out(user_workout: UserWorkout) -> dict:
            data = asdict(user_workout)
            data["source"] = user_workout.source.value
            data["effective_exercises"] = [
                asdict(e) for e in self.planner.effective_exercises(user_workout)
            ]
            data["modification_summary"] = user_workout.modification_summary
            return data

        @user_workouts_router.post("")
        def create_user_workout(
            name: str,
            user_id: str | None = None,
            planned_duration_minutes: int | None = None,
            notes: str | None = None,
            exercise_ids: List[str] = Body([]),
        ):
            try:
                exercises = [
                    self.planner.exercise_from_catalog(eid, order_index=i)
                    for i, eid in enumerate(exercise_ids)
                ]
                user_workout = self.planner.create_custom(
                    self._user(user_id), name, exercises, planned_duration_minutes, notes
                )
                return {"id": user_workout.user_workout_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @user_workouts_router.get("")
        def list_user_workouts(user_id: str | None = None, base_template_id: str | None = None):
            return [
                user_workout_out(uw)
                for uw in self.user_workouts.list(self._user(user_id), base_template_id)
            ]

        @user_workouts_router.get("/{user_workout_id}")
        def get_user_workout(user_workout_id: str):
            user_workout = self.user_workouts.get(user_workout_id)
            if user_workout is None:
                raise HTTPException(status_code=404, detail="user workout not found")
            return user_workout_out(user_workout)

        @user_workouts_router.delete("/{user_workout_id}")
        def delete_user_workout(user_workout_id: str):
            try:
                self.planner.delete_user_workout(user_workout_id)
                return {"status": "deleted"}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @user_workouts_router.post("/{user_workout_id}/exercises")
        def add_user_exercise(user_workout_id: str, exercise_id: str, order_index: int | None = None):
            try:
                user_workout = self.user_workouts.get(user_workout_id)
                if user_workout is None:
                    raise NotFoundError("user workout not found")
                if order_index is None:
                    order_index = len(self.planner.effective_exercises(user_workout))
                exercise = self.planner.exercise_from_catalog(exercise_id, order_index)
                return user_workout_out(self.planner.add_exercise(user_workout_id, exercise))
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @user_workouts_router.delete("/{user_workout_id}/exercises/{exercise_id}")
        def remove_user_exercise(user_workout_id: str, exercise_id: str):
            try:
                return user_workout_out(self.planner.remove_exercise(user_workout_id, exercise_id))
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @user_workouts_router.put("/{user_workout_id}/exercises/{exercise_id}")
        def modify_user_exercise(
            user_workout_id: str,
            exercise_id: str,
            sets: int | None = None,
            reps_min: int | None = None,
            reps_max: int | None = None,
            weight: float | None = None,
            rest_time_seconds: int | None = None,
            order_index: int | None = None,
        ):
            try:
                user_workout = self.planner.modify_exercise(
                    user_workout_id,
                    exercise_id,
                    sets=sets,
                    reps_min=reps_min,
                    reps_max=reps_max,
                    weight=weight,
                    rest_time_seconds=rest_time_seconds,
                    order_index=order_index,
                )
                return user_workout_out(user_workout)
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        @user_workouts_router.post("/{user_workout_id}/start")
        def start_user_workout(user_workout_id: str, prefill_sets: bool = False):
            try:
                workout = self.planner.start_workout(user_workout_id, prefill_sets)
                return {"id": workout.workout_id}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        # statistics ------------------------------------------------------
        @stats_router.get("")
        def workout_stats(
            user_id: str | None = None,
            start_date: str | None = None,
            end_date: str | None = None,
        ):
            stats = self.statistics.workout_stats(
                self._user(user_id), _parse_datetime(start_date), _parse_datetime(end_date)
            )
            return dict(asdict(stats), completion_rate=stats.completion_rate)

        @stats_router.get("/body_parts")
        def volume_by_body_part(
            user_id: str | None = None,
            start_date: str | None = None,
            end_date: str | None = None,
        ):
            return self.statistics.volume_by_body_part(
                self._user(user_id), _parse_datetime(start_date), _parse_datetime(end_date)
            )

        @stats_router.get("/daily")
        def daily_progress(user_id: str | None = None, days: int = 30):
            return [asdict(d) for d in self.statistics.daily_progress(self._user(user_id), days)]

        @stats_router.get("/weekly")
        def weekly_comparison(user_id: str | None = None):
            c = self.statistics.weekly_comparison(self._user(user_id))
            return dict(asdict(c), volume_change_percentage=c.volume_change_percentage)

        @stats_router.get("/monthly")
        def monthly_comparison(user_id: str | None = None):
            c = self.statistics.monthly_comparison(self._user(user_id))
            return dict(asdict(c), volume_change_percentage=c.volume_change_percentage)

        # progress --------------------------------------------------------
        @progress_router.get("")
        def progress(user_id: str | None = None):
            return snapshot_to_dict(self.gamification.progress(self._user(user_id)))

        @progress_router.get("/body_areas")
        def body_areas(user_id: str | None = None):
            return {
                area: dict(asdict(p), progress_to_next_level=p.progress_to_next_level)
                for area, p in self.gamification.body_area_progress(self._user(user_id)).items()
            }

        @progress_router.get("/streak")
        def streak(user_id: str | None = None):
            return asdict(self.gamification.streak(self._user(user_id)))

        @progress_router.get("/achievements")
        def achievements(user_id: str | None = None):
            return [asdict(a) for a in self.gamification.achievements(self._user(user_id))]

        @progress_router.get("/milestones")
        def milestones(user_id: str | None = None):
            return [
                dict(asdict(m), progress_percentage=m.progress_percentage)
                for m in self.gamification.milestones(self._user(user_id))
            ]

        @progress_router.get("/heat_map")
        def heat_map(user_id: str | None = None):
            return self.gamification.heat_map(self._user(user_id))

        @progress_router.get("/insights")
        def insights(user_id: str | None = None):
            return self.gamification.insights(self._user(user_id))

        # personal records ------------------------------------------------
        @records_router.get("")
        def list_records(user_id: str | None = None, exercise_id: str | None = None):
            user = self._user(user_id)
            unit = self._unit()
            if exercise_id:
                found = self.personal_records.records_for_exercise(user, exercise_id)
            else:
                found = self.records.list(user)
            return [_record_out(r, unit) for r in found]

        @records_router.get("/current")
        def current_records(user_id: str | None = None):
            unit = self._unit()
            return [
                _record_out(r, unit)
                for r in self.personal_records.current_records(self._user(user_id))
            ]

        @records_router.get("/recent")
        def recent_records(
            user_id: str | None = None, days: int | None = None, limit: int | None = None
        ):
            unit = self._unit()
            return [
                _record_out(r, unit)
                for r in self.personal_records.recent_records(self._user(user_id), days, limit)
            ]

        @records_router.get("/stats")
        def record_stats(user_id: str | None = None):
            return self.personal_records.pr_stats(self._user(user_id))

        @records_router.delete("/{record_id}")
        def delete_record(record_id: str):
            try:
                self.personal_records.delete(record_id)
                return {"status": "deleted"}
            except (ValueError, PersistenceError) as e:
                raise _http_error(e)

        # recommendations -------------------------------------------------
        @recommendations_router.get("/today")
        def todays_recommendation(user_id: str | None = None):
            return _recommendation_out(
                self.recommender.todays_recommendation(self._user(user_id))
            )

        @recommendations_router.get("")
        def recommendations(user_id: str | None = None, count: int = 3):
            return [
                _recommendation_out(r)
                for r in self.recommender.recommendations(self._user(user_id), count)
            ]

        self.app.include_router(workouts_router)
        self.app.include_router(templates_router)
        self.app.include_router(user_workouts_router)
        self.app.include_router(stats_router)
        self.app.include_router(progress_router)
        self.app.include_router(records_router)
        self.app.include_router(recommendations_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(LedgerAPI().app)
