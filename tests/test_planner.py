import datetime
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    NotFoundError,
    UserWorkoutRepository,
    ValidationError,
    WorkoutRepository,
    WorkoutTemplateRepository,
)
from exercise_catalog import ExerciseCatalog
from models import TemplateCategory, WorkoutSource, WorkoutStatus
from planner_service import PlannerService
from seed_templates import TemplateSeeder

NOW = datetime.datetime(2024, 3, 4, 9, 0)


class Env:
    def __init__(self, db_path: str) -> None:
        clock = lambda: NOW
        self.templates = WorkoutTemplateRepository(db_path, clock=clock)
        self.user_workouts = UserWorkoutRepository(db_path, clock=clock)
        self.workouts = WorkoutRepository(db_path, clock=clock)
        self.catalog = ExerciseCatalog()
        self.planner = PlannerService(
            self.templates, self.user_workouts, self.workouts, self.catalog
        )
        TemplateSeeder(self.templates, self.catalog).seed_if_needed()


@pytest.fixture
def env(tmp_path):
    return Env(str(tmp_path / "planner.db"))


def effective_ids(env, user_workout):
    return [e.exercise_id for e in env.planner.effective_exercises(user_workout)]


class TestTemplateConversion:
    def test_clone_from_template(self, env):
        template = env.templates.get("chest_template")
        uw = env.planner.create_from_template("chest_template", "u1")
        assert uw.name == "My Chest Focus"
        assert uw.source == WorkoutSource.TEMPLATE
        assert uw.base_template_id == "chest_template"
        assert [e.exercise_id for e in uw.exercises] == [e.exercise_id for e in template.exercises]
        assert all(e.is_from_template for e in uw.exercises)
        assert uw.exercises[0].source_template_exercise_id == template.exercises[0].template_exercise_id
        assert env.user_workouts.get(uw.user_workout_id) == uw
        assert env.templates.get("chest_template").usage_count == 1

    def test_customizing_never_touches_the_template(self, env):
        before = env.templates.get("chest_template")
        uw = env.planner.create_from_template("chest_template", "u1", name="Bench Focus")
        env.planner.remove_exercise(uw.user_workout_id, "0047")
        env.planner.modify_exercise(uw.user_workout_id, "0025", sets=5)
        env.planner.add_exercise(
            uw.user_workout_id, env.planner.exercise_from_catalog("0251", order_index=10)
        )
        after = env.templates.get("chest_template")
        assert after.exercises == before.exercises
        assert after.name == before.name
        assert after.updated_at == before.updated_at

    def test_unknown_template(self, env):
        with pytest.raises(NotFoundError):
            env.planner.create_from_template("missing", "u1")


class TestCustomizations:
    def test_replay_of_edits(self, env):
        uw_id = env.planner.create_from_template("chest_template", "u1").user_workout_id
        env.planner.remove_exercise(uw_id, "0047")
        env.planner.modify_exercise(uw_id, "0025", sets=5)
        env.planner.modify_exercise(uw_id, "0025", reps_min=4)
        env.planner.add_exercise(uw_id, env.planner.exercise_from_catalog("0251", order_index=10))
        uw = env.planner.modify_exercise(uw_id, "0251", sets=2)

        assert uw == env.user_workouts.get(uw_id)
        assert [e.kind for e in uw.customizations.events] == ["removed", "modified", "added"]
        assert uw.modification_summary == "1 removed, 1 added, 1 modified"
        assert effective_ids(env, uw) == ["0025", "0289", "0314", "0227", "0577", "0251"]
        effective = {e.exercise_id: e for e in env.planner.effective_exercises(uw)}
        assert effective["0025"].suggested_sets == 5
        assert effective["0025"].suggested_reps_min == 4
        assert effective["0251"].suggested_sets == 2
        # the cloned base list is never rewritten
        assert [e.exercise_id for e in uw.exercises][:2] == ["0025", "0047"]

    def test_undoing_edits_leaves_no_trace(self, env):
        uw_id = env.planner.create_from_template("chest_template", "u1").user_workout_id
        env.planner.add_exercise(uw_id, env.planner.exercise_from_catalog("0251", order_index=10))
        uw = env.planner.remove_exercise(uw_id, "0251")
        assert not uw.has_modifications

        env.planner.remove_exercise(uw_id, "0047")
        uw = env.planner.add_exercise(
            uw_id, env.planner.exercise_from_catalog("0047", order_index=1)
        )
        assert not uw.has_modifications
        assert effective_ids(env, uw)[:3] == ["0025", "0047", "0289"]

        env.planner.modify_exercise(uw_id, "0289", sets=2)
        env.planner.remove_exercise(uw_id, "0289")
        uw = env.planner.add_exercise(uw_id, env.planner.exercise_from_catalog("0289"))
        assert [e.kind for e in uw.customizations.events] == ["modified"]
        assert effective_ids(env, uw).count("0289") == 1

    def test_invalid_edits(self, env):
        uw_id = env.planner.create_from_template("chest_template", "u1").user_workout_id
        with pytest.raises(ValidationError):
            env.planner.remove_exercise(uw_id, "9999")
        with pytest.raises(ValidationError):
            env.planner.add_exercise(uw_id, env.planner.exercise_from_catalog("0025"))
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "0025", color="red")
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "9999", sets=2)
        with pytest.raises(NotFoundError):
            env.planner.remove_exercise("missing", "0025")
        with pytest.raises(NotFoundError):
            env.planner.exercise_from_catalog("9999")
        env.planner.remove_exercise(uw_id, "0047")
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "0047", sets=2)

    def test_malformed_modifications_are_not_stored(self, env):
        uw_id = env.planner.create_from_template("chest_template", "u1").user_workout_id
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "0025", weight=-20.0, sets=0)
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "0025", reps_min=20)
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "0025", rest_time_seconds=-1)
        with pytest.raises(ValidationError):
            env.planner.modify_exercise(uw_id, "0025", order_index=-3)
        uw = env.user_workouts.get(uw_id)
        assert not uw.has_modifications
        bench = next(e for e in env.planner.effective_exercises(uw) if e.exercise_id == "0025")
        assert (bench.suggested_sets, bench.suggested_weight) == (4, None)

    def test_rename_and_delete(self, env):
        uw_id = env.planner.create_from_template("chest_template", "u1").user_workout_id
        assert env.planner.rename(uw_id, "Monday").name == "Monday"
        assert env.user_workouts.get(uw_id).name == "Monday"
        env.planner.delete_user_workout(uw_id)
        assert env.user_workouts.get(uw_id) is None
        with pytest.raises(NotFoundError):
            env.planner.delete_user_workout(uw_id)


class TestSessions:
    def test_start_with_prefilled_sets(self, env):
        uw_id = env.planner.create_from_template("chest_template", "u1").user_workout_id
        env.planner.modify_exercise(uw_id, "0025", sets=5, reps_min=4)
        workout = env.planner.start_workout(uw_id, prefill_sets=True)

        assert workout == env.workouts.get(workout.workout_id)
        assert workout.status == WorkoutStatus.PLANNED
        assert workout.name == "My Chest Focus"
        assert [e.order_index for e in workout.exercises] == list(range(len(workout.exercises)))
        bench = workout.exercise("0025")
        assert [(s.set_number, s.weight, s.reps) for s in bench.sets] == [
            (n, 0.0, 4) for n in range(1, 6)
        ]
        assert not any(s.is_completed for s in bench.sets)
        assert env.user_workouts.get(uw_id).usage_count == 1

    def test_start_without_sets(self, env):
        uw_id = env.planner.create_from_template("back_template", "u1").user_workout_id
        workout = env.planner.start_workout(uw_id)
        assert workout.total_sets == 0
        assert workout.target_body_parts == ("back", "upper arms")

    def test_start_from_template(self, env):
        workout = env.planner.start_from_template("upper_legs_template", "u1", prefill_sets=True)
        squat = workout.exercises[0]
        assert squat.exercise_name == "barbell full squat"
        assert [s.reps for s in squat.sets] == [6, 6, 6, 6]
        assert env.templates.get("upper_legs_template").usage_count == 1

    def test_custom_workout_and_template(self, env):
        workout = env.planner.create_workout("u1", "Quick", ["0025", "0043"], 30)
        assert workout.target_body_parts == ("chest", "upper legs")
        assert workout.planned_duration_minutes == 30
        with pytest.raises(NotFoundError):
            env.planner.create_workout("u1", "Broken", ["9999"])

        template = env.planner.create_template(
            "u1", "Mine", ["0025", "0043"], category=TemplateCategory.FULL_BODY
        )
        assert env.templates.get(template.template_id) == template
        assert [e.order_index for e in template.exercises] == [0, 1]

        uw = env.planner.create_custom(
            "u1", "Pushups", [env.planner.exercise_from_catalog("0662")]
        )
        assert uw.source == WorkoutSource.CUSTOM
        assert uw.target_body_parts == ("chest",)
        assert uw.planned_duration_minutes == 45

    def test_import_logged_workout(self, env):
        workout = env.planner.create_workout("u1", "Quick", ["0025", "0043"])
        env.workouts.add_set(workout.workout_id, "0025", 60.0, 10, is_completed=True)
        env.workouts.add_set(workout.workout_id, "0025", 65.0, 8, is_completed=True)
        env.workouts.add_set(workout.workout_id, "0025", 100.0, 2)
        env.workouts.complete(workout.workout_id)

        uw = env.planner.import_workout(workout.workout_id)
        assert uw.source == WorkoutSource.IMPORTED
        assert uw.name == "Quick"
        bench, squat = uw.exercises
        assert (bench.suggested_sets, bench.suggested_reps_min, bench.suggested_reps_max) == (2, 8, 10)
        assert bench.suggested_weight == 62.5
        assert (squat.suggested_sets, squat.suggested_weight) == (3, None)
        with pytest.raises(NotFoundError):
            env.planner.import_workout("missing")
