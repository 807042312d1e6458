import datetime
import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from models import (
    BodyAreaProgress,
    ExerciseAdded,
    ExerciseModified,
    ExerciseRemoved,
    Milestone,
    PersonalRecord,
    PersonalRecordType,
    ProgressComparison,
    UserExercise,
    UserWorkout,
    Workout,
    WorkoutCustomizations,
    WorkoutExercise,
    WorkoutSet,
    WorkoutStatus,
)

NOW = datetime.datetime(2024, 3, 4, 18, 0)


def _workout(**changes) -> Workout:
    sets = (
        WorkoutSet(weight=60.0, reps=10, set_number=1, is_completed=True),
        WorkoutSet(weight=65.0, reps=8, set_number=2, is_completed=True),
        WorkoutSet(weight=100.0, reps=5, set_number=3),
    )
    workout = Workout(
        workout_id="w1",
        user_id="u1",
        name="Bench",
        created_at=NOW,
        exercises=(
            WorkoutExercise(
                exercise_id="0025",
                exercise_name="barbell bench press",
                body_parts=("chest",),
                sets=sets,
            ),
        ),
    )
    return workout.copy_with(**changes)


class WorkoutModelTestCase(unittest.TestCase):
    def test_volume_counts_completed_sets_only(self) -> None:
        workout = _workout()
        self.assertEqual(workout.total_volume, 60.0 * 10 + 65.0 * 8)
        self.assertEqual(workout.total_sets, 3)
        self.assertEqual(workout.completed_sets, 2)
        self.assertFalse(workout.exercises[0].is_completed)
        self.assertEqual(workout.exercises[0].next_set_number, 4)

    def test_duration_falls_back_to_plan(self) -> None:
        self.assertEqual(_workout().duration_minutes, 45)
        started = _workout(
            started_at=NOW,
            completed_at=NOW + datetime.timedelta(minutes=52),
            status=WorkoutStatus.COMPLETED,
        )
        self.assertEqual(started.duration_minutes, 52)
        self.assertEqual(started.session_time, NOW + datetime.timedelta(minutes=52))

    def test_status_transitions(self) -> None:
        self.assertTrue(WorkoutStatus.PLANNED.can_become(WorkoutStatus.IN_PROGRESS))
        self.assertTrue(WorkoutStatus.PLANNED.can_become(WorkoutStatus.COMPLETED))
        self.assertTrue(WorkoutStatus.IN_PROGRESS.can_become(WorkoutStatus.CANCELLED))
        self.assertFalse(WorkoutStatus.IN_PROGRESS.can_become(WorkoutStatus.PLANNED))
        self.assertFalse(WorkoutStatus.COMPLETED.can_become(WorkoutStatus.CANCELLED))
        self.assertFalse(WorkoutStatus.CANCELLED.can_become(WorkoutStatus.IN_PROGRESS))


class CustomizationModelTestCase(unittest.TestCase):
    def test_record_supersedes_same_kind_only(self) -> None:
        c = WorkoutCustomizations()
        c = c.record(ExerciseModified("0025", NOW, sets=4))
        c = c.record(ExerciseRemoved("0047", NOW))
        c = c.record(ExerciseModified("0025", NOW, sets=5))
        self.assertEqual(c.change_count, 2)
        self.assertEqual(c.modified_exercises["0025"].sets, 5)
        self.assertEqual(c.removed_exercise_ids, ("0047",))

    def test_added_events_key_on_exercise(self) -> None:
        exercise = UserExercise("uex1", "0289", "dumbbell fly", ("chest",))
        c = WorkoutCustomizations().record(ExerciseAdded(exercise, NOW))
        self.assertEqual(c.added_exercises, (exercise,))
        self.assertEqual(c.events[0].exercise_id, "0289")

    def test_modification_summary(self) -> None:
        uw = UserWorkout("uw1", "u1", "My Chest", NOW)
        self.assertEqual(uw.modification_summary, "No changes from template")
        uw = uw.copy_with(
            customizations=WorkoutCustomizations()
            .record(ExerciseRemoved("0025", NOW))
            .record(ExerciseModified("0047", NOW, reps_min=6))
        )
        self.assertTrue(uw.has_modifications)
        self.assertEqual(uw.modification_summary, "1 removed, 1 modified")


class DisplayTestCase(unittest.TestCase):
    def test_record_display_values(self) -> None:
        weight = PersonalRecord("pr1", "u1", "0025", "bench", PersonalRecordType.WEIGHT, 65.0, NOW)
        reps = PersonalRecord(
            "pr2", "u1", "0025", "bench", PersonalRecordType.REPS, 8.0, NOW, secondary_value=60.0
        )
        self.assertEqual(weight.display_value(), "65.0 kg")
        self.assertEqual(reps.display_value(), "8 reps @ 60.0 kg")
        heavy = weight.copy_with(value=100.0)
        self.assertEqual(heavy.display_value("lb"), "220.5 lb")

    def test_comparison_and_milestone_percentages(self) -> None:
        self.assertEqual(ProgressComparison("week", 10.0, 0.0, 1, 0).volume_change_percentage, 100.0)
        self.assertEqual(ProgressComparison("week", 0.0, 0.0, 0, 0).volume_change_percentage, 0.0)
        self.assertEqual(ProgressComparison("week", 150.0, 100.0, 2, 1).volume_change_percentage, 50.0)
        milestone = Milestone("workouts_10", "t", "d", 10.0, "workouts", current_value=25.0)
        self.assertEqual(milestone.progress_percentage, 100.0)
        self.assertEqual(milestone.copy_with(current_value=5.0).progress_percentage, 50.0)

    def test_level_progress_is_clamped(self) -> None:
        chest = BodyAreaProgress("chest", experience=250.0, experience_to_next_level=1000.0)
        self.assertEqual(chest.progress_to_next_level, 0.25)
        self.assertEqual(chest.copy_with(experience=1500.0).progress_to_next_level, 1.0)
        self.assertEqual(chest.copy_with(experience=-10.0).progress_to_next_level, 0.0)
        self.assertEqual(chest.copy_with(experience_to_next_level=0.0).progress_to_next_level, 0.0)


if __name__ == "__main__":
    unittest.main()
