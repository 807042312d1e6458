import datetime
import os
import sqlite3
import sys
import unittest

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    NotFoundError,
    PersistenceError,
    ValidationError,
    WorkoutRepository,
)
from models import Workout, WorkoutExercise, WorkoutSet, WorkoutStatus


class FakeClock:
    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += datetime.timedelta(**delta)


START = datetime.datetime(2024, 3, 4, 18, 0)


def bench_workout(workout_id: str = "w1", created_at: datetime.datetime = START) -> Workout:
    return Workout(
        workout_id=workout_id,
        user_id="u1",
        name="Chest Day",
        created_at=created_at,
        target_body_parts=("chest", "upper arms"),
        exercises=(
            WorkoutExercise(
                exercise_id="0025",
                exercise_name="barbell bench press",
                body_parts=("chest",),
                order_index=0,
                sets=(
                    WorkoutSet(60.0, 10, 1, True, START, 90),
                    WorkoutSet(65.0, 8, 2, True, START, 90, "felt heavy"),
                    WorkoutSet(100.0, 5, 3),
                ),
            ),
            WorkoutExercise(
                exercise_id="0251",
                exercise_name="chest dip",
                body_parts=("upper arms", "chest"),
                order_index=1,
            ),
        ),
    )


class WorkoutRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_workouts.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.clock = FakeClock(START)
        self.repo = WorkoutRepository(self.db_path, clock=self.clock)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_round_trip(self) -> None:
        workout = bench_workout()
        self.repo.save(workout)
        loaded = self.repo.get("w1")
        self.assertEqual(loaded, workout)
        self.assertEqual(loaded.total_volume, 1120.0)
        self.assertIsNone(self.repo.get("missing"))

    def test_validation_rejects_before_writing(self) -> None:
        bad_sets = bench_workout().exercises[0].copy_with(
            sets=(WorkoutSet(60.0, 10, 1), WorkoutSet(60.0, 10, 1))
        )
        with self.assertRaises(ValidationError):
            self.repo.save(bench_workout().copy_with(exercises=(bad_sets,)))
        negative = bench_workout().exercises[0].copy_with(sets=(WorkoutSet(-5.0, 10, 1),))
        with self.assertRaises(ValidationError):
            self.repo.save(bench_workout().copy_with(exercises=(negative,)))
        with self.assertRaises(ValidationError):
            self.repo.save(bench_workout().copy_with(completed_at=START))
        self.assertEqual(self.repo.list("u1"), [])

    def test_status_transitions_stamp_times(self) -> None:
        self.repo.save(bench_workout())
        self.clock.advance(minutes=5)
        started = self.repo.start("w1")
        self.assertEqual(started.status, WorkoutStatus.IN_PROGRESS)
        self.assertEqual(started.started_at, START + datetime.timedelta(minutes=5))
        with self.assertRaises(ValidationError):
            self.repo.start("w1")
        self.clock.advance(minutes=50)
        done = self.repo.complete("w1")
        self.assertEqual(done.duration_minutes, 50.0)
        self.assertEqual(self.repo.get("w1").status, WorkoutStatus.COMPLETED)
        with self.assertRaises(ValidationError):
            self.repo.cancel("w1")
        with self.assertRaises(NotFoundError):
            self.repo.start("missing")

    def test_completing_a_planned_workout_stamps_start(self) -> None:
        self.repo.save(bench_workout())
        done = self.repo.complete("w1")
        self.assertEqual(done.started_at, START)
        self.assertEqual(done.completed_at, START)

    def test_update_rejects_going_backwards(self) -> None:
        self.repo.save(bench_workout())
        self.repo.cancel("w1")
        with self.assertRaises(ValidationError):
            self.repo.update(bench_workout())
        with self.assertRaises(NotFoundError):
            self.repo.update(bench_workout("w2"))

    def test_save_over_existing_keeps_status_monotonic(self) -> None:
        self.repo.save(bench_workout())
        done = self.repo.complete("w1")
        with self.assertRaises(ValidationError):
            self.repo.save(bench_workout())
        self.assertEqual(self.repo.get("w1").status, WorkoutStatus.COMPLETED)
        self.repo.save(done.copy_with(name="Renamed"))
        self.assertEqual(self.repo.get("w1").name, "Renamed")
        self.assertEqual(self.repo.get("w1").status, WorkoutStatus.COMPLETED)

    def test_set_operations(self) -> None:
        self.repo.save(bench_workout())
        added = self.repo.add_set("w1", "0251", 0.0, 12, is_completed=True)
        self.assertEqual(added.set_number, 1)
        self.assertEqual(added.completed_at, START)
        self.assertEqual(self.repo.add_set("w1", "0025", 70.0, 6).set_number, 4)

        updated = self.repo.update_set("w1", "0025", 3, is_completed=True, reps=6)
        self.assertEqual(updated.reps, 6)
        self.assertEqual(updated.completed_at, START)
        reopened = self.repo.update_set("w1", "0025", 3, is_completed=False)
        self.assertIsNone(reopened.completed_at)

        self.repo.remove_set("w1", "0025", 4)
        sets = self.repo.get("w1").exercise("0025").sets
        self.assertEqual([s.set_number for s in sets], [1, 2, 3])

        with self.assertRaises(NotFoundError):
            self.repo.remove_set("w1", "0025", 9)
        with self.assertRaises(NotFoundError):
            self.repo.add_set("w1", "9999", 10.0, 5)
        with self.assertRaises(NotFoundError):
            self.repo.add_set("missing", "0025", 10.0, 5)
        with self.assertRaises(ValidationError):
            self.repo.add_set("w1", "0025", 10.0, 5, set_number=1)

    def test_list_filters_and_order(self) -> None:
        for i in range(3):
            self.repo.save(bench_workout(f"w{i}", START + datetime.timedelta(days=i)))
        self.repo.complete("w1")
        ids = [w.workout_id for w in self.repo.list("u1")]
        self.assertEqual(ids, ["w2", "w1", "w0"])
        ids = [w.workout_id for w in self.repo.list("u1", descending=False, limit=2)]
        self.assertEqual(ids, ["w0", "w1"])
        ids = [w.workout_id for w in self.repo.list("u1", offset=1)]
        self.assertEqual(ids, ["w1", "w0"])
        completed = self.repo.list("u1", status=WorkoutStatus.COMPLETED)
        self.assertEqual([w.workout_id for w in completed], ["w1"])
        between = self.repo.list_between(
            "u1", START + datetime.timedelta(hours=1), START + datetime.timedelta(days=2)
        )
        self.assertEqual([w.workout_id for w in between], ["w2", "w1"])
        self.assertEqual(self.repo.list("someone else"), [])

    def test_summaries_match_materialized_workouts(self) -> None:
        self.repo.save(bench_workout())
        summary = self.repo.list_summaries("u1")[0]
        workout = self.repo.get("w1")
        self.assertEqual(summary.exercise_count, 2)
        self.assertEqual(summary.set_count, workout.total_sets)
        self.assertEqual(summary.completed_set_count, workout.completed_sets)
        self.assertEqual(summary.total_volume, workout.total_volume)
        self.assertEqual(summary.status, WorkoutStatus.PLANNED)

    def test_delete(self) -> None:
        self.repo.save(bench_workout())
        self.assertTrue(self.repo.delete("w1"))
        self.assertFalse(self.repo.delete("w1"))
        self.assertEqual(self.repo.fetch_all("SELECT COUNT(*) FROM workout_sets;"), [(0,)])

    def test_fingerprint_tracks_completed_history(self) -> None:
        self.repo.save(bench_workout())
        empty = self.repo.fingerprint("u1")
        self.repo.complete("w1")
        completed = self.repo.fingerprint("u1")
        self.assertNotEqual(empty, completed)
        self.assertEqual(completed, self.repo.fingerprint("u1"))
        self.repo.update_set("w1", "0025", 3, is_completed=True)
        self.assertNotEqual(completed, self.repo.fingerprint("u1"))


class TestWriteAtomicity:
    def test_failed_write_leaves_previous_state(self, tmp_path, monkeypatch):
        repo = WorkoutRepository(str(tmp_path / "atomic.db"))
        original = bench_workout()
        repo.save(original)

        calls = []
        real_insert = WorkoutRepository._insert_set

        def failing_insert(self, conn, workout_exercise_id, s):
            calls.append(s.set_number)
            if len(calls) == 2:
                raise sqlite3.OperationalError("disk I/O error")
            real_insert(self, conn, workout_exercise_id, s)

        monkeypatch.setattr(WorkoutRepository, "_insert_set", failing_insert)
        changed = original.copy_with(name="Renamed")
        with pytest.raises(PersistenceError):
            repo.save(changed)
        monkeypatch.undo()

        assert repo.get("w1") == original

    def test_shared_connection_stays_open(self):
        conn = sqlite3.connect(":memory:")
        repo = WorkoutRepository(connection=conn)
        assert not repo.owns_connection
        repo.save(bench_workout())
        assert repo.get("w1") == bench_workout()
        assert conn.execute("SELECT COUNT(*) FROM workouts;").fetchone() == (1,)
        conn.close()


if __name__ == "__main__":
    unittest.main()
