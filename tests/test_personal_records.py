import datetime
import os
import sys

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import NotFoundError, PersonalRecordRepository
from models import (
    PersonalRecordType,
    Workout,
    WorkoutExercise,
    WorkoutSet,
    WorkoutStatus,
)
from personal_record_service import PersonalRecordService

NOW = datetime.datetime(2024, 3, 14, 18, 0)


def bench_session() -> Workout:
    return Workout(
        workout_id="w1",
        user_id="u1",
        name="Chest Day",
        created_at=NOW,
        completed_at=NOW,
        status=WorkoutStatus.COMPLETED,
        exercises=(
            WorkoutExercise(
                exercise_id="0025",
                exercise_name="barbell bench press",
                body_parts=("chest",),
                sets=(
                    WorkoutSet(60.0, 10, 1, True, NOW),
                    WorkoutSet(65.0, 8, 2, True, NOW),
                    WorkoutSet(100.0, 3, 3),
                ),
            ),
        ),
    )


@pytest.fixture
def service(tmp_path):
    repo = PersonalRecordRepository(str(tmp_path / "records.db"), clock=lambda: NOW)
    return PersonalRecordService(repo)


class TestRecordDetection:
    def test_records_from_one_session(self, service):
        found = service.check_workout(bench_session())
        kinds = [(r.record_type, r.value) for r in found]
        assert kinds == [
            (PersonalRecordType.WEIGHT, 60.0),
            (PersonalRecordType.VOLUME, 600.0),
            (PersonalRecordType.REPS, 10.0),
            (PersonalRecordType.WEIGHT, 65.0),
        ]
        assert all(r.workout_id == "w1" for r in found)

        weight = service.current_record("u1", "0025", PersonalRecordType.WEIGHT)
        volume = service.current_record("u1", "0025", PersonalRecordType.VOLUME)
        reps = service.current_record("u1", "0025", PersonalRecordType.REPS)
        assert (weight.value, weight.secondary_value) == (65.0, 8)
        assert (volume.value, volume.secondary_value) == (600.0, 60.0)
        assert (reps.value, reps.secondary_value) == (10.0, 60.0)

    def test_replaying_a_session_finds_nothing(self, service):
        service.check_workout(bench_session())
        assert service.check_workout(bench_session()) == []
        assert len(service.records_for_exercise("u1", "0025")) == 4

    def test_history_is_kept_and_current_is_best(self, service):
        service.check_workout(bench_session())
        records = service.current_records("u1")
        assert sorted((r.record_type, r.value) for r in records) == [
            (PersonalRecordType.WEIGHT, 65.0),
            (PersonalRecordType.VOLUME, 600.0),
            (PersonalRecordType.REPS, 10.0),
        ]

    def test_incomplete_sets_are_ignored(self, service):
        pending = WorkoutSet(200.0, 1, 1)
        assert service.check_set("u1", "0025", "barbell bench press", pending) == []

    def test_bodyweight_sets_only_set_rep_records(self, service):
        push_up = WorkoutSet(0.0, 25, 1, is_completed=True)
        found = service.check_set("u1", "0662", "push-up", push_up)
        assert [r.record_type for r in found] == [PersonalRecordType.REPS]
        assert found[0].achieved_at == NOW
        assert found[0].display_value() == "25 reps @ 0.0 kg"

    def test_reps_compare_at_same_or_lighter_weight(self, service):
        service.check_set("u1", "0025", "bench", WorkoutSet(100.0, 5, 1, True, NOW))
        lighter = service.check_set("u1", "0025", "bench", WorkoutSet(60.0, 4, 2, True, NOW))
        assert PersonalRecordType.REPS in [r.record_type for r in lighter]
        heavier = service.check_set("u1", "0025", "bench", WorkoutSet(110.0, 4, 3, True, NOW))
        assert PersonalRecordType.REPS not in [r.record_type for r in heavier]
        assert PersonalRecordType.WEIGHT in [r.record_type for r in heavier]


class TestRecordQueries:
    def test_recent_and_stats(self, service):
        service.check_set(
            "u1", "0043", "barbell full squat",
            WorkoutSet(100.0, 5, 1, True, NOW - datetime.timedelta(days=60)),
        )
        service.check_workout(bench_session())
        recent = service.recent_records("u1", days=30)
        assert len(recent) == 4
        assert {r.exercise_id for r in recent} == {"0025"}
        assert len(service.recent_records("u1", days=30, limit=2)) == 2

        stats = service.pr_stats("u1")
        assert stats == {"total_prs": 7, "prs_this_month": 4, "exercises_with_prs": 2}

    def test_delete(self, service):
        record = service.check_workout(bench_session())[0]
        service.delete(record.record_id)
        assert len(service.records_for_exercise("u1", "0025")) == 3
        with pytest.raises(NotFoundError):
            service.delete(record.record_id)

    def test_users_are_isolated(self, service):
        service.check_workout(bench_session())
        assert service.current_records("someone else") == []
