from __future__ import annotations

import datetime
import logging
from typing import Callable, List

from db import NotFoundError, PersonalRecordRepository, SettingsRepository
from models import PersonalRecord, PersonalRecordType, Workout, WorkoutSet
from tools import new_id

logger = logging.getLogger(__name__)


class PersonalRecordService:
    """Detect and query personal records from completed sets."""

    def __init__(
        self,
        pr_repo: PersonalRecordRepository,
        clock: Callable[[], datetime.datetime] | None = None,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.records = pr_repo
        self.clock = clock or pr_repo.clock
        self.settings = settings_repo

    def _record(
        self,
        user_id: str,
        exercise_id: str,
        exercise_name: str,
        record_type: PersonalRecordType,
        value: float,
        secondary_value: float | None,
        achieved_at: datetime.datetime,
        workout_id: str | None,
    ) -> PersonalRecord:
        record = PersonalRecord(
            record_id=new_id("pr"),
            user_id=user_id,
            exercise_id=exercise_id,
            exercise_name=exercise_name,
            record_type=record_type,
            value=value,
            achieved_at=achieved_at,
            secondary_value=secondary_value,
            workout_id=workout_id,
        )
        self.records.add(record)
        logger.info(
            "new %s record for %s on %s: %s",
            record_type.name.lower(),
            user_id,
            exercise_name,
            record.display_value(),
        )
        return record

    def check_set(
        self,
        user_id: str,
        exercise_id: str,
        exercise_name: str,
        workout_set: WorkoutSet,
        workout_id: str | None = None,
    ) -> List[PersonalRecord]:
        """Persist every record kind this set improves on and return them."""
        if not workout_set.is_completed:
            return []
        weight = float(workout_set.weight)
        reps = int(workout_set.reps)
        when = workout_set.completed_at or self.clock()
        found: List[PersonalRecord] = []

        best = self.records.current(user_id, exercise_id, PersonalRecordType.WEIGHT)
        if weight > 0 and (best is None or weight > best.value):
            found.append(
                self._record(
                    user_id, exercise_id, exercise_name,
                    PersonalRecordType.WEIGHT, weight, reps, when, workout_id,
                )
            )

        volume = workout_set.volume
        best = self.records.current(user_id, exercise_id, PersonalRecordType.VOLUME)
        if volume > 0 and (best is None or volume > best.value):
            found.append(
                self._record(
                    user_id, exercise_id, exercise_name,
                    PersonalRecordType.VOLUME, volume, weight, when, workout_id,
                )
            )

        # reps only count against records lifted at the same or a lighter weight
        best = self.records.best_reps_at_or_below(user_id, exercise_id, weight)
        if reps > 0 and (best is None or reps > best.value):
            found.append(
                self._record(
                    user_id, exercise_id, exercise_name,
                    PersonalRecordType.REPS, float(reps), weight, when, workout_id,
                )
            )
        return found

    def check_workout(self, workout: Workout) -> List[PersonalRecord]:
        found: List[PersonalRecord] = []
        for ex in sorted(workout.exercises, key=lambda e: e.order_index):
            for s in sorted(ex.sets, key=lambda s: s.set_number):
                found.extend(
                    self.check_set(
                        workout.user_id,
                        ex.exercise_id,
                        ex.exercise_name,
                        s,
                        workout.workout_id,
                    )
                )
        return found

    def current_record(
        self, user_id: str, exercise_id: str, record_type: PersonalRecordType
    ) -> PersonalRecord | None:
        return self.records.current(user_id, exercise_id, record_type)

    def current_records(self, user_id: str) -> List[PersonalRecord]:
        return self.records.current_records(user_id)

    def records_for_exercise(self, user_id: str, exercise_id: str) -> List[PersonalRecord]:
        return self.records.list(user_id, exercise_id)

    def recent_records(
        self, user_id: str, days: int | None = None, limit: int | None = None
    ) -> List[PersonalRecord]:
        if self.settings is not None:
            schema = self.settings.schema()
            days = days or schema.recent_pr_days
            limit = limit or schema.recent_pr_limit
        since = self.clock() - datetime.timedelta(days=days or 30)
        return self.records.recent(user_id, since, limit or 10)

    def pr_stats(self, user_id: str) -> dict[str, int]:
        now = self.clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        return self.records.stats(user_id, month_start)

    def delete(self, record_id: str) -> None:
        if not self.records.delete(record_id):
            raise NotFoundError("personal record not found")
