from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable, List, Optional

from db import WorkoutRepository
from models import (
    DailyProgress,
    ProgressComparison,
    Workout,
    WorkoutStats,
    WorkoutStatus,
)
from tools import MathTools

logger = logging.getLogger(__name__)


def _duration_minutes(
    started_at: datetime.datetime | None,
    completed_at: datetime.datetime | None,
    planned_minutes: int,
) -> float:
    if started_at is not None and completed_at is not None:
        return (completed_at - started_at).total_seconds() / 60.0
    return float(planned_minutes)


def _in_window(
    moment: datetime.datetime,
    start: datetime.datetime | None,
    end: datetime.datetime | None,
) -> bool:
    if start is not None and moment < start:
        return False
    if end is not None and moment > end:
        return False
    return True


def _add_split(totals: dict[str, float], volume: float, body_parts: Iterable[str]) -> None:
    for part, share in MathTools.split_evenly(volume, body_parts).items():
        totals[part] = totals.get(part, 0.0) + share


def stats_from_workouts(
    workouts: Iterable[Workout],
    start: datetime.datetime | None = None,
    end: datetime.datetime | None = None,
) -> WorkoutStats:
    """Fold materialized workouts into ``WorkoutStats``.

    Counts cover every workout in the window; volume, sets, duration and the
    body-part split only consider completed workouts and their completed sets.
    """
    selected = sorted(
        (w for w in workouts if _in_window(w.created_at, start, end)),
        key=lambda w: (w.created_at, w.workout_id),
    )
    completed = [w for w in selected if w.status == WorkoutStatus.COMPLETED]
    by_part: dict[str, float] = {}
    total_volume = 0.0
    total_sets = 0
    for workout in completed:
        for ex in sorted(workout.exercises, key=lambda e: e.order_index):
            if not ex.completed_sets:
                continue
            total_volume += ex.total_volume
            total_sets += len(ex.completed_sets)
            _add_split(by_part, ex.total_volume, ex.body_parts)
    durations = [
        _duration_minutes(w.started_at, w.completed_at, w.planned_duration_minutes)
        for w in completed
    ]
    return WorkoutStats(
        total_workouts=len(selected),
        completed_workouts=len(completed),
        total_volume=total_volume,
        total_sets=total_sets,
        average_duration_minutes=sum(durations) / len(durations) if durations else 0.0,
        volume_by_body_part=by_part,
    )


class StatisticsService:
    """Compute workout statistics for analysis."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.clock = clock or workout_repo.clock

    def _window(
        self,
        user_id: str,
        start: datetime.datetime | None,
        end: datetime.datetime | None,
        prefix: str = "",
    ) -> tuple[str, list]:
        clauses = [f"{prefix}user_id = ?"]
        params: list = [user_id]
        if start is not None:
            clauses.append(f"{prefix}created_at >= ?")
            params.append(start.isoformat())
        if end is not None:
            clauses.append(f"{prefix}created_at <= ?")
            params.append(end.isoformat())
        return " AND ".join(clauses), params

    def workout_stats(
        self,
        user_id: str,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> WorkoutStats:
        """Aggregate statistics directly in the store."""
        where, params = self._window(user_id, start, end)
        completed = int(WorkoutStatus.COMPLETED)
        rows = self.workouts.fetch_all(
            "SELECT COUNT(*), COALESCE(SUM(CASE WHEN status = ? THEN 1 ELSE 0 END), 0) "
            f"FROM workouts WHERE {where};",
            tuple([completed] + params),
        )
        total, done = rows[0]
        where_w, params_w = self._window(user_id, start, end, prefix="w.")
        rows = self.workouts.fetch_all(
            "SELECT COALESCE(SUM(ws.weight * ws.reps), 0), COUNT(ws.set_id) "
            "FROM workout_sets ws "
            "JOIN workout_exercises we ON ws.workout_exercise_id = we.workout_exercise_id "
            "JOIN workouts w ON we.workout_id = w.workout_id "
            f"WHERE {where_w} AND w.status = ? AND ws.is_completed = 1;",
            tuple(params_w + [completed]),
        )
        volume, sets = rows[0]
        rows = self.workouts.fetch_all(
            "SELECT started_at, completed_at, planned_duration_minutes FROM workouts "
            f"WHERE {where} AND status = ?;",
            tuple(params + [completed]),
        )
        durations = [
            _duration_minutes(
                datetime.datetime.fromisoformat(s) if s else None,
                datetime.datetime.fromisoformat(c) if c else None,
                int(p),
            )
            for s, c, p in rows
        ]
        return WorkoutStats(
            total_workouts=int(total),
            completed_workouts=int(done),
            total_volume=float(volume),
            total_sets=int(sets),
            average_duration_minutes=sum(durations) / len(durations) if durations else 0.0,
            volume_by_body_part=self.volume_by_body_part(user_id, start, end),
        )

    def volume_by_body_part(
        self,
        user_id: str,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> dict[str, float]:
        """Completed volume per body part, split evenly across an exercise's parts."""
        where_w, params_w = self._window(user_id, start, end, prefix="w.")
        rows = self.workouts.fetch_all(
            "SELECT we.body_parts, SUM(ws.weight * ws.reps) "
            "FROM workout_sets ws "
            "JOIN workout_exercises we ON ws.workout_exercise_id = we.workout_exercise_id "
            "JOIN workouts w ON we.workout_id = w.workout_id "
            f"WHERE {where_w} AND w.status = ? AND ws.is_completed = 1 "
            "GROUP BY we.workout_exercise_id "
            "ORDER BY w.created_at, w.workout_id, we.order_index;",
            tuple(params_w + [int(WorkoutStatus.COMPLETED)]),
        )
        totals: dict[str, float] = {}
        for body_parts, volume in rows:
            parts = [p.strip() for p in (body_parts or "").split(",") if p.strip()]
            _add_split(totals, float(volume or 0.0), parts)
        return totals

    def recompute_stats(
        self,
        user_id: str,
        start: datetime.datetime | None = None,
        end: datetime.datetime | None = None,
    ) -> WorkoutStats:
        """Same result as :meth:`workout_stats`, folded over loaded workouts."""
        return stats_from_workouts(self.workouts.list(user_id, start=start, end=end))

    def daily_progress(
        self, user_id: str, days: int = 30, today: Optional[datetime.date] = None
    ) -> List[DailyProgress]:
        """Completed volume and session count for each of the last ``days`` days."""
        today = today or self.clock().date()
        first = today - datetime.timedelta(days=days - 1)
        buckets = {first + datetime.timedelta(days=i): [0.0, 0] for i in range(days)}
        for workout in self.workouts.completed_workouts(user_id):
            day = workout.session_time.date()
            if day in buckets:
                buckets[day][0] += workout.total_volume
                buckets[day][1] += 1
        return [DailyProgress(day=d, volume=v, workouts=n) for d, (v, n) in buckets.items()]

    def compare_periods(
        self,
        user_id: str,
        label: str,
        current_start: datetime.date,
        previous_start: datetime.date,
        period_end: datetime.date,
    ) -> ProgressComparison:
        """Compare [previous_start, current_start) with [current_start, period_end]."""
        current = [0.0, 0]
        previous = [0.0, 0]
        for workout in self.workouts.completed_workouts(user_id):
            day = workout.session_time.date()
            if current_start <= day <= period_end:
                bucket = current
            elif previous_start <= day < current_start:
                bucket = previous
            else:
                continue
            bucket[0] += workout.total_volume
            bucket[1] += 1
        return ProgressComparison(
            label=label,
            current_volume=current[0],
            previous_volume=previous[0],
            current_workouts=current[1],
            previous_workouts=previous[1],
        )

    def weekly_comparison(
        self, user_id: str, today: Optional[datetime.date] = None
    ) -> ProgressComparison:
        today = today or self.clock().date()
        start = today - datetime.timedelta(days=6)
        return self.compare_periods(
            user_id, "week", start, start - datetime.timedelta(days=7), today
        )

    def monthly_comparison(
        self, user_id: str, today: Optional[datetime.date] = None
    ) -> ProgressComparison:
        today = today or self.clock().date()
        start = today - datetime.timedelta(days=29)
        return self.compare_periods(
            user_id, "month", start, start - datetime.timedelta(days=30), today
        )
