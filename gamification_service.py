from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable

from db import (
    NotFoundError,
    ProgressCacheRepository,
    SettingsRepository,
    WorkoutRepository,
)
from models import (
    Achievement,
    BodyAreaProgress,
    Milestone,
    ProgressSnapshot,
    StreakData,
    Workout,
    WorkoutStatus,
)
from tools import MathTools

logger = logging.getLogger(__name__)

# Bump whenever the fold below changes so cached snapshots are recomputed.
PROGRESS_VERSION = 1

BASE_EXPERIENCE = 1000.0
LEVEL_GROWTH = 1.5
HEAT_DECAY_DAYS = 7

_MILESTONES = (
    ("volume_10k", "Volume Rookie", "Lift 10,000 kg in total", 10000.0, "volume"),
    ("volume_50k", "Volume Veteran", "Lift 50,000 kg in total", 50000.0, "volume"),
    ("volume_100k", "Volume Legend", "Lift 100,000 kg in total", 100000.0, "volume"),
    ("workouts_10", "Consistency Starter", "Complete 10 workouts", 10.0, "workouts"),
    ("workouts_25", "Habit Builder", "Complete 25 workouts", 25.0, "workouts"),
    ("workouts_50", "Dedicated Lifter", "Complete 50 workouts", 50.0, "workouts"),
    ("workouts_100", "Centurion", "Complete 100 workouts", 100.0, "workouts"),
    ("streak_7", "One Week Strong", "Train 7 days in a row", 7.0, "streak"),
    ("streak_30", "Iron Month", "Train 30 days in a row", 30.0, "streak"),
)


def initial_milestones() -> tuple[Milestone, ...]:
    return tuple(
        Milestone(
            milestone_id=mid,
            title=title,
            description=description,
            target_value=target,
            value_type=value_type,
        )
        for mid, title, description, target, value_type in _MILESTONES
    )


def new_body_area(body_area: str, base_experience: float = BASE_EXPERIENCE) -> BodyAreaProgress:
    return BodyAreaProgress(body_area=body_area, experience_to_next_level=base_experience)


def add_experience(
    progress: BodyAreaProgress, amount: float, growth: float = LEVEL_GROWTH
) -> BodyAreaProgress:
    """Add experience, consuming it level by level at a geometric threshold."""
    if amount < 0:
        raise ValueError("experience must be non-negative")
    experience = progress.experience + amount
    level = progress.level
    required = progress.experience_to_next_level
    while experience >= required:
        experience -= required
        level += 1
        required *= growth
    return progress.copy_with(
        experience=experience, level=level, experience_to_next_level=required
    )


def update_streak(streak: StreakData, day: datetime.date) -> StreakData:
    last = streak.last_workout_date
    if last is None:
        current = 1
    else:
        gap = (day - last).days
        if gap == 0:
            current = streak.current_streak
        elif gap == 1:
            current = streak.current_streak + 1
        else:
            current = 1
    return StreakData(
        current_streak=current,
        longest_streak=max(current, streak.longest_streak),
        last_workout_date=day if last is None or day > last else last,
    )


def heat_intensity(
    last_worked: datetime.date | None,
    today: datetime.date,
    decay_days: int = HEAT_DECAY_DAYS,
) -> float:
    """1.0 when worked today, fading linearly to 0.0 after ``decay_days``."""
    if last_worked is None:
        return 0.0
    return MathTools.linear_decay((today - last_worked).days, decay_days)


def _area_slug(body_area: str) -> str:
    return body_area.strip().lower().replace(" ", "_")


def detect_achievements(
    snapshot: ProgressSnapshot, earned_at: datetime.datetime
) -> list[Achievement]:
    """Achievements the snapshot qualifies for that it does not hold yet."""
    candidates: list[tuple[str, str, str, str, int]] = []
    if snapshot.total_workouts >= 1:
        candidates.append(
            ("first_workout", "First Steps", "Complete your first workout", "fitness_center", 100)
        )
    if snapshot.total_workouts >= 10:
        candidates.append(
            ("ten_workouts", "Getting Strong", "Complete 10 workouts", "trending_up", 500)
        )
    if snapshot.total_workouts >= 50:
        candidates.append(
            ("fifty_workouts", "Fitness Enthusiast", "Complete 50 workouts", "emoji_events", 1000)
        )
    if snapshot.streak.current_streak >= 7:
        candidates.append(
            ("week_streak", "Weekly Warrior", "Work out 7 days in a row", "local_fire_department", 300)
        )
    if snapshot.streak.current_streak >= 30:
        candidates.append(
            ("month_streak", "Unstoppable", "Work out 30 days in a row", "whatshot", 2000)
        )
    for area in sorted(snapshot.body_areas):
        level = snapshot.body_areas[area].level
        if level >= 5:
            candidates.append(
                (
                    f"level_5_{_area_slug(area)}",
                    f"{area.title()} Champion",
                    f"Reach level 5 in {area}",
                    "military_tech",
                    250,
                )
            )
        if level >= 10:
            candidates.append(
                (
                    f"level_10_{_area_slug(area)}",
                    f"{area.title()} Master",
                    f"Reach level 10 in {area}",
                    "workspace_premium",
                    1000,
                )
            )
    held = snapshot.achievement_ids
    return [
        Achievement(
            achievement_id=aid,
            title=title,
            description=description,
            icon=icon,
            earned_at=earned_at,
            experience_reward=reward,
        )
        for aid, title, description, icon, reward in candidates
        if aid not in held
    ]


def _update_milestones(
    snapshot: ProgressSnapshot, reached_at: datetime.datetime
) -> tuple[Milestone, ...]:
    values = {
        "volume": snapshot.total_volume,
        "workouts": float(snapshot.total_workouts),
        "streak": float(snapshot.streak.longest_streak),
    }
    updated = []
    for milestone in snapshot.milestones:
        current = values.get(milestone.value_type, milestone.current_value)
        changes: dict = {"current_value": current}
        if not milestone.is_completed and current >= milestone.target_value:
            changes["is_completed"] = True
            changes["completed_at"] = reached_at
        updated.append(milestone.copy_with(**changes))
    return tuple(updated)


def area_volumes(workout: Workout) -> dict[str, float]:
    """Completed volume per body area for one session, split evenly per exercise."""
    volumes: dict[str, float] = {}
    for ex in sorted(workout.exercises, key=lambda e: e.order_index):
        if not ex.completed_sets:
            continue
        for area, share in MathTools.split_evenly(ex.total_volume, ex.body_parts).items():
            volumes[area] = volumes.get(area, 0.0) + share
    return volumes


def empty_snapshot(user_id: str) -> ProgressSnapshot:
    return ProgressSnapshot(user_id=user_id, milestones=initial_milestones())


def fold_workout(
    snapshot: ProgressSnapshot,
    workout: Workout,
    base_experience: float = BASE_EXPERIENCE,
    growth: float = LEVEL_GROWTH,
) -> tuple[ProgressSnapshot, list[Achievement]]:
    """Apply one completed session; returns the new snapshot and fresh achievements."""
    if workout.status != WorkoutStatus.COMPLETED:
        return snapshot, []
    when = workout.session_time
    day = when.date()
    areas = dict(snapshot.body_areas)
    for area, volume in area_volumes(workout).items():
        progress = areas.get(area) or new_body_area(area, base_experience)
        progress = add_experience(progress, volume, growth)
        last = progress.last_worked
        areas[area] = progress.copy_with(
            total_volume=progress.total_volume + volume,
            workout_count=progress.workout_count + 1,
            last_worked=day if last is None or day > last else last,
        )
    last_day = snapshot.last_workout_date
    snapshot = snapshot.copy_with(
        body_areas=areas,
        streak=update_streak(snapshot.streak, day),
        total_workouts=snapshot.total_workouts + 1,
        total_volume=snapshot.total_volume + workout.total_volume,
        total_sets=snapshot.total_sets + workout.completed_sets,
        total_minutes=snapshot.total_minutes + workout.duration_minutes,
        last_workout_date=day if last_day is None or day > last_day else last_day,
    )
    earned = detect_achievements(snapshot, when)
    snapshot = snapshot.copy_with(
        achievements=snapshot.achievements + tuple(earned),
        milestones=_update_milestones(snapshot, when),
    )
    return snapshot, earned


def completion_order(workouts: Iterable[Workout]) -> list[Workout]:
    return sorted(
        (w for w in workouts if w.status == WorkoutStatus.COMPLETED),
        key=lambda w: (w.session_time, w.workout_id),
    )


def recompute_progress(
    user_id: str,
    workouts: Iterable[Workout],
    base_experience: float = BASE_EXPERIENCE,
    growth: float = LEVEL_GROWTH,
) -> ProgressSnapshot:
    """Fold a full session history from scratch."""
    snapshot = empty_snapshot(user_id)
    for workout in completion_order(workouts):
        snapshot, _ = fold_workout(snapshot, workout, base_experience, growth)
    return snapshot


def _date(value: str | None) -> datetime.date | None:
    return datetime.date.fromisoformat(value) if value else None


def _datetime(value: str | None) -> datetime.datetime | None:
    return datetime.datetime.fromisoformat(value) if value else None


def snapshot_to_dict(snapshot: ProgressSnapshot) -> dict:
    return {
        "user_id": snapshot.user_id,
        "body_areas": {
            area: {
                "total_volume": p.total_volume,
                "workout_count": p.workout_count,
                "level": p.level,
                "experience": p.experience,
                "experience_to_next_level": p.experience_to_next_level,
                "last_worked": p.last_worked.isoformat() if p.last_worked else None,
            }
            for area, p in snapshot.body_areas.items()
        },
        "streak": {
            "current_streak": snapshot.streak.current_streak,
            "longest_streak": snapshot.streak.longest_streak,
            "last_workout_date": snapshot.streak.last_workout_date.isoformat()
            if snapshot.streak.last_workout_date
            else None,
        },
        "achievements": [
            {
                "achievement_id": a.achievement_id,
                "title": a.title,
                "description": a.description,
                "icon": a.icon,
                "earned_at": a.earned_at.isoformat(),
                "experience_reward": a.experience_reward,
            }
            for a in snapshot.achievements
        ],
        "milestones": [
            {
                "milestone_id": m.milestone_id,
                "title": m.title,
                "description": m.description,
                "target_value": m.target_value,
                "value_type": m.value_type,
                "current_value": m.current_value,
                "is_completed": m.is_completed,
                "completed_at": m.completed_at.isoformat() if m.completed_at else None,
            }
            for m in snapshot.milestones
        ],
        "total_workouts": snapshot.total_workouts,
        "total_volume": snapshot.total_volume,
        "total_sets": snapshot.total_sets,
        "total_minutes": snapshot.total_minutes,
        "last_workout_date": snapshot.last_workout_date.isoformat()
        if snapshot.last_workout_date
        else None,
    }


def snapshot_from_dict(data: dict) -> ProgressSnapshot:
    streak = data["streak"]
    return ProgressSnapshot(
        user_id=data["user_id"],
        body_areas={
            area: BodyAreaProgress(
                body_area=area,
                total_volume=p["total_volume"],
                workout_count=p["workout_count"],
                level=p["level"],
                experience=p["experience"],
                experience_to_next_level=p["experience_to_next_level"],
                last_worked=_date(p["last_worked"]),
            )
            for area, p in data["body_areas"].items()
        },
        streak=StreakData(
            current_streak=streak["current_streak"],
            longest_streak=streak["longest_streak"],
            last_workout_date=_date(streak["last_workout_date"]),
        ),
        achievements=tuple(
            Achievement(
                achievement_id=a["achievement_id"],
                title=a["title"],
                description=a["description"],
                icon=a["icon"],
                earned_at=_datetime(a["earned_at"]),
                experience_reward=a["experience_reward"],
            )
            for a in data["achievements"]
        ),
        milestones=tuple(
            Milestone(
                milestone_id=m["milestone_id"],
                title=m["title"],
                description=m["description"],
                target_value=m["target_value"],
                value_type=m["value_type"],
                current_value=m["current_value"],
                is_completed=m["is_completed"],
                completed_at=_datetime(m["completed_at"]),
            )
            for m in data["milestones"]
        ),
        total_workouts=data["total_workouts"],
        total_volume=data["total_volume"],
        total_sets=data["total_sets"],
        total_minutes=data["total_minutes"],
        last_workout_date=_date(data["last_workout_date"]),
    )


class GamificationService:
    """Derive and cache per-user progression from completed workouts."""

    def __init__(
        self,
        workout_repo: WorkoutRepository,
        cache_repo: ProgressCacheRepository | None = None,
        settings_repo: SettingsRepository | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.workouts = workout_repo
        self.cache = cache_repo
        self.settings = settings_repo
        self.clock = clock or workout_repo.clock

    def _params(self) -> tuple[float, float, int]:
        if self.settings is None:
            return BASE_EXPERIENCE, LEVEL_GROWTH, HEAT_DECAY_DAYS
        schema = self.settings.schema()
        return schema.base_experience, schema.level_growth, schema.heat_decay_days

    def _cache_key(self, user_id: str) -> str:
        base, growth, _ = self._params()
        return f"{self.workouts.fingerprint(user_id)}|{base}|{growth}"

    def recompute(self, user_id: str) -> ProgressSnapshot:
        base, growth, _ = self._params()
        return recompute_progress(
            user_id, self.workouts.completed_workouts(user_id), base, growth
        )

    def progress(self, user_id: str) -> ProgressSnapshot:
        """Cached snapshot, recomputed when the history or version changed."""
        key = self._cache_key(user_id)
        if self.cache is not None:
            payload = self.cache.load(user_id, PROGRESS_VERSION, key)
            if payload is not None:
                return snapshot_from_dict(payload)
        snapshot = self.recompute(user_id)
        logger.info("recomputed progress for %s", user_id)
        if self.cache is not None:
            self.cache.store(user_id, PROGRESS_VERSION, key, snapshot_to_dict(snapshot))
        return snapshot

    def complete_workout(self, workout_id: str) -> tuple[Workout, list[Achievement]]:
        """Complete a workout and fold it into the cached progress."""
        existing = self.workouts.get(workout_id)
        if existing is None:
            raise NotFoundError("workout not found")
        before = self.progress(existing.user_id)
        workout = self.workouts.complete(workout_id)
        base, growth, _ = self._params()
        after, earned = fold_workout(before, workout, base, growth)
        if self.cache is not None:
            self.cache.store(
                workout.user_id,
                PROGRESS_VERSION,
                self._cache_key(workout.user_id),
                snapshot_to_dict(after),
            )
        for achievement in earned:
            logger.info("%s earned achievement %s", workout.user_id, achievement.achievement_id)
        return workout, earned

    def body_area_progress(self, user_id: str) -> dict[str, BodyAreaProgress]:
        return dict(self.progress(user_id).body_areas)

    def streak(self, user_id: str) -> StreakData:
        return self.progress(user_id).streak

    def achievements(self, user_id: str) -> list[Achievement]:
        return list(self.progress(user_id).achievements)

    def milestones(self, user_id: str) -> list[Milestone]:
        return list(self.progress(user_id).milestones)

    def heat_map(self, user_id: str, today: datetime.date | None = None) -> dict[str, float]:
        today = today or self.clock().date()
        _, _, decay = self._params()
        return {
            area: heat_intensity(p.last_worked, today, decay)
            for area, p in self.progress(user_id).body_areas.items()
        }

    def insights(self, user_id: str, today: datetime.date | None = None) -> dict[str, list[str]]:
        """Areas close to levelling up and areas that have not been trained lately."""
        today = today or self.clock().date()
        _, _, decay = self._params()
        close: list[str] = []
        neglected: list[str] = []
        for area, p in sorted(self.progress(user_id).body_areas.items()):
            if p.progress_to_next_level > 0.7:
                close.append(area)
            if p.last_worked is None or (today - p.last_worked).days >= decay:
                neglected.append(area)
        return {"close_to_level_up": close, "needs_attention": neglected}
