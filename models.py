from __future__ import annotations

import datetime
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Mapping, Union

from tools import MathTools, WeightConverter

SYSTEM_OWNER_ID = "system_templates"


class _CopyWith:
    """Mixin providing ``copy_with`` on frozen dataclasses."""

    def copy_with(self, **changes):
        return replace(self, **changes)


class WorkoutStatus(IntEnum):
    PLANNED = 0
    IN_PROGRESS = 1
    COMPLETED = 2
    CANCELLED = 3

    @property
    def is_terminal(self) -> bool:
        return self in (WorkoutStatus.COMPLETED, WorkoutStatus.CANCELLED)

    def can_become(self, target: "WorkoutStatus") -> bool:
        """Return True if moving from this status to ``target`` is allowed."""
        if target == self:
            return True
        if self.is_terminal:
            return False
        if target == WorkoutStatus.CANCELLED:
            return True
        return target > self


class TemplateCategory(str, Enum):
    CUSTOM = "custom"
    STRENGTH = "strength"
    CARDIO = "cardio"
    FULL_BODY = "full_body"
    UPPER_BODY = "upper_body"
    LOWER_BODY = "lower_body"
    PUSH = "push"
    PULL = "pull"
    LEGS = "legs"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class TemplateDifficulty(IntEnum):
    BEGINNER = 0
    INTERMEDIATE = 1
    ADVANCED = 2


class WorkoutSource(str, Enum):
    TEMPLATE = "template"
    CUSTOM = "custom"
    IMPORTED = "imported"


class PersonalRecordType(IntEnum):
    WEIGHT = 0
    VOLUME = 1
    REPS = 2


@dataclass(frozen=True)
class WorkoutSet(_CopyWith):
    weight: float
    reps: int
    set_number: int
    is_completed: bool = False
    completed_at: datetime.datetime | None = None
    rest_time_seconds: int | None = None
    notes: str | None = None

    @property
    def volume(self) -> float:
        return self.weight * self.reps


@dataclass(frozen=True)
class WorkoutExercise(_CopyWith):
    exercise_id: str
    exercise_name: str
    body_parts: tuple[str, ...] = ()
    order_index: int = 0
    sets: tuple[WorkoutSet, ...] = ()
    notes: str | None = None

    @property
    def completed_sets(self) -> tuple[WorkoutSet, ...]:
        return tuple(s for s in self.sets if s.is_completed)

    @property
    def total_volume(self) -> float:
        """Volume of completed sets only."""
        return MathTools.volume((s.reps, s.weight) for s in self.completed_sets)

    @property
    def is_completed(self) -> bool:
        return bool(self.sets) and all(s.is_completed for s in self.sets)

    @property
    def next_set_number(self) -> int:
        return max((s.set_number for s in self.sets), default=0) + 1


@dataclass(frozen=True)
class Workout(_CopyWith):
    """A planned or performed training session."""

    workout_id: str
    user_id: str
    name: str
    created_at: datetime.datetime
    target_body_parts: tuple[str, ...] = ()
    planned_duration_minutes: int = 45
    started_at: datetime.datetime | None = None
    completed_at: datetime.datetime | None = None
    status: WorkoutStatus = WorkoutStatus.PLANNED
    notes: str | None = None
    exercises: tuple[WorkoutExercise, ...] = ()

    @property
    def total_volume(self) -> float:
        return sum(e.total_volume for e in self.exercises)

    @property
    def total_sets(self) -> int:
        return sum(len(e.sets) for e in self.exercises)

    @property
    def completed_sets(self) -> int:
        return sum(len(e.completed_sets) for e in self.exercises)

    @property
    def actual_duration(self) -> datetime.timedelta | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return self.completed_at - self.started_at

    @property
    def duration_minutes(self) -> float:
        """Actual duration in minutes, or the planned one when unknown."""
        actual = self.actual_duration
        if actual is not None:
            return actual.total_seconds() / 60.0
        return float(self.planned_duration_minutes)

    @property
    def is_completed(self) -> bool:
        return self.status == WorkoutStatus.COMPLETED

    @property
    def session_time(self) -> datetime.datetime:
        """Timestamp a completed session is attributed to."""
        return self.completed_at or self.started_at or self.created_at

    def exercise(self, exercise_id: str) -> WorkoutExercise | None:
        for ex in self.exercises:
            if ex.exercise_id == exercise_id:
                return ex
        return None


@dataclass(frozen=True)
class WorkoutSummary:
    """Lightweight list projection of a workout."""

    workout_id: str
    user_id: str
    name: str
    status: WorkoutStatus
    created_at: datetime.datetime
    completed_at: datetime.datetime | None
    exercise_count: int
    set_count: int
    completed_set_count: int
    total_volume: float


@dataclass(frozen=True)
class TemplateExercise(_CopyWith):
    template_exercise_id: str
    exercise_id: str
    exercise_name: str
    body_parts: tuple[str, ...] = ()
    order_index: int = 0
    suggested_sets: int = 3
    suggested_reps_min: int = 8
    suggested_reps_max: int = 12
    suggested_weight: float | None = None
    rest_time_seconds: int = 90
    notes: str | None = None

    @property
    def rep_range(self) -> str:
        if self.suggested_reps_min == self.suggested_reps_max:
            return str(self.suggested_reps_min)
        return f"{self.suggested_reps_min}-{self.suggested_reps_max}"


@dataclass(frozen=True)
class WorkoutTemplate(_CopyWith):
    template_id: str
    user_id: str
    name: str
    created_at: datetime.datetime
    updated_at: datetime.datetime
    description: str = ""
    category: TemplateCategory = TemplateCategory.CUSTOM
    difficulty: TemplateDifficulty = TemplateDifficulty.BEGINNER
    target_body_parts: tuple[str, ...] = ()
    estimated_duration_minutes: int | None = None
    exercises: tuple[TemplateExercise, ...] = ()
    is_favorite: bool = False
    last_used_at: datetime.datetime | None = None
    usage_count: int = 0

    @property
    def is_system(self) -> bool:
        return self.user_id == SYSTEM_OWNER_ID

    @property
    def total_sets(self) -> int:
        return sum(e.suggested_sets for e in self.exercises)


@dataclass(frozen=True)
class UserExercise(_CopyWith):
    user_exercise_id: str
    exercise_id: str
    exercise_name: str
    body_parts: tuple[str, ...] = ()
    order_index: int = 0
    suggested_sets: int = 3
    suggested_reps_min: int = 8
    suggested_reps_max: int = 12
    suggested_weight: float | None = None
    rest_time_seconds: int = 90
    notes: str | None = None
    is_from_template: bool = False
    source_template_exercise_id: str | None = None


@dataclass(frozen=True)
class ExerciseRemoved:
    exercise_id: str
    modified_at: datetime.datetime
    kind: str = field(default="removed", init=False)


@dataclass(frozen=True)
class ExerciseAdded:
    exercise: UserExercise
    modified_at: datetime.datetime
    kind: str = field(default="added", init=False)

    @property
    def exercise_id(self) -> str:
        return self.exercise.exercise_id


@dataclass(frozen=True)
class ExerciseModified:
    exercise_id: str
    modified_at: datetime.datetime
    sets: int | None = None
    reps_min: int | None = None
    reps_max: int | None = None
    weight: float | None = None
    rest_time_seconds: int | None = None
    order_index: int | None = None
    kind: str = field(default="modified", init=False)


CustomizationEvent = Union[ExerciseRemoved, ExerciseAdded, ExerciseModified]


@dataclass(frozen=True)
class WorkoutCustomizations:
    """Audit trail of edits applied on top of a cloned exercise list.

    Events are keyed by ``(kind, exercise_id)``: recording a new event of the
    same kind for the same exercise supersedes the older one, events of other
    kinds are kept.
    """

    events: tuple[CustomizationEvent, ...] = ()

    def record(self, event: CustomizationEvent) -> "WorkoutCustomizations":
        kept = tuple(
            e
            for e in self.events
            if not (e.kind == event.kind and e.exercise_id == event.exercise_id)
        )
        return WorkoutCustomizations(kept + (event,))

    @property
    def removed_exercise_ids(self) -> tuple[str, ...]:
        return tuple(e.exercise_id for e in self.events if e.kind == "removed")

    @property
    def added_exercises(self) -> tuple[UserExercise, ...]:
        return tuple(e.exercise for e in self.events if e.kind == "added")

    @property
    def modified_exercises(self) -> dict[str, ExerciseModified]:
        return {e.exercise_id: e for e in self.events if e.kind == "modified"}

    @property
    def has_changes(self) -> bool:
        return bool(self.events)

    @property
    def change_count(self) -> int:
        return len(self.events)

    @property
    def modified_at(self) -> datetime.datetime | None:
        return max((e.modified_at for e in self.events), default=None)


@dataclass(frozen=True)
class UserWorkout(_CopyWith):
    user_workout_id: str
    user_id: str
    name: str
    created_at: datetime.datetime
    source: WorkoutSource = WorkoutSource.CUSTOM
    base_template_id: str | None = None
    target_body_parts: tuple[str, ...] = ()
    planned_duration_minutes: int = 45
    exercises: tuple[UserExercise, ...] = ()
    customizations: WorkoutCustomizations = WorkoutCustomizations()
    last_used_at: datetime.datetime | None = None
    usage_count: int = 0
    notes: str | None = None

    @property
    def is_template_based(self) -> bool:
        return self.base_template_id is not None

    @property
    def has_modifications(self) -> bool:
        return self.customizations.has_changes

    @property
    def modification_summary(self) -> str:
        if not self.has_modifications:
            return "No changes from template"
        c = self.customizations
        parts = []
        if c.removed_exercise_ids:
            parts.append(f"{len(c.removed_exercise_ids)} removed")
        if c.added_exercises:
            parts.append(f"{len(c.added_exercises)} added")
        if c.modified_exercises:
            parts.append(f"{len(c.modified_exercises)} modified")
        return ", ".join(parts)


@dataclass(frozen=True)
class PersonalRecord(_CopyWith):
    record_id: str
    user_id: str
    exercise_id: str
    exercise_name: str
    record_type: PersonalRecordType
    value: float
    achieved_at: datetime.datetime
    secondary_value: float | None = None
    workout_id: str | None = None
    notes: str | None = None

    def display_value(self, unit: str = "kg") -> str:
        if self.record_type == PersonalRecordType.REPS:
            text = f"{int(self.value)} reps"
            if self.secondary_value is not None:
                text += f" @ {WeightConverter.display(self.secondary_value, unit):.1f} {unit}"
            return text
        return f"{WeightConverter.display(self.value, unit):.1f} {unit}"


@dataclass(frozen=True)
class BodyAreaProgress(_CopyWith):
    body_area: str
    total_volume: float = 0.0
    workout_count: int = 0
    level: int = 1
    experience: float = 0.0
    experience_to_next_level: float = 1000.0
    last_worked: datetime.date | None = None

    @property
    def progress_to_next_level(self) -> float:
        if self.experience_to_next_level <= 0:
            return 0.0
        return MathTools.clamp(self.experience / self.experience_to_next_level, 0.0, 1.0)


@dataclass(frozen=True)
class StreakData(_CopyWith):
    current_streak: int = 0
    longest_streak: int = 0
    last_workout_date: datetime.date | None = None


@dataclass(frozen=True)
class Achievement:
    achievement_id: str
    title: str
    description: str
    icon: str
    earned_at: datetime.datetime
    experience_reward: int = 0


@dataclass(frozen=True)
class Milestone(_CopyWith):
    milestone_id: str
    title: str
    description: str
    target_value: float
    value_type: str
    current_value: float = 0.0
    is_completed: bool = False
    completed_at: datetime.datetime | None = None

    @property
    def progress_percentage(self) -> float:
        if self.target_value <= 0:
            return 100.0
        return MathTools.clamp(self.current_value / self.target_value * 100.0, 0.0, 100.0)


@dataclass(frozen=True)
class ProgressSnapshot(_CopyWith):
    """Everything the progression engine derives from a user's history."""

    user_id: str
    body_areas: Mapping[str, BodyAreaProgress] = field(default_factory=dict)
    streak: StreakData = StreakData()
    achievements: tuple[Achievement, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    total_workouts: int = 0
    total_volume: float = 0.0
    total_sets: int = 0
    total_minutes: float = 0.0
    last_workout_date: datetime.date | None = None

    @property
    def achievement_ids(self) -> set[str]:
        return {a.achievement_id for a in self.achievements}

    @property
    def achievement_points(self) -> int:
        return sum(a.experience_reward for a in self.achievements)


@dataclass(frozen=True)
class WorkoutStats:
    total_workouts: int = 0
    completed_workouts: int = 0
    total_volume: float = 0.0
    total_sets: int = 0
    average_duration_minutes: float = 0.0
    volume_by_body_part: Mapping[str, float] = field(default_factory=dict)

    @property
    def completion_rate(self) -> float:
        if self.total_workouts == 0:
            return 0.0
        return self.completed_workouts / self.total_workouts


@dataclass(frozen=True)
class TemplateStats:
    total_templates: int = 0
    favorite_templates: int = 0
    total_usage: int = 0
    used_templates: int = 0

    @property
    def average_usage(self) -> float:
        if self.total_templates == 0:
            return 0.0
        return self.total_usage / self.total_templates

    @property
    def usage_rate(self) -> float:
        if self.total_templates == 0:
            return 0.0
        return self.used_templates / self.total_templates


@dataclass(frozen=True)
class ProgressComparison:
    label: str
    current_volume: float
    previous_volume: float
    current_workouts: int
    previous_workouts: int

    @property
    def volume_change_percentage(self) -> float:
        return MathTools.percentage_change(self.current_volume, self.previous_volume)


@dataclass(frozen=True)
class DailyProgress:
    day: datetime.date
    volume: float
    workouts: int


@dataclass(frozen=True)
class ExerciseInfo:
    exercise_id: str
    name: str
    body_parts: tuple[str, ...]
    equipment: str = ""
    target: str = ""


@dataclass(frozen=True)
class Recommendation:
    template: WorkoutTemplate
    reason: str
