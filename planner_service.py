from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable, List, Sequence

from db import (
    NotFoundError,
    SettingsRepository,
    UserWorkoutRepository,
    ValidationError,
    WorkoutRepository,
    WorkoutTemplateRepository,
    suggestions_from_sets,
)
from exercise_catalog import ExerciseCatalog
from models import (
    ExerciseAdded,
    ExerciseModified,
    ExerciseRemoved,
    TemplateCategory,
    TemplateDifficulty,
    TemplateExercise,
    UserExercise,
    UserWorkout,
    Workout,
    WorkoutCustomizations,
    WorkoutExercise,
    WorkoutSet,
    WorkoutSource,
    WorkoutTemplate,
)
from tools import new_id

logger = logging.getLogger(__name__)

_MODIFIABLE = {
    "sets": "suggested_sets",
    "reps_min": "suggested_reps_min",
    "reps_max": "suggested_reps_max",
    "weight": "suggested_weight",
    "rest_time_seconds": "rest_time_seconds",
    "order_index": "order_index",
}


def _apply_modification(exercise: UserExercise, event: ExerciseModified) -> UserExercise:
    changes = {
        target: getattr(event, source)
        for source, target in _MODIFIABLE.items()
        if getattr(event, source) is not None
    }
    return exercise.copy_with(**changes) if changes else exercise


def replay_customizations(
    exercises: Sequence[UserExercise], customizations: WorkoutCustomizations
) -> List[UserExercise]:
    """Rebuild the effective exercise list from the cloned base and the event log."""
    removed = set(customizations.removed_exercise_ids)
    modified = customizations.modified_exercises
    effective = []
    for ex in exercises:
        if ex.exercise_id in removed:
            continue
        event = modified.get(ex.exercise_id)
        effective.append(_apply_modification(ex, event) if event else ex)
    effective.extend(customizations.added_exercises)
    ordered = sorted(enumerate(effective), key=lambda pair: (pair[1].order_index, pair[0]))
    return [ex for _, ex in ordered]


def _clone_template_exercise(ex: TemplateExercise) -> UserExercise:
    return UserExercise(
        user_exercise_id=new_id("uex"),
        exercise_id=ex.exercise_id,
        exercise_name=ex.exercise_name,
        body_parts=ex.body_parts,
        order_index=ex.order_index,
        suggested_sets=ex.suggested_sets,
        suggested_reps_min=ex.suggested_reps_min,
        suggested_reps_max=ex.suggested_reps_max,
        suggested_weight=ex.suggested_weight,
        rest_time_seconds=ex.rest_time_seconds,
        notes=ex.notes,
        is_from_template=True,
        source_template_exercise_id=ex.template_exercise_id,
    )


def _planned_sets(ex: UserExercise | TemplateExercise) -> tuple[WorkoutSet, ...]:
    return tuple(
        WorkoutSet(
            weight=ex.suggested_weight or 0.0,
            reps=ex.suggested_reps_min,
            set_number=n,
            rest_time_seconds=ex.rest_time_seconds,
        )
        for n in range(1, ex.suggested_sets + 1)
    )


def _union_body_parts(
    exercises: Iterable[UserExercise | WorkoutExercise | TemplateExercise],
) -> tuple[str, ...]:
    parts: list[str] = []
    for ex in exercises:
        for part in ex.body_parts:
            if part not in parts:
                parts.append(part)
    return tuple(parts)


class PlannerService:
    """Turn templates into personal workouts and personal workouts into sessions.

    Templates are only ever read here; converting one bumps its usage
    counter and nothing else.
    """

    def __init__(
        self,
        template_repo: WorkoutTemplateRepository,
        user_workout_repo: UserWorkoutRepository,
        workout_repo: WorkoutRepository,
        catalog: ExerciseCatalog | None = None,
        settings_repo: SettingsRepository | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.templates = template_repo
        self.user_workouts = user_workout_repo
        self.workouts = workout_repo
        self.catalog = catalog
        self.settings = settings_repo
        self.clock = clock or template_repo.clock

    def _default_duration(self) -> int:
        if self.settings is None:
            return 45
        return self.settings.schema().default_planned_duration

    def _template(self, template_id: str) -> WorkoutTemplate:
        template = self.templates.get(template_id)
        if template is None:
            raise NotFoundError("template not found")
        return template

    def _user_workout(self, user_workout_id: str) -> UserWorkout:
        user_workout = self.user_workouts.get(user_workout_id)
        if user_workout is None:
            raise NotFoundError("user workout not found")
        return user_workout

    # catalog -------------------------------------------------------------
    def exercise_from_catalog(
        self, exercise_id: str, order_index: int = 0, **suggestions
    ) -> UserExercise:
        info = self.catalog.exercise(exercise_id) if self.catalog else None
        if info is None:
            raise NotFoundError("exercise not found")
        return UserExercise(
            user_exercise_id=new_id("uex"),
            exercise_id=info.exercise_id,
            exercise_name=info.name,
            body_parts=info.body_parts,
            order_index=order_index,
            **suggestions,
        )

    def create_workout(
        self,
        user_id: str,
        name: str,
        exercise_ids: Sequence[str],
        planned_duration_minutes: int | None = None,
        notes: str | None = None,
    ) -> Workout:
        """Plan an ad hoc session, denormalizing names and body parts from the catalog."""
        exercises = []
        for index, exercise_id in enumerate(exercise_ids):
            info = self.catalog.exercise(exercise_id) if self.catalog else None
            if info is None:
                raise NotFoundError("exercise not found")
            exercises.append(
                WorkoutExercise(
                    exercise_id=info.exercise_id,
                    exercise_name=info.name,
                    body_parts=info.body_parts,
                    order_index=index,
                )
            )
        workout = Workout(
            workout_id=new_id("workout"),
            user_id=user_id,
            name=name,
            created_at=self.clock(),
            target_body_parts=_union_body_parts(exercises),
            planned_duration_minutes=(
                planned_duration_minutes
                if planned_duration_minutes is not None
                else self._default_duration()
            ),
            notes=notes,
            exercises=tuple(exercises),
        )
        self.workouts.save(workout)
        return workout

    def create_template(
        self,
        user_id: str,
        name: str,
        exercise_ids: Sequence[str],
        description: str = "",
        category: TemplateCategory = TemplateCategory.CUSTOM,
        difficulty: TemplateDifficulty = TemplateDifficulty.BEGINNER,
        estimated_duration_minutes: int | None = None,
    ) -> WorkoutTemplate:
        now = self.clock()
        template_id = new_id("template")
        exercises = tuple(
            TemplateExercise(
                template_exercise_id=f"{template_id}_{ex.exercise_id}",
                exercise_id=ex.exercise_id,
                exercise_name=ex.exercise_name,
                body_parts=ex.body_parts,
                order_index=index,
            )
            for index, ex in enumerate(
                self.exercise_from_catalog(exercise_id) for exercise_id in exercise_ids
            )
        )
        template = WorkoutTemplate(
            template_id=template_id,
            user_id=user_id,
            name=name,
            created_at=now,
            updated_at=now,
            description=description,
            category=category,
            difficulty=difficulty,
            target_body_parts=_union_body_parts(exercises),
            estimated_duration_minutes=estimated_duration_minutes,
            exercises=exercises,
        )
        self.templates.save(template)
        return template

    # user workouts -------------------------------------------------------
    def create_from_template(
        self, template_id: str, user_id: str, name: str | None = None
    ) -> UserWorkout:
        template = self._template(template_id)
        user_workout = UserWorkout(
            user_workout_id=new_id("uw"),
            user_id=user_id,
            name=name or f"My {template.name}",
            created_at=self.clock(),
            source=WorkoutSource.TEMPLATE,
            base_template_id=template.template_id,
            target_body_parts=template.target_body_parts,
            planned_duration_minutes=(
                template.estimated_duration_minutes or self._default_duration()
            ),
            exercises=tuple(_clone_template_exercise(ex) for ex in template.exercises),
        )
        self.user_workouts.save(user_workout)
        self.templates.record_usage(template_id)
        logger.info("created %s from template %s", user_workout.user_workout_id, template_id)
        return user_workout

    def create_custom(
        self,
        user_id: str,
        name: str,
        exercises: Iterable[UserExercise] = (),
        planned_duration_minutes: int | None = None,
        notes: str | None = None,
    ) -> UserWorkout:
        exercises = tuple(exercises)
        user_workout = UserWorkout(
            user_workout_id=new_id("uw"),
            user_id=user_id,
            name=name,
            created_at=self.clock(),
            source=WorkoutSource.CUSTOM,
            target_body_parts=_union_body_parts(exercises),
            planned_duration_minutes=(
                planned_duration_minutes
                if planned_duration_minutes is not None
                else self._default_duration()
            ),
            exercises=exercises,
            notes=notes,
        )
        self.user_workouts.save(user_workout)
        return user_workout

    def import_workout(self, workout_id: str, name: str | None = None) -> UserWorkout:
        """Keep a logged session as a reusable personal workout."""
        workout = self.workouts.get(workout_id)
        if workout is None:
            raise NotFoundError("workout not found")
        exercises = tuple(
            UserExercise(
                user_exercise_id=new_id("uex"),
                exercise_id=ex.exercise_id,
                exercise_name=ex.exercise_name,
                body_parts=ex.body_parts,
                order_index=ex.order_index,
                notes=ex.notes,
                **suggestions_from_sets(ex),
            )
            for ex in workout.exercises
        )
        user_workout = UserWorkout(
            user_workout_id=new_id("uw"),
            user_id=workout.user_id,
            name=name or workout.name,
            created_at=self.clock(),
            source=WorkoutSource.IMPORTED,
            target_body_parts=workout.target_body_parts,
            planned_duration_minutes=workout.planned_duration_minutes,
            exercises=exercises,
            notes=workout.notes,
        )
        self.user_workouts.save(user_workout)
        return user_workout

    def effective_exercises(self, user_workout: UserWorkout) -> List[UserExercise]:
        return replay_customizations(user_workout.exercises, user_workout.customizations)

    def _record(self, user_workout: UserWorkout, customizations: WorkoutCustomizations) -> UserWorkout:
        updated = user_workout.copy_with(customizations=customizations)
        self.user_workouts.update(updated)
        return updated

    def remove_exercise(self, user_workout_id: str, exercise_id: str) -> UserWorkout:
        user_workout = self._user_workout(user_workout_id)
        if exercise_id not in {e.exercise_id for e in self.effective_exercises(user_workout)}:
            raise ValidationError("exercise not in workout")
        c = user_workout.customizations
        if exercise_id in {e.exercise_id for e in c.added_exercises}:
            # dropping something that was only ever added leaves no trace
            events = tuple(
                e for e in c.events if not (e.kind == "added" and e.exercise_id == exercise_id)
            )
            return self._record(user_workout, WorkoutCustomizations(events))
        return self._record(user_workout, c.record(ExerciseRemoved(exercise_id, self.clock())))

    def add_exercise(self, user_workout_id: str, exercise: UserExercise) -> UserWorkout:
        user_workout = self._user_workout(user_workout_id)
        if exercise.exercise_id in {e.exercise_id for e in self.effective_exercises(user_workout)}:
            raise ValidationError("exercise already in workout")
        c = user_workout.customizations
        if exercise.exercise_id in c.removed_exercise_ids:
            # re-adding a removed exercise restores the cloned one
            events = tuple(
                e
                for e in c.events
                if not (e.kind == "removed" and e.exercise_id == exercise.exercise_id)
            )
            return self._record(user_workout, WorkoutCustomizations(events))
        return self._record(user_workout, c.record(ExerciseAdded(exercise, self.clock())))

    def modify_exercise(self, user_workout_id: str, exercise_id: str, **changes) -> UserWorkout:
        unknown = set(changes) - set(_MODIFIABLE)
        if unknown:
            raise ValidationError(f"cannot modify {', '.join(sorted(unknown))}")
        user_workout = self._user_workout(user_workout_id)
        c = user_workout.customizations
        added = {e.exercise_id: e for e in c.added_exercises}
        now = self.clock()
        if exercise_id in added:
            event = ExerciseModified(exercise_id, now, **changes)
            exercise = _apply_modification(added[exercise_id], event)
            return self._record(user_workout, c.record(ExerciseAdded(exercise, now)))
        base_ids = {e.exercise_id for e in user_workout.exercises}
        if exercise_id not in base_ids or exercise_id in c.removed_exercise_ids:
            raise ValidationError("exercise not in workout")
        previous = c.modified_exercises.get(exercise_id)
        if previous is not None:
            # later changes layer over earlier ones for the same exercise
            merged = {
                k: getattr(previous, k) for k in _MODIFIABLE if getattr(previous, k) is not None
            }
            merged.update({k: v for k, v in changes.items() if v is not None})
            changes = merged
        return self._record(user_workout, c.record(ExerciseModified(exercise_id, now, **changes)))

    def rename(self, user_workout_id: str, name: str) -> UserWorkout:
        user_workout = self._user_workout(user_workout_id).copy_with(name=name)
        self.user_workouts.update(user_workout)
        return user_workout

    def delete_user_workout(self, user_workout_id: str) -> None:
        if not self.user_workouts.delete(user_workout_id):
            raise NotFoundError("user workout not found")

    # sessions ------------------------------------------------------------
    def _session(
        self,
        user_id: str,
        name: str,
        exercises: Sequence[UserExercise | TemplateExercise],
        target_body_parts: tuple[str, ...],
        planned_duration_minutes: int | None,
        prefill_sets: bool,
        notes: str | None = None,
    ) -> Workout:
        workout = Workout(
            workout_id=new_id("workout"),
            user_id=user_id,
            name=name,
            created_at=self.clock(),
            target_body_parts=target_body_parts,
            planned_duration_minutes=planned_duration_minutes or self._default_duration(),
            notes=notes,
            exercises=tuple(
                WorkoutExercise(
                    exercise_id=ex.exercise_id,
                    exercise_name=ex.exercise_name,
                    body_parts=ex.body_parts,
                    order_index=index,
                    sets=_planned_sets(ex) if prefill_sets else (),
                    notes=ex.notes,
                )
                for index, ex in enumerate(exercises)
            ),
        )
        self.workouts.save(workout)
        return workout

    def start_workout(self, user_workout_id: str, prefill_sets: bool = False) -> Workout:
        """Plan a session from a personal workout's effective exercise list."""
        user_workout = self._user_workout(user_workout_id)
        workout = self._session(
            user_workout.user_id,
            user_workout.name,
            self.effective_exercises(user_workout),
            user_workout.target_body_parts,
            user_workout.planned_duration_minutes,
            prefill_sets,
            user_workout.notes,
        )
        self.user_workouts.record_usage(user_workout_id)
        return workout

    def start_from_template(
        self, template_id: str, user_id: str, prefill_sets: bool = False
    ) -> Workout:
        template = self._template(template_id)
        workout = self._session(
            user_id,
            template.name,
            sorted(template.exercises, key=lambda e: e.order_index),
            template.target_body_parts,
            template.estimated_duration_minutes,
            prefill_sets,
        )
        self.templates.record_usage(template_id)
        return workout
