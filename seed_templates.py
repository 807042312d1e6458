from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable, List, Sequence

from db import WorkoutTemplateRepository
from exercise_catalog import ExerciseCatalog
from models import (
    SYSTEM_OWNER_ID,
    ExerciseInfo,
    TemplateCategory,
    TemplateDifficulty,
    TemplateExercise,
    WorkoutTemplate,
)

logger = logging.getLogger(__name__)

POPULAR_EQUIPMENT = ("barbell", "dumbbell", "machine", "cable")
CORE_PATTERNS = (
    "squat",
    "deadlift",
    "bench press",
    "row",
    "press",
    "curl",
    "extension",
    "fly",
    "raise",
    "pulldown",
)
BODYWEIGHT_STAPLES = ("push-up", "pull-up", "chin-up", "dip")
VARIATION_KEYWORDS = ("wide", "diamond", "incline", "decline", "pike", "archer")

EXERCISE_NOTE = "Focus on controlled movement and proper form"
TEMPLATE_DURATION = 45


def is_popular(exercise: ExerciseInfo) -> bool:
    """Equipment-based compound movements and a few bodyweight staples."""
    name = exercise.name.lower()
    equipment = exercise.equipment.lower()
    if any(eq in equipment for eq in POPULAR_EQUIPMENT):
        if any(pattern in name for pattern in CORE_PATTERNS):
            return True
    if "body weight" in equipment:
        return any(p in name for p in BODYWEIGHT_STAPLES) and not any(
            k in name for k in VARIATION_KEYWORDS
        )
    return False


def select_by_body_part(
    exercises: Sequence[ExerciseInfo], body_part: str, count: int
) -> List[ExerciseInfo]:
    """Popular exercises first, catalog order otherwise."""
    matching = [e for e in exercises if body_part in e.body_parts]
    matching.sort(key=lambda e: 0 if is_popular(e) else 1)
    return matching[:count]


def suggested_sets(name: str) -> int:
    name = name.lower()
    if any(p in name for p in ("squat", "deadlift", "bench press", "row")):
        return 4
    return 3


def suggested_reps(name: str) -> tuple[int, int]:
    name = name.lower()
    if any(p in name for p in ("squat", "deadlift", "bench press")):
        return 6, 8
    if any(p in name for p in ("curl", "extension", "raise")):
        return 10, 15
    return 8, 12


def template_exercises(
    template_id: str, exercises: Iterable[ExerciseInfo]
) -> tuple[TemplateExercise, ...]:
    result: list[TemplateExercise] = []
    seen: set[str] = set()
    for exercise in exercises:
        if exercise.exercise_id in seen:
            continue
        seen.add(exercise.exercise_id)
        reps_min, reps_max = suggested_reps(exercise.name)
        result.append(
            TemplateExercise(
                template_exercise_id=f"{template_id}_{exercise.exercise_id}",
                exercise_id=exercise.exercise_id,
                exercise_name=exercise.name,
                body_parts=exercise.body_parts,
                order_index=len(result),
                suggested_sets=suggested_sets(exercise.name),
                suggested_reps_min=reps_min,
                suggested_reps_max=reps_max,
                rest_time_seconds=90,
                notes=EXERCISE_NOTE,
            )
        )
    return tuple(result)


def _named(exercises: Iterable[ExerciseInfo], *keywords: str) -> List[ExerciseInfo]:
    return [e for e in exercises if any(k in e.name.lower() for k in keywords)]


class TemplateSeeder:
    """Create the built-in system templates on first start."""

    def __init__(
        self,
        template_repo: WorkoutTemplateRepository,
        catalog: ExerciseCatalog,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.templates = template_repo
        self.catalog = catalog
        self.clock = clock or template_repo.clock

    def _template(
        self,
        template_id: str,
        name: str,
        description: str,
        category: TemplateCategory,
        target_body_parts: tuple[str, ...],
        exercises: Iterable[ExerciseInfo],
        now: datetime.datetime,
    ) -> WorkoutTemplate:
        return WorkoutTemplate(
            template_id=template_id,
            user_id=SYSTEM_OWNER_ID,
            name=name,
            description=description,
            category=category,
            difficulty=TemplateDifficulty.INTERMEDIATE,
            target_body_parts=target_body_parts,
            estimated_duration_minutes=TEMPLATE_DURATION,
            exercises=template_exercises(template_id, exercises),
            created_at=now,
            updated_at=now,
        )

    def build_templates(self, now: datetime.datetime) -> List[WorkoutTemplate]:
        pool = self.catalog.all()

        def pick(body_part: str, count: int) -> List[ExerciseInfo]:
            return select_by_body_part(pool, body_part, count)

        return [
            self._template(
                "chest_template",
                "Chest Focus",
                "Complete chest development with compound and isolation movements",
                TemplateCategory.PUSH,
                ("chest", "shoulders", "upper arms"),
                pick("chest", 6),
                now,
            ),
            self._template(
                "upper_legs_template",
                "Upper Legs Power",
                "Build strong quads, glutes, and hamstrings with proven exercises",
                TemplateCategory.LEGS,
                ("upper legs",),
                pick("upper legs", 7),
                now,
            ),
            self._template(
                "back_template",
                "Back Builder",
                "Comprehensive back training for width, thickness, and strength",
                TemplateCategory.PULL,
                ("back", "upper arms"),
                pick("back", 6),
                now,
            ),
            self._template(
                "shoulders_template",
                "Shoulder Sculptor",
                "Build powerful, well-rounded shoulders with targeted training",
                TemplateCategory.UPPER_BODY,
                ("shoulders", "upper arms"),
                pick("shoulders", 6),
                now,
            ),
            self._template(
                "arms_template",
                "Arm Destroyer",
                "Complete arm development focusing on biceps, triceps, and forearms",
                TemplateCategory.UPPER_BODY,
                ("upper arms", "lower arms"),
                pick("upper arms", 5) + pick("lower arms", 2),
                now,
            ),
            self._template(
                "push_template",
                "Push Day",
                "Complete pushing muscle workout: chest, shoulders, and triceps",
                TemplateCategory.PUSH,
                ("chest", "shoulders", "upper arms"),
                pick("chest", 3)
                + pick("shoulders", 3)
                + _named(pick("upper arms", 2), "tricep", "extension", "dips"),
                now,
            ),
            self._template(
                "pull_template",
                "Pull Day",
                "Complete pulling muscle workout: back, biceps, and forearms",
                TemplateCategory.PULL,
                ("back", "upper arms", "lower arms"),
                pick("back", 4)
                + _named(pick("upper arms", 2), "curl", "bicep")
                + pick("lower arms", 1),
                now,
            ),
        ]

    def seed_if_needed(self) -> int:
        """Seed system templates unless some already exist; returns how many were written."""
        if self.templates.has_system_templates():
            logger.debug("system templates already present")
            return 0
        templates = self.build_templates(self.clock())
        self.templates.save_all(templates, system=True)
        logger.info("seeded %d system templates", len(templates))
        return len(templates)
