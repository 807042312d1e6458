from __future__ import annotations

import datetime
import logging
from typing import Callable, Iterable, List, Sequence

from db import PersistenceError, WorkoutTemplateRepository
from models import (
    SYSTEM_OWNER_ID,
    Recommendation,
    TemplateCategory,
    WorkoutTemplate,
)

logger = logging.getLogger(__name__)

# ISO weekday -> preferred categories, most preferred first.
DAY_PREFERENCES: dict[int, tuple[TemplateCategory, ...]] = {
    1: (TemplateCategory.PUSH, TemplateCategory.UPPER_BODY),
    2: (TemplateCategory.LEGS, TemplateCategory.LOWER_BODY),
    3: (TemplateCategory.PULL, TemplateCategory.UPPER_BODY),
    4: (TemplateCategory.FULL_BODY, TemplateCategory.STRENGTH),
    5: (TemplateCategory.PUSH, TemplateCategory.UPPER_BODY),
    6: (TemplateCategory.FULL_BODY, TemplateCategory.CARDIO),
    7: (TemplateCategory.PULL, TemplateCategory.FULL_BODY),
}

DAY_REASONS = {
    1: "Perfect way to start the week strong",
    2: "Build foundation with lower body power",
    3: "Mid-week back and bicep focus",
    4: "Balanced training for overall fitness",
    5: "End the work week with pushing power",
    6: "Weekend warrior full-body session",
    7: "Active recovery and muscle balance",
}

FALLBACK_CATEGORIES = (TemplateCategory.FULL_BODY, TemplateCategory.PUSH)


def _least_used(templates: Iterable[WorkoutTemplate]) -> WorkoutTemplate | None:
    ranked = sorted(templates, key=lambda t: t.usage_count)
    return ranked[0] if ranked else None


def select_for_day(
    templates: Sequence[WorkoutTemplate], weekday: int
) -> WorkoutTemplate | None:
    """Pick the least-used template of the first preferred category present.

    ``templates`` must already be in listing order; ties keep that order.
    """
    for category in DAY_PREFERENCES.get(weekday, ()):
        pick = _least_used(t for t in templates if t.category == category)
        if pick is not None:
            return pick
    return templates[0] if templates else None


def select_diverse(templates: Sequence[WorkoutTemplate], count: int) -> List[WorkoutTemplate]:
    """One template per category by ascending usage, then fill from the least used."""
    if count <= 0:
        return []
    ranked = sorted(templates, key=lambda t: t.usage_count)
    picked: List[WorkoutTemplate] = []
    seen: set[TemplateCategory] = set()
    for template in ranked:
        if len(picked) >= count:
            break
        if template.category not in seen:
            seen.add(template.category)
            picked.append(template)
    for template in ranked:
        if len(picked) >= count:
            break
        if template not in picked:
            picked.append(template)
    return picked


def recommendation_reason(template: WorkoutTemplate, weekday: int) -> str:
    if template.category in (TemplateCategory.PUSH, TemplateCategory.PULL):
        return DAY_REASONS.get(weekday, "Recommended based on your training schedule")
    if template.category == TemplateCategory.LEGS:
        return "Build powerful legs and glutes"
    if template.category == TemplateCategory.FULL_BODY:
        return "Complete workout hitting all major muscles"
    return "Recommended based on your training schedule"


class RecommendationService:
    """Suggest which template to train today from the weekly rotation."""

    def __init__(
        self,
        template_repo: WorkoutTemplateRepository,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.templates = template_repo
        self.clock = clock or template_repo.clock

    def _weekday(self) -> int:
        return self.clock().isoweekday()

    def todays_recommendation(self, user_id: str) -> Recommendation | None:
        weekday = self._weekday()
        try:
            visible = self.templates.list_visible(user_id)
        except PersistenceError:
            logger.warning(
                "could not load templates for %s, using a system recommendation", user_id
            )
            return self.fallback_recommendation()
        template = select_for_day(visible, weekday)
        if template is None:
            return self.fallback_recommendation()
        logger.debug("recommending %s for weekday %d", template.template_id, weekday)
        return Recommendation(template, recommendation_reason(template, weekday))

    def recommendations(self, user_id: str, count: int = 3) -> List[Recommendation]:
        weekday = self._weekday()
        return [
            Recommendation(t, recommendation_reason(t, weekday))
            for t in select_diverse(self.templates.list_visible(user_id), count)
        ]

    def fallback_recommendation(self) -> Recommendation | None:
        """Safe system pick used when the user's rotation cannot be read."""
        system = self.templates.list(user_id=SYSTEM_OWNER_ID)
        weekday = self._weekday()
        for category in FALLBACK_CATEGORIES:
            for template in system:
                if template.category == category:
                    return Recommendation(template, recommendation_reason(template, weekday))
        if system:
            return Recommendation(system[0], recommendation_reason(system[0], weekday))
        return None

    def is_recommended_for_today(self, template: WorkoutTemplate) -> bool:
        return template.category in DAY_PREFERENCES.get(self._weekday(), ())
