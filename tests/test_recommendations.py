import datetime
import os
import sys
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import PersistenceError, WorkoutTemplateRepository
from exercise_catalog import ExerciseCatalog
from models import TemplateCategory, WorkoutTemplate
from recommendation_service import (
    RecommendationService,
    select_diverse,
    select_for_day,
)
from seed_templates import TemplateSeeder

MONDAY = datetime.datetime(2024, 3, 4, 7, 30)


class FakeClock:
    def __init__(self, now: datetime.datetime) -> None:
        self.now = now

    def __call__(self) -> datetime.datetime:
        return self.now


def template(template_id: str, category: TemplateCategory, usage: int = 0) -> WorkoutTemplate:
    return WorkoutTemplate(
        template_id=template_id,
        user_id="u1",
        name=template_id,
        created_at=MONDAY,
        updated_at=MONDAY,
        category=category,
        usage_count=usage,
    )


class SelectionTestCase(unittest.TestCase):
    def test_preferred_category_least_used(self) -> None:
        pool = [
            template("a", TemplateCategory.LEGS),
            template("b", TemplateCategory.UPPER_BODY, 2),
            template("c", TemplateCategory.PUSH, 3),
            template("d", TemplateCategory.PUSH, 1),
        ]
        self.assertEqual(select_for_day(pool, 1).template_id, "d")
        self.assertEqual(select_for_day(pool[:2], 1).template_id, "b")
        self.assertEqual(select_for_day(pool[:1], 1).template_id, "a")
        self.assertIsNone(select_for_day([], 1))

    def test_ties_keep_listing_order(self) -> None:
        pool = [template("x", TemplateCategory.PULL), template("y", TemplateCategory.PULL)]
        self.assertEqual(select_for_day(pool, 3).template_id, "x")
        self.assertEqual(select_for_day(list(reversed(pool)), 3).template_id, "y")

    def test_diverse_covers_categories_first(self) -> None:
        pool = [
            template("a", TemplateCategory.PUSH),
            template("b", TemplateCategory.PUSH),
            template("c", TemplateCategory.LEGS, 5),
        ]
        self.assertEqual([t.template_id for t in select_diverse(pool, 2)], ["a", "c"])
        self.assertEqual([t.template_id for t in select_diverse(pool, 5)], ["a", "c", "b"])
        self.assertEqual(select_diverse(pool, 0), [])


class RecommendationServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_recommend.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.clock = FakeClock(MONDAY)
        self.repo = WorkoutTemplateRepository(self.db_path, clock=self.clock)
        self.service = RecommendationService(self.repo)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def seed(self) -> None:
        TemplateSeeder(self.repo, ExerciseCatalog()).seed_if_needed()

    def test_nothing_to_recommend(self) -> None:
        self.assertIsNone(self.service.todays_recommendation("u1"))
        self.assertIsNone(self.service.fallback_recommendation())
        self.assertEqual(self.service.recommendations("u1"), [])

    def test_weekday_rotation(self) -> None:
        self.seed()
        monday = self.service.todays_recommendation("u1")
        self.assertEqual(monday.template.template_id, "chest_template")
        self.assertEqual(monday.reason, "Perfect way to start the week strong")
        self.assertEqual(self.service.todays_recommendation("u1"), monday)

        self.clock.now = MONDAY + datetime.timedelta(days=1)
        tuesday = self.service.todays_recommendation("u1")
        self.assertEqual(tuesday.template.template_id, "upper_legs_template")
        self.assertEqual(tuesday.reason, "Build powerful legs and glutes")

        self.clock.now = MONDAY + datetime.timedelta(days=3)
        thursday = self.service.todays_recommendation("u1")
        self.assertEqual(thursday.template.template_id, "arms_template")

    def test_usage_rotates_between_templates(self) -> None:
        self.seed()
        self.repo.record_usage("chest_template")
        pick = self.service.todays_recommendation("u1")
        self.assertEqual(pick.template.template_id, "push_template")

    def test_personal_templates_come_first(self) -> None:
        self.seed()
        self.repo.save(template("mine", TemplateCategory.PUSH))
        self.assertEqual(self.service.todays_recommendation("u1").template.template_id, "mine")
        self.assertEqual(
            self.service.todays_recommendation("u2").template.template_id, "chest_template"
        )

    def test_fallback_and_list(self) -> None:
        self.seed()
        fallback = self.service.fallback_recommendation()
        self.assertEqual(fallback.template.template_id, "chest_template")
        picks = [r.template.template_id for r in self.service.recommendations("u1", 3)]
        self.assertEqual(picks, ["arms_template", "back_template", "chest_template"])
        self.assertEqual(len(self.service.recommendations("u1", 10)), 7)

    def test_unreadable_rotation_uses_system_pick(self) -> None:
        self.seed()
        self.repo.save(template("mine", TemplateCategory.PUSH))
        failure = PersistenceError("database is locked")
        with mock.patch.object(self.repo, "list_visible", side_effect=failure):
            with self.assertLogs("recommendation_service", level="WARNING"):
                pick = self.service.todays_recommendation("u1")
        self.assertEqual(pick.template.template_id, "chest_template")
        self.assertTrue(pick.template.is_system)
        self.assertEqual(self.service.todays_recommendation("u1").template.template_id, "mine")

    def test_is_recommended_for_today(self) -> None:
        self.seed()
        self.assertTrue(self.service.is_recommended_for_today(self.repo.get("push_template")))
        self.assertFalse(
            self.service.is_recommended_for_today(self.repo.get("upper_legs_template"))
        )


if __name__ == "__main__":
    unittest.main()
