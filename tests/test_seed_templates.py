import datetime
import os
import sqlite3
import sys
import unittest
from unittest import mock

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import ConsistencyError, NotFoundError, PersistenceError, WorkoutTemplateRepository
from exercise_catalog import ExerciseCatalog
from models import (
    SYSTEM_OWNER_ID,
    ExerciseInfo,
    TemplateCategory,
    TemplateExercise,
    WorkoutTemplate,
)
from seed_templates import (
    TemplateSeeder,
    is_popular,
    select_by_body_part,
    suggested_reps,
    suggested_sets,
    template_exercises,
)

NOW = datetime.datetime(2024, 3, 4, 9, 0)

SEEDED_IDS = {
    "chest_template",
    "upper_legs_template",
    "back_template",
    "shoulders_template",
    "arms_template",
    "push_template",
    "pull_template",
}


class SelectionTestCase(unittest.TestCase):
    def test_popular_exercises(self) -> None:
        self.assertTrue(is_popular(ExerciseInfo("1", "barbell full squat", ("upper legs",), "barbell")))
        self.assertTrue(is_popular(ExerciseInfo("2", "push-up", ("chest",), "body weight")))
        self.assertFalse(is_popular(ExerciseInfo("3", "wide hand push-up", ("chest",), "body weight")))
        self.assertFalse(is_popular(ExerciseInfo("4", "jump rope", ("cardio",), "rope")))

    def test_popular_first_then_catalog_order(self) -> None:
        pool = [
            ExerciseInfo("a", "decline push-up", ("chest",), "body weight"),
            ExerciseInfo("b", "barbell bench press", ("chest",), "barbell"),
            ExerciseInfo("c", "wide hand push-up", ("chest",), "body weight"),
            ExerciseInfo("d", "barbell curl", ("upper arms",), "barbell"),
        ]
        picked = [e.exercise_id for e in select_by_body_part(pool, "chest", 3)]
        self.assertEqual(picked, ["b", "a", "c"])

    def test_prescriptions(self) -> None:
        self.assertEqual(suggested_sets("barbell full squat"), 4)
        self.assertEqual(suggested_sets("dumbbell lateral raise"), 3)
        self.assertEqual(suggested_reps("barbell deadlift"), (6, 8))
        self.assertEqual(suggested_reps("barbell curl"), (10, 15))
        self.assertEqual(suggested_reps("pull-up"), (8, 12))

    def test_template_exercises_skip_duplicates(self) -> None:
        squat = ExerciseInfo("0043", "barbell full squat", ("upper legs",), "barbell")
        curl = ExerciseInfo("0031", "barbell curl", ("upper arms",), "barbell")
        exercises = template_exercises("t", [squat, curl, squat])
        self.assertEqual([e.exercise_id for e in exercises], ["0043", "0031"])
        self.assertEqual([e.order_index for e in exercises], [0, 1])
        self.assertEqual(exercises[0].template_exercise_id, "t_0043")
        self.assertEqual(exercises[1].suggested_reps_max, 15)


class SeederTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_seed.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.repo = WorkoutTemplateRepository(self.db_path, clock=lambda: NOW)
        self.seeder = TemplateSeeder(self.repo, ExerciseCatalog())

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def test_seed_once(self) -> None:
        self.assertEqual(self.seeder.seed_if_needed(), 7)
        self.assertEqual(self.seeder.seed_if_needed(), 0)
        templates = self.repo.list(user_id=SYSTEM_OWNER_ID)
        self.assertEqual({t.template_id for t in templates}, SEEDED_IDS)
        for template in templates:
            self.assertTrue(template.is_system)
            self.assertTrue(template.exercises)
            self.assertEqual(
                [e.order_index for e in template.exercises],
                list(range(len(template.exercises))),
            )
            ids = [e.exercise_id for e in template.exercises]
            self.assertEqual(len(ids), len(set(ids)))
        chest = self.repo.get("chest_template")
        self.assertEqual(chest.category, TemplateCategory.PUSH)
        self.assertEqual(chest.exercises[0].exercise_name, "barbell bench press")
        self.assertEqual(chest.estimated_duration_minutes, 45)

    def test_empty_catalog_still_seeds(self) -> None:
        seeder = TemplateSeeder(self.repo, ExerciseCatalog(exercises=[]))
        self.assertEqual(seeder.seed_if_needed(), 7)
        self.assertEqual(self.repo.get("push_template").exercises, ())

    def test_interrupted_seed_writes_nothing(self) -> None:
        real_write = self.repo._write
        calls = []

        def failing_write(conn, template):
            calls.append(template.template_id)
            if len(calls) == 3:
                raise sqlite3.OperationalError("disk I/O error")
            real_write(conn, template)

        with mock.patch.object(self.repo, "_write", side_effect=failing_write):
            with self.assertRaises(PersistenceError):
                self.seeder.seed_if_needed()
        self.assertFalse(self.repo.has_system_templates())
        self.assertEqual(self.repo.list(user_id=SYSTEM_OWNER_ID), [])
        self.assertEqual(self.seeder.seed_if_needed(), 7)
        self.assertEqual(
            {t.template_id for t in self.repo.list(user_id=SYSTEM_OWNER_ID)}, SEEDED_IDS
        )

    def test_system_templates_are_preserved(self) -> None:
        self.seeder.seed_if_needed()
        system = self.repo.get("chest_template")
        with self.assertRaises(ConsistencyError):
            self.repo.save(system.copy_with(name="Mine now"))
        with self.assertRaises(ConsistencyError):
            self.repo.save(system.copy_with(user_id="u1"))
        with self.assertRaises(ConsistencyError):
            self.repo.update(system.copy_with(name="Mine now"))
        with self.assertRaises(ConsistencyError):
            self.repo.delete("chest_template")
        with self.assertRaises(ConsistencyError):
            self.repo.toggle_favorite("chest_template")
        self.assertEqual(self.repo.get("chest_template"), system)

        self.repo.record_usage("chest_template")
        used = self.repo.get("chest_template")
        self.assertEqual(used.usage_count, 1)
        self.assertEqual(used.last_used_at, NOW)


class TemplateRepositoryTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db_path = "test_templates.db"
        if os.path.exists(self.db_path):
            os.remove(self.db_path)
        self.repo = WorkoutTemplateRepository(self.db_path, clock=lambda: NOW)

    def tearDown(self) -> None:
        if os.path.exists(self.db_path):
            os.remove(self.db_path)

    def template(self, template_id: str, name: str, category=TemplateCategory.CUSTOM) -> WorkoutTemplate:
        return WorkoutTemplate(
            template_id=template_id,
            user_id="u1",
            name=name,
            created_at=NOW,
            updated_at=NOW,
            category=category,
            exercises=(
                TemplateExercise(f"{template_id}_0025", "0025", "barbell bench press", ("chest",)),
            ),
        )

    def test_crud_and_favorites(self) -> None:
        self.repo.save(self.template("t1", "Bench"))
        self.assertEqual(self.repo.get("t1"), self.template("t1", "Bench"))
        self.assertTrue(self.repo.toggle_favorite("t1"))
        self.assertFalse(self.repo.toggle_favorite("t1"))
        with self.assertRaises(NotFoundError):
            self.repo.toggle_favorite("missing")
        with self.assertRaises(NotFoundError):
            self.repo.update(self.template("missing", "x"))
        self.assertTrue(self.repo.delete("t1"))
        self.assertIsNone(self.repo.get("t1"))

    def test_listing_and_stats(self) -> None:
        self.repo.save(self.template("t1", "Push", TemplateCategory.PUSH))
        self.repo.save(self.template("t2", "Legs", TemplateCategory.LEGS))
        self.repo.save(self.template("t3", "Pull", TemplateCategory.PULL))
        self.repo.record_usage("t2")
        self.repo.record_usage("t2")
        self.repo.record_usage("t3")
        self.repo.toggle_favorite("t1")

        self.assertEqual([t.template_id for t in self.repo.popular("u1", 2)], ["t2", "t3"])
        self.assertEqual({t.template_id for t in self.repo.recent("u1")}, {"t2", "t3"})
        self.assertEqual([t.template_id for t in self.repo.list("u1", search="Leg")], ["t2"])
        self.assertEqual(
            [t.template_id for t in self.repo.list("u1", is_favorite=True)], ["t1"]
        )
        grouped = self.repo.by_category("u1")
        self.assertEqual([t.template_id for t in grouped[TemplateCategory.PULL]], ["t3"])

        stats = self.repo.stats("u1")
        self.assertEqual(stats.total_templates, 3)
        self.assertEqual(stats.favorite_templates, 1)
        self.assertEqual(stats.total_usage, 3)
        self.assertEqual(stats.used_templates, 2)
        self.assertEqual(stats.usage_rate, 2 / 3)

    def test_visible_lists_personal_then_system(self) -> None:
        TemplateSeeder(self.repo, ExerciseCatalog()).seed_if_needed()
        self.repo.save(self.template("t1", "Bench"))
        visible = self.repo.list_visible("u1")
        self.assertEqual(visible[0].template_id, "t1")
        self.assertEqual(len(visible), 8)
        self.assertEqual(len(self.repo.list_visible("u2")), 7)


if __name__ == "__main__":
    unittest.main()
