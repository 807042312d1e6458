import csv
import logging
import os
from typing import Iterable, List

from models import ExerciseInfo

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = os.path.join(
    os.path.dirname(__file__), "data", "exercise_catalog.csv"
)


class ExerciseCatalog:
    """Read-only exercise lookup backed by a CSV export of the remote catalog.

    Columns: ``exercise_id, name, body_parts, equipment, target``; multiple
    body parts are separated by ``|``.
    """

    def __init__(
        self,
        path: str | None = None,
        exercises: Iterable[ExerciseInfo] | None = None,
    ) -> None:
        self.path = path or DEFAULT_CATALOG_PATH
        if exercises is not None:
            self._exercises = list(exercises)
        else:
            self._exercises = self._load(self.path)
        self._by_id = {e.exercise_id: e for e in self._exercises}

    @staticmethod
    def _load(path: str) -> List[ExerciseInfo]:
        if not os.path.exists(path):
            logger.warning("exercise catalog %s not found", path)
            return []
        records: List[ExerciseInfo] = []
        with open(path, newline="", encoding="utf-8") as csvfile:
            reader = csv.DictReader(csvfile)
            for row in reader:
                exercise_id = (row.get("exercise_id") or "").strip()
                name = (row.get("name") or "").strip()
                if not exercise_id or not name:
                    logger.warning("skipping catalog row without id or name: %s", row)
                    continue
                records.append(
                    ExerciseInfo(
                        exercise_id=exercise_id,
                        name=name,
                        body_parts=tuple(
                            p.strip() for p in (row.get("body_parts") or "").split("|") if p.strip()
                        ),
                        equipment=(row.get("equipment") or "").strip(),
                        target=(row.get("target") or "").strip(),
                    )
                )
        logger.debug("loaded %d catalog exercises from %s", len(records), path)
        return records

    def exercise(self, exercise_id: str) -> ExerciseInfo | None:
        return self._by_id.get(exercise_id)

    def all(self) -> List[ExerciseInfo]:
        return list(self._exercises)

    def by_body_part(self, body_part: str) -> List[ExerciseInfo]:
        return [e for e in self._exercises if body_part in e.body_parts]

    def search(self, query: str) -> List[ExerciseInfo]:
        q = query.lower()
        return [
            e
            for e in self._exercises
            if q in e.name.lower()
            or q in e.equipment.lower()
            or q in e.target.lower()
            or any(q in bp.lower() for bp in e.body_parts)
        ]

    def body_parts(self) -> List[str]:
        parts: set[str] = set()
        for e in self._exercises:
            parts.update(e.body_parts)
        return sorted(parts)
